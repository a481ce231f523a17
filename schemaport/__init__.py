import os

from schemaport.config import config
from .utils.logger import setup_logger

# Ensure the directory structure defined in settings.yaml exists at import
# time so that any service can safely assume the folders are present.
if 'base_dirs' in config:
    for key, path in config['base_dirs'].items():
        if key != 'package' and path:
            os.makedirs(path, exist_ok=True)

__version__ = "0.1.0"

# Log once during package import so we know the package was initialised.
setup_logger('schemaport_init').debug('schemaport package initialised.')
