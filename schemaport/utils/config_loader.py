"""Loading of the per-dialect-pair JSON rule files under ``schemaport/config/conversion``."""
import copy
import json
import logging
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional

from schemaport.config import config as app_global_config

RULES_SUBDIRECTORY = 'ddl_conversion_rules'


def rules_path(source_type: str, target_type: str, rules_subdirectory: str, config_filename: str) -> Optional[Path]:
    """``<package>/config/conversion/<source>_<target>/<subdir>/<file>``, or None without a package dir."""
    package_dir = (app_global_config.get('base_dirs') or {}).get('package')
    if not package_dir:
        return None
    pair = f"{source_type.lower()}_{target_type.lower()}"
    return Path(package_dir) / 'config' / 'conversion' / pair / rules_subdirectory / config_filename


@lru_cache(maxsize=None)
def _read_rules(path: Path) -> Dict:
    with open(path, 'r', encoding='utf-8') as f:
        return json.load(f)


def load_json_from_conversion_config(
    logger: Any,
    source_type: str,
    target_type: str,
    rules_subdirectory: str,
    config_filename: str
) -> Dict:
    """
    Return the rule file as a fresh dict.

    A missing, unreadable or malformed file is logged and yields ``{}``; callers
    decide whether an empty rule set is fatal.
    """
    log = logger if logger is not None else logging.getLogger(__name__)
    if not source_type or not target_type:
        log.error(f"Dialect pair '{source_type}_{target_type}' is incomplete; cannot load {config_filename}.")
        return {}

    path = rules_path(source_type, target_type, rules_subdirectory, config_filename)
    if path is None:
        log.error("Package directory ('base_dirs'['package']) not found in global config.")
        return {}
    if not path.exists():
        log.info(f"Rule file not found: {path}")
        return {}

    try:
        data = _read_rules(path)
    except json.JSONDecodeError as jde:
        log.error(f"Invalid JSON in rule file {path}: {jde}")
        return {}
    except OSError as ose:
        log.error(f"Could not read rule file {path}: {ose}")
        return {}

    log.debug(f"Loaded rules from {path}")
    return copy.deepcopy(data)


def load_ddl_rules(config_filename: str, logger: Any = None, source_type: Optional[str] = None,
                   target_type: Optional[str] = None) -> Dict:
    """Rule file of the configured (or given) dialect pair."""
    conversion_cfg = app_global_config.get('conversion') or {}
    return load_json_from_conversion_config(
        logger,
        source_type or conversion_cfg.get('source_dialect', 'mysql'),
        target_type or conversion_cfg.get('target_dialect', 'postgres'),
        RULES_SUBDIRECTORY,
        config_filename,
    )
