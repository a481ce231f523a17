from typing import Dict, Optional

from schemaport.config import config
from schemaport.utils.config_loader import RULES_SUBDIRECTORY, load_json_from_conversion_config


class BaseConverter:
    """
    A base class for all converters to ensure a consistent view of the dialect pair
    and of the rule files that belong to it.
    """
    def __init__(self, source_dialect: Optional[str] = None, target_dialect: Optional[str] = None):
        conversion_cfg = config.get('conversion', {})
        self.source_dialect = (source_dialect or conversion_cfg.get('source_dialect', 'mysql')).lower()
        self.target_dialect = (target_dialect or conversion_cfg.get('target_dialect', 'postgres')).lower()

    def load_rules(self, config_filename: str) -> Dict:
        """Load one JSON rule file for this dialect pair ({} when missing)."""
        return load_json_from_conversion_config(
            getattr(self, 'logger', None),
            self.source_dialect,
            self.target_dialect,
            RULES_SUBDIRECTORY,
            config_filename,
        )
