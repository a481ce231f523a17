import yaml
from pathlib import Path
import os
import re
import logging

_ENV_PLACEHOLDER = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)(?::-([^}]*))?\}")


def _expand_env(value, unresolved: list):
    """Recursively replace ``${VAR}`` / ``${VAR:-default}`` inside string values."""
    if isinstance(value, dict):
        return {k: _expand_env(v, unresolved) for k, v in value.items()}
    if isinstance(value, list):
        return [_expand_env(v, unresolved) for v in value]
    if not isinstance(value, str) or '${' not in value:
        return value

    full_match = _ENV_PLACEHOLDER.fullmatch(value.strip())
    if full_match:
        name, default = full_match.group(1), full_match.group(2)
        env_value = os.getenv(name)
        if env_value is not None:
            return env_value
        if default is not None:
            return default
        unresolved.append(name)
        return None

    def _sub(match: re.Match) -> str:
        env_value = os.getenv(match.group(1))
        if env_value is not None:
            return env_value
        if match.group(2) is not None:
            return match.group(2)
        unresolved.append(match.group(1))
        return ''

    return _ENV_PLACEHOLDER.sub(_sub, value)


def load_config():
    """Load configuration from settings.yaml located in the package directory."""
    try:
        package_dir = Path(__file__).parent.parent
        project_root = package_dir.parent

        settings_path = Path(os.getenv('SCHEMAPORT_SETTINGS') or package_dir / 'settings.yaml')

        if not settings_path.exists():
            logging.error(f"Critical: settings.yaml not found at expected path: {settings_path}")
            raise FileNotFoundError(f"settings.yaml not found at {settings_path}")

        with open(settings_path, encoding='utf-8') as f:
            config_data = yaml.safe_load(f)

        if not config_data:
            config_data = {}
            logging.warning(f"settings.yaml at {settings_path} is empty or invalid.")

        unresolved: list = []
        config_data = _expand_env(config_data, unresolved)
        for name in sorted(set(unresolved)):
            logging.warning(f"Environment variable {name} is referenced in settings.yaml but not set.")

        # Ensure base_dirs paths are absolute, resolved from project_root
        resolved_base_dirs = {}
        for key, path_str in (config_data.get('base_dirs') or {}).items():
            if isinstance(path_str, str) and not os.path.isabs(path_str):
                resolved_base_dirs[key] = str((project_root / path_str).resolve())
            else:
                resolved_base_dirs[key] = path_str
        resolved_base_dirs['package'] = str(package_dir)
        config_data['base_dirs'] = resolved_base_dirs

        return config_data

    except FileNotFoundError as fnfe:
        logging.error(f"Configuration Error: {fnfe}", exc_info=True)
        raise
    except yaml.YAMLError as ye:
        logging.error(f"Error parsing settings file: {ye}", exc_info=True)
        raise RuntimeError(f"Failed to load application configuration: {ye}") from ye


# Load config at import time
try:
    config = load_config()
except Exception as e:
    logging.critical(f"CRITICAL FAILURE: Could not load application settings. Error: {e}", exc_info=True)
    raise SystemExit(f"Application cannot start due to configuration load failure: {e}")
