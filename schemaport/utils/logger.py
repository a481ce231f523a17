import logging
import logging.handlers
import os

from schemaport.config import config
from schemaport.utils.error_utils import sanitize_error_message

__all__ = ["setup_logger"]

# Third-party loggers kept out of schemaport.log (they still reach the console).
_NOISY_LOGGERS = ("uvicorn", "httpx", "sqlglot")

_configured = False


class _MaskSecrets(logging.Filter):
    """Rewrites every record so passwords and DSN credentials never reach a handler."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        masked = sanitize_error_message(message)
        if masked != message:
            record.msg, record.args = masked, None
        return True


class _SkipNoisy(logging.Filter):

    def filter(self, record: logging.LogRecord) -> bool:
        return not record.name.startswith(_NOISY_LOGGERS)


def _level(name: str, fallback: int) -> int:
    return getattr(logging, str(name).upper(), fallback)


def _configure_root_logger() -> None:
    global _configured
    if _configured:
        return

    log_cfg = config.get("logging") or {}
    levels = log_cfg.get("level") or {}
    rotation = log_cfg.get("rotation") or {}
    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    masking = _MaskSecrets()

    console = logging.StreamHandler()
    console.setLevel(_level(levels.get("console", "INFO"), logging.INFO))
    console.setFormatter(logging.Formatter("%(name)s - %(levelname)s - %(message)s"))
    console.addFilter(masking)
    root.addHandler(console)

    logs_dir = (config.get("base_dirs") or {}).get("logs", "logs")
    os.makedirs(logs_dir, exist_ok=True)
    file_handler = logging.handlers.RotatingFileHandler(
        os.path.join(logs_dir, log_cfg.get("file_name", "schemaport.log")),
        maxBytes=rotation.get("max_bytes", 10 * 1024 * 1024),
        backupCount=rotation.get("backup_count", 5),
        encoding=rotation.get("encoding", "utf-8"),
    )
    file_handler.setLevel(_level(levels.get("file", "DEBUG"), logging.DEBUG))
    file_handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
    file_handler.addFilter(masking)
    file_handler.addFilter(_SkipNoisy())
    root.addHandler(file_handler)

    _configured = True


def setup_logger(name: str) -> logging.Logger:
    """Named logger; the first call installs the console and rotating file handlers on the root."""
    _configure_root_logger()
    logger = logging.getLogger(name)
    logger.setLevel(logging.DEBUG)
    return logger
