from datetime import datetime
from pathlib import Path

from schemaport.config import config

__all__ = ["get_timestamp", "output_path", "create_run_directory"]


def get_timestamp() -> str:
    """Current time as ``YYYYMMDD_HHMMSS``."""
    return datetime.now().strftime("%Y%m%d_%H%M%S")


def output_path(*parts) -> Path:
    """Join *parts* below the configured ``base_dirs.output`` directory."""
    root = Path((config.get("base_dirs") or {}).get("output", "output"))
    blank = [p for p in parts if p is None or not str(p).strip()]
    if blank:
        raise ValueError(f"output_path segments must be non-empty, got {blank!r}")
    return root.joinpath(*parts)


def create_run_directory(command: str, stem: str | None = None, run_timestamp: str | None = None) -> Path:
    """Create ``output/<command>/<stem>_<timestamp>`` and return it.

    Two runs of the same command on the same file within one second get
    ``_2``, ``_3``... suffixes instead of sharing a directory.
    """
    if not command or not str(command).strip():
        raise ValueError("create_run_directory() needs a command name")

    ts = run_timestamp or get_timestamp()
    base_name = f"{stem}_{ts}" if stem else ts
    run_dir = output_path(command, base_name)
    counter = 1
    while True:
        try:
            run_dir.mkdir(parents=True, exist_ok=False)
            return run_dir
        except FileExistsError:
            counter += 1
            run_dir = output_path(command, f"{base_name}_{counter}")
