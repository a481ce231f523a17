"""
File helpers shared by the pipeline: reading legacy DDL and writing SQL,
JSON reports and migration scripts.
"""
import json
import os
from pathlib import Path
from typing import Any, Optional


def read_file_content(file_path: str | Path) -> Optional[str]:
    """
    Read a UTF-8 text file.

    Returns:
        The content, or None when the file is missing, undecodable or blank.
    """
    try:
        content = Path(file_path).read_text(encoding='utf-8')
    except (OSError, UnicodeDecodeError):
        return None
    return content if content.strip() else None


def write_file_content(file_path: str | Path, content: str):
    Path(file_path).parent.mkdir(parents=True, exist_ok=True)
    with open(file_path, 'w', encoding='utf-8') as f:
        f.write(content)


def write_file_atomic(file_path: str | Path, content: str):
    """Write *content* to a sibling temp file and rename it into place."""
    target = Path(file_path)
    target.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = target.with_name(f".{target.name}.tmp")
    try:
        with open(tmp_path, 'w', encoding='utf-8') as f:
            f.write(content)
        os.replace(tmp_path, target)
    finally:
        if tmp_path.exists():
            tmp_path.unlink()


def write_json_file(file_path: str | Path, data: Any) -> str:
    Path(file_path).parent.mkdir(parents=True, exist_ok=True)
    with open(file_path, 'w', encoding='utf-8') as f:
        json.dump(data, f, indent=2, ensure_ascii=False, default=str)
    return str(file_path)


def ensure_directory_exists(directory_path: str | Path) -> None:
    os.makedirs(directory_path, exist_ok=True)
