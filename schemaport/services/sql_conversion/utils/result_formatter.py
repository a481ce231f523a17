"""
Result formatting utilities for pipeline runs.
Handles creation of standardized result dictionaries returned to the CLI and API.
"""
from typing import Any, Dict, Optional


def create_result_dictionary(status: str, message: str, stats: Optional[dict] = None,
                             output_dir: Optional[str] = None, source_file: Optional[str] = None,
                             **kwargs) -> dict:
    """
    Create standardized result dictionary for pipeline operations.

    Args:
        status: Overall status ('success' or 'error')
        message: Human-readable status message
        stats: Run statistics dictionary
        output_dir: Output directory path (optional)
        source_file: Source file path (optional)
        **kwargs: Additional keys merged into the result

    Returns:
        Standardized result dictionary
    """
    result: Dict[str, Any] = {
        "status": status,
        "message": message,
        "stats": dict(stats or {}),
    }

    if output_dir:
        result["output_directory"] = str(output_dir)
    if source_file:
        result["source_file"] = str(source_file)

    result.update(kwargs)
    return result
