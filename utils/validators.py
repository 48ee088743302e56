"""
Validation functions for command-line input.
"""

from pathlib import Path
from typing import Optional, Tuple

from codechecker.config import MAX_SUBMISSION_BYTES


def validate_file(filepath: str, allowed_extensions: list = None) -> Tuple[bool, Optional[str]]:
    """
    Validate file exists and has correct extension.
    Returns (is_valid, error_message)
    """
    if not filepath:
        return False, "File path is empty"

    path = Path(filepath)

    if not path.exists():
        return False, f"File does not exist: {filepath}"

    if not path.is_file():
        return False, f"Path is not a file: {filepath}"

    if allowed_extensions:
        if path.suffix.lower() not in [ext.lower() for ext in allowed_extensions]:
            return False, f"File must have one of these extensions: {allowed_extensions}"

    if path.stat().st_size > MAX_SUBMISSION_BYTES:
        return False, f"File is too large (max {MAX_SUBMISSION_BYTES/1024:.0f}KB)"

    return True, None


def validate_directory(dirpath: str) -> Tuple[bool, Optional[str]]:
    """
    Validate directory exists.
    Returns (is_valid, error_message)
    """
    if not dirpath:
        return False, "Directory path is empty"

    path = Path(dirpath)
    if not path.exists():
        return False, f"Directory not found: {dirpath}"
    if not path.is_dir():
        return False, f"Path is not a directory: {dirpath}"

    return True, None


def validate_threshold(value: float) -> Tuple[bool, Optional[str]]:
    """Similarity thresholds are percentages"""
    if not 0.0 <= value <= 100.0:
        return False, f"Threshold must be between 0 and 100, got {value}"
    return True, None
