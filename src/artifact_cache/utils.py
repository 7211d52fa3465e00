"""Small helpers for archive files and key validation."""

from pathlib import Path
from typing import Sequence

from .constants import MAX_KEY_COUNT, MAX_KEY_LENGTH, MEGABYTE


def get_archive_file_size_in_bytes(archive_path: Path) -> int:
    """Return the size of the archive on disk."""
    return Path(archive_path).stat().st_size


def format_size(size_bytes: int) -> str:
    """Human-readable size rounded to MB, e.g. ``~250 MB (262144000 B)``."""
    return f"~{round(size_bytes / MEGABYTE)} MB ({size_bytes} B)"


def check_key(key: str) -> None:
    """Validate a single cache key.

    Raises:
        ValueError: If the key is empty, too long, or contains a comma
    """
    if not key:
        raise ValueError("Cache key must not be empty")
    if len(key) > MAX_KEY_LENGTH:
        raise ValueError(
            f"Key Validation Error: {key} cannot be larger than {MAX_KEY_LENGTH} characters."
        )
    if "," in key:
        raise ValueError(f"Key Validation Error: {key} cannot contain commas.")


def check_keys(keys: Sequence[str]) -> None:
    """Validate an ordered key list (primary key first).

    Raises:
        ValueError: If the list is empty, too long, or holds an invalid key
    """
    if not keys:
        raise ValueError("At least one key must be provided")
    if len(keys) > MAX_KEY_COUNT:
        raise ValueError(
            f"Key Validation Error: Keys are limited to a maximum of {MAX_KEY_COUNT}."
        )
    for key in keys:
        check_key(key)
