"""File operations utilities for KOH Backup."""

import os
import shutil
from typing import Iterable, List

_UNITS = ["K", "M", "G", "T", "P"]


def human_size(num_bytes: int) -> str:
    """
    Format a byte count the way ``du -h`` does.

    Args:
        num_bytes: Size in bytes

    Returns:
        str: Size such as ``512B``, ``4.0K``, ``1.5M`` or ``12G``
    """
    if num_bytes < 1024:
        return f"{num_bytes}B"

    size = float(num_bytes)
    unit = ""
    for unit in _UNITS:
        size /= 1024.0
        if size < 1024:
            break

    if size < 10:
        return f"{size:.1f}{unit}"
    return f"{size:.0f}{unit}"


def remaining_entries(directory: str, keep: Iterable[str] = ()) -> List[str]:
    """List the names directly under ``directory`` that are not in ``keep``."""
    if not os.path.isdir(directory):
        return []
    protected = set(keep)
    return sorted(name for name in os.listdir(directory) if name not in protected)


def remove_path(path: str) -> None:
    """Remove a file, symlink or directory tree."""
    if os.path.isdir(path) and not os.path.islink(path):
        shutil.rmtree(path)
    else:
        os.remove(path)


def purge_directory(directory: str, keep: Iterable[str] = ()) -> List[str]:
    """
    Delete everything directly under ``directory`` except ``keep``.

    The directory itself is left in place. Errors propagate.

    Args:
        directory: Directory to empty
        keep: Entry names to leave untouched

    Returns:
        List[str]: Names of the removed entries
    """
    removed = []
    for name in remaining_entries(directory, keep):
        remove_path(os.path.join(directory, name))
        removed.append(name)
    return removed
