"""
File system utilities for cid.
"""

import os
import tempfile
from pathlib import Path
from typing import List, Union

from .constants import TEMP_PREFIX


def expand_path(path: Union[str, Path]) -> Path:
    """Expand ~ and $VARIABLES in a configured path."""
    return Path(os.path.expandvars(os.path.expanduser(str(path))))


def create_temp_file(destination: Path) -> tuple[int, Path]:
    """
    Create a temporary file next to its final destination.

    The temp file lives in the destination directory so that the final
    os.replace() stays on one filesystem and is atomic.

    Returns:
        Tuple of (open file descriptor, temp file path)
    """
    destination.parent.mkdir(parents=True, exist_ok=True)
    fd, name = tempfile.mkstemp(prefix=f"{TEMP_PREFIX}{destination.name}.", dir=destination.parent)
    return fd, Path(name)


def remove_file(path: Path) -> bool:
    """Remove a file if it exists. Returns True if something was removed."""
    try:
        path.unlink()
        return True
    except FileNotFoundError:
        return False


def find_temp_files(folder_path: Path) -> List[Path]:
    """List leftover temp downloads in a folder tree."""
    if not folder_path.exists():
        return []
    return [f for f in folder_path.rglob(f"{TEMP_PREFIX}*") if f.is_file()]
