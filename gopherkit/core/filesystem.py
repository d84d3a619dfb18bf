"""
Filesystem helpers shared by the installer, state and alias stores.

Features:
- Atomic writes (temp file in the same directory + rename)
- Guarded recursive removal that tolerates half-deleted trees
- Path containment checks
"""

import logging
import os
import shutil
import stat
import sys
import tempfile
from pathlib import Path
from typing import Optional, Union

from gopherkit.core.exceptions import FilesystemError

logger = logging.getLogger(__name__)


def atomic_write(
    file_path: Union[str, Path], content: Union[str, bytes], encoding: str = "utf-8"
) -> None:
    """
    Write file atomically using temp file + rename.

    The file is never observed in a partially-written state. If the write
    fails, the original file (if any) remains unchanged.

    Args:
        file_path: Path to write to
        content: Content to write (string or bytes)
        encoding: Text encoding (used only for string content)

    Example:
        >>> atomic_write('aliases.json', '{"stable": {...}}')
    """
    file_path = Path(file_path)
    file_path.parent.mkdir(parents=True, exist_ok=True)

    # Same directory keeps the rename on one filesystem
    temp_fd, temp_path_str = tempfile.mkstemp(
        dir=file_path.parent, prefix=f".{file_path.name}.", suffix=".tmp"
    )
    temp_path = Path(temp_path_str)

    try:
        if isinstance(content, str):
            with open(temp_fd, "w", encoding=encoding, newline="\n") as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
        else:
            with open(temp_fd, "wb") as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())

        temp_path.replace(file_path)

    except BaseException:
        try:
            temp_path.unlink(missing_ok=True)
        except OSError:
            pass
        raise


def is_within(path: Union[str, Path], parent: Union[str, Path]) -> bool:
    """
    Check if path resolves to a location under parent.

    Example:
        >>> is_within("/home/u/.gopherkit/versions/go1.21.0", "/home/u/.gopherkit")
        True
    """
    try:
        return Path(path).resolve().is_relative_to(Path(parent).resolve())
    except (OSError, RuntimeError):
        return False


def _retry_removal(func, path, exc):
    """Clear read-only bits and retry; a vanished entry counts as removed."""
    if isinstance(exc, FileNotFoundError):
        return
    if isinstance(exc, PermissionError):
        try:
            os.chmod(path, stat.S_IWRITE | stat.S_IREAD | stat.S_IEXEC)
            func(path)
            return
        except FileNotFoundError:
            return
    raise exc


def safe_rmtree(
    path: Union[str, Path], require_prefix: Optional[Union[str, Path]] = None
) -> None:
    """
    Remove a directory tree with safeguards.

    Already-missing paths and entries that disappear mid-walk are treated
    as removed, so calling this on a half-deleted tree converges on "gone".

    Args:
        path: Directory to remove
        require_prefix: If specified, path must be under this directory

    Raises:
        ValueError: If path is not under require_prefix
        FilesystemError: If deletion fails
    """
    path = Path(path)

    if require_prefix is not None and not is_within(path, require_prefix):
        raise ValueError(
            f"Refusing to delete '{path}': not under required prefix '{require_prefix}'"
        )

    if path.is_symlink():
        path.unlink()
        return

    if not path.exists():
        return

    if not path.is_dir():
        raise FilesystemError(f"Path is not a directory: {path}")

    try:
        if sys.version_info >= (3, 12):
            shutil.rmtree(path, onexc=_retry_removal)
        else:
            shutil.rmtree(
                path, onerror=lambda func, p, info: _retry_removal(func, p, info[1])
            )
    except FileNotFoundError:
        return
    except OSError as e:
        raise FilesystemError(f"Failed to remove directory '{path}': {e}") from e

    logger.debug(f"Removed directory tree: {path}")
