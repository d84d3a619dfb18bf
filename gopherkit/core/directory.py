"""
Directory structure management for GopherKit.

Profile root (~/.gopherkit/ or %USERPROFILE%\\.gopherkit\\, overridable with
GOPHERKIT_HOME):
    - versions/       : One directory per installed Go version
    - downloads/      : Cache of retrieved archives (safe to delete)
    - state/          : active-version selection file
    - lock/           : Advisory lock files
    - bin/            : Default location of the switch link
    - aliases.json    : Alias name -> alias record
    - config.yaml     : Optional user configuration
"""

import os
from pathlib import Path
from typing import Mapping, Optional

from gopherkit.core.exceptions import FilesystemError, PermissionDeniedError

HOME_ENV_VAR = "GOPHERKIT_HOME"
SUBDIRECTORIES = ("versions", "downloads", "state", "lock", "bin")


def get_home_dir(env: Optional[Mapping[str, str]] = None) -> Path:
    """
    Get the GopherKit profile root.

    Returns:
        Path: ``$GOPHERKIT_HOME`` if set, otherwise
            - Windows: %USERPROFILE%\\.gopherkit
            - Linux/macOS: ~/.gopherkit

    Example:
        >>> get_home_dir({"GOPHERKIT_HOME": "/tmp/gk"})
        PosixPath('/tmp/gk')
    """
    env = os.environ if env is None else env

    override = env.get(HOME_ENV_VAR)
    if override:
        return Path(override).expanduser()

    if os.name == "nt":
        user_profile = env.get("USERPROFILE")
        if not user_profile:
            raise FilesystemError(
                "USERPROFILE environment variable is not set. "
                "Cannot determine the gopherkit home directory."
            )
        return Path(user_profile) / ".gopherkit"
    return Path.home() / ".gopherkit"


def verify_directory_writable(path: Path) -> bool:
    """
    Verify that a directory exists and is writable.

    Args:
        path: Directory path to verify.

    Returns:
        bool: True if directory exists and is writable, False otherwise.
    """
    if not path.is_dir():
        return False

    try:
        test_file = path / ".write_test"
        test_file.touch()
        test_file.unlink()
        return True
    except OSError:
        return False


def ensure_home_structure(root: Path) -> Path:
    """
    Create the profile root and its subdirectories if missing.

    Raises:
        FilesystemError: If a directory cannot be created.
        PermissionDeniedError: If the root exists but is not writable.
    """
    root = Path(root)
    try:
        root.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise FilesystemError(f"Failed to create gopherkit home at {root}: {e}") from e

    if not verify_directory_writable(root):
        raise PermissionDeniedError(
            root, hint="Check directory permissions or set GOPHERKIT_HOME"
        )

    for subdir in SUBDIRECTORIES:
        try:
            (root / subdir).mkdir(exist_ok=True)
        except OSError as e:
            raise FilesystemError(
                f"Failed to create subdirectory {root / subdir}: {e}"
            ) from e

    return root
