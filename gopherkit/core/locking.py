"""
Cross-process locking for GopherKit.

Every gopherkit invocation is a fresh process touching shared files (the
aliases file, the active-selection file, version directories). Advisory
file locks from the ``filelock`` library serialize the load-mutate-save
sequences so concurrent invocations cannot lose updates.

Usage:
    from gopherkit.core.locking import LockManager

    locks = LockManager(config.lock_dir)
    with locks.aliases_lock():
        aliases = load()
        aliases["stable"] = ...
        save(aliases)
"""

import logging
import re
from contextlib import contextmanager
from pathlib import Path

from filelock import FileLock, Timeout as FileLockTimeout

from gopherkit.core.exceptions import LockTimeoutError

logger = logging.getLogger(__name__)

_UNSAFE_LOCK_CHARS = re.compile(r"[^A-Za-z0-9._-]")


class LockManager:
    """
    Manages advisory locks for GopherKit resources.

    Attributes:
        lock_dir: Directory where lock files are stored
    """

    def __init__(self, lock_dir: Path):
        self.lock_dir = Path(lock_dir)
        self.lock_dir.mkdir(parents=True, exist_ok=True)

    @contextmanager
    def _lock(self, name: str, description: str, timeout: float):
        lock_path = self.lock_dir / f"{name}.lock"
        lock = FileLock(lock_path, timeout=timeout)

        try:
            with lock:
                logger.debug(f"Acquired {description} lock: {lock_path}")
                yield
                logger.debug(f"Released {description} lock: {lock_path}")
        except FileLockTimeout as e:
            logger.error(f"Could not acquire {description} lock after {timeout}s")
            raise LockTimeoutError(description, timeout) from e

    def aliases_lock(self, timeout: float = 30):
        """
        Lock protecting the aliases file.

        Raises:
            LockTimeoutError: If lock can't be acquired within timeout
        """
        return self._lock("aliases", "aliases", timeout)

    def state_lock(self, timeout: float = 30):
        """Lock protecting the active-selection state file."""
        return self._lock("state", "active-version state", timeout)

    def version_lock(self, version: str, timeout: float = 600):
        """
        Lock for installing or removing one specific version.

        The timeout is long because the holder may be downloading a
        multi-hundred-megabyte archive.

        Example:
            >>> with locks.version_lock("go1.21.0"):
            ...     if not installer.is_installed("go1.21.0"):
            ...         install()
        """
        safe_name = _UNSAFE_LOCK_CHARS.sub("_", version)
        return self._lock(f"version-{safe_name}", f"version {version}", timeout)
