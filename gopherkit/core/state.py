"""
Active-version state for GopherKit.

The selection made by ``gopherkit use`` survives process exit in
``<home>/state/active-version``, a small key=value file::

    active_version=go1.21.0
    updated_at=2024-08-01T12:00:00+00:00

Writes go through temp-file-then-rename under the advisory state lock, so
readers never see a truncated file and concurrent ``use`` calls serialize.

Example:
    >>> store = ActiveSelectionStore(config.state_file, LockManager(config.lock_dir))
    >>> store.save("go1.21.0")
    >>> store.load().selected_version
    'go1.21.0'
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from gopherkit.core.filesystem import atomic_write
from gopherkit.core.keyvalue import KeyValueFormatError, format_key_value, parse_key_value
from gopherkit.core.locking import LockManager

logger = logging.getLogger(__name__)

SYSTEM_SELECTION = "system"


@dataclass(frozen=True)
class ActiveSelection:
    """
    The user's persisted choice of active toolchain.

    Attributes:
        selected_version: Normalized version (e.g. 'go1.21.0') or 'system'
        updated_at: When the selection was last written
    """

    selected_version: str
    updated_at: Optional[datetime] = None

    @property
    def is_system(self) -> bool:
        return self.selected_version == SYSTEM_SELECTION


class ActiveSelectionStore:
    """
    Loads and saves the ActiveSelection.

    Attributes:
        state_file: Path to the active-version file
    """

    def __init__(self, state_file: Path, lock_manager: Optional[LockManager] = None):
        self.state_file = Path(state_file)
        self.lock_manager = lock_manager
        self._selection: Optional[ActiveSelection] = None

    def load(self, force: bool = False) -> Optional[ActiveSelection]:
        """
        Load the selection from disk.

        A missing file means nothing has been selected yet. A file that
        cannot be parsed logs a warning and is treated the same way.

        Returns:
            The selection, or None
        """
        if self._selection is not None and not force:
            return self._selection

        if not self.state_file.exists():
            logger.debug(f"State file not found: {self.state_file}")
            self._selection = None
            return None

        try:
            record = parse_key_value(self.state_file.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, KeyValueFormatError) as e:
            logger.warning(f"Ignoring unreadable state file {self.state_file}: {e}")
            self._selection = None
            return None

        version = record.get("active_version")
        if not version:
            logger.warning(f"State file {self.state_file} has no active_version")
            self._selection = None
            return None

        updated_at = None
        if record.get("updated_at"):
            try:
                updated_at = datetime.fromisoformat(record["updated_at"])
            except ValueError:
                logger.debug(f"Unparsable updated_at in {self.state_file}")

        self._selection = ActiveSelection(version, updated_at)
        return self._selection

    def save(self, version: str) -> ActiveSelection:
        """
        Persist a new selection, replacing any previous one.

        Args:
            version: Normalized version or 'system'

        Returns:
            The selection that was written
        """
        selection = ActiveSelection(version, datetime.now(timezone.utc))
        content = format_key_value(
            {
                "active_version": selection.selected_version,
                "updated_at": selection.updated_at.isoformat(timespec="seconds"),
            }
        )

        if self.lock_manager is not None:
            with self.lock_manager.state_lock():
                atomic_write(self.state_file, content)
        else:
            atomic_write(self.state_file, content)

        logger.debug(f"Saved active version {version} to {self.state_file}")
        self._selection = selection
        return selection

    def clear(self) -> None:
        """Forget the selection."""
        self.state_file.unlink(missing_ok=True)
        self._selection = None
