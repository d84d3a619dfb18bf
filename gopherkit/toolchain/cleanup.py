"""
Removal of old installed versions ("keep the newest N").

Versions are ranked by install time, oldest first. The active version is
never removed implicitly, and one failed removal does not stop the rest:
failures are collected in the CleanupResult for the caller to report.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, List, Optional

from gopherkit.core.exceptions import CorruptedInstallError, GopherKitError
from gopherkit.toolchain.installer import SecureInstaller

logger = logging.getLogger(__name__)


@dataclass
class CleanupResult:
    """Result of cleanup operation."""

    removed: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    space_reclaimed: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def partial_failure(self) -> bool:
        return bool(self.failed)


def directory_size(path: Path) -> int:
    """Total size of regular files under ``path`` in bytes."""
    total = 0
    for item in Path(path).rglob("*"):
        try:
            if item.is_file() and not item.is_symlink():
                total += item.stat().st_size
        except OSError:
            continue
    return total


class VersionCleanupManager:
    """
    Selects and removes excess versions.

    Args:
        installer: Installer owning the versions directory
        active_version: Callback returning the active normalized version (or None)
    """

    def __init__(
        self,
        installer: SecureInstaller,
        active_version: Callable[[], Optional[str]],
    ):
        self.installer = installer
        self.active_version = active_version

    def plan(
        self,
        max_versions: int,
        result: Optional[CleanupResult] = None,
        protected: Iterable[str] = (),
    ) -> List[str]:
        """
        Versions that would be removed to get down to ``max_versions``.

        Oldest install first. The active version, any ``protected`` versions
        and versions with corrupted metadata are skipped (and recorded in
        ``result`` when given).
        """
        if max_versions < 1:
            raise ValueError("max_versions must be at least 1")

        installed = self.installer.list_installed()
        excess = len(installed) - max_versions
        if excess <= 0:
            return []

        ranked = []
        for version in installed:
            try:
                ranked.append((self.installer.get_metadata(version).installed_at, version))
            except CorruptedInstallError as e:
                logger.warning(f"Not cleaning up {version}: {e}")
                if result is not None:
                    result.skipped.append(version)
                    result.errors.append(f"{version}: {e}")
        ranked.sort()

        keep = set(protected)
        keep.add(self.active_version())
        victims = []
        for _, version in ranked:
            if len(victims) == excess:
                break
            if version in keep:
                logger.debug(f"Keeping protected version {version}")
                if result is not None:
                    result.skipped.append(version)
                continue
            victims.append(version)
        return victims

    def cleanup(
        self, max_versions: int, dry_run: bool = False, protected: Iterable[str] = ()
    ) -> CleanupResult:
        """
        Remove the oldest versions beyond ``max_versions``.

        Args:
            max_versions: How many installed versions to keep
            dry_run: If True, only report what would be removed
            protected: Versions that must survive besides the active one

        Returns:
            CleanupResult with removal details
        """
        result = CleanupResult()

        for version in self.plan(max_versions, result, protected):
            size = directory_size(self.installer.version_dir(version))
            if dry_run:
                logger.info(f"[DRY RUN] Would remove: {version} ({size} bytes)")
                result.removed.append(version)
                result.space_reclaimed += size
                continue

            try:
                self.installer.uninstall(version)
            except (GopherKitError, OSError) as e:
                logger.error(f"Failed to remove {version}: {e}")
                result.failed.append(version)
                result.errors.append(f"{version}: {e}")
                continue

            logger.info(f"Removed old version: {version} ({size} bytes)")
            result.removed.append(version)
            result.space_reclaimed += size

        return result
