"""
Version manager - install, uninstall, list and switch Go versions.

Per-version state machine::

    NotInstalled --install--> Installed --use--> Active
         ^                        |                 |
         +-------uninstall--------+-----------------+

The manager wires the ReleaseResolver, download cache, SecureInstaller,
SystemToolchainDetector, switch link and persisted ActiveSelection
together. Every collaborator can be injected, so tests never need the
network or a real shell.

Example:
    >>> manager = VersionManager(load_config())
    >>> manager.install("1.21.0")
    >>> manager.use("1.21.0")
    >>> manager.current()
    'go1.21.0'
"""

import logging
import os
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterable, List, Optional

from gopherkit.core.config import GopherKitConfig
from gopherkit.core.directory import ensure_home_structure
from gopherkit.core.download import DownloadProgress, download_file
from gopherkit.core.exceptions import (
    CorruptedInstallError,
    GopherKitError,
    VersionAlreadyInstalledError,
)
from gopherkit.core.interfaces import ConfirmationPrompt, ShellProfileWriter
from gopherkit.core.locking import LockManager
from gopherkit.core.platform import PlatformInfo, detect_platform
from gopherkit.core.state import SYSTEM_SELECTION, ActiveSelection, ActiveSelectionStore
from gopherkit.toolchain.aliases import AliasManager
from gopherkit.toolchain.cleanup import CleanupResult, VersionCleanupManager
from gopherkit.toolchain.installer import SecureInstaller
from gopherkit.toolchain.linking import SwitchLinkManager
from gopherkit.toolchain.resolver import DownloadInfo, ReleaseResolver, VersionSummary
from gopherkit.toolchain.system_detector import SystemToolchainDetector
from gopherkit.toolchain.version import VersionIdentity, is_valid_version, normalize_version

logger = logging.getLogger(__name__)

SYSTEM_SELECTORS = ("system", "sys")
UNKNOWN_SELECTION = "unknown"


@dataclass
class InstalledVersion:
    """
    One row of ``list_installed``.

    ``is_managed`` is False only for the synthesized system entry;
    ``is_active`` is computed on every listing, never stored.
    """

    version: str
    identity: VersionIdentity
    os: str
    arch: str
    installed_at: Optional[datetime]
    install_dir: Path
    is_managed: bool
    is_active: bool = False


@dataclass
class InstallResult:
    """Result of VersionManager.install."""

    version: str
    install_dir: Path
    download: DownloadInfo
    cleanup: Optional[CleanupResult] = None


class VersionManager:
    """Orchestrates installs, removals and switching for one profile root."""

    def __init__(
        self,
        config: GopherKitConfig,
        platform: Optional[PlatformInfo] = None,
        resolver: Optional[ReleaseResolver] = None,
        installer: Optional[SecureInstaller] = None,
        system_detector: Optional[SystemToolchainDetector] = None,
        link_manager: Optional[SwitchLinkManager] = None,
        state_store: Optional[ActiveSelectionStore] = None,
        lock_manager: Optional[LockManager] = None,
        downloader: Callable[..., Path] = download_file,
        confirm: Optional[ConfirmationPrompt] = None,
        shell_writer: Optional[ShellProfileWriter] = None,
        progress_callback: Optional[Callable[[DownloadProgress], None]] = None,
    ):
        self.config = config
        ensure_home_structure(config.home)

        self.platform = platform or detect_platform()
        self.lock_manager = lock_manager or LockManager(config.lock_dir)
        self.resolver = resolver or ReleaseResolver(
            config.mirror_url, timeout=config.request_timeout
        )
        self.installer = installer or SecureInstaller(
            config.versions_dir,
            platform=self.platform,
            max_file_size=config.max_file_size,
        )
        self.system_detector = system_detector or SystemToolchainDetector(
            self.platform,
            managed_root=config.home,
            link_paths=config.link_candidates,
        )
        self.link_manager = link_manager or SwitchLinkManager(
            config.link_candidates, platform=self.platform, managed_root=config.home
        )
        self.state_store = state_store or ActiveSelectionStore(
            config.state_file, self.lock_manager
        )
        self.downloader = downloader
        self.confirm = confirm
        self.shell_writer = shell_writer
        self.progress_callback = progress_callback
        self.cleanup_manager = VersionCleanupManager(
            self.installer, self._protected_version
        )
        self._aliases: Optional[AliasManager] = None

    @property
    def aliases(self) -> AliasManager:
        """AliasManager bound to this manager's install state (created lazily)."""
        if self._aliases is None:
            self._aliases = AliasManager(
                self.config.aliases_file,
                is_installed=self.is_installed,
                lock_manager=self.lock_manager,
                confirm=self.confirm,
            )
        return self._aliases

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def is_installed(self, version: str) -> bool:
        return self.installer.is_installed(version)

    def get_executable_path(self, version: str) -> Path:
        return self.installer.get_executable_path(version)

    def resolve_selector(self, selector: str) -> str:
        """
        Turn what the user typed into a normalized version or 'system'.

        Aliases win over version syntax, so an alias named '1.21' is
        honoured even though '1.21' is also a valid version.
        """
        selector = selector.strip()
        if selector.lower() in SYSTEM_SELECTORS:
            return SYSTEM_SELECTION

        target = self.aliases.resolve(selector)
        if target is not None:
            logger.debug(f"Alias {selector} -> {target}")
            return target
        return normalize_version(selector)

    def current(self) -> str:
        """
        The active selection: a normalized version, 'system' or 'unknown'.

        The link target is authoritative; the persisted selection is the
        fallback when the link is missing or points somewhere unexpected.
        """
        target = self.link_manager.current_target()
        if target is not None:
            version = self._version_from_path(target)
            if version and self.installer.is_installed(version):
                return version
            system_go = self.system_detector.detect()
            if system_go and _same_path(target, system_go.executable):
                return SYSTEM_SELECTION

        selection = self.state_store.load(force=True)
        if selection is not None:
            if selection.is_system:
                return SYSTEM_SELECTION
            if self.installer.is_installed(selection.selected_version):
                return selection.selected_version

        return UNKNOWN_SELECTION

    def list_installed(self) -> List[InstalledVersion]:
        """
        The system toolchain (if any) followed by managed versions, newest first.

        A system Go whose version equals a managed one is only shown once,
        as the managed entry.
        """
        active = self.current()
        entries: List[InstalledVersion] = []
        managed = set()

        for version in self.installer.list_installed():
            identity = VersionIdentity.parse(version)
            managed.add(identity)
            try:
                metadata = self.installer.get_metadata(version)
            except CorruptedInstallError as e:
                logger.warning(f"{e}")
                metadata = None

            entries.append(
                InstalledVersion(
                    version=version,
                    identity=identity,
                    os=metadata.os if metadata else self.platform.os,
                    arch=metadata.arch if metadata else self.platform.arch,
                    installed_at=metadata.installed_at if metadata else None,
                    install_dir=self.installer.version_dir(version),
                    is_managed=True,
                    is_active=version == active,
                )
            )

        system_go = self.system_detector.detect()
        if system_go is not None:
            identity = VersionIdentity.parse(system_go.version)
            if identity not in managed:
                entries.insert(
                    0,
                    InstalledVersion(
                        version=system_go.version,
                        identity=identity,
                        os=system_go.os,
                        arch=system_go.arch,
                        installed_at=system_go.installed_at,
                        install_dir=system_go.goroot,
                        is_managed=False,
                        is_active=active == SYSTEM_SELECTION,
                    ),
                )

        return entries

    def list_available(self) -> List[VersionSummary]:
        return self.resolver.list_available()

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def install(self, version: str) -> InstallResult:
        """
        Download, verify and install a version ('latest' is accepted).

        Raises:
            VersionAlreadyInstalledError: If the version is already installed
            ArtifactNotFoundError, MalformedListingError: From the resolver
            NetworkUnavailableError, NetworkTimeoutError: From network access
            ChecksumMismatchError: If the download is corrupt
            InstallerError: If the archive is rejected
        """
        if version.strip().lower() == "latest":
            normalized = self.resolver.latest_version(platform=self.platform)
            logger.info(f"Latest stable release is {normalized}")
        else:
            normalized = normalize_version(version)

        if self.installer.is_installed(normalized):
            raise VersionAlreadyInstalledError(normalized)

        with self.lock_manager.version_lock(normalized):
            # Another process may have finished the same install meanwhile
            if self.installer.is_installed(normalized):
                raise VersionAlreadyInstalledError(normalized)

            info = self.resolver.resolve(normalized, self.platform)
            archive = self.downloader(
                info.url,
                self.config.downloads_dir / info.filename,
                expected_sha256=info.content_hash,
                progress_callback=self.progress_callback,
                timeout=self.config.request_timeout,
            )
            self.installer.install(normalized, archive)

            if not self.config.keep_downloads:
                Path(archive).unlink(missing_ok=True)

        cleanup = self._auto_cleanup(normalized) if self.config.auto_cleanup else None
        return InstallResult(
            version=normalized,
            install_dir=self.installer.version_dir(normalized),
            download=info,
            cleanup=cleanup,
        )

    def uninstall(self, version: str) -> None:
        """
        Remove an installed version.

        Removing the active version is allowed; the selection dangles until
        the next ``use``.

        Raises:
            VersionNotInstalledError: If the version is not installed
        """
        normalized = normalize_version(version)
        was_active = self.current() == normalized

        with self.lock_manager.version_lock(normalized):
            self.installer.uninstall(normalized)

        if was_active:
            logger.warning(
                f"{normalized} was the active version; run 'gopherkit use' to pick another"
            )

    def use(self, selector: str) -> ActiveSelection:
        """
        Make a version (or alias, or 'system') the active one.

        Raises:
            VersionNotInstalledError: If the version is not installed
            SystemToolchainNotFoundError: For 'system' when none exists
            PermissionDeniedError: If no link location is writable
        """
        resolved = self.resolve_selector(selector)

        if resolved == SYSTEM_SELECTION:
            executable = self.system_detector.require().executable
        else:
            executable = self.installer.get_executable_path(resolved)

        link = self.link_manager.point_to(executable)
        selection = self.state_store.save(resolved)
        self.link_manager.ensure_on_path(link.path.parent, self.shell_writer)

        logger.info(f"Now using {resolved}")
        return selection

    def cleanup_old_versions(
        self,
        max_versions: Optional[int] = None,
        dry_run: bool = False,
        protected: Iterable[str] = (),
    ) -> CleanupResult:
        """
        Keep only the newest ``max_versions`` (default from config).

        The active version and ``protected`` versions are never removed.
        """
        keep = max_versions if max_versions is not None else self.config.max_versions
        return self.cleanup_manager.cleanup(keep, dry_run=dry_run, protected=protected)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _auto_cleanup(self, installed: str) -> Optional[CleanupResult]:
        try:
            result = self.cleanup_old_versions(protected=(installed,))
        except (GopherKitError, OSError) as e:
            logger.warning(f"Auto-cleanup skipped: {e}")
            return None

        if result.removed:
            logger.info(f"Auto-cleanup removed {', '.join(result.removed)}")
        if result.failed:
            logger.warning(
                f"Auto-cleanup could not remove {', '.join(result.failed)}: "
                + "; ".join(result.errors)
            )
        return result

    def _protected_version(self) -> Optional[str]:
        active = self.current()
        if active in (SYSTEM_SELECTION, UNKNOWN_SELECTION):
            return None
        return active

    def _version_from_path(self, executable: Path) -> Optional[str]:
        versions_dir = os.path.abspath(self.config.versions_dir)
        try:
            relative = Path(os.path.abspath(executable)).relative_to(versions_dir)
        except ValueError:
            return None
        if not relative.parts or not is_valid_version(relative.parts[0]):
            return None
        return relative.parts[0]


def _same_path(a: Path, b: Path) -> bool:
    return os.path.normcase(os.path.abspath(a)) == os.path.normcase(os.path.abspath(b))
