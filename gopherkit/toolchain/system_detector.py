"""
System Go detection - finds a Go installation gopherkit does not manage.

Search order:
1. Standard install locations for the platform
2. ``go`` on PATH (skipping gopherkit's own links and versions)
3. ``$GOROOT/bin/go``

The first candidate whose ``go version`` output parses wins.
"""

import logging
import os
import re
import shutil
import subprocess
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, List, Mapping, Optional

from gopherkit.core.exceptions import InvalidVersionError, SystemToolchainNotFoundError
from gopherkit.core.filesystem import is_within
from gopherkit.core.platform import PlatformInfo, canonical_arch
from gopherkit.toolchain.version import normalize_version

logger = logging.getLogger(__name__)

_GO_VERSION_OUTPUT = re.compile(r"^go version (go\S+)(?: ([a-z0-9]+)/([a-z0-9_]+))?")

UNIX_LOCATIONS = [
    "/usr/local/go/bin/go",
    "/usr/lib/go/bin/go",
    "/opt/go/bin/go",
    "/usr/bin/go",
    "/usr/local/bin/go",
]
DARWIN_EXTRA_LOCATIONS = ["/opt/homebrew/bin/go"]
WINDOWS_LOCATIONS = [r"C:\Program Files\Go\bin\go.exe", r"C:\Go\bin\go.exe"]


@dataclass
class SystemToolchain:
    """
    A Go installation found outside gopherkit's directory tree.

    Attributes:
        version: Normalized version, e.g. 'go1.21.0'
        executable: Path to the go executable
        os: GOOS reported by ``go version``
        arch: GOARCH reported by ``go version``
        source: 'standard_location', 'path' or 'goroot'
    """

    version: str
    executable: Path
    os: str
    arch: str
    source: str

    @property
    def goroot(self) -> Path:
        return self.executable.parent.parent

    @property
    def installed_at(self) -> Optional[datetime]:
        try:
            mtime = self.executable.stat().st_mtime
        except OSError:
            return None
        return datetime.fromtimestamp(mtime, tz=timezone.utc)

    def __str__(self) -> str:
        return f"{self.version} ({self.source}) at {self.executable}"


def parse_go_version_output(output: str) -> Optional[tuple]:
    """
    Parse ``go version`` output.

    Example:
        >>> parse_go_version_output("go version go1.21.0 linux/amd64")
        ('go1.21.0', 'linux', 'amd64')
    """
    match = _GO_VERSION_OUTPUT.match(output.strip())
    if not match:
        return None
    try:
        version = normalize_version(match.group(1))
    except InvalidVersionError:
        # Development builds report e.g. "devel go1.23-abc123"
        return None
    return version, match.group(2) or "", match.group(3) or ""


class GoVersionExtractor:
    """Runs ``<go> version`` with a timeout and parses the result."""

    def __init__(self, timeout: float = 5):
        self.timeout = timeout

    def extract(self, executable: Path) -> Optional[tuple]:
        try:
            result = subprocess.run(
                [str(executable), "version"],
                capture_output=True,
                text=True,
                timeout=self.timeout,
                check=False,
            )
        except subprocess.TimeoutExpired:
            logger.debug(f"Timeout running {executable} version")
            return None
        except OSError as e:
            logger.debug(f"Failed to run {executable}: {e}")
            return None

        if result.returncode != 0:
            logger.debug(f"{executable} version returned {result.returncode}")
            return None

        parsed = parse_go_version_output(result.stdout)
        if parsed is None:
            logger.warning(f"Could not parse version from {executable}: {result.stdout[:200]!r}")
        return parsed


class SystemToolchainDetector:
    """
    Locates a pre-existing, non-managed Go installation.

    Example:
        >>> detector = SystemToolchainDetector(platform, managed_root=config.home,
        ...                                    link_paths=config.link_candidates)
        >>> system_go = detector.detect()
        >>> if system_go:
        ...     print(system_go.version)
    """

    def __init__(
        self,
        platform: PlatformInfo,
        managed_root: Optional[Path] = None,
        link_paths: Iterable[Path] = (),
        env: Optional[Mapping[str, str]] = None,
        extractor: Optional[GoVersionExtractor] = None,
    ):
        self.platform = platform
        self.managed_root = Path(managed_root) if managed_root else None
        self.link_paths = [Path(p) for p in link_paths]
        self.env = os.environ if env is None else env
        self.extractor = extractor or GoVersionExtractor()
        self._cached: Optional[SystemToolchain] = None
        self._searched = False

    def standard_locations(self) -> List[Path]:
        if self.platform.is_windows:
            return [Path(p) for p in WINDOWS_LOCATIONS]
        locations = list(UNIX_LOCATIONS)
        if self.platform.os == "darwin":
            locations += DARWIN_EXTRA_LOCATIONS
        return [Path(p) for p in locations]

    def candidates(self) -> List[tuple]:
        """(path, source) pairs in search order, duplicates removed."""
        exe = self.platform.executable_name("go")
        found = [(p, "standard_location") for p in self.standard_locations()]

        # An injected env without PATH means nothing is on PATH
        on_path = shutil.which(exe, path=self.env.get("PATH", ""))
        if on_path:
            found.append((Path(on_path), "path"))

        goroot = self.env.get("GOROOT")
        if goroot:
            found.append((Path(goroot) / "bin" / exe, "goroot"))

        seen = set()
        unique = []
        for path, source in found:
            key = os.path.normcase(str(path))
            if key not in seen:
                seen.add(key)
                unique.append((path, source))
        return unique

    def is_managed(self, path: Path) -> bool:
        """True for gopherkit's own links or anything resolving into its root."""
        if any(os.path.normcase(str(path)) == os.path.normcase(str(link)) for link in self.link_paths):
            return True
        return self.managed_root is not None and is_within(path, self.managed_root)

    def detect(self, refresh: bool = False) -> Optional[SystemToolchain]:
        """
        Find the system Go installation.

        Returns:
            SystemToolchain, or None if there is none
        """
        if self._searched and not refresh:
            return self._cached

        self._cached = None
        for path, source in self.candidates():
            if not path.is_file():
                continue
            if self.is_managed(path):
                logger.debug(f"Skipping gopherkit-managed go at {path}")
                continue

            parsed = self.extractor.extract(path)
            if parsed is None:
                continue

            version, os_name, arch = parsed
            self._cached = SystemToolchain(
                version=version,
                executable=path,
                os=os_name or self.platform.os,
                arch=canonical_arch(arch) if arch else self.platform.arch,
                source=source,
            )
            logger.debug(f"Found system Go: {self._cached}")
            break

        self._searched = True
        return self._cached

    def require(self) -> SystemToolchain:
        """
        Like detect(), but absence is an error.

        Raises:
            SystemToolchainNotFoundError: If no system Go exists
        """
        system_go = self.detect()
        if system_go is None:
            raise SystemToolchainNotFoundError()
        return system_go
