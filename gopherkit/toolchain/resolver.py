"""
Release resolution against a Go download mirror.

The mirror publishes an HTML listing (``{mirror}/``), not a structured
API. Each downloadable file appears as a table row::

    <tr>
      <td class="filename"><a class="download" href="/dl/go1.21.0.linux-amd64.tar.gz">
          go1.21.0.linux-amd64.tar.gz</a></td>
      <td>Archive</td><td>Linux</td><td>x86-64</td><td>62.0MB</td>
      <td><tt>d0398903a16ba2232b389fb31032ddf57cac34efda306a0eebac34f0965a0742</tt></td>
    </tr>

ReleaseResolver scrapes that listing to map (version, platform) to the
artifact URL, declared size and SHA-256. The scrape is best effort:
rows it cannot understand are skipped by ``list_available`` rather than
failing the whole scan.

The listing fetch is bounded by a total deadline, not just per-read
timeouts, and is never retried.
"""

import logging
import re
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import requests
from requests.exceptions import ConnectionError, RequestException, Timeout

from gopherkit.core.exceptions import (
    ArtifactNotFoundError,
    InvalidVersionError,
    MalformedListingError,
    NetworkTimeoutError,
    NetworkUnavailableError,
)
from gopherkit.core.platform import (
    PlatformInfo,
    arch_matches,
    arch_spellings,
    detect_platform,
)
from gopherkit.toolchain.version import VersionIdentity

logger = logging.getLogger(__name__)

MAX_LISTING_BYTES = 16 * 1024 * 1024
MAX_ROW_CHARS = 4096

_SIZE_UNITS = {"B": 1, "KB": 1024, "MB": 1024**2, "GB": 1024**3, "TB": 1024**4}

_FILE_HREF = re.compile(r"""href=["']/dl/(go[^"'?#]+)["']""")
_SIZE = re.compile(r"<td[^>]*>\s*(\d+(?:\.\d+)?)\s*(B|KB|MB|GB|TB)\s*</td>", re.IGNORECASE)
_HASH = re.compile(r"<tt>\s*([0-9a-f]{64})\s*</tt>")
_BINARY_FILE = re.compile(
    r"^go(?P<version>.+?)\.(?P<os>[a-z][a-z0-9]*)-(?P<arch>[a-z0-9_]+)"
    r"(?P<ext>\.tar\.gz|\.zip|\.msi|\.pkg)$"
)
_SOURCE_FILE = re.compile(r"^go(?P<version>.+?)\.src\.tar\.gz$")

_KIND_BY_EXTENSION = {
    ".tar.gz": "archive",
    ".zip": "archive",
    ".msi": "installer",
    ".pkg": "installer",
}


@dataclass(frozen=True)
class DownloadInfo:
    """Everything needed to fetch and verify one release archive."""

    version: str
    """Normalized version, e.g. 'go1.21.0'"""

    url: str
    """Absolute artifact URL"""

    filename: str
    """Archive file name, e.g. 'go1.21.0.linux-amd64.tar.gz'"""

    size_bytes: int
    """Declared size, converted from the listing's human-readable units"""

    content_hash: str
    """Lowercase SHA-256 hex digest"""


@dataclass(frozen=True)
class ReleaseFile:
    """One file row from the listing."""

    filename: str
    version: str
    os: str
    arch: str
    kind: str
    size_bytes: Optional[int] = None
    content_hash: Optional[str] = None

    def is_compatible(self, platform: PlatformInfo) -> bool:
        """
        Usable on ``platform``: same OS, equivalent arch, installable archive.

        Example:
            >>> f = ReleaseFile("go1.21.0.linux-x86_64.tar.gz", "go1.21.0",
            ...                 "linux", "x86_64", "archive")
            >>> f.is_compatible(PlatformInfo("linux", "amd64"))
            True
        """
        return (
            self.kind == "archive"
            and self.os == platform.os
            and arch_matches(self.arch, platform.arch)
        )


@dataclass
class VersionSummary:
    """A version seen in the listing, with its files."""

    version: str
    identity: VersionIdentity
    files: List[ReleaseFile] = field(default_factory=list)

    @property
    def stable(self) -> bool:
        return self.identity.is_stable

    def compatible_files(self, platform: PlatformInfo) -> List[ReleaseFile]:
        return [f for f in self.files if f.is_compatible(platform)]


def parse_size(text: str) -> Optional[int]:
    """
    Parse the first ``<td>62.0MB</td>``-style cell into bytes (binary units).

    Example:
        >>> parse_size("<td>62.0MB</td>")
        65011712
    """
    match = _SIZE.search(text)
    if not match:
        return None
    number, unit = match.groups()
    return int(round(float(number) * _SIZE_UNITS[unit.upper()]))


def parse_hash(text: str) -> Optional[str]:
    match = _HASH.search(text)
    return match.group(1) if match else None


def parse_release_filename(filename: str) -> Optional[ReleaseFile]:
    """
    Split a release file name into version/os/arch/kind.

    Returns None when the name is not a recognizable Go release file.
    """
    source = _SOURCE_FILE.match(filename)
    if source:
        version_text, os_name, arch, kind = source.group("version"), "", "", "source"
    else:
        binary = _BINARY_FILE.match(filename)
        if not binary:
            return None
        version_text = binary.group("version")
        os_name = binary.group("os")
        arch = binary.group("arch")
        kind = _KIND_BY_EXTENSION[binary.group("ext")]

    try:
        identity = VersionIdentity.parse(version_text)
    except InvalidVersionError:
        return None

    return ReleaseFile(
        filename=filename,
        version=identity.normalized(),
        os=os_name,
        arch=arch,
        kind=kind,
    )


class ReleaseResolver:
    """
    Locates downloadable Go releases on a mirror.

    The listing page is fetched at most once per resolver instance.

    Example:
        >>> resolver = ReleaseResolver("https://go.dev/dl/", timeout=30)
        >>> info = resolver.resolve("1.21.0", PlatformInfo("linux", "amd64"))
        >>> info.url
        'https://go.dev/dl/go1.21.0.linux-amd64.tar.gz'
    """

    def __init__(
        self,
        mirror_url: str,
        timeout: float = 30,
        session: Optional[requests.Session] = None,
    ):
        self.mirror_url = mirror_url if mirror_url.endswith("/") else mirror_url + "/"
        self.timeout = timeout
        self.session = session or requests.Session()
        self._listing: Optional[str] = None

    def resolve(
        self, version: str, platform: Optional[PlatformInfo] = None
    ) -> DownloadInfo:
        """
        Find the archive for ``version`` on ``platform``.

        Raises:
            InvalidVersionError: If version cannot be parsed
            ArtifactNotFoundError: If no row matches the version/platform
            MalformedListingError: If the row lacks a parsable size or hash
            NetworkUnavailableError, NetworkTimeoutError: If the listing fetch fails
        """
        identity = VersionIdentity.parse(version)
        platform = platform or detect_platform()
        listing = self._fetch_listing()
        extension = platform.archive_extension()

        filenames = [
            f"go{identity}.{platform.os}-{arch}{extension}"
            for arch in arch_spellings(platform.arch)
        ]

        for filename in filenames:
            row = self._find_row(listing, filename)
            if row is None:
                continue

            size_bytes = parse_size(row)
            if size_bytes is None:
                raise MalformedListingError(self.mirror_url, filename, "no size")
            content_hash = parse_hash(row)
            if content_hash is None:
                raise MalformedListingError(self.mirror_url, filename, "no SHA-256")

            logger.debug(f"Resolved {filename}: {size_bytes} bytes, sha256 {content_hash}")
            return DownloadInfo(
                version=identity.normalized(),
                url=f"{self.mirror_url}{filename}",
                filename=filename,
                size_bytes=size_bytes,
                content_hash=content_hash,
            )

        raise ArtifactNotFoundError(self.mirror_url, filenames[0])

    def list_available(self) -> List[VersionSummary]:
        """
        All versions mentioned in the listing, newest first.

        Unparsable file names are skipped.
        """
        listing = self._fetch_listing()
        summaries: Dict[str, VersionSummary] = {}

        for match in _FILE_HREF.finditer(listing):
            parsed = parse_release_filename(match.group(1))
            if parsed is None:
                logger.debug(f"Skipping unrecognized listing entry: {match.group(1)}")
                continue

            row = self._row_after(listing, match.end())
            release_file = ReleaseFile(
                filename=parsed.filename,
                version=parsed.version,
                os=parsed.os,
                arch=parsed.arch,
                kind=parsed.kind,
                size_bytes=parse_size(row),
                content_hash=parse_hash(row),
            )

            summary = summaries.get(parsed.version)
            if summary is None:
                summary = VersionSummary(
                    parsed.version, VersionIdentity.parse(parsed.version)
                )
                summaries[parsed.version] = summary
            existing = [f for f in summary.files if f.filename == release_file.filename]
            if not existing:
                summary.files.append(release_file)
            elif existing[0].content_hash is None and release_file.content_hash:
                summary.files[summary.files.index(existing[0])] = release_file

        return sorted(
            summaries.values(), key=lambda s: s.identity.sort_key(), reverse=True
        )

    def find_compatible(
        self, version: str, platform: Optional[PlatformInfo] = None
    ) -> List[ReleaseFile]:
        """Installable files for one version on ``platform``."""
        normalized = VersionIdentity.parse(version).normalized()
        platform = platform or detect_platform()
        for summary in self.list_available():
            if summary.version == normalized:
                return summary.compatible_files(platform)
        return []

    def latest_version(
        self,
        include_unstable: bool = False,
        platform: Optional[PlatformInfo] = None,
    ) -> str:
        """
        Newest version with an installable archive for ``platform``.

        Raises:
            ArtifactNotFoundError: If the listing has no suitable version
        """
        platform = platform or detect_platform()
        for summary in self.list_available():
            if not include_unstable and not summary.stable:
                continue
            if summary.compatible_files(platform):
                return summary.version
        raise ArtifactNotFoundError(self.mirror_url, f"latest release for {platform}")

    def _find_row(self, listing: str, filename: str) -> Optional[str]:
        # A file can be linked more than once (featured box and table row);
        # prefer the occurrence that carries both size and hash
        pattern = re.compile(r"""href=["']/dl/""" + re.escape(filename) + r"""["']""")
        rows = [self._row_after(listing, match.end()) for match in pattern.finditer(listing)]
        if not rows:
            return None
        for row in rows:
            if parse_size(row) is not None and parse_hash(row) is not None:
                return row
        return rows[0]

    @staticmethod
    def _row_after(listing: str, start: int) -> str:
        end = listing.find("</tr>", start)
        if end == -1 or end - start > MAX_ROW_CHARS:
            end = start + MAX_ROW_CHARS
        row = listing[start:end]
        # Never let one row bleed into the next file's cells
        next_anchor = _FILE_HREF.search(row)
        if next_anchor:
            row = row[: next_anchor.start()]
        return row

    def _fetch_listing(self) -> str:
        if self._listing is not None:
            return self._listing

        url = self.mirror_url
        deadline = time.monotonic() + self.timeout
        logger.info(f"Fetching release listing from {url}")

        try:
            response = self.session.get(
                url, stream=True, timeout=(min(10, self.timeout), self.timeout)
            )
        except Timeout as e:
            raise NetworkTimeoutError(url, self.timeout) from e
        except ConnectionError as e:
            raise NetworkUnavailableError(url, str(e)) from e
        except RequestException as e:
            raise NetworkUnavailableError(url, str(e)) from e

        with response:
            if response.status_code == 429 or response.status_code >= 500:
                raise NetworkUnavailableError(url, f"HTTP {response.status_code}")
            if response.status_code != 200:
                raise ArtifactNotFoundError(url, "release listing")

            chunks = []
            received = 0
            try:
                for chunk in response.iter_content(chunk_size=65536):
                    received += len(chunk)
                    if received > MAX_LISTING_BYTES:
                        raise MalformedListingError(
                            url, reason=f"listing larger than {MAX_LISTING_BYTES} bytes"
                        )
                    chunks.append(chunk)
                    if time.monotonic() > deadline:
                        raise NetworkTimeoutError(url, self.timeout)
            except Timeout as e:
                raise NetworkTimeoutError(url, self.timeout) from e
            except (ConnectionError, RequestException) as e:
                raise NetworkUnavailableError(url, str(e)) from e

            encoding = response.encoding or "utf-8"

        self._listing = b"".join(chunks).decode(encoding, errors="replace")
        logger.debug(f"Fetched {received} bytes of release listing")
        return self._listing
