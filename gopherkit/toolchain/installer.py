"""
Secure extraction of Go release archives into per-version directories.

Layout produced::

    versions/
      go1.21.0/
        bin/go
        ...
        .gopherkit-metadata     <- written last; its presence means "installed"

Security guarantees:
- Every entry path (and link target) is validated before the first byte is
  written; anything escaping the version directory is rejected.
- Each entry is copied through a bounded reader. Zip members are inflated
  by hand with an output cap so a lying ``file_size`` header cannot smuggle
  in a decompression bomb.
- Permission bits are reduced to ``0o777`` through an explicit unsigned
  mask, never taken verbatim from the archive.
- Extraction happens in a hidden staging directory; the version directory
  only appears once the tree is complete, and any failure removes both.

Example:
    >>> installer = SecureInstaller(config.versions_dir)
    >>> installer.install("go1.21.0", Path("downloads/go1.21.0.linux-amd64.tar.gz"))
    >>> installer.get_executable_path("go1.21.0")
    PosixPath('.../versions/go1.21.0/bin/go')
"""

import gzip
import logging
import os
import posixpath
import re
import shutil
import stat
import struct
import tarfile
import tempfile
import zipfile
import zlib
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import BinaryIO, Dict, List, Optional, Union

from gopherkit.core.config import DEFAULT_MAX_FILE_SIZE
from gopherkit.core.exceptions import (
    CorruptedInstallError,
    FilesystemError,
    InstallerError,
    InvalidArchiveLayoutError,
    InvalidVersionError,
    PathTraversalError,
    SizeLimitExceededError,
    UnsupportedArchiveError,
    VersionAlreadyInstalledError,
    VersionNotInstalledError,
)
from gopherkit.core.filesystem import atomic_write, is_within, safe_rmtree
from gopherkit.core.keyvalue import KeyValueFormatError, format_key_value, parse_key_value
from gopherkit.core.platform import PlatformInfo, detect_platform
from gopherkit.toolchain.version import VersionIdentity, normalize_version

logger = logging.getLogger(__name__)

METADATA_FILENAME = ".gopherkit-metadata"
REQUIRED_METADATA_KEYS = ("version", "os", "arch", "installed_at", "install_dir")

CHUNK_SIZE = 65536
MAX_LINK_TARGET = 4096

_LOCAL_HEADER = struct.Struct("<4s2B4HL2L2H")
_LOCAL_HEADER_SIGNATURE = b"PK\x03\x04"
_DRIVE_PREFIX = re.compile(r"^[A-Za-z]:")

_ARCHIVE_ERRORS = (
    tarfile.TarError,
    zipfile.BadZipFile,
    zlib.error,
    gzip.BadGzipFile,
    EOFError,
    struct.error,
)


@dataclass(frozen=True)
class InstallMetadata:
    """Contents of a version's metadata file."""

    version: str
    os: str
    arch: str
    installed_at: datetime
    install_dir: Path

    def to_record(self) -> Dict[str, str]:
        return {
            "version": self.version,
            "os": self.os,
            "arch": self.arch,
            "installed_at": self.installed_at.isoformat(),
            "install_dir": str(self.install_dir),
        }

    @classmethod
    def from_record(cls, record: Dict[str, str]) -> "InstallMetadata":
        """
        Raises:
            KeyError: If a required key is missing
            ValueError: If installed_at is not a timestamp
        """
        missing = [key for key in REQUIRED_METADATA_KEYS if not record.get(key)]
        if missing:
            raise KeyError(f"missing keys: {', '.join(missing)}")

        installed_at = datetime.fromisoformat(
            record["installed_at"].replace("Z", "+00:00")
        )
        if installed_at.tzinfo is None:
            installed_at = installed_at.replace(tzinfo=timezone.utc)

        return cls(
            version=record["version"],
            os=record["os"],
            arch=record["arch"],
            installed_at=installed_at,
            install_dir=Path(record["install_dir"]),
        )


@dataclass
class _Entry:
    """One archive member after path normalization."""

    name: str  # relative POSIX path, no '.', '..' or leading '/'
    kind: str  # 'dir', 'file', 'symlink' or 'hardlink'
    mode: int
    size: int
    link_target: str = ""
    source: object = None


def safe_permission_bits(raw: int, is_dir: bool = False, executable: bool = False) -> int:
    """
    Reduce an archive's stored mode to local permission bits.

    The value is first reinterpreted as an unsigned 32-bit quantity and then
    masked to ``0o777``, so negative or oversized header values cannot wrap
    into setuid/sticky bits or anything else.

    Example:
        >>> oct(safe_permission_bits(0o104755))
        '0o755'
        >>> oct(safe_permission_bits(-1))
        '0o777'
    """
    unsigned = int(raw) & 0xFFFFFFFF
    mode = unsigned & 0o777
    if mode == 0:
        mode = 0o755 if is_dir or executable else 0o644
    return mode


def normalize_member_name(name: str) -> str:
    """
    Normalize an archive member name to a relative POSIX path.

    Raises:
        PathTraversalError: If the name is absolute, has a drive letter,
            a NUL byte, or any '..' component
    """
    raw = name.replace("\\", "/")
    if raw.startswith("/") or _DRIVE_PREFIX.match(raw) or "\x00" in raw:
        raise PathTraversalError(name)

    parts = [part for part in raw.split("/") if part not in ("", ".")]
    if ".." in parts:
        raise PathTraversalError(name)
    return "/".join(parts)


def detect_archive_format(archive_path: Path) -> str:
    """
    Identify an archive as 'tar.gz' or 'zip', by content first then name.

    Raises:
        UnsupportedArchiveError: If neither applies
    """
    with open(archive_path, "rb") as f:
        magic = f.read(4)

    if magic[:2] == b"\x1f\x8b":
        return "tar.gz"
    if magic in (b"PK\x03\x04", b"PK\x05\x06"):
        return "zip"

    name = archive_path.name.lower()
    if name.endswith((".tar.gz", ".tgz")):
        return "tar.gz"
    if name.endswith(".zip"):
        return "zip"

    raise UnsupportedArchiveError(
        f"Unsupported archive format: {archive_path.name} "
        "(expected a gzip-compressed tarball or a zip file)"
    )


class SecureInstaller:
    """
    Installs, inspects and removes Go versions under ``versions_dir``.

    Attributes:
        versions_dir: Parent of all per-version directories
        platform: Platform recorded in metadata and used for the exe name
        toolchain_name: Executable expected under bin/ ('go')
        max_file_size: Per-entry decompressed size ceiling in bytes
    """

    def __init__(
        self,
        versions_dir: Path,
        platform: Optional[PlatformInfo] = None,
        toolchain_name: str = "go",
        max_file_size: int = DEFAULT_MAX_FILE_SIZE,
    ):
        self.versions_dir = Path(versions_dir)
        self.platform = platform or detect_platform()
        self.toolchain_name = toolchain_name
        self.max_file_size = max_file_size

    @property
    def executable_name(self) -> str:
        return self.platform.executable_name(self.toolchain_name)

    def version_dir(self, version: str) -> Path:
        return self.versions_dir / normalize_version(version)

    def metadata_path(self, version: str) -> Path:
        return self.version_dir(version) / METADATA_FILENAME

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def is_installed(self, version: str) -> bool:
        """True when the version's metadata file exists."""
        return self.metadata_path(version).is_file()

    def get_metadata(self, version: str) -> InstallMetadata:
        """
        Read a version's metadata record.

        Raises:
            VersionNotInstalledError: If no metadata file exists
            CorruptedInstallError: If the file exists but cannot be parsed
        """
        normalized = normalize_version(version)
        path = self.metadata_path(normalized)
        if not path.is_file():
            raise VersionNotInstalledError(normalized)

        try:
            record = parse_key_value(path.read_text(encoding="utf-8"))
            return InstallMetadata.from_record(record)
        except (OSError, UnicodeDecodeError, KeyValueFormatError, KeyError, ValueError) as e:
            raise CorruptedInstallError(normalized, path, str(e)) from e

    def get_executable_path(self, version: str) -> Path:
        """
        Path to ``bin/go`` (``bin/go.exe`` on Windows) for a version.

        Raises:
            VersionNotInstalledError: If the version is not installed
            CorruptedInstallError: If the executable is missing
        """
        normalized = normalize_version(version)
        if not self.is_installed(normalized):
            raise VersionNotInstalledError(normalized)

        executable = self.version_dir(normalized) / "bin" / self.executable_name
        if not executable.is_file():
            raise CorruptedInstallError(normalized, executable, "executable missing")
        return executable

    def list_installed(self) -> List[str]:
        """Normalized names of installed versions, newest first."""
        if not self.versions_dir.is_dir():
            return []

        found = []
        for child in self.versions_dir.iterdir():
            if child.name.startswith(".") or not child.is_dir():
                continue
            if not (child / METADATA_FILENAME).is_file():
                continue
            try:
                found.append(VersionIdentity.parse(child.name))
            except InvalidVersionError:
                logger.debug(f"Ignoring unrecognized directory {child}")

        found.sort(key=VersionIdentity.sort_key, reverse=True)
        return [identity.normalized() for identity in found]

    # ------------------------------------------------------------------
    # Install / uninstall
    # ------------------------------------------------------------------

    def install(self, version: str, archive_path: Union[str, Path]) -> InstallMetadata:
        """
        Extract an archive as ``version``.

        Raises:
            VersionAlreadyInstalledError: If metadata already exists
            UnsupportedArchiveError: If the file is not tar.gz or zip
            PathTraversalError: If any entry escapes the version directory
            SizeLimitExceededError: If any entry exceeds max_file_size
            InvalidArchiveLayoutError: If there is no single root with bin/go
        """
        normalized = normalize_version(version)
        archive_path = Path(archive_path)
        if not archive_path.is_file():
            raise InstallerError(f"Archive not found: {archive_path}")

        if self.is_installed(normalized):
            raise VersionAlreadyInstalledError(normalized)

        target = self.version_dir(normalized)
        if target.exists() or target.is_symlink():
            logger.warning(f"Removing incomplete installation at {target}")
            safe_rmtree(target, require_prefix=self.versions_dir)

        self.versions_dir.mkdir(parents=True, exist_ok=True)
        staging = Path(
            tempfile.mkdtemp(prefix=f".{normalized}.", suffix=".staging", dir=self.versions_dir)
        )
        target_created = False

        logger.info(f"Installing {normalized} from {archive_path.name}")
        try:
            archive_format = detect_archive_format(archive_path)
            try:
                if archive_format == "zip":
                    root = self._extract_zip(archive_path, staging)
                else:
                    root = self._extract_tar(archive_path, staging)
            except _ARCHIVE_ERRORS as e:
                raise InvalidArchiveLayoutError(
                    f"Archive {archive_path.name} is damaged: {e}"
                ) from e

            extracted_root = staging / root
            if not (extracted_root / "bin" / self.executable_name).is_file():
                raise InvalidArchiveLayoutError(
                    f"Archive has no {root}/bin/{self.executable_name}"
                )

            os.rename(extracted_root, target)
            target_created = True

            metadata = InstallMetadata(
                version=normalized,
                os=self.platform.os,
                arch=self.platform.arch,
                installed_at=datetime.now(timezone.utc),
                install_dir=target,
            )
            atomic_write(target / METADATA_FILENAME, format_key_value(metadata.to_record()))

        except BaseException:
            if target_created:
                self._discard(target)
            raise
        finally:
            self._discard(staging)

        logger.info(f"Installed {normalized} to {target}")
        return metadata

    def uninstall(self, version: str) -> None:
        """
        Remove an installed version.

        Metadata goes first so an interrupted removal never looks installed;
        a directory that is already partly gone is finished off quietly.

        Raises:
            VersionNotInstalledError: If no metadata record exists
        """
        normalized = normalize_version(version)
        if not self.is_installed(normalized):
            raise VersionNotInstalledError(normalized)

        self.metadata_path(normalized).unlink(missing_ok=True)
        safe_rmtree(self.version_dir(normalized), require_prefix=self.versions_dir)
        logger.info(f"Uninstalled {normalized}")

    def _discard(self, path: Path) -> None:
        try:
            safe_rmtree(path, require_prefix=self.versions_dir)
        except (FilesystemError, OSError) as e:
            logger.error(f"Could not clean up {path}: {e}")

    # ------------------------------------------------------------------
    # Validation shared by both formats
    # ------------------------------------------------------------------

    def _validate(self, entries: List[_Entry]) -> str:
        """
        Check every entry before anything is written.

        Returns:
            Name of the single top-level directory
        """
        if not entries:
            raise InvalidArchiveLayoutError("Archive is empty")

        names = {entry.name for entry in entries}
        for entry in entries:
            if entry.kind == "file" and entry.size > self.max_file_size:
                raise SizeLimitExceededError(entry.name, self.max_file_size)
            if entry.kind == "symlink":
                self._check_symlink_target(entry)
            elif entry.kind == "hardlink" and entry.link_target not in names:
                raise PathTraversalError(entry.name)

        roots = {entry.name.split("/", 1)[0] for entry in entries}
        if len(roots) != 1:
            raise InvalidArchiveLayoutError(
                f"Archive must contain a single top-level directory, found {len(roots)}"
            )
        root = roots.pop()

        if any(entry.name == root and entry.kind != "dir" for entry in entries):
            raise InvalidArchiveLayoutError(f"Top-level entry '{root}' is not a directory")

        executable = f"{root}/bin/{self.executable_name}"
        if not any(e.name == executable and e.kind in ("file", "hardlink") for e in entries):
            raise InvalidArchiveLayoutError(f"Archive has no {executable}")

        return root

    @staticmethod
    def _check_symlink_target(entry: _Entry) -> None:
        target = entry.link_target.replace("\\", "/")
        if not target or target.startswith("/") or _DRIVE_PREFIX.match(target):
            raise PathTraversalError(entry.name)

        resolved = posixpath.normpath(posixpath.join(posixpath.dirname(entry.name), target))
        root = entry.name.split("/", 1)[0]
        if resolved == ".." or resolved.startswith("../"):
            raise PathTraversalError(entry.name)
        if resolved != root and not resolved.startswith(root + "/"):
            raise PathTraversalError(entry.name)

    @staticmethod
    def _destination(staging: Path, name: str) -> Path:
        destination = staging / name
        if not is_within(destination, staging):
            raise PathTraversalError(name)
        return destination

    def _copy_bounded(self, source: BinaryIO, destination: Path, name: str) -> None:
        written = 0
        with open(destination, "wb") as out:
            while True:
                chunk = source.read(min(CHUNK_SIZE, self.max_file_size + 1 - written))
                if not chunk:
                    break
                written += len(chunk)
                if written > self.max_file_size:
                    raise SizeLimitExceededError(name, self.max_file_size)
                out.write(chunk)

    def _file_mode(self, entry: _Entry) -> int:
        in_bin = "/bin/" in f"/{entry.name}"
        return safe_permission_bits(entry.mode, executable=in_bin)

    def _make_directory(self, staging: Path, entry: _Entry) -> None:
        destination = self._destination(staging, entry.name)
        destination.mkdir(parents=True, exist_ok=True)
        # Owner keeps rwx so the tree can be populated and later removed
        os.chmod(destination, safe_permission_bits(entry.mode, is_dir=True) | stat.S_IRWXU)

    def _make_symlink(self, staging: Path, entry: _Entry) -> None:
        destination = self._destination(staging, entry.name)
        destination.parent.mkdir(parents=True, exist_ok=True)
        try:
            os.symlink(entry.link_target, destination)
        except OSError as e:
            raise InstallerError(f"Cannot create symlink {entry.name}: {e}") from e

    def _make_hardlink(self, staging: Path, entry: _Entry) -> None:
        source = self._destination(staging, entry.link_target)
        destination = self._destination(staging, entry.name)
        if not source.is_file():
            raise InvalidArchiveLayoutError(
                f"Hard link {entry.name} refers to missing file {entry.link_target}"
            )
        destination.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(source, destination)

    # ------------------------------------------------------------------
    # tar.gz
    # ------------------------------------------------------------------

    def _extract_tar(self, archive_path: Path, staging: Path) -> str:
        with tarfile.open(archive_path, mode="r:gz") as tar:
            entries = []
            for member in tar.getmembers():
                entry = self._tar_entry(member)
                if entry is not None:
                    entries.append(entry)

            root = self._validate(entries)

            for entry in entries:
                if entry.kind == "dir":
                    self._make_directory(staging, entry)
                elif entry.kind == "file":
                    destination = self._destination(staging, entry.name)
                    destination.parent.mkdir(parents=True, exist_ok=True)
                    source = tar.extractfile(entry.source)
                    if source is None:
                        raise InvalidArchiveLayoutError(f"Cannot read {entry.name}")
                    with source:
                        self._copy_bounded(source, destination, entry.name)
                    os.chmod(destination, self._file_mode(entry))
                elif entry.kind == "symlink":
                    self._make_symlink(staging, entry)
                else:
                    self._make_hardlink(staging, entry)

        return root

    @staticmethod
    def _tar_entry(member: tarfile.TarInfo) -> Optional[_Entry]:
        name = normalize_member_name(member.name)
        if not name:
            return None

        if member.isdir():
            return _Entry(name, "dir", member.mode, 0, source=member)
        if member.isfile():
            return _Entry(name, "file", member.mode, member.size, source=member)
        if member.issym():
            return _Entry(name, "symlink", member.mode, 0, link_target=member.linkname)
        if member.islnk():
            return _Entry(
                name, "hardlink", member.mode, 0,
                link_target=normalize_member_name(member.linkname),
            )

        logger.debug(f"Skipping special archive entry: {member.name}")
        return None

    # ------------------------------------------------------------------
    # zip
    # ------------------------------------------------------------------

    def _extract_zip(self, archive_path: Path, staging: Path) -> str:
        with zipfile.ZipFile(archive_path) as zf, open(archive_path, "rb") as raw:
            entries = []
            for info in zf.infolist():
                entry = self._zip_entry(zf, raw, info)
                if entry is not None:
                    entries.append(entry)

            root = self._validate(entries)

            for entry in entries:
                if entry.kind == "dir":
                    self._make_directory(staging, entry)
                elif entry.kind == "symlink":
                    self._make_symlink(staging, entry)
                else:
                    destination = self._destination(staging, entry.name)
                    destination.parent.mkdir(parents=True, exist_ok=True)
                    with open(destination, "wb") as out:
                        self._inflate_zip_member(raw, entry.source, entry.name, out)
                    os.chmod(destination, self._file_mode(entry))

        return root

    def _zip_entry(self, zf: zipfile.ZipFile, raw: BinaryIO, info: zipfile.ZipInfo):
        name = normalize_member_name(info.filename)
        if not name:
            return None

        if info.flag_bits & 0x1:
            raise UnsupportedArchiveError(f"Encrypted zip entries are not supported: {name}")
        if info.compress_type not in (zipfile.ZIP_STORED, zipfile.ZIP_DEFLATED):
            raise UnsupportedArchiveError(
                f"Unsupported zip compression method {info.compress_type} for {name}"
            )

        unix_mode = (info.external_attr >> 16) & 0xFFFF
        if info.is_dir():
            return _Entry(name, "dir", unix_mode, 0, source=info)

        if stat.S_ISLNK(unix_mode):
            if info.file_size > MAX_LINK_TARGET:
                raise SizeLimitExceededError(name, MAX_LINK_TARGET)
            buffer = _BoundedBuffer(MAX_LINK_TARGET, name)
            self._inflate_zip_member(raw, info, name, buffer)
            return _Entry(
                name, "symlink", unix_mode, 0,
                link_target=buffer.getvalue().decode("utf-8"),
            )

        return _Entry(name, "file", unix_mode, info.file_size, source=info)

    def _inflate_zip_member(self, raw: BinaryIO, info: zipfile.ZipInfo, name: str, out) -> None:
        """
        Inflate one zip member from the raw archive bytes.

        The declared ``file_size`` is never used as a bound: output is
        counted as it is produced and capped at ``max_file_size``.
        """
        raw.seek(info.header_offset)
        header = raw.read(_LOCAL_HEADER.size)
        if len(header) != _LOCAL_HEADER.size or header[:4] != _LOCAL_HEADER_SIGNATURE:
            raise InvalidArchiveLayoutError(f"Bad local header for {name}")
        fields = _LOCAL_HEADER.unpack(header)
        raw.seek(info.header_offset + _LOCAL_HEADER.size + fields[10] + fields[11])

        decompressor = (
            zlib.decompressobj(-zlib.MAX_WBITS)
            if info.compress_type == zipfile.ZIP_DEFLATED
            else None
        )
        limit = self.max_file_size
        written = 0
        crc = 0

        def emit(data: bytes) -> None:
            nonlocal written, crc
            if not data:
                return
            written += len(data)
            if written > limit:
                raise SizeLimitExceededError(name, limit)
            crc = zlib.crc32(data, crc)
            out.write(data)

        remaining = info.compress_size
        while remaining > 0:
            chunk = raw.read(min(CHUNK_SIZE, remaining))
            if not chunk:
                raise InvalidArchiveLayoutError(f"Truncated data for {name}")
            remaining -= len(chunk)

            if decompressor is None:
                emit(chunk)
                continue

            pending = chunk
            while pending:
                emit(decompressor.decompress(pending, CHUNK_SIZE))
                pending = decompressor.unconsumed_tail

        if decompressor is not None:
            emit(decompressor.flush())
            if not decompressor.eof:
                raise InvalidArchiveLayoutError(f"Truncated deflate stream for {name}")

        if written != info.file_size or (crc & 0xFFFFFFFF) != info.CRC:
            raise InvalidArchiveLayoutError(f"Checksum mismatch in zip member {name}")


class _BoundedBuffer:
    """In-memory sink with a hard size cap (for zip symlink targets)."""

    def __init__(self, limit: int, name: str):
        self._parts: List[bytes] = []
        self._size = 0
        self._limit = limit
        self._name = name

    def write(self, data: bytes) -> None:
        self._size += len(data)
        if self._size > self._limit:
            raise SizeLimitExceededError(self._name, self._limit)
        self._parts.append(data)

    def getvalue(self) -> bytes:
        return b"".join(self._parts)
