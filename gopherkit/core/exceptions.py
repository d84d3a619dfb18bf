"""
Centralized exception hierarchy for GopherKit.

Every error raised by the library derives from GopherKitError and carries a
stable ``code`` plus a ``retryable`` flag. Only network-class errors are
retryable, and the library itself never retries: backoff is the caller's
decision.
"""

from pathlib import Path
from typing import Optional, Union


# ============================================================================
# Base Exceptions
# ============================================================================


class GopherKitError(Exception):
    """Base exception for all GopherKit errors."""

    code = "GOPHERKIT_ERROR"
    retryable = False

    def __init__(self, message: str, hint: Optional[str] = None):
        self.hint = hint
        super().__init__(message)


class ConfigError(GopherKitError):
    """Raised when configuration is invalid."""

    code = "CONFIG_ERROR"


class LockTimeoutError(GopherKitError):
    """Raised when an advisory file lock cannot be acquired in time."""

    code = "LOCK_TIMEOUT"

    def __init__(self, resource: str, timeout: float):
        self.resource = resource
        self.timeout = timeout
        super().__init__(
            f"Could not acquire {resource} lock after {timeout}s. "
            "Another gopherkit process may be running."
        )


class OperationCancelledError(GopherKitError):
    """Raised when the user declines a confirmation prompt."""

    code = "OPERATION_CANCELLED"


# ============================================================================
# Input Validation
# ============================================================================


class InvalidFormatError(GopherKitError):
    """Base exception for malformed user input."""

    code = "INVALID_FORMAT"


class InvalidVersionError(InvalidFormatError):
    """Raised when a version string cannot be parsed."""

    code = "INVALID_VERSION"

    def __init__(self, version: str, reason: str = ""):
        self.version = version
        msg = f"Invalid version format: '{version}'"
        if reason:
            msg += f" ({reason})"
        super().__init__(msg)


class InvalidAliasNameError(InvalidFormatError):
    """Raised when an alias name fails validation."""

    code = "INVALID_ALIAS_NAME"

    def __init__(self, name: str, reason: str):
        self.name = name
        super().__init__(f"Invalid alias name '{name}': {reason}")


# ============================================================================
# Lookup Errors
# ============================================================================


class NotFoundError(GopherKitError):
    """Base exception when a version or alias is absent."""

    code = "NOT_FOUND"


class VersionNotInstalledError(NotFoundError):
    """Raised when an operation needs an installed version that is missing."""

    code = "VERSION_NOT_INSTALLED"

    def __init__(self, version: str):
        self.version = version
        super().__init__(
            f"Go version {version} is not installed",
            hint=f"Run 'gopherkit install {version}' first",
        )


class AliasNotFoundError(NotFoundError):
    """Raised when an alias does not exist."""

    code = "ALIAS_NOT_FOUND"

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Alias '{name}' not found")


class SystemToolchainNotFoundError(NotFoundError):
    """Raised when no pre-existing Go installation can be found."""

    code = "SYSTEM_GO_NOT_AVAILABLE"

    def __init__(self):
        super().__init__(
            "No system Go installation found",
            hint="Install Go with your OS package manager or set GOROOT",
        )


# ============================================================================
# Conflicts
# ============================================================================


class VersionAlreadyInstalledError(GopherKitError):
    """Raised when installing a version that is already installed."""

    code = "VERSION_ALREADY_INSTALLED"

    def __init__(self, version: str):
        self.version = version
        super().__init__(f"Go version {version} is already installed")


class AliasAlreadyExistsError(GopherKitError):
    """Raised when creating an alias that exists under a no-override policy."""

    code = "ALIAS_ALREADY_EXISTS"

    def __init__(self, name: str, current_version: str):
        self.name = name
        self.current_version = current_version
        super().__init__(
            f"Alias '{name}' already exists (points to {current_version})",
            hint="Use --force to overwrite it",
        )


class AliasStoreError(GopherKitError):
    """Raised when the aliases file exists but cannot be parsed."""

    code = "ALIAS_STORE_CORRUPTED"

    def __init__(self, path: Union[str, Path], reason: str):
        self.path = Path(path)
        super().__init__(f"Aliases file {path} is corrupted: {reason}")


# ============================================================================
# Resolver / Network
# ============================================================================


class ResolverError(GopherKitError):
    """Base exception when the release listing cannot satisfy a request."""

    code = "RESOLVER_ERROR"

    def __init__(self, message: str, url: str, filename: str = ""):
        self.url = url
        self.filename = filename
        super().__init__(message)


class ArtifactNotFoundError(ResolverError):
    """Raised when no release file matches the version and platform."""

    code = "ARTIFACT_NOT_FOUND"

    def __init__(self, url: str, filename: str = ""):
        target = filename or "requested release"
        super().__init__(f"{target} not found at {url}", url, filename)


class MalformedListingError(ResolverError):
    """Raised when a listing row exists but size or hash cannot be parsed."""

    code = "MALFORMED_LISTING"

    def __init__(self, url: str, filename: str = "", reason: str = ""):
        msg = f"Malformed release listing at {url}"
        if filename:
            msg += f" for {filename}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg, url, filename)


class NetworkError(GopherKitError):
    """Base exception for transient network failures."""

    code = "NETWORK_ERROR"
    retryable = True

    def __init__(self, message: str, url: str):
        self.url = url
        super().__init__(message, hint="Check your connection and try again")


class NetworkUnavailableError(NetworkError):
    """Raised when the mirror cannot be reached."""

    code = "NETWORK_UNAVAILABLE"

    def __init__(self, url: str, reason: str = ""):
        msg = f"Network unavailable for {url}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg, url)


class NetworkTimeoutError(NetworkError):
    """Raised when a request exceeds its timeout."""

    code = "TIMEOUT_EXCEEDED"

    def __init__(self, url: str, timeout: float):
        self.timeout = timeout
        super().__init__(f"Request to {url} timed out after {timeout}s", url)


class ChecksumMismatchError(GopherKitError):
    """Raised when downloaded bytes do not match the expected hash."""

    code = "CHECKSUM_MISMATCH"

    def __init__(self, path: Union[str, Path], expected: str, actual: str):
        self.path = Path(path)
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Checksum mismatch for {self.path.name}: "
            f"expected {expected}, got {actual}"
        )


# ============================================================================
# Installer Exceptions
# ============================================================================


class InstallerError(GopherKitError):
    """Base exception for archive extraction refusals."""

    code = "INSTALLER_ERROR"


class UnsupportedArchiveError(InstallerError):
    """Raised when an archive is neither gzip tar nor zip."""

    code = "UNSUPPORTED_ARCHIVE"


class InvalidArchiveLayoutError(InstallerError):
    """Raised when an archive lacks a single root with bin/go."""

    code = "INVALID_ARCHIVE_LAYOUT"


class PathTraversalError(InstallerError):
    """Raised when an archive entry would land outside the target directory."""

    code = "PATH_TRAVERSAL_REJECTED"

    def __init__(self, member: str):
        self.member = member
        super().__init__(
            f"Archive member '{member}' attempts directory traversal; "
            "extraction has been blocked"
        )


class SizeLimitExceededError(InstallerError):
    """Raised when an archive entry decompresses past the per-file ceiling."""

    code = "SIZE_LIMIT_EXCEEDED"

    def __init__(self, member: str, limit: int):
        self.member = member
        self.limit = limit
        super().__init__(
            f"Archive member '{member}' exceeds the size limit of {limit} bytes"
        )


class CorruptedInstallError(GopherKitError):
    """Raised when an install's metadata or executable is damaged."""

    code = "CORRUPTED_INSTALL"

    def __init__(self, version: str, path: Union[str, Path], reason: str = ""):
        self.version = version
        self.path = Path(path)
        msg = f"Installation of {version} is corrupted ({path})"
        if reason:
            msg += f": {reason}"
        super().__init__(
            msg,
            hint=f"Run 'gopherkit uninstall {version}' and install it again",
        )


# ============================================================================
# Filesystem Exceptions
# ============================================================================


class FilesystemError(GopherKitError):
    """Raised when a filesystem operation fails."""

    code = "FILESYSTEM_ERROR"


class PermissionDeniedError(FilesystemError):
    """Raised when the OS blocks a link or filesystem operation."""

    code = "PERMISSION_DENIED"

    def __init__(self, path: Union[str, Path], hint: Optional[str] = None):
        self.path = Path(path)
        super().__init__(f"Permission denied: {path}", hint=hint)
