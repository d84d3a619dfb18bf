"""
Tests for the exception hierarchy: codes, retryability and hints.
"""

import pytest

from gopherkit.core.exceptions import (
    AliasAlreadyExistsError,
    AliasNotFoundError,
    ArtifactNotFoundError,
    ChecksumMismatchError,
    CorruptedInstallError,
    GopherKitError,
    InvalidAliasNameError,
    InvalidFormatError,
    InvalidVersionError,
    LockTimeoutError,
    NetworkTimeoutError,
    NetworkUnavailableError,
    NotFoundError,
    PathTraversalError,
    SizeLimitExceededError,
    SystemToolchainNotFoundError,
    VersionAlreadyInstalledError,
    VersionNotInstalledError,
)


class TestCodes:
    """Test stable error codes."""

    @pytest.mark.parametrize(
        "error,code",
        [
            (InvalidVersionError("x"), "INVALID_VERSION"),
            (InvalidAliasNameError("x", "bad"), "INVALID_ALIAS_NAME"),
            (VersionNotInstalledError("go1.21.0"), "VERSION_NOT_INSTALLED"),
            (VersionAlreadyInstalledError("go1.21.0"), "VERSION_ALREADY_INSTALLED"),
            (AliasNotFoundError("stable"), "ALIAS_NOT_FOUND"),
            (AliasAlreadyExistsError("stable", "go1.21.0"), "ALIAS_ALREADY_EXISTS"),
            (SystemToolchainNotFoundError(), "SYSTEM_GO_NOT_AVAILABLE"),
            (ArtifactNotFoundError("https://x/"), "ARTIFACT_NOT_FOUND"),
            (ChecksumMismatchError("f", "a" * 64, "b" * 64), "CHECKSUM_MISMATCH"),
            (PathTraversalError("../x"), "PATH_TRAVERSAL_REJECTED"),
            (SizeLimitExceededError("big", 10), "SIZE_LIMIT_EXCEEDED"),
            (CorruptedInstallError("go1.21.0", "/x"), "CORRUPTED_INSTALL"),
            (LockTimeoutError("aliases", 30), "LOCK_TIMEOUT"),
        ],
    )
    def test_code(self, error, code):
        """Test each error carries its code and is a GopherKitError."""
        assert error.code == code
        assert isinstance(error, GopherKitError)


class TestRetryable:
    """Test only network errors are retryable."""

    def test_network_errors_retryable(self):
        """Test timeouts and unavailability are retryable."""
        assert NetworkTimeoutError("https://x/", 30).retryable
        assert NetworkUnavailableError("https://x/", "HTTP 503").retryable

    def test_other_errors_not_retryable(self):
        """Test everything else is final."""
        assert not ChecksumMismatchError("f", "a" * 64, "b" * 64).retryable
        assert not ArtifactNotFoundError("https://x/").retryable
        assert not InvalidVersionError("x").retryable


class TestHierarchy:
    """Test grouping base classes."""

    def test_groups(self):
        """Test errors sit under their category."""
        assert isinstance(InvalidVersionError("x"), InvalidFormatError)
        assert isinstance(AliasNotFoundError("a"), NotFoundError)
        assert isinstance(VersionNotInstalledError("go1.21.0"), NotFoundError)

    def test_message_mentions_subject(self):
        """Test messages name the thing that failed."""
        assert "go1.21.0" in str(VersionNotInstalledError("go1.21.0"))
        assert "stable" in str(AliasNotFoundError("stable"))

    def test_hint(self):
        """Test hints are carried separately from the message."""
        error = GopherKitError("boom", hint="try again")
        assert str(error) == "boom"
        assert error.hint == "try again"
