"""
Unit tests for platform detection.
"""

from unittest.mock import patch

import pytest

from gopherkit.core.platform import (
    PlatformInfo,
    arch_matches,
    arch_spellings,
    canonical_arch,
    clear_platform_cache,
    detect_platform,
    resolve_platform,
)


@pytest.fixture(autouse=True)
def fresh_cache():
    clear_platform_cache()
    yield
    clear_platform_cache()


class TestArchNames:
    """Test architecture spelling equivalence."""

    @pytest.mark.parametrize(
        "spelling,expected",
        [("x86_64", "amd64"), ("AMD64", "amd64"), ("aarch64", "arm64"), ("i686", "386"), ("riscv64", "riscv64")],
    )
    def test_canonical_arch(self, spelling, expected):
        """Test spellings map to Go names."""
        assert canonical_arch(spelling) == expected

    def test_arch_matches(self):
        """Test synonyms compare equal."""
        assert arch_matches("x86_64", "amd64")
        assert not arch_matches("arm64", "amd64")

    def test_arch_spellings_go_name_first(self):
        """Test Go's own spelling is tried first."""
        assert arch_spellings("x86_64")[0] == "amd64"
        assert arch_spellings("s390x") == ("s390x",)


class TestPlatformInfo:
    """Test PlatformInfo helpers."""

    def test_parse(self):
        """Test os/arch strings are normalized."""
        assert PlatformInfo.parse("Linux/x86_64") == PlatformInfo("linux", "amd64")
        assert PlatformInfo.parse("macos-aarch64") == PlatformInfo("darwin", "arm64")

    def test_parse_invalid(self):
        """Test a string without a separator is rejected."""
        with pytest.raises(ValueError):
            PlatformInfo.parse("linux")

    def test_windows_specifics(self):
        """Test Windows archives and executables."""
        windows = PlatformInfo("windows", "amd64")
        assert windows.is_windows
        assert windows.archive_extension() == ".zip"
        assert windows.executable_name() == "go.exe"

    def test_unix_specifics(self):
        """Test Unix archives and executables."""
        linux = PlatformInfo("linux", "arm64")
        assert linux.archive_extension() == ".tar.gz"
        assert linux.executable_name("gofmt") == "gofmt"
        assert str(linux) == "linux/arm64"


class TestDetect:
    """Test host detection."""

    def test_detect_linux(self):
        """Test detection maps platform module output."""
        with patch("platform.system", return_value="Linux"), patch(
            "platform.machine", return_value="x86_64"
        ):
            assert detect_platform() == PlatformInfo("linux", "amd64")

    def test_detect_unsupported(self):
        """Test unknown operating systems are rejected."""
        with patch("platform.system", return_value="Plan9"):
            with pytest.raises(RuntimeError):
                detect_platform()

    def test_cached(self):
        """Test detection runs once."""
        with patch("platform.system", return_value="Darwin") as system, patch(
            "platform.machine", return_value="arm64"
        ):
            detect_platform()
            detect_platform()
        assert system.call_count == 1

    def test_resolve_platform_override(self):
        """Test an explicit override skips detection."""
        assert resolve_platform("windows/386") == PlatformInfo("windows", "386")
