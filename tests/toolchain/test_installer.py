"""
Tests for SecureInstaller: extraction, layout checks and hostile archives.
"""

import os
import stat
import sys

import pytest

from tests.fixtures.archives import go_tree
from gopherkit.core.exceptions import (
    CorruptedInstallError,
    InvalidArchiveLayoutError,
    PathTraversalError,
    SizeLimitExceededError,
    UnsupportedArchiveError,
    VersionAlreadyInstalledError,
    VersionNotInstalledError,
)
from gopherkit.toolchain.installer import (
    METADATA_FILENAME,
    SecureInstaller,
    detect_archive_format,
    normalize_member_name,
    safe_permission_bits,
)

posix_only = pytest.mark.skipif(sys.platform == "win32", reason="POSIX permissions and symlinks")


@pytest.fixture
def versions_dir(gk_home):
    return gk_home / "versions"


@pytest.fixture
def installer(versions_dir, linux_amd64):
    return SecureInstaller(versions_dir, platform=linux_amd64)


def leftovers(versions_dir):
    if not versions_dir.exists():
        return []
    return sorted(p.name for p in versions_dir.iterdir())


class TestHelpers:
    """Test module-level helpers."""

    @pytest.mark.parametrize(
        "raw,expected",
        [
            (0o755, 0o755),
            (0o104755, 0o755),
            (0o4777, 0o777),
            (-1, 0o777),
            (2**40 + 0o644, 0o644),
        ],
    )
    def test_safe_permission_bits_masks(self, raw, expected):
        """Test special bits and oversized values are masked off."""
        assert safe_permission_bits(raw) == expected

    def test_safe_permission_bits_defaults(self):
        """Test zero modes fall back to sensible defaults."""
        assert safe_permission_bits(0) == 0o644
        assert safe_permission_bits(0, is_dir=True) == 0o755
        assert safe_permission_bits(0, executable=True) == 0o755

    @pytest.mark.parametrize("name", ["/etc/passwd", "go/../../x", "C:/Windows/x", "..\\x", "go/\x00"])
    def test_normalize_member_name_rejects(self, name):
        """Test absolute, drive-letter, NUL and parent paths are rejected."""
        with pytest.raises(PathTraversalError):
            normalize_member_name(name)

    def test_normalize_member_name_cleans(self):
        """Test redundant separators and dots are dropped."""
        assert normalize_member_name("./go//bin/./go") == "go/bin/go"
        assert normalize_member_name("go\\bin\\go.exe") == "go/bin/go.exe"

    def test_detect_archive_format(self, make_tarball, make_zipball, tmp_path):
        """Test formats are detected from content."""
        assert detect_archive_format(make_tarball()) == "tar.gz"
        assert detect_archive_format(make_zipball()) == "zip"

        bogus = tmp_path / "go.rar"
        bogus.write_bytes(b"Rar!\x1a\x07")
        with pytest.raises(UnsupportedArchiveError):
            detect_archive_format(bogus)


class TestInstall:
    """Test successful installs."""

    def test_install_tarball(self, installer, make_tarball, versions_dir):
        """Test a tarball installs under versions/<version> with metadata."""
        metadata = installer.install("1.21.0", make_tarball())

        target = versions_dir / "go1.21.0"
        assert (target / "bin" / "go").is_file()
        assert (target / "src" / "fmt.go").read_bytes() == b"package fmt\n"
        assert (target / METADATA_FILENAME).is_file()
        assert metadata.version == "go1.21.0"
        assert (metadata.os, metadata.arch) == ("linux", "amd64")
        assert metadata.install_dir == target
        assert installer.is_installed("go1.21.0")
        assert leftovers(versions_dir) == ["go1.21.0"]

    def test_install_zip(self, installer, make_zipball, versions_dir):
        """Test a zip archive installs the same way."""
        installer.install("go1.21.0", make_zipball())

        assert (versions_dir / "go1.21.0" / "VERSION").read_text() == "go1.21.0\n"

    def test_install_windows_executable(self, versions_dir, windows_amd64, make_zipball):
        """Test Windows installs expect go.exe."""
        installer = SecureInstaller(versions_dir, platform=windows_amd64)
        installer.install("1.21.0", make_zipball(go_tree(exe="go.exe")))

        assert installer.get_executable_path("1.21.0").name == "go.exe"

    def test_metadata_round_trip(self, installer, make_tarball):
        """Test installed metadata reads back."""
        written = installer.install("1.21.0", make_tarball())

        read = installer.get_metadata("go1.21.0")

        assert read == written
        assert read.installed_at.tzinfo is not None

    @posix_only
    def test_executable_permissions(self, installer, make_tarball, versions_dir):
        """Test the go binary keeps its execute bits."""
        installer.install("1.21.0", make_tarball())

        mode = stat.S_IMODE(os.stat(versions_dir / "go1.21.0" / "bin" / "go").st_mode)
        assert mode == 0o755

    @posix_only
    def test_setuid_bits_stripped(self, installer, make_tarball, versions_dir):
        """Test setuid and sticky bits never reach the disk."""
        entries = go_tree()
        entries[2] = ("go/bin/go", b"#!/bin/sh\n", "file", 0o4755, "")
        installer.install("1.21.0", make_tarball(entries))

        mode = os.stat(versions_dir / "go1.21.0" / "bin" / "go").st_mode
        assert not mode & (stat.S_ISUID | stat.S_ISGID | stat.S_ISVTX)

    @posix_only
    def test_internal_symlink_allowed(self, installer, make_tarball, versions_dir):
        """Test symlinks that stay inside the tree are created."""
        entries = go_tree() + [("go/bin/gofmt", None, "symlink", 0o777, "go")]
        installer.install("1.21.0", make_tarball(entries))

        link = versions_dir / "go1.21.0" / "bin" / "gofmt"
        assert link.is_symlink()
        assert os.readlink(link) == "go"

    def test_hardlink_copied(self, installer, make_tarball, versions_dir):
        """Test hard links inside the archive become copies."""
        entries = go_tree() + [("go/bin/go2", None, "hardlink", 0o755, "go/bin/go")]
        installer.install("1.21.0", make_tarball(entries))

        copied = versions_dir / "go1.21.0" / "bin" / "go2"
        assert copied.read_bytes() == (versions_dir / "go1.21.0" / "bin" / "go").read_bytes()

    def test_replaces_incomplete_directory(self, installer, make_tarball, versions_dir):
        """Test a leftover directory without metadata is replaced."""
        stale = versions_dir / "go1.21.0"
        stale.mkdir(parents=True)
        (stale / "junk").write_text("x")

        installer.install("1.21.0", make_tarball())

        assert not (stale / "junk").exists()
        assert installer.is_installed("1.21.0")

    def test_already_installed(self, installer, make_tarball):
        """Test a second install of the same version is refused."""
        installer.install("1.21.0", make_tarball())

        with pytest.raises(VersionAlreadyInstalledError):
            installer.install("go1.21.0", make_tarball())


class TestHostileArchives:
    """Test archives that must be rejected without side effects."""

    def test_path_traversal(self, installer, traversal_tarball, versions_dir, tmp_path):
        """Test '..' entries are rejected before anything is written."""
        with pytest.raises(PathTraversalError):
            installer.install("1.21.0", traversal_tarball)

        assert not (tmp_path / "evil.txt").exists()
        assert not (versions_dir.parent / "evil.txt").exists()
        assert leftovers(versions_dir) == []
        assert not installer.is_installed("1.21.0")

    def test_absolute_member(self, installer, make_tarball, versions_dir):
        """Test absolute member names are rejected."""
        entries = go_tree() + [("/tmp/gopherkit-abs.txt", b"x", "file", 0o644, "")]

        with pytest.raises(PathTraversalError):
            installer.install("1.21.0", make_tarball(entries))
        assert leftovers(versions_dir) == []

    def test_symlink_escape(self, installer, make_tarball, versions_dir):
        """Test symlinks pointing outside the tree are rejected."""
        entries = go_tree() + [("go/bin/link", None, "symlink", 0o777, "../../../etc/passwd")]

        with pytest.raises(PathTraversalError):
            installer.install("1.21.0", make_tarball(entries))
        assert leftovers(versions_dir) == []

    def test_absolute_symlink(self, installer, make_tarball):
        """Test absolute symlink targets are rejected."""
        entries = go_tree() + [("go/bin/link", None, "symlink", 0o777, "/usr/bin/go")]

        with pytest.raises(PathTraversalError):
            installer.install("1.21.0", make_tarball(entries))

    def test_hardlink_to_unknown_member(self, installer, make_tarball):
        """Test hard links must refer to another archive member."""
        entries = go_tree() + [("go/bin/go2", None, "hardlink", 0o755, "go/etc/shadow")]

        with pytest.raises(PathTraversalError):
            installer.install("1.21.0", make_tarball(entries))

    def test_zip_lying_about_size_hits_cap(self, versions_dir, linux_amd64, lying_zip):
        """Test inflation is capped regardless of the declared size."""
        installer = SecureInstaller(versions_dir, platform=linux_amd64, max_file_size=4096)

        with pytest.raises(SizeLimitExceededError):
            installer.install("1.21.0", lying_zip)
        assert leftovers(versions_dir) == []

    def test_zip_lying_about_size_detected(self, installer, lying_zip, versions_dir):
        """Test a size mismatch under the cap is still rejected."""
        with pytest.raises(InvalidArchiveLayoutError):
            installer.install("1.21.0", lying_zip)
        assert leftovers(versions_dir) == []

    def test_declared_size_over_limit(self, versions_dir, linux_amd64, make_tarball):
        """Test entries declaring more than the limit fail validation."""
        installer = SecureInstaller(versions_dir, platform=linux_amd64, max_file_size=8)

        with pytest.raises(SizeLimitExceededError):
            installer.install("1.21.0", make_tarball())

    def test_multiple_roots(self, installer, make_tarball, versions_dir):
        """Test archives must have one top-level directory."""
        entries = go_tree() + [("other/readme", b"x", "file", 0o644, "")]

        with pytest.raises(InvalidArchiveLayoutError):
            installer.install("1.21.0", make_tarball(entries))
        assert leftovers(versions_dir) == []

    def test_missing_executable(self, installer, make_tarball):
        """Test archives without bin/go are rejected."""
        entries = [entry for entry in go_tree() if entry[0] != "go/bin/go"]

        with pytest.raises(InvalidArchiveLayoutError):
            installer.install("1.21.0", make_tarball(entries))

    def test_empty_archive(self, installer, make_tarball):
        """Test an empty archive is rejected."""
        with pytest.raises(InvalidArchiveLayoutError):
            installer.install("1.21.0", make_tarball([]))

    def test_damaged_gzip(self, installer, tmp_path, versions_dir):
        """Test corrupt archive data maps to InvalidArchiveLayoutError."""
        damaged = tmp_path / "go1.21.0.linux-amd64.tar.gz"
        damaged.write_bytes(b"\x1f\x8b\x08\x00" + b"\xff" * 64)

        with pytest.raises(InvalidArchiveLayoutError):
            installer.install("1.21.0", damaged)
        assert leftovers(versions_dir) == []


class TestQueriesAndUninstall:
    """Test inspection and removal of installed versions."""

    def test_list_installed_newest_first(self, installer, make_tarball, versions_dir):
        """Test only versions with metadata are listed, newest first."""
        installer.install("1.20.5", make_tarball(name="a.tar.gz"))
        installer.install("1.21.0", make_tarball(name="b.tar.gz"))
        (versions_dir / "go1.22.0").mkdir()
        (versions_dir / "not-a-version").mkdir()

        assert installer.list_installed() == ["go1.21.0", "go1.20.5"]

    def test_list_installed_without_directory(self, installer):
        """Test a missing versions directory lists nothing."""
        assert installer.list_installed() == []

    def test_get_executable_path(self, installer, make_tarball, versions_dir):
        """Test the executable path for an installed version."""
        installer.install("1.21.0", make_tarball())

        assert installer.get_executable_path("1.21.0") == versions_dir / "go1.21.0" / "bin" / "go"

    def test_get_executable_path_not_installed(self, installer):
        """Test querying a missing version raises."""
        with pytest.raises(VersionNotInstalledError):
            installer.get_executable_path("1.21.0")

    def test_missing_executable_is_corruption(self, installer, make_tarball, versions_dir):
        """Test a deleted bin/go is reported as corruption."""
        installer.install("1.21.0", make_tarball())
        (versions_dir / "go1.21.0" / "bin" / "go").unlink()

        with pytest.raises(CorruptedInstallError):
            installer.get_executable_path("1.21.0")

    def test_corrupted_metadata(self, installer, make_tarball):
        """Test unreadable metadata raises CorruptedInstallError."""
        installer.install("1.21.0", make_tarball())
        installer.metadata_path("1.21.0").write_text("version=go1.21.0\n")

        with pytest.raises(CorruptedInstallError):
            installer.get_metadata("1.21.0")

    def test_uninstall(self, installer, make_tarball, versions_dir):
        """Test uninstall removes the whole version directory."""
        installer.install("1.21.0", make_tarball())

        installer.uninstall("go1.21.0")

        assert not (versions_dir / "go1.21.0").exists()
        assert not installer.is_installed("1.21.0")

    def test_reinstall_matches_fresh_install(self, installer, make_tarball, versions_dir):
        """Test install, uninstall, install leaves the same tree and metadata."""
        archive = make_tarball()
        target = versions_dir / "go1.21.0"

        def snapshot():
            return {
                p.relative_to(target).as_posix(): p.read_bytes()
                for p in target.rglob("*")
                if p.is_file() and p.name != METADATA_FILENAME
            }

        first = installer.install("1.21.0", archive)
        fresh_tree = snapshot()
        installer.uninstall("go1.21.0")
        second = installer.install("1.21.0", archive)

        assert snapshot() == fresh_tree
        assert (second.version, second.os, second.arch) == (first.version, first.os, first.arch)
        assert second.install_dir == first.install_dir
        assert second.installed_at >= first.installed_at
        assert installer.get_metadata("go1.21.0") == second
        assert leftovers(versions_dir) == ["go1.21.0"]

    def test_uninstall_not_installed(self, installer):
        """Test uninstalling a missing version raises."""
        with pytest.raises(VersionNotInstalledError):
            installer.uninstall("1.21.0")
