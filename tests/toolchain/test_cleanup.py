"""
Tests for gopherkit.toolchain.cleanup module.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from gopherkit.core.exceptions import FilesystemError
from gopherkit.core.keyvalue import format_key_value
from gopherkit.core.platform import PlatformInfo
from gopherkit.toolchain.cleanup import CleanupResult, VersionCleanupManager, directory_size
from gopherkit.toolchain.installer import METADATA_FILENAME, InstallMetadata, SecureInstaller

BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)


def fake_install(versions_dir, version, days):
    """Lay out an installed version whose metadata says it arrived on day ``days``."""
    root = versions_dir / version
    (root / "bin").mkdir(parents=True)
    (root / "bin" / "go").write_bytes(b"x" * 100)
    metadata = InstallMetadata(
        version=version,
        os="linux",
        arch="amd64",
        installed_at=BASE_TIME + timedelta(days=days),
        install_dir=root,
    )
    (root / METADATA_FILENAME).write_text(format_key_value(metadata.to_record()))
    return root


@pytest.fixture
def installer(gk_home):
    versions_dir = gk_home / "versions"
    # Install order deliberately differs from version order
    fake_install(versions_dir, "go1.22.0", 0)
    fake_install(versions_dir, "go1.20.5", 1)
    fake_install(versions_dir, "go1.21.0", 2)
    fake_install(versions_dir, "go1.21.1", 3)
    return SecureInstaller(versions_dir, platform=PlatformInfo("linux", "amd64"))


class TestPlan:
    """Test which versions are chosen for removal."""

    def test_oldest_installs_first(self, installer):
        """Test victims are ranked by install time, not version."""
        manager = VersionCleanupManager(installer, lambda: None)

        assert manager.plan(2) == ["go1.22.0", "go1.20.5"]

    def test_protected_versions_survive(self, installer):
        """Test protected versions are passed over for the next oldest."""
        manager = VersionCleanupManager(installer, lambda: "go1.20.5")
        result = CleanupResult()

        victims = manager.plan(2, result, protected=["go1.22.0"])

        assert victims == ["go1.21.0", "go1.21.1"]
        assert result.skipped == ["go1.22.0", "go1.20.5"]

    def test_nothing_to_do(self, installer):
        """Test no victims when within the limit."""
        manager = VersionCleanupManager(installer, lambda: None)

        assert manager.plan(4) == []
        assert manager.plan(10) == []

    def test_active_version_protected(self, installer):
        """Test the active version is skipped and the next oldest taken."""
        manager = VersionCleanupManager(installer, lambda: "go1.22.0")
        result = CleanupResult()

        assert manager.plan(2, result) == ["go1.20.5", "go1.21.0"]
        assert result.skipped == ["go1.22.0"]

    def test_corrupted_metadata_skipped(self, installer):
        """Test versions with unreadable metadata are left alone."""
        installer.metadata_path("go1.22.0").write_text("garbage without equals\n")
        manager = VersionCleanupManager(installer, lambda: None)
        result = CleanupResult()

        victims = manager.plan(3, result)

        assert victims == ["go1.20.5"]
        assert "go1.22.0" in result.skipped
        assert result.errors

    def test_rejects_zero(self, installer):
        """Test max_versions must be positive."""
        with pytest.raises(ValueError):
            VersionCleanupManager(installer, lambda: None).plan(0)


class TestCleanup:
    """Test removal."""

    def test_removes_oldest(self, installer):
        """Test excess versions are uninstalled."""
        result = VersionCleanupManager(installer, lambda: None).cleanup(2)

        assert result.removed == ["go1.22.0", "go1.20.5"]
        assert installer.list_installed() == ["go1.21.1", "go1.21.0"]
        assert result.space_reclaimed > 0
        assert not result.partial_failure

    def test_dry_run_changes_nothing(self, installer):
        """Test dry runs report without removing."""
        result = VersionCleanupManager(installer, lambda: None).cleanup(2, dry_run=True)

        assert result.removed == ["go1.22.0", "go1.20.5"]
        assert len(installer.list_installed()) == 4

    def test_failure_does_not_stop_the_rest(self, installer):
        """Test one failed removal is recorded and the rest continue."""
        real_uninstall = installer.uninstall

        def flaky(version):
            if version == "go1.22.0":
                raise FilesystemError("device busy")
            real_uninstall(version)

        with patch.object(installer, "uninstall", side_effect=flaky):
            result = VersionCleanupManager(installer, lambda: None).cleanup(2)

        assert result.failed == ["go1.22.0"]
        assert result.removed == ["go1.20.5"]
        assert result.partial_failure
        assert "device busy" in result.errors[0]


def test_directory_size(tmp_path):
    """Test sizes sum regular files recursively."""
    (tmp_path / "a").write_bytes(b"1234")
    (tmp_path / "sub").mkdir()
    (tmp_path / "sub" / "b").write_bytes(b"123456")

    assert directory_size(tmp_path) == 10
