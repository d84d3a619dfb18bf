"""
Pytest configuration and shared fixtures for GopherKit tests.
"""

from pathlib import Path

import pytest

# Import test fixtures to make them available to all tests
# ruff: noqa: F401
from tests.fixtures.archives import (
    lying_zip,
    make_tarball,
    make_zipball,
    traversal_tarball,
)
from tests.fixtures.listings import release_listing

from gopherkit.core.config import GopherKitConfig
from gopherkit.core.locking import LockManager
from gopherkit.core.platform import PlatformInfo


# ============================================================================
# Platforms
# ============================================================================


@pytest.fixture
def linux_amd64() -> PlatformInfo:
    return PlatformInfo("linux", "amd64")


@pytest.fixture
def windows_amd64() -> PlatformInfo:
    return PlatformInfo("windows", "amd64")


# ============================================================================
# Configuration
# ============================================================================


@pytest.fixture
def gk_home(tmp_path) -> Path:
    """Empty gopherkit profile root inside tmp_path."""
    home = tmp_path / "gopherkit-home"
    home.mkdir()
    return home


@pytest.fixture
def gk_config(gk_home) -> GopherKitConfig:
    """Config rooted in tmp_path with a single link candidate and no auto-cleanup."""
    return GopherKitConfig(
        home=gk_home,
        mirror_url="https://mirror.test/dl/",
        auto_cleanup=False,
        link_candidates=[gk_home / "bin" / "go"],
    )


@pytest.fixture
def lock_manager(gk_home) -> LockManager:
    return LockManager(gk_home / "lock")


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    """Strip GOPHERKIT_* variables and point GOPHERKIT_HOME at tmp_path."""
    for name in (
        "GOPHERKIT_MIRROR_URL",
        "GOPHERKIT_AUTO_CLEANUP",
        "GOPHERKIT_MAX_VERSIONS",
        "GOPHERKIT_REQUEST_TIMEOUT",
    ):
        monkeypatch.delenv(name, raising=False)
    home = tmp_path / "env-home"
    monkeypatch.setenv("GOPHERKIT_HOME", str(home))
    return home
