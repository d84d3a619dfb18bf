"""
Unit tests for the persisted active-version selection.
"""

import pytest

from gopherkit.core.state import ActiveSelectionStore


@pytest.fixture
def state_file(gk_home):
    return gk_home / "state" / "active-version"


@pytest.fixture
def store(state_file, lock_manager):
    return ActiveSelectionStore(state_file, lock_manager)


class TestActiveSelectionStore:
    """Test load and save."""

    def test_load_missing(self, store):
        """Test no file means no selection."""
        assert store.load() is None

    def test_save_and_load(self, store, state_file):
        """Test a saved selection reads back through a new store."""
        store.save("go1.21.0")

        loaded = ActiveSelectionStore(state_file).load()

        assert loaded.selected_version == "go1.21.0"
        assert loaded.updated_at is not None
        assert not loaded.is_system

    def test_file_format(self, store, state_file):
        """Test the on-disk key=value layout."""
        store.save("system")

        text = state_file.read_text()
        assert text.startswith("active_version=system\n")
        assert "updated_at=" in text
        assert store.load().is_system

    def test_cached_until_forced(self, store, state_file):
        """Test load() caches and force=True rereads."""
        store.save("go1.21.0")
        state_file.write_text("active_version=go1.20.5\n")

        assert store.load().selected_version == "go1.21.0"
        assert store.load(force=True).selected_version == "go1.20.5"

    def test_unreadable_file_is_no_selection(self, store, state_file, caplog):
        """Test a corrupt file is treated as no selection with a warning."""
        state_file.parent.mkdir(parents=True, exist_ok=True)
        state_file.write_text("this is not key value\n")

        assert store.load() is None
        assert "Ignoring unreadable state file" in caplog.text

    def test_missing_version_key(self, store, state_file):
        """Test a file without active_version is no selection."""
        state_file.parent.mkdir(parents=True, exist_ok=True)
        state_file.write_text("updated_at=2024-01-01T00:00:00+00:00\n")

        assert store.load() is None

    def test_bad_timestamp_tolerated(self, store, state_file):
        """Test an unparsable timestamp keeps the version."""
        state_file.parent.mkdir(parents=True, exist_ok=True)
        state_file.write_text("active_version=go1.21.0\nupdated_at=yesterday\n")

        loaded = store.load()

        assert loaded.selected_version == "go1.21.0"
        assert loaded.updated_at is None

    def test_clear(self, store, state_file):
        """Test clear() forgets the selection."""
        store.save("go1.21.0")

        store.clear()

        assert not state_file.exists()
        assert store.load() is None
