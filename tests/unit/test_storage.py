# =============================================================================
# tests/unit/test_storage.py
# Unit Tests for Key/Value Storage Backends
# =============================================================================

import json

import pytest


class TestMemoryStorage:
    """Test the in-memory backend"""

    def test_set_get_remove(self):
        """Values round-trip and removal is idempotent"""
        from finance_core.offline.storage import MemoryStorage

        storage = MemoryStorage()
        storage.set_item("a", "1")

        assert storage.get_item("a") == "1"
        assert "a" in storage

        storage.remove_item("a")
        storage.remove_item("a")

        assert storage.get_item("a") is None
        assert len(storage) == 0

    def test_keys_is_snapshot(self):
        """Mutating during iteration over keys() is safe"""
        from finance_core.offline.storage import MemoryStorage

        storage = MemoryStorage({"a": "1", "b": "2"})
        for key in storage.keys():
            storage.remove_item(key)

        assert storage.keys() == []


class TestJsonFileStorage:
    """Test the file-backed backend"""

    def test_persists_across_instances(self, tmp_path):
        """A new instance sees what the previous one wrote"""
        from finance_core.offline.storage import JsonFileStorage

        path = tmp_path / "store.json"
        JsonFileStorage(path).set_item("assets_u1", "[1, 2]")

        reopened = JsonFileStorage(path)
        assert reopened.get_item("assets_u1") == "[1, 2]"

    def test_remove_persists(self, tmp_path):
        """Removed keys are gone from disk"""
        from finance_core.offline.storage import JsonFileStorage

        path = tmp_path / "store.json"
        storage = JsonFileStorage(path)
        storage.set_item("k", "v")
        storage.remove_item("k")

        assert json.loads(path.read_text()) == {}

    def test_corrupt_file_starts_empty(self, tmp_path):
        """An unreadable file is ignored rather than raising"""
        from finance_core.offline.storage import JsonFileStorage

        path = tmp_path / "store.json"
        path.write_text("{not json")

        storage = JsonFileStorage(path)
        assert storage.keys() == []

    def test_non_object_file_starts_empty(self, tmp_path):
        """A JSON file that is not an object is ignored"""
        from finance_core.offline.storage import JsonFileStorage

        path = tmp_path / "store.json"
        path.write_text("[1, 2, 3]")

        assert JsonFileStorage(path).keys() == []

    def test_failed_write_raises_storage_error_and_rolls_back(self, tmp_path, monkeypatch):
        """A write that cannot reach disk raises and leaves memory unchanged"""
        from finance_core.errors import StorageError
        from finance_core.offline.storage import JsonFileStorage

        storage = JsonFileStorage(tmp_path / "store.json")
        storage.set_item("k", "old")

        def broken_dump(*args, **kwargs):
            raise OSError("disk full")

        monkeypatch.setattr("finance_core.offline.storage.json.dump", broken_dump)

        with pytest.raises(StorageError) as exc_info:
            storage.set_item("k", "new")

        assert storage.get_item("k") == "old"
        assert exc_info.value.code == "STORAGE_001"
        assert exc_info.value.details["key"] == "k"

    def test_failed_remove_keeps_the_key(self, tmp_path, monkeypatch):
        """Memory and disk still agree after a remove that cannot reach disk"""
        import json
        from finance_core.errors import StorageError
        from finance_core.offline.storage import JsonFileStorage

        path = tmp_path / "store.json"
        storage = JsonFileStorage(path)
        storage.set_item("k", "v")

        def broken_dump(*args, **kwargs):
            raise OSError("read-only file system")

        monkeypatch.setattr("finance_core.offline.storage.json.dump", broken_dump)

        with pytest.raises(StorageError):
            storage.remove_item("k")

        assert storage.get_item("k") == "v"
        assert json.loads(path.read_text()) == {"k": "v"}
