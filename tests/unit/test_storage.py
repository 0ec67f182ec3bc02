"""
Unit tests for flashchat.storage module.

Created by orpheus497

Tests the in-memory and JSON file key-value stores.
"""

import json

import pytest

from flashchat.storage import JsonFileStore, MemoryStore


@pytest.fixture(params=["memory", "file"])
def store(request, temp_dir):
    if request.param == "memory":
        return MemoryStore()
    return JsonFileStore(temp_dir / "store.json")


class TestKeyValueStore:
    """Behaviour shared by every backend."""

    def test_put_get_delete(self, store):
        """Test basic operations and last-write-wins."""
        store.put("a", "1")
        store.put("a", "2")

        assert store.get("a") == "2"

        store.delete("a")
        store.delete("missing")

        assert store.get("a") is None

    def test_keys_by_prefix(self, store):
        """Test prefix enumeration."""
        store.put("message:2", "x")
        store.put("message:1", "y")
        store.put("flash_user_id", "z")

        assert store.keys("message:") == ["message:1", "message:2"]
        assert len(store.keys()) == 3

    def test_clear_prefix(self, store):
        """Test deleting a namespace."""
        store.put("message:1", "x")
        store.put("flash_prefs", "{}")

        assert store.clear_prefix("message:") == 1
        assert store.keys() == ["flash_prefs"]


class TestJsonFileStore:
    """Test on-disk persistence."""

    def test_reopen(self, temp_dir):
        """Test that data is durable across instances."""
        path = temp_dir / "nested" / "store.json"
        JsonFileStore(path).put("flash_user_id", "user_ab12cd34")

        assert JsonFileStore(path).get("flash_user_id") == "user_ab12cd34"

    def test_corrupted_file_starts_empty(self, temp_dir):
        """Test that a corrupted store file is treated as empty."""
        path = temp_dir / "store.json"
        path.write_text("{broken", encoding="utf-8")

        assert JsonFileStore(path).keys() == []

    def test_manual_save(self, temp_dir):
        """Test that autosave can be disabled."""
        path = temp_dir / "store.json"
        store = JsonFileStore(path, autosave=False)
        store.put("k", "v")

        assert not path.exists()

        store.save()

        assert json.loads(path.read_text(encoding="utf-8")) == {"k": "v"}

    @pytest.mark.asyncio
    async def test_flush_async(self, temp_dir):
        """Test the asynchronous write path."""
        path = temp_dir / "store.json"
        store = JsonFileStore(path, autosave=False)
        store.put("k", "v")

        await store.flush_async()

        assert JsonFileStore(path).get("k") == "v"
