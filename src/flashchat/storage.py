"""
FlashChat - Persistent key-value storage.

Created by orpheus497

The conversation core only needs a small key-value interface: durable
across reloads, enumerable by prefix, last write wins per key. Two backends
are provided:
- MemoryStore: a plain dictionary, used by tests and throwaway sessions
- JsonFileStore: a single JSON object on disk, written atomically
"""

import json
import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional, Union

import aiofiles

from .errors import ErrorCode, StorageError

logger = logging.getLogger(__name__)


class KeyValueStore(ABC):
    """String-to-string store with prefix enumeration."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Return the value for ``key`` or None."""

    @abstractmethod
    def put(self, key: str, value: str) -> None:
        """Store ``value`` under ``key``, replacing any previous value."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove ``key``; missing keys are ignored."""

    @abstractmethod
    def keys(self, prefix: str = "") -> List[str]:
        """All keys starting with ``prefix``, sorted."""

    def clear_prefix(self, prefix: str) -> int:
        """Delete every key starting with ``prefix``.

        Returns:
            Number of keys removed
        """
        removed = self.keys(prefix)
        for key in removed:
            self.delete(key)
        return len(removed)


class MemoryStore(KeyValueStore):
    """In-memory store; contents are lost with the process."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def put(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self, prefix: str = "") -> List[str]:
        return sorted(k for k in self._data if k.startswith(prefix))


class JsonFileStore(KeyValueStore):
    """Store persisted as one JSON object.

    Every mutation is written through to disk unless ``autosave`` is False,
    in which case callers persist with :meth:`save` or :meth:`flush_async`.
    Writes go to a temporary file that is atomically renamed over the target.
    """

    def __init__(self, path: Union[str, Path], autosave: bool = True):
        self.path = Path(path)
        self.autosave = autosave
        self._data: Dict[str, str] = {}
        self._dirty = False
        self._load()

    def _load(self) -> None:
        """Load the store from disk."""
        if not self.path.exists():
            return

        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except OSError as e:
            logger.error(f"Failed to read store file: {e}")
            raise StorageError(
                ErrorCode.E301_STORAGE_LOAD_FAILED,
                f"Cannot load store: {e}",
                {"path": str(self.path)},
            ) from e
        except json.JSONDecodeError as e:
            # Start empty rather than refusing to open
            logger.error(f"Corrupted store file: {e}")
            logger.warning("Starting with empty store due to corrupted file")
            return

        if not isinstance(data, dict):
            logger.warning("Store file does not contain an object; starting empty")
            return

        self._data = {str(k): v for k, v in data.items() if isinstance(v, str)}
        logger.info(f"Loaded {len(self._data)} keys from {self.path}")

    def _serialize(self) -> str:
        return json.dumps(self._data, indent=2, ensure_ascii=False, sort_keys=True)

    def save(self) -> None:
        """Write the store to disk synchronously."""
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            temp_file = f"{self.path}.tmp"
            with open(temp_file, "w", encoding="utf-8") as f:
                f.write(self._serialize())
            os.replace(temp_file, self.path)
        except OSError as e:
            logger.error(f"Failed to save store: {e}")
            raise StorageError(
                ErrorCode.E302_STORAGE_SAVE_FAILED,
                f"Cannot save store: {e}",
                {"path": str(self.path)},
            ) from e

        self._dirty = False
        logger.debug(f"Saved {len(self._data)} keys to {self.path}")

    async def flush_async(self) -> None:
        """Write pending changes to disk asynchronously."""
        if not self._dirty and self.path.exists():
            return

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            temp_file = f"{self.path}.tmp"
            async with aiofiles.open(temp_file, "w", encoding="utf-8") as f:
                await f.write(self._serialize())
            os.replace(temp_file, self.path)
        except OSError as e:
            logger.error(f"Failed to save store: {e}")
            raise StorageError(
                ErrorCode.E302_STORAGE_SAVE_FAILED,
                f"Cannot save store: {e}",
                {"path": str(self.path)},
            ) from e

        self._dirty = False

    def _changed(self) -> None:
        self._dirty = True
        if self.autosave:
            self.save()

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def put(self, key: str, value: str) -> None:
        if self._data.get(key) == value:
            return
        self._data[key] = value
        self._changed()

    def delete(self, key: str) -> None:
        if key in self._data:
            del self._data[key]
            self._changed()

    def keys(self, prefix: str = "") -> List[str]:
        return sorted(k for k in self._data if k.startswith(prefix))

    def clear_prefix(self, prefix: str) -> int:
        removed = [k for k in self._data if k.startswith(prefix)]
        for key in removed:
            del self._data[key]
        if removed:
            self._changed()
        return len(removed)
