# =============================================================================
# finance_core/offline/storage.py
# Key/Value Storage Backends
# =============================================================================
"""
String key/value stores underneath the cache and the session flags.

Two lifetimes are modelled:
- persistent storage (JsonFileStorage) survives restarts and holds cached
  entity payloads plus the Supabase auth session;
- session storage (MemoryStorage, or SessionStateStorage in
  finance_core.state.session) lives as long as the user session and holds
  the db_* error flags.

Values are always strings; callers own the JSON encoding so that a corrupt
value can be detected on read.
"""

from __future__ import annotations
import json
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Iterator, List, Optional
import logging

from finance_core.errors import StorageError

logger = logging.getLogger(__name__)


class KeyValueStorage(ABC):
    """Minimal string key/value interface."""

    @abstractmethod
    def get_item(self, key: str) -> Optional[str]:
        """Return the stored value or None."""

    @abstractmethod
    def set_item(self, key: str, value: str) -> None:
        """Store a value, replacing any previous one."""

    @abstractmethod
    def remove_item(self, key: str) -> None:
        """Remove a key; missing keys are ignored."""

    @abstractmethod
    def keys(self) -> List[str]:
        """Snapshot of all stored keys."""

    def __contains__(self, key: str) -> bool:
        return self.get_item(key) is not None

    def __iter__(self) -> Iterator[str]:
        return iter(self.keys())

    def __len__(self) -> int:
        return len(self.keys())


class MemoryStorage(KeyValueStorage):
    """Process-local storage, used for session flags and in tests."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get_item(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove_item(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> List[str]:
        return list(self._data.keys())


class JsonFileStorage(KeyValueStorage):
    """
    Persistent storage backed by a single JSON object on disk.

    The whole file is loaded on construction and rewritten after every
    mutation. A missing or unreadable file starts an empty store.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = threading.Lock()
        self._data: Dict[str, str] = {}
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._load()

    def _load(self) -> None:
        if not self.path.exists():
            self._data = {}
            return

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                raw = json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            logger.warning(f"Error loading local storage {self.path}: {e}")
            self._data = {}
            return

        if not isinstance(raw, dict):
            logger.warning(f"Ignoring malformed local storage {self.path}")
            self._data = {}
            return

        self._data = {str(k): str(v) for k, v in raw.items()}

    def _save(self, key: Optional[str] = None) -> None:
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(self._data, f, indent=2)
            tmp_path.replace(self.path)
        except (IOError, OSError) as e:
            logger.error(f"Error saving local storage: {e}")
            raise StorageError(
                f"Could not write local storage: {e}",
                key=key,
                path=str(self.path),
            ) from e

    def get_item(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set_item(self, key: str, value: str) -> None:
        with self._lock:
            previous = self._data.get(key)
            self._data[key] = value
            try:
                self._save(key)
            except StorageError:
                # Keep memory and disk in agreement
                if previous is None:
                    del self._data[key]
                else:
                    self._data[key] = previous
                raise

    def remove_item(self, key: str) -> None:
        with self._lock:
            if key not in self._data:
                return
            previous = self._data.pop(key)
            try:
                self._save(key)
            except StorageError:
                self._data[key] = previous
                raise

    def keys(self) -> List[str]:
        return list(self._data.keys())
