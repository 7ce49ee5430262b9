# =============================================================================
# finance_core/offline/cache_store.py
# Local Cache Store for Entity Payloads
# =============================================================================
"""
LocalCacheStore - last-known-good copies of each user's entity data.

Layout in the underlying storage:

    {kind}_{user_id}        -> JSON payload
    {kind}_{user_id}_meta   -> {"timestamp": ISO-8601, "source": "remote"|"local"}

Inside Python the key is a typed CacheKey (EntityKind + user id); the string
form only exists at the storage boundary.
"""

from __future__ import annotations
import json
import warnings
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, List, Optional, Tuple
import logging

from finance_core.errors import CacheParseWarning, StorageError
from finance_core.offline.storage import KeyValueStorage

logger = logging.getLogger(__name__)

META_SUFFIX = "_meta"
DEFAULT_TTL = timedelta(minutes=15)

SOURCE_REMOTE = "remote"
SOURCE_LOCAL = "local"


class EntityKind(str, Enum):
    """The six tracked data categories. The value doubles as the table name."""
    PERSONAL_INFO = "personal_info"
    BUSINESS_INFO = "business_info"
    ASSETS = "assets"
    LIABILITIES = "liabilities"
    INCOME = "income"
    EXPENSES = "expenses"

    @property
    def table(self) -> str:
        return self.value

    @property
    def is_single_row(self) -> bool:
        """Profile kinds hold one row per user; the rest are lists."""
        return self in (EntityKind.PERSONAL_INFO, EntityKind.BUSINESS_INFO)


# Longest first so that parsing never stops at a shorter kind that happens
# to be a prefix of a longer one.
_KINDS_BY_LENGTH = sorted(EntityKind, key=lambda k: len(k.value), reverse=True)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class CacheKey:
    """Typed cache key: one entry per (entity kind, user)."""
    kind: EntityKind
    user_id: str

    def __post_init__(self):
        if not self.user_id:
            raise ValueError("CacheKey requires a non-empty user_id")

    def encode(self) -> str:
        return f"{self.kind.value}_{self.user_id}"

    @property
    def meta_key(self) -> str:
        return f"{self.encode()}{META_SUFFIX}"

    @classmethod
    def parse(cls, raw: str) -> Optional[CacheKey]:
        """Decode a storage key; metadata and foreign keys return None."""
        if raw.endswith(META_SUFFIX):
            return None
        for kind in _KINDS_BY_LENGTH:
            prefix = f"{kind.value}_"
            if raw.startswith(prefix) and len(raw) > len(prefix):
                return cls(kind, raw[len(prefix):])
        return None

    def __str__(self) -> str:
        return self.encode()


@dataclass
class CacheEntry:
    """A cached payload and when it was written."""
    key: CacheKey
    payload: Any
    written_at: Optional[datetime] = None
    source: str = SOURCE_REMOTE

    @property
    def is_local(self) -> bool:
        """Saved on this device and not yet accepted by the remote store."""
        return self.source == SOURCE_LOCAL

    def age(self, now: datetime) -> Optional[timedelta]:
        if self.written_at is None:
            return None
        return now - self.written_at

    def is_fresh(self, now: datetime, ttl: timedelta = DEFAULT_TTL) -> bool:
        age = self.age(now)
        return age is not None and age < ttl


@dataclass
class CacheStats:
    """Aggregate figures for the status panel."""
    size_bytes: int = 0
    entry_count: int = 0
    oldest_written_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "size_bytes": self.size_bytes,
            "entry_count": self.entry_count,
            "oldest_written_at": (
                self.oldest_written_at.isoformat() if self.oldest_written_at else None
            ),
        }


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class LocalCacheStore:
    """
    Entity cache on top of a KeyValueStorage.

    Usage:
        store = LocalCacheStore(JsonFileStorage(path))
        key = CacheKey(EntityKind.ASSETS, user_id)
        store.put(key, rows)
        entry = store.get(key)
        if entry and store.is_fresh(entry):
            ...
    """

    def __init__(
        self,
        storage: KeyValueStorage,
        ttl: timedelta = DEFAULT_TTL,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.storage = storage
        self.ttl = ttl
        self._clock = clock or utc_now

    def now(self) -> datetime:
        return self._clock()

    # =========================================================================
    # READ / WRITE
    # =========================================================================

    def get(self, key: CacheKey) -> Optional[CacheEntry]:
        """
        Look up a cached entry.

        Never raises. A payload that cannot be decoded counts as absent and is
        left in storage; a CacheParseWarning is emitted for the caller.
        """
        try:
            raw = self.storage.get_item(key.encode())
        except Exception as e:
            logger.warning(f"Cache read failed for {key}: {e}")
            return None

        if raw is None:
            return None

        try:
            payload = json.loads(raw)
        except (TypeError, ValueError) as e:
            message = f"Corrupt cache entry {key}: {e}"
            logger.warning(message)
            warnings.warn(message, CacheParseWarning, stacklevel=2)
            return None

        written_at, source = self._read_meta(key)
        return CacheEntry(key=key, payload=payload, written_at=written_at, source=source)

    def _read_meta(self, key: CacheKey) -> Tuple[Optional[datetime], str]:
        try:
            raw = self.storage.get_item(key.meta_key)
            meta = json.loads(raw) if raw is not None else {}
        except Exception as e:
            logger.debug(f"Unreadable cache metadata for {key}: {e}")
            meta = {}

        if not isinstance(meta, dict):
            meta = {}

        return _parse_timestamp(meta.get("timestamp")), meta.get("source", SOURCE_REMOTE)

    def put(self, key: CacheKey, payload: Any, source: str = SOURCE_REMOTE) -> datetime:
        """
        Overwrite the entry for key.

        Returns:
            The write timestamp

        Raises:
            StorageError: if the storage backend cannot persist the value;
                the previous payload is restored when only the metadata
                write failed
        """
        written_at = self.now()
        encoded = json.dumps(payload, default=str)
        meta = json.dumps({"timestamp": written_at.isoformat(), "source": source})

        previous = self.storage.get_item(key.encode())
        self.storage.set_item(key.encode(), encoded)
        try:
            self.storage.set_item(key.meta_key, meta)
        except StorageError:
            self._restore(key, previous)
            raise

        logger.debug(f"Cached {key} ({len(encoded)} bytes, source={source})")
        return written_at

    def _restore(self, key: CacheKey, previous: Optional[str]) -> None:
        try:
            if previous is None:
                self.storage.remove_item(key.encode())
            else:
                self.storage.set_item(key.encode(), previous)
        except StorageError as e:
            logger.error(f"Could not restore {key} after a failed write: {e}")

    def is_fresh(self, entry: CacheEntry, now: Optional[datetime] = None) -> bool:
        return entry.is_fresh(now or self.now(), self.ttl)

    def get_fresh(self, key: CacheKey) -> Optional[CacheEntry]:
        entry = self.get(key)
        if entry is not None and self.is_fresh(entry):
            return entry
        return None

    # =========================================================================
    # PURGING
    # =========================================================================

    def purge(self, predicate: Callable[[CacheKey], bool]) -> int:
        """
        Remove every entry whose key matches predicate.

        The metadata record is removed right after its payload. Orphaned
        metadata for a matching key is removed as well.

        Returns:
            Number of payload entries removed
        """
        removed = 0

        for raw in self.storage.keys():
            if raw.endswith(META_SUFFIX):
                base = raw[: -len(META_SUFFIX)]
                key = CacheKey.parse(base)
                if key is not None and predicate(key) and self.storage.get_item(base) is None:
                    self.storage.remove_item(raw)
                continue

            key = CacheKey.parse(raw)
            if key is None or not predicate(key):
                continue

            self.storage.remove_item(raw)
            self.storage.remove_item(key.meta_key)
            removed += 1
            logger.debug(f"Cleared cache: {raw}")

        return removed

    def clear_user(self, user_id: str) -> int:
        """Remove all cached entities of one user."""
        return self.purge(lambda key: key.user_id == user_id)

    def purge_all(self) -> int:
        """Remove every recognised entity entry, leaving other keys alone."""
        return self.purge(lambda key: True)

    # =========================================================================
    # STATISTICS
    # =========================================================================

    def entries(self) -> List[CacheKey]:
        return [k for k in (CacheKey.parse(raw) for raw in self.storage.keys()) if k]

    def stats(self) -> CacheStats:
        """Size (UTF-8 bytes of keys and values), entry count and oldest write."""
        stats = CacheStats()

        for key in self.entries():
            for raw_key in (key.encode(), key.meta_key):
                value = self.storage.get_item(raw_key)
                if value is not None:
                    stats.size_bytes += len(raw_key.encode("utf-8")) + len(value.encode("utf-8"))

            stats.entry_count += 1
            written_at, _ = self._read_meta(key)
            if written_at is not None and (
                stats.oldest_written_at is None or written_at < stats.oldest_written_at
            ):
                stats.oldest_written_at = written_at

        return stats
