# =============================================================================
# finance_core/offline/resilient_query.py
# Cache-First Query Wrapper with Degraded-Mode Fallback
# =============================================================================
"""
ResilientQuery - the read path of the data layer.

    1. no user id          -> skip the cache, go remote
    2. fresh remote entry  -> return it, no remote call
    3. remote call
    4. success             -> overwrite cache, return fresh data
    5. failure             -> cached copy (fresh or stale) with success=False,
                              else the caller's fallback

Entries saved locally while the store was unavailable are never fresh: they
always go back to the remote store, and when served after a failure the
result carries local_data=True.

query() never raises; anything unexpected becomes a connection_error
result with the same fallback behaviour.
"""

from __future__ import annotations
from typing import Any, Callable, Optional, Union
import logging

from finance_core.errors import StorageError
from finance_core.offline.cache_store import CacheEntry, CacheKey, EntityKind, LocalCacheStore
from finance_core.offline.outcomes import ErrorKind, QueryError, QueryResult
from finance_core.offline.query_executor import QueryFn, RemoteQueryExecutor
from finance_core.offline.single_flight import SingleFlight

logger = logging.getLogger(__name__)

UserIdProvider = Callable[[], Optional[str]]


class ResilientQuery:

    def __init__(
        self,
        cache: LocalCacheStore,
        executor: RemoteQueryExecutor,
        user_id_provider: Optional[UserIdProvider] = None,
        single_flight: Optional[SingleFlight] = None,
    ):
        self.cache = cache
        self.executor = executor
        self._user_id_provider = user_id_provider or (lambda: None)
        self._single_flight = single_flight

    def resolve_key(
        self,
        kind: Union[EntityKind, str],
        user_id: Optional[str] = None,
    ) -> Optional[CacheKey]:
        kind = EntityKind(kind)
        user_id = user_id or self._user_id_provider()
        if not user_id:
            return None
        return CacheKey(kind, str(user_id))

    async def query(
        self,
        kind: Union[EntityKind, str],
        query_fn: QueryFn,
        fallback: Any = None,
        user_id: Optional[str] = None,
    ) -> QueryResult:
        """
        Read an entity through the cache.

        Args:
            kind: entity kind being read
            query_fn: async callable performing the remote read
            fallback: data to return when nothing better is available
            user_id: overrides the current user

        Returns:
            QueryResult (never raises)
        """
        key: Optional[CacheKey] = None
        try:
            key = self.resolve_key(kind, user_id)

            if key is not None and self._single_flight is not None:
                return await self._single_flight.do(
                    key, lambda: self._run(key, query_fn, fallback)
                )
            return await self._run(key, query_fn, fallback)

        except Exception as e:
            logger.error(f"Unexpected error querying {kind}: {e}", exc_info=True)
            error = QueryError(
                kind=ErrorKind.CONNECTION,
                message=str(e) or e.__class__.__name__,
                raw=e,
            )
            return self._degraded(key, error, fallback)

    async def _run(
        self,
        key: Optional[CacheKey],
        query_fn: QueryFn,
        fallback: Any,
    ) -> QueryResult:
        entry: Optional[CacheEntry] = None

        if key is not None:
            entry = self.cache.get(key)
            if entry is not None and not entry.is_local and self.cache.is_fresh(entry):
                logger.debug(f"Cache hit for {key}")
                return QueryResult.ok(entry.payload, used_cache=True)

        description = f"Fetching {key.kind.value if key else 'data'}"
        outcome = await self.executor.execute(query_fn, description=description)

        if outcome.success:
            if key is not None:
                self._write_through(key, outcome.data)
            return QueryResult.ok(outcome.data)

        return self._degraded(key, outcome.error, fallback, entry, looked_up=key is not None)

    def _write_through(self, key: CacheKey, data: Any) -> None:
        try:
            self.cache.put(key, data)
        except (StorageError, TypeError, ValueError) as e:
            logger.warning(f"Could not refresh cache for {key}: {e}")

    def _degraded(
        self,
        key: Optional[CacheKey],
        error: QueryError,
        fallback: Any,
        entry: Optional[CacheEntry] = None,
        looked_up: bool = False,
    ) -> QueryResult:
        if entry is None and key is not None and not looked_up:
            entry = self.cache.get(key)

        if entry is not None:
            logger.info(f"Serving cached {key} ({entry.source}) after {error.kind.value}")
            return QueryResult.fail(
                error,
                data=entry.payload,
                used_cache=True,
                local_data=entry.is_local,
            )

        return QueryResult.fail(error, data=fallback)
