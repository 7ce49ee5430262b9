# =============================================================================
# finance_core/offline/data_service.py
# Data Service - Single API for Cached, Resilient Data Operations
# =============================================================================
"""
DataService - the primary API for all data operations.

This service wires the cache, the remote executor, the retry controller and
the health monitor together and exposes:

- safe_query / retry_query        cache-first reads with degraded fallback
- check_database_health           one probe through the health monitor
- clear_user_cache / purge_all_caches / get_cache_stats
- get_* readers for the six entity kinds
- save_profile / replace_entries  writes that fall back to a local save

Usage:
------
from finance_core.offline import get_data_service

service = get_data_service()

# The user comes from the caller's Streamlit session on every call
result = await service.get_assets()
if result.degraded:
    show_offline_banner()
"""

from __future__ import annotations
from typing import Any, Callable, Dict, List, Optional, Union
import logging

from finance_core.config import DataLayerSettings, load_settings
from finance_core.errors import StorageError
from finance_core.logging import setup_logging
from finance_core.offline.cache_store import (
    SOURCE_LOCAL,
    CacheKey,
    CacheStats,
    EntityKind,
    LocalCacheStore,
    utc_now,
)
from finance_core.offline.connection_manager import ConnectionHealthMonitor, HealthStatus
from finance_core.offline.outcomes import ErrorKind, QueryError, QueryResult
from finance_core.offline.query_executor import QueryFn, RemoteQueryExecutor
from finance_core.offline.resilient_query import ResilientQuery
from finance_core.offline.retry import RetryController, RetryPolicy, Sleep
from finance_core.offline.session_flags import SessionFlags
from finance_core.offline.single_flight import SingleFlight
from finance_core.offline.storage import JsonFileStorage

logger = logging.getLogger(__name__)

Row = Dict[str, Any]


def _not_authenticated() -> QueryError:
    return QueryError(kind=ErrorKind.AUTH, message="Not authenticated")


class DataService:
    """
    Resilient data access for one app process.

    All remote operations are coroutines and return QueryResult; remote
    failures never raise.
    """

    def __init__(
        self,
        gateway: Any,
        cache: LocalCacheStore,
        flags: Optional[SessionFlags] = None,
        settings: Optional[DataLayerSettings] = None,
        monitor: Optional[ConnectionHealthMonitor] = None,
        user_id_provider: Optional[Callable[[], Optional[str]]] = None,
        reload_hook: Optional[Callable[[], Any]] = None,
        sleep: Optional[Sleep] = None,
    ):
        self.gateway = gateway
        self.cache = cache
        self.flags = flags if flags is not None else SessionFlags()
        self.settings = settings or DataLayerSettings()
        self._user_id_provider = user_id_provider

        self.executor = RemoteQueryExecutor(self.flags)
        self.resilient = ResilientQuery(
            cache,
            self.executor,
            user_id_provider=lambda: self.user_id,
            single_flight=SingleFlight() if self.settings.coalesce_requests else None,
        )
        self.retry = RetryController(
            RetryPolicy(
                max_attempts=self.settings.retry_max_attempts,
                initial_delay_ms=self.settings.retry_initial_delay_ms,
                max_delay_ms=self.settings.retry_max_delay_ms,
                rate_limit_max_delay_ms=self.settings.rate_limit_max_delay_ms,
            ),
            sleep=sleep,
        )
        self.monitor = monitor or ConnectionHealthMonitor(
            gateway,
            settings=self.settings,
            executor=self.executor,
            flags=self.flags,
            persistent_storage=cache.storage,
            reload_hook=reload_hook,
            sleep=sleep,
        )

    # =========================================================================
    # CURRENT USER
    # =========================================================================

    @property
    def user_id(self) -> Optional[str]:
        """
        User of the calling session, resolved on every access.

        The service is shared by all sessions of the process, so it never
        stores a user itself.
        """
        if self._user_id_provider is None:
            return None
        user_id = self._user_id_provider()
        return str(user_id) if user_id else None

    # =========================================================================
    # CALLER API
    # =========================================================================

    async def safe_query(
        self,
        kind: Union[EntityKind, str],
        query_fn: QueryFn,
        fallback: Any = None,
        user_id: Optional[str] = None,
    ) -> QueryResult:
        """Cache-first read; see ResilientQuery.query."""
        return await self.resilient.query(kind, query_fn, fallback=fallback, user_id=user_id)

    async def retry_query(
        self,
        kind: Union[EntityKind, str],
        query_fn: QueryFn,
        fallback: Any = None,
        user_id: Optional[str] = None,
        max_attempts: Optional[int] = None,
        initial_delay_ms: Optional[int] = None,
    ) -> QueryResult:
        """safe_query with exponential backoff between failed attempts."""
        return await self.retry.with_retry(
            lambda: self.safe_query(kind, query_fn, fallback=fallback, user_id=user_id),
            max_attempts=max_attempts,
            initial_delay_ms=initial_delay_ms,
        )

    async def check_database_health(self) -> HealthStatus:
        return await self.monitor.probe()

    def clear_user_cache(self, user_id: Optional[str] = None) -> int:
        """Remove every cached entity of a user (default: current user)."""
        user_id = user_id or self.user_id
        if not user_id:
            return 0
        removed = self.cache.clear_user(user_id)
        logger.info(f"Cleared {removed} cached entities for user {user_id}")
        return removed

    def purge_all_caches(self) -> int:
        """Remove every cached entity of every user and the error flags."""
        removed = self.cache.purge_all()
        self.flags.clear_error_flags()
        logger.info(f"Purged {removed} cached entities")
        return removed

    def get_cache_stats(self) -> CacheStats:
        return self.cache.stats()

    # =========================================================================
    # ENTITY READS
    # =========================================================================

    async def get_entity(
        self,
        kind: Union[EntityKind, str],
        user_id: Optional[str] = None,
    ) -> QueryResult:
        """Read one entity kind for a user through the cache."""
        kind = EntityKind(kind)
        fallback = None if kind.is_single_row else []
        user_id = user_id or self.user_id
        if not user_id:
            return QueryResult.fail(_not_authenticated(), data=fallback)

        return await self.safe_query(
            kind,
            lambda: self.gateway.select(kind.table, user_id, single=kind.is_single_row),
            fallback=fallback,
            user_id=user_id,
        )

    async def get_personal_info(self, user_id: Optional[str] = None) -> QueryResult:
        return await self.get_entity(EntityKind.PERSONAL_INFO, user_id)

    async def get_business_info(self, user_id: Optional[str] = None) -> QueryResult:
        return await self.get_entity(EntityKind.BUSINESS_INFO, user_id)

    async def get_assets(self, user_id: Optional[str] = None) -> QueryResult:
        return await self.get_entity(EntityKind.ASSETS, user_id)

    async def get_liabilities(self, user_id: Optional[str] = None) -> QueryResult:
        return await self.get_entity(EntityKind.LIABILITIES, user_id)

    async def get_income(self, user_id: Optional[str] = None) -> QueryResult:
        return await self.get_entity(EntityKind.INCOME, user_id)

    async def get_expenses(self, user_id: Optional[str] = None) -> QueryResult:
        return await self.get_entity(EntityKind.EXPENSES, user_id)

    # =========================================================================
    # ENTITY WRITES
    # =========================================================================

    def _save_locally(self, key: CacheKey, payload: Any, error: QueryError) -> QueryResult:
        try:
            self.cache.put(key, payload, source=SOURCE_LOCAL)
        except StorageError as e:
            logger.error(f"Local save failed for {key}: {e}")
            return QueryResult.fail(error, data=payload, local_saved=False)

        logger.info(f"Saved {key} locally [{error.kind.value}]")
        return QueryResult.fail(error, data=payload, local_saved=True)

    def _cache_written(self, key: CacheKey, payload: Any) -> None:
        try:
            self.cache.put(key, payload)
        except StorageError as e:
            logger.warning(f"Saved remotely but could not cache {key}: {e}")

    async def save_profile(
        self,
        kind: Union[EntityKind, str],
        values: Row,
        user_id: Optional[str] = None,
    ) -> QueryResult:
        """
        Insert or update the single profile row of a user.

        Args:
            kind: PERSONAL_INFO or BUSINESS_INFO
            values: column values to write
            user_id: overrides the current user

        Returns:
            QueryResult; on any remote failure (or a known schema problem)
            the record is saved to the local cache and local_saved is True
        """
        kind = EntityKind(kind)
        if not kind.is_single_row:
            raise ValueError(f"{kind.value} is a list entity; use replace_entries")

        user_id = user_id or self.user_id
        if not user_id:
            return QueryResult.fail(_not_authenticated())

        key = CacheKey(kind, user_id)
        record = {**values, "user_id": user_id, "updated_at": utc_now().isoformat()}

        if self.flags.has_schema_issue:
            logger.info(f"Known database schema issue, saving {key} locally")
            return self._save_locally(
                key, record, QueryError(kind=ErrorKind.SCHEMA, message="Known database schema issue")
            )

        existing = await self.executor.execute(
            lambda: self.gateway.select(kind.table, user_id, single=True),
            description=f"Loading {kind.value}",
        )
        if not existing.success:
            return self._save_locally(key, record, existing.error)

        if existing.data:
            record = {**existing.data, **record}
            written = await self.executor.execute(
                lambda: self.gateway.update(kind.table, user_id, record),
                description=f"Updating {kind.value}",
            )
        else:
            written = await self.executor.execute(
                lambda: self.gateway.insert(kind.table, record),
                description=f"Inserting {kind.value}",
            )

        if not written.success:
            return self._save_locally(key, record, written.error)

        self._cache_written(key, record)
        return QueryResult.ok(record)

    async def replace_entries(
        self,
        kind: Union[EntityKind, str],
        entries: List[Row],
        user_id: Optional[str] = None,
    ) -> QueryResult:
        """
        Replace every row of a list entity for a user (delete, then insert).

        Falls back to a local save exactly like save_profile.
        """
        kind = EntityKind(kind)
        if kind.is_single_row:
            raise ValueError(f"{kind.value} is a profile entity; use save_profile")

        user_id = user_id or self.user_id
        if not user_id:
            return QueryResult.fail(_not_authenticated(), data=[])

        key = CacheKey(kind, user_id)
        rows = [{**entry, "user_id": user_id} for entry in entries]

        if self.flags.has_schema_issue:
            logger.info(f"Known database schema issue, saving {key} locally")
            return self._save_locally(
                key, rows, QueryError(kind=ErrorKind.SCHEMA, message="Known database schema issue")
            )

        deleted = await self.executor.execute(
            lambda: self.gateway.delete(kind.table, user_id),
            description=f"Clearing {kind.value}",
        )
        if not deleted.success:
            return self._save_locally(key, rows, deleted.error)

        if rows:
            inserted = await self.executor.execute(
                lambda: self.gateway.insert(kind.table, rows),
                description=f"Inserting {len(rows)} {kind.value}",
            )
            if not inserted.success:
                return self._save_locally(key, rows, inserted.error)

        self._cache_written(key, rows)
        return QueryResult.ok(rows)


# Singleton accessor
_data_service: Optional[DataService] = None


def get_data_service(settings: Optional[DataLayerSettings] = None) -> DataService:
    """
    Get the global DataService instance.

    Wires the file-backed cache, Streamlit session flags and the Supabase
    gateway from settings (Streamlit secrets / environment by default).
    """
    global _data_service
    if _data_service is None:
        from finance_core.data.supabase_client import SupabaseGateway
        from finance_core.state.session import SessionStateStorage, current_user_id, request_rerun

        settings = settings or load_settings()
        setup_logging(
            level=getattr(logging, settings.log_level.upper(), logging.INFO),
            log_to_file=settings.log_to_file,
            log_dir=settings.log_dir,
        )

        storage = JsonFileStorage(settings.cache_file)
        cache = LocalCacheStore(storage, ttl=settings.cache_ttl)
        _data_service = DataService(
            SupabaseGateway(settings, auth_storage=storage),
            cache,
            flags=SessionFlags(SessionStateStorage()),
            settings=settings,
            user_id_provider=current_user_id,
            reload_hook=request_rerun,
        )
        logger.info("DataService initialized")
    return _data_service


def reset_data_service() -> None:
    """Forget the global instance (tests, settings changes)."""
    global _data_service
    _data_service = None
