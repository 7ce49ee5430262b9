# =============================================================================
# finance_core/data/supabase_client.py
# Supabase Client Configuration for FinanceHub
# Handles the async client, per-user table queries and the auth session
# =============================================================================
"""
SupabaseGateway - the only place that talks to the Supabase client.

Every query method returns the client's APIResponse or
raises; classification of failures happens in the offline layer.

Expects secrets in .streamlit/secrets.toml:
    [supabase]
    url = "https://your-project.supabase.co"
    key = "your-anon-key"
"""

from __future__ import annotations
import asyncio
import weakref
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union
import logging

from supabase import AsyncClient, AsyncClientOptions, acreate_client
from supabase_auth import AsyncSupportedStorage

from finance_core.config import DataLayerSettings, load_settings
from finance_core.offline.storage import KeyValueStorage

logger = logging.getLogger(__name__)

ClientFactory = Callable[[DataLayerSettings, Optional[KeyValueStorage]], Awaitable[Any]]

Row = Dict[str, Any]


class PersistentAuthStorage(AsyncSupportedStorage):
    """
    Where the Supabase auth client keeps its session.

    Writes through to a KeyValueStorage (the cache file in the app), so the
    session survives restarts and a full connection reset can forget it by
    key prefix.
    """

    def __init__(self, storage: KeyValueStorage):
        self.storage = storage

    async def get_item(self, key: str) -> Optional[str]:
        return self.storage.get_item(key)

    async def set_item(self, key: str, value: str) -> None:
        self.storage.set_item(key, value)

    async def remove_item(self, key: str) -> None:
        self.storage.remove_item(key)


async def create_supabase_client(
    settings: DataLayerSettings,
    auth_storage: Optional[KeyValueStorage] = None,
) -> AsyncClient:
    """
    Build an async Supabase client.

    Args:
        settings: credentials and tuning
        auth_storage: where to persist the auth session (default: in memory)

    Raises:
        ConfigurationError: if url or key is missing
    """
    url, key = settings.require_credentials()
    if auth_storage is not None:
        options = AsyncClientOptions(storage=PersistentAuthStorage(auth_storage))
    else:
        options = AsyncClientOptions()
    client = await acreate_client(url, key, options=options)
    logger.info("Supabase client initialized")
    return client


class SupabaseGateway:
    """
    Lazily created async client plus the per-user queries the data layer needs.

    Usage:
        gateway = SupabaseGateway(load_settings())
        response = await gateway.select("assets", user_id)
        rows = response.data
    """

    def __init__(
        self,
        settings: Optional[DataLayerSettings] = None,
        client_factory: Optional[ClientFactory] = None,
        auth_storage: Optional[KeyValueStorage] = None,
    ):
        self.settings = settings or load_settings()
        self.auth_storage = auth_storage
        self._client_factory = client_factory or create_supabase_client
        self._client: Optional[Any] = None
        self._loop_ref: Optional[weakref.ref] = None

    @property
    def is_initialized(self) -> bool:
        return self._client is not None

    async def get_client(self) -> Any:
        """
        The client bound to the running event loop.

        Its HTTP connection pool belongs to the loop that created it, and
        Streamlit reruns each call asyncio.run() with a new loop, so the
        client is rebuilt whenever the loop changes.
        """
        loop = asyncio.get_running_loop()
        if self._client is not None and (self._loop_ref is None or self._loop_ref() is not loop):
            logger.info("Event loop changed, rebuilding Supabase client")
            self._client = None

        if self._client is None:
            self._client = await self._client_factory(self.settings, self.auth_storage)
            self._loop_ref = weakref.ref(loop)
        return self._client

    async def reinitialize(self) -> Any:
        """Drop the current client and build a fresh one."""
        self._client = None
        return await self.get_client()

    # =========================================================================
    # TABLE QUERIES
    # =========================================================================

    async def select(
        self,
        table: str,
        user_id: str,
        columns: str = "*",
        single: bool = False,
    ) -> Any:
        """Rows of table owned by user_id (at most one row when single)."""
        client = await self.get_client()
        query = client.table(table).select(columns).eq("user_id", user_id)
        if single:
            query = query.maybe_single()
        return await query.execute()

    async def insert(self, table: str, rows: Union[Row, List[Row]]) -> Any:
        client = await self.get_client()
        return await client.table(table).insert(rows).execute()

    async def update(self, table: str, user_id: str, values: Row) -> Any:
        client = await self.get_client()
        return await client.table(table).update(values).eq("user_id", user_id).execute()

    async def delete(self, table: str, user_id: str) -> Any:
        client = await self.get_client()
        return await client.table(table).delete().eq("user_id", user_id).execute()

    async def probe(self) -> Any:
        """Cheapest possible read against a table every deployment has."""
        client = await self.get_client()
        return await client.table(self.settings.probe_table).select("id").limit(1).execute()

    # =========================================================================
    # AUTH SESSION
    # =========================================================================

    async def has_session(self) -> bool:
        client = await self.get_client()
        session = await client.auth.get_session()
        return session is not None

    async def refresh_session(self) -> None:
        client = await self.get_client()
        await client.auth.refresh_session()
        logger.debug("Supabase session refreshed")

    async def sign_out_local(self) -> None:
        """Forget the session on this device only."""
        client = await self.get_client()
        await client.auth.sign_out({"scope": "local"})
        logger.info("Signed out local Supabase session")
