# =============================================================================
# finance_core/offline/query_executor.py
# Remote Query Executor
# =============================================================================
"""
RemoteQueryExecutor - runs one logical read/write and classifies the outcome.

A query function is an async callable returning what the Supabase client
returns: an APIResponse (``.data``), a ``{"data": ..., "error": ...}``
envelope, or raising. The executor turns all of these into a Success or a
Failure and updates the session flags.
"""

from __future__ import annotations
from collections.abc import Mapping
from typing import Any, Awaitable, Callable, Optional
import logging

from finance_core.offline.error_classifier import to_query_error
from finance_core.offline.outcomes import Failure, QueryError, QueryOutcome, Success
from finance_core.offline.session_flags import SessionFlags

logger = logging.getLogger(__name__)

QueryFn = Callable[[], Awaitable[Any]]


def _is_envelope(response: Any) -> bool:
    return isinstance(response, Mapping) and ("data" in response or "error" in response)


def response_error(response: Any) -> Any:
    """Error carried inside a response, if any."""
    if response is None:
        return None
    if _is_envelope(response):
        return response.get("error")
    return getattr(response, "error", None)


def response_data(response: Any) -> Any:
    """Payload of a response (maybe_single() may return None for no row)."""
    if response is None:
        return None
    if _is_envelope(response):
        return response.get("data")
    if hasattr(response, "data"):
        return response.data
    return response


class RemoteQueryExecutor:
    """
    Wraps a single remote call.

    Usage:
        executor = RemoteQueryExecutor(flags)
        outcome = await executor.execute(
            lambda: client.table("assets").select("*").eq("user_id", uid).execute()
        )
        if outcome.success:
            rows = outcome.data
    """

    def __init__(self, flags: Optional[SessionFlags] = None):
        self.flags = flags if flags is not None else SessionFlags()

    async def execute(self, query_fn: QueryFn, description: str = "Remote query") -> QueryOutcome:
        try:
            response = await query_fn()
        except Exception as e:
            return self._failure(to_query_error(e), description)

        error = response_error(response)
        if error is not None:
            return self._failure(to_query_error(error), description)

        self.flags.record_success()
        return Success(response_data(response))

    def _failure(self, error: QueryError, description: str) -> Failure:
        logger.warning(
            f"{description} failed [{error.kind.value}]"
            f"{' (network outage)' if error.network_outage else ''}: {error.message}"
        )
        self.flags.record_failure(error)
        return Failure(error)
