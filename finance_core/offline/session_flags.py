# =============================================================================
# finance_core/offline/session_flags.py
# Session-Scoped Diagnostic Flags
# =============================================================================
"""
SessionFlags - remembers which kinds of database failure this session has seen.

Flags are diagnostics only: they never block a later call. Write paths read
the schema flag to skip a round trip that is known to fail.
"""

from __future__ import annotations
from typing import Dict, Optional
import logging

from finance_core.offline.outcomes import ErrorKind, QueryError
from finance_core.offline.storage import KeyValueStorage, MemoryStorage

logger = logging.getLogger(__name__)

SCHEMA_ERROR_FLAG = "db_schema_error"
AUTH_ERROR_FLAG = "db_auth_error"
NETWORK_ERROR_FLAG = "db_network_error"
RATE_LIMIT_ERROR_FLAG = "db_rate_limit_error"
CONNECTION_STATUS_KEY = "db_connection_status"

STATUS_CONNECTED = "connected"
STATUS_DISCONNECTED = "disconnected"

ERROR_FLAGS = (
    SCHEMA_ERROR_FLAG,
    AUTH_ERROR_FLAG,
    NETWORK_ERROR_FLAG,
    RATE_LIMIT_ERROR_FLAG,
)

_FLAG_BY_KIND = {
    ErrorKind.SCHEMA: SCHEMA_ERROR_FLAG,
    ErrorKind.AUTH: AUTH_ERROR_FLAG,
    ErrorKind.RATE_LIMIT: RATE_LIMIT_ERROR_FLAG,
}


class SessionFlags:
    """Boolean flags stored as "true"/absent, plus the connection status."""

    def __init__(self, storage: Optional[KeyValueStorage] = None):
        self.storage = storage if storage is not None else MemoryStorage()

    def is_set(self, flag: str) -> bool:
        return self.storage.get_item(flag) == "true"

    def set(self, flag: str) -> None:
        self.storage.set_item(flag, "true")

    def clear(self, flag: str) -> None:
        self.storage.remove_item(flag)

    @property
    def has_schema_issue(self) -> bool:
        return self.is_set(SCHEMA_ERROR_FLAG)

    @property
    def connection_status(self) -> Optional[str]:
        return self.storage.get_item(CONNECTION_STATUS_KEY)

    def record_failure(self, error: QueryError) -> None:
        """Set the flag matching the failure kind."""
        flag = _FLAG_BY_KIND.get(error.kind)
        if flag:
            self.set(flag)

        if error.kind == ErrorKind.CONNECTION:
            self.storage.set_item(CONNECTION_STATUS_KEY, STATUS_DISCONNECTED)
            if error.network_outage:
                self.set(NETWORK_ERROR_FLAG)

    def record_success(self) -> None:
        self.storage.set_item(CONNECTION_STATUS_KEY, STATUS_CONNECTED)

    def clear_error_flags(self) -> None:
        for flag in ERROR_FLAGS:
            self.clear(flag)
        logger.debug("Cleared database error flags")

    def snapshot(self) -> Dict[str, object]:
        data: Dict[str, object] = {flag: self.is_set(flag) for flag in ERROR_FLAGS}
        data[CONNECTION_STATUS_KEY] = self.connection_status
        return data
