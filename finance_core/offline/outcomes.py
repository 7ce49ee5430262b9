# =============================================================================
# finance_core/offline/outcomes.py
# Structured Results for Remote Queries
# =============================================================================
"""
Value types passed between the executor, the resilient wrapper, the retry
controller and callers. Remote failures travel as data, never as exceptions.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Union


class ErrorKind(str, Enum):
    """Failure taxonomy."""
    RATE_LIMIT = "rate_limit_error"
    SCHEMA = "schema_error"
    AUTH = "auth_error"
    CONNECTION = "connection_error"
    CACHE_PARSE = "cache_parse_error"
    MAX_RETRIES_EXCEEDED = "max_retries_exceeded"


@dataclass(frozen=True)
class QueryError:
    """One classified failure."""
    kind: ErrorKind
    message: str
    code: Optional[str] = None
    raw: Any = field(default=None, compare=False, repr=False)
    network_outage: bool = False

    @classmethod
    def max_retries_exceeded(cls) -> QueryError:
        return cls(kind=ErrorKind.MAX_RETRIES_EXCEEDED, message="max retries exceeded")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "code": self.code,
            "network_outage": self.network_outage,
        }


@dataclass(frozen=True)
class Success:
    data: Any = None

    @property
    def success(self) -> bool:
        return True


@dataclass(frozen=True)
class Failure:
    error: QueryError

    @property
    def success(self) -> bool:
        return False

    @property
    def kind(self) -> ErrorKind:
        return self.error.kind


QueryOutcome = Union[Success, Failure]


@dataclass
class QueryResult:
    """
    What callers of the data layer receive.

    success=False with data present means degraded mode: the data is the
    last known good copy (or the caller's fallback) and error says why.
    local_data=True marks data saved on this device that never reached the
    remote store.
    """
    data: Any = None
    error: Optional[QueryError] = None
    success: bool = True
    used_cache: bool = False
    local_saved: bool = False
    local_data: bool = False

    def __bool__(self) -> bool:
        return self.success

    @property
    def degraded(self) -> bool:
        return not self.success and self.data is not None

    @classmethod
    def ok(cls, data: Any = None, used_cache: bool = False) -> QueryResult:
        return cls(data=data, error=None, success=True, used_cache=used_cache)

    @classmethod
    def fail(
        cls,
        error: QueryError,
        data: Any = None,
        used_cache: bool = False,
        local_saved: bool = False,
        local_data: bool = False,
    ) -> QueryResult:
        return cls(
            data=data,
            error=error,
            success=False,
            used_cache=used_cache,
            local_saved=local_saved,
            local_data=local_data,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "data": self.data,
            "error": self.error.to_dict() if self.error else None,
            "success": self.success,
            "used_cache": self.used_cache,
            "local_saved": self.local_saved,
            "local_data": self.local_data,
        }
