# =============================================================================
# finance_core/offline/error_classifier.py
# Heuristic Classification of Remote Errors
# =============================================================================
"""
Maps an error from the Supabase stack to exactly one ErrorKind.

Precedence is fixed: rate limit, then schema, then auth, then connection.
An error that matches several heuristics (e.g. "JWT rate limit reached")
therefore always lands in the same bucket.
"""

from __future__ import annotations
from collections.abc import Mapping
from typing import Any, Optional, Tuple

import httpx

from finance_core.offline.outcomes import ErrorKind, QueryError

RATE_LIMIT_CODES = frozenset({
    "429",
    "over_request_rate_limit",
    "over_email_send_rate_limit",
    "over_sms_send_rate_limit",
})
RATE_LIMIT_MARKERS = ("rate limit", "too many requests", "rate_limit")

SCHEMA_CODES = frozenset({
    "pgrst106",     # schema not exposed
    "pgrst204",     # column not found in schema cache
    "pgrst205",     # table not found in schema cache
    "42p01",        # undefined_table
})
SCHEMA_MARKERS = ("schema",)

AUTH_CODES = frozenset({
    "42501",        # insufficient_privilege (RLS)
    "pgrst301",     # JWT invalid/expired
    "pgrst302",     # anonymous access disabled
    "401",
    "403",
    "bad_jwt",
    "session_not_found",
    "refresh_token_not_found",
})
AUTH_MARKERS = ("jwt", "auth", "permission")

FETCH_FAILURE_MARKERS = ("failed to fetch", "fetch failed", "networkerror", "network error")


def _field(error: Any, name: str) -> Any:
    if isinstance(error, Mapping):
        return error.get(name)
    return getattr(error, name, None)


def error_fields(error: Any) -> Tuple[str, Optional[str]]:
    """Return (message, code) for any error shape."""
    message = _field(error, "message")
    if not message:
        message = str(error) if not isinstance(error, Mapping) else ""

    code = _field(error, "code")
    if code is None:
        code = _field(error, "status")

    return str(message), (str(code) if code is not None else None)


def is_structured_error(error: Any) -> bool:
    """True for error records (PostgREST/GoTrue) as opposed to bare transport exceptions."""
    if isinstance(error, str):
        return True
    if isinstance(error, Mapping):
        return "message" in error or "code" in error
    if isinstance(error, httpx.TransportError):
        return False
    return _field(error, "code") is not None


def is_fetch_failure(error: Any) -> bool:
    """True when the request never reached the server."""
    if isinstance(error, (httpx.TransportError, ConnectionError)):
        return True
    message, _ = error_fields(error)
    lowered = message.lower()
    return any(marker in lowered for marker in FETCH_FAILURE_MARKERS)


def classify(error: Any) -> ErrorKind:
    """
    Classify an error record by message and code, case-insensitively.

    Args:
        error: exception, mapping or object with message/code attributes

    Returns:
        RATE_LIMIT, SCHEMA, AUTH or CONNECTION
    """
    message, code = error_fields(error)
    message = message.lower()
    code = (code or "").lower()

    if code in RATE_LIMIT_CODES or any(m in message for m in RATE_LIMIT_MARKERS):
        return ErrorKind.RATE_LIMIT
    if code in SCHEMA_CODES or any(m in message for m in SCHEMA_MARKERS):
        return ErrorKind.SCHEMA
    if code in AUTH_CODES or any(m in message for m in AUTH_MARKERS):
        return ErrorKind.AUTH
    return ErrorKind.CONNECTION


def to_query_error(error: Any) -> QueryError:
    """
    Build a QueryError from anything a query function returned or raised.

    Structured records are classified; anything else is a connection error,
    flagged as a network outage when it is a fetch-layer failure.
    """
    message, code = error_fields(error)

    if is_structured_error(error):
        return QueryError(kind=classify(error), message=message, code=code, raw=error)

    return QueryError(
        kind=ErrorKind.CONNECTION,
        message=message or error.__class__.__name__,
        code=code,
        raw=error,
        network_outage=is_fetch_failure(error),
    )
