# =============================================================================
# finance_core/offline/retry.py
# Retry Controller with Exponential Backoff
# =============================================================================
"""
RetryController - bounded retries around any async operation whose result
exposes ``success`` (and, on failure, ``error.kind``).

Backoff:
    generic failure     delay x2, capped at 10 000 ms   (300, 600, 1200, ...)
    rate_limit_error    delay x3, capped at 30 000 ms   (300, 900, 2700, ...)

The delay grows after each sleep, using the kind of the failure that caused
it. The last failure is returned unchanged once attempts run out.
"""

from __future__ import annotations
import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, List, Optional, Sequence
import logging

from finance_core.offline.outcomes import ErrorKind, QueryError, QueryResult

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[Any]]


@dataclass
class RetryState:
    """Per-call bookkeeping; never persisted."""
    attempt: int = 0
    current_delay_ms: int = 300


@dataclass
class RetryPolicy:
    max_attempts: int = 3
    initial_delay_ms: int = 300
    max_delay_ms: int = 10_000
    rate_limit_max_delay_ms: int = 30_000
    multiplier: int = 2
    rate_limit_multiplier: int = 3

    def next_delay(self, current_ms: int, kind: Optional[ErrorKind]) -> int:
        if kind == ErrorKind.RATE_LIMIT:
            return min(current_ms * self.rate_limit_multiplier, self.rate_limit_max_delay_ms)
        return min(current_ms * self.multiplier, self.max_delay_ms)


def failure_kind(result: Any) -> Optional[ErrorKind]:
    error = getattr(result, "error", None)
    return getattr(error, "kind", None)


def backoff_schedule(
    failure_kinds: Sequence[Optional[ErrorKind]],
    initial_delay_ms: int = 300,
    policy: Optional[RetryPolicy] = None,
) -> List[int]:
    """
    Delays slept after each failure in ``failure_kinds``.

    >>> backoff_schedule([None, None, None])
    [300, 600, 1200]
    >>> backoff_schedule([ErrorKind.RATE_LIMIT] * 3)
    [300, 900, 2700]
    """
    policy = policy or RetryPolicy()
    delays = []
    current = initial_delay_ms
    for kind in failure_kinds:
        delays.append(current)
        current = policy.next_delay(current, kind)
    return delays


class RetryController:
    """
    Usage:
        controller = RetryController()
        result = await controller.with_retry(lambda: service.safe_query(...))
    """

    def __init__(self, policy: Optional[RetryPolicy] = None, sleep: Optional[Sleep] = None):
        self.policy = policy or RetryPolicy()
        self._sleep = sleep or asyncio.sleep

    async def with_retry(
        self,
        operation: Callable[[], Awaitable[Any]],
        max_attempts: Optional[int] = None,
        initial_delay_ms: Optional[int] = None,
    ) -> Any:
        """
        Run operation until it succeeds or attempts run out.

        Args:
            operation: async callable returning an object with ``success``
            max_attempts: total attempts (default from policy)
            initial_delay_ms: first backoff delay (default from policy)

        Returns:
            The first successful result, else the last failed one. With
            max_attempts <= 0 a max_retries_exceeded failure is returned
            without calling operation.
        """
        if max_attempts is None:
            max_attempts = self.policy.max_attempts
        if initial_delay_ms is None:
            initial_delay_ms = self.policy.initial_delay_ms

        if max_attempts <= 0:
            logger.warning("Retry requested with no attempts allowed")
            return QueryResult.fail(QueryError.max_retries_exceeded())

        state = RetryState(attempt=0, current_delay_ms=initial_delay_ms)

        while True:
            result = await operation()
            state.attempt += 1

            if result.success:
                if state.attempt > 1:
                    logger.info(f"Operation succeeded after {state.attempt} attempts")
                return result

            if state.attempt >= max_attempts:
                logger.error(f"Operation failed after {max_attempts} attempts")
                return result

            kind = failure_kind(result)
            logger.info(
                f"Attempt {state.attempt}/{max_attempts} failed"
                f"{f' [{kind.value}]' if kind else ''}, retrying in {state.current_delay_ms}ms"
            )
            await self._sleep(state.current_delay_ms / 1000)
            state.current_delay_ms = self.policy.next_delay(state.current_delay_ms, kind)


async def with_retry(
    operation: Callable[[], Awaitable[Any]],
    max_attempts: int = 3,
    initial_delay_ms: int = 300,
    sleep: Optional[Sleep] = None,
) -> Any:
    """Module-level shortcut with the default policy."""
    return await RetryController(sleep=sleep).with_retry(
        operation, max_attempts=max_attempts, initial_delay_ms=initial_delay_ms
    )
