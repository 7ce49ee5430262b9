# =============================================================================
# finance_core/offline/single_flight.py
# Request Coalescing for Identical In-Flight Queries
# =============================================================================
"""
SingleFlight - at most one in-flight call per key; concurrent callers for the
same key await the leader's result instead of issuing duplicates.

Disabled by default in the data layer (DataLayerSettings.coalesce_requests)
because it changes observable timing: a follower sees the leader's result
even if it arrived later than the follower asked.
"""

from __future__ import annotations
import asyncio
from typing import Any, Awaitable, Callable, Dict, Hashable
import logging

logger = logging.getLogger(__name__)


class SingleFlight:

    def __init__(self):
        self._inflight: Dict[Hashable, asyncio.Future] = {}

    def in_flight(self, key: Hashable) -> bool:
        return key in self._inflight

    async def do(self, key: Hashable, fn: Callable[[], Awaitable[Any]]) -> Any:
        existing = self._inflight.get(key)
        if existing is not None:
            logger.debug(f"Joining in-flight call for {key}")
            return await asyncio.shield(existing)

        future = asyncio.get_running_loop().create_future()
        self._inflight[key] = future
        try:
            result = await fn()
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as e:
            future.set_exception(e)
            # Mark retrieved so an unobserved failure is not reported twice
            future.exception()
            raise
        else:
            future.set_result(result)
            return result
        finally:
            self._inflight.pop(key, None)
