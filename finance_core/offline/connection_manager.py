# =============================================================================
# finance_core/offline/connection_manager.py
# Connection Health Detection, Recovery and Auto-Escalation
# =============================================================================
"""
ConnectionHealthMonitor - probes Supabase, retries with backoff and resets
the client when retries keep failing.

Features:
- Minimal probe query (select id limit 1 on the profiles table)
- Retry with exponential backoff, refreshing the auth session first
- Full reset: forget the persisted session, sign out locally, clear error
  flags, rebuild the client and reload the app
- Auto-escalation: 3 failed retries inside 5 minutes while unhealthy trigger
  one full reset; only a healthy probe re-arms it
- Event callbacks for status changes
- Optional asyncio background monitoring

State transitions (evaluated on every status update):

    unknown   -> healthy | unhealthy
    unhealthy -> healthy              (retry window cleared, latch re-armed)
    unhealthy -> unhealthy            (+1 retry when a retry run failed)
    unhealthy -> reset -> unknown     (threshold reached, latch not yet fired)
"""

from __future__ import annotations
import asyncio
import contextlib
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional
import logging

from finance_core.config import DataLayerSettings
from finance_core.offline.cache_store import utc_now
from finance_core.offline.outcomes import ErrorKind, QueryError
from finance_core.offline.query_executor import RemoteQueryExecutor
from finance_core.offline.retry import RetryController, RetryPolicy, Sleep
from finance_core.offline.session_flags import SessionFlags
from finance_core.offline.storage import KeyValueStorage, MemoryStorage

logger = logging.getLogger(__name__)


class HealthStatus(Enum):
    """Connection health states."""
    UNKNOWN = "unknown"         # Initial state, and right after a reset
    HEALTHY = "healthy"         # Last probe succeeded
    UNHEALTHY = "unhealthy"     # Last probe failed


@dataclass
class HealthState:
    """Current health state with metadata."""
    status: HealthStatus = HealthStatus.UNKNOWN
    total_retries: int = 0
    last_retry_at: Optional[datetime] = None
    recent_retries: List[datetime] = field(default_factory=list)
    last_error: Optional[QueryError] = None
    last_check: Optional[datetime] = None
    last_healthy: Optional[datetime] = None
    reset_count: int = 0
    escalated: bool = False


class ConnectionHealthMonitor:
    """
    Health monitor for the remote store.

    Usage:
        monitor = ConnectionHealthMonitor(gateway, settings=settings,
                                          reload_hook=request_rerun)
        if await monitor.probe() != HealthStatus.HEALTHY:
            recovered = await monitor.retry_with_backoff()
    """

    def __init__(
        self,
        gateway: Any,
        settings: Optional[DataLayerSettings] = None,
        executor: Optional[RemoteQueryExecutor] = None,
        flags: Optional[SessionFlags] = None,
        persistent_storage: Optional[KeyValueStorage] = None,
        reload_hook: Optional[Callable[[], Any]] = None,
        clock: Optional[Callable[[], datetime]] = None,
        sleep: Optional[Sleep] = None,
    ):
        self.gateway = gateway
        self.settings = settings or DataLayerSettings()
        self.flags = flags if flags is not None else SessionFlags()
        self.executor = executor if executor is not None else RemoteQueryExecutor(self.flags)
        self.persistent_storage = persistent_storage if persistent_storage is not None else MemoryStorage()
        self._reload_hook = reload_hook
        self._clock = clock or utc_now
        self._sleep = sleep or asyncio.sleep

        self.retry = RetryController(
            RetryPolicy(
                max_attempts=self.settings.retry_max_attempts,
                initial_delay_ms=self.settings.retry_initial_delay_ms,
                max_delay_ms=self.settings.retry_max_delay_ms,
                rate_limit_max_delay_ms=self.settings.rate_limit_max_delay_ms,
            ),
            sleep=self._sleep,
        )

        self._state = HealthState()
        self._callbacks: List[Callable[[HealthState], None]] = []
        self._monitor_task: Optional[asyncio.Task] = None

    @property
    def state(self) -> HealthState:
        return self._state

    @property
    def status(self) -> HealthStatus:
        return self._state.status

    @property
    def is_healthy(self) -> bool:
        return self._state.status == HealthStatus.HEALTHY

    # =========================================================================
    # PROBING
    # =========================================================================

    async def _run_probe(self):
        outcome = await self.executor.execute(self.gateway.probe, description="Health probe")
        if outcome.success:
            self.flags.clear_error_flags()
        return outcome

    async def probe(self) -> HealthStatus:
        """
        Run one probe query and update the state.

        Returns:
            HEALTHY or UNHEALTHY as observed by this probe
        """
        outcome = await self._run_probe()
        if outcome.success:
            await self._update_status(HealthStatus.HEALTHY)
            return HealthStatus.HEALTHY

        self._state.last_error = outcome.error
        await self._update_status(HealthStatus.UNHEALTHY)
        return HealthStatus.UNHEALTHY

    async def _refresh_session_if_present(self) -> None:
        try:
            if await self.gateway.has_session():
                await self.gateway.refresh_session()
        except Exception as e:
            logger.warning(f"Session refresh failed, probing anyway: {e}")

    async def retry_with_backoff(self, max_attempts: Optional[int] = None) -> bool:
        """
        Probe until healthy or attempts run out.

        Each attempt refreshes the auth session (when there is one) before
        probing. A run that ends unhealthy counts as one retry towards
        auto-escalation.

        Returns:
            True if the connection recovered
        """
        async def attempt():
            await self._refresh_session_if_present()
            return await self._run_probe()

        result = await self.retry.with_retry(attempt, max_attempts=max_attempts)

        if result.success:
            await self._update_status(HealthStatus.HEALTHY)
            return True

        if result.error.kind == ErrorKind.MAX_RETRIES_EXCEEDED:
            logger.warning("Health retry skipped: no attempts allowed")
            return False

        self._state.last_error = result.error
        await self._update_status(HealthStatus.UNHEALTHY, retry_failed=True)
        return False

    # =========================================================================
    # RESET
    # =========================================================================

    def _clear_persisted_session(self) -> int:
        prefixes = tuple(self.settings.session_key_prefixes)
        keys = [k for k in self.persistent_storage.keys() if k.startswith(prefixes)]
        for key in keys:
            self.persistent_storage.remove_item(key)
        return len(keys)

    async def full_reset(self) -> bool:
        """
        Forget the session and rebuild the client.

        Steps run in order and a failing step does not stop the rest:
        clear persisted session keys, sign out locally, clear error flags,
        reinitialise the client, invoke the reload hook.

        Returns:
            True when every step succeeded
        """
        logger.warning("Performing full connection reset")
        ok = True

        try:
            removed = self._clear_persisted_session()
            logger.debug(f"Removed {removed} persisted session keys")
        except Exception as e:
            logger.error(f"Could not clear persisted session: {e}")
            ok = False

        try:
            await self.gateway.sign_out_local()
        except Exception as e:
            logger.error(f"Local sign-out failed: {e}")
            ok = False

        self.flags.clear_error_flags()

        try:
            await self.gateway.reinitialize()
        except Exception as e:
            logger.error(f"Client reinitialisation failed: {e}")
            ok = False

        self._state.reset_count += 1
        self._state.recent_retries.clear()
        self._set_status(HealthStatus.UNKNOWN)

        if self._reload_hook is not None:
            try:
                self._reload_hook()
            except Exception as e:
                logger.error(f"Reload hook failed: {e}")
                ok = False

        return ok

    # =========================================================================
    # STATE MACHINE
    # =========================================================================

    def _set_status(self, new_status: HealthStatus) -> None:
        old_status = self._state.status
        self._state.status = new_status
        if old_status != new_status:
            logger.info(f"Connection health changed: {old_status.value} -> {new_status.value}")
            self._notify_callbacks()

    def _record_retry(self, now: datetime) -> None:
        self._state.total_retries += 1
        self._state.last_retry_at = now
        self._state.recent_retries.append(now)

    def _prune_window(self, now: datetime) -> None:
        window = self.settings.escalation_window
        self._state.recent_retries = [t for t in self._state.recent_retries if now - t <= window]

    def _should_escalate(self) -> bool:
        return (
            self._state.status == HealthStatus.UNHEALTHY
            and not self._state.escalated
            and len(self._state.recent_retries) >= self.settings.escalation_threshold
        )

    async def _update_status(self, new_status: HealthStatus, retry_failed: bool = False) -> None:
        now = self._clock()
        self._state.last_check = now

        if new_status == HealthStatus.HEALTHY:
            self._state.last_healthy = now
            self._state.last_error = None
            self._state.recent_retries.clear()
            self._state.escalated = False
        elif retry_failed:
            self._record_retry(now)

        self._prune_window(now)
        self._set_status(new_status)

        if self._should_escalate():
            self._state.escalated = True
            logger.warning(
                f"{len(self._state.recent_retries)} failed retries within "
                f"{self.settings.escalation_window_minutes} minutes, escalating to full reset"
            )
            await self.full_reset()

    # =========================================================================
    # MONITORING
    # =========================================================================

    def start_monitoring(self) -> asyncio.Task:
        """Start background probing on the running event loop."""
        if self._monitor_task is not None and not self._monitor_task.done():
            return self._monitor_task

        self._monitor_task = asyncio.get_running_loop().create_task(
            self._monitoring_loop(), name="ConnectionHealthMonitor"
        )
        logger.debug("Connection monitoring started")
        return self._monitor_task

    async def stop_monitoring(self) -> None:
        """Stop background probing."""
        task, self._monitor_task = self._monitor_task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        logger.debug("Connection monitoring stopped")

    async def _monitoring_loop(self) -> None:
        while True:
            interval = (
                self.settings.check_interval_healthy
                if self.is_healthy
                else self.settings.check_interval_unhealthy
            )
            await self._sleep(interval)

            try:
                await self.probe()
            except Exception as e:
                logger.error(f"Error in health check: {e}")

    # =========================================================================
    # CALLBACKS / DISPLAY
    # =========================================================================

    def register_callback(self, callback: Callable[[HealthState], None]) -> None:
        """
        Register a callback for health status changes.

        Args:
            callback: Function called with HealthState when status changes
        """
        if callback not in self._callbacks:
            self._callbacks.append(callback)

    def unregister_callback(self, callback: Callable[[HealthState], None]) -> None:
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    def _notify_callbacks(self) -> None:
        for callback in self._callbacks:
            try:
                callback(self._state)
            except Exception as e:
                logger.error(f"Error in health callback: {e}")

    def get_status_display(self) -> dict:
        """Get status information for UI display."""
        state = self._state
        return {
            "status": state.status.value,
            "is_healthy": self.is_healthy,
            "total_retries": state.total_retries,
            "recent_retries": len(state.recent_retries),
            "last_retry": state.last_retry_at.isoformat() if state.last_retry_at else None,
            "last_check": state.last_check.isoformat() if state.last_check else None,
            "last_healthy": state.last_healthy.isoformat() if state.last_healthy else None,
            "resets": state.reset_count,
            "error": state.last_error.to_dict() if state.last_error else None,
            "flags": self.flags.snapshot(),
        }
