# =============================================================================
# finance_core/services/base_service.py
# Base Service Class with Common Functionality
# =============================================================================

from __future__ import annotations
from abc import ABC
from typing import Callable, Optional

from finance_core.logging import LogContext, get_logger


class BaseService(ABC):
    """
    Abstract base class for all services.

    Provides common functionality:
    - Logging
    - Progress callbacks

    Usage:
        class MyService(BaseService):
            async def do_something(self):
                with self.log_operation("Doing something"):
                    return await ...
    """

    def __init__(self):
        self.logger = get_logger(self.__class__.__name__)
        self._progress_callback: Optional[Callable[[int, str], None]] = None

    def set_progress_callback(
        self,
        callback: Callable[[int, str], None]
    ) -> None:
        """
        Set a callback for progress updates.

        Args:
            callback: Function that takes (percentage: int, message: str)
        """
        self._progress_callback = callback

    def _update_progress(self, percentage: int, message: str = "") -> None:
        """Update progress via callback if set"""
        if self._progress_callback:
            self._progress_callback(percentage, message)

    def log_operation(self, operation: str) -> LogContext:
        """
        Create a logging context for an operation.

        Usage:
            with self.log_operation("Computing summary"):
                summary = compute_summary(...)
        """
        return LogContext(self.logger, operation)
