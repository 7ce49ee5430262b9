# =============================================================================
# finance_core/errors/exceptions.py
# Custom Exception Hierarchy for the FinanceHub data layer
# =============================================================================
"""
Exceptions raised inside the data layer.

Remote query failures are never raised past the resilient query boundary;
they travel as structured results (see finance_core.offline.outcomes). The
exceptions below cover local problems: bad configuration and local storage
that cannot be written.
"""

from typing import Optional, Dict, Any


class FinanceHubError(Exception):
    """
    Base exception for all FinanceHub errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code (e.g., "STORAGE_001")
        details: Additional context as a dictionary
        recoverable: Whether the error can be recovered from
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        recoverable: bool = True,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or "FH_000"
        self.details = details or {}
        self.recoverable = recoverable

    def __str__(self) -> str:
        base = f"[{self.code}] {self.message}"
        if self.details:
            base += f" | Details: {self.details}"
        return base

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization"""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "details": self.details,
            "recoverable": self.recoverable,
        }


class ConfigurationError(FinanceHubError):
    """Raised when configuration is invalid or missing"""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if config_key:
            details["config_key"] = config_key

        super().__init__(
            message=message,
            code="CONFIG_001",
            details=details,
            recoverable=False,
            **kwargs,
        )


class StorageError(FinanceHubError):
    """Raised when the local key/value storage cannot be written"""

    def __init__(
        self,
        message: str,
        key: Optional[str] = None,
        path: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if key:
            details["key"] = key
        if path:
            details["path"] = path

        super().__init__(
            message=message,
            code="STORAGE_001",
            details=details,
            **kwargs,
        )


class CacheParseWarning(UserWarning):
    """Emitted when a cached payload cannot be decoded; the entry is left in place."""
