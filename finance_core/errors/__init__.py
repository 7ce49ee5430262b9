# =============================================================================
# finance_core/errors/__init__.py
# Centralized Error Types for the FinanceHub data layer
# =============================================================================

from .exceptions import (
    FinanceHubError,
    ConfigurationError,
    StorageError,
    CacheParseWarning,
)

__all__ = [
    "FinanceHubError",
    "ConfigurationError",
    "StorageError",
    "CacheParseWarning",
]
