# =============================================================================
# finance_core/offline/__init__.py
# Resilient Data Layer for FinanceHub
# =============================================================================
"""
Resilient Data Layer Module

Reads are served cache-first and keep working on the last known good copy
while Supabase is unreachable; writes fall back to a local save.

Architecture:
------------
┌─────────────────────────────────────────────────────────────────┐
│                       RESILIENT DATA LAYER                       │
├─────────────────────────────────────────────────────────────────┤
│                                                                  │
│   ┌──────────────────────────────────────────────────────────┐  │
│   │                      DataService                          │  │
│   │         (Single API - Apps use this only)                 │  │
│   └──────────────────────────────────────────────────────────┘  │
│              │                 │                  │              │
│              ▼                 ▼                  ▼              │
│   ┌────────────────┐ ┌─────────────────┐ ┌─────────────────┐    │
│   │ RetryController│ │ ResilientQuery  │ │ ConnectionHealth│    │
│   │   (Backoff)    │ │ (Cache-first)   │ │    Monitor      │    │
│   └────────────────┘ └─────────────────┘ └─────────────────┘    │
│                         │          │              │              │
│                         ▼          ▼              │              │
│              ┌──────────────┐ ┌──────────────────┐│              │
│              │LocalCacheStore│ │RemoteQueryExecutor◄┘             │
│              │ (JSON file)  │ │ (classify errors)│               │
│              └──────────────┘ └──────────────────┘               │
│                                        │                         │
│                                        ▼                         │
│                                  ┌──────────┐                    │
│                                  │ Supabase │                    │
│                                  └──────────┘                    │
└─────────────────────────────────────────────────────────────────┘

Usage:
------
from finance_core.offline import get_data_service

service = get_data_service()
result = await service.get_assets(user_id)

print(result.success, result.used_cache)
print(service.get_cache_stats().to_dict())
"""

from finance_core.offline.storage import (
    KeyValueStorage,
    MemoryStorage,
    JsonFileStorage,
)

from finance_core.offline.cache_store import (
    EntityKind,
    CacheKey,
    CacheEntry,
    CacheStats,
    LocalCacheStore,
)

from finance_core.offline.outcomes import (
    ErrorKind,
    QueryError,
    QueryResult,
    Success,
    Failure,
)

from finance_core.offline.error_classifier import classify, to_query_error

from finance_core.offline.session_flags import SessionFlags

from finance_core.offline.query_executor import RemoteQueryExecutor

from finance_core.offline.retry import (
    RetryController,
    RetryPolicy,
    with_retry,
    backoff_schedule,
)

from finance_core.offline.single_flight import SingleFlight

from finance_core.offline.resilient_query import ResilientQuery

from finance_core.offline.connection_manager import (
    ConnectionHealthMonitor,
    HealthStatus,
    HealthState,
)

from finance_core.offline.data_service import (
    DataService,
    get_data_service,
    reset_data_service,
)

__all__ = [
    # Storage
    "KeyValueStorage",
    "MemoryStorage",
    "JsonFileStorage",
    # Cache
    "EntityKind",
    "CacheKey",
    "CacheEntry",
    "CacheStats",
    "LocalCacheStore",
    # Results
    "ErrorKind",
    "QueryError",
    "QueryResult",
    "Success",
    "Failure",
    "classify",
    "to_query_error",
    "SessionFlags",
    # Execution
    "RemoteQueryExecutor",
    "RetryController",
    "RetryPolicy",
    "with_retry",
    "backoff_schedule",
    "SingleFlight",
    "ResilientQuery",
    # Health
    "ConnectionHealthMonitor",
    "HealthStatus",
    "HealthState",
    # Data Service (Main API)
    "DataService",
    "get_data_service",
    "reset_data_service",
]
