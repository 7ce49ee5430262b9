# =============================================================================
# tests/conftest.py
# Pytest Configuration and Fixtures
# =============================================================================

import pytest
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from typing import Any, Dict, List, Optional
from unittest.mock import MagicMock

import httpx


USER_ID = "user-123"
OTHER_USER_ID = "user-456"


# =============================================================================
# TEST DOUBLES
# =============================================================================

class FakeClock:
    """Controllable UTC clock."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class RecordingSleep:
    """Async sleep replacement that records the requested delays (seconds)."""

    def __init__(self):
        self.calls: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)

    @property
    def delays_ms(self) -> List[int]:
        return [round(s * 1000) for s in self.calls]


class FakeAPIError(Exception):
    """Shaped like postgrest's APIError: message, code, hint, details."""

    def __init__(self, message: str, code: Optional[str] = None, hint: str = None, details: str = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.hint = hint
        self.details = details


class FakeGateway:
    """
    In-memory stand-in for SupabaseGateway.

    Failures are injected per operation, optionally per table:
        gateway.fail("select", FakeAPIError("...", code="PGRST106"), table="assets")
    """

    def __init__(self):
        self.tables: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
        self.errors: Dict[Any, Exception] = {}
        self.calls: List[tuple] = []
        self.session = False
        self.refresh_error: Optional[Exception] = None
        self.sign_out_error: Optional[Exception] = None
        self.refreshes = 0
        self.sign_outs = 0
        self.reinitializations = 0

    def fail(self, operation: str, error: Exception, table: Optional[str] = None) -> None:
        self.errors[(operation, table)] = error

    def recover(self) -> None:
        self.errors.clear()

    def count(self, operation: str, table: Optional[str] = None) -> int:
        return sum(
            1 for op, tbl in self.calls
            if op == operation and (table is None or tbl == table)
        )

    def _call(self, operation: str, table: str) -> None:
        self.calls.append((operation, table))
        error = self.errors.get((operation, table)) or self.errors.get((operation, None))
        if error is not None:
            raise error

    def seed(self, table: str, *rows: Dict[str, Any]) -> None:
        self.tables[table].extend(dict(r) for r in rows)

    async def select(self, table, user_id, columns="*", single=False):
        self._call("select", table)
        rows = [dict(r) for r in self.tables[table] if r.get("user_id") == user_id]
        if single:
            return SimpleNamespace(data=rows[0] if rows else None)
        return SimpleNamespace(data=rows)

    async def insert(self, table, rows):
        self._call("insert", table)
        rows = rows if isinstance(rows, list) else [rows]
        self.tables[table].extend(dict(r) for r in rows)
        return SimpleNamespace(data=rows)

    async def update(self, table, user_id, values):
        self._call("update", table)
        updated = []
        for row in self.tables[table]:
            if row.get("user_id") == user_id:
                row.update(values)
                updated.append(dict(row))
        return SimpleNamespace(data=updated)

    async def delete(self, table, user_id):
        self._call("delete", table)
        removed = [r for r in self.tables[table] if r.get("user_id") == user_id]
        self.tables[table] = [r for r in self.tables[table] if r.get("user_id") != user_id]
        return SimpleNamespace(data=removed)

    async def probe(self):
        self._call("probe", "profiles")
        return SimpleNamespace(data=[{"id": 1}])

    async def has_session(self):
        return self.session

    async def refresh_session(self):
        self.refreshes += 1
        if self.refresh_error is not None:
            raise self.refresh_error

    async def sign_out_local(self):
        self.sign_outs += 1
        if self.sign_out_error is not None:
            raise self.sign_out_error

    async def reinitialize(self):
        self.reinitializations += 1
        return self


class FakeSessionUser:
    """Callable current-user provider, like state.session.current_user_id."""

    def __init__(self, user_id: Optional[str] = USER_ID):
        self.user_id = user_id

    def __call__(self) -> Optional[str]:
        return self.user_id


def network_down() -> Exception:
    return httpx.ConnectError("[Errno 111] Connection refused")


# =============================================================================
# CORE FIXTURES
# =============================================================================

@pytest.fixture
def clock():
    """Controllable clock starting at 2024-01-01 12:00 UTC"""
    return FakeClock()


@pytest.fixture
def sleep():
    """Recorded async sleep"""
    return RecordingSleep()


@pytest.fixture
def memory_storage():
    from finance_core.offline.storage import MemoryStorage
    return MemoryStorage()


@pytest.fixture
def session_storage():
    from finance_core.offline.storage import MemoryStorage
    return MemoryStorage()


@pytest.fixture
def cache_store(memory_storage, clock):
    from finance_core.offline.cache_store import LocalCacheStore
    return LocalCacheStore(memory_storage, clock=clock)


@pytest.fixture
def flags(session_storage):
    from finance_core.offline.session_flags import SessionFlags
    return SessionFlags(session_storage)


@pytest.fixture
def settings(tmp_path):
    from finance_core.config import DataLayerSettings
    return DataLayerSettings(
        supabase_url="https://test-project.supabase.co",
        supabase_key="test-anon-key",
        cache_file=tmp_path / "local_storage.json",
    )


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def monitor(gateway, settings, flags, memory_storage, clock, sleep):
    from finance_core.offline.connection_manager import ConnectionHealthMonitor
    return ConnectionHealthMonitor(
        gateway,
        settings=settings,
        flags=flags,
        persistent_storage=memory_storage,
        reload_hook=MagicMock(),
        clock=clock,
        sleep=sleep,
    )


@pytest.fixture
def current_user():
    """Signed-in user of the calling session; set .user_id to switch"""
    return FakeSessionUser()


@pytest.fixture
def data_service(gateway, cache_store, flags, settings, monitor, sleep, current_user):
    from finance_core.offline.data_service import DataService
    return DataService(
        gateway,
        cache_store,
        flags=flags,
        settings=settings,
        monitor=monitor,
        user_id_provider=current_user,
        sleep=sleep,
    )


# =============================================================================
# SAMPLE DATA FIXTURES
# =============================================================================

@pytest.fixture
def sample_assets():
    return [
        {"id": 1, "user_id": USER_ID, "name": "House", "type": "real_estate", "value": 300000},
        {"id": 2, "user_id": USER_ID, "name": "Savings", "type": "cash", "value": "20000"},
    ]


@pytest.fixture
def sample_liabilities():
    return [
        {"id": 1, "user_id": USER_ID, "name": "Mortgage", "amount": 200000},
        {"id": 2, "user_id": USER_ID, "name": "Car loan", "amount": "bogus"},
    ]


@pytest.fixture
def sample_income():
    return [
        {"id": 1, "user_id": USER_ID, "source": "Salary", "amount": 6000, "frequency": "monthly"},
        {"id": 2, "user_id": USER_ID, "source": "Bonus", "amount": 12000, "frequency": "annually"},
    ]


@pytest.fixture
def sample_expenses():
    return [
        {"id": 1, "user_id": USER_ID, "name": "Rent", "amount": 2000,
         "frequency": "monthly", "category": "Housing"},
        {"id": 2, "user_id": USER_ID, "name": "Groceries", "amount": 250,
         "frequency": "weekly", "category": "Food"},
    ]


@pytest.fixture
def sample_personal_info():
    return {
        "id": 7,
        "user_id": USER_ID,
        "first_name": "Ada",
        "last_name": "Lovelace",
        "email": "ada@example.com",
        "phone": "555-0100",
        "address": "12 Analytical Way",
        "city": "London",
        "state": "LDN",
        "zip_code": "N1",
    }


# =============================================================================
# MOCK FIXTURES
# =============================================================================

@pytest.fixture
def mock_streamlit(monkeypatch):
    """Mock Streamlit for testing"""
    mock_st = MagicMock()
    mock_st.session_state = {}
    mock_st.secrets = {}
    mock_st.cache_data = lambda f: f
    mock_st.cache_resource = lambda f: f

    monkeypatch.setattr("finance_core.config.st", mock_st)
    monkeypatch.setattr("finance_core.state.session.st", mock_st)

    yield mock_st


@pytest.fixture
def mock_supabase():
    """Mock async Supabase client"""
    from unittest.mock import AsyncMock

    mock_client = MagicMock()
    query = mock_client.table.return_value.select.return_value
    query.eq.return_value = query
    query.limit.return_value = query
    query.maybe_single.return_value = query
    query.execute = AsyncMock(return_value=SimpleNamespace(data=[]))
    mock_client.auth.get_session = AsyncMock(return_value=None)
    mock_client.auth.refresh_session = AsyncMock()
    mock_client.auth.sign_out = AsyncMock()
    return mock_client
