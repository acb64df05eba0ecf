# =============================================================================
# tests/conftest.py
# Pytest Configuration and Fixtures
# =============================================================================

import pytest
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List
from unittest.mock import MagicMock

from dma_core.data.models import (
    EvacuationCenter,
    Resident,
    StatusLogEntry,
    User,
)


EVENT_ID = "evt-1"
BASE_TIME = datetime(2024, 11, 2, 8, 0, tzinfo=timezone.utc)


def at(minutes: int) -> datetime:
    """Timestamp ``minutes`` after the base time."""
    return BASE_TIME + timedelta(minutes=minutes)


# =============================================================================
# SAMPLE DATA FIXTURES
# =============================================================================

@pytest.fixture
def sample_residents() -> List[Resident]:
    """Two families in Daraga and one resident in Legazpi City"""
    return [
        Resident(id="r1", first_name="Maria", last_name="Santos", municipality="Daraga",
                 barangay="Busay", head_of_family_name="Jose Santos"),
        Resident(id="r2", first_name="Jose", last_name="Santos", municipality="Daraga",
                 barangay="Busay", head_of_family_name="Jose Santos", is_head_of_family=True),
        Resident(id="r3", first_name="Ana", last_name="Reyes", municipality="Daraga",
                 barangay="Tagas", head_of_family_name="Ana Reyes", is_head_of_family=True),
        Resident(id="r4", first_name="Pedro", last_name="Cruz", municipality="Legazpi City",
                 barangay="Bitano"),
    ]


@pytest.fixture
def sample_centers() -> List[EvacuationCenter]:
    """Evacuation centers with different capacities"""
    return [
        EvacuationCenter(id="c1", name="Busay Elementary School", barangay="Busay", capacity=2),
        EvacuationCenter(id="c2", name="Tagas Covered Court", barangay="Tagas", capacity=10),
        EvacuationCenter(id="c3", name="Parish Hall", barangay="Busay", capacity=0),
    ]


@pytest.fixture
def sample_log() -> List[StatusLogEntry]:
    """Status log for the active event plus one row from an older event"""
    return [
        StatusLogEntry("r1", "Safe", EVENT_ID, at(0), log_id=1),
        StatusLogEntry("r1", "Evacuated", EVENT_ID, at(30), evac_center_id="c1", log_id=2),
        StatusLogEntry("r2", "Evacuated", EVENT_ID, at(10), evac_center_id="c1", log_id=3),
        StatusLogEntry("r3", "Injured", EVENT_ID, at(5), log_id=4),
        StatusLogEntry("r4", "Missing", "evt-old", at(50), log_id=5),
    ]


@pytest.fixture
def encoder() -> User:
    return User(id="u1", role="encoder", email="encoder@example.org")


@pytest.fixture
def viewer() -> User:
    return User(id="u2", role="viewer", email="viewer@example.org")


@pytest.fixture
def temp_cache(tmp_path):
    """LocalObjectCache backed by a temporary database file"""
    from dma_core.offline.local_cache import LocalObjectCache

    cache = LocalObjectCache(tmp_path / "offline.db")
    yield cache
    cache.close()


# =============================================================================
# FAKE SUPABASE CLIENT
# =============================================================================

class FakeResponse:
    def __init__(self, data):
        self.data = data


class FakeQuery:
    """Chainable query builder over in-memory rows, mimicking postgrest"""

    def __init__(self, client: "FakeSupabaseClient", table: str):
        self.client = client
        self.table_name = table
        self.filters = []
        self.orders = []
        self.bounds = None
        self.max_rows = None
        self.inserted = None

    def select(self, columns: str = "*"):
        self.client.calls.append(("select", self.table_name, columns))
        return self

    def eq(self, column: str, value: Any):
        self.filters.append(lambda row: row.get(column) == value)
        self.client.calls.append(("eq", self.table_name, column, value))
        return self

    def in_(self, column: str, values: List[Any]):
        allowed = set(values)
        self.filters.append(lambda row: row.get(column) in allowed)
        self.client.calls.append(("in", self.table_name, column, list(values)))
        return self

    def order(self, column: str):
        self.orders.append(column)
        return self

    def range(self, start: int, end: int):
        self.bounds = (start, end)
        self.client.calls.append(("range", self.table_name, start, end))
        return self

    def limit(self, n: int):
        self.max_rows = n
        return self

    def insert(self, records: List[Dict[str, Any]]):
        self.inserted = list(records)
        return self

    def execute(self) -> FakeResponse:
        if self.table_name in self.client.failing_tables:
            raise ConnectionError(f"network unreachable ({self.table_name})")

        rows = self.client.tables.setdefault(self.table_name, [])
        if self.inserted is not None:
            self.client.inserts.append((self.table_name, self.inserted))
            rows.extend(self.inserted)
            return FakeResponse(self.inserted)

        selected = [row for row in rows if all(f(row) for f in self.filters)]
        for column in reversed(self.orders):
            selected.sort(key=lambda row: (row.get(column) is None, str(row.get(column))))
        if self.bounds is not None:
            start, end = self.bounds
            selected = selected[start:end + 1]
        if self.max_rows is not None:
            selected = selected[:self.max_rows]
        return FakeResponse([dict(row) for row in selected])


class FakeSupabaseClient:
    """In-memory stand-in for supabase.Client"""

    def __init__(self, tables: Dict[str, List[Dict[str, Any]]] = None):
        self.tables = {name: list(rows) for name, rows in (tables or {}).items()}
        self.calls = []
        self.inserts = []
        self.failing_tables = set()

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)


def log_row(log_id: int, resident_id: str, status: str, minutes: int,
            event_id: str = EVENT_ID, evac_center_id: str = None) -> Dict[str, Any]:
    """A resident_status_log row as returned by Supabase"""
    return {
        "id": log_id,
        "resident_id": resident_id,
        "status": status,
        "event_id": event_id,
        "timestamp": at(minutes).isoformat(),
        "evac_center_id": evac_center_id,
    }


@pytest.fixture
def remote_tables(sample_residents, sample_centers) -> Dict[str, List[Dict[str, Any]]]:
    """Server-side rows for the sample data set"""
    return {
        "residents": [r.to_record() for r in sample_residents],
        "evacuation_centers": [c.to_record() for c in sample_centers],
        "events": [
            {"id": "evt-old", "name": "Typhoon Rolly", "type": "Typhoon", "status": "Resolved"},
            {"id": EVENT_ID, "name": "Mayon Eruption", "type": "Volcanic Eruption", "status": "Active"},
        ],
        "resident_status_log": [
            log_row(1, "r1", "Safe", 0),
            log_row(2, "r1", "Evacuated", 30, evac_center_id="c1"),
            log_row(3, "r2", "Evacuated", 10, evac_center_id="c1"),
            log_row(4, "r3", "Injured", 5),
            log_row(5, "r4", "Missing", 50, event_id="evt-old"),
        ],
    }


@pytest.fixture
def fake_client(remote_tables) -> FakeSupabaseClient:
    return FakeSupabaseClient(remote_tables)


# =============================================================================
# MOCK FIXTURES
# =============================================================================

@pytest.fixture
def mock_streamlit(monkeypatch):
    """Replace Streamlit in the error handlers so messages can be asserted"""
    import dma_core.errors.handlers as handlers

    mock_st = MagicMock()
    mock_st.session_state = {}
    monkeypatch.setattr(handlers, "st", mock_st)
    yield mock_st
