"""
Shared test fixtures.
"""

import sys
from pathlib import Path

# Add backend directory to Python path
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

import pytest
from decimal import Decimal
from unittest.mock import patch
from typing import Generator

from services.allocation_engine import AllocationEngine
from services.allocation_ledger import AllocationLedger
from services.demand_service import DemandService
from services.ledger_store import MemoryLedgerStore
from services.status_resolver import StatusResolver
from services.stock_overview_service import StockOverviewService


# ===================
# MOCK SUPABASE CLIENT
# ===================

class MockSupabaseResponse:
    """Mock Supabase query response."""

    def __init__(self, data: list = None, count: int = None):
        self.data = data or []
        self.count = count if count is not None else len(self.data)


class MockSupabaseQuery:
    """Mock Supabase query builder over one key/value table."""

    def __init__(self, rows: dict):
        self._rows = rows
        self._key = None
        self._upsert = None

    def select(self, *args, **kwargs):
        return self

    def eq(self, column, value):
        self._key = value
        return self

    def upsert(self, data, on_conflict=None):
        self._upsert = data
        return self

    def execute(self) -> MockSupabaseResponse:
        if self._upsert is not None:
            self._rows[self._upsert["key"]] = dict(self._upsert)
            return MockSupabaseResponse(data=[self._upsert])
        if self._key is not None:
            row = self._rows.get(self._key)
            return MockSupabaseResponse(data=[row] if row else [])
        return MockSupabaseResponse(data=list(self._rows.values()))


class MockSupabaseClient:
    """Mock Supabase client keeping key/value rows per table."""

    def __init__(self):
        self._tables: dict[str, dict] = {}

    def set_row(self, table_name: str, key: str, value) -> None:
        """Seed one key/value row."""
        self._tables.setdefault(table_name, {})[key] = {"key": key, "value": value}

    def get_row(self, table_name: str, key: str):
        return self._tables.get(table_name, {}).get(key)

    def table(self, name: str) -> MockSupabaseQuery:
        return MockSupabaseQuery(self._tables.setdefault(name, {}))


# ===================
# FIXTURES
# ===================

@pytest.fixture
def mock_supabase() -> MockSupabaseClient:
    """
    Create a mock Supabase client.

    Usage:
        def test_something(mock_supabase):
            mock_supabase.set_row("settings", "allocation_ledger", "{...}")
    """
    return MockSupabaseClient()


@pytest.fixture
def memory_store() -> MemoryLedgerStore:
    return MemoryLedgerStore()


@pytest.fixture
def ledger(memory_store) -> AllocationLedger:
    """Empty ledger backed by memory."""
    ledger = AllocationLedger(memory_store)
    ledger.load()
    return ledger


@pytest.fixture
def engine(ledger) -> AllocationEngine:
    """Engine with the standard 10% buffer and 900 KG small-batch threshold."""
    return AllocationEngine(
        ledger,
        demand_service=DemandService(),
        buffer_pct=Decimal("0.10"),
        small_batch_threshold_kg=Decimal("900"),
    )


@pytest.fixture
def resolver(ledger) -> StatusResolver:
    return StatusResolver(ledger, buffer_pct=Decimal("0.10"), tolerance=Decimal("0.01"))


# ===================
# API TEST CLIENT
# ===================

@pytest.fixture
def test_client(ledger, engine, resolver) -> Generator:
    """
    Create FastAPI test client wired to the in-memory ledger.

    Usage:
        def test_endpoint(test_client, ledger):
            response = test_client.get("/api/allocations")
            assert response.status_code == 200
    """
    from fastapi.testclient import TestClient
    from main import app

    with patch("routes.allocations.get_allocation_ledger", return_value=ledger):
        with patch("routes.allocations.get_allocation_engine", return_value=engine):
            with patch("routes.allocations.get_status_resolver", return_value=resolver):
                with patch(
                    "routes.stock.get_stock_overview_service",
                    return_value=StockOverviewService(ledger),
                ):
                    yield TestClient(app)
