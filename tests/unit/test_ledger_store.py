"""
Tests for ledger persistence backends.
"""

import json
from unittest.mock import MagicMock

import pytest

from exceptions import PersistenceError
from services.ledger_store import (
    JsonFileLedgerStore,
    MemoryLedgerStore,
    SupabaseLedgerStore,
    create_ledger_store,
)


ENVELOPE = {
    "records": [{"batch_number": "X100", "quantity_kg": "100"}],
    "last_updated": "2025-03-01T10:00:00+00:00",
    "schema_version": "2",
}


class TestMemoryLedgerStore:
    """Tests for the in-memory store."""

    def test_empty_store_loads_none(self):
        assert MemoryLedgerStore().load() is None

    def test_save_copies_envelope(self):
        store = MemoryLedgerStore()
        envelope = json.loads(json.dumps(ENVELOPE))

        store.save(envelope)
        envelope["records"].clear()

        assert store.load()["records"][0]["batch_number"] == "X100"


class TestJsonFileLedgerStore:
    """Tests for the JSON file store."""

    def test_missing_file_loads_none(self, tmp_path):
        assert JsonFileLedgerStore(str(tmp_path / "ledger.json")).load() is None

    def test_round_trip_creates_directories(self, tmp_path):
        path = tmp_path / "data" / "ledger.json"
        store = JsonFileLedgerStore(str(path))

        store.save(ENVELOPE)

        assert path.exists()
        assert store.load() == ENVELOPE
        assert list(path.parent.glob("*.tmp")) == []

    def test_invalid_json_raises(self, tmp_path):
        path = tmp_path / "ledger.json"
        path.write_text("{not json", encoding="utf-8")

        with pytest.raises(PersistenceError) as exc_info:
            JsonFileLedgerStore(str(path)).load()

        assert exc_info.value.code == "LEDGER_PERSISTENCE_FAILED"
        assert exc_info.value.status_code == 503


class TestSupabaseLedgerStore:
    """Tests for the Supabase key/value store."""

    def test_round_trip(self, mock_supabase):
        store = SupabaseLedgerStore(client=mock_supabase, table="settings", key="allocation_ledger")

        store.save(ENVELOPE)

        row = mock_supabase.get_row("settings", "allocation_ledger")
        assert json.loads(row["value"]) == ENVELOPE
        assert store.load() == ENVELOPE

    def test_missing_row_loads_none(self, mock_supabase):
        store = SupabaseLedgerStore(client=mock_supabase, table="settings", key="allocation_ledger")

        assert store.load() is None

    def test_json_column_value_accepted(self, mock_supabase):
        mock_supabase.set_row("settings", "allocation_ledger", ENVELOPE)
        store = SupabaseLedgerStore(client=mock_supabase, table="settings", key="allocation_ledger")

        assert store.load() == ENVELOPE

    def test_client_failure_raises(self):
        client = MagicMock()
        client.table.side_effect = Exception("connection refused")
        store = SupabaseLedgerStore(client=client, table="settings", key="allocation_ledger")

        with pytest.raises(PersistenceError):
            store.save(ENVELOPE)
        with pytest.raises(PersistenceError):
            store.load()


class TestCreateLedgerStore:
    """Tests for backend selection."""

    def test_memory_backend(self):
        assert isinstance(create_ledger_store("memory"), MemoryLedgerStore)

    def test_file_backend(self):
        assert isinstance(create_ledger_store("file"), JsonFileLedgerStore)
