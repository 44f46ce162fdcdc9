"""
Ledger persistence backends.

The allocation ledger hands its committed state to a store as a JSON-ready
envelope dict: {"records": [...], "last_updated": ..., "schema_version": ...}.

Backends:
- MemoryLedgerStore: process memory (tests, throwaway sessions)
- JsonFileLedgerStore: one JSON file, replaced atomically
- SupabaseLedgerStore: one key/value row in the settings table

Stores raise PersistenceError when they cannot save or read.
load() returns None when nothing has been saved yet.
"""

import copy
import json
import os
import tempfile
from pathlib import Path
from typing import Optional, Protocol

import structlog

from config import settings, get_supabase_client
from exceptions import PersistenceError

logger = structlog.get_logger(__name__)


class LedgerStore(Protocol):
    """Persistence collaborator for AllocationLedger."""

    def save(self, envelope: dict) -> None: ...

    def load(self) -> Optional[dict]: ...


class MemoryLedgerStore:
    """Keeps the envelope in memory. Copies on the way in and out."""

    backend = "memory"

    def __init__(self, envelope: Optional[dict] = None):
        self._envelope = copy.deepcopy(envelope)

    def save(self, envelope: dict) -> None:
        self._envelope = copy.deepcopy(envelope)

    def load(self) -> Optional[dict]:
        return copy.deepcopy(self._envelope)


class JsonFileLedgerStore:
    """
    Stores the envelope as a JSON file.

    Writes go to a temp file in the same directory which then replaces the
    target, so a crash never leaves a half-written ledger.
    """

    backend = "file"

    def __init__(self, path: str):
        self.path = Path(path)

    def save(self, envelope: dict) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                dir=str(self.path.parent),
                prefix=f".{self.path.name}.",
                suffix=".tmp",
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    json.dump(envelope, fh, indent=2)
                os.replace(tmp_path, self.path)
            except Exception:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except OSError as e:
            logger.error("ledger_file_save_failed", path=str(self.path), error=str(e))
            raise PersistenceError(self.backend, str(e), {"path": str(self.path)}) from e

        logger.debug("ledger_file_saved", path=str(self.path))

    def load(self) -> Optional[dict]:
        if not self.path.exists():
            return None
        try:
            with open(self.path, encoding="utf-8") as fh:
                return json.load(fh)
        except (OSError, json.JSONDecodeError) as e:
            logger.error("ledger_file_load_failed", path=str(self.path), error=str(e))
            raise PersistenceError(self.backend, str(e), {"path": str(self.path)}) from e


class SupabaseLedgerStore:
    """
    Stores the envelope as a JSON string in a key/value table.

    Uses the same table shape as the app settings: columns key, value.
    """

    backend = "supabase"

    def __init__(self, client=None, table: Optional[str] = None, key: Optional[str] = None):
        self.db = client or get_supabase_client()
        self.table = table or settings.ledger_storage_table
        self.key = key or settings.ledger_storage_key

    def save(self, envelope: dict) -> None:
        try:
            (
                self.db.table(self.table)
                .upsert(
                    {"key": self.key, "value": json.dumps(envelope)},
                    on_conflict="key",
                )
                .execute()
            )
        except Exception as e:
            logger.error("ledger_supabase_save_failed", table=self.table, key=self.key, error=str(e))
            raise PersistenceError(self.backend, str(e), {"table": self.table}) from e

        logger.debug("ledger_supabase_saved", table=self.table, key=self.key)

    def load(self) -> Optional[dict]:
        try:
            response = (
                self.db.table(self.table)
                .select("value")
                .eq("key", self.key)
                .execute()
            )
        except Exception as e:
            logger.error("ledger_supabase_load_failed", table=self.table, key=self.key, error=str(e))
            raise PersistenceError(self.backend, str(e), {"table": self.table}) from e

        if not response.data:
            return None

        value = response.data[0].get("value")
        if value is None:
            return None
        if isinstance(value, dict):
            return value
        try:
            return json.loads(value)
        except (TypeError, json.JSONDecodeError) as e:
            raise PersistenceError(self.backend, f"invalid ledger JSON: {e}", {"table": self.table}) from e


# ===================
# FACTORY
# ===================

_ledger_store: Optional[LedgerStore] = None


def create_ledger_store(backend: Optional[str] = None) -> LedgerStore:
    """Build the store for a backend name (defaults to settings.ledger_backend)."""
    backend = backend or settings.ledger_backend
    if backend == "memory":
        return MemoryLedgerStore()
    if backend == "supabase":
        return SupabaseLedgerStore()
    return JsonFileLedgerStore(settings.ledger_file_path)


def get_ledger_store() -> LedgerStore:
    """Get or create the configured LedgerStore instance."""
    global _ledger_store
    if _ledger_store is None:
        _ledger_store = create_ledger_store()
        logger.info("ledger_store_created", backend=settings.ledger_backend)
    return _ledger_store
