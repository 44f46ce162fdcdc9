"""
Business logic services.

Each service handles one domain area.
"""

from services.ledger_store import (
    LedgerStore,
    MemoryLedgerStore,
    JsonFileLedgerStore,
    SupabaseLedgerStore,
    get_ledger_store,
)
from services.allocation_ledger import AllocationLedger, get_allocation_ledger
from services.demand_service import DemandBucket, DemandService, get_demand_service
from services.allocation_engine import AllocationEngine, get_allocation_engine
from services.status_resolver import StatusResolver, get_status_resolver
from services.stock_overview_service import StockOverviewService, get_stock_overview_service
from services.export_service import ExportService, get_export_service

__all__ = [
    "LedgerStore",
    "MemoryLedgerStore",
    "JsonFileLedgerStore",
    "SupabaseLedgerStore",
    "get_ledger_store",
    "AllocationLedger",
    "get_allocation_ledger",
    "DemandBucket",
    "DemandService",
    "get_demand_service",
    "AllocationEngine",
    "get_allocation_engine",
    "StatusResolver",
    "get_status_resolver",
    "StockOverviewService",
    "get_stock_overview_service",
    "ExportService",
    "get_export_service",
]
