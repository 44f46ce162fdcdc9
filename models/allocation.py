"""
Allocation ledger schemas.

Models for the allocation ledger and allocation runs:
- AllocationRecord: one batch → order quantity commitment
- LedgerEnvelope: persisted form of the committed ledger
- AllocationRunResult: outcome of one engine pass
- Order/batch/customer allocation status views
"""

from enum import Enum
from decimal import Decimal
from datetime import date, datetime, timezone
from typing import Optional
from uuid import uuid4

from pydantic import Field

from models.base import BaseSchema
from models.customer import Customer
from models.orders import DemandClass, OrderDemand
from models.stock import StockBatch


LEDGER_SCHEMA_VERSION = "2"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ===================
# ENUMS
# ===================

class AllocationStatus(str, Enum):
    """Record-level status stored in the ledger."""
    ALLOCATED = "Allocated"
    UNALLOCATED = "Unallocated"


class AllocationState(str, Enum):
    """Derived allocation state of an order or batch."""
    UNALLOCATED = "unallocated"
    PARTIAL = "partial"
    ALLOCATED = "allocated"


# ===================
# LEDGER SCHEMAS
# ===================

class AllocationRecord(BaseSchema):
    """
    One committed (or staged) allocation of batch stock to an order line.

    remaining_batch_quantity_kg is computed by the ledger when the record is
    staged: original weight minus everything allocated against the batch up
    to and including this record.
    """

    allocation_id: str = Field(default_factory=lambda: str(uuid4()), description="Record UUID")
    batch_number: str = Field("", description="Batch number")
    customer_id: str = Field("", description="Customer identifier")
    order_ref: Optional[str] = Field(None, description="External order reference")
    sales_document: str = Field("", description="Sales document number")
    sales_document_item: str = Field("10", description="Sales document line item")
    quantity_kg: Decimal = Field(..., description="Allocated KG")
    allocation_timestamp: datetime = Field(default_factory=_utc_now)
    status: AllocationStatus = Field(AllocationStatus.ALLOCATED)
    original_batch_quantity_kg: Decimal = Field(..., description="Batch weight when allocated")
    remaining_batch_quantity_kg: Optional[Decimal] = Field(None, description="Set by the ledger")
    can_reallocate: bool = Field(False, description="Batch may move to another customer")
    order_status_snapshot: Optional[str] = Field(None, description="Order status at last refresh")
    demand_class: Optional[DemandClass] = Field(None, description="Bucket class")
    material_id: Optional[str] = Field(None, description="Material code of the order")
    loading_date: Optional[date] = Field(None, description="Order loading date")
    last_status_update: Optional[datetime] = Field(None, description="Last order status refresh")


class LedgerEnvelope(BaseSchema):
    """Persisted ledger state."""

    records: list[AllocationRecord] = Field(default_factory=list)
    last_updated: datetime = Field(default_factory=_utc_now)
    schema_version: str = LEDGER_SCHEMA_VERSION


class AllocationRunResult(BaseSchema):
    """
    Outcome of one allocation pass.

    errors non-empty means the pass was rolled back and nothing was
    committed. warnings describe unmet demand in a committed pass.
    """

    run_id: str = Field(default_factory=lambda: str(uuid4()))
    committed: list[AllocationRecord] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    rolled_back: bool = False

    @property
    def success(self) -> bool:
        return not self.errors


# ===================
# STATUS SCHEMAS
# ===================

class OrderAllocationStatus(BaseSchema):
    """Allocation state of one order line."""

    sales_document: str
    sales_document_item: str
    status: AllocationState
    can_reallocate: bool
    display_text: str
    allocated_kg: Decimal
    target_kg: Decimal


class BatchAllocationStatus(BaseSchema):
    """Allocation state of one batch."""

    batch_number: str
    status: AllocationState
    customer: Optional[str] = None
    customers: list[str] = Field(default_factory=list)
    allocated_kg: Decimal = Decimal("0")
    display_text: str


class CustomerAllocationSummary(BaseSchema):
    """Totals for one customer across the committed ledger."""

    customer_id: str
    allocation_count: int
    batch_count: int
    order_count: int
    total_kg: Decimal
    by_class: dict[str, Decimal] = Field(default_factory=dict)


# ===================
# REQUEST SCHEMAS
# ===================

class AllocationRunRequest(BaseSchema):
    """Inputs for one allocation pass."""

    stock: list[StockBatch] = Field(default_factory=list)
    orders: list[OrderDemand] = Field(default_factory=list)
    customers: list[Customer] = Field(default_factory=list)


class StockSnapshotRequest(BaseSchema):
    """Current stock snapshot (reset, export, overview)."""

    stock: list[StockBatch] = Field(default_factory=list)


class OrganicOptionsRequest(BaseSchema):
    """Organic-for-conventional substitution query."""

    order: OrderDemand
    stock: list[StockBatch] = Field(default_factory=list)
    selected_supplier: Optional[str] = None


class OrganicSubstitutionOptions(BaseSchema):
    """Advice on covering a conventional order with organic stock."""

    can_use_organic: bool
    available_suppliers: list[str] = Field(default_factory=list)
    recommended_supplier: Optional[str] = None
    selected_supplier: Optional[str] = None
