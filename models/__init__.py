"""
Pydantic models for validation and serialization.
"""

from models.base import BaseSchema
from models.stock import (
    QualityGrade,
    QUALITY_ORDER,
    GOOD_GRADES,
    StockBatch,
    BatchAllocationView,
    ClassTotals,
    StockSummary,
)
from models.customer import (
    RESTRICTION_FIELDS,
    CustomerRestrictions,
    Customer,
)
from models.orders import (
    OrderStatus,
    DemandClass,
    TERMINAL_ORDER_STATUSES,
    normalize_order_status,
    is_terminal_status,
    OrderDemand,
)
from models.allocation import (
    LEDGER_SCHEMA_VERSION,
    AllocationStatus,
    AllocationState,
    AllocationRecord,
    LedgerEnvelope,
    AllocationRunResult,
    OrderAllocationStatus,
    BatchAllocationStatus,
    CustomerAllocationSummary,
    AllocationRunRequest,
    StockSnapshotRequest,
    OrganicOptionsRequest,
    OrganicSubstitutionOptions,
)

__all__ = [
    # Base
    "BaseSchema",

    # Stock
    "QualityGrade",
    "QUALITY_ORDER",
    "GOOD_GRADES",
    "StockBatch",
    "BatchAllocationView",
    "ClassTotals",
    "StockSummary",

    # Customer
    "RESTRICTION_FIELDS",
    "CustomerRestrictions",
    "Customer",

    # Orders
    "OrderStatus",
    "DemandClass",
    "TERMINAL_ORDER_STATUSES",
    "normalize_order_status",
    "is_terminal_status",
    "OrderDemand",

    # Allocation
    "LEDGER_SCHEMA_VERSION",
    "AllocationStatus",
    "AllocationState",
    "AllocationRecord",
    "LedgerEnvelope",
    "AllocationRunResult",
    "OrderAllocationStatus",
    "BatchAllocationStatus",
    "CustomerAllocationSummary",
    "AllocationRunRequest",
    "StockSnapshotRequest",
    "OrganicOptionsRequest",
    "OrganicSubstitutionOptions",
]
