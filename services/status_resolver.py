"""
Status Resolver - read-only allocation state for orders, batches, customers.

Only committed ledger records are considered; a running allocation pass
is never visible here.
"""

from collections import defaultdict
from decimal import Decimal
from typing import Optional

import structlog

from config import settings
from models.allocation import (
    AllocationState,
    BatchAllocationStatus,
    CustomerAllocationSummary,
    OrderAllocationStatus,
)
from services.allocation_ledger import AllocationLedger, get_allocation_ledger
from utils.text_utils import normalize_batch_number

logger = structlog.get_logger(__name__)

ZERO = Decimal("0")


def _kg(value: Decimal) -> str:
    return f"{value:,.2f}"


class StatusResolver:
    """Derives unallocated / partial / allocated states from the ledger."""

    def __init__(
        self,
        ledger: AllocationLedger,
        buffer_pct: Optional[Decimal] = None,
        tolerance: Optional[Decimal] = None,
    ):
        self.ledger = ledger
        self.buffer_pct = settings.production_buffer_pct if buffer_pct is None else buffer_pct
        self.tolerance = settings.fully_allocated_tolerance if tolerance is None else tolerance

    def order_allocation_status(
        self,
        sales_document: str,
        sales_document_item: str,
        required_quantity_kg: Decimal,
        is_spot_sale: bool = False,
    ) -> OrderAllocationStatus:
        """
        Allocation state of one order line.

        Allocated means within the tolerance of the target (required, plus
        the production buffer for non-spot orders) or above it.
        can_reallocate holds only when every contributing record allows it.
        """
        records = self.ledger.get_allocations_by_order(sales_document, sales_document_item)
        factor = Decimal("1") if is_spot_sale else Decimal("1") + self.buffer_pct
        target = required_quantity_kg * factor
        allocated = sum((r.quantity_kg for r in records), ZERO)

        if not records or allocated <= 0:
            status = AllocationState.UNALLOCATED
            display_text = "Unallocated"
        elif allocated >= target * (Decimal("1") - self.tolerance):
            status = AllocationState.ALLOCATED
            display_text = "Fully Allocated"
        else:
            status = AllocationState.PARTIAL
            display_text = f"Partially Allocated ({_kg(allocated)} of {_kg(target)} KG)"

        return OrderAllocationStatus(
            sales_document=sales_document,
            sales_document_item=sales_document_item,
            status=status,
            can_reallocate=bool(records) and all(r.can_reallocate for r in records),
            display_text=display_text,
            allocated_kg=allocated,
            target_kg=target,
        )

    def batch_allocation_status(self, batch_number: str) -> BatchAllocationStatus:
        """Whether a batch carries committed allocations, and for whom."""
        normalized = normalize_batch_number(batch_number)
        records = self.ledger.get_allocations_by_batch(normalized)

        if not records:
            return BatchAllocationStatus(
                batch_number=normalized,
                status=AllocationState.UNALLOCATED,
                display_text="Unallocated",
            )

        customers = list(dict.fromkeys(r.customer_id for r in records))
        allocated = sum((r.quantity_kg for r in records), ZERO)
        original = max(r.original_batch_quantity_kg for r in records)
        status = AllocationState.ALLOCATED if allocated >= original else AllocationState.PARTIAL

        if len(customers) == 1:
            display_text = f"Allocated to {customers[0]} ({_kg(allocated)} KG)"
        else:
            display_text = f"Allocated to {len(customers)} customers ({_kg(allocated)} KG)"

        return BatchAllocationStatus(
            batch_number=normalized,
            status=status,
            customer=customers[0],
            customers=customers,
            allocated_kg=allocated,
            display_text=display_text,
        )

    def customer_allocation_summary(self, customer_id: str) -> CustomerAllocationSummary:
        records = self.ledger.get_allocations_by_customer(customer_id)

        by_class: dict[str, Decimal] = defaultdict(lambda: ZERO)
        for record in records:
            key = record.demand_class.value if record.demand_class else "unknown"
            by_class[key] += record.quantity_kg

        return CustomerAllocationSummary(
            customer_id=customer_id,
            allocation_count=len(records),
            batch_count=len({r.batch_number for r in records}),
            order_count=len({(r.sales_document, r.sales_document_item) for r in records}),
            total_kg=sum((r.quantity_kg for r in records), ZERO),
            by_class=dict(by_class),
        )


# ===================
# SINGLETON
# ===================

_status_resolver: Optional[StatusResolver] = None


def get_status_resolver() -> StatusResolver:
    """Get or create StatusResolver bound to the session ledger."""
    global _status_resolver
    if _status_resolver is None:
        _status_resolver = StatusResolver(get_allocation_ledger())
    return _status_resolver
