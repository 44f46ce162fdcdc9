"""
Stock Overview Service - stock totals and per-batch allocation views.

Combines a stock snapshot with the committed ledger:
- batch_views: allocated / remaining weight and customers per batch
- summarize: class totals, quality, age and supplier breakdowns
- unallocated_batches: batches nobody has claimed yet
"""

from collections import defaultdict
from decimal import Decimal
from typing import Iterable, Optional

import structlog

from models.stock import (
    BatchAllocationView,
    ClassTotals,
    StockBatch,
    StockSummary,
)
from services.allocation_ledger import AllocationLedger, get_allocation_ledger
from services.material_classifier import batch_is_organic
from services.stock_prioritizer import quality_rank

logger = structlog.get_logger(__name__)

ZERO = Decimal("0")
UNKNOWN_LABEL = "Unknown"


class StockOverviewService:
    """Read-only stock dashboard figures."""

    def __init__(self, ledger: AllocationLedger):
        self.ledger = ledger

    def batch_views(self, stock: Iterable[StockBatch]) -> list[BatchAllocationView]:
        views = []
        for batch in stock:
            records = self.ledger.get_allocations_by_batch(batch.batch_number)
            allocated = sum((r.quantity_kg for r in records), ZERO)
            views.append(BatchAllocationView(
                batch_number=batch.batch_number,
                material_id=batch.material_id,
                variety=batch.variety,
                quality_grade=batch.quality_grade,
                age_days=batch.age_days,
                supplier=batch.supplier,
                is_organic=batch_is_organic(batch),
                weight_kg=batch.weight_kg,
                allocated_kg=allocated,
                remaining_kg=max(batch.weight_kg - allocated, ZERO),
                customers=list(dict.fromkeys(r.customer_id for r in records)),
            ))
        return views

    def unallocated_batches(self, stock: Iterable[StockBatch]) -> list[BatchAllocationView]:
        """Batches with no committed allocation at all."""
        return [view for view in self.batch_views(stock) if view.allocated_kg == 0]

    def summarize(self, stock: Iterable[StockBatch]) -> StockSummary:
        """
        Totals for the stock dashboard.

        Ordering of the breakdowns:
        - by_quality: known grades worst to best, unknown grades last
        - by_age: oldest first
        - by_supplier: largest weight first
        """
        views = self.batch_views(stock)

        conventional = ClassTotals()
        organic = ClassTotals()
        by_quality: dict[str, Decimal] = defaultdict(lambda: ZERO)
        by_age: dict[int, Decimal] = defaultdict(lambda: ZERO)
        by_supplier: dict[str, Decimal] = defaultdict(lambda: ZERO)

        for view in views:
            totals = organic if view.is_organic else conventional
            totals.batch_count += 1
            totals.total_kg += view.weight_kg
            totals.allocated_kg += min(view.allocated_kg, view.weight_kg)
            totals.unallocated_kg += view.remaining_kg

            by_quality[view.quality_grade or UNKNOWN_LABEL] += view.weight_kg
            by_age[view.age_days] += view.weight_kg
            by_supplier[view.supplier or UNKNOWN_LABEL] += view.weight_kg

        summary = StockSummary(
            total_batches=len(views),
            total_kg=conventional.total_kg + organic.total_kg,
            conventional=conventional,
            organic=organic,
            by_quality=dict(sorted(by_quality.items(), key=lambda kv: (quality_rank(kv[0]), kv[0]))),
            by_age=dict(sorted(by_age.items(), key=lambda kv: -kv[0])),
            by_supplier=dict(sorted(by_supplier.items(), key=lambda kv: (-kv[1], kv[0]))),
        )

        logger.debug(
            "stock_summarized",
            total_batches=summary.total_batches,
            total_kg=str(summary.total_kg),
        )
        return summary


# ===================
# SINGLETON
# ===================

_stock_overview_service: Optional[StockOverviewService] = None


def get_stock_overview_service() -> StockOverviewService:
    """Get or create StockOverviewService bound to the session ledger."""
    global _stock_overview_service
    if _stock_overview_service is None:
        _stock_overview_service = StockOverviewService(get_allocation_ledger())
    return _stock_overview_service
