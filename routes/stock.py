"""
Stock API routes.

Stock dashboard figures for a snapshot and organic substitution advice.
"""

import structlog
from fastapi import APIRouter
from pydantic import BaseModel

from models.allocation import (
    OrganicOptionsRequest,
    OrganicSubstitutionOptions,
    StockSnapshotRequest,
)
from models.stock import BatchAllocationView, StockSummary
from services.material_classifier import organic_substitution_options
from services.stock_overview_service import get_stock_overview_service

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/stock", tags=["Stock"])


class StockOverviewResponse(BaseModel):
    """Summary plus per-batch views."""
    summary: StockSummary
    batches: list[BatchAllocationView]
    unallocated: list[BatchAllocationView]


@router.post("/overview", response_model=StockOverviewResponse)
async def stock_overview(data: StockSnapshotRequest):
    """Totals, breakdowns and allocation state for a stock snapshot."""
    service = get_stock_overview_service()
    return StockOverviewResponse(
        summary=service.summarize(data.stock),
        batches=service.batch_views(data.stock),
        unallocated=service.unallocated_batches(data.stock),
    )


@router.post("/organic-options", response_model=OrganicSubstitutionOptions)
async def organic_options(data: OrganicOptionsRequest):
    """Whether organic stock could cover a conventional order, and from whom."""
    options = organic_substitution_options(data.order, data.stock, data.selected_supplier)
    logger.info(
        "organic_options_requested",
        sales_document=data.order.sales_document,
        can_use_organic=options.can_use_organic,
    )
    return options
