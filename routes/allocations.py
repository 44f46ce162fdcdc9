"""
Allocation API routes.

Runs allocation passes, queries and edits the allocation ledger, resolves
order/batch allocation status and exports allocations to Excel.

See exceptions/errors.py for the error response format.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

import structlog
from fastapi import APIRouter, Query
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel

from exceptions import AppError, AllocationNotFoundError
from models.allocation import (
    AllocationRecord,
    AllocationRunRequest,
    AllocationRunResult,
    BatchAllocationStatus,
    CustomerAllocationSummary,
    OrderAllocationStatus,
    StockSnapshotRequest,
)
from services.allocation_engine import get_allocation_engine
from services.allocation_ledger import get_allocation_ledger
from services.export_service import get_export_service
from services.status_resolver import get_status_resolver

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/allocations", tags=["Allocations"])

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


# ===================
# RESPONSE MODELS
# ===================

class RemovalResponse(BaseModel):
    removed: int


class ResetResponse(BaseModel):
    pruned: int
    remaining: int


# ===================
# EXCEPTION HANDLER
# ===================

def handle_error(e: Exception) -> JSONResponse:
    """Convert exception to JSON response."""
    if isinstance(e, AppError):
        return JSONResponse(
            status_code=e.status_code,
            content=e.to_dict()
        )
    # Unexpected error
    logger.error("unexpected_error", error=str(e), type=type(e).__name__)
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred"
            }
        }
    )


# ===================
# ALLOCATION RUN
# ===================

@router.post("/run", response_model=AllocationRunResult)
async def run_allocation(data: AllocationRunRequest):
    """
    Run one allocation pass over the given stock, orders and customers.

    A result with errors was rolled back; warnings list unmet demand.

    Raises:
        503: Ledger could not be saved
    """
    try:
        engine = get_allocation_engine()
        return engine.allocate(data.stock, data.orders, data.customers)
    except Exception as e:
        return handle_error(e)


# ===================
# LEDGER QUERIES
# ===================

@router.get("", response_model=list[AllocationRecord])
async def list_allocations():
    """All committed allocations."""
    return get_allocation_ledger().get_all_allocations()


@router.get("/batch/{batch_number}", response_model=list[AllocationRecord])
async def get_batch_allocations(batch_number: str):
    """Committed allocations against one batch."""
    return get_allocation_ledger().get_allocations_by_batch(batch_number)


@router.get("/order/{sales_document}/{sales_document_item}", response_model=list[AllocationRecord])
async def get_order_allocations(sales_document: str, sales_document_item: str):
    """Committed allocations for one order line."""
    return get_allocation_ledger().get_allocations_by_order(sales_document, sales_document_item)


@router.get("/customer/{customer_id}", response_model=list[AllocationRecord])
async def get_customer_allocations(customer_id: str):
    """Committed allocations for one customer."""
    return get_allocation_ledger().get_allocations_by_customer(customer_id)


@router.get("/customer/{customer_id}/summary", response_model=CustomerAllocationSummary)
async def get_customer_summary(customer_id: str):
    """KG, batches and orders allocated to one customer."""
    return get_status_resolver().customer_allocation_summary(customer_id)


# ===================
# STATUS
# ===================

@router.get("/status/order/{sales_document}/{sales_document_item}", response_model=OrderAllocationStatus)
async def get_order_status(
    sales_document: str,
    sales_document_item: str,
    required_quantity_kg: Decimal = Query(..., gt=0, description="Ordered KG"),
    is_spot_sale: bool = Query(False, description="Spot orders get no production buffer"),
):
    """Unallocated / partial / allocated state of one order line."""
    return get_status_resolver().order_allocation_status(
        sales_document,
        sales_document_item,
        required_quantity_kg,
        is_spot_sale=is_spot_sale,
    )


@router.get("/status/batch/{batch_number}", response_model=BatchAllocationStatus)
async def get_batch_status(batch_number: str):
    """Whether a batch is allocated, and to whom."""
    return get_status_resolver().batch_allocation_status(batch_number)


# ===================
# LEDGER EDITS
# ===================

@router.delete("/batch/{batch_number}", response_model=RemovalResponse)
async def remove_batch_allocations(batch_number: str):
    """
    Remove every allocation against a batch.

    Raises:
        404: Batch has no allocations
        503: Ledger could not be saved
    """
    try:
        removed = get_allocation_ledger().remove_allocation(batch_number)
        if not removed:
            raise AllocationNotFoundError(batch_number)
        return RemovalResponse(removed=removed)
    except Exception as e:
        return handle_error(e)


@router.delete("/{allocation_id}", response_model=RemovalResponse)
async def remove_allocation(allocation_id: str):
    """
    Remove one allocation record.

    Raises:
        404: Allocation not found
        503: Ledger could not be saved
    """
    try:
        removed = get_allocation_ledger().remove_allocation(allocation_id=allocation_id)
        if not removed:
            raise AllocationNotFoundError(allocation_id)
        return RemovalResponse(removed=removed)
    except Exception as e:
        return handle_error(e)


@router.post("/reset", response_model=ResetResponse)
async def reset_allocations(data: StockSnapshotRequest):
    """
    Drop allocations for batches missing from a new stock snapshot.

    Raises:
        503: Ledger could not be saved
    """
    try:
        ledger = get_allocation_ledger()
        pruned = ledger.reset_allocations(data.stock)
        return ResetResponse(pruned=pruned, remaining=len(ledger.get_all_allocations()))
    except Exception as e:
        return handle_error(e)


# ===================
# EXPORT
# ===================

@router.post("/export")
async def export_allocations(data: StockSnapshotRequest, customer_id: Optional[str] = Query(None)):
    """Download committed allocations as an Excel workbook."""
    try:
        ledger = get_allocation_ledger()
        records = (
            ledger.get_allocations_by_customer(customer_id)
            if customer_id
            else ledger.get_all_allocations()
        )
        output = get_export_service().generate_allocation_excel(records, data.stock)
        filename = f"allocations_{datetime.now().strftime('%Y%m%d_%H%M')}.xlsx"
        return StreamingResponse(
            output,
            media_type=XLSX_MEDIA_TYPE,
            headers={"Content-Disposition": f'attachment; filename="{filename}"'}
        )
    except Exception as e:
        return handle_error(e)
