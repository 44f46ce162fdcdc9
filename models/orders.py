"""
Order demand schemas and order status normalization.

Orders arrive from the order import with quantities and dates already
coerced. Classification flags may be missing; the engine re-derives them
from the material code when they are None.
"""

from enum import Enum
from decimal import Decimal
from datetime import date
from typing import Optional

from pydantic import Field

from models.base import BaseSchema
from models.customer import CustomerRestrictions
from utils.text_utils import normalize_text


# ===================
# ENUMS
# ===================

class OrderStatus(str, Enum):
    """Production order status shown to planners."""
    TO_BE_CREATED = "To be created"
    CREATED = "Created"
    FINISHED = "Finished"
    SHIPPED = "Shipped"


class DemandClass(str, Enum):
    """Material class a bucket of demand is allocated under."""
    CONVENTIONAL = "conventional"
    ORGANIC = "organic"
    SPOT = "spot"


# Raw statuses whose orders no longer need stock
TERMINAL_ORDER_STATUSES = frozenset({
    "delivered",
    "shipped",
    "finished",
    "in delivery",
    "pgi'd",
})

_STATUS_MAP: dict[str, OrderStatus] = {
    "delivered": OrderStatus.SHIPPED,
    "shipped": OrderStatus.SHIPPED,
    "pgi'd": OrderStatus.SHIPPED,
    "finished": OrderStatus.FINISHED,
    "in delivery": OrderStatus.FINISHED,
    "in progress": OrderStatus.CREATED,
    "in production": OrderStatus.CREATED,
    "created": OrderStatus.CREATED,
    "not started": OrderStatus.CREATED,
}


def normalize_order_status(raw: Optional[str]) -> OrderStatus:
    """
    Map a free-text order status to OrderStatus.

    Examples:
        "Delivered" → SHIPPED
        "in delivery" → FINISHED
        "In Production" → CREATED
        "" → TO_BE_CREATED
    """
    return _STATUS_MAP.get(normalize_text(raw), OrderStatus.TO_BE_CREATED)


def is_terminal_status(raw: Optional[str]) -> bool:
    """True when the order is delivered, shipped or otherwise done."""
    return normalize_text(raw) in TERMINAL_ORDER_STATUSES


# ===================
# ORDER SCHEMAS
# ===================

class OrderDemand(BaseSchema):
    """
    One sales order line requesting stock.

    customer_id and sales_document may be blank here; the engine reports
    such orders as fatal input errors instead of rejecting the whole import.
    """

    customer_id: str = Field("", description="Customer identifier")
    sales_document: str = Field("", description="Sales document number")
    sales_document_item: str = Field("10", description="Sales document line item")
    order_ref: Optional[str] = Field(None, description="External order reference")
    loading_date: Optional[date] = Field(None, description="Planned loading date")
    required_quantity_kg: Decimal = Field(..., gt=0, description="Requested KG")
    material_id: Optional[str] = Field(None, description="Material code")
    material_description: Optional[str] = Field(None, description="Material description")
    is_organic: Optional[bool] = Field(None, description="None = derive from material")
    is_spot_sale: Optional[bool] = Field(None, description="None = derive from material")
    order_status_raw: Optional[str] = Field(None, description="Status text from the order export")
    restrictions: Optional[CustomerRestrictions] = Field(
        None,
        description="Customer restriction snapshot, filled by the engine"
    )

    @property
    def order_key(self) -> tuple[str, str]:
        return (self.sales_document, self.sales_document_item)

    @property
    def is_terminal(self) -> bool:
        return is_terminal_status(self.order_status_raw)

    @property
    def status(self) -> OrderStatus:
        return normalize_order_status(self.order_status_raw)
