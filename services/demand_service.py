"""
Demand aggregation - turns order lines into allocation buckets.

A bucket is all open demand of one customer for one material class.
Spot buckets are additionally split per material code, since spot stock
must match the ordered material exactly.

Bucket priority (higher first):
    log10(total KG) + 2 if the customer orders several classes
    + log2(order count)
"""

import math
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, Optional

import structlog

from models.customer import Customer, CustomerRestrictions
from models.orders import DemandClass, OrderDemand
from services.material_classifier import demand_class_for_order
from utils.text_utils import normalize_text

logger = structlog.get_logger(__name__)

MULTI_CLASS_BONUS = 2.0


@dataclass
class DemandBucket:
    """Open demand of one customer for one class (and spot material)."""
    customer_id: str
    demand_class: DemandClass
    material_id: Optional[str] = None
    restrictions: Optional[CustomerRestrictions] = None
    orders: list[OrderDemand] = field(default_factory=list)
    priority: float = 0.0

    @property
    def is_spot(self) -> bool:
        return self.demand_class == DemandClass.SPOT

    @property
    def total_required_kg(self) -> Decimal:
        return sum((o.required_quantity_kg for o in self.orders), Decimal("0"))

    @property
    def label(self) -> str:
        return f"Customer {self.customer_id} ({self.demand_class.value} orders)"

    def orders_by_loading_date(self) -> list[OrderDemand]:
        """Earliest loading date first (undated last), then larger orders first."""
        indexed = list(enumerate(self.orders))
        indexed.sort(key=lambda item: (
            item[1].loading_date is None,
            item[1].loading_date or 0,
            -item[1].required_quantity_kg,
            item[0],
        ))
        return [order for _, order in indexed]


class DemandService:
    """Validates order input and aggregates it into prioritized buckets."""

    def validate_orders(self, orders: Iterable[OrderDemand]) -> list[str]:
        """Structural problems that make a whole allocation pass unsafe."""
        errors = []
        for index, order in enumerate(orders):
            ref = order.order_ref or order.sales_document or f"#{index + 1}"
            if not order.customer_id:
                errors.append(f"Order {ref} has no customer")
            if not order.sales_document:
                errors.append(f"Order {ref} has no sales document")
        return errors

    def open_orders(self, orders: Iterable[OrderDemand]) -> list[OrderDemand]:
        """Drop delivered, shipped and finished orders."""
        return [order for order in orders if not order.is_terminal]

    def build_buckets(
        self,
        orders: Iterable[OrderDemand],
        customers: Iterable[Customer],
    ) -> list[DemandBucket]:
        """
        Group open orders into buckets, highest priority first.

        Each order gets its customer's restriction snapshot. Customers that
        are not in the customer list are unrestricted.
        """
        restrictions_by_customer = {c.id: c.restrictions for c in customers}
        buckets: dict[tuple, DemandBucket] = {}

        for order in self.open_orders(orders):
            demand_class = demand_class_for_order(order)
            material = normalize_text(order.material_id) if demand_class == DemandClass.SPOT else None
            restrictions = restrictions_by_customer.get(order.customer_id)
            order = order.model_copy(update={"restrictions": restrictions})

            key = (order.customer_id, demand_class, material)
            bucket = buckets.get(key)
            if bucket is None:
                bucket = DemandBucket(
                    customer_id=order.customer_id,
                    demand_class=demand_class,
                    material_id=material,
                    restrictions=restrictions,
                )
                buckets[key] = bucket
            bucket.orders.append(order)

        classes_by_customer: dict[str, set] = {}
        for bucket in buckets.values():
            classes_by_customer.setdefault(bucket.customer_id, set()).add(bucket.demand_class)

        for bucket in buckets.values():
            bucket.priority = self.bucket_priority(
                bucket,
                multi_class=len(classes_by_customer[bucket.customer_id]) > 1,
            )

        ordered = sorted(buckets.values(), key=lambda b: -b.priority)

        logger.debug(
            "demand_buckets_built",
            bucket_count=len(ordered),
            customer_count=len(classes_by_customer),
        )
        return ordered

    @staticmethod
    def bucket_priority(bucket: DemandBucket, multi_class: bool) -> float:
        total = float(bucket.total_required_kg)
        score = math.log10(total) if total > 0 else 0.0
        if multi_class:
            score += MULTI_CLASS_BONUS
        score += math.log2(len(bucket.orders)) if bucket.orders else 0.0
        return score


# ===================
# SINGLETON
# ===================

_demand_service: Optional[DemandService] = None


def get_demand_service() -> DemandService:
    """Get or create DemandService instance."""
    global _demand_service
    if _demand_service is None:
        _demand_service = DemandService()
    return _demand_service
