"""
Customer restriction matching and grouping.

A batch matches a customer when every restriction the customer defines
equals the batch attribute exactly. Customers with identical restriction
sets form a group that can share stock in the pooled allocation pass.
"""

from dataclasses import dataclass, field
from typing import Iterable, Optional

from models.customer import Customer, CustomerRestrictions
from models.stock import StockBatch


@dataclass
class RestrictionGroup:
    """Customers sharing one restriction set, in first-seen order."""
    restrictions: CustomerRestrictions
    customer_ids: list[str] = field(default_factory=list)


def matches(batch: StockBatch, restrictions: Optional[CustomerRestrictions]) -> bool:
    """True when the batch satisfies every defined restriction."""
    if restrictions is None:
        return True
    return all(
        getattr(batch, key) == expected
        for key, expected in restrictions.active().items()
    )


def mismatches(batch: StockBatch, restrictions: Optional[CustomerRestrictions]) -> list[str]:
    """
    Human-readable reasons a batch fails a restriction set.

    Example: ["origin_country mismatch: expected Chile, got Peru"]
    """
    if restrictions is None:
        return []
    reasons = []
    for key, expected in restrictions.active().items():
        actual = getattr(batch, key)
        if actual != expected:
            reasons.append(f"{key} mismatch: expected {expected}, got {actual or 'nothing'}")
    return reasons


def group_by_restrictions(customers: Iterable[Customer]) -> list[RestrictionGroup]:
    """Partition customers by identical restriction sets."""
    groups: dict[tuple, RestrictionGroup] = {}
    for customer in customers:
        key = customer.restrictions.key()
        group = groups.get(key)
        if group is None:
            group = RestrictionGroup(restrictions=customer.restrictions)
            groups[key] = group
        if customer.id not in group.customer_ids:
            group.customer_ids.append(customer.id)
    return list(groups.values())
