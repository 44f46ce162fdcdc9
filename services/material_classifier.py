"""
Material classification - organic vs conventional, spot vs standard.

All material-code prefix rules live here so the engine, the overview and
the export never do their own string matching.

Rules (case-insensitive):
- Organic: code starts with "bob" or "bio", or contains "org"
  ("FIARORG01", "Organic Hass")
- Spot sale: code starts with "bcb" or "bob"; with no code at all, a
  description containing "spot" marks the order as spot

These are pure functions: total over any input, never raise.
"""

from enum import Enum
from typing import Iterable, Optional

from models.orders import DemandClass, OrderDemand
from models.stock import StockBatch
from models.allocation import OrganicSubstitutionOptions
from utils.text_utils import normalize_text


ORGANIC_PREFIXES = ("bob", "bio")
ORGANIC_MARKER = "org"
SPOT_PREFIXES = ("bcb", "bob")
SPOT_DESCRIPTION_MARKER = "spot"


class MaterialType(str, Enum):
    CONVENTIONAL = "conventional"
    ORGANIC = "organic"


class SaleType(str, Enum):
    STANDARD = "standard"
    SPOT = "spot"


# ===================
# PRIMITIVE CHECKS
# ===================

def is_organic(text: Optional[str]) -> bool:
    """True for organic material codes or descriptions."""
    value = normalize_text(text)
    if not value:
        return False
    return value.startswith(ORGANIC_PREFIXES) or ORGANIC_MARKER in value


def is_spot_sale(material_id: Optional[str], description: Optional[str] = None) -> bool:
    """
    True for spot-sale materials.

    The material code decides when present; the description is only
    consulted for orders that carry no code.
    """
    code = normalize_text(material_id)
    if code:
        return code.startswith(SPOT_PREFIXES)
    return SPOT_DESCRIPTION_MARKER in normalize_text(description)


def classify_material(text: Optional[str]) -> MaterialType:
    return MaterialType.ORGANIC if is_organic(text) else MaterialType.CONVENTIONAL


def classify_sale(material_id: Optional[str], description: Optional[str] = None) -> SaleType:
    return SaleType.SPOT if is_spot_sale(material_id, description) else SaleType.STANDARD


# ===================
# ORDERS AND BATCHES
# ===================

def order_is_organic(order: OrderDemand) -> bool:
    """Use the import's flag when set, otherwise derive from the material."""
    if order.is_organic is not None:
        return order.is_organic
    return is_organic(order.material_id or order.material_description)


def order_is_spot_sale(order: OrderDemand) -> bool:
    """Use the import's flag when set, otherwise derive from the material."""
    if order.is_spot_sale is not None:
        return order.is_spot_sale
    return is_spot_sale(order.material_id, order.material_description)


def demand_class_for_order(order: OrderDemand) -> DemandClass:
    """Spot wins over organic: a BOB order is allocated as spot."""
    if order_is_spot_sale(order):
        return DemandClass.SPOT
    if order_is_organic(order):
        return DemandClass.ORGANIC
    return DemandClass.CONVENTIONAL


def batch_is_organic(batch: StockBatch) -> bool:
    return is_organic(batch.material_id or batch.material_description)


def batch_matches_class(batch: StockBatch, demand_class: DemandClass) -> bool:
    """
    Whether a batch may serve a demand class.

    Production classes compare only the organic flag; spot demand needs a
    spot material (the exact code check is the engine's job).
    """
    if demand_class == DemandClass.SPOT:
        return is_spot_sale(batch.material_id)
    return batch_is_organic(batch) == (demand_class == DemandClass.ORGANIC)


def same_material(batch: StockBatch, material_id: Optional[str]) -> bool:
    """Exact material code match, ignoring case and surrounding whitespace."""
    wanted = normalize_text(material_id)
    return bool(wanted) and normalize_text(batch.material_id) == wanted


# ===================
# ORGANIC SUBSTITUTION
# ===================

def organic_suppliers(stock: Iterable[StockBatch]) -> list[str]:
    """Sorted suppliers holding organic stock."""
    return sorted({
        batch.supplier
        for batch in stock
        if batch.supplier and batch_is_organic(batch)
    })


def organic_substitution_options(
    order: OrderDemand,
    stock: Iterable[StockBatch],
    selected_supplier: Optional[str] = None,
) -> OrganicSubstitutionOptions:
    """
    Advise whether organic stock could cover a conventional order.

    The recommended supplier is the one with the most organic batches
    (alphabetical on ties). Advice only; the engine never substitutes.
    """
    if order_is_organic(order):
        return OrganicSubstitutionOptions(can_use_organic=False)

    organic_stock = [batch for batch in stock if batch_is_organic(batch)]
    if not organic_stock:
        return OrganicSubstitutionOptions(can_use_organic=False)

    suppliers = organic_suppliers(organic_stock)

    if selected_supplier and selected_supplier not in suppliers:
        return OrganicSubstitutionOptions(
            can_use_organic=False,
            available_suppliers=suppliers,
            selected_supplier=selected_supplier,
        )

    counts = {
        supplier: sum(1 for batch in organic_stock if batch.supplier == supplier)
        for supplier in suppliers
    }
    recommended = max(suppliers, key=lambda s: counts[s]) if suppliers else None

    return OrganicSubstitutionOptions(
        can_use_organic=True,
        available_suppliers=suppliers,
        recommended_supplier=recommended,
        selected_supplier=selected_supplier,
    )
