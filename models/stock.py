"""
Stock batch schemas.

A batch is one physical lot with a fixed total weight. Batches arrive
already typed from the stock import; batch numbers are normalized here so
every downstream lookup uses the same key.
"""

from enum import Enum
from decimal import Decimal
from typing import Optional

from pydantic import Field, field_validator

from models.base import BaseSchema
from utils.text_utils import normalize_batch_number


# ===================
# ENUMS
# ===================

class QualityGrade(str, Enum):
    """Known quality grades, worst first."""
    POOR_MC = "Poor M/C"
    POOR = "Poor"
    FAIR_MC = "Fair M/C"
    FAIR = "Fair"
    GOOD_QS = "Good Q/S"
    GOOD = "Good"


# Worst to best; also the production consumption order
QUALITY_ORDER: list[str] = [grade.value for grade in QualityGrade]

GOOD_GRADES = frozenset({QualityGrade.GOOD.value, QualityGrade.GOOD_QS.value})


# ===================
# STOCK SCHEMAS
# ===================

class StockBatch(BaseSchema):
    """
    One stock batch as supplied by the stock import.

    Restriction-relevant attributes (origin_country through supplier) are
    compared by exact string equality against customer restrictions.
    """

    batch_number: str = Field(..., description="Batch number (normalized)")
    location_code: Optional[str] = Field(None, description="Warehouse location")
    material_id: str = Field("", description="Material code, e.g. BCB001")
    material_description: Optional[str] = Field(None, description="Material description")
    variety: str = Field("", description="Fruit variety")
    quality_grade: str = Field("", description="Quality grade, free text")
    weight_kg: Decimal = Field(..., ge=0, description="Total batch weight in KG")
    age_days: int = Field(0, ge=0, description="Age in days")
    origin_country: Optional[str] = Field(None, description="Country of origin")
    certification_id: Optional[str] = Field(None, description="GGN certification")
    transport_doc_ref: Optional[str] = Field(None, description="BL / AWB / CMR reference")
    minimum_size: Optional[str] = Field(None, description="Minimum fruit size")
    origin_pallet_number: Optional[str] = Field(None, description="Origin pallet number")
    supplier: Optional[str] = Field(None, description="Supplier name")

    @field_validator("batch_number")
    @classmethod
    def batch_number_normalized(cls, v: str) -> str:
        """Batch number is uppercase alphanumeric and must not be empty."""
        normalized = normalize_batch_number(v)
        if not normalized:
            raise ValueError("batch_number must contain letters or digits")
        return normalized


# ===================
# OVERVIEW SCHEMAS
# ===================

class BatchAllocationView(BaseSchema):
    """Per-batch allocation view for the stock overview."""

    batch_number: str
    material_id: str
    variety: str
    quality_grade: str
    age_days: int
    supplier: Optional[str] = None
    is_organic: bool
    weight_kg: Decimal
    allocated_kg: Decimal
    remaining_kg: Decimal
    customers: list[str] = Field(default_factory=list)


class ClassTotals(BaseSchema):
    """Allocated vs unallocated weight for one material class."""

    batch_count: int = 0
    total_kg: Decimal = Decimal("0")
    allocated_kg: Decimal = Decimal("0")
    unallocated_kg: Decimal = Decimal("0")


class StockSummary(BaseSchema):
    """
    Stock overview totals.

    Breakdown dicts keep display order: quality grades worst to best with
    unknown grades last, ages oldest first, suppliers largest first.
    """

    total_batches: int
    total_kg: Decimal
    conventional: ClassTotals
    organic: ClassTotals
    by_quality: dict[str, Decimal] = Field(default_factory=dict)
    by_age: dict[int, Decimal] = Field(default_factory=dict)
    by_supplier: dict[str, Decimal] = Field(default_factory=dict)
