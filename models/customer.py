"""
Customer and sourcing restriction schemas.
"""

from typing import Optional

from pydantic import Field, field_validator

from models.base import BaseSchema
from utils.text_utils import clean_optional


# Batch attributes a customer can restrict on, in comparison order
RESTRICTION_FIELDS: tuple[str, ...] = (
    "origin_country",
    "variety",
    "certification_id",
    "quality_grade",
    "transport_doc_ref",
    "minimum_size",
    "origin_pallet_number",
    "supplier",
)


class CustomerRestrictions(BaseSchema):
    """
    Sourcing restrictions for one customer.

    Every key is optional. None or blank means no constraint.
    Two restriction sets are equal when every key is equal.
    """

    origin_country: Optional[str] = None
    variety: Optional[str] = None
    certification_id: Optional[str] = None
    quality_grade: Optional[str] = None
    transport_doc_ref: Optional[str] = None
    minimum_size: Optional[str] = None
    origin_pallet_number: Optional[str] = None
    supplier: Optional[str] = None

    @field_validator(*RESTRICTION_FIELDS, mode="before")
    @classmethod
    def blank_is_unrestricted(cls, v: Optional[str]) -> Optional[str]:
        return clean_optional(v)

    def active(self) -> dict[str, str]:
        """Restriction keys that actually constrain a batch."""
        return {
            field: getattr(self, field)
            for field in RESTRICTION_FIELDS
            if getattr(self, field) is not None
        }

    def key(self) -> tuple[Optional[str], ...]:
        """Hashable form used to group customers with identical restrictions."""
        return tuple(getattr(self, field) for field in RESTRICTION_FIELDS)

    @property
    def is_unrestricted(self) -> bool:
        return not self.active()


class Customer(BaseSchema):
    """Customer with its sourcing restrictions."""

    id: str = Field(..., min_length=1, description="Customer identifier")
    name: Optional[str] = Field(None, description="Display name")
    restrictions: CustomerRestrictions = Field(
        default_factory=CustomerRestrictions,
        description="Sourcing restrictions"
    )
