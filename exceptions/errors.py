"""
Custom exception classes for the application.

Every error carries a machine-readable code, an HTTP status for the API
layer and a details dict with the context needed to explain it.
"""

from typing import Optional, Any
from datetime import datetime, timezone
from decimal import Decimal


class AppError(Exception):
    """
    Base exception for all application errors.

    All custom exceptions inherit from this.

    Attributes:
        code: Error code (e.g., "BATCH_CAPACITY_EXCEEDED")
        message: Human-readable message
        status_code: HTTP status code
        details: Additional context
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: Optional[dict[str, Any]] = None
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc).isoformat()
        super().__init__(message)

    def to_dict(self) -> dict:
        """Convert to API response format."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": {
                    k: str(v) if isinstance(v, Decimal) else v
                    for k, v in self.details.items()
                },
                "timestamp": self.timestamp
            }
        }


class NotFoundError(AppError):
    """Resource not found (404)."""

    def __init__(
        self,
        resource: str,
        identifier: str,
        code: Optional[str] = None
    ):
        super().__init__(
            code=code or f"{resource.upper()}_NOT_FOUND",
            message=f"{resource} not found",
            status_code=404,
            details={"id": identifier}
        )


class ValidationError(AppError):
    """Validation failed (422)."""

    def __init__(
        self,
        message: str,
        code: str = "VALIDATION_ERROR",
        details: Optional[dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=422,
            details=details
        )


class ConflictError(AppError):
    """Conflict with existing resource (409)."""

    def __init__(
        self,
        message: str,
        code: str = "CONFLICT",
        details: Optional[dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=409,
            details=details
        )


class DuplicateError(ConflictError):
    """Duplicate resource (409)."""

    def __init__(
        self,
        resource: str,
        field: str,
        value: str
    ):
        super().__init__(
            code=f"{resource.upper()}_{field.upper()}_EXISTS",
            message=f"{resource} with this {field} already exists",
            details={field: value}
        )


class PersistenceError(AppError):
    """Ledger storage failed to durably save (503)."""

    def __init__(
        self,
        backend: str,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            code="LEDGER_PERSISTENCE_FAILED",
            message=f"Ledger {backend} storage failed: {message}",
            status_code=503,
            details={"backend": backend, **(details or {})}
        )


# ===================
# LEDGER ERRORS
# ===================

class MissingFieldError(ValidationError):
    """Allocation write is missing a required identifier."""

    def __init__(self, field: str, batch_number: Optional[str] = None):
        super().__init__(
            code="ALLOCATION_MISSING_FIELD",
            message=f"Allocation requires {field}",
            details={"field": field, "batch_number": batch_number}
        )


class InvalidQuantityError(ValidationError):
    """Allocation quantity must be positive."""

    def __init__(self, batch_number: str, quantity_kg: Decimal):
        super().__init__(
            code="ALLOCATION_INVALID_QUANTITY",
            message="Allocation quantity must be greater than zero",
            details={"batch_number": batch_number, "quantity_kg": quantity_kg}
        )


class CapacityError(ConflictError):
    """Write would push a batch past its weight."""

    def __init__(
        self,
        batch_number: str,
        requested_kg: Decimal,
        available_kg: Decimal
    ):
        super().__init__(
            code="BATCH_CAPACITY_EXCEEDED",
            message=f"Batch {batch_number} has {available_kg} KG left, {requested_kg} KG requested",
            details={
                "batch_number": batch_number,
                "requested_kg": requested_kg,
                "available_kg": available_kg,
            }
        )


class ReallocationError(ConflictError):
    """Batch is locked to another customer."""

    def __init__(
        self,
        batch_number: str,
        owner_customer_id: str,
        requested_customer_id: str
    ):
        super().__init__(
            code="BATCH_LOCKED",
            message=(
                f"Batch {batch_number} is allocated to {owner_customer_id} "
                f"and cannot be reallocated to {requested_customer_id}"
            ),
            details={
                "batch_number": batch_number,
                "owner_customer_id": owner_customer_id,
                "requested_customer_id": requested_customer_id,
            }
        )


class DuplicateAllocationError(DuplicateError):
    """Same batch/customer/order staged twice in one transaction."""

    def __init__(
        self,
        batch_number: str,
        customer_id: str,
        sales_document: str,
        sales_document_item: str
    ):
        super().__init__(
            resource="Allocation",
            field="order",
            value=f"{batch_number}/{customer_id}/{sales_document}/{sales_document_item}"
        )
        self.message = (
            f"Duplicate allocation for batch {batch_number} and customer {customer_id}"
        )


class TransactionError(ConflictError):
    """Write attempted without an open ledger transaction."""

    def __init__(self, operation: str):
        super().__init__(
            code="NO_OPEN_TRANSACTION",
            message=f"Cannot {operation} without an open ledger transaction",
            details={"operation": operation}
        )


class AllocationNotFoundError(NotFoundError):
    """No allocation matched the identifier."""

    def __init__(self, identifier: str):
        super().__init__(
            resource="Allocation",
            identifier=identifier,
            code="ALLOCATION_NOT_FOUND"
        )
