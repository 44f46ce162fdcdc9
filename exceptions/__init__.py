"""
Custom exceptions module.

Ledger write errors (missing field, capacity, reallocation, duplicate,
transaction) are raised by AllocationLedger and converted into result
entries by the AllocationEngine.
"""

from exceptions.errors import (
    # Base exceptions
    AppError,
    NotFoundError,
    ValidationError,
    ConflictError,
    DuplicateError,
    PersistenceError,

    # Ledger
    MissingFieldError,
    InvalidQuantityError,
    CapacityError,
    ReallocationError,
    DuplicateAllocationError,
    TransactionError,
    AllocationNotFoundError,
)

__all__ = [
    # Base
    "AppError",
    "NotFoundError",
    "ValidationError",
    "ConflictError",
    "DuplicateError",
    "PersistenceError",

    # Ledger
    "MissingFieldError",
    "InvalidQuantityError",
    "CapacityError",
    "ReallocationError",
    "DuplicateAllocationError",
    "TransactionError",
    "AllocationNotFoundError",
]
