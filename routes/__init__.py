"""
API route modules.

Each module defines routes for one domain area.
"""

from routes.allocations import router as allocations_router
from routes.stock import router as stock_router

__all__ = [
    "allocations_router",
    "stock_router",
]
