"""
API route modules.

Each module defines routes for one domain area.
"""

from routes.product_import import router as product_import_router

__all__ = [
    "product_import_router",
]
