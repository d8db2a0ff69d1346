"""
API route modules.

Each module defines routes for one domain area.
"""

from routes.order_groups import router as order_groups_router
from routes.allocation_sessions import router as allocation_sessions_router

__all__ = [
    "order_groups_router",
    "allocation_sessions_router",
]
