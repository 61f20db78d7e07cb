"""API routers package."""

from .menu import router as menu_router
from .metrics import router as metrics_router
from .orders import router as orders_router
from .system import router as system_router

__all__ = ["menu_router", "metrics_router", "orders_router", "system_router"]
