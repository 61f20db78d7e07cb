"""Service layer package.

Business rules live here; routers translate HTTP to service calls and the
app's exception handlers translate domain errors back to HTTP.
"""

__all__ = [
    "menu_service",
    "notifications",
    "order_service",
    "tracking_id",
]
