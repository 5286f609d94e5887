"""
API Routes Module
"""
from .health import router as health_router
from .metrics import router as metrics_router
from .webhooks import router as webhooks_router
from .stores import router as stores_router
from .products import router as products_router
from .sync import router as sync_router
from .orders import router as orders_router
from .reports import router as reports_router

__all__ = [
    "health_router",
    "metrics_router",
    "webhooks_router",
    "stores_router",
    "products_router",
    "sync_router",
    "orders_router",
    "reports_router",
]
