"""
Sync Module
"""
from .stores import get_store, require_store, ensure_store, resolve_warehouse
from .products import ProductService, ProductWriteResult, EditResult
from .orders import OrderService, OrdersRefreshSummary
from .reconciliation import (
    ReconciliationEngine,
    SyncClassification,
    SyncReport,
    SyncStatus,
    classify_sync,
)

__all__ = [
    "get_store",
    "require_store",
    "ensure_store",
    "resolve_warehouse",
    "ProductService",
    "ProductWriteResult",
    "EditResult",
    "OrderService",
    "OrdersRefreshSummary",
    "ReconciliationEngine",
    "SyncClassification",
    "SyncReport",
    "SyncStatus",
    "classify_sync",
]
