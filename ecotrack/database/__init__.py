"""
Database Module
"""
from .connection import (
    init_database,
    close_database,
    create_session_factory,
    get_db,
    get_db_dependency,
    get_session_factory,
)
from .models import Base, Store, Product, ProductMetricsHistory, Order

__all__ = [
    "init_database",
    "close_database",
    "create_session_factory",
    "get_db",
    "get_db_dependency",
    "get_session_factory",
    "Base",
    "Store",
    "Product",
    "ProductMetricsHistory",
    "Order",
]
