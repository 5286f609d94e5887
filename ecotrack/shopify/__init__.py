"""
Shopify Module
"""
from .client import (
    CatalogPage,
    CatalogProduct,
    FulfilledOrder,
    OrdersPage,
    ShippingAddress,
    ShopifyClient,
    client_for_store,
    from_gid,
    normalize_shop_domain,
    to_gid,
)
from .webhooks import compute_hmac, verify_hmac

__all__ = [
    "CatalogPage",
    "CatalogProduct",
    "FulfilledOrder",
    "OrdersPage",
    "ShippingAddress",
    "ShopifyClient",
    "client_for_store",
    "from_gid",
    "normalize_shop_domain",
    "to_gid",
    "compute_hmac",
    "verify_hmac",
]
