"""
Store Registry

Lookup and registration of connected shops, and resolution of the warehouse
coordinates used for delivery distances.
"""

from typing import Optional, Tuple

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ecotrack.config import get_settings
from ecotrack.core.errors import ExternalApiError, NotFound
from ecotrack.database.models import Store
from ecotrack.shopify.client import normalize_shop_domain

logger = structlog.get_logger(__name__)
settings = get_settings()


async def get_store(session: AsyncSession, shop_domain: str) -> Optional[Store]:
    result = await session.execute(
        select(Store).where(Store.shopify_domain == normalize_shop_domain(shop_domain))
    )
    return result.scalar_one_or_none()


async def require_store(session: AsyncSession, shop_domain: str) -> Store:
    """
    Raises:
        NotFound: when the shop has never been registered
    """
    store = await get_store(session, shop_domain)
    if store is None:
        raise NotFound("Store", shop_domain)
    return store


async def ensure_store(
    session: AsyncSession,
    shop_domain: str,
    name: Optional[str] = None,
    access_token: Optional[str] = None,
) -> Store:
    """Create the store on first contact; later calls update name and token when given."""
    store = await get_store(session, shop_domain)
    if store is None:
        store = Store(shopify_domain=normalize_shop_domain(shop_domain), name=name, access_token=access_token)
        session.add(store)
        await session.commit()
        logger.info("Store registered", shop=store.shopify_domain)
        return store

    changed = False
    if name and name != store.name:
        store.name = name
        changed = True
    if access_token and access_token != store.access_token:
        store.access_token = access_token
        changed = True
    if changed:
        await session.commit()
        logger.info("Store updated", shop=store.shopify_domain)
    return store


async def resolve_warehouse(session: AsyncSession, store: Store, client=None) -> Tuple[float, float]:
    """
    Warehouse coordinates for distance calculations.

    Stored coordinates win. Otherwise the shop's primary active location is
    asked for, then the configured default (Copenhagen); the result is
    persisted on the store.
    """
    if store.has_warehouse:
        return store.warehouse_latitude, store.warehouse_longitude

    coordinates = None
    if client is not None:
        try:
            coordinates = await client.fetch_primary_location()
        except ExternalApiError as e:
            logger.warning("Primary location lookup failed", shop=store.shopify_domain, error=e.message)

    if coordinates is None:
        coordinates = (settings.sync.default_warehouse_latitude, settings.sync.default_warehouse_longitude)
        logger.warning("Warehouse coordinates not set, using default", shop=store.shopify_domain)

    store.warehouse_latitude, store.warehouse_longitude = coordinates
    await session.commit()
    return coordinates
