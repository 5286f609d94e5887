"""
FastAPI Dependencies
"""

import hmac
from typing import AsyncGenerator, Optional

from fastapi import Depends, Header, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from ecotrack.config import get_settings
from ecotrack.database.connection import get_db_dependency
from ecotrack.database.models import Store
from ecotrack.serving.services import AppServices
from ecotrack.shopify.webhooks import HMAC_HEADER, verify_hmac
from ecotrack.sync.stores import require_store

settings = get_settings()


def get_services(request: Request) -> AppServices:
    return request.app.state.services


async def require_admin(authorization: Optional[str] = Header(default=None)) -> None:
    """Bearer token check for admin endpoints; open when ADMIN_API_TOKEN is unset."""
    token = settings.security.admin_api_token
    if token is None:
        return
    scheme, _, supplied = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not hmac.compare_digest(supplied, token.get_secret_value()):
        raise HTTPException(status_code=401, detail="Invalid or missing bearer token")


async def verify_shopify_webhook(request: Request) -> None:
    """Reject deliveries whose X-Shopify-Hmac-Sha256 does not match the raw body."""
    if not settings.shopify.verify_webhooks:
        return
    body = await request.body()
    secret = settings.shopify.api_secret.get_secret_value()
    if not verify_hmac(secret, body, request.headers.get(HMAC_HEADER)):
        raise HTTPException(status_code=401, detail="Invalid webhook signature")


async def get_current_store(
    shop: str,
    session: AsyncSession = Depends(get_db_dependency),
) -> Store:
    """Store named by the ``{shop}`` path parameter; NotFound becomes a 404."""
    return await require_store(session, shop)


async def get_shopify_client(
    store: Store = Depends(get_current_store),
    services: AppServices = Depends(get_services),
) -> AsyncGenerator:
    client = services.client_factory(store)
    try:
        yield client
    finally:
        await client.close()
