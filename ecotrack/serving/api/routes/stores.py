"""
Stores API Endpoints

Registration of installed shops and their warehouse location.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from ecotrack.database.connection import get_db_dependency
from ecotrack.database.models import Store
from ecotrack.serving.api.dependencies import get_current_store, get_shopify_client
from ecotrack.sync.stores import ensure_store, resolve_warehouse

router = APIRouter()


class StoreRegistration(BaseModel):
    """Store registration request"""
    shop_domain: str = Field(..., min_length=1)
    access_token: Optional[str] = None
    name: Optional[str] = None
    warehouse_latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    warehouse_longitude: Optional[float] = Field(default=None, ge=-180, le=180)


class StoreResponse(BaseModel):
    """Store response; the access token is never returned"""
    id: UUID
    shopify_domain: str
    name: Optional[str]
    display_name: str
    has_access_token: bool
    warehouse_latitude: Optional[float]
    warehouse_longitude: Optional[float]
    avg_delivery_distance: Optional[float]
    created_at: Optional[datetime]

    @classmethod
    def from_store(cls, store: Store) -> "StoreResponse":
        return cls(
            id=store.id,
            shopify_domain=store.shopify_domain,
            name=store.name,
            display_name=store.display_name,
            has_access_token=bool(store.access_token),
            warehouse_latitude=store.warehouse_latitude,
            warehouse_longitude=store.warehouse_longitude,
            avg_delivery_distance=store.avg_delivery_distance,
            created_at=store.created_at,
        )


@router.post("", response_model=StoreResponse)
async def register_store(
    body: StoreRegistration,
    db: AsyncSession = Depends(get_db_dependency),
) -> StoreResponse:
    """
    Register a shop or update its name, token and warehouse.
    """
    store = await ensure_store(db, body.shop_domain, name=body.name, access_token=body.access_token)
    if body.warehouse_latitude is not None and body.warehouse_longitude is not None:
        store.warehouse_latitude = body.warehouse_latitude
        store.warehouse_longitude = body.warehouse_longitude
        await db.commit()
    return StoreResponse.from_store(store)


@router.get("/{shop}", response_model=StoreResponse)
async def get_store_details(store: Store = Depends(get_current_store)) -> StoreResponse:
    return StoreResponse.from_store(store)


@router.post("/{shop}/warehouse", response_model=StoreResponse)
async def refresh_warehouse(
    store: Store = Depends(get_current_store),
    client=Depends(get_shopify_client),
    db: AsyncSession = Depends(get_db_dependency),
) -> StoreResponse:
    """
    Resolve the warehouse from the shop's primary location when unset.
    """
    await resolve_warehouse(db, store, client)
    return StoreResponse.from_store(store)
