"""
Orders API Endpoints

Fulfilled-order mirror and delivery distance analytics.
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ecotrack.database.connection import get_db_dependency
from ecotrack.database.models import Order, Store
from ecotrack.serving.api.dependencies import get_current_store, get_services, get_shopify_client
from ecotrack.serving.services import AppServices

router = APIRouter()


class OrderSummary(BaseModel):
    """Order summary response"""
    shopify_order_id: str
    shopify_order_name: Optional[str]
    delivery_city: Optional[str]
    delivery_country: Optional[str]
    delivery_zip_code: Optional[str]
    delivery_distance: Optional[float]

    class Config:
        from_attributes = True


@router.get("", response_model=List[OrderSummary])
async def list_orders(
    limit: int = Query(50, ge=1, le=250),
    store: Store = Depends(get_current_store),
    db: AsyncSession = Depends(get_db_dependency),
) -> List[OrderSummary]:
    result = await db.execute(
        select(Order)
        .where(Order.store_id == store.id, Order.fulfilled.is_(True))
        .order_by(Order.created_at.desc())
        .limit(limit)
    )
    return [OrderSummary.model_validate(o) for o in result.scalars().all()]


@router.post("/refresh")
async def refresh_orders(
    store: Store = Depends(get_current_store),
    client=Depends(get_shopify_client),
    db: AsyncSession = Depends(get_db_dependency),
    services: AppServices = Depends(get_services),
) -> Dict[str, Any]:
    """
    Pull fulfilled orders from Shopify and recompute delivery distances.
    """
    summary = await services.orders.refresh_from_shopify(db, store, client)
    return {
        "processed": summary.processed,
        "with_distance": summary.with_distance,
        "avg_delivery_distance": summary.avg_delivery_distance,
        "top_zips": summary.top_zips,
    }
