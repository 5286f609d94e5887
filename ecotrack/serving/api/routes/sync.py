"""
Catalog Sync Endpoints

Status check and corrective reconciliation between the Shopify catalog and
the local mirror of one store.
"""

from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from ecotrack.database.connection import get_db_dependency
from ecotrack.database.models import Store
from ecotrack.serving.api.dependencies import get_current_store, get_services, get_shopify_client
from ecotrack.serving.services import AppServices

router = APIRouter()


@router.get("")
async def get_sync_status(
    store: Store = Depends(get_current_store),
    client=Depends(get_shopify_client),
    db: AsyncSession = Depends(get_db_dependency),
    services: AppServices = Depends(get_services),
) -> Dict[str, Any]:
    """
    Classify the store as synced, needs_sync, needs_cleanup or might_need_sync.

    Each status load also republishes the store's product and store gauges,
    so a scrape after the dashboard opens reflects the mirror.
    """
    report = await services.reconciliation.check_status(db, store, client)
    republished = await services.reconciliation.republish_store(db, store.id)
    return {**report.to_dict(), "republished": republished}


@router.post("")
async def reconcile(
    store: Store = Depends(get_current_store),
    client=Depends(get_shopify_client),
    db: AsyncSession = Depends(get_db_dependency),
    services: AppServices = Depends(get_services),
) -> Dict[str, Any]:
    """
    Create products missing locally and prune orphans (only after an exhaustive fetch).
    """
    report = await services.reconciliation.reconcile_store(db, store, client)
    if report.error:
        raise HTTPException(status_code=502, detail=report.to_dict())
    return report.to_dict()


@router.post("/import")
async def import_catalog(
    store: Store = Depends(get_current_store),
    client=Depends(get_shopify_client),
    db: AsyncSession = Depends(get_db_dependency),
    services: AppServices = Depends(get_services),
) -> Dict[str, Any]:
    report = await services.reconciliation.import_catalog(db, store, client)
    if report.error:
        raise HTTPException(status_code=502, detail=report.to_dict())
    return report.to_dict()


@router.post("/metafield-definitions")
async def create_metafield_definitions(client=Depends(get_shopify_client)) -> Dict[str, Any]:
    """
    Create the four sustainability metafield definitions that are missing.
    """
    results = await client.ensure_metafield_definitions()
    return {
        "success": all(r.success for r in results.values()),
        "definitions": {
            key: {
                "created": r.success and not r.data.get("existing"),
                "existing": bool(r.data.get("existing")),
                "errors": [e.message for e in r.user_errors],
            }
            for key, r in results.items()
        },
    }
