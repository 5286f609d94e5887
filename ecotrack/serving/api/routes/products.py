"""
Products API Endpoints

Product listing plus the editor update paths and the bulk metafield
import for one store. Edits go to Shopify first and are mirrored locally
once the mutation succeeds.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Union
from uuid import UUID

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile
from pydantic import BaseModel
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ecotrack.core.errors import NotFound
from ecotrack.database.connection import get_db_dependency
from ecotrack.database.models import Product, ProductMetricsHistory, Store
from ecotrack.ingestion.csv_import import InvalidCsv
from ecotrack.serving.api.dependencies import get_current_store, get_services, get_shopify_client
from ecotrack.serving.services import AppServices
from ecotrack.sync.products import EditResult
from ecotrack.transformation.metafields import SustainabilityFields
from ecotrack.transformation.normalizers import (
    normalize_sustainable_materials,
    normalize_weight,
    parse_locally_produced,
)

router = APIRouter()


# =============================================================================
# SCHEMAS
# =============================================================================

class ProductSummary(BaseModel):
    """Product summary response"""
    id: UUID
    shopify_product_id: str
    title: Optional[str]
    sustainable_materials: Optional[float]
    is_locally_produced: Optional[bool]
    packaging_weight: Optional[float]
    product_weight: Optional[float]
    packaging_ratio: Optional[float]
    updated_at: Optional[datetime]

    class Config:
        from_attributes = True


class HistoryEntry(BaseModel):
    sustainable_materials: Optional[float]
    is_locally_produced: Optional[bool]
    packaging_weight: Optional[float]
    product_weight: Optional[float]
    packaging_ratio: Optional[float]
    timestamp: datetime

    class Config:
        from_attributes = True


class ProductDetail(ProductSummary):
    """Product with its metrics history, newest first"""
    history: List[HistoryEntry]


class ProductListResponse(BaseModel):
    """Paginated product list"""
    items: List[ProductSummary]
    total: int
    page: int
    page_size: int


class SustainableMaterialsUpdate(BaseModel):
    value: Union[float, str]


class PackagingWeightUpdate(BaseModel):
    packaging_weight: Union[float, str]
    product_weight: Union[float, str]


class LocallyProducedUpdate(BaseModel):
    value: Union[bool, str]


class EditResponse(BaseModel):
    success: bool
    product_id: str
    values: Dict[str, Any]
    packaging_ratio: Optional[float] = None
    created: bool = False


# =============================================================================
# QUERIES
# =============================================================================

@router.get("", response_model=ProductListResponse)
async def list_products(
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=250),
    locally_produced: Optional[bool] = None,
    search: Optional[str] = None,
    store: Store = Depends(get_current_store),
    db: AsyncSession = Depends(get_db_dependency),
) -> ProductListResponse:
    """
    List the store's products with their current values.
    """
    conditions = [Product.store_id == store.id]
    if locally_produced is not None:
        conditions.append(Product.is_locally_produced == locally_produced)
    if search:
        conditions.append(Product.title.ilike(f"%{search}%"))

    total = (await db.execute(select(func.count(Product.id)).where(*conditions))).scalar() or 0

    offset = (page - 1) * page_size
    result = await db.execute(
        select(Product).where(*conditions).order_by(Product.title).offset(offset).limit(page_size)
    )
    products = result.scalars().all()

    return ProductListResponse(
        items=[ProductSummary.model_validate(p) for p in products],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/{product_id}", response_model=ProductDetail)
async def get_product(
    product_id: str,
    history_limit: int = Query(20, ge=1, le=500),
    store: Store = Depends(get_current_store),
    db: AsyncSession = Depends(get_db_dependency),
    services: AppServices = Depends(get_services),
) -> ProductDetail:
    product = await services.products.get(db, store.id, product_id)
    if product is None:
        raise NotFound("Product", product_id)

    result = await db.execute(
        select(ProductMetricsHistory)
        .where(ProductMetricsHistory.product_id == product.id)
        .order_by(ProductMetricsHistory.timestamp.desc(), ProductMetricsHistory.id.desc())
        .limit(history_limit)
    )
    history = [HistoryEntry.model_validate(h) for h in result.scalars().all()]
    return ProductDetail(**ProductSummary.model_validate(product).model_dump(), history=history)


# =============================================================================
# EDITOR UPDATES
# =============================================================================

def _edit_response(product_id: str, edit: EditResult, fields: SustainabilityFields) -> EditResponse:
    if not edit.success:
        raise HTTPException(
            status_code=400,
            detail={
                "message": edit.mutation.error_message,
                "user_errors": [{"message": e.message, "field": e.field} for e in edit.mutation.user_errors],
            },
        )
    product = edit.write.product if edit.write else None
    return EditResponse(
        success=True,
        product_id=product_id,
        values=fields.as_model_values(),
        packaging_ratio=product.packaging_ratio if product else fields.packaging_ratio,
        created=bool(edit.write and edit.write.created),
    )


@router.post("/{product_id}/sustainable-materials", response_model=EditResponse)
async def update_sustainable_materials(
    product_id: str,
    body: SustainableMaterialsUpdate,
    store: Store = Depends(get_current_store),
    client=Depends(get_shopify_client),
    db: AsyncSession = Depends(get_db_dependency),
    services: AppServices = Depends(get_services),
) -> EditResponse:
    """Set the share of sustainable materials (0-1, clamped)."""
    fields = SustainabilityFields(sustainable_materials=normalize_sustainable_materials(body.value))
    edit = await services.products.apply_edit(db, store, client, product_id, fields)
    return _edit_response(product_id, edit, fields)


@router.post("/{product_id}/packaging-weight", response_model=EditResponse)
async def update_packaging_weight(
    product_id: str,
    body: PackagingWeightUpdate,
    store: Store = Depends(get_current_store),
    client=Depends(get_shopify_client),
    db: AsyncSession = Depends(get_db_dependency),
    services: AppServices = Depends(get_services),
) -> EditResponse:
    """Set packaging and product weight (kg); the ratio is recomputed locally."""
    fields = SustainabilityFields(
        packaging_weight=normalize_weight(body.packaging_weight, "packaging_weight"),
        product_weight=normalize_weight(body.product_weight, "product_weight"),
    )
    edit = await services.products.apply_edit(db, store, client, product_id, fields)
    return _edit_response(product_id, edit, fields)


@router.post("/{product_id}/locally-produced", response_model=EditResponse)
async def update_locally_produced(
    product_id: str,
    body: LocallyProducedUpdate,
    store: Store = Depends(get_current_store),
    client=Depends(get_shopify_client),
    db: AsyncSession = Depends(get_db_dependency),
    services: AppServices = Depends(get_services),
) -> EditResponse:
    fields = SustainabilityFields(is_locally_produced=parse_locally_produced(body.value))
    edit = await services.products.apply_edit(db, store, client, product_id, fields)
    return _edit_response(product_id, edit, fields)


# =============================================================================
# BULK IMPORT
# =============================================================================

@router.post("/import-row")
async def import_row(
    row: Dict[str, Any],
    store: Store = Depends(get_current_store),
    client=Depends(get_shopify_client),
    db: AsyncSession = Depends(get_db_dependency),
    services: AppServices = Depends(get_services),
) -> Dict[str, Any]:
    """
    Apply a single CSV row, as sent by a client that parses the file itself.
    """
    result = await services.importer.import_row(db, store, client, row)
    if not result.success:
        raise HTTPException(status_code=result.status_code, detail=result.error)
    return result.to_dict()


@router.post("/import-csv")
async def import_csv(
    file: UploadFile = File(...),
    store: Store = Depends(get_current_store),
    client=Depends(get_shopify_client),
    services: AppServices = Depends(get_services),
) -> Dict[str, Any]:
    """
    Apply every row of an uploaded CSV in rate-limited batches.

    Row failures are reported per row; only an unreadable file fails the request.
    """
    data = await file.read()
    if not data:
        raise InvalidCsv("Uploaded file is empty")
    summary = await services.importer.import_csv(store.id, client, data)
    return summary.to_dict()
