"""
Bulk Metafield Import

Reads a CSV of sustainability values and applies each row through the
single-product edit path (Shopify first, then the local mirror).

Expected columns: product_id, sustainable_materials, locally_produced,
packaging_weight, product_weight. Only product_id is required per row;
empty cells are left untouched.

Rows run in fixed-size batches: each batch is processed concurrently and
awaited as a unit, then the importer pauses before the next batch to stay
under the Admin API rate limit.
"""

import asyncio
import io
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import polars as pl
import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ecotrack.config import get_settings
from ecotrack.core.errors import EcoTrackError, ExternalApiError, InvalidNumber
from ecotrack.database.models import Store
from ecotrack.sync.products import ProductService
from ecotrack.transformation.metafields import SustainabilityFields
from ecotrack.transformation.normalizers import (
    normalize_sustainable_materials,
    normalize_weight,
    parse_locally_produced,
)

logger = structlog.get_logger(__name__)
settings = get_settings()

CSV_COLUMNS = ("product_id", "sustainable_materials", "locally_produced", "packaging_weight", "product_weight")


class InvalidCsv(EcoTrackError):
    """The uploaded file cannot be read as an import CSV"""


@dataclass
class RowResult:
    row_number: Optional[int]
    product_id: Optional[str]
    success: bool
    error: Optional[str] = None
    status_code: int = 200
    values: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "row_number": self.row_number,
            "product_id": self.product_id,
            "success": self.success,
            "error": self.error,
            "values": self.values,
        }


@dataclass
class ImportSummary:
    results: List[RowResult] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed(self) -> int:
        return self.total - self.succeeded

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "results": [r.to_dict() for r in self.results],
        }


def _cell(row: Dict[str, Any], key: str) -> Optional[str]:
    value = row.get(key)
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def read_csv_rows(data: bytes) -> List[Dict[str, Any]]:
    """
    Parse CSV bytes into row dicts with a ``_row_number`` (header is row 1).

    Raises:
        InvalidCsv: unreadable file or no product_id column
    """
    try:
        df = pl.read_csv(io.BytesIO(data), infer_schema_length=0)
    except (pl.exceptions.ComputeError, pl.exceptions.NoDataError) as e:
        raise InvalidCsv(f"Could not read CSV: {e}") from e

    df = df.rename({name: name.strip().lower() for name in df.columns})
    if "product_id" not in df.columns:
        raise InvalidCsv("CSV is missing the product_id column", columns=df.columns)

    rows = df.select([c for c in CSV_COLUMNS if c in df.columns]).to_dicts()
    for index, row in enumerate(rows):
        row["_row_number"] = index + 2
    return rows


def parse_row_fields(row: Dict[str, Any]) -> SustainabilityFields:
    """
    Normalize the values of one row on the bulk path.

    Sustainable materials accept percentages (90 -> 0.90). Unparseable
    numbers are dropped.
    """
    fields = SustainabilityFields()

    raw = _cell(row, "sustainable_materials")
    if raw is not None:
        try:
            fields.sustainable_materials = normalize_sustainable_materials(raw, bulk=True)
        except InvalidNumber:
            logger.debug("Dropping invalid sustainable_materials", value=raw, row=row.get("_row_number"))

    raw = _cell(row, "locally_produced")
    if raw is not None:
        fields.is_locally_produced = parse_locally_produced(raw)

    for key in ("packaging_weight", "product_weight"):
        raw = _cell(row, key)
        if raw is None:
            continue
        try:
            setattr(fields, key, normalize_weight(raw, key))
        except InvalidNumber:
            logger.debug("Dropping invalid weight", field=key, value=raw, row=row.get("_row_number"))

    return fields


class CsvImporter:
    """
    Applies import rows for one store.

    Args:
        products: ProductService used for the edit path
        session_factory: Each concurrent row gets its own session
    """

    def __init__(
        self,
        products: ProductService,
        session_factory: async_sessionmaker[AsyncSession],
        batch_size: Optional[int] = None,
        batch_delay: Optional[float] = None,
    ):
        self.products = products
        self.session_factory = session_factory
        self.batch_size = max(1, batch_size or settings.sync.import_batch_size)
        self.batch_delay = settings.sync.import_batch_delay_seconds if batch_delay is None else batch_delay

    async def import_row(self, session: AsyncSession, store: Store, client, row: Dict[str, Any]) -> RowResult:
        row_number = row.get("_row_number")
        product_id = _cell(row, "product_id")
        if product_id is None:
            return RowResult(row_number, None, False, "Missing product_id", 400)

        try:
            remote = await client.get_product(product_id)
            if remote is None:
                return RowResult(row_number, product_id, False, f"Product {product_id} not found in Shopify", 404)

            fields = parse_row_fields(row)
            if fields.is_empty:
                return RowResult(row_number, product_id, False, "No valid metafields to update", 400)

            edit = await self.products.apply_edit(
                session, store, client, remote.shopify_product_id, fields, title=remote.title
            )
        except ExternalApiError as e:
            return RowResult(row_number, product_id, False, e.message, 502)

        if not edit.success:
            return RowResult(row_number, product_id, False, edit.mutation.error_message, 400)
        return RowResult(row_number, product_id, True, values=fields.as_model_values())

    async def _import_isolated(self, store_id, client, row: Dict[str, Any]) -> RowResult:
        async with self.session_factory() as session:
            try:
                store = await session.get(Store, store_id)
                return await self.import_row(session, store, client, row)
            except (EcoTrackError, SQLAlchemyError) as e:
                logger.error("Import row failed", row=row.get("_row_number"), error=str(e))
                await session.rollback()
                return RowResult(row.get("_row_number"), _cell(row, "product_id"), False, str(e), 500)

    async def import_rows(self, store_id, client, rows: List[Dict[str, Any]]) -> ImportSummary:
        summary = ImportSummary()
        batches = [rows[i:i + self.batch_size] for i in range(0, len(rows), self.batch_size)]
        for index, batch in enumerate(batches):
            results = await asyncio.gather(*(self._import_isolated(store_id, client, row) for row in batch))
            summary.results.extend(results)
            logger.info(
                "Import batch processed",
                batch=index + 1,
                batches=len(batches),
                succeeded=sum(1 for r in results if r.success),
            )
            if index < len(batches) - 1 and self.batch_delay > 0:
                await asyncio.sleep(self.batch_delay)
        return summary

    async def import_csv(self, store_id, client, data: bytes) -> ImportSummary:
        rows = read_csv_rows(data)
        logger.info("CSV import started", rows=len(rows), batch_size=self.batch_size)
        return await self.import_rows(store_id, client, rows)
