"""
Catalog Reconciliation

Compares the Shopify catalog with the local mirror and corrects drift.

Sync status is not stored: classify_sync derives it from the two id sets on
every call.

    synced           every external product is mirrored, no orphans
    needs_sync       external products missing locally
    might_need_sync  the fetch stopped at the record cap, orphans unknown
    needs_cleanup    local products absent from an exhaustive fetch
    error            the catalog could not be fetched
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, List, Optional, Tuple

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ecotrack.config import get_settings
from ecotrack.core.errors import ExternalApiError
from ecotrack.database.models import Product, Store
from ecotrack.metrics.store_aggregator import StoreAggregator
from ecotrack.sync.products import ProductService
from ecotrack.transformation.metafields import parse_metafields

logger = structlog.get_logger(__name__)
settings = get_settings()


class SyncStatus(str, Enum):
    SYNCED = "synced"
    NEEDS_SYNC = "needs_sync"
    MIGHT_NEED_SYNC = "might_need_sync"
    NEEDS_CLEANUP = "needs_cleanup"
    ERROR = "error"


@dataclass(frozen=True)
class SyncClassification:
    status: SyncStatus
    missing_locally: Tuple[str, ...] = ()
    orphaned: Tuple[str, ...] = ()


def classify_sync(
    local_ids: Iterable[str],
    external_ids: Iterable[str],
    exhaustive: bool,
) -> SyncClassification:
    """
    Classify the mirror against one catalog fetch.

    Orphans are only reported when ``exhaustive`` is True; a partial fetch
    cannot tell a deleted product from one on a page that was not read.
    """
    local = {str(i) for i in local_ids}
    external: List[str] = []
    seen = set()
    for product_id in map(str, external_ids):
        if product_id not in seen:
            seen.add(product_id)
            external.append(product_id)

    missing = tuple(i for i in external if i not in local)
    orphaned = tuple(sorted(local - seen)) if exhaustive else ()

    if missing:
        status = SyncStatus.NEEDS_SYNC
    elif orphaned:
        status = SyncStatus.NEEDS_CLEANUP
    elif not exhaustive:
        status = SyncStatus.MIGHT_NEED_SYNC
    else:
        status = SyncStatus.SYNCED
    return SyncClassification(status=status, missing_locally=missing, orphaned=orphaned)


@dataclass
class SyncReport:
    """Result of a status check, reconciliation or import pass"""
    status: SyncStatus
    shopify_product_count: int = 0
    local_product_count: int = 0
    exhaustive: bool = True
    missing_locally: List[str] = field(default_factory=list)
    orphaned: List[str] = field(default_factory=list)
    created: int = 0
    updated: int = 0
    deleted: int = 0
    defaults_written: int = 0
    error: Optional[str] = None

    @classmethod
    def failed(cls, error: str) -> "SyncReport":
        return cls(status=SyncStatus.ERROR, exhaustive=False, error=error)

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "shopify_product_count": self.shopify_product_count,
            "local_product_count": self.local_product_count,
            "exhaustive": self.exhaustive,
            "missing_locally": self.missing_locally,
            "orphaned": self.orphaned,
            "created": self.created,
            "updated": self.updated,
            "deleted": self.deleted,
            "defaults_written": self.defaults_written,
            "error": self.error,
        }


class ReconciliationEngine:
    """
    Drives corrective upserts and deletes for one store at a time.

    Per-product metrics are recorded without a store refresh; the store
    aggregates are refreshed once at the end of each pass.
    """

    def __init__(
        self,
        products: ProductService,
        aggregator: StoreAggregator,
        max_products: Optional[int] = None,
        prune_orphans: Optional[bool] = None,
    ):
        self.products = products
        self.aggregator = aggregator
        self.max_products = max_products if max_products is not None else settings.sync.max_products
        self.prune_orphans = prune_orphans if prune_orphans is not None else settings.sync.prune_orphans

    async def check_status(self, session: AsyncSession, store: Store, client) -> SyncReport:
        """
        Read-only classification for the dashboard.

        Gauges are not touched here; the status route republishes them
        through republish_store after classifying.
        """
        shop = store.shopify_domain
        local_ids = await self.products.local_ids(session, store.id)
        try:
            catalog, exhaustive = await client.fetch_catalog(limit=self.max_products)
        except ExternalApiError as e:
            logger.warning("Catalog fetch failed", shop=shop, error=e.message)
            return SyncReport.failed(e.message)

        classification = classify_sync(local_ids, [p.shopify_product_id for p in catalog], exhaustive)
        return SyncReport(
            status=classification.status,
            shopify_product_count=len(catalog),
            local_product_count=len(local_ids),
            exhaustive=exhaustive,
            missing_locally=list(classification.missing_locally),
            orphaned=list(classification.orphaned),
        )

    async def reconcile_store(self, session: AsyncSession, store: Store, client) -> SyncReport:
        """
        Create missing products, prune orphans, refresh store gauges.

        A failed catalog fetch returns an ``error`` report with zero counts.
        """
        store_id, shop = store.id, store.shopify_domain
        local_ids = await self.products.local_ids(session, store_id)
        try:
            catalog, exhaustive = await client.fetch_catalog(limit=self.max_products)
        except ExternalApiError as e:
            logger.warning("Catalog fetch failed", shop=shop, error=e.message)
            return SyncReport.failed(e.message)

        external_ids = [p.shopify_product_id for p in catalog]
        classification = classify_sync(local_ids, external_ids, exhaustive)
        by_id = {p.shopify_product_id: p for p in catalog}
        report = SyncReport(
            status=classification.status,
            shopify_product_count=len(catalog),
            exhaustive=exhaustive,
            missing_locally=list(classification.missing_locally),
            orphaned=list(classification.orphaned),
        )

        for product_id in classification.missing_locally:
            remote = by_id[product_id]
            fields = parse_metafields(remote.metafields, self.products.namespace)
            if fields.missing_keys:
                written = await self.products.write_default_metafields(client, product_id, fields.missing_keys)
                if written:
                    report.defaults_written += 1
            await self.products.upsert(
                session, store, product_id, remote.title, fields.with_defaults(), refresh_store=False
            )
            report.created += 1

        if classification.orphaned and self.prune_orphans:
            for product_id in classification.orphaned:
                if await self.products.delete(session, store, product_id, refresh_store=False):
                    report.deleted += 1

        await self.aggregator.refresh_store_aggregates(session, store_id)

        remaining = await self.products.local_ids(session, store_id)
        report.local_product_count = len(remaining)
        report.status = classify_sync(remaining, external_ids, exhaustive).status
        logger.info(
            "Store reconciled",
            shop=shop,
            status=report.status.value,
            created=report.created,
            deleted=report.deleted,
            exhaustive=exhaustive,
        )
        return report

    async def import_catalog(self, session: AsyncSession, store: Store, client) -> SyncReport:
        """Import every catalog product, creating new ones and updating existing ones."""
        store_id, shop = store.id, store.shopify_domain
        try:
            catalog, exhaustive = await client.fetch_catalog(limit=None)
        except ExternalApiError as e:
            logger.warning("Catalog fetch failed", shop=shop, error=e.message)
            return SyncReport.failed(e.message)

        report = SyncReport(status=SyncStatus.SYNCED, shopify_product_count=len(catalog), exhaustive=exhaustive)
        for remote in catalog:
            fields = parse_metafields(remote.metafields, self.products.namespace)
            if fields.missing_keys:
                written = await self.products.write_default_metafields(
                    client, remote.shopify_product_id, fields.missing_keys
                )
                if written:
                    report.defaults_written += 1

            exists = await self.products.get(session, store_id, remote.shopify_product_id) is not None
            if not exists:
                fields = fields.with_defaults()
            await self.products.upsert(
                session, store, remote.shopify_product_id, remote.title, fields, refresh_store=False
            )
            if exists:
                report.updated += 1
            else:
                report.created += 1

        await self.aggregator.refresh_store_aggregates(session, store_id)

        local_ids = await self.products.local_ids(session, store_id)
        classification = classify_sync(local_ids, [p.shopify_product_id for p in catalog], exhaustive)
        report.local_product_count = len(local_ids)
        report.status = classification.status
        report.orphaned = list(classification.orphaned)
        logger.info("Catalog imported", shop=shop, created=report.created, updated=report.updated)
        return report

    async def republish_store(self, session: AsyncSession, store_id) -> int:
        """Publish gauges for every mirrored product of a store, e.g. after a restart."""
        result = await session.execute(select(Product).where(Product.store_id == store_id))
        products = result.scalars().all()
        for product in products:
            await self.products.recorder.record_and_publish(session, product, refresh_store=False)
        await self.aggregator.refresh_store_aggregates(session, store_id)
        return len(products)
