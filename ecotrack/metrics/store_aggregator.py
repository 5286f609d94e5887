"""
Store Aggregator

Store-level gauges derived from the current product rows and the persisted
average delivery distance.
"""

import uuid

import structlog
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ecotrack.core.errors import NotFound
from ecotrack.core.results import SideEffectResult
from ecotrack.database.models import Product, Store
from ecotrack.metrics.sink import MetricsSink, store_labels

logger = structlog.get_logger(__name__)


class StoreAggregator:
    """Publishes store_* gauges for one store or all of them"""

    def __init__(self, sink: MetricsSink):
        self.sink = sink

    async def refresh_store_aggregates(self, session: AsyncSession, store_id: uuid.UUID) -> SideEffectResult:
        try:
            store = await session.get(Store, store_id)
            if store is None:
                raise NotFound("Store", store_id)

            result = await session.execute(select(Product).where(Product.store_id == store_id))
            products = result.scalars().all()

            labels = store_labels(store.id, store.name, store.shopify_domain)
            self.sink.set_gauge("store_product_count", labels, len(products))

            materials = [p.sustainable_materials for p in products if p.sustainable_materials is not None]
            if materials:
                self.sink.set_gauge(
                    "store_avg_sustainable_materials",
                    labels,
                    sum(materials) / len(materials),
                )

            local_count = sum(1 for p in products if p.is_locally_produced is True)
            self.sink.set_gauge("store_local_products_count", labels, local_count)

            if store.avg_delivery_distance is not None:
                self.sink.set_gauge("store_avg_delivery_distance_km", labels, store.avg_delivery_distance)

            logger.debug(
                "Store aggregates refreshed",
                store=store.shopify_domain,
                products=len(products),
                local=local_count,
            )
            return SideEffectResult.success("refresh_store_aggregates", products=len(products))
        except SQLAlchemyError as e:
            await session.rollback()
            return SideEffectResult.failure("refresh_store_aggregates", e).log_if_failed(
                store_id=str(store_id),
            )
        except Exception as e:
            return SideEffectResult.failure("refresh_store_aggregates", e).log_if_failed(
                store_id=str(store_id),
            )

    async def refresh_all_stores(self, session: AsyncSession) -> SideEffectResult:
        try:
            result = await session.execute(select(Store.id))
            store_ids = list(result.scalars().all())
        except SQLAlchemyError as e:
            await session.rollback()
            return SideEffectResult.failure("refresh_all_stores", e).log_if_failed()

        refreshed = 0
        for store_id in store_ids:
            if await self.refresh_store_aggregates(session, store_id):
                refreshed += 1

        logger.info("Store aggregates refreshed", stores=len(store_ids), refreshed=refreshed)
        return SideEffectResult.success("refresh_all_stores", stores=len(store_ids), refreshed=refreshed)
