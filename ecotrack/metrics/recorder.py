"""
Product Metrics Recorder

After every successful product write:
1. append a history snapshot when a tracked value changed
2. publish the per-product gauges
3. refresh the owning store's aggregate gauges

Each step is best effort. Failures are logged and reported through the
returned SideEffectResult; they never undo or fail the product write.
"""

from dataclasses import dataclass, fields
from typing import Any, Dict, List, Optional
import uuid

import structlog
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ecotrack.core.errors import IncompleteProduct
from ecotrack.core.results import SideEffectResult
from ecotrack.database.models import Product, ProductMetricsHistory, TRACKED_FIELDS
from ecotrack.metrics.sink import (
    MetricsSink,
    PRODUCT_VALUE_GAUGES,
    product_labels,
)

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ProductSnapshot:
    """
    Detached copy of a product row.

    Taken before any side effect so a rollback in one step cannot expire the
    attributes the next step reads.
    """
    id: Optional[uuid.UUID]
    shopify_product_id: Optional[str]
    store_id: Optional[uuid.UUID]
    title: Optional[str]
    sustainable_materials: Optional[float]
    is_locally_produced: Optional[bool]
    packaging_weight: Optional[float]
    product_weight: Optional[float]
    packaging_ratio: Optional[float]

    @classmethod
    def from_product(cls, product: Product) -> "ProductSnapshot":
        return cls(**{f.name: getattr(product, f.name) for f in fields(cls)})

    @property
    def missing_identity(self) -> List[str]:
        return [name for name in ("shopify_product_id", "store_id") if not getattr(self, name)]

    @property
    def labels(self) -> Dict[str, str]:
        return product_labels(self.shopify_product_id, self.title, self.store_id)

    def tracked_values(self) -> Dict[str, Any]:
        return {name: getattr(self, name) for name in TRACKED_FIELDS}


class ProductMetricsRecorder:
    """
    Records history and publishes gauges for product writes.

    Args:
        sink: Destination of the live gauges
        aggregator: StoreAggregator refreshed after each product, optional
    """

    def __init__(self, sink: MetricsSink, aggregator=None):
        self.sink = sink
        self.aggregator = aggregator

    async def record_and_publish(
        self,
        session: AsyncSession,
        product: Product,
        refresh_store: bool = True,
    ) -> SideEffectResult:
        """
        Run every post-write side effect for ``product``.

        Pass refresh_store=False when the caller refreshes the store once
        after a batch of products.
        """
        snapshot = ProductSnapshot.from_product(product)
        missing = snapshot.missing_identity
        if missing:
            return SideEffectResult.failure(
                "record_product_metrics",
                IncompleteProduct(missing),
            ).log_if_failed(product_id=snapshot.shopify_product_id)

        steps = [
            await self.append_history(session, snapshot),
            self.publish(snapshot),
        ]
        if refresh_store and self.aggregator is not None:
            steps.append(await self.aggregator.refresh_store_aggregates(session, snapshot.store_id))

        failed = [step for step in steps if not step]
        if failed:
            return SideEffectResult.failure(
                "record_product_metrics",
                failed[0].error,
                failed_steps=[step.operation for step in failed],
                product_id=snapshot.shopify_product_id,
            )
        return SideEffectResult.success(
            "record_product_metrics",
            product_id=snapshot.shopify_product_id,
            history_appended=steps[0].details.get("appended", False),
        )

    async def append_history(self, session: AsyncSession, snapshot: ProductSnapshot) -> SideEffectResult:
        """Insert a history row unless the latest one already holds the same values."""
        try:
            latest = await self.latest_history(session, snapshot.id)
            current = snapshot.tracked_values()
            if latest is not None and all(
                getattr(latest, name) == value for name, value in current.items()
            ):
                return SideEffectResult.success("append_history", appended=False)

            session.add(ProductMetricsHistory(product_id=snapshot.id, **current))
            await session.commit()
            logger.debug("Product history appended", product_id=snapshot.shopify_product_id)
            return SideEffectResult.success("append_history", appended=True)
        except SQLAlchemyError as e:
            await session.rollback()
            return SideEffectResult.failure("append_history", e).log_if_failed(
                product_id=snapshot.shopify_product_id,
            )
        except Exception as e:
            return SideEffectResult.failure("append_history", e).log_if_failed(
                product_id=snapshot.shopify_product_id,
            )

    @staticmethod
    async def latest_history(session: AsyncSession, product_id: uuid.UUID) -> Optional[ProductMetricsHistory]:
        result = await session.execute(
            select(ProductMetricsHistory)
            .where(ProductMetricsHistory.product_id == product_id)
            .order_by(ProductMetricsHistory.timestamp.desc(), ProductMetricsHistory.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    def publish(self, snapshot: ProductSnapshot) -> SideEffectResult:
        """Set the per-product gauges, skipping values that are not set."""
        try:
            labels = snapshot.labels
            self.sink.set_gauge("product_status", labels, 1)
            if snapshot.sustainable_materials is not None:
                self.sink.set_gauge("sustainable_materials_percentage", labels, snapshot.sustainable_materials)
            if snapshot.packaging_ratio is not None:
                self.sink.set_gauge("packaging_ratio", labels, snapshot.packaging_ratio)
            if snapshot.is_locally_produced is not None:
                self.sink.set_gauge("is_locally_produced", labels, 1 if snapshot.is_locally_produced else 0)
            return SideEffectResult.success("publish_product_gauges")
        except Exception as e:
            return SideEffectResult.failure("publish_product_gauges", e).log_if_failed(
                product_id=snapshot.shopify_product_id,
            )

    def retire(self, snapshot: ProductSnapshot) -> SideEffectResult:
        """Mark a deleted product inactive and drop its value series."""
        try:
            labels = snapshot.labels
            self.sink.set_gauge("product_status", labels, 0)
            for name in PRODUCT_VALUE_GAUGES:
                self.sink.remove_gauge(name, labels)
            return SideEffectResult.success("retire_product_gauges")
        except Exception as e:
            return SideEffectResult.failure("retire_product_gauges", e).log_if_failed(
                product_id=snapshot.shopify_product_id,
            )
