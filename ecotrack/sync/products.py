"""
Product Mirror

Writes to the local product table, always followed by the metrics recorder:
- webhook create / update / delete
- editor updates pushed to Shopify first, then mirrored
- default metafield write-back for products missing sustainability fields
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

import structlog
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ecotrack.config import get_settings
from ecotrack.core.errors import ExternalApiError, PersistenceError
from ecotrack.core.results import MutationResult, SideEffectResult
from ecotrack.database.models import Product, ProductMetricsHistory, Store
from ecotrack.metrics.recorder import ProductMetricsRecorder, ProductSnapshot
from ecotrack.metrics.store_aggregator import StoreAggregator
from ecotrack.transformation.metafields import (
    SustainabilityFields,
    build_metafield_inputs,
    default_metafield_inputs,
    parse_metafields,
)

logger = structlog.get_logger(__name__)
settings = get_settings()


@dataclass
class ProductWriteResult:
    product: Optional[Product]
    created: bool = False
    skipped: bool = False
    metrics: Optional[SideEffectResult] = None


@dataclass
class EditResult:
    """Outcome of an editor update: the Shopify mutation and, when it succeeded, the local write"""
    mutation: MutationResult
    write: Optional[ProductWriteResult] = None

    @property
    def success(self) -> bool:
        return self.mutation.success


class ProductService:
    """
    Local product writes.

    Every successful write is followed by recorder.record_and_publish; its
    result is attached to the ProductWriteResult but never raised.
    """

    def __init__(self, recorder: ProductMetricsRecorder, aggregator: StoreAggregator):
        self.recorder = recorder
        self.aggregator = aggregator
        self.namespace = settings.shopify.metafield_namespace

    async def get(self, session: AsyncSession, store_id, shopify_product_id: Any) -> Optional[Product]:
        result = await session.execute(
            select(Product).where(
                Product.store_id == store_id,
                Product.shopify_product_id == str(shopify_product_id),
            )
        )
        return result.scalar_one_or_none()

    async def local_ids(self, session: AsyncSession, store_id) -> List[str]:
        result = await session.execute(
            select(Product.shopify_product_id).where(Product.store_id == store_id)
        )
        return list(result.scalars().all())

    async def upsert(
        self,
        session: AsyncSession,
        store: Store,
        shopify_product_id: Any,
        title: Optional[str],
        fields: SustainabilityFields,
        refresh_store: bool = True,
    ) -> ProductWriteResult:
        """
        Create or update a product with the supplied fields.

        Unset fields keep their stored value; packaging_ratio is recomputed
        from the resulting weights. Last write wins.
        """
        store_id, shop = store.id, store.shopify_domain
        shopify_product_id = str(shopify_product_id)
        values = fields.as_model_values()

        product = await self.get(session, store_id, shopify_product_id)
        created = product is None
        if created:
            product = Product(shopify_product_id=shopify_product_id, store_id=store_id, title=title)
            session.add(product)
        elif title is not None:
            product.title = title
        product.apply_metrics(**values)

        try:
            await session.commit()
        except IntegrityError:
            # A concurrent writer inserted the same product first
            await session.rollback()
            product = await self.get(session, store_id, shopify_product_id)
            if product is None:
                raise PersistenceError(
                    "Product vanished during upsert",
                    shopify_product_id=shopify_product_id,
                )
            created = False
            if title is not None:
                product.title = title
            product.apply_metrics(**values)
            await session.commit()

        logger.info(
            "Product created" if created else "Product updated",
            shop=shop,
            product_id=shopify_product_id,
        )
        metrics = await self.recorder.record_and_publish(session, product, refresh_store=refresh_store)
        return ProductWriteResult(product=product, created=created, metrics=metrics)

    # -------------------------------------------------------------------------
    # Webhooks
    # -------------------------------------------------------------------------

    async def create_from_shopify(
        self,
        session: AsyncSession,
        store: Store,
        shopify_product_id: Any,
        title: Optional[str],
        metafields: Optional[Iterable[Dict[str, Any]]],
        client=None,
        refresh_store: bool = True,
    ) -> ProductWriteResult:
        """
        Mirror a newly created product.

        Existing products are left alone. Missing sustainability metafields
        are initialized on Shopify (when a client is available) and locally
        with their default values.
        """
        existing = await self.get(session, store.id, shopify_product_id)
        if existing is not None:
            logger.info("Product already exists", shop=store.shopify_domain, product_id=str(shopify_product_id))
            return ProductWriteResult(product=existing, skipped=True)

        fields = parse_metafields(metafields, self.namespace)
        if fields.missing_keys and client is not None:
            await self.write_default_metafields(client, shopify_product_id, fields.missing_keys)

        return await self.upsert(
            session, store, shopify_product_id, title, fields.with_defaults(), refresh_store=refresh_store
        )

    async def update_from_shopify(
        self,
        session: AsyncSession,
        store: Store,
        shopify_product_id: Any,
        title: Optional[str],
        metafields: Optional[Iterable[Dict[str, Any]]],
    ) -> ProductWriteResult:
        fields = parse_metafields(metafields, self.namespace)
        return await self.upsert(session, store, shopify_product_id, title, fields)

    async def delete(
        self,
        session: AsyncSession,
        store: Store,
        shopify_product_id: Any,
        refresh_store: bool = True,
    ) -> bool:
        """
        Remove a product, its history and its per-product series.

        Returns:
            False when the product was not mirrored; that is not an error
        """
        store_id, shop = store.id, store.shopify_domain
        product = await self.get(session, store_id, shopify_product_id)
        if product is None:
            logger.info("Product to delete not found", shop=shop, product_id=str(shopify_product_id))
            return False

        snapshot = ProductSnapshot.from_product(product)
        await session.execute(
            delete(ProductMetricsHistory).where(ProductMetricsHistory.product_id == product.id)
        )
        await session.delete(product)
        await session.commit()
        logger.info("Product deleted", shop=shop, product_id=snapshot.shopify_product_id)

        self.recorder.retire(snapshot)
        if refresh_store:
            await self.aggregator.refresh_store_aggregates(session, store_id)
        return True

    # -------------------------------------------------------------------------
    # Shopify write-back
    # -------------------------------------------------------------------------

    async def write_default_metafields(
        self,
        client,
        shopify_product_id: Any,
        missing_keys: Iterable[str],
    ) -> SideEffectResult:
        """Initialize absent metafields on Shopify; existing values are never sent."""
        inputs = default_metafield_inputs(missing_keys, self.namespace)
        if not inputs:
            return SideEffectResult.success("write_default_metafields", written=0)
        try:
            result = await client.set_product_metafields(shopify_product_id, inputs)
        except ExternalApiError as e:
            return SideEffectResult.failure("write_default_metafields", e).log_if_failed(
                product_id=str(shopify_product_id),
            )
        if not result.success:
            return SideEffectResult.failure(
                "write_default_metafields",
                ExternalApiError(result.error_message),
            ).log_if_failed(product_id=str(shopify_product_id))
        return SideEffectResult.success("write_default_metafields", written=len(inputs))

    async def apply_edit(
        self,
        session: AsyncSession,
        store: Store,
        client,
        shopify_product_id: Any,
        fields: SustainabilityFields,
        title: Optional[str] = None,
    ) -> EditResult:
        """
        Push normalized values to Shopify, then mirror them locally.

        Shopify userErrors stop the local write and come back in the result.
        """
        mutation = await client.set_product_metafields(
            shopify_product_id, build_metafield_inputs(fields, self.namespace)
        )
        if not mutation.success:
            return EditResult(mutation=mutation)

        if title is None and await self.get(session, store.id, shopify_product_id) is None:
            remote = await client.get_product(shopify_product_id)
            title = remote.title if remote else None

        write = await self.upsert(session, store, shopify_product_id, title, fields)
        return EditResult(mutation=mutation, write=write)
