"""
Delivery Distances

Fulfilled orders are stored with the haversine distance between the store's
warehouse and the shipping address. The store keeps the mean distance over
its fulfilled orders that have one.
"""

from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import structlog
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ecotrack.config import get_settings
from ecotrack.core.results import SideEffectResult
from ecotrack.database.models import Order, Store
from ecotrack.metrics.sink import MetricsSink
from ecotrack.metrics.store_aggregator import StoreAggregator
from ecotrack.shopify.client import ShippingAddress
from ecotrack.sync.stores import resolve_warehouse
from ecotrack.transformation.geo import haversine_km

logger = structlog.get_logger(__name__)
settings = get_settings()


@dataclass
class OrdersRefreshSummary:
    processed: int = 0
    with_distance: int = 0
    avg_delivery_distance: Optional[float] = None
    top_zips: List[Dict[str, object]] = field(default_factory=list)


class OrderService:
    """Fulfilled-order mirror and delivery distance gauges"""

    def __init__(self, sink: MetricsSink, aggregator: StoreAggregator):
        self.sink = sink
        self.aggregator = aggregator

    async def record_fulfilled(
        self,
        session: AsyncSession,
        store: Store,
        shopify_order_id,
        name: Optional[str],
        address: Optional[ShippingAddress],
        client=None,
        refresh_store: bool = True,
    ) -> Optional[Order]:
        """
        Upsert a fulfilled order and its delivery distance.

        Orders without a shipping address are skipped. Addresses without
        coordinates are stored with a null distance.
        """
        if address is None:
            logger.info("Order has no shipping address", shop=store.shopify_domain, order=name)
            return None

        store_id = store.id
        warehouse = await resolve_warehouse(session, store, client)
        distance = None
        if address.has_coordinates:
            distance = haversine_km(warehouse[0], warehouse[1], address.latitude, address.longitude)
        else:
            logger.info("Order shipping address missing coordinates", shop=store.shopify_domain, order=name)

        order = await self._upsert(session, store_id, str(shopify_order_id), name, address, distance)

        if distance is not None:
            self.publish_distance(order.shopify_order_id, store_id, distance)

        if refresh_store:
            await self.update_store_average(session, store)
            await self.aggregator.refresh_store_aggregates(session, store_id)
        return order

    async def _upsert(
        self,
        session: AsyncSession,
        store_id,
        shopify_order_id: str,
        name: Optional[str],
        address: ShippingAddress,
        distance: Optional[float],
    ) -> Order:
        values = {
            "shopify_order_name": name,
            "fulfilled": True,
            "delivery_address": address.address1,
            "delivery_city": address.city,
            "delivery_country": address.country,
            "delivery_zip_code": address.zip,
            "delivery_distance": distance,
        }
        order = await self._get(session, store_id, shopify_order_id)
        if order is None:
            order = Order(shopify_order_id=shopify_order_id, store_id=store_id, **values)
            session.add(order)
        else:
            for key, value in values.items():
                setattr(order, key, value)

        try:
            await session.commit()
        except IntegrityError:
            await session.rollback()
            order = await self._get(session, store_id, shopify_order_id)
            for key, value in values.items():
                setattr(order, key, value)
            await session.commit()
        return order

    @staticmethod
    async def _get(session: AsyncSession, store_id, shopify_order_id: str) -> Optional[Order]:
        result = await session.execute(
            select(Order).where(Order.store_id == store_id, Order.shopify_order_id == shopify_order_id)
        )
        return result.scalar_one_or_none()

    def publish_distance(self, shopify_order_id: str, store_id, distance: float) -> SideEffectResult:
        try:
            self.sink.set_gauge(
                "delivery_distance_km",
                {"order_id": shopify_order_id, "store_id": str(store_id)},
                distance,
            )
            return SideEffectResult.success("publish_delivery_distance")
        except Exception as e:
            return SideEffectResult.failure("publish_delivery_distance", e).log_if_failed(order_id=shopify_order_id)

    async def update_store_average(self, session: AsyncSession, store: Store) -> Optional[float]:
        """Recompute the store mean over fulfilled orders with a distance; unchanged when there are none."""
        result = await session.execute(
            select(func.avg(Order.delivery_distance), func.count(Order.id)).where(
                Order.store_id == store.id,
                Order.fulfilled.is_(True),
                Order.delivery_distance.is_not(None),
            )
        )
        average, count = result.one()
        if not count:
            return store.avg_delivery_distance

        store.avg_delivery_distance = float(average)
        await session.commit()
        logger.info(
            "Store average delivery distance updated",
            shop=store.shopify_domain,
            orders=count,
            avg_km=round(store.avg_delivery_distance, 2),
        )
        return store.avg_delivery_distance

    async def refresh_from_shopify(self, session: AsyncSession, store: Store, client) -> OrdersRefreshSummary:
        """Pull fulfilled orders from Shopify and rebuild distances for the store."""
        summary = OrdersRefreshSummary()
        zips: Counter = Counter()
        cursor = None
        while summary.processed < settings.sync.max_products:
            page = await client.fetch_fulfilled_orders_page(cursor)
            for remote in page.orders:
                order = await self.record_fulfilled(
                    session,
                    store,
                    remote.shopify_order_id,
                    remote.name,
                    remote.shipping_address,
                    client=client,
                    refresh_store=False,
                )
                summary.processed += 1
                if order is None:
                    continue
                if order.delivery_distance is not None:
                    summary.with_distance += 1
                if order.delivery_zip_code:
                    zips[order.delivery_zip_code] += 1
            if not page.has_next_page:
                break
            cursor = page.end_cursor

        summary.avg_delivery_distance = await self.update_store_average(session, store)
        await self.aggregator.refresh_store_aggregates(session, store.id)
        summary.top_zips = top_zip_codes(zips)
        return summary


def top_zip_codes(zips: Counter, limit: int = 3) -> List[Dict[str, object]]:
    """Most frequent delivery zip codes (delivery hotspots)"""
    return [{"zip": zip_code, "count": count} for zip_code, count in zips.most_common(limit)]
