"""
Unit Tests - Delivery Distances and Warehouse Resolution
"""
from collections import Counter

import pytest

from ecotrack.database.models import Store
from ecotrack.shopify.client import FulfilledOrder, ShippingAddress
from ecotrack.sync.orders import top_zip_codes
from ecotrack.sync.stores import ensure_store, resolve_warehouse

from conftest import AARHUS, COPENHAGEN


def address(zip_code="8000", coordinates=AARHUS) -> ShippingAddress:
    latitude, longitude = coordinates if coordinates else (None, None)
    return ShippingAddress(city="Aarhus", country="Denmark", zip=zip_code, latitude=latitude, longitude=longitude)


class TestOrderService:
    """Tests for OrderService"""

    async def test_records_distance(self, db_session, store, services):
        order = await services.orders.record_fulfilled(db_session, store, 1, "#1", address())

        assert order.fulfilled
        assert 150 < order.delivery_distance < 165
        assert store.avg_delivery_distance == pytest.approx(order.delivery_distance)

    async def test_address_without_coordinates(self, db_session, store, services):
        order = await services.orders.record_fulfilled(db_session, store, 2, "#2", address(coordinates=None))

        assert order is not None
        assert order.delivery_distance is None
        assert order.delivery_zip_code == "8000"
        assert store.avg_delivery_distance is None

    async def test_no_address(self, db_session, store, services):
        assert await services.orders.record_fulfilled(db_session, store, 3, "#3", None) is None

    async def test_store_average_ignores_missing_distances(self, db_session, store, services):
        await services.orders.record_fulfilled(db_session, store, 4, "#4", address(coordinates=COPENHAGEN))
        await services.orders.record_fulfilled(db_session, store, 5, "#5", address())
        await services.orders.record_fulfilled(db_session, store, 6, "#6", address(coordinates=None))

        aarhus_km = (await services.orders._get(db_session, store.id, "5")).delivery_distance
        assert store.avg_delivery_distance == pytest.approx(aarhus_km / 2)

    async def test_redelivery_updates_order(self, db_session, store, services):
        await services.orders.record_fulfilled(db_session, store, 7, "#7", address(coordinates=None))
        order = await services.orders.record_fulfilled(db_session, store, 7, "#7", address())

        assert order.delivery_distance is not None

    async def test_refresh_from_shopify(self, db_session, store, services, fake_client):
        fake_client.orders = [
            FulfilledOrder("10", "#10", address("8000")),
            FulfilledOrder("11", "#11", address("8000")),
            FulfilledOrder("12", "#12", address("1050", coordinates=None)),
            FulfilledOrder("13", "#13", None),
        ]

        summary = await services.orders.refresh_from_shopify(db_session, store, fake_client)

        assert summary.processed == 4
        assert summary.with_distance == 2
        assert summary.top_zips == [{"zip": "8000", "count": 2}, {"zip": "1050", "count": 1}]
        assert summary.avg_delivery_distance == pytest.approx(store.avg_delivery_distance)

    def test_top_zip_codes_limit(self):
        zips = Counter({"1000": 5, "2000": 3, "3000": 2, "4000": 1})
        assert [z["zip"] for z in top_zip_codes(zips)] == ["1000", "2000", "3000"]


class TestStores:
    """Tests for store registration and warehouse resolution"""

    async def test_ensure_store_normalizes_domain(self, db_session):
        store = await ensure_store(db_session, "https://Eco-Shop.myshopify.com/", access_token="shpat_1")
        again = await ensure_store(db_session, "eco-shop", name="Eco Shop")

        assert store.shopify_domain == "eco-shop.myshopify.com"
        assert again.id == store.id
        assert again.name == "Eco Shop"
        assert again.access_token == "shpat_1"

    async def test_stored_warehouse_wins(self, db_session, store, fake_client):
        fake_client.location = AARHUS
        assert await resolve_warehouse(db_session, store, fake_client) == COPENHAGEN

    async def test_primary_location(self, db_session, fake_client):
        store = Store(shopify_domain="north.myshopify.com")
        db_session.add(store)
        await db_session.commit()
        fake_client.location = AARHUS

        assert await resolve_warehouse(db_session, store, fake_client) == AARHUS
        assert (store.warehouse_latitude, store.warehouse_longitude) == AARHUS

    async def test_default_warehouse(self, db_session):
        store = Store(shopify_domain="south.myshopify.com")
        db_session.add(store)
        await db_session.commit()

        assert await resolve_warehouse(db_session, store) == COPENHAGEN
        assert store.has_warehouse
