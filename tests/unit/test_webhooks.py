"""
Unit Tests - Webhook Processing
"""
import pytest
from pydantic import ValidationError
from sqlalchemy import func, select

from ecotrack.database.models import Order, ProductMetricsHistory, Store
from ecotrack.ingestion.webhooks import (
    WebhookDispatcher,
    WebhookEvent,
    WebhookOutcome,
    WebhookProcessor,
    WebhookTopic,
)
from ecotrack.metrics.sink import product_labels, store_labels
from ecotrack.shopify.webhooks import compute_hmac, verify_hmac

from conftest import AARHUS, full_metafields, metafield

SHOP = "green-goods.myshopify.com"


def event(topic: str, payload: dict, shop: str = SHOP) -> WebhookEvent:
    return WebhookEvent(topic=topic, shop_domain=shop, payload=payload, webhook_id="wh-1")


class TestHmac:

    def test_round_trip(self):
        body = b'{"id": 1}'
        signature = compute_hmac("secret", body)

        assert verify_hmac("secret", body, signature)
        assert not verify_hmac("other", body, signature)
        assert not verify_hmac("secret", b'{"id": 2}', signature)
        assert not verify_hmac("secret", body, None)


class TestProductWebhooks:
    """Tests for products/* topics"""

    async def test_create_records_product(self, db_session, store, services, sink, fake_client):
        outcome = await services.webhooks.dispatch(db_session, event("products/create", {
            "id": 555,
            "title": "Wool Socks",
            "metafields": full_metafields(materials="0.75", packaging="0.4", product="2.0"),
        }))

        assert outcome.handled
        assert outcome.detail["created"] is True

        product = await services.products.get(db_session, store.id, "555")
        assert product.packaging_ratio == pytest.approx(0.2)
        history = (await db_session.execute(select(func.count(ProductMetricsHistory.id)))).scalar()
        assert history == 1

        labels = product_labels("555", "Wool Socks", store.id)
        assert sink.get_value("product_status", labels) == 1
        assert sink.get_value("packaging_ratio", labels) == pytest.approx(0.2)
        assert sink.get_value("sustainable_materials_percentage", labels) == pytest.approx(0.75)
        assert sink.get_value("store_product_count", store_labels(store.id, store.name, SHOP)) == 1

        assert fake_client.metafield_writes == []
        assert fake_client.close_calls == 1

    async def test_create_twice_is_skipped(self, db_session, store, services):
        payload = {"id": 556, "title": "Scarf", "metafields": full_metafields()}
        await services.webhooks.dispatch(db_session, event("products/create", payload))

        outcome = await services.webhooks.dispatch(db_session, event("products/create", payload))

        assert outcome.detail["skipped"] is True

    async def test_update_merges_supplied_fields(self, db_session, store, services):
        await services.webhooks.dispatch(db_session, event("products/create", {
            "id": 557, "title": "Candle", "metafields": full_metafields(),
        }))

        outcome = await services.webhooks.dispatch(db_session, event("products/update", {
            "id": 557, "title": "Soy Candle", "metafields": [metafield("product_weight", "4.0")],
        }))

        product = await services.products.get(db_session, store.id, "557")
        assert outcome.handled
        assert product.title == "Soy Candle"
        assert product.product_weight == 4.0
        assert product.packaging_weight == 0.4
        assert product.packaging_ratio == pytest.approx(0.1)
        assert product.sustainable_materials == 0.5

    async def test_update_weights_republish_ratio(self, db_session, store, services, sink):
        await services.webhooks.dispatch(db_session, event("products/create", {
            "id": 560, "title": "Tote", "metafields": full_metafields(packaging="0.1", product="1.0"),
        }))

        outcome = await services.webhooks.dispatch(db_session, event("products/update", {
            "id": 560,
            "title": "Tote",
            "metafields": [metafield("packaging_weight", "0.4"), metafield("product_weight", "2.0")],
        }))

        assert outcome.handled
        product = await services.products.get(db_session, store.id, "560")
        assert product.packaging_ratio == pytest.approx(0.2)
        assert sink.get_value("packaging_ratio", product_labels("560", "Tote", store.id)) == pytest.approx(0.2)
        history = (await db_session.execute(select(func.count(ProductMetricsHistory.id)))).scalar()
        assert history == 2

    async def test_update_of_unknown_product_creates_it(self, db_session, store, services):
        outcome = await services.webhooks.dispatch(db_session, event("products/update", {"id": 558}))

        assert outcome.detail["created"] is True

    async def test_delete_is_idempotent(self, db_session, store, services, sink):
        await services.webhooks.dispatch(db_session, event("products/create", {
            "id": 559, "title": "Basket", "metafields": full_metafields(),
        }))

        first = await services.webhooks.dispatch(db_session, event("products/delete", {"id": 559}))
        second = await services.webhooks.dispatch(db_session, event("products/delete", {"id": 559}))

        assert first.detail["deleted"] is True
        assert second.handled and second.detail["deleted"] is False
        assert sink.get_value("product_status", product_labels("559", "Basket", store.id)) == 0

    async def test_invalid_payload_raises(self, db_session, store, services):
        with pytest.raises(ValidationError):
            await services.webhooks.dispatch(db_session, event("products/create", {"title": "No id"}))


class TestOrderWebhooks:
    """Tests for orders/fulfilled"""

    async def test_fulfilled_order_distance(self, db_session, store, services, sink):
        outcome = await services.webhooks.dispatch(db_session, event("orders/fulfilled", {
            "id": 9001,
            "name": "#1001",
            "shipping_address": {
                "address1": "Banegaardspladsen 1",
                "city": "Aarhus",
                "country": "Denmark",
                "zip": "8000",
                "latitude": AARHUS[0],
                "longitude": AARHUS[1],
            },
        }))

        distance = outcome.detail["delivery_distance_km"]
        assert outcome.handled
        assert 150 < distance < 165
        assert sink.get_value("delivery_distance_km", {"order_id": "9001", "store_id": str(store.id)}) == distance

        await db_session.refresh(store)
        assert store.avg_delivery_distance == pytest.approx(distance)
        labels = store_labels(store.id, store.name, SHOP)
        assert sink.get_value("store_avg_delivery_distance_km", labels) == pytest.approx(distance)

    async def test_order_without_address_is_skipped(self, db_session, store, services):
        outcome = await services.webhooks.dispatch(db_session, event("orders/fulfilled", {"id": 9002}))

        assert outcome.handled is False
        count = (await db_session.execute(select(func.count(Order.id)))).scalar()
        assert count == 0


class TestDispatcher:
    """Tests for WebhookDispatcher routing"""

    async def test_unknown_store_is_acknowledged(self, db_session, store, services):
        outcome = await services.webhooks.dispatch(
            db_session, event("products/create", {"id": 1}, shop="stranger.myshopify.com")
        )

        assert outcome.handled is False
        assert outcome.detail["reason"] == "store_not_found"

    async def test_unsupported_topic(self, db_session, store, services):
        outcome = await services.webhooks.dispatch(db_session, event("customers/create", {"id": 1}))

        assert outcome.to_dict() == {"topic": "customers/create", "handled": False, "reason": "unsupported_topic"}

    async def test_app_installed_registers_store(self, db_session, services):
        outcome = await services.webhooks.dispatch(
            db_session, event("app/installed", {}, shop="new-shop.myshopify.com")
        )

        store = (await db_session.execute(
            select(Store).where(Store.shopify_domain == "new-shop.myshopify.com")
        )).scalar_one()
        assert outcome.handled
        assert outcome.detail["imported"] is False
        assert store.name == "new-shop"

    async def test_app_installed_imports_catalog(self, db_session, store, services, fake_client):
        fake_client.add_product("1", "Imported", full_metafields())

        outcome = await services.webhooks.dispatch(db_session, event("app/installed", {}))

        assert outcome.detail["imported"] is True
        assert outcome.detail["sync"]["created"] == 1

    async def test_custom_processor(self, db_session, store, services):
        class Recorder(WebhookProcessor):
            def __init__(self):
                self.seen = []

            def get_topics(self):
                return [WebhookTopic.ORDERS_FULFILLED]

            async def process(self, session, store, event, services, client=None):
                self.seen.append(event.payload["id"])
                return WebhookOutcome(topic=event.topic, handled=True)

        recorder = Recorder()
        dispatcher = WebhookDispatcher(services.webhooks.services, register_defaults=False)
        dispatcher.register_processor(recorder)

        await dispatcher.dispatch(db_session, event("orders/fulfilled", {"id": 7}))

        assert dispatcher.topics == ["orders/fulfilled"]
        assert recorder.seen == [7]
