"""
Unit Tests - Shopify Admin GraphQL Client
"""
import json

import httpx
import pytest

from ecotrack.core.errors import ExternalApiError
from ecotrack.database.models import Store
from ecotrack.shopify.client import (
    ShopifyClient,
    client_for_store,
    from_gid,
    normalize_shop_domain,
    to_gid,
)

SHOP = "green-goods.myshopify.com"


def product_node(product_id: int, title: str, metafields=()) -> dict:
    return {
        "node": {
            "id": f"gid://shopify/Product/{product_id}",
            "title": title,
            "metafields": {"edges": [{"node": m} for m in metafields]},
        }
    }


def products_page(nodes, has_next: bool, cursor=None) -> dict:
    return {"data": {"products": {
        "edges": nodes,
        "pageInfo": {"hasNextPage": has_next, "endCursor": cursor},
    }}}


def make_client(handler) -> ShopifyClient:
    return ShopifyClient(SHOP, "shpat_test", transport=httpx.MockTransport(handler))


class TestHelpers:

    def test_gids(self):
        assert to_gid("Product", 42) == "gid://shopify/Product/42"
        assert to_gid("Product", "gid://shopify/Product/42") == "gid://shopify/Product/42"
        assert from_gid("gid://shopify/Order/7") == "7"
        assert from_gid(7) == "7"

    def test_normalize_shop_domain(self):
        assert normalize_shop_domain("https://Green-Goods.myshopify.com/") == SHOP
        assert normalize_shop_domain("green-goods") == SHOP

    def test_client_for_store_requires_token(self):
        with pytest.raises(ExternalApiError):
            client_for_store(Store(shopify_domain=SHOP, access_token=None))


class TestShopifyClient:
    """Tests for ShopifyClient against a mocked transport"""

    async def test_fetch_catalog_pages_through(self):
        cursors = []

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.headers["X-Shopify-Access-Token"] == "shpat_test"
            variables = json.loads(request.content)["variables"]
            cursors.append(variables["cursor"])
            if variables["cursor"] is None:
                return httpx.Response(200, json=products_page(
                    [product_node(1, "Towel", [{"key": "product_weight", "value": "1.0", "namespace": "custom"}])],
                    has_next=True, cursor="c1",
                ))
            return httpx.Response(200, json=products_page([product_node(2, "Soap")], has_next=False))

        async with make_client(handler) as client:
            products, exhaustive = await client.fetch_catalog()

        assert exhaustive
        assert cursors == [None, "c1"]
        assert [p.shopify_product_id for p in products] == ["1", "2"]
        assert products[0].metafields[0]["key"] == "product_weight"

    async def test_fetch_catalog_limit_is_not_exhaustive(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=products_page([product_node(1, "A"), product_node(2, "B")],
                                                          has_next=True, cursor="next"))

        async with make_client(handler) as client:
            products, exhaustive = await client.fetch_catalog(limit=2)

        assert len(products) == 2
        assert not exhaustive

    async def test_http_error_raises(self):
        async with make_client(lambda request: httpx.Response(500, text="boom")) as client:
            with pytest.raises(ExternalApiError) as exc_info:
                await client.get_product(1)

        assert exc_info.value.status_code == 500

    async def test_graphql_errors_raise(self):
        body = {"errors": [{"message": "Throttled"}]}
        async with make_client(lambda request: httpx.Response(200, json=body)) as client:
            with pytest.raises(ExternalApiError) as exc_info:
                await client.get_product(1)

        assert exc_info.value.errors == [{"message": "Throttled"}]

    async def test_html_body_raises(self):
        async with make_client(lambda request: httpx.Response(200, text="<html>maintenance</html>")) as client:
            with pytest.raises(ExternalApiError) as exc_info:
                await client.fetch_catalog()

        assert exc_info.value.status_code == 200

    async def test_malformed_edge_raises(self):
        body = {"data": {"products": {"edges": [{}], "pageInfo": {"hasNextPage": False, "endCursor": None}}}}
        async with make_client(lambda request: httpx.Response(200, json=body)) as client:
            with pytest.raises(ExternalApiError):
                await client.fetch_catalog()

    async def test_node_without_id_raises(self):
        body = products_page([{"node": {"title": "Nameless"}}], has_next=False)
        async with make_client(lambda request: httpx.Response(200, json=body)) as client:
            with pytest.raises(ExternalApiError):
                await client.fetch_catalog()

    async def test_missing_product(self):
        async with make_client(lambda request: httpx.Response(200, json={"data": {"product": None}})) as client:
            assert await client.get_product(99) is None

    async def test_user_errors_are_returned(self):
        sent = {}

        def handler(request: httpx.Request) -> httpx.Response:
            sent.update(json.loads(request.content)["variables"])
            return httpx.Response(200, json={"data": {"productUpdate": {
                "product": None,
                "userErrors": [{"field": ["metafields", "0", "value"], "message": "Value is invalid"}],
            }}})

        async with make_client(handler) as client:
            result = await client.set_product_metafields(5, [{"key": "product_weight", "value": "x"}])

        assert sent["input"]["id"] == "gid://shopify/Product/5"
        assert not result.success
        assert result.error_message == "Value is invalid"

    async def test_primary_location(self):
        body = {"data": {"locations": {"edges": [
            {"node": {"id": "gid://shopify/Location/1", "name": "HQ",
                      "address": {"latitude": 56.1629, "longitude": "10.2039"}}},
        ]}}}
        async with make_client(lambda request: httpx.Response(200, json=body)) as client:
            assert await client.fetch_primary_location() == (56.1629, 10.2039)

    async def test_primary_location_without_coordinates(self):
        body = {"data": {"locations": {"edges": [
            {"node": {"id": "gid://shopify/Location/1", "name": "HQ", "address": {"latitude": None}}},
        ]}}}
        async with make_client(lambda request: httpx.Response(200, json=body)) as client:
            assert await client.fetch_primary_location() is None

    async def test_fulfilled_orders_page(self):
        body = {"data": {"orders": {
            "edges": [
                {"node": {"id": "gid://shopify/Order/10", "name": "#10",
                          "shippingAddress": {"city": "Aarhus", "zip": "8000", "latitude": 56.1, "longitude": 10.2}}},
                {"node": {"id": "gid://shopify/Order/11", "name": "#11", "shippingAddress": None}},
            ],
            "pageInfo": {"hasNextPage": False, "endCursor": None},
        }}}
        async with make_client(lambda request: httpx.Response(200, json=body)) as client:
            page = await client.fetch_fulfilled_orders_page()

        assert [o.shopify_order_id for o in page.orders] == ["10", "11"]
        assert page.orders[0].shipping_address.has_coordinates
        assert page.orders[1].shipping_address is None
        assert not page.has_next_page
