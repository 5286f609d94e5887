"""
Shopify Admin GraphQL Client

Thin async wrapper over the Admin GraphQL endpoint of one shop:
- cursor-paged product catalog with sustainability metafields
- single product lookup
- productUpdate metafield writes
- fulfilled orders with shipping coordinates
- primary location lookup
- metafield definition listing and creation

Transport and top-level GraphQL errors raise ExternalApiError. Mutation
userErrors come back as a MutationResult.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import httpx
import structlog

from ecotrack.config import get_settings
from ecotrack.core.errors import ExternalApiError
from ecotrack.core.results import MutationResult, UserError
from ecotrack.transformation.metafields import DEFAULT_NAMESPACE, METAFIELD_DEFINITIONS

logger = structlog.get_logger(__name__)
settings = get_settings()


# =============================================================================
# QUERIES
# =============================================================================

PRODUCTS_QUERY = """
query GetProductsWithMetafields($first: Int!, $cursor: String, $namespace: String!) {
  products(first: $first, after: $cursor) {
    edges {
      node {
        id
        title
        metafields(first: 10, namespace: $namespace) {
          edges { node { key value namespace } }
        }
      }
    }
    pageInfo { hasNextPage endCursor }
  }
}
"""

PRODUCT_QUERY = """
query GetProduct($id: ID!, $namespace: String!) {
  product(id: $id) {
    id
    title
    metafields(first: 10, namespace: $namespace) {
      edges { node { key value namespace } }
    }
  }
}
"""

PRODUCT_UPDATE_MUTATION = """
mutation UpdateProductMetafields($input: ProductInput!) {
  productUpdate(input: $input) {
    product {
      id
      metafields(first: 10) {
        edges { node { key value namespace } }
      }
    }
    userErrors { field message }
  }
}
"""

FULFILLED_ORDERS_QUERY = """
query GetFulfilledOrders($first: Int!, $cursor: String) {
  orders(first: $first, after: $cursor, query: "fulfillment_status:fulfilled") {
    edges {
      node {
        id
        name
        shippingAddress { address1 city country zip latitude longitude }
      }
    }
    pageInfo { hasNextPage endCursor }
  }
}
"""

PRIMARY_LOCATION_QUERY = """
query GetPrimaryLocation {
  locations(first: 1, query: "active:true") {
    edges { node { id name address { latitude longitude } } }
  }
}
"""

METAFIELD_DEFINITIONS_QUERY = """
query GetMetafieldDefinitions($namespace: String!) {
  metafieldDefinitions(first: 50, ownerType: PRODUCT, namespace: $namespace) {
    edges { node { id key namespace name type { name } } }
  }
}
"""

METAFIELD_DEFINITION_CREATE_MUTATION = """
mutation CreateMetafieldDefinition($definition: MetafieldDefinitionInput!) {
  metafieldDefinitionCreate(definition: $definition) {
    createdDefinition { id name }
    userErrors { field message }
  }
}
"""


# =============================================================================
# RESULT TYPES
# =============================================================================

@dataclass
class CatalogProduct:
    """A product as read from Shopify"""
    shopify_product_id: str
    title: Optional[str]
    metafields: List[Dict[str, Any]] = field(default_factory=list)


@dataclass
class CatalogPage:
    products: List[CatalogProduct]
    has_next_page: bool
    end_cursor: Optional[str]


@dataclass
class ShippingAddress:
    address1: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None
    zip: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None


@dataclass
class FulfilledOrder:
    shopify_order_id: str
    name: Optional[str]
    shipping_address: Optional[ShippingAddress]


@dataclass
class OrdersPage:
    orders: List[FulfilledOrder]
    has_next_page: bool
    end_cursor: Optional[str]


def to_gid(entity: str, value: Any) -> str:
    """gid://shopify/<entity>/<id>, passing existing gids through"""
    value = str(value)
    if value.startswith("gid://"):
        return value
    return f"gid://shopify/{entity}/{value}"


def from_gid(value: Any) -> str:
    """Numeric id from a gid, or the value itself"""
    return str(value).rsplit("/", 1)[-1]


def normalize_shop_domain(domain: str) -> str:
    """Strip scheme and trailing slash; bare shop names get .myshopify.com."""
    domain = domain.strip().replace("https://", "").replace("http://", "").rstrip("/").lower()
    if "." not in domain:
        domain = f"{domain}.myshopify.com"
    return domain


def _edges(connection: Optional[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Nodes of a GraphQL connection.

    Raises:
        ExternalApiError: when an edge has no node object
    """
    nodes = []
    for edge in (connection or {}).get("edges") or []:
        node = edge.get("node") if isinstance(edge, dict) else None
        if not isinstance(node, dict):
            raise ExternalApiError("Shopify returned a malformed connection edge")
        nodes.append(node)
    return nodes


def _node_id(node: Dict[str, Any]) -> str:
    if not node.get("id"):
        raise ExternalApiError("Shopify returned a node without an id")
    return from_gid(node["id"])


def _coordinate(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


# =============================================================================
# CLIENT
# =============================================================================

class ShopifyClient:
    """
    Admin GraphQL client for one shop.

    Usage:
        async with ShopifyClient(shop, token) as client:
            page = await client.fetch_products_page()
    """

    def __init__(
        self,
        shop_domain: str,
        access_token: str,
        api_version: Optional[str] = None,
        timeout: Optional[float] = None,
        namespace: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.shop_domain = normalize_shop_domain(shop_domain)
        self.api_version = api_version or settings.shopify.api_version
        self.namespace = namespace or settings.shopify.metafield_namespace or DEFAULT_NAMESPACE
        self._client = httpx.AsyncClient(
            base_url=f"https://{self.shop_domain}/admin/api/{self.api_version}",
            headers={
                "X-Shopify-Access-Token": access_token,
                "Content-Type": "application/json",
                "Accept": "application/json",
            },
            timeout=timeout or settings.shopify.request_timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "ShopifyClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        await self._client.aclose()

    async def graphql(self, query: str, variables: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Execute a GraphQL document and return its ``data`` object.

        Raises:
            ExternalApiError: on transport failure, HTTP >= 400 or a
                top-level ``errors`` array
        """
        try:
            response = await self._client.post(
                "/graphql.json",
                json={"query": query, "variables": variables or {}},
            )
        except httpx.HTTPError as e:
            logger.error("Shopify request failed", shop=self.shop_domain, error=str(e))
            raise ExternalApiError(f"Shopify request failed: {e}") from e

        if response.status_code >= 400:
            logger.warning(
                "Shopify returned an error status",
                shop=self.shop_domain,
                status=response.status_code,
            )
            raise ExternalApiError(
                f"Shopify returned HTTP {response.status_code}",
                status_code=response.status_code,
            )

        try:
            body = response.json()
        except ValueError as e:
            logger.warning("Shopify returned a non-JSON body", shop=self.shop_domain, status=response.status_code)
            raise ExternalApiError("Shopify returned a non-JSON body", status_code=response.status_code) from e
        if not isinstance(body, dict):
            raise ExternalApiError("Shopify returned a non-object body", status_code=response.status_code)

        if body.get("errors"):
            errors = body["errors"] if isinstance(body["errors"], list) else [{"message": str(body["errors"])}]
            raise ExternalApiError("Shopify GraphQL errors", status_code=response.status_code, errors=errors)
        return body.get("data") or {}

    # -------------------------------------------------------------------------
    # Products
    # -------------------------------------------------------------------------

    async def fetch_products_page(self, cursor: Optional[str] = None, first: Optional[int] = None) -> CatalogPage:
        data = await self.graphql(
            PRODUCTS_QUERY,
            {"first": first or settings.sync.page_size, "cursor": cursor, "namespace": self.namespace},
        )
        connection = data.get("products") or {}
        page_info = connection.get("pageInfo") or {}
        return CatalogPage(
            products=[self._catalog_product(node) for node in _edges(connection)],
            has_next_page=bool(page_info.get("hasNextPage")),
            end_cursor=page_info.get("endCursor"),
        )

    async def fetch_catalog(self, limit: Optional[int] = None) -> Tuple[List[CatalogProduct], bool]:
        """
        Page through the catalog.

        Returns:
            (products, exhaustive) where exhaustive is False when the limit
            stopped paging before the last page
        """
        products: List[CatalogProduct] = []
        cursor = None
        while True:
            page = await self.fetch_products_page(cursor)
            products.extend(page.products)
            if not page.has_next_page:
                return products, True
            if limit is not None and len(products) >= limit:
                return products, False
            cursor = page.end_cursor

    async def get_product(self, product_id: Any) -> Optional[CatalogProduct]:
        data = await self.graphql(
            PRODUCT_QUERY,
            {"id": to_gid("Product", product_id), "namespace": self.namespace},
        )
        node = data.get("product")
        return self._catalog_product(node) if node else None

    async def set_product_metafields(self, product_id: Any, metafields: List[Dict[str, str]]) -> MutationResult:
        """Write metafields through productUpdate; userErrors become a failed MutationResult."""
        data = await self.graphql(
            PRODUCT_UPDATE_MUTATION,
            {"input": {"id": to_gid("Product", product_id), "metafields": metafields}},
        )
        payload = data.get("productUpdate") or {}
        user_errors = [UserError.from_payload(e) for e in payload.get("userErrors") or []]
        if user_errors:
            logger.warning(
                "Metafield update rejected",
                shop=self.shop_domain,
                product_id=from_gid(product_id),
                errors=[e.message for e in user_errors],
            )
        return MutationResult(success=not user_errors, user_errors=user_errors, data=payload.get("product") or {})

    # -------------------------------------------------------------------------
    # Orders and locations
    # -------------------------------------------------------------------------

    async def fetch_fulfilled_orders_page(self, cursor: Optional[str] = None, first: Optional[int] = None) -> OrdersPage:
        data = await self.graphql(
            FULFILLED_ORDERS_QUERY,
            {"first": first or settings.sync.page_size, "cursor": cursor},
        )
        connection = data.get("orders") or {}
        page_info = connection.get("pageInfo") or {}
        orders = []
        for node in _edges(connection):
            address = node.get("shippingAddress")
            orders.append(FulfilledOrder(
                shopify_order_id=_node_id(node),
                name=node.get("name"),
                shipping_address=ShippingAddress(
                    address1=address.get("address1"),
                    city=address.get("city"),
                    country=address.get("country"),
                    zip=address.get("zip"),
                    latitude=_coordinate(address.get("latitude")),
                    longitude=_coordinate(address.get("longitude")),
                ) if address else None,
            ))
        return OrdersPage(
            orders=orders,
            has_next_page=bool(page_info.get("hasNextPage")),
            end_cursor=page_info.get("endCursor"),
        )

    async def fetch_primary_location(self) -> Optional[Tuple[float, float]]:
        """Coordinates of the first active location, None when it has none."""
        data = await self.graphql(PRIMARY_LOCATION_QUERY)
        locations = _edges(data.get("locations"))
        if not locations:
            return None
        address = locations[0].get("address") or {}
        latitude = _coordinate(address.get("latitude"))
        longitude = _coordinate(address.get("longitude"))
        if latitude is None or longitude is None:
            return None
        return latitude, longitude

    # -------------------------------------------------------------------------
    # Metafield definitions
    # -------------------------------------------------------------------------

    async def list_metafield_definitions(self) -> List[Dict[str, Any]]:
        data = await self.graphql(METAFIELD_DEFINITIONS_QUERY, {"namespace": self.namespace})
        return _edges(data.get("metafieldDefinitions"))

    async def create_metafield_definition(self, definition: Dict[str, Any]) -> MutationResult:
        data = await self.graphql(
            METAFIELD_DEFINITION_CREATE_MUTATION,
            {"definition": {**definition, "namespace": self.namespace, "ownerType": "PRODUCT"}},
        )
        payload = data.get("metafieldDefinitionCreate") or {}
        user_errors = [UserError.from_payload(e) for e in payload.get("userErrors") or []]
        return MutationResult(
            success=not user_errors,
            user_errors=user_errors,
            data=payload.get("createdDefinition") or {},
        )

    async def ensure_metafield_definitions(self) -> Dict[str, MutationResult]:
        """Create the sustainability definitions that do not exist yet."""
        existing = {d["key"] for d in await self.list_metafield_definitions()}
        results = {}
        for definition in METAFIELD_DEFINITIONS:
            if definition["key"] in existing:
                results[definition["key"]] = MutationResult(success=True, data={"existing": True})
                continue
            results[definition["key"]] = await self.create_metafield_definition(definition)
        logger.info(
            "Metafield definitions ensured",
            shop=self.shop_domain,
            created=[k for k, r in results.items() if r.success and not r.data.get("existing")],
        )
        return results

    @staticmethod
    def _catalog_product(node: Dict[str, Any]) -> CatalogProduct:
        return CatalogProduct(
            shopify_product_id=_node_id(node),
            title=node.get("title"),
            metafields=_edges(node.get("metafields")),
        )


def client_for_store(store, transport: Optional[httpx.AsyncBaseTransport] = None) -> ShopifyClient:
    """
    Build a client from a Store row.

    Raises:
        ExternalApiError: when the store has no access token
    """
    if not store.access_token:
        raise ExternalApiError(f"No access token registered for {store.shopify_domain}")
    return ShopifyClient(store.shopify_domain, store.access_token, transport=transport)
