"""
Test Suite Configuration
"""
import pytest
from typing import AsyncGenerator, Dict, List, Optional, Tuple

from prometheus_client import CollectorRegistry
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.pool import NullPool

from ecotrack.core.errors import ExternalApiError
from ecotrack.core.results import MutationResult, UserError
from ecotrack.database.connection import create_session_factory
from ecotrack.database.models import Base, Store
from ecotrack.metrics.sink import PrometheusMetricsSink
from ecotrack.serving.services import build_services
from ecotrack.shopify.client import CatalogProduct, FulfilledOrder, OrdersPage
from ecotrack.transformation.metafields import METAFIELD_DEFINITIONS

COPENHAGEN = (55.6761, 12.5683)
AARHUS = (56.1629, 10.2039)


def metafield(key: str, value: str, namespace: str = "custom") -> Dict[str, str]:
    return {"namespace": namespace, "key": key, "value": value}


def full_metafields(
    materials: str = "0.5",
    local: str = "true",
    packaging: str = "0.4",
    product: str = "2.0",
) -> List[Dict[str, str]]:
    return [
        metafield("sustainable_materials", materials),
        metafield("locally_produced", local),
        metafield("packaging_weight", packaging),
        metafield("product_weight", product),
    ]


class FakeShopifyClient:
    """In-memory stand-in for ShopifyClient"""

    def __init__(
        self,
        products: Optional[List[CatalogProduct]] = None,
        orders: Optional[List[FulfilledOrder]] = None,
        location: Optional[Tuple[float, float]] = None,
        exhaustive: bool = True,
    ):
        self.products = {p.shopify_product_id: p for p in products or []}
        self.orders = list(orders or [])
        self.location = location
        self.exhaustive = exhaustive
        self.user_errors: List[str] = []
        self.fail_catalog = False
        self.metafield_writes: List[Tuple[str, List[Dict[str, str]]]] = []
        self.close_calls = 0

    def add_product(self, product_id: str, title: str, metafields=None) -> CatalogProduct:
        product = CatalogProduct(shopify_product_id=product_id, title=title, metafields=metafields or [])
        self.products[product_id] = product
        return product

    async def fetch_catalog(self, limit=None):
        if self.fail_catalog:
            raise ExternalApiError("Shopify returned HTTP 503", status_code=503)
        return list(self.products.values()), self.exhaustive

    async def get_product(self, product_id):
        return self.products.get(str(product_id))

    async def set_product_metafields(self, product_id, metafields) -> MutationResult:
        if self.user_errors:
            return MutationResult(
                success=False,
                user_errors=[UserError(message, ["metafields"]) for message in self.user_errors],
            )
        self.metafield_writes.append((str(product_id), metafields))
        return MutationResult(success=True)

    async def fetch_fulfilled_orders_page(self, cursor=None, first=None) -> OrdersPage:
        return OrdersPage(orders=self.orders, has_next_page=False, end_cursor=None)

    async def fetch_primary_location(self):
        return self.location

    async def ensure_metafield_definitions(self) -> Dict[str, MutationResult]:
        return {d["key"]: MutationResult(success=True) for d in METAFIELD_DEFINITIONS}

    async def close(self) -> None:
        self.close_calls += 1


@pytest.fixture
async def test_engine(tmp_path):
    """File-backed SQLite so concurrent sessions see each other's commits"""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'ecotrack.db'}",
        echo=False,
        poolclass=NullPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return create_session_factory(test_engine)


@pytest.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session"""
    async with session_factory() as session:
        yield session


@pytest.fixture
def sink() -> PrometheusMetricsSink:
    """Sink with its own registry so tests never share series"""
    return PrometheusMetricsSink(registry=CollectorRegistry())


@pytest.fixture
def fake_client() -> FakeShopifyClient:
    return FakeShopifyClient()


@pytest.fixture
def services(session_factory, sink, fake_client):
    return build_services(
        session_factory,
        sink=sink,
        client_factory=lambda store: fake_client,
        import_batch_size=2,
        import_batch_delay=0,
    )


@pytest.fixture
async def store(db_session) -> Store:
    store = Store(
        shopify_domain="green-goods.myshopify.com",
        name="Green Goods",
        access_token="shpat_test",
        warehouse_latitude=COPENHAGEN[0],
        warehouse_longitude=COPENHAGEN[1],
    )
    db_session.add(store)
    await db_session.commit()
    return store
