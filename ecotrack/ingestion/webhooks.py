"""
Shopify Webhook Processing

Dispatches verified webhook deliveries to topic processors:
- products/create, products/update, products/delete
- orders/fulfilled
- app/installed

Processors register for the topics they handle; topics without a
processor are acknowledged and ignored.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Union

import structlog
from pydantic import BaseModel, ConfigDict
from sqlalchemy.ext.asyncio import AsyncSession

from ecotrack.core.errors import ExternalApiError
from ecotrack.database.models import Store
from ecotrack.shopify.client import ShippingAddress, client_for_store
from ecotrack.sync.orders import OrderService
from ecotrack.sync.products import ProductService
from ecotrack.sync.reconciliation import ReconciliationEngine
from ecotrack.sync.stores import ensure_store, get_store

logger = structlog.get_logger(__name__)


# =============================================================================
# TOPICS AND PAYLOADS
# =============================================================================

class WebhookTopic(str, Enum):
    """Supported webhook topics"""
    PRODUCTS_CREATE = "products/create"
    PRODUCTS_UPDATE = "products/update"
    PRODUCTS_DELETE = "products/delete"
    ORDERS_FULFILLED = "orders/fulfilled"
    APP_INSTALLED = "app/installed"


class WebhookPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")


class ProductWebhookPayload(WebhookPayload):
    id: Union[int, str]
    title: Optional[str] = None
    metafields: Optional[List[Dict[str, Any]]] = None


class ProductDeletePayload(WebhookPayload):
    id: Union[int, str]


class ShippingAddressPayload(WebhookPayload):
    address1: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None
    zip: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    def to_address(self) -> ShippingAddress:
        return ShippingAddress(**self.model_dump())


class OrderWebhookPayload(WebhookPayload):
    id: Union[int, str]
    name: Optional[str] = None
    shipping_address: Optional[ShippingAddressPayload] = None


@dataclass
class WebhookEvent:
    topic: str
    shop_domain: str
    payload: Dict[str, Any]
    webhook_id: Optional[str] = None


@dataclass
class WebhookOutcome:
    topic: str
    handled: bool
    detail: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"topic": self.topic, "handled": self.handled, **self.detail}


@dataclass
class WebhookServices:
    """Collaborators shared by all processors"""
    products: ProductService
    orders: OrderService
    reconciliation: ReconciliationEngine
    client_factory: Callable[[Store], Any] = client_for_store


# =============================================================================
# PROCESSORS
# =============================================================================

class WebhookProcessor(ABC):
    """Abstract base class for webhook topic processors"""

    @abstractmethod
    def get_topics(self) -> List[WebhookTopic]:
        """Return list of topics this processor handles"""
        pass

    @abstractmethod
    async def process(
        self,
        session: AsyncSession,
        store: Store,
        event: WebhookEvent,
        services: WebhookServices,
        client=None,
    ) -> WebhookOutcome:
        """
        Process a single delivery.

        Args:
            client: Shopify client for the store, None when no token is registered
        """
        pass


class ProductCreateProcessor(WebhookProcessor):

    def get_topics(self) -> List[WebhookTopic]:
        return [WebhookTopic.PRODUCTS_CREATE]

    async def process(self, session, store, event, services, client=None) -> WebhookOutcome:
        payload = ProductWebhookPayload.model_validate(event.payload)
        result = await services.products.create_from_shopify(
            session, store, payload.id, payload.title, payload.metafields, client=client
        )
        return WebhookOutcome(
            topic=event.topic,
            handled=True,
            detail={"product_id": str(payload.id), "created": result.created, "skipped": result.skipped},
        )


class ProductUpdateProcessor(WebhookProcessor):

    def get_topics(self) -> List[WebhookTopic]:
        return [WebhookTopic.PRODUCTS_UPDATE]

    async def process(self, session, store, event, services, client=None) -> WebhookOutcome:
        payload = ProductWebhookPayload.model_validate(event.payload)
        result = await services.products.update_from_shopify(
            session, store, payload.id, payload.title, payload.metafields
        )
        return WebhookOutcome(
            topic=event.topic,
            handled=True,
            detail={"product_id": str(payload.id), "created": result.created},
        )


class ProductDeleteProcessor(WebhookProcessor):

    def get_topics(self) -> List[WebhookTopic]:
        return [WebhookTopic.PRODUCTS_DELETE]

    async def process(self, session, store, event, services, client=None) -> WebhookOutcome:
        payload = ProductDeletePayload.model_validate(event.payload)
        deleted = await services.products.delete(session, store, payload.id)
        return WebhookOutcome(
            topic=event.topic,
            handled=True,
            detail={"product_id": str(payload.id), "deleted": deleted},
        )


class OrderFulfilledProcessor(WebhookProcessor):

    def get_topics(self) -> List[WebhookTopic]:
        return [WebhookTopic.ORDERS_FULFILLED]

    async def process(self, session, store, event, services, client=None) -> WebhookOutcome:
        payload = OrderWebhookPayload.model_validate(event.payload)
        address = payload.shipping_address.to_address() if payload.shipping_address else None
        order = await services.orders.record_fulfilled(
            session, store, payload.id, payload.name, address, client=client
        )
        return WebhookOutcome(
            topic=event.topic,
            handled=order is not None,
            detail={
                "order_id": str(payload.id),
                "delivery_distance_km": order.delivery_distance if order else None,
            },
        )


class AppInstalledProcessor(WebhookProcessor):
    """Imports the catalog of a newly installed shop when its token is known"""

    def get_topics(self) -> List[WebhookTopic]:
        return [WebhookTopic.APP_INSTALLED]

    async def process(self, session, store, event, services, client=None) -> WebhookOutcome:
        if client is None:
            logger.info("No access token yet, catalog import deferred", shop=event.shop_domain)
            return WebhookOutcome(topic=event.topic, handled=True, detail={"imported": False})

        report = await services.reconciliation.import_catalog(session, store, client)
        return WebhookOutcome(
            topic=event.topic,
            handled=True,
            detail={"imported": report.error is None, "sync": report.to_dict()},
        )


# =============================================================================
# DISPATCHER
# =============================================================================

DEFAULT_PROCESSORS = (
    ProductCreateProcessor,
    ProductUpdateProcessor,
    ProductDeleteProcessor,
    OrderFulfilledProcessor,
    AppInstalledProcessor,
)


class WebhookDispatcher:
    """
    Routes webhook events to their processors.

    Usage:
        dispatcher = WebhookDispatcher(services)
        outcome = await dispatcher.dispatch(session, event)
    """

    def __init__(self, services: WebhookServices, register_defaults: bool = True):
        self.services = services
        self._processors: Dict[WebhookTopic, WebhookProcessor] = {}
        if register_defaults:
            for processor_class in DEFAULT_PROCESSORS:
                self.register_processor(processor_class())

    def register_processor(self, processor: WebhookProcessor) -> None:
        """Register a processor for its topics"""
        for topic in processor.get_topics():
            self._processors[topic] = processor

    @property
    def topics(self) -> List[str]:
        return [topic.value for topic in self._processors]

    async def dispatch(self, session: AsyncSession, event: WebhookEvent) -> WebhookOutcome:
        """
        Process one delivery.

        Unknown topics and unknown shops are acknowledged without changes.
        Payload validation errors propagate to the caller.
        """
        try:
            topic = WebhookTopic(event.topic)
        except ValueError:
            logger.warning("No processor for webhook topic", topic=event.topic)
            return WebhookOutcome(topic=event.topic, handled=False, detail={"reason": "unsupported_topic"})

        processor = self._processors.get(topic)
        if processor is None:
            logger.warning("No processor for webhook topic", topic=event.topic)
            return WebhookOutcome(topic=event.topic, handled=False, detail={"reason": "unsupported_topic"})

        if topic == WebhookTopic.APP_INSTALLED:
            store = await ensure_store(session, event.shop_domain, name=event.shop_domain.split(".")[0])
        else:
            store = await get_store(session, event.shop_domain)
        if store is None:
            logger.warning("Webhook for unknown store", shop=event.shop_domain, topic=event.topic)
            return WebhookOutcome(topic=event.topic, handled=False, detail={"reason": "store_not_found"})

        client = None
        if store.access_token:
            try:
                client = self.services.client_factory(store)
            except ExternalApiError as e:
                logger.warning("Shopify client unavailable", shop=event.shop_domain, error=e.message)

        logger.info("Processing webhook", topic=event.topic, shop=event.shop_domain, webhook_id=event.webhook_id)
        try:
            return await processor.process(session, store, event, self.services, client=client)
        finally:
            if client is not None:
                await client.close()
