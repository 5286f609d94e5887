"""
Service Wiring

Builds the process-wide service graph once (one metrics sink, one recorder,
one aggregator) and hands it to the API, the webhook dispatcher and the
scheduled workflows.
"""

from dataclasses import dataclass
from typing import Any, Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ecotrack.config import get_settings
from ecotrack.database.models import Store
from ecotrack.ingestion.csv_import import CsvImporter
from ecotrack.ingestion.webhooks import WebhookDispatcher, WebhookServices
from ecotrack.metrics.recorder import ProductMetricsRecorder
from ecotrack.metrics.sink import PrometheusMetricsSink
from ecotrack.metrics.store_aggregator import StoreAggregator
from ecotrack.shopify.client import client_for_store
from ecotrack.sync.orders import OrderService
from ecotrack.sync.products import ProductService
from ecotrack.sync.reconciliation import ReconciliationEngine

settings = get_settings()


@dataclass
class AppServices:
    sink: PrometheusMetricsSink
    aggregator: StoreAggregator
    recorder: ProductMetricsRecorder
    products: ProductService
    orders: OrderService
    reconciliation: ReconciliationEngine
    webhooks: WebhookDispatcher
    importer: CsvImporter
    client_factory: Callable[[Store], Any]


def build_services(
    session_factory: async_sessionmaker[AsyncSession],
    sink: Optional[PrometheusMetricsSink] = None,
    client_factory: Callable[[Store], Any] = client_for_store,
    import_batch_size: Optional[int] = None,
    import_batch_delay: Optional[float] = None,
) -> AppServices:
    if sink is None:
        sink = PrometheusMetricsSink(collect_process_metrics=settings.monitoring.collect_process_metrics)

    aggregator = StoreAggregator(sink)
    recorder = ProductMetricsRecorder(sink, aggregator)
    products = ProductService(recorder, aggregator)
    orders = OrderService(sink, aggregator)
    reconciliation = ReconciliationEngine(products, aggregator)
    webhooks = WebhookDispatcher(WebhookServices(
        products=products,
        orders=orders,
        reconciliation=reconciliation,
        client_factory=client_factory,
    ))
    importer = CsvImporter(
        products,
        session_factory,
        batch_size=import_batch_size,
        batch_delay=import_batch_delay,
    )
    return AppServices(
        sink=sink,
        aggregator=aggregator,
        recorder=recorder,
        products=products,
        orders=orders,
        reconciliation=reconciliation,
        webhooks=webhooks,
        importer=importer,
        client_factory=client_factory,
    )
