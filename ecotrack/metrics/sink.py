"""
Metrics Sink

Live sustainability gauges. Services receive a MetricsSink instead of
touching module-level prometheus_client objects, so each app instance and
each test owns its registry.
"""

from abc import ABC, abstractmethod
from contextlib import suppress
from dataclasses import dataclass
from typing import Dict, Mapping, Optional, Tuple

import structlog
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Gauge,
    generate_latest,
)
from prometheus_client.gc_collector import GCCollector
from prometheus_client.platform_collector import PlatformCollector
from prometheus_client.process_collector import ProcessCollector

logger = structlog.get_logger(__name__)


PRODUCT_LABELS = ("product_id", "product_title", "store_id")
STORE_LABELS = ("store_id", "store_name", "store_domain")
ORDER_LABELS = ("order_id", "store_id")


@dataclass(frozen=True)
class GaugeSpec:
    name: str
    documentation: str
    labelnames: Tuple[str, ...]


# =============================================================================
# GAUGE CATALOG
# =============================================================================

GAUGES = {
    gauge.name: gauge
    for gauge in (
        GaugeSpec("product_status", "Product status (1 = active, 0 = deleted)", PRODUCT_LABELS),
        GaugeSpec(
            "sustainable_materials_percentage",
            "Share of sustainable materials in products",
            PRODUCT_LABELS,
        ),
        GaugeSpec("packaging_ratio", "Ratio of packaging weight to product weight", PRODUCT_LABELS),
        GaugeSpec(
            "is_locally_produced",
            "Whether a product is locally produced (1 for true, 0 for false)",
            PRODUCT_LABELS,
        ),
        GaugeSpec("delivery_distance_km", "Distance of delivery in kilometers", ORDER_LABELS),
        GaugeSpec(
            "store_avg_delivery_distance_km",
            "Average delivery distance for a store in kilometers",
            STORE_LABELS,
        ),
        GaugeSpec("store_product_count", "Total number of products per store", STORE_LABELS),
        GaugeSpec(
            "store_avg_sustainable_materials",
            "Average sustainable materials share for store",
            STORE_LABELS,
        ),
        GaugeSpec(
            "store_local_products_count",
            "Number of locally produced products per store",
            STORE_LABELS,
        ),
    )
}

# Per-product series dropped when a product is deleted; product_status stays at 0
PRODUCT_VALUE_GAUGES = ("sustainable_materials_percentage", "packaging_ratio", "is_locally_produced")


class MetricsSink(ABC):
    """Where gauge values go"""

    @abstractmethod
    def set_gauge(self, name: str, labels: Mapping[str, str], value: float) -> None:
        pass

    @abstractmethod
    def remove_gauge(self, name: str, labels: Mapping[str, str]) -> None:
        """Drop one labelled series; unknown series are ignored."""
        pass


class PrometheusMetricsSink(MetricsSink):
    """
    MetricsSink backed by a prometheus_client CollectorRegistry.

    Args:
        registry: Registry to register gauges in; a fresh one by default
        collect_process_metrics: Also expose process, platform and GC metrics
    """

    def __init__(
        self,
        registry: Optional[CollectorRegistry] = None,
        collect_process_metrics: bool = False,
    ):
        self.registry = registry if registry is not None else CollectorRegistry()
        self._gauges: Dict[str, Gauge] = {
            gauge.name: Gauge(
                gauge.name,
                gauge.documentation,
                list(gauge.labelnames),
                registry=self.registry,
            )
            for gauge in GAUGES.values()
        }
        if collect_process_metrics:
            ProcessCollector(registry=self.registry)
            PlatformCollector(registry=self.registry)
            GCCollector(registry=self.registry)

    def _gauge(self, name: str) -> Gauge:
        try:
            return self._gauges[name]
        except KeyError:
            raise ValueError(f"Unknown gauge: {name}") from None

    def set_gauge(self, name: str, labels: Mapping[str, str], value: float) -> None:
        gauge = self._gauge(name)
        gauge.labels(**{key: str(labels[key]) for key in GAUGES[name].labelnames}).set(value)

    def remove_gauge(self, name: str, labels: Mapping[str, str]) -> None:
        gauge = self._gauge(name)
        values = [str(labels[key]) for key in GAUGES[name].labelnames]
        with suppress(KeyError):
            gauge.remove(*values)

    def get_value(self, name: str, labels: Mapping[str, str]) -> Optional[float]:
        """Current value of a series, None when it has not been set."""
        return self.registry.get_sample_value(
            name, {key: str(value) for key, value in labels.items()}
        )

    def render(self) -> bytes:
        """Prometheus text exposition of the registry."""
        return generate_latest(self.registry)

    @property
    def content_type(self) -> str:
        return CONTENT_TYPE_LATEST


def product_labels(shopify_product_id: str, title: Optional[str], store_id) -> Dict[str, str]:
    """Labels for per-product gauges, titling untitled products "Product <id>"."""
    return {
        "product_id": str(shopify_product_id),
        "product_title": title or f"Product {shopify_product_id}",
        "store_id": str(store_id),
    }


def store_labels(store_id, name: Optional[str], shopify_domain: str) -> Dict[str, str]:
    return {
        "store_id": str(store_id),
        "store_name": name or shopify_domain.split(".")[0],
        "store_domain": shopify_domain,
    }
