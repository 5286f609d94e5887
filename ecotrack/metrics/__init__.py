"""
Metrics Module
"""
from .sink import MetricsSink, PrometheusMetricsSink, product_labels, store_labels
from .recorder import ProductMetricsRecorder, ProductSnapshot
from .store_aggregator import StoreAggregator

__all__ = [
    "MetricsSink",
    "PrometheusMetricsSink",
    "product_labels",
    "store_labels",
    "ProductMetricsRecorder",
    "ProductSnapshot",
    "StoreAggregator",
]
