"""
Data Ingestion Module
"""
from .webhooks import WebhookDispatcher, WebhookEvent, WebhookProcessor, WebhookServices, WebhookTopic
from .csv_import import CsvImporter, ImportSummary, RowResult, read_csv_rows

__all__ = [
    "WebhookDispatcher",
    "WebhookEvent",
    "WebhookProcessor",
    "WebhookServices",
    "WebhookTopic",
    "CsvImporter",
    "ImportSummary",
    "RowResult",
    "read_csv_rows",
]
