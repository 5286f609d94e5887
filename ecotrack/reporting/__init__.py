"""
Reporting Module
"""
from .scoring import sustainability_score, score_rating
from .snapshot import MetricsSnapshot, build_snapshot, build_report

__all__ = [
    "sustainability_score",
    "score_rating",
    "MetricsSnapshot",
    "build_snapshot",
    "build_report",
]
