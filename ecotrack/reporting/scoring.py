"""
Sustainability Score

0-100 score shown on the sustainability report:

    100 * (0.35 * materials% / 100
           + 0.25 * local% / 100
           + 0.25 * max(0, 1 - avg_packaging_ratio * 0.5)
           + 0.15 * max(0, 1 - avg_delivery_km / 200))

rounded to the nearest integer, halves up.
"""

import math

MATERIALS_WEIGHT = 0.35
LOCAL_WEIGHT = 0.25
PACKAGING_WEIGHT = 0.25
DISTANCE_WEIGHT = 0.15

PACKAGING_RATIO_FACTOR = 0.5
DISTANCE_CEILING_KM = 200.0

RATINGS = (
    (80, "Excellent"),
    (60, "Good"),
    (40, "Fair"),
)


def sustainability_score(
    sustainable_materials_percent: float,
    local_products_percent: float,
    avg_packaging_ratio: float,
    avg_delivery_distance_km: float,
) -> int:
    raw = 100 * (
        MATERIALS_WEIGHT * sustainable_materials_percent / 100
        + LOCAL_WEIGHT * local_products_percent / 100
        + PACKAGING_WEIGHT * max(0.0, 1 - avg_packaging_ratio * PACKAGING_RATIO_FACTOR)
        + DISTANCE_WEIGHT * max(0.0, 1 - avg_delivery_distance_km / DISTANCE_CEILING_KM)
    )
    return int(math.floor(raw + 0.5))


def score_rating(score: int) -> str:
    for threshold, label in RATINGS:
        if score >= threshold:
            return label
    return "Needs Improvement"
