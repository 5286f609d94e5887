"""
Metric Value Normalizers

Clamp and round the editable sustainability fields into their valid domains
before they are written to Shopify or to the local mirror.

- Sustainable materials ratio: [0.00, 1.00], 2 decimals
- Packaging and product weight (kg): [0.001, 10], 3 decimals, 0 kept as "not set"
- Locally produced: lenient boolean parsing, never an error
"""

import math
from typing import Any, Optional

from ecotrack.core.errors import InvalidNumber

SUSTAINABLE_MIN = 0.0
SUSTAINABLE_MAX = 1.0
SUSTAINABLE_DECIMALS = 2

WEIGHT_MIN_KG = 0.001
WEIGHT_MAX_KG = 10.0
WEIGHT_DECIMALS = 3

TRUTHY_STRINGS = frozenset({"true", "1", "yes"})


def parse_number(value: Any, field: Optional[str] = None) -> float:
    """
    Parse a user or API supplied value into a finite float.

    Raises:
        InvalidNumber: for None, empty strings, booleans, NaN, infinities and
            anything float() rejects
    """
    if value is None or isinstance(value, bool):
        raise InvalidNumber(value, field)
    if isinstance(value, str):
        value = value.strip()
        if not value:
            raise InvalidNumber(value, field)
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise InvalidNumber(value, field) from None
    if not math.isfinite(number):
        raise InvalidNumber(value, field)
    return number


def clamp(value: float, minimum: float, maximum: float) -> float:
    return max(minimum, min(maximum, value))


def normalize_sustainable_materials(value: Any, bulk: bool = False) -> float:
    """
    Normalize a sustainable-materials ratio.

    On the bulk import path a value in (1, 100] is read as a percentage
    (90 -> 0.90) before clamping.
    """
    number = parse_number(value, "sustainable_materials")
    if bulk and 1 < number <= 100:
        number = number / 100
    return round(clamp(number, SUSTAINABLE_MIN, SUSTAINABLE_MAX), SUSTAINABLE_DECIMALS)


def normalize_weight(value: Any, field: str = "weight") -> float:
    """
    Normalize a packaging or product weight in kg.

    Exactly 0 is preserved; it means the weight has not been entered yet.
    """
    number = parse_number(value, field)
    if number == 0:
        return 0.0
    if number > WEIGHT_MAX_KG:
        number = WEIGHT_MAX_KG
    if number < WEIGHT_MIN_KG:
        number = WEIGHT_MIN_KG
    return round(number, WEIGHT_DECIMALS)


def parse_locally_produced(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in TRUTHY_STRINGS


def packaging_ratio(packaging_weight: Optional[float], product_weight: Optional[float]) -> Optional[float]:
    """Packaging weight per unit of product weight, None when product weight is unknown or zero."""
    if packaging_weight is None or product_weight is None:
        return None
    if product_weight <= 0:
        return None
    return packaging_weight / product_weight


def format_decimal(value: float, decimals: int) -> str:
    """Render a normalized value the way Shopify number_decimal metafields store it."""
    return f"{value:.{decimals}f}"
