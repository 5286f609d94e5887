"""
Data Transformation Module
"""
from .geo import haversine_km
from .normalizers import (
    normalize_sustainable_materials,
    normalize_weight,
    packaging_ratio,
    parse_locally_produced,
    parse_number,
)
from .metafields import SustainabilityFields, parse_metafields, build_metafield_inputs

__all__ = [
    "haversine_km",
    "normalize_sustainable_materials",
    "normalize_weight",
    "packaging_ratio",
    "parse_locally_produced",
    "parse_number",
    "SustainabilityFields",
    "parse_metafields",
    "build_metafield_inputs",
]
