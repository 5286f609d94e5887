"""
Sustainability Metafields

Maps the four product metafields stored on Shopify (namespace ``custom``)
to and from the local product columns.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Set

import structlog

from ecotrack.core.errors import InvalidNumber
from ecotrack.transformation.normalizers import (
    SUSTAINABLE_DECIMALS,
    WEIGHT_DECIMALS,
    format_decimal,
    normalize_sustainable_materials,
    normalize_weight,
    packaging_ratio,
    parse_locally_produced,
)

logger = structlog.get_logger(__name__)

DEFAULT_NAMESPACE = "custom"

KEY_SUSTAINABLE_MATERIALS = "sustainable_materials"
KEY_LOCALLY_PRODUCED = "locally_produced"
KEY_PACKAGING_WEIGHT = "packaging_weight"
KEY_PRODUCT_WEIGHT = "product_weight"

TRACKED_KEYS = (
    KEY_LOCALLY_PRODUCED,
    KEY_SUSTAINABLE_MATERIALS,
    KEY_PACKAGING_WEIGHT,
    KEY_PRODUCT_WEIGHT,
)

METAFIELD_TYPES = {
    KEY_LOCALLY_PRODUCED: "boolean",
    KEY_SUSTAINABLE_MATERIALS: "number_decimal",
    KEY_PACKAGING_WEIGHT: "number_decimal",
    KEY_PRODUCT_WEIGHT: "number_decimal",
}

# Values written back when a product lacks a metafield
DEFAULT_VALUES = {
    KEY_LOCALLY_PRODUCED: "false",
    KEY_SUSTAINABLE_MATERIALS: "0.0",
    KEY_PACKAGING_WEIGHT: "0.0",
    KEY_PRODUCT_WEIGHT: "0.0",
}

METAFIELD_DEFINITIONS = [
    {
        "key": KEY_LOCALLY_PRODUCED,
        "name": "Locally produced",
        "type": "boolean",
        "description": "Whether the product is locally produced",
    },
    {
        "key": KEY_SUSTAINABLE_MATERIALS,
        "name": "Sustainable materials",
        "type": "number_decimal",
        "description": "Share of sustainable materials used (0-1)",
    },
    {
        "key": KEY_PACKAGING_WEIGHT,
        "name": "Packaging weight",
        "type": "number_decimal",
        "description": "Weight of product packaging in kg",
    },
    {
        "key": KEY_PRODUCT_WEIGHT,
        "name": "Product weight",
        "type": "number_decimal",
        "description": "Weight of the product in kg",
    },
]


@dataclass
class SustainabilityFields:
    """
    Sustainability values read from metafields or an edit request.

    ``None`` means "not supplied"; only supplied values are written.
    ``present_keys`` records which metafield keys existed on the source,
    even when their value could not be parsed.
    """
    sustainable_materials: Optional[float] = None
    is_locally_produced: Optional[bool] = None
    packaging_weight: Optional[float] = None
    product_weight: Optional[float] = None
    present_keys: Set[str] = field(default_factory=set)

    @property
    def is_empty(self) -> bool:
        return not self.as_model_values()

    @property
    def missing_keys(self) -> List[str]:
        return [key for key in TRACKED_KEYS if key not in self.present_keys]

    @property
    def packaging_ratio(self) -> Optional[float]:
        return packaging_ratio(self.packaging_weight, self.product_weight)

    def as_model_values(self) -> Dict[str, Any]:
        """Supplied values keyed by Product column name."""
        values = {
            "sustainable_materials": self.sustainable_materials,
            "is_locally_produced": self.is_locally_produced,
            "packaging_weight": self.packaging_weight,
            "product_weight": self.product_weight,
        }
        return {name: value for name, value in values.items() if value is not None}

    def with_defaults(self) -> "SustainabilityFields":
        """Copy where every unset value takes the default a fresh product starts with."""
        return SustainabilityFields(
            sustainable_materials=0.0 if self.sustainable_materials is None else self.sustainable_materials,
            is_locally_produced=False if self.is_locally_produced is None else self.is_locally_produced,
            packaging_weight=0.0 if self.packaging_weight is None else self.packaging_weight,
            product_weight=0.0 if self.product_weight is None else self.product_weight,
            present_keys=set(self.present_keys),
        )


def parse_metafields(
    entries: Optional[Iterable[Dict[str, Any]]],
    namespace: str = DEFAULT_NAMESPACE,
) -> SustainabilityFields:
    """
    Extract sustainability values from metafield entries.

    Accepts webhook (REST) and GraphQL node shapes: dicts with ``key``,
    ``value`` and optionally ``namespace``. Entries from other namespaces
    and unknown keys are ignored; unparseable numbers are skipped.
    """
    fields = SustainabilityFields()
    for entry in entries or []:
        if entry.get("namespace", namespace) != namespace:
            continue
        key = entry.get("key")
        if key not in METAFIELD_TYPES:
            continue
        fields.present_keys.add(key)
        value = entry.get("value")

        try:
            if key == KEY_SUSTAINABLE_MATERIALS:
                fields.sustainable_materials = normalize_sustainable_materials(value)
            elif key == KEY_LOCALLY_PRODUCED:
                fields.is_locally_produced = parse_locally_produced(value)
            elif key == KEY_PACKAGING_WEIGHT:
                fields.packaging_weight = normalize_weight(value, key)
            elif key == KEY_PRODUCT_WEIGHT:
                fields.product_weight = normalize_weight(value, key)
        except InvalidNumber as e:
            logger.warning("Skipping unparseable metafield", key=key, value=value, error=e.message)

    return fields


def metafield_input(key: str, value: str, namespace: str = DEFAULT_NAMESPACE) -> Dict[str, str]:
    """MetafieldInput for productUpdate"""
    return {
        "namespace": namespace,
        "key": key,
        "type": METAFIELD_TYPES[key],
        "value": value,
    }


def default_metafield_inputs(
    missing_keys: Iterable[str],
    namespace: str = DEFAULT_NAMESPACE,
) -> List[Dict[str, str]]:
    """Inputs that initialize absent metafields without touching existing ones."""
    return [metafield_input(key, DEFAULT_VALUES[key], namespace) for key in missing_keys]


def build_metafield_inputs(
    fields: SustainabilityFields,
    namespace: str = DEFAULT_NAMESPACE,
) -> List[Dict[str, str]]:
    """Inputs for every supplied value in ``fields``"""
    inputs = []
    if fields.sustainable_materials is not None:
        inputs.append(metafield_input(
            KEY_SUSTAINABLE_MATERIALS,
            format_decimal(fields.sustainable_materials, SUSTAINABLE_DECIMALS),
            namespace,
        ))
    if fields.is_locally_produced is not None:
        inputs.append(metafield_input(
            KEY_LOCALLY_PRODUCED,
            "true" if fields.is_locally_produced else "false",
            namespace,
        ))
    if fields.packaging_weight is not None:
        inputs.append(metafield_input(
            KEY_PACKAGING_WEIGHT,
            format_decimal(fields.packaging_weight, WEIGHT_DECIMALS),
            namespace,
        ))
    if fields.product_weight is not None:
        inputs.append(metafield_input(
            KEY_PRODUCT_WEIGHT,
            format_decimal(fields.product_weight, WEIGHT_DECIMALS),
            namespace,
        ))
    return inputs
