"""
Unit Tests - Metafield Mapping
"""
import pytest

from ecotrack.transformation.metafields import (
    METAFIELD_DEFINITIONS,
    TRACKED_KEYS,
    SustainabilityFields,
    build_metafield_inputs,
    default_metafield_inputs,
    parse_metafields,
)

from conftest import full_metafields, metafield


class TestParseMetafields:
    """Tests for parse_metafields"""

    def test_reads_all_four_keys(self):
        fields = parse_metafields(full_metafields())

        assert fields.sustainable_materials == 0.5
        assert fields.is_locally_produced is True
        assert fields.packaging_weight == 0.4
        assert fields.product_weight == 2.0
        assert fields.packaging_ratio == pytest.approx(0.2)
        assert fields.missing_keys == []

    def test_ignores_other_namespaces_and_keys(self):
        fields = parse_metafields([
            metafield("sustainable_materials", "0.9", namespace="legacy"),
            metafield("colour", "green"),
        ])

        assert fields.is_empty
        assert fields.missing_keys == list(TRACKED_KEYS)

    def test_entries_without_namespace_are_accepted(self):
        fields = parse_metafields([{"key": "product_weight", "value": "1.5"}])
        assert fields.product_weight == 1.5

    def test_unparseable_value_counts_as_present(self):
        fields = parse_metafields([metafield("packaging_weight", "heavy")])

        assert fields.packaging_weight is None
        assert "packaging_weight" in fields.present_keys
        assert "packaging_weight" not in fields.missing_keys

    def test_none_entries(self):
        assert parse_metafields(None).is_empty


class TestSustainabilityFields:

    def test_with_defaults_fills_unset_values(self):
        fields = SustainabilityFields(packaging_weight=0.3).with_defaults()

        assert fields.sustainable_materials == 0.0
        assert fields.is_locally_produced is False
        assert fields.packaging_weight == 0.3
        assert fields.product_weight == 0.0
        assert fields.packaging_ratio is None

    def test_model_values_skip_unset(self):
        values = SustainabilityFields(is_locally_produced=False).as_model_values()
        assert values == {"is_locally_produced": False}


class TestMetafieldInputs:

    def test_build_inputs_formats_values(self):
        inputs = build_metafield_inputs(
            SustainabilityFields(sustainable_materials=0.5, is_locally_produced=True, product_weight=1.2)
        )
        by_key = {i["key"]: i for i in inputs}

        assert by_key["sustainable_materials"]["value"] == "0.50"
        assert by_key["sustainable_materials"]["type"] == "number_decimal"
        assert by_key["locally_produced"] == {
            "namespace": "custom",
            "key": "locally_produced",
            "type": "boolean",
            "value": "true",
        }
        assert by_key["product_weight"]["value"] == "1.200"
        assert "packaging_weight" not in by_key

    def test_default_inputs_only_for_missing_keys(self):
        inputs = default_metafield_inputs(["locally_produced", "product_weight"], "eco")

        assert [(i["key"], i["value"], i["namespace"]) for i in inputs] == [
            ("locally_produced", "false", "eco"),
            ("product_weight", "0.0", "eco"),
        ]

    def test_definitions_cover_tracked_keys(self):
        assert {d["key"] for d in METAFIELD_DEFINITIONS} == set(TRACKED_KEYS)
