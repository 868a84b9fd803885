"""Tests for calculated-field recording."""

from decimal import Decimal

import pytest

from campaign_engines.recorder import (
    CalculatedField,
    CalculatedFieldName,
    CalculatedFieldRecorder,
    CalculatedFields,
)


@pytest.fixture
def spend_result(engine):
    return engine.calculate("spend_percentage", "4000.00", "10000.00")


class TestRecorder:

    def test_storage_field(self, engine, spend_result, deterministic_clock):
        field = CalculatedFieldRecorder().record(engine.with_precision(spend_result, "storage"))

        assert field.value == Decimal("40.000000")
        assert field.precision == 6
        assert field.rounding_mode == "half_up"
        assert field.context == "storage"
        assert field.is_stored is True
        assert field.formula == "(actual / target) * 100"
        assert field.calculation_version == "1.0.0"
        assert field.calculated_at == deterministic_clock.now()

    def test_display_field_is_not_stored(self, engine, spend_result):
        field = CalculatedFieldRecorder().record(engine.with_precision(spend_result, "display"))
        assert field.is_stored is False
        assert field.to_document()["value"] == "40.00"

    def test_context_and_formula_overrides(self, engine, spend_result):
        field = CalculatedFieldRecorder().record(
            engine.with_precision(spend_result, "storage"),
            context="api",
            formula="actual / target * 100",
        )
        assert field.context == "api"
        assert field.is_stored is False
        assert field.formula == "actual / target * 100"

    def test_document_keeps_scale(self, engine, spend_result):
        doc = CalculatedFieldRecorder().record(
            engine.with_precision(spend_result, "storage")
        ).to_document()
        assert doc == {
            "value": "40.000000",
            "calculation_version": "1.0.0",
            "calculated_at": "2025-02-15T12:00:00+00:00",
            "context": "storage",
            "formula": "(actual / target) * 100",
            "precision": 6,
            "rounding_mode": "half_up",
            "is_stored": True,
        }

    def test_from_document(self, engine, spend_result):
        field = CalculatedFieldRecorder().record(engine.with_precision(spend_result, "storage"))
        assert CalculatedField.from_document(field.to_document()) == field


class TestCalculatedFields:

    def test_with_field_returns_new_mapping(self, engine, spend_result):
        field = CalculatedFieldRecorder().record(engine.with_precision(spend_result, "storage"))
        empty = CalculatedFields()
        filled = empty.with_field(CalculatedFieldName.PRICE_SPEND_PERCENTAGE, field)

        assert len(empty) == 0
        assert len(filled) == 1
        assert filled["price.spend_percentage"] is field

    def test_unknown_field_name_rejected(self, engine, spend_result):
        field = CalculatedFieldRecorder().record(engine.with_precision(spend_result, "storage"))
        with pytest.raises(ValueError):
            CalculatedFields().with_field("price.roas", field)

    def test_history_entries(self, engine, spend_result):
        recorder = CalculatedFieldRecorder()
        fields = (
            CalculatedFields()
            .with_field(
                CalculatedFieldName.PRICE_SPEND_PERCENTAGE,
                recorder.record(engine.with_precision(spend_result, "storage")),
            )
            .with_field(
                CalculatedFieldName.METRICS_CPC,
                recorder.record(engine.calculate_with_precision("cpc", ("10", "4"), "storage")),
            )
        )
        entries = fields.history_entries()
        assert [e["field"] for e in entries] == ["price.spend_percentage", "metrics.cpc"]
        assert entries[1]["value"] == "2.500000"

    def test_document_round_trip(self, engine, spend_result):
        field = CalculatedFieldRecorder().record(engine.with_precision(spend_result, "storage"))
        fields = CalculatedFields().with_field(CalculatedFieldName.PRICE_SPEND_PERCENTAGE, field)
        assert dict(CalculatedFields.from_document(fields.to_document())) == dict(fields)
