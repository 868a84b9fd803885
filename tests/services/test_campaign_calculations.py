"""
Tests for the campaign calculation set.

Sample campaign at 2025-02-15 12:00 UTC: flight 2025-01-01 .. 2025-03-31
(89 days, 46 elapsed), price 10000.00 / 4000.00, media 7500.00 / 2500.00,
referral 10%, markup 20%, 1,250,000 units and 3,100 clicks.
"""

import pytest

from campaign_engines.recorder import CalculatedFieldName
from campaign_kernel.exceptions import InvalidCurrencyError, RecordValidationError
from campaign_services import CampaignCalculator, validate_campaign
from tests.conftest import make_campaign


@pytest.fixture
def calculator(engine, deterministic_clock):
    return CampaignCalculator(engine, clock=deterministic_clock)


class TestCampaignCalculator:

    def test_price_block(self, calculator):
        doc, _ = calculator.calculate(make_campaign())
        price = doc["price"]
        assert price["remaining_amount"] == "6000.000000"
        assert price["spend_percentage"] == "40.000000"
        assert price["remaining_percentage"] == "60.000000"
        assert price["expected_to_date"] == "5168.539326"
        assert price["pacing_percentage"] == "77.391304"
        assert price["pacing_status"] == "behind"

    def test_supplied_remaining_amount_replaced(self, calculator):
        data = make_campaign(price={
            "target_amount": "10000.00", "actual_amount": "4000.00", "remaining_amount": "9999",
        })
        doc, fields = calculator.calculate(data)
        recorded = fields[CalculatedFieldName.PRICE_REMAINING_AMOUNT]
        assert doc["price"]["remaining_amount"] == "6000.000000"
        assert doc["calculated_fields"]["price.remaining_amount"]["value"] == "6000.000000"
        assert str(recorded.value) == doc["price"]["remaining_amount"]

    def test_media_budget_block(self, calculator):
        doc, _ = calculator.calculate(make_campaign())
        media = doc["media_budget"]
        assert media["remaining_amount"] == "5000.000000"
        assert media["percent_spent"] == "33.333333"
        assert media["percent_remaining"] == "66.666667"

    def test_block_currency_defaults_and_normalizes(self, calculator):
        doc, _ = calculator.calculate(make_campaign(
            price={"target_amount": "10000.00", "actual_amount": "4000.00", "currency": " eur"},
        ))
        assert doc["price"]["currency"] == "EUR"
        assert doc["media_budget"]["currency"] == "USD"

    def test_unsupported_currency_raises(self, calculator):
        with pytest.raises(InvalidCurrencyError):
            calculator.calculate(make_campaign(
                media_budget={"target_amount": "7500.00", "currency": "XYZ"},
            ))

    def test_supplied_media_remaining_amount_replaced(self, calculator):
        doc, fields = calculator.calculate(make_campaign(media_budget={
            "target_amount": "7500.00", "actual_spend": "2500.00", "remaining_amount": "1",
        }))
        recorded = fields[CalculatedFieldName.MEDIA_BUDGET_REMAINING_AMOUNT]
        assert doc["media_budget"]["remaining_amount"] == "5000.000000"
        assert str(recorded.value) == "5000.000000"

    def test_net_revenue_and_media_budget(self, calculator):
        doc, _ = calculator.calculate(make_campaign())
        assert doc["net_revenue"] == "9000.000000"
        assert doc["media_budget_amount"] == "7500.000000"

    def test_metrics(self, calculator):
        doc, _ = calculator.calculate(make_campaign())
        metrics = doc["metrics"]
        assert metrics["cpm"] == "2.000000"
        assert metrics["actual_unit_cost"] == "0.002000"
        assert metrics["cpc"] == "0.806452"

    def test_margin(self, calculator):
        doc, _ = calculator.calculate(make_campaign(revenue="1000.00", cost="750.00"))
        assert doc["margin_amount"] == "250.000000"
        assert doc["margin_percentage"] == "25.000000"

    def test_zero_revenue_omits_margin_percentage(self, calculator):
        doc, fields = calculator.calculate(make_campaign(revenue="0", cost="10.00"))
        assert doc["margin_amount"] == "-10.000000"
        assert "margin_percentage" not in doc
        assert CalculatedFieldName.MARGIN_PERCENTAGE not in fields

    def test_plans(self, calculator):
        doc, _ = calculator.calculate(make_campaign(plans=[
            {"budget": "1000.50", "planned_units": "100"},
            {"budget": "499.50", "planned_units": "50"},
            {"name": "unbudgeted"},
        ]))
        assert doc["plan_totals"] == {
            "total_budget": "1500.000000",
            "total_units": "150.000000",
        }

    def test_dates(self, calculator):
        doc, _ = calculator.calculate(make_campaign())
        dates = doc["dates"]
        assert (dates["total_days"], dates["elapsed_days"], dates["remaining_days"]) == (89, 46, 43)
        assert dates["percent_complete"] == "51.685393"
        assert dates["percent_remaining"] == "48.314607"

    def test_stamps(self, calculator):
        doc, fields = calculator.calculate(make_campaign())
        assert doc["calculation_version"] == "1.0.0"
        assert doc["calculated_at"] == "2025-02-15T12:00:00+00:00"
        assert set(doc["calculated_fields"]) == {name.value for name in fields}
        assert all(f.is_stored for f in fields.values())

    def test_input_not_mutated(self, calculator):
        data = make_campaign()
        calculator.calculate(data)
        assert data == make_campaign()

    def test_bad_dates(self, calculator):
        with pytest.raises(RecordValidationError):
            calculator.calculate(make_campaign(dates={"start": "someday", "end": "2025-01-01"}))

    def test_call_returns_record(self, calculator, engine):
        record = calculator(make_campaign(), engine)
        assert record.document["price"]["spend_percentage"] == "40.000000"
        assert {e["field"] for e in record.history} >= {"price.spend_percentage", "metrics.cpc"}


class TestValidateCampaign:

    def test_valid(self):
        assert validate_campaign(make_campaign()) == []

    def test_not_a_mapping(self):
        assert validate_campaign(["x"]) == ["Campaign must be a mapping"]

    def test_collects_every_issue(self):
        issues = validate_campaign({"price": {"target_amount": "x"}, "cost": "y"})
        assert issues == [
            "Campaign name is required",
            "Campaign number is required",
            "Campaign start and end dates are required",
            "price.target_amount must be a decimal amount",
            "cost must be a decimal amount",
        ]

    def test_bad_iso_dates(self):
        issues = validate_campaign(make_campaign(dates={"start": "01/02/2025", "end": "2025-03-01"}))
        assert issues == ["Campaign dates must be ISO dates"]

    def test_currency(self):
        issues = validate_campaign(make_campaign(
            price={"target_amount": "10.00", "currency": "XYZ"},
        ))
        assert len(issues) == 1
        assert issues[0].startswith("price.currency:")

    def test_partial_checks_only_present_fields(self):
        assert validate_campaign({"name": "Renamed"}, partial=True) == []
        assert validate_campaign({"price": {}}, partial=True) == [
            "Campaign price target amount is required",
        ]
