"""
campaign_services.campaign_calculations -- Derived fields for campaign records.

Responsibility:
    Apply the campaign calculation set to one record: budget tracking and
    pacing on the price block, media budget spend, margin, net revenue and
    media budget, unit costs, plan totals and flight-date progress.  Every
    derived value goes through the CalculationEngine at storage precision
    and is recorded as a CalculatedField.

Architecture position:
    Services -- pure with respect to I/O; the clock is injected.  Used as
    the BulkOrchestrator record calculator and by CampaignService for
    single-record writes.

Invariants enforced:
    - Derived amounts are written as fixed-point strings at storage scale.
    - Price and media budget amounts are read as FinancialAmount in the
      block currency, and the normalized code is written back.
    - Derived remaining amounts always replace supplied ones.
    - A field whose formula is undefined (zero denominator) is omitted.
    - The document is stamped with ``calculated_at``,
      ``calculation_version`` and ``calculated_fields``; new history
      entries are returned separately so they are appended, never merged.

Failure modes:
    - InvalidDecimalFormatError for malformed amounts.
    - InvalidCurrencyError for an unsupported block currency.
    - RecordValidationError for unparseable flight dates.
"""

from __future__ import annotations

import copy
from collections.abc import Mapping
from datetime import datetime
from typing import Any

from campaign_batch.domain.types import CalculatedRecord
from campaign_engines.budget import BudgetTracker, CampaignSchedule
from campaign_engines.calculation import CalculationEngine, PrecisionResult
from campaign_engines.precision import PrecisionContext
from campaign_engines.recorder import (
    CalculatedFieldName,
    CalculatedFieldRecorder,
    CalculatedFields,
)
from campaign_kernel.domain.clock import Clock, SystemClock
from campaign_kernel.domain.decimals import decimal_to_str
from campaign_kernel.domain.values import DEFAULT_CURRENCY, FinancialAmount
from campaign_kernel.exceptions import RecordValidationError
from campaign_kernel.logging_config import get_logger

logger = get_logger("services.campaign_calculations")

STORAGE = PrecisionContext.STORAGE

_PRICE_FIELDS = {
    "remaining_amount": CalculatedFieldName.PRICE_REMAINING_AMOUNT,
    "spend_percentage": CalculatedFieldName.PRICE_SPEND_PERCENTAGE,
    "remaining_percentage": CalculatedFieldName.PRICE_REMAINING_PERCENTAGE,
    "expected_to_date": CalculatedFieldName.PRICE_EXPECTED_TO_DATE,
    "pacing_percentage": CalculatedFieldName.PRICE_PACING_PERCENTAGE,
}


def _present(container: Mapping[str, Any], key: str) -> bool:
    value = container.get(key)
    return value is not None and value != ""


def _amounts(
    block: dict[str, Any], target_field: str, actual_field: str,
) -> tuple[FinancialAmount, FinancialAmount]:
    """Target and actual of a money block in its currency (USD when unset)."""
    currency = block.get("currency") or DEFAULT_CURRENCY
    target = FinancialAmount.of(block[target_field], currency)
    if _present(block, actual_field):
        actual = FinancialAmount.of(block[actual_field], currency)
    else:
        actual = FinancialAmount.zero(currency)
    block["currency"] = target.currency
    return target, actual


class _Accumulator:
    """Collects calculated fields while one record is being derived."""

    def __init__(self, engine: CalculationEngine, recorder: CalculatedFieldRecorder) -> None:
        self.engine = engine
        self.recorder = recorder
        self.fields = CalculatedFields()

    def store(
        self,
        name: CalculatedFieldName,
        formula_name: str,
        *operands: Any,
        platform: str | None = None,
        unit_type: str | None = None,
    ) -> PrecisionResult | None:
        result = self.engine.calculate_with_precision(
            formula_name, operands, STORAGE, unit_type=unit_type, platform=platform,
        )
        if result is not None:
            self.keep(name, result)
        return result

    def keep(self, name: CalculatedFieldName, result: PrecisionResult) -> None:
        self.fields = self.fields.with_field(name, self.recorder.record(result))


class CampaignCalculator:
    """
    Campaign calculation set over a CalculationEngine.

    Contract:
        ``calculate(data)`` returns the derived document and its
        CalculatedFields without touching ``data``.  Calling the instance
        (``calculator(item, engine)``) returns a CalculatedRecord, the
        shape the BulkOrchestrator expects.
    """

    def __init__(
        self,
        engine: CalculationEngine,
        recorder: CalculatedFieldRecorder | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._engine = engine
        self._recorder = recorder or CalculatedFieldRecorder()
        self._clock = clock or SystemClock()

    def __call__(self, item: dict[str, Any], engine: CalculationEngine) -> CalculatedRecord:
        document, fields = self.calculate(item, engine)
        return CalculatedRecord(document=document, history=tuple(fields.history_entries()))

    def calculate(
        self,
        data: Mapping[str, Any],
        engine: CalculationEngine | None = None,
    ) -> tuple[dict[str, Any], CalculatedFields]:
        engine = engine or self._engine
        as_of = self._clock.now()
        doc: dict[str, Any] = copy.deepcopy(dict(data))
        acc = _Accumulator(engine, self._recorder)

        schedule = self._schedule(doc)
        self._price(doc, acc, schedule, as_of)
        self._media_budget(doc, acc)
        self._margin(doc, acc)
        self._net_revenue(doc, acc)
        self._metrics(doc, acc)
        self._plans(doc, acc)
        self._dates(doc, acc, schedule, as_of)

        doc["calculated_fields"] = acc.fields.to_document()
        doc["calculated_at"] = as_of.isoformat()
        doc["calculation_version"] = engine.version

        logger.debug(
            "campaign_calculated",
            extra={
                "campaign_number": doc.get("campaign_number"),
                "calculated_fields": len(acc.fields),
                "calculation_version": engine.version,
            },
        )
        return doc, acc.fields

    # -------------------------------------------------------------------------
    # Field groups
    # -------------------------------------------------------------------------

    @staticmethod
    def _schedule(doc: dict[str, Any]) -> CampaignSchedule | None:
        dates = doc.get("dates")
        if not isinstance(dates, Mapping) or not dates.get("start") or not dates.get("end"):
            return None
        try:
            return CampaignSchedule(dates["start"], dates["end"])
        except ValueError as exc:
            raise RecordValidationError([f"Invalid campaign dates: {exc}"]) from exc

    @staticmethod
    def _price(
        doc: dict[str, Any],
        acc: _Accumulator,
        schedule: CampaignSchedule | None,
        as_of: datetime,
    ) -> None:
        price = doc.get("price")
        if not isinstance(price, dict) or not _present(price, "target_amount"):
            return

        target, actual = _amounts(price, "target_amount", "actual_amount")
        tracking = BudgetTracker(acc.engine, STORAGE).track(
            target.amount, actual.amount, schedule, as_of,
        )
        for formula_name, result in tracking.results.items():
            acc.keep(_PRICE_FIELDS[formula_name], result)
            price[formula_name] = result.as_string()
        if tracking.pacing_status is not None:
            price["pacing_status"] = tracking.pacing_status.value

    @staticmethod
    def _media_budget(doc: dict[str, Any], acc: _Accumulator) -> None:
        media = doc.get("media_budget")
        if not isinstance(media, dict) or not _present(media, "target_amount"):
            return

        target_amount, spend_amount = _amounts(media, "target_amount", "actual_spend")
        target, spend = target_amount.amount, spend_amount.amount

        remaining = acc.store(
            CalculatedFieldName.MEDIA_BUDGET_REMAINING_AMOUNT,
            "remaining_amount", target, spend,
        )
        if remaining is not None:
            media["remaining_amount"] = remaining.as_string()

        spent = acc.store(
            CalculatedFieldName.MEDIA_BUDGET_PERCENT_SPENT,
            "spend_percentage", spend, target,
        )
        if spent is not None:
            media["percent_spent"] = spent.as_string()

        left = acc.store(
            CalculatedFieldName.MEDIA_BUDGET_PERCENT_REMAINING,
            "remaining_percentage", target, spend,
        )
        if left is not None:
            media["percent_remaining"] = left.as_string()

    @staticmethod
    def _margin(doc: dict[str, Any], acc: _Accumulator) -> None:
        if not _present(doc, "revenue") or not _present(doc, "cost"):
            return
        amount = acc.store(
            CalculatedFieldName.MARGIN_AMOUNT, "margin_amount", doc["revenue"], doc["cost"],
        )
        if amount is not None:
            doc["margin_amount"] = amount.as_string()
        percentage = acc.store(
            CalculatedFieldName.MARGIN_PERCENTAGE,
            "margin_percentage", doc["revenue"], doc["cost"],
        )
        if percentage is not None:
            doc["margin_percentage"] = percentage.as_string()

    @staticmethod
    def _net_revenue(doc: dict[str, Any], acc: _Accumulator) -> None:
        price = doc.get("price")
        if not isinstance(price, Mapping) or not _present(price, "target_amount"):
            return
        if not _present(doc, "referral_rate"):
            return

        net = acc.engine.calculate("net_revenue", price["target_amount"], doc["referral_rate"])
        if net is None:
            return
        acc.keep(CalculatedFieldName.NET_REVENUE, acc.engine.with_precision(net, STORAGE))
        doc["net_revenue"] = decimal_to_str(acc.fields[CalculatedFieldName.NET_REVENUE].value)

        if _present(doc, "agency_markup_rate"):
            # Media budget derives from the unrounded net revenue.
            budget = acc.store(
                CalculatedFieldName.MEDIA_BUDGET_AMOUNT,
                "media_budget", net.value, doc["agency_markup_rate"],
            )
            if budget is not None:
                doc["media_budget_amount"] = budget.as_string()

    @staticmethod
    def _metrics(doc: dict[str, Any], acc: _Accumulator) -> None:
        metrics = doc.get("metrics")
        media = doc.get("media_budget")
        if not isinstance(metrics, dict) or not isinstance(media, Mapping):
            return
        if not _present(media, "actual_spend"):
            return

        spend = media["actual_spend"]
        platform = metrics.get("platform")
        unit_type = metrics.get("unit_type")

        if _present(metrics, "units"):
            cpm = acc.store(CalculatedFieldName.METRICS_CPM, "cpm", spend, metrics["units"])
            if cpm is not None:
                metrics["cpm"] = cpm.as_string()
            unit_cost = acc.store(
                CalculatedFieldName.METRICS_ACTUAL_UNIT_COST,
                "actual_unit_cost", spend, metrics["units"],
                platform=platform, unit_type=unit_type,
            )
            if unit_cost is not None:
                metrics["actual_unit_cost"] = unit_cost.as_string()

        if _present(metrics, "clicks"):
            cpc = acc.store(CalculatedFieldName.METRICS_CPC, "cpc", spend, metrics["clicks"])
            if cpc is not None:
                metrics["cpc"] = cpc.as_string()

    @staticmethod
    def _plans(doc: dict[str, Any], acc: _Accumulator) -> None:
        plans = doc.get("plans")
        if not isinstance(plans, list) or not plans:
            return
        budgets = [p["budget"] for p in plans if isinstance(p, Mapping) and _present(p, "budget")]
        units = [
            p["planned_units"] for p in plans
            if isinstance(p, Mapping) and _present(p, "planned_units")
        ]
        totals: dict[str, str] = {}
        total_budget = acc.store(
            CalculatedFieldName.PLAN_TOTAL_BUDGET, "aggregate_plan_cost", *budgets,
        )
        if total_budget is not None:
            totals["total_budget"] = total_budget.as_string()
        total_units = acc.store(
            CalculatedFieldName.PLAN_TOTAL_UNITS, "aggregate_plan_units", *units,
        )
        if total_units is not None:
            totals["total_units"] = total_units.as_string()
        doc["plan_totals"] = totals

    @staticmethod
    def _dates(
        doc: dict[str, Any],
        acc: _Accumulator,
        schedule: CampaignSchedule | None,
        as_of: datetime,
    ) -> None:
        if schedule is None:
            return
        dates = doc["dates"]
        total = schedule.total_days
        elapsed = schedule.elapsed_days(as_of)
        remaining = schedule.remaining_days(as_of)
        dates["total_days"] = total
        dates["elapsed_days"] = elapsed
        dates["remaining_days"] = remaining

        complete = acc.store(
            CalculatedFieldName.DATES_PERCENT_COMPLETE, "schedule_percentage", elapsed, total,
        )
        if complete is not None:
            dates["percent_complete"] = complete.as_string()
        left = acc.store(
            CalculatedFieldName.DATES_PERCENT_REMAINING, "schedule_percentage", remaining, total,
        )
        if left is not None:
            dates["percent_remaining"] = left.as_string()
