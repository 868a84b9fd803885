"""
campaign_engines.recorder -- Calculated-field metadata recorder.

Responsibility:
    Turn a precision-narrowed calculation result into the persisted
    CalculatedField shape, and collect those fields in a typed mapping keyed
    by CalculatedFieldName.

Architecture position:
    Engines -- pure, zero I/O.  Used by every mutation path that derives
    values (CampaignService and the bulk record calculator).

Invariants enforced:
    - A CalculatedField is never mutated; a newer calculation produces a
      new CalculatedField.
    - Serialized values are decimal strings that keep the policy scale
      ("40.000000", never "40").
    - ``is_stored`` is true exactly for the storage context.

Audit relevance:
    Every CalculatedField carries the calculation version, the formula text,
    the precision and the rounding mode it was produced with.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from campaign_engines.calculation import PrecisionResult
from campaign_engines.precision import PrecisionContext
from campaign_kernel.domain.decimals import decimal_to_str, to_decimal


class CalculatedFieldName(str, Enum):
    """Every derived field the platform records, by document path."""

    PRICE_REMAINING_AMOUNT = "price.remaining_amount"
    PRICE_SPEND_PERCENTAGE = "price.spend_percentage"
    PRICE_REMAINING_PERCENTAGE = "price.remaining_percentage"
    PRICE_EXPECTED_TO_DATE = "price.expected_to_date"
    PRICE_PACING_PERCENTAGE = "price.pacing_percentage"
    MEDIA_BUDGET_REMAINING_AMOUNT = "media_budget.remaining_amount"
    MEDIA_BUDGET_PERCENT_SPENT = "media_budget.percent_spent"
    MEDIA_BUDGET_PERCENT_REMAINING = "media_budget.percent_remaining"
    MARGIN_AMOUNT = "margin_amount"
    MARGIN_PERCENTAGE = "margin_percentage"
    NET_REVENUE = "net_revenue"
    MEDIA_BUDGET_AMOUNT = "media_budget_amount"
    METRICS_CPM = "metrics.cpm"
    METRICS_CPC = "metrics.cpc"
    METRICS_ACTUAL_UNIT_COST = "metrics.actual_unit_cost"
    DATES_PERCENT_COMPLETE = "dates.percent_complete"
    DATES_PERCENT_REMAINING = "dates.percent_remaining"
    PLAN_TOTAL_BUDGET = "plan_totals.total_budget"
    PLAN_TOTAL_UNITS = "plan_totals.total_units"


@dataclass(frozen=True)
class CalculatedField:
    """Persisted metadata for one derived value."""

    value: Decimal
    calculation_version: str
    calculated_at: datetime
    context: str
    formula: str
    precision: int
    rounding_mode: str
    is_stored: bool

    def to_document(self) -> dict[str, Any]:
        return {
            "value": decimal_to_str(self.value),
            "calculation_version": self.calculation_version,
            "calculated_at": self.calculated_at.isoformat(),
            "context": self.context,
            "formula": self.formula,
            "precision": self.precision,
            "rounding_mode": self.rounding_mode,
            "is_stored": self.is_stored,
        }

    @classmethod
    def from_document(cls, data: Mapping[str, Any]) -> CalculatedField:
        return cls(
            value=to_decimal(data["value"]),
            calculation_version=data["calculation_version"],
            calculated_at=datetime.fromisoformat(data["calculated_at"]),
            context=data["context"],
            formula=data["formula"],
            precision=int(data["precision"]),
            rounding_mode=data["rounding_mode"],
            is_stored=bool(data["is_stored"]),
        )


class CalculatedFields(Mapping[CalculatedFieldName, CalculatedField]):
    """Immutable typed mapping of derived fields."""

    __slots__ = ("_fields",)

    def __init__(
        self, fields: Mapping[CalculatedFieldName, CalculatedField] | None = None
    ) -> None:
        self._fields: dict[CalculatedFieldName, CalculatedField] = dict(fields or {})

    def __getitem__(self, name: CalculatedFieldName) -> CalculatedField:
        return self._fields[CalculatedFieldName(name)]

    def __iter__(self) -> Iterator[CalculatedFieldName]:
        return iter(self._fields)

    def __len__(self) -> int:
        return len(self._fields)

    def __repr__(self) -> str:
        return f"CalculatedFields({sorted(f.value for f in self._fields)})"

    def with_field(self, name: CalculatedFieldName, field: CalculatedField) -> CalculatedFields:
        merged = dict(self._fields)
        merged[CalculatedFieldName(name)] = field
        return CalculatedFields(merged)

    def to_document(self) -> dict[str, dict[str, Any]]:
        return {name.value: field.to_document() for name, field in self._fields.items()}

    def history_entries(self) -> list[dict[str, Any]]:
        """One append-only history entry per field."""
        return [
            {"field": name.value, **field.to_document()}
            for name, field in self._fields.items()
        ]

    @classmethod
    def from_document(cls, data: Mapping[str, Mapping[str, Any]]) -> CalculatedFields:
        return cls(
            {CalculatedFieldName(k): CalculatedField.from_document(v) for k, v in data.items()}
        )


class CalculatedFieldRecorder:
    """
    Builds CalculatedField records from precision results.

    Contract:
        ``record()`` is pure.  ``context`` defaults to the result's own
        precision context and ``formula`` to the result's formula text.
    """

    def record(
        self,
        result: PrecisionResult,
        context: PrecisionContext | str | None = None,
        formula: str | None = None,
    ) -> CalculatedField:
        ctx = context if context is not None else result.context
        ctx_value = ctx.value if isinstance(ctx, PrecisionContext) else str(ctx)
        return CalculatedField(
            value=result.value,
            calculation_version=result.calculation_version,
            calculated_at=result.calculated_at,
            context=ctx_value,
            formula=formula if formula is not None else result.formula,
            precision=result.decimal_places,
            rounding_mode=result.rounding_mode.value,
            is_stored=ctx_value == PrecisionContext.STORAGE.value,
        )
