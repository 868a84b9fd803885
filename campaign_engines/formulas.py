"""
campaign_engines.formulas -- Versioned formula registry.

Responsibility:
    Hold every derived-value formula keyed by ``(name, version)``, together
    with its human-readable expression and its arity.  Formulas are pure
    functions of Decimal operands.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Consumed by CalculationEngine; populated at import time for the
    built-in versions.

Invariants enforced:
    - One formula per ``(name, version)``; registering twice is a
      configuration defect (DuplicateFormulaError).
    - A formula never alters the value of an existing version.  Changing a
      formula means registering it under a new version.
    - A zero denominator yields ``None`` (undefined ratio), never 0 or 100.

Failure modes:
    - UnknownCalculationVersionError when a version has no formulas.
    - UnknownFormulaError when the name is not registered for the version.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from decimal import Decimal

from campaign_kernel.exceptions import (
    DuplicateFormulaError,
    UnknownCalculationVersionError,
    UnknownFormulaError,
)

FormulaFn = Callable[..., Decimal | None]

CALCULATION_VERSION_1_0_0 = "1.0.0"
CURRENT_CALCULATION_VERSION = CALCULATION_VERSION_1_0_0

HUNDRED = Decimal("100")
THOUSAND = Decimal("1000")
ONE = Decimal("1")


@dataclass(frozen=True)
class FormulaDefinition:
    """A registered formula.

    ``arity`` is the exact operand count, or ``None`` for variadic formulas
    (aggregations over any number of operands).
    """

    name: str
    version: str
    expression: str
    arity: int | None
    fn: FormulaFn

    def evaluate(self, operands: tuple[Decimal, ...]) -> Decimal | None:
        return self.fn(*operands)


class FormulaRegistry:
    """
    Registry mapping ``(name, version)`` to FormulaDefinition.

    Contract:
        - ``register()`` adds a formula; raises DuplicateFormulaError on a
          repeated key.
        - ``get()`` retrieves by name and version.
        - ``versions()`` lists every version with at least one formula.
    """

    def __init__(self, definitions: Iterable[FormulaDefinition] = ()) -> None:
        self._formulas: dict[tuple[str, str], FormulaDefinition] = {}
        for definition in definitions:
            self.register(definition)

    def register(self, definition: FormulaDefinition) -> None:
        key = (definition.name, definition.version)
        if key in self._formulas:
            raise DuplicateFormulaError(definition.name, definition.version)
        self._formulas[key] = definition

    def formula(
        self,
        name: str,
        version: str,
        expression: str,
        arity: int | None,
    ) -> Callable[[FormulaFn], FormulaFn]:
        """Decorator form of ``register()``."""

        def decorator(fn: FormulaFn) -> FormulaFn:
            self.register(FormulaDefinition(name, version, expression, arity, fn))
            return fn

        return decorator

    def get(self, name: str, version: str) -> FormulaDefinition:
        try:
            return self._formulas[(name, version)]
        except KeyError:
            if not self.has_version(version):
                raise UnknownCalculationVersionError(version, self.versions()) from None
            raise UnknownFormulaError(name, version) from None

    def has_version(self, version: str) -> bool:
        return any(v == version for _, v in self._formulas)

    def versions(self) -> tuple[str, ...]:
        return tuple(sorted({v for _, v in self._formulas}))

    def names(self, version: str) -> tuple[str, ...]:
        return tuple(sorted(n for n, v in self._formulas if v == version))

    def copy(self) -> FormulaRegistry:
        return FormulaRegistry(self._formulas.values())

    def __len__(self) -> int:
        return len(self._formulas)

    def __contains__(self, key: tuple[str, str]) -> bool:
        return key in self._formulas


# ---------------------------------------------------------------------------
# Formula set 1.0.0
# ---------------------------------------------------------------------------

_V1 = FormulaRegistry()
_v1 = CALCULATION_VERSION_1_0_0


def _ratio(numerator: Decimal, denominator: Decimal) -> Decimal | None:
    if denominator == 0:
        return None
    return numerator / denominator


@_V1.formula("margin_amount", _v1, "revenue - cost", 2)
def margin_amount(revenue: Decimal, cost: Decimal) -> Decimal:
    return revenue - cost


@_V1.formula("margin_percentage", _v1, "((revenue - cost) / revenue) * 100", 2)
def margin_percentage(revenue: Decimal, cost: Decimal) -> Decimal | None:
    ratio = _ratio(revenue - cost, revenue)
    return None if ratio is None else ratio * HUNDRED


@_V1.formula("profit_amount", _v1, "revenue - cost", 2)
def profit_amount(revenue: Decimal, cost: Decimal) -> Decimal:
    return revenue - cost


@_V1.formula("markup_amount", _v1, "cost * (markup_rate / 100)", 2)
def markup_amount(cost: Decimal, markup_rate: Decimal) -> Decimal:
    return cost * (markup_rate / HUNDRED)


@_V1.formula("actual_unit_cost", _v1, "spend / units", 2)
def actual_unit_cost(spend: Decimal, units: Decimal) -> Decimal | None:
    return _ratio(spend, units)


@_V1.formula("cpm", _v1, "(spend / impressions) * 1000", 2)
def cpm(spend: Decimal, impressions: Decimal) -> Decimal | None:
    ratio = _ratio(spend, impressions)
    return None if ratio is None else ratio * THOUSAND


@_V1.formula("cpc", _v1, "spend / clicks", 2)
def cpc(spend: Decimal, clicks: Decimal) -> Decimal | None:
    return _ratio(spend, clicks)


@_V1.formula("spend_percentage", _v1, "(actual / target) * 100", 2)
def spend_percentage(actual: Decimal, target: Decimal) -> Decimal | None:
    ratio = _ratio(actual, target)
    return None if ratio is None else ratio * HUNDRED


@_V1.formula("remaining_amount", _v1, "target - actual", 2)
def remaining_amount(target: Decimal, actual: Decimal) -> Decimal:
    return target - actual


@_V1.formula("remaining_percentage", _v1, "((target - actual) / target) * 100", 2)
def remaining_percentage(target: Decimal, actual: Decimal) -> Decimal | None:
    ratio = _ratio(target - actual, target)
    return None if ratio is None else ratio * HUNDRED


@_V1.formula(
    "expected_to_date", _v1, "target * (elapsed_days / total_days)", 3
)
def expected_to_date(
    target: Decimal, elapsed_days: Decimal, total_days: Decimal
) -> Decimal | None:
    ratio = _ratio(elapsed_days, total_days)
    return None if ratio is None else target * ratio


@_V1.formula(
    "pacing_percentage", _v1, "(actual_to_date / expected_to_date) * 100", 2
)
def pacing_percentage(actual_to_date: Decimal, expected: Decimal) -> Decimal | None:
    ratio = _ratio(actual_to_date, expected)
    return None if ratio is None else ratio * HUNDRED


@_V1.formula("schedule_percentage", _v1, "(days / total_days) * 100", 2)
def schedule_percentage(days: Decimal, total_days: Decimal) -> Decimal | None:
    ratio = _ratio(days, total_days)
    return None if ratio is None else ratio * HUNDRED


@_V1.formula("net_revenue", _v1, "price * (1 - referral_rate / 100)", 2)
def net_revenue(price: Decimal, referral_rate: Decimal) -> Decimal:
    return price * (ONE - referral_rate / HUNDRED)


@_V1.formula(
    "media_budget", _v1, "net_revenue / (1 + agency_markup_rate / 100)", 2
)
def media_budget(net: Decimal, agency_markup_rate: Decimal) -> Decimal | None:
    return _ratio(net, ONE + agency_markup_rate / HUNDRED)


@_V1.formula("aggregate_plan_cost", _v1, "sum(plan.budget)", None)
def aggregate_plan_cost(*budgets: Decimal) -> Decimal:
    return sum(budgets, Decimal("0"))


@_V1.formula("aggregate_plan_units", _v1, "sum(plan.planned_units)", None)
def aggregate_plan_units(*units: Decimal) -> Decimal:
    return sum(units, Decimal("0"))


def default_registry() -> FormulaRegistry:
    """A fresh registry holding every built-in formula version."""
    return _V1.copy()
