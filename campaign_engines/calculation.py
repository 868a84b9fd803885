"""
campaign_engines.calculation -- Versioned, precision-aware calculation engine.

Responsibility:
    Evaluate registered formulas over exact-decimal operands and narrow the
    results to a precision context.  Each engine instance is pinned to one
    calculation version; every result is stamped with that version, the
    formula text and a clock-injected timestamp.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Consumed by the bulk orchestrator (via a record calculator) and by
    CampaignService.

Invariants enforced:
    - Identical (formula_name, operands, version) always produce an
      identical value.  Arithmetic runs in a fixed decimal context, so the
      caller's thread-local context has no effect.
    - Operands are Decimal, int or decimal strings.  Floats are rejected.
    - An undefined ratio yields ``None``; the engine never substitutes 0
      or 100.
    - The active version is a constructor argument.  There is no
      process-wide current version.

Failure modes:
    - InvalidDecimalFormatError for a malformed, non-finite or float operand.
    - FormulaArityError for an operand count mismatch.
    - UnknownFormulaError / UnknownCalculationVersionError for registry
      misses (configuration errors, never recovered per item).

Audit relevance:
    Every ``calculate()`` and ``with_precision()`` call emits a
    CAMPAIGN_ENGINE_TRACE record with an input fingerprint.  The
    (formula, version) pair on each result lets a stored value be traced
    back to the exact arithmetic that produced it.

Usage:
    engine = CalculationEngine()
    result = engine.calculate("spend_percentage", "4000.00", "10000.00")
    stored = engine.with_precision(result, PrecisionContext.STORAGE)
    str(stored.value)   # "40.000000"
"""

from __future__ import annotations

import decimal
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any

from campaign_engines.formulas import (
    CURRENT_CALCULATION_VERSION,
    FormulaRegistry,
    default_registry,
)
from campaign_engines.precision import (
    PrecisionContext,
    PrecisionResolver,
    RoundingMode,
)
from campaign_engines.tracer import traced_engine
from campaign_kernel.domain.clock import Clock, SystemClock
from campaign_kernel.domain.decimals import decimal_to_str, to_decimal
from campaign_kernel.exceptions import (
    FormulaArityError,
    UnknownCalculationVersionError,
)
from campaign_kernel.logging_config import get_logger

logger = get_logger("engines.calculation")

# Fixed arithmetic context; precision well above the 6 storage places.
_ARITHMETIC = decimal.Context(prec=28, rounding=decimal.ROUND_HALF_EVEN)


@dataclass(frozen=True)
class CalculationResult:
    """Unrounded result of one formula evaluation."""

    value: Decimal
    formula: str
    formula_name: str
    calculation_version: str
    calculated_at: datetime


@dataclass(frozen=True)
class PrecisionResult:
    """A CalculationResult narrowed to a precision context."""

    value: Decimal
    raw_value: Decimal
    formula: str
    formula_name: str
    calculation_version: str
    calculated_at: datetime
    context: PrecisionContext | str
    decimal_places: int
    rounding_mode: RoundingMode
    applied_rule: str
    platform: str | None = None
    unit_type: str | None = None

    def as_string(self) -> str:
        """Fixed-point string with exactly ``decimal_places`` digits."""
        return decimal_to_str(self.value)


class CalculationEngine:
    """
    Stateless formula evaluator pinned to one calculation version.

    Contract:
        ``calculate()`` returns a CalculationResult or ``None`` when the
        formula is undefined for the operands.  ``with_precision()``
        narrows a result to the resolved policy.

    Guarantees:
        - Thread-safe: holds only immutable collaborators.
        - Results never mutate; narrowing returns a new object.

    Non-goals:
        - Does NOT persist anything.
        - Does NOT recompute stored values on a version change.
    """

    def __init__(
        self,
        version: str = CURRENT_CALCULATION_VERSION,
        registry: FormulaRegistry | None = None,
        resolver: PrecisionResolver | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._registry = registry or default_registry()
        if not self._registry.has_version(version):
            raise UnknownCalculationVersionError(version, self._registry.versions())
        self._version = version
        self._resolver = resolver or PrecisionResolver()
        self._clock = clock or SystemClock()

    @property
    def version(self) -> str:
        return self._version

    @property
    def registry(self) -> FormulaRegistry:
        return self._registry

    @property
    def resolver(self) -> PrecisionResolver:
        return self._resolver

    @property
    def clock(self) -> Clock:
        return self._clock

    def get_version(self) -> dict[str, str]:
        return {"version": self._version}

    def for_version(self, version: str) -> CalculationEngine:
        """Engine sharing this engine's collaborators, pinned to ``version``."""
        return CalculationEngine(version, self._registry, self._resolver, self._clock)

    @traced_engine("calculation", fingerprint_fields=("formula_name", "operands"))
    def calculate(self, formula_name: str, *operands: Any) -> CalculationResult | None:
        definition = self._registry.get(formula_name, self._version)
        if definition.arity is not None and len(operands) != definition.arity:
            raise FormulaArityError(formula_name, definition.arity, len(operands))

        values = tuple(to_decimal(op) for op in operands)
        with decimal.localcontext(_ARITHMETIC):
            value = definition.evaluate(values)

        if value is None:
            logger.debug(
                "calculation_undefined",
                extra={
                    "formula_name": formula_name,
                    "calculation_version": self._version,
                },
            )
            return None

        return CalculationResult(
            value=value,
            formula=definition.expression,
            formula_name=formula_name,
            calculation_version=self._version,
            calculated_at=self._clock.now(),
        )

    @traced_engine(
        "precision",
        fingerprint_fields=("context", "unit_type", "platform", "override"),
    )
    def with_precision(
        self,
        result: CalculationResult | PrecisionResult,
        context: PrecisionContext | str,
        unit_type: str | None = None,
        platform: str | None = None,
        override: str | None = None,
    ) -> PrecisionResult:
        resolution = self._resolver.resolve_rule(context, unit_type, platform, override)
        policy = resolution.policy
        raw = result.raw_value if isinstance(result, PrecisionResult) else result.value
        return PrecisionResult(
            value=policy.apply(raw),
            raw_value=raw,
            formula=result.formula,
            formula_name=result.formula_name,
            calculation_version=result.calculation_version,
            calculated_at=result.calculated_at,
            context=_normalize_context(context),
            decimal_places=policy.decimal_places,
            rounding_mode=policy.rounding_mode,
            applied_rule=resolution.applied_rule,
            platform=platform,
            unit_type=unit_type,
        )

    def calculate_with_precision(
        self,
        formula_name: str,
        operands: tuple[Any, ...],
        context: PrecisionContext | str,
        unit_type: str | None = None,
        platform: str | None = None,
        override: str | None = None,
    ) -> PrecisionResult | None:
        """``calculate()`` then ``with_precision()``; ``None`` when undefined."""
        result = self.calculate(formula_name, *operands)
        if result is None:
            return None
        return self.with_precision(result, context, unit_type, platform, override)


def _normalize_context(context: PrecisionContext | str) -> PrecisionContext | str:
    if isinstance(context, PrecisionContext):
        return context
    try:
        return PrecisionContext(str(context).strip().lower())
    except ValueError:
        return str(context)
