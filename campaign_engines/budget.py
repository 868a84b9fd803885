"""
campaign_engines.budget -- Budget tracking, flight schedule and pacing.

Responsibility:
    Derive remaining budget, spend percentage and time-based pacing for a
    target/actual pair, and the day counts of a campaign flight as of an
    injected point in time.

Architecture position:
    Engines -- pure calculation layer.  All arithmetic goes through
    CalculationEngine so every derived value carries a formula version.

Invariants enforced:
    - remaining_amount == target_amount - actual_amount (exact, before any
      rounding).
    - Pacing is indexed at 100: actual_to_date == expected_to_date gives
      exactly 100.
    - A zero target or an unstarted flight leaves the ratio fields ``None``.
    - Day counts round partial days up; elapsed days are clamped to
      [0, total_days].

Failure modes:
    - InvalidDecimalFormatError for malformed amounts.
    - ValueError from CampaignSchedule when end is not after start.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from enum import Enum
from typing import Any

from campaign_engines.calculation import CalculationEngine, PrecisionResult
from campaign_engines.precision import PrecisionContext
from campaign_kernel.domain.decimals import to_decimal

_DAY = timedelta(days=1)

AT_RISK_BELOW = Decimal("75")
BEHIND_BELOW = Decimal("90")
AHEAD_ABOVE = Decimal("110")


class PacingStatus(str, Enum):
    """Pacing band of a campaign, from its pacing percentage."""

    AT_RISK = "at_risk"
    BEHIND = "behind"
    ON_TRACK = "on_track"
    AHEAD = "ahead"


def classify_pacing(pacing_percentage: Decimal) -> PacingStatus:
    if pacing_percentage < AT_RISK_BELOW:
        return PacingStatus.AT_RISK
    if pacing_percentage < BEHIND_BELOW:
        return PacingStatus.BEHIND
    if pacing_percentage > AHEAD_ABOVE:
        return PacingStatus.AHEAD
    return PacingStatus.ON_TRACK


def to_datetime(value: Any) -> datetime:
    """Parse a date, datetime or ISO string into an aware UTC datetime."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime.combine(value, time.min)
    elif isinstance(value, str):
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    else:
        raise ValueError(f"Not a date: {value!r}")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _ceil_days(delta: timedelta) -> int:
    return -((-delta) // _DAY)


@dataclass(frozen=True)
class CampaignSchedule:
    """Campaign flight dates."""

    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        object.__setattr__(self, "start", to_datetime(self.start))
        object.__setattr__(self, "end", to_datetime(self.end))
        if self.end <= self.start:
            raise ValueError("Campaign end date must be after start date")

    @property
    def total_days(self) -> int:
        return _ceil_days(self.end - self.start)

    def elapsed_days(self, as_of: datetime) -> int:
        if as_of < self.start:
            return 0
        return min(_ceil_days(as_of - self.start), self.total_days)

    def remaining_days(self, as_of: datetime) -> int:
        return max(0, self.total_days - self.elapsed_days(as_of))

    def has_started(self, as_of: datetime) -> bool:
        return as_of >= self.start


@dataclass(frozen=True)
class BudgetTracking:
    """Target versus actual, with spend and pacing ratios.

    Ratio fields are ``None`` when undefined (zero target, flight not
    started).  ``results`` holds the precision-narrowed engine results by
    field name, for recording.
    """

    target_amount: Decimal
    actual_amount: Decimal
    remaining_amount: Decimal
    spend_percentage: Decimal | None = None
    remaining_percentage: Decimal | None = None
    expected_to_date: Decimal | None = None
    pacing_percentage: Decimal | None = None
    pacing_status: PacingStatus | None = None
    results: dict[str, PrecisionResult] = field(default_factory=dict, compare=False)


class BudgetTracker:
    """
    Budget and pacing calculations over a CalculationEngine.

    Contract:
        ``track()`` evaluates every field through the engine and narrows
        each result under ``context``.  Pacing is evaluated only when a
        schedule and an as-of time are given and the flight has started.
    """

    def __init__(
        self,
        engine: CalculationEngine,
        context: PrecisionContext | str = PrecisionContext.STORAGE,
    ) -> None:
        self._engine = engine
        self._context = context

    def track(
        self,
        target: Any,
        actual: Any,
        schedule: CampaignSchedule | None = None,
        as_of: datetime | None = None,
    ) -> BudgetTracking:
        target_amount = to_decimal(target)
        actual_amount = to_decimal(actual)
        results: dict[str, PrecisionResult] = {}

        def narrowed(name: str, *operands: Any) -> PrecisionResult | None:
            result = self._engine.calculate_with_precision(name, operands, self._context)
            if result is not None:
                results[name] = result
            return result

        remaining = narrowed("remaining_amount", target_amount, actual_amount)
        spend = narrowed("spend_percentage", actual_amount, target_amount)
        remaining_pct = narrowed("remaining_percentage", target_amount, actual_amount)

        expected = pacing = None
        status = None
        if schedule is not None and as_of is not None and schedule.has_started(as_of):
            # Unrounded expected spend feeds the pacing ratio.
            expected_raw = self._engine.calculate(
                "expected_to_date",
                target_amount,
                schedule.elapsed_days(as_of),
                schedule.total_days,
            )
            if expected_raw is not None:
                expected = self._engine.with_precision(expected_raw, self._context)
                results["expected_to_date"] = expected
                pacing = narrowed("pacing_percentage", actual_amount, expected_raw.value)
                if pacing is not None:
                    status = classify_pacing(pacing.raw_value)

        return BudgetTracking(
            target_amount=target_amount,
            actual_amount=actual_amount,
            remaining_amount=remaining.raw_value if remaining else target_amount - actual_amount,
            spend_percentage=spend.value if spend else None,
            remaining_percentage=remaining_pct.value if remaining_pct else None,
            expected_to_date=expected.value if expected else None,
            pacing_percentage=pacing.value if pacing else None,
            pacing_status=status,
            results=results,
        )
