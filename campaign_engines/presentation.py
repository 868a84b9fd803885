"""
campaign_engines.presentation -- Display and storage shaping of derived values.

Responsibility:
    Format unit prices and unit costs for people (CPM, CPC, CPV ...), shape
    storage values at six places, and compare amounts within a tolerance.

Architecture position:
    Engines -- pure, zero I/O.  Sits on top of CalculationEngine; nothing in
    the engines layer depends on it.

Invariants enforced:
    - Display strings always show exactly the resolved number of places.
    - Storage values are always six places.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any

from campaign_engines.calculation import CalculationEngine
from campaign_engines.precision import PrecisionContext
from campaign_kernel.domain.decimals import decimal_to_str, quantize, to_decimal

DEFAULT_TOLERANCE = Decimal("0.01")

# unit type -> (display unit, multiplier for the display price)
_UNIT_DISPLAY: dict[str, tuple[str, Decimal]] = {
    "impressions": ("CPM", Decimal("1000")),
    "impression": ("CPM", Decimal("1000")),
    "clicks": ("CPC", Decimal("1")),
    "click": ("CPC", Decimal("1")),
    "views": ("CPV", Decimal("1")),
    "view": ("CPV", Decimal("1")),
    "video_views": ("CPV", Decimal("1")),
    "conversions": ("CPA", Decimal("1")),
    "conversion": ("CPA", Decimal("1")),
    "engagements": ("CPE", Decimal("1")),
    "engagement": ("CPE", Decimal("1")),
}

_PRODUCT_TYPES: dict[str, str] = {
    "views": "cpv",
    "view": "cpv",
    "clicks": "cpc",
    "click": "cpc",
    "impressions": "cpm",
    "impression": "cpm",
}


@dataclass(frozen=True)
class PricingDisplay:
    unit_price: str
    display_price: str
    display_format: str
    display_unit: str


@dataclass(frozen=True)
class DisplayValue:
    value: str
    display_text: str
    calculation_version: str
    precision: int
    product_type: str


@dataclass(frozen=True)
class StorageValue:
    value: Decimal
    string_value: str
    calculation_version: str
    calculated_at: datetime


def infer_product_type(unit_type: str | None) -> str:
    """Pricing model implied by a unit type (cpv, cpc, cpm or unknown)."""
    if not unit_type:
        return "unknown"
    return _PRODUCT_TYPES.get(unit_type.strip().lower(), "unknown")


def format_unit_price(price: Any, unit_type: str) -> PricingDisplay:
    """Display form of a per-unit price; impressions are shown per thousand."""
    value = to_decimal(price)
    unit, multiplier = _UNIT_DISPLAY.get(unit_type.strip().lower(), ("Cost", Decimal("1")))
    display = decimal_to_str(quantize(value * multiplier, 2))
    display_format = f"${display}" if unit == "Cost" else f"${display} {unit}"
    return PricingDisplay(
        unit_price=decimal_to_str(quantize(value, 6)),
        display_price=display,
        display_format=display_format,
        display_unit=unit,
    )


def compare_amounts(expected: Any, actual: Any, tolerance: Any = DEFAULT_TOLERANCE) -> bool:
    """True when ``|expected - actual| <= tolerance``."""
    return abs(to_decimal(expected) - to_decimal(actual)) <= to_decimal(tolerance)


class CalculationPresenter:
    """Engine-backed display and storage shaping."""

    def __init__(self, engine: CalculationEngine) -> None:
        self._engine = engine

    def format_unit_cost(
        self,
        spend: Any,
        units: Any,
        platform: str | None = None,
        unit_type: str | None = None,
    ) -> DisplayValue | None:
        """Display unit cost; ``None`` when there are no units."""
        result = self._engine.calculate_with_precision(
            "actual_unit_cost",
            (spend, units),
            PrecisionContext.DISPLAY,
            unit_type=unit_type,
            platform=platform,
        )
        if result is None:
            return None
        product_type = infer_product_type(unit_type)
        text = f"${result.as_string()}"
        if product_type == "cpv" and (platform or "").lower() == "youtube":
            text = f"{text} CPV"
        return DisplayValue(
            value=result.as_string(),
            display_text=text,
            calculation_version=result.calculation_version,
            precision=result.decimal_places,
            product_type=product_type,
        )

    def calculate_for_storage(self, formula_name: str, *operands: Any) -> StorageValue | None:
        result = self._engine.calculate_with_precision(
            formula_name, operands, PrecisionContext.STORAGE
        )
        if result is None:
            return None
        return StorageValue(
            value=result.value,
            string_value=result.as_string(),
            calculation_version=result.calculation_version,
            calculated_at=result.calculated_at,
        )
