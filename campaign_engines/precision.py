"""
campaign_engines.precision -- Precision policy resolution and rounding.

Responsibility:
    Map a (precision context, platform, unit type) combination to a number of
    decimal places and a named rounding mode.  The policy table is immutable
    and supplied at construction; resolution is a pure lookup.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Consumed by CalculationEngine.with_precision().

Invariants enforced:
    - Resolution order is fixed: named override -> exact platform/unit ->
      unit only -> platform only -> context default -> global default.
    - Global default is 2 decimal places, half-up.
    - Applying a policy is idempotent: rounding an already-rounded value with
      the same policy returns the same value.

Failure modes:
    - UnknownPrecisionPolicyError when an override names a policy that is not
      in the table.
    - InvalidRoundingModeError when a rounding mode name is not recognised.
    - ValueError on a negative decimal_places.

Usage:
    resolver = PrecisionResolver(default_policy_table())
    policy = resolver.resolve("display", unit_type="views", platform="youtube")
    policy.decimal_places   # 3
"""

from __future__ import annotations

import decimal
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Mapping

from campaign_kernel.domain.decimals import quantize
from campaign_kernel.exceptions import (
    InvalidRoundingModeError,
    UnknownPrecisionPolicyError,
)

WILDCARD = "*"


class RoundingMode(str, Enum):
    """Named rounding modes, persisted with every calculated field."""

    HALF_UP = "half_up"
    HALF_EVEN = "half_even"
    HALF_DOWN = "half_down"
    UP = "up"
    DOWN = "down"
    CEILING = "ceiling"
    FLOOR = "floor"

    @property
    def decimal_rounding(self) -> str:
        """The ``decimal`` module constant for this mode."""
        return _DECIMAL_ROUNDING[self]

    @classmethod
    def parse(cls, name: str | RoundingMode) -> RoundingMode:
        """Parse a mode name (case-insensitive, ``ROUND_`` prefix allowed)."""
        if isinstance(name, RoundingMode):
            return name
        normalized = str(name).strip().lower()
        if normalized.startswith("round_"):
            normalized = normalized[len("round_"):]
        try:
            return cls(normalized)
        except ValueError:
            raise InvalidRoundingModeError(str(name)) from None


_DECIMAL_ROUNDING: dict[RoundingMode, str] = {
    RoundingMode.HALF_UP: decimal.ROUND_HALF_UP,
    RoundingMode.HALF_EVEN: decimal.ROUND_HALF_EVEN,
    RoundingMode.HALF_DOWN: decimal.ROUND_HALF_DOWN,
    RoundingMode.UP: decimal.ROUND_UP,
    RoundingMode.DOWN: decimal.ROUND_DOWN,
    RoundingMode.CEILING: decimal.ROUND_CEILING,
    RoundingMode.FLOOR: decimal.ROUND_FLOOR,
}


class PrecisionContext(str, Enum):
    """Intended use of a value."""

    STORAGE = "storage"
    DISPLAY = "display"
    API = "api"


@dataclass(frozen=True)
class PrecisionPolicy:
    """Decimal places plus rounding mode."""

    decimal_places: int
    rounding_mode: RoundingMode = RoundingMode.HALF_UP
    name: str | None = None

    def __post_init__(self) -> None:
        if self.decimal_places < 0:
            raise ValueError(
                f"decimal_places must be >= 0, got {self.decimal_places}"
            )
        object.__setattr__(self, "rounding_mode", RoundingMode.parse(self.rounding_mode))

    def apply(self, value: Decimal) -> Decimal:
        """Quantize ``value`` under this policy."""
        return quantize(value, self.decimal_places, self.rounding_mode.decimal_rounding)


@dataclass(frozen=True)
class PolicyResolution:
    """A resolved policy and the rule that selected it."""

    policy: PrecisionPolicy
    applied_rule: str


GLOBAL_DEFAULT_POLICY = PrecisionPolicy(2, RoundingMode.HALF_UP, name="GLOBAL_DEFAULT")

# Named policies from the platform's decimal-handling rules.
STORAGE = PrecisionPolicy(6, RoundingMode.HALF_UP, name="STORAGE")
DISPLAY_DOLLARS = PrecisionPolicy(2, RoundingMode.HALF_UP, name="DISPLAY_DOLLARS")
DISPLAY_SUBCENT = PrecisionPolicy(3, RoundingMode.HALF_UP, name="DISPLAY_SUBCENT")
UNIT_COST = PrecisionPolicy(4, RoundingMode.HALF_UP, name="UNIT_COST")
PERCENTAGE = PrecisionPolicy(2, RoundingMode.HALF_UP, name="PERCENTAGE")
CPM = PrecisionPolicy(2, RoundingMode.HALF_UP, name="CPM")


def qualifier(platform: str | None, unit_type: str | None) -> str:
    """Override-table qualifier: ``platform/unit``, with ``*`` for a missing side."""
    p = (platform or WILDCARD).strip().lower()
    u = (unit_type or WILDCARD).strip().lower()
    return f"{p}/{u}"


def _context_key(context: PrecisionContext | str) -> str:
    if isinstance(context, PrecisionContext):
        return context.value
    return str(context).strip().lower()


class PrecisionPolicyTable:
    """
    Immutable precision policy table.

    Contract:
        - ``context_defaults``: context name -> policy.
        - ``overrides``: (context name, qualifier) -> policy, where the
          qualifier is ``platform/unit``, ``*/unit`` or ``platform/*``.
        - ``named_policies``: policy name -> policy, usable as explicit
          overrides.
    """

    def __init__(
        self,
        context_defaults: Mapping[str, PrecisionPolicy],
        overrides: Mapping[tuple[str, str], PrecisionPolicy] | None = None,
        named_policies: Mapping[str, PrecisionPolicy] | None = None,
        global_default: PrecisionPolicy = GLOBAL_DEFAULT_POLICY,
    ) -> None:
        self._context_defaults = MappingProxyType(
            {_context_key(k): v for k, v in context_defaults.items()}
        )
        self._overrides = MappingProxyType(
            {(_context_key(c), q.lower()): v for (c, q), v in (overrides or {}).items()}
        )
        self._named = MappingProxyType(dict(named_policies or {}))
        self._global_default = global_default

    @property
    def context_defaults(self) -> Mapping[str, PrecisionPolicy]:
        return self._context_defaults

    @property
    def overrides(self) -> Mapping[tuple[str, str], PrecisionPolicy]:
        return self._overrides

    @property
    def named_policies(self) -> Mapping[str, PrecisionPolicy]:
        return self._named

    @property
    def global_default(self) -> PrecisionPolicy:
        return self._global_default

    def named(self, name: str) -> PrecisionPolicy:
        try:
            return self._named[name]
        except KeyError:
            raise UnknownPrecisionPolicyError(name) from None


def default_policy_table() -> PrecisionPolicyTable:
    """Policy table matching the platform's built-in rounding rules."""
    named = {
        p.name: p
        for p in (STORAGE, DISPLAY_DOLLARS, DISPLAY_SUBCENT, UNIT_COST, PERCENTAGE, CPM)
    }
    facebook_video = PrecisionPolicy(4, RoundingMode.HALF_UP, name="facebook_video_custom")
    overrides: dict[tuple[str, str], PrecisionPolicy] = {}
    for ctx in (PrecisionContext.DISPLAY, PrecisionContext.API):
        overrides[(ctx.value, "youtube/views")] = DISPLAY_SUBCENT
        overrides[(ctx.value, "facebook/video")] = facebook_video
    return PrecisionPolicyTable(
        context_defaults={
            PrecisionContext.STORAGE.value: STORAGE,
            PrecisionContext.DISPLAY.value: DISPLAY_DOLLARS,
            PrecisionContext.API.value: DISPLAY_DOLLARS,
        },
        overrides=overrides,
        named_policies=named,
    )


class PrecisionResolver:
    """
    Pure lookup over a PrecisionPolicyTable.

    Contract:
        No I/O, no mutable state; safe to share across threads.
    Guarantees:
        - ``resolve()`` always returns a policy (falls back to the global
          default for unknown contexts).
    """

    def __init__(self, table: PrecisionPolicyTable | None = None) -> None:
        self._table = table or default_policy_table()

    @property
    def table(self) -> PrecisionPolicyTable:
        return self._table

    def resolve(
        self,
        context: PrecisionContext | str,
        unit_type: str | None = None,
        platform: str | None = None,
        override: str | None = None,
    ) -> PrecisionPolicy:
        """Return the policy for this context / platform / unit type."""
        return self.resolve_rule(context, unit_type, platform, override).policy

    def resolve_rule(
        self,
        context: PrecisionContext | str,
        unit_type: str | None = None,
        platform: str | None = None,
        override: str | None = None,
    ) -> PolicyResolution:
        """Like ``resolve()`` but also names the rule that matched."""
        if override is not None:
            return PolicyResolution(self._table.named(override), "override")

        ctx = _context_key(context)
        overrides = self._table.overrides

        candidates: list[tuple[str, str]] = []
        if platform and unit_type:
            candidates.append((qualifier(platform, unit_type), "platform_unit"))
        if unit_type:
            candidates.append((qualifier(None, unit_type), "unit_type"))
        if platform:
            candidates.append((qualifier(platform, None), "platform"))

        for key, rule in candidates:
            policy = overrides.get((ctx, key))
            if policy is not None:
                return PolicyResolution(policy, rule)

        default = self._table.context_defaults.get(ctx)
        if default is not None:
            return PolicyResolution(default, "context_default")
        return PolicyResolution(self._table.global_default, "global_default")
