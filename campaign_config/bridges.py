"""
Config -> Engine Bridges.

Functions that convert an EngineConfiguration into engine collaborators.
They live in campaign_config (the producer) because the engines must never
import campaign_config.

Usage:
    from campaign_config import get_active_config
    from campaign_config.bridges import build_engine

    engine = build_engine(get_active_config(), clock)
"""

from __future__ import annotations

from campaign_config.schema import EngineConfiguration, PolicyDef
from campaign_engines.calculation import CalculationEngine
from campaign_engines.formulas import FormulaRegistry
from campaign_engines.precision import (
    PrecisionPolicy,
    PrecisionPolicyTable,
    PrecisionResolver,
    RoundingMode,
    qualifier,
)
from campaign_kernel.domain.clock import Clock
from campaign_kernel.exceptions import UnknownPrecisionPolicyError


def _to_policy(definition: PolicyDef) -> PrecisionPolicy:
    return PrecisionPolicy(
        decimal_places=definition.decimal_places,
        rounding_mode=RoundingMode.parse(definition.rounding_mode),
        name=definition.name,
    )


def build_policy_table(config: EngineConfiguration) -> PrecisionPolicyTable:
    """Precision policy table described by ``config``."""
    precision = config.precision
    named = {p.name: _to_policy(p) for p in precision.policies}

    def lookup(name: str) -> PrecisionPolicy:
        try:
            return named[name]
        except KeyError:
            raise UnknownPrecisionPolicyError(name) from None

    return PrecisionPolicyTable(
        context_defaults={ctx: lookup(name) for ctx, name in precision.contexts},
        overrides={
            (o.context, qualifier(o.platform, o.unit_type)): lookup(o.policy)
            for o in precision.overrides
        },
        named_policies=named,
        global_default=_to_policy(precision.global_default),
    )


def build_engine(
    config: EngineConfiguration,
    clock: Clock | None = None,
    registry: FormulaRegistry | None = None,
) -> CalculationEngine:
    """CalculationEngine pinned to the configured version and policies."""
    return CalculationEngine(
        version=config.calculation_version,
        registry=registry,
        resolver=PrecisionResolver(build_policy_table(config)),
        clock=clock,
    )
