"""
Engine configuration schema.

Frozen dataclasses the loader parses ``engine.yaml`` into.  Nothing here
reads files or builds runtime objects; see ``campaign_config.bridges`` for
the translation into engine collaborators.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

# ---------------------------------------------------------------------------
# Precision
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PolicyDef:
    """A named precision policy."""

    name: str
    decimal_places: int
    rounding_mode: str = "half_up"


@dataclass(frozen=True)
class OverrideDef:
    """Context override for a platform and/or unit type."""

    context: str
    policy: str
    platform: str | None = None
    unit_type: str | None = None


@dataclass(frozen=True)
class PrecisionConfig:
    global_default: PolicyDef
    policies: tuple[PolicyDef, ...]
    contexts: tuple[tuple[str, str], ...]  # (context, policy name)
    overrides: tuple[OverrideDef, ...] = ()

    def policy(self, name: str) -> PolicyDef | None:
        for p in self.policies:
            if p.name == name:
                return p
        return None


# ---------------------------------------------------------------------------
# Batch
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BatchConfig:
    batch_size: int = 100
    max_workers: int = 1


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EngineConfiguration:
    """Validated engine configuration (the sole runtime config artifact)."""

    config_id: str
    calculation_version: str
    batch: BatchConfig
    precision: PrecisionConfig
    checksum: str
    source_path: Path | None = None
