"""
YAML loader for engine configuration.

Parses ``engine.yaml`` into the frozen schema types, validates the result
and computes a SHA-256 checksum over the canonical JSON form of the source.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from campaign_config.schema import (
    BatchConfig,
    EngineConfiguration,
    OverrideDef,
    PolicyDef,
    PrecisionConfig,
)
from campaign_engines.formulas import default_registry
from campaign_engines.precision import PrecisionContext, RoundingMode
from campaign_kernel.exceptions import InvalidRoundingModeError


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization (sorted keys)."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def parse_policy(name: str, data: dict[str, Any]) -> PolicyDef:
    return PolicyDef(
        name=name,
        decimal_places=int(data["decimal_places"]),
        rounding_mode=str(data.get("rounding_mode", "half_up")),
    )


def parse_override(data: dict[str, Any]) -> OverrideDef:
    return OverrideDef(
        context=str(data["context"]).lower(),
        policy=str(data["policy"]),
        platform=data.get("platform"),
        unit_type=data.get("unit_type"),
    )


def parse_precision(data: dict[str, Any]) -> PrecisionConfig:
    global_default = parse_policy(
        "GLOBAL_DEFAULT",
        data.get("global_default") or {"decimal_places": 2, "rounding_mode": "half_up"},
    )
    policies = tuple(
        parse_policy(name, spec) for name, spec in (data.get("policies") or {}).items()
    )
    contexts = tuple(
        (str(ctx).lower(), str(name)) for ctx, name in (data.get("contexts") or {}).items()
    )
    overrides = tuple(parse_override(o) for o in data.get("overrides") or ())
    return PrecisionConfig(
        global_default=global_default,
        policies=policies,
        contexts=contexts,
        overrides=overrides,
    )


def parse_batch(data: dict[str, Any]) -> BatchConfig:
    return BatchConfig(
        batch_size=int(data.get("batch_size", 100)),
        max_workers=int(data.get("max_workers", 1)),
    )


def parse_configuration(data: dict[str, Any], source_path: Path | None = None) -> EngineConfiguration:
    if "calculation_version" not in data:
        raise ValueError("Configuration is missing 'calculation_version'")
    return EngineConfiguration(
        config_id=str(data.get("config_id", "campaign-engine")),
        calculation_version=str(data["calculation_version"]),
        batch=parse_batch(data.get("batch") or {}),
        precision=parse_precision(data.get("precision") or {}),
        checksum=compute_checksum(data),
        source_path=source_path,
    )


def validate_configuration(
    config: EngineConfiguration,
    registered_versions: tuple[str, ...] | None = None,
) -> list[str]:
    """Return every problem found in ``config`` (empty when valid)."""
    errors: list[str] = []
    versions = registered_versions if registered_versions is not None else default_registry().versions()
    if config.calculation_version not in versions:
        errors.append(
            f"calculation_version '{config.calculation_version}' is not registered "
            f"(available: {', '.join(versions)})"
        )

    if config.batch.batch_size < 1:
        errors.append(f"batch.batch_size must be >= 1, got {config.batch.batch_size}")
    if config.batch.max_workers < 1:
        errors.append(f"batch.max_workers must be >= 1, got {config.batch.max_workers}")

    precision = config.precision
    for policy in (precision.global_default, *precision.policies):
        if policy.decimal_places < 0:
            errors.append(f"policy {policy.name}: decimal_places must be >= 0")
        try:
            RoundingMode.parse(policy.rounding_mode)
        except InvalidRoundingModeError:
            errors.append(f"policy {policy.name}: unknown rounding_mode '{policy.rounding_mode}'")

    known_contexts = {c.value for c in PrecisionContext}
    for ctx, name in precision.contexts:
        if ctx not in known_contexts:
            errors.append(f"contexts: unknown context '{ctx}'")
        if precision.policy(name) is None:
            errors.append(f"contexts.{ctx}: unknown policy '{name}'")

    for override in precision.overrides:
        if override.context not in known_contexts:
            errors.append(f"overrides: unknown context '{override.context}'")
        if precision.policy(override.policy) is None:
            errors.append(f"overrides: unknown policy '{override.policy}'")
        if not override.platform and not override.unit_type:
            errors.append("overrides: each override needs a platform or a unit_type")

    return errors


def load_configuration(path: Path) -> EngineConfiguration:
    """Load and parse (but do not validate) the configuration at ``path``."""
    return parse_configuration(load_yaml_file(path), source_path=path)
