"""
campaign_config -- single public entrypoint for engine configuration.

Responsibility:
    Provides the ONLY way to obtain engine configuration at runtime through
    ``get_active_config()``.  Returns a frozen ``EngineConfiguration``
    holding the calculation version, batch settings and precision policies.

Architecture position:
    Configuration -- sits above ``campaign_kernel`` and ``campaign_engines``
    and below ``campaign_services``.  Neither the kernel nor the engines
    import from this package; ``bridges`` translates configuration into
    engine collaborators.

Invariants enforced:
    - Single entrypoint: all runtime config flows through ``get_active_config()``.
    - The returned configuration has passed validation.
    - Deterministic checksum: the same YAML always produces the same checksum.

Failure modes:
    - ``FileNotFoundError`` -- the configuration file does not exist.
    - ``ValueError`` -- schema or structural validation failures.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``CAMPAIGN_CONFIG_TRACE`` log entry with the config id, calculation
    version, checksum and policy count.
"""

from __future__ import annotations

import logging
from pathlib import Path

from campaign_config.loader import load_configuration, validate_configuration
from campaign_config.schema import EngineConfiguration

_logger = logging.getLogger("campaign_kernel.config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults" / "engine.yaml"


def get_active_config(config_path: Path | str | None = None) -> EngineConfiguration:
    """The ONLY public configuration entrypoint.

    Args:
        config_path: Override path to an engine YAML file.  Defaults to
            ``campaign_config/defaults/engine.yaml``.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If configuration validation fails.
    """
    path = Path(config_path) if config_path is not None else DEFAULT_CONFIG_PATH
    config = load_configuration(path)

    errors = validate_configuration(config)
    if errors:
        raise ValueError(
            "Configuration validation failed:\n"
            + "\n".join(f"  - {e}" for e in errors)
        )

    _logger.info(
        "CAMPAIGN_CONFIG_TRACE",
        extra={
            "trace_type": "CAMPAIGN_CONFIG_TRACE",
            "config_id": config.config_id,
            "calculation_version": config.calculation_version,
            "checksum": config.checksum,
            "policy_count": len(config.precision.policies),
            "override_count": len(config.precision.overrides),
            "source_path": str(path),
        },
    )
    return config


__all__ = ["DEFAULT_CONFIG_PATH", "EngineConfiguration", "get_active_config"]
