"""
campaign_services.campaign_service -- Campaign write façade.

Responsibility:
    The single entry point for campaign writes.  Validates, calculates and
    records derived fields, then persists through the storage port, for
    single records and in bulk.

Architecture position:
    Services -- composes campaign_engines (calculation, recording),
    campaign_batch (bulk orchestration, storage port) and campaign_config
    (engine configuration).

Invariants enforced:
    - Every write path that derives values carries calculated fields and
      appends their history entries.
    - The calculation version is the injected engine's version.  Stored
      values are only recomputed by ``recalculate_campaigns()``.
    - Bulk calls never raise for bad items; single-record writes raise
      RecordValidationError.

Failure modes:
    - RecordValidationError from ``create_campaign`` / ``update_campaign``.
    - CalculationError for malformed amounts on single-record writes.
    - PersistenceError subclasses from the storage port.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Any, Sequence

from campaign_batch.domain.ops import by_id
from campaign_batch.domain.types import BulkOptions, BulkResult
from campaign_batch.orchestrator import DEFAULT_BATCH_SIZE, BulkOrchestrator
from campaign_batch.ports import StoragePort
from campaign_config import get_active_config
from campaign_config.bridges import build_engine
from campaign_config.schema import EngineConfiguration
from campaign_engines.calculation import CalculationEngine
from campaign_engines.recorder import CalculatedFieldRecorder, CalculatedFields
from campaign_kernel.domain.clock import Clock, SystemClock
from campaign_kernel.exceptions import RecordValidationError
from campaign_kernel.logging_config import get_logger
from campaign_services.campaign_calculations import CampaignCalculator
from campaign_services.validation import validate_campaign

logger = get_logger("services.campaign")

ENTITY_TYPE = "campaign"
NATURAL_KEY_FIELD = "campaign_number"

# Keys a caller may not set directly.
_DERIVED_KEYS = ("calculation_history",)


def _validate_partial(item: dict[str, Any]) -> list[str]:
    return validate_campaign(item, partial=True)


class CampaignService:
    """
    Campaign create / update / bulk / recalculation.

    Contract:
        Collaborators are injected.  Use ``from_config()`` to build one from
        the active engine configuration.

    Non-goals:
        - Does NOT commit; the store's session owner does.
        - Does NOT recompute stored values on an engine version change
          unless asked through ``recalculate_campaigns()``.
    """

    def __init__(
        self,
        store: StoragePort,
        engine: CalculationEngine,
        recorder: CalculatedFieldRecorder | None = None,
        clock: Clock | None = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
        max_workers: int = 1,
    ) -> None:
        self._store = store
        self._engine = engine
        self._clock = clock or SystemClock()
        self._calculator = CampaignCalculator(engine, recorder, self._clock)

        common = dict(
            store=store,
            engine=engine,
            calculator=self._calculator,
            natural_key_field=NATURAL_KEY_FIELD,
            batch_size=batch_size,
            max_workers=max_workers,
            clock=self._clock,
            entity_type=ENTITY_TYPE,
        )
        self._full = BulkOrchestrator(validator=validate_campaign, **common)
        self._partial = BulkOrchestrator(validator=_validate_partial, **common)

    @classmethod
    def from_config(
        cls,
        store: StoragePort,
        config: EngineConfiguration | None = None,
        clock: Clock | None = None,
    ) -> CampaignService:
        """Build a service from ``config`` (default: the active configuration)."""
        config = config or get_active_config()
        clock = clock or SystemClock()
        return cls(
            store=store,
            engine=build_engine(config, clock),
            clock=clock,
            batch_size=config.batch.batch_size,
            max_workers=config.batch.max_workers,
        )

    @property
    def engine(self) -> CalculationEngine:
        return self._engine

    # -------------------------------------------------------------------------
    # Calculation
    # -------------------------------------------------------------------------

    def calculate_fields(self, data: dict[str, Any]) -> tuple[dict[str, Any], CalculatedFields]:
        """Derived document and its calculated fields, without persisting."""
        return self._calculator.calculate(data)

    # -------------------------------------------------------------------------
    # Single-record writes
    # -------------------------------------------------------------------------

    def create_campaign(self, data: dict[str, Any]) -> dict[str, Any]:
        issues = validate_campaign(data)
        if issues:
            raise RecordValidationError(issues)

        record = self._calculator(self._strip(data), self._engine)
        document = dict(record.document)
        document["calculation_history"] = list(record.history)

        result = self._store.insert_many([document])
        if result.inserted_ids:
            document["id"] = result.inserted_ids[0]
        logger.info(
            "campaign_created",
            extra={
                "campaign_id": document.get("id"),
                "campaign_number": document.get(NATURAL_KEY_FIELD),
                "calculation_version": self._engine.version,
            },
        )
        return document

    def update_campaign(
        self, campaign_id: str, data: dict[str, Any],
    ) -> dict[str, Any] | None:
        """Apply ``data`` to the campaign; ``None`` when it does not exist."""
        issues = validate_campaign(data, partial=True)
        if issues:
            raise RecordValidationError(issues)

        record = self._calculator(self._strip(data), self._engine)
        update = {k: v for k, v in record.document.items() if k != "id"}
        updated = self._store.find_one_and_update(by_id(campaign_id), update, record.history)
        if updated is None:
            logger.info("campaign_not_found", extra={"campaign_id": campaign_id})
            return None
        logger.info(
            "campaign_updated",
            extra={"campaign_id": campaign_id, "calculation_version": self._engine.version},
        )
        return updated

    # -------------------------------------------------------------------------
    # Bulk
    # -------------------------------------------------------------------------

    def bulk_create(
        self, items: Sequence[dict[str, Any]], options: BulkOptions | None = None,
    ) -> BulkResult:
        return self._full.bulk_create(self._strip_all(items), options)

    def bulk_update(
        self, items: Sequence[dict[str, Any]], options: BulkOptions | None = None,
    ) -> BulkResult:
        return self._partial.bulk_update(self._strip_all(items), options)

    def bulk_upsert(
        self, items: Sequence[dict[str, Any]], options: BulkOptions | None = None,
    ) -> BulkResult:
        return self._full.bulk_upsert(self._strip_all(items), options)

    def recalculate_campaigns(
        self, documents: Sequence[dict[str, Any]], options: BulkOptions | None = None,
    ) -> BulkResult:
        """
        Recompute derived fields of stored campaigns with this engine's version.

        Each document must carry its ``id``.  Previous calculated fields stay
        in the stored history.
        """
        options = replace(options or BulkOptions(), apply_calculations=True)
        logger.info(
            "campaign_recalculation_requested",
            extra={
                "campaigns": len(documents),
                "calculation_version": self._engine.version,
            },
        )
        return self._partial.bulk_update(self._strip_all(documents), options)

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    @staticmethod
    def _strip(data: dict[str, Any]) -> dict[str, Any]:
        if not isinstance(data, dict):
            return data
        return {k: v for k, v in data.items() if k not in _DERIVED_KEYS}

    @classmethod
    def _strip_all(cls, items: Sequence[dict[str, Any]]) -> list[dict[str, Any]]:
        return [cls._strip(item) for item in items]
