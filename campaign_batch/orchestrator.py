"""
campaign_batch.orchestrator -- Bulk create / update / upsert with partial-failure isolation.

Responsibility:
    Partition a record list into batches, validate and calculate each item
    independently, persist the survivors of each batch through the storage
    port, and report a structured BulkResult naming every failed item by its
    index in the original input.

Architecture position:
    Batch -- orchestration layer.  Depends on the engines (calculation) and
    on the StoragePort protocol; never on a concrete store.

Invariants enforced:
    - ``inserted + updated + len(failed) == N`` for every return path,
      including ``stop_on_error`` (unprocessed items are reported as
      NOT_PROCESSED).
    - One failure entry per invalid item, with every issue for that item.
    - A failure in one item never prevents the other items of its batch
      from being validated, calculated or persisted.
    - Batches run sequentially; committed batches are never rolled back.
    - ``calculation_version`` on the result is the engine's version.

Failure modes:
    - Item-level ValidationError / CalculationError -> failure entry.
    - Port PersistenceError -> every item of that batch's persisted subset
      fails with the port's message.
    - Per-operation WriteError -> exactly that item fails.  Creates go
      through an unordered insert_many, so a natural-key clash is per item.
    - ConfigurationError propagates (deployment defect, not bad input).
    - BulkOperationAbortedError when ``stop_on_error`` and
      ``abort_on_error`` are both set and a batch had a failure.

Audit relevance:
    Every call runs under a LogContext operation_id and emits
    ``bulk_operation_started`` / ``bulk_operation_completed`` records, plus
    ``bulk_batch_failed`` and ``upsert_identity_conflict`` where they apply.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from typing import Any
from uuid import uuid4

from campaign_batch.domain.ops import UpdateOne, by_id, by_natural_key
from campaign_batch.domain.types import (
    BulkMode,
    BulkOptions,
    BulkResultBuilder,
    BulkResult,
    CalculatedRecord,
    FailedItem,
    FailureCode,
)
from campaign_batch.ports import StoragePort, WriteError
from campaign_engines.calculation import CalculationEngine
from campaign_kernel.domain.clock import Clock, SystemClock
from campaign_kernel.exceptions import (
    BulkOperationAbortedError,
    CalculationError,
    PersistenceError,
    ValidationError,
    WriteConflictError,
)
from campaign_kernel.logging_config import LogContext, get_logger

logger = get_logger("batch.orchestrator")

DEFAULT_BATCH_SIZE = 100

RecordValidator = Callable[[dict[str, Any]], Sequence[str]]
RecordCalculator = Callable[[dict[str, Any], CalculationEngine], CalculatedRecord]

_Item = tuple[int, dict[str, Any]]


class BulkOrchestrator:
    """
    Batched bulk writer over a StoragePort.

    Contract:
        - ``validator(item)`` returns the list of issues for an item (empty
          when valid).  It must not raise for bad input.
        - ``calculator(item, engine)`` returns a CalculatedRecord.  It may
          raise CalculationError or ValidationError for bad input.
        - Per-item calculation runs on a thread pool when
          ``max_workers > 1``; persistence is one port call per batch.

    Non-goals:
        - Does NOT retry failed batches.
        - Does NOT commit; the port's caller owns the transaction.
    """

    def __init__(
        self,
        store: StoragePort,
        engine: CalculationEngine,
        calculator: RecordCalculator | None = None,
        validator: RecordValidator | None = None,
        natural_key_field: str | None = None,
        id_field: str = "id",
        batch_size: int = DEFAULT_BATCH_SIZE,
        max_workers: int = 1,
        clock: Clock | None = None,
        entity_type: str = "record",
    ) -> None:
        if batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {batch_size}")
        if max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {max_workers}")
        self._store = store
        self._engine = engine
        self._calculator = calculator
        self._validator = validator
        self._natural_key_field = natural_key_field
        self._id_field = id_field
        self._batch_size = batch_size
        self._max_workers = max_workers
        self._clock = clock or SystemClock()
        self._entity_type = entity_type

    @property
    def batch_size(self) -> int:
        return self._batch_size

    @property
    def engine(self) -> CalculationEngine:
        return self._engine

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def bulk_create(
        self, items: Sequence[dict[str, Any]], options: BulkOptions | None = None
    ) -> BulkResult:
        return self._run(BulkMode.CREATE, items, options or BulkOptions())

    def bulk_update(
        self, items: Sequence[dict[str, Any]], options: BulkOptions | None = None
    ) -> BulkResult:
        return self._run(BulkMode.UPDATE, items, options or BulkOptions())

    def bulk_upsert(
        self, items: Sequence[dict[str, Any]], options: BulkOptions | None = None
    ) -> BulkResult:
        return self._run(BulkMode.UPSERT, items, options or BulkOptions())

    # -------------------------------------------------------------------------
    # Batch loop
    # -------------------------------------------------------------------------

    def _run(
        self, mode: BulkMode, items: Sequence[dict[str, Any]], options: BulkOptions
    ) -> BulkResult:
        start_time = time.monotonic()
        total = len(items)
        builder = BulkResultBuilder(
            mode=mode, total=total, calculation_version=self._engine.version,
        )

        with LogContext.bind(operation_id=str(uuid4()), entity_type=self._entity_type):
            logger.info(
                "bulk_operation_started",
                extra={
                    "mode": mode.value,
                    "total_items": total,
                    "batch_size": self._batch_size,
                    "calculation_version": self._engine.version,
                    "started_at": self._clock.now(),
                },
            )

            for batch_index, start in enumerate(range(0, total, self._batch_size)):
                batch = [
                    (start + local, items[start + local])
                    for local in range(min(self._batch_size, total - start))
                ]
                failures_before = len(builder.failed)
                self._process_batch(mode, batch, options, builder)
                builder.batches_processed += 1

                batch_failures = len(builder.failed) - failures_before
                if batch_failures:
                    logger.warning(
                        "bulk_batch_failed",
                        extra={
                            "mode": mode.value,
                            "batch_index": batch_index,
                            "failed_items": batch_failures,
                        },
                    )
                    if options.stop_on_error:
                        self._mark_not_processed(
                            items, start + len(batch), options, builder,
                        )
                        builder.stopped_early = True
                        result = builder.build()
                        self._log_completed(result, start_time)
                        if options.abort_on_error:
                            raise BulkOperationAbortedError(result, batch_index)
                        return result

            result = builder.build()
            self._log_completed(result, start_time)
            return result

    def _process_batch(
        self,
        mode: BulkMode,
        batch: list[_Item],
        options: BulkOptions,
        builder: BulkResultBuilder,
    ) -> None:
        # Validation: every issue for an item is collected into one entry.
        valid: list[_Item] = []
        for index, item in batch:
            issues = self._issues(mode, item, options)
            if issues:
                builder.failed.append(
                    self._failure(index, item, "; ".join(issues),
                                  FailureCode.VALIDATION_FAILED, options)
                )
            else:
                valid.append((index, item))

        # Calculation, item by item.
        prepared: list[tuple[int, dict[str, Any], CalculatedRecord]] = []
        for index, item, outcome in self._calculate_all(valid, options):
            if isinstance(outcome, CalculatedRecord):
                prepared.append((index, item, outcome))
            else:
                builder.failed.append(
                    self._failure(index, item, str(outcome), outcome.code, options)
                )

        if not prepared:
            return

        if mode is BulkMode.CREATE:
            self._persist_create(prepared, options, builder)
        else:
            self._persist_write(mode, prepared, options, builder)

    # -------------------------------------------------------------------------
    # Validation
    # -------------------------------------------------------------------------

    def _issues(self, mode: BulkMode, item: Any, options: BulkOptions) -> list[str]:
        if not isinstance(item, dict):
            return ["record must be a mapping"]

        issues: list[str] = []
        if mode is BulkMode.UPDATE and not item.get(self._id_field):
            issues.append(f"{self._id_field} is required for update")
        if mode is BulkMode.UPSERT and not item.get(self._id_field):
            if not self._natural_key_field or not item.get(self._natural_key_field):
                issues.append(
                    f"{self._id_field} or {self._natural_key_field or 'natural key'} "
                    "is required for upsert"
                )

        if options.validate_all and self._validator is not None:
            issues.extend(self._validator(item))
        return issues

    # -------------------------------------------------------------------------
    # Calculation
    # -------------------------------------------------------------------------

    def _calculate_one(self, item: dict[str, Any], options: BulkOptions) -> CalculatedRecord | Exception:
        if not options.apply_calculations or self._calculator is None:
            return CalculatedRecord(document=dict(item))
        try:
            return self._calculator(item, self._engine)
        except (CalculationError, ValidationError) as exc:
            return exc

    def _calculate_all(
        self, valid: list[_Item], options: BulkOptions
    ) -> list[tuple[int, dict[str, Any], CalculatedRecord | Exception]]:
        if self._max_workers > 1 and len(valid) > 1:
            with ThreadPoolExecutor(max_workers=self._max_workers) as pool:
                outcomes = list(
                    pool.map(lambda pair: self._calculate_one(pair[1], options), valid)
                )
        else:
            outcomes = [self._calculate_one(item, options) for _, item in valid]
        return [(index, item, outcome) for (index, item), outcome in zip(valid, outcomes)]

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def _persist_create(
        self,
        prepared: list[tuple[int, dict[str, Any], CalculatedRecord]],
        options: BulkOptions,
        builder: BulkResultBuilder,
    ) -> None:
        documents = []
        for _, _, record in prepared:
            document = dict(record.document)
            if record.history:
                document["calculation_history"] = [
                    *document.get("calculation_history", []), *record.history,
                ]
            documents.append(document)

        try:
            result = self._store.insert_many(documents, ordered=False)
        except PersistenceError as exc:
            self._fail_subset(prepared, exc, options, builder)
            return
        builder.inserted += result.inserted_count
        self._record_write_errors(
            BulkMode.CREATE, prepared, result.write_errors, options, builder,
        )

    def _persist_write(
        self,
        mode: BulkMode,
        prepared: list[tuple[int, dict[str, Any], CalculatedRecord]],
        options: BulkOptions,
        builder: BulkResultBuilder,
    ) -> None:
        operations = [self._to_update(mode, record) for _, _, record in prepared]
        try:
            result = self._store.bulk_write(operations)
        except PersistenceError as exc:
            self._fail_subset(prepared, exc, options, builder)
            return

        builder.inserted += result.inserted_count
        builder.updated += result.modified_count
        self._record_write_errors(mode, prepared, result.write_errors, options, builder)

    def _record_write_errors(
        self,
        mode: BulkMode,
        prepared: list[tuple[int, dict[str, Any], CalculatedRecord]],
        write_errors: Sequence[WriteError],
        options: BulkOptions,
        builder: BulkResultBuilder,
    ) -> None:
        for error in write_errors:
            index, item, _ = prepared[error.index]
            if error.code == WriteConflictError.code and mode is BulkMode.UPSERT:
                logger.warning(
                    "upsert_identity_conflict",
                    extra={"index": index, "detail": error.message},
                )
            builder.failed.append(
                self._failure(index, item, error.message, error.code, options)
            )

    def _to_update(self, mode: BulkMode, record: CalculatedRecord) -> UpdateOne:
        document = {
            k: v for k, v in record.document.items() if k != "calculation_history"
        }
        record_id = document.get(self._id_field)
        if record_id:
            op_filter = by_id(record_id)
        else:
            op_filter = by_natural_key(document[self._natural_key_field])
        return UpdateOne(
            filter=op_filter,
            document=document,
            history=record.history,
            upsert=mode is BulkMode.UPSERT,
        )

    def _fail_subset(
        self,
        prepared: list[tuple[int, dict[str, Any], CalculatedRecord]],
        exc: PersistenceError,
        options: BulkOptions,
        builder: BulkResultBuilder,
    ) -> None:
        logger.error(
            "bulk_persistence_failed",
            extra={"items": len(prepared), "error_code": exc.code},
            exc_info=exc,
        )
        for index, item, _ in prepared:
            builder.failed.append(self._failure(index, item, str(exc), exc.code, options))

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _mark_not_processed(
        self,
        items: Sequence[dict[str, Any]],
        first_index: int,
        options: BulkOptions,
        builder: BulkResultBuilder,
    ) -> None:
        for index in range(first_index, len(items)):
            builder.failed.append(
                self._failure(
                    index, items[index],
                    "Not processed: an earlier batch failed and stop_on_error is set",
                    FailureCode.NOT_PROCESSED, options,
                )
            )

    @staticmethod
    def _failure(
        index: int, item: Any, error: str, code: str, options: BulkOptions,
    ) -> FailedItem:
        data = None
        if options.return_failed_records and isinstance(item, dict):
            data = dict(item)
        return FailedItem(index=index, error=error, code=code, data=data)

    def _log_completed(self, result: BulkResult, start_time: float) -> None:
        logger.info(
            "bulk_operation_completed",
            extra={
                "mode": result.mode.value if result.mode else None,
                "status": result.status.value,
                "inserted": result.inserted,
                "updated": result.updated,
                "failed": result.failed_count,
                "stopped_early": result.stopped_early,
                "duration_ms": int((time.monotonic() - start_time) * 1000),
            },
        )
