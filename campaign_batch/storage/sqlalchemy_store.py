"""
campaign_batch.storage.sqlalchemy_store -- Reference StoragePort over SQLAlchemy.

Responsibility:
    Persist documents for one entity type in ``entity_records`` and mirror
    every calculated-field history entry into ``calculated_field_history``.

Architecture position:
    Batch > Storage -- the only I/O in the batch package.  Implements
    campaign_batch.ports.StoragePort.

Invariants enforced:
    - Ordered ``insert_many`` runs in ONE SAVEPOINT: all documents or none.
      Unordered ``insert_many`` gives each document its own SAVEPOINT.
    - ``bulk_write`` runs each operation in its own SAVEPOINT, so one bad
      operation never affects its neighbours.
    - Updates set top-level fields, merge ``calculated_fields`` entry by
      entry and append history; stored history is never rewritten.
    - A natural key belongs to at most one record per entity type.
    - Timestamps come from the injected Clock.

Failure modes:
    - WriteConflictError when a natural key or identifier is already taken
      by another record (raised from ordered insert_many and
      find_one_and_update, reported as a WriteError from unordered
      insert_many and bulk_write).
    - RecordNotFoundError for a non-upsert update with no match (reported
      as a WriteError from bulk_write).
    - StorageUnavailableError wrapping any other SQLAlchemyError.

Non-goals:
    - Does NOT commit.  The session owner decides.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from campaign_batch.domain.ops import (
    ID_FILTER,
    NATURAL_KEY_FILTER,
    InsertOne,
    UpdateOne,
    WriteOperation,
)
from campaign_batch.ports import BulkWriteResult, InsertManyResult, WriteError
from campaign_batch.storage.models import CalculatedFieldHistoryModel, EntityRecordModel
from campaign_kernel.domain.clock import Clock, SystemClock
from campaign_kernel.exceptions import (
    PersistenceError,
    RecordNotFoundError,
    StorageUnavailableError,
    WriteConflictError,
)
from campaign_kernel.logging_config import get_logger

logger = get_logger("batch.storage")

HISTORY_FIELD = "calculation_history"
CALCULATED_FIELDS = "calculated_fields"


def to_jsonable(value: Any) -> Any:
    """Convert a document to JSON-safe values; Decimals keep their scale."""
    if isinstance(value, dict):
        return {str(k): to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    if isinstance(value, Decimal):
        return format(value, "f")
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, Enum):
        return value.value
    return value


def merge_update(stored: dict[str, Any], changes: dict[str, Any]) -> dict[str, Any]:
    """
    Apply top-level ``changes`` to ``stored``.

    ``calculated_fields`` is merged entry by entry.  Stored entries under a
    replaced top-level field that the update did not recalculate are
    dropped, so every entry describes a value present on the document.
    """
    body = dict(stored)
    body.update({k: v for k, v in changes.items() if k != CALCULATED_FIELDS})

    replaced = set(changes) - {CALCULATED_FIELDS}
    fields = {
        path: entry
        for path, entry in (stored.get(CALCULATED_FIELDS) or {}).items()
        if path.split(".", 1)[0] not in replaced
    }
    fields.update(changes.get(CALCULATED_FIELDS) or {})
    if fields or CALCULATED_FIELDS in stored or CALCULATED_FIELDS in changes:
        body[CALCULATED_FIELDS] = fields
    return body


def _parse_uuid(raw: Any) -> UUID | None:
    if isinstance(raw, UUID):
        return raw
    try:
        return UUID(str(raw))
    except ValueError:
        return None


class SqlAlchemyRecordStore:
    """
    StoragePort implementation for one entity type.

    Contract:
        Documents are addressed by ``id`` (UUID string) and, when
        ``natural_key_field`` is set, by the value of that field.
    """

    def __init__(
        self,
        session: Session,
        entity_type: str = "campaign",
        natural_key_field: str | None = None,
        id_field: str = "id",
        clock: Clock | None = None,
    ) -> None:
        self._session = session
        self._entity_type = entity_type
        self._natural_key_field = natural_key_field
        self._id_field = id_field
        self._clock = clock or SystemClock()

    @property
    def session(self) -> Session:
        return self._session

    # -------------------------------------------------------------------------
    # StoragePort
    # -------------------------------------------------------------------------

    def insert_many(
        self, documents: Sequence[dict[str, Any]], ordered: bool = True,
    ) -> InsertManyResult:
        if not documents:
            return InsertManyResult(inserted_count=0)
        if not ordered:
            return self._insert_unordered(documents)
        try:
            with self._session.begin_nested():
                ids = [str(self._insert(doc).id) for doc in documents]
        except PersistenceError:
            raise
        except SQLAlchemyError as exc:
            raise StorageUnavailableError(f"insert_many failed: {exc}") from exc

        logger.debug(
            "records_inserted",
            extra={"entity_type": self._entity_type, "count": len(ids)},
        )
        return InsertManyResult(inserted_count=len(ids), inserted_ids=tuple(ids))

    def _insert_unordered(self, documents: Sequence[dict[str, Any]]) -> InsertManyResult:
        ids: list[str] = []
        errors: list[WriteError] = []
        try:
            for index, doc in enumerate(documents):
                try:
                    with self._session.begin_nested():
                        ids.append(str(self._insert(doc).id))
                except WriteConflictError as exc:
                    errors.append(WriteError(index=index, code=exc.code, message=str(exc)))
                except IntegrityError as exc:
                    errors.append(
                        WriteError(
                            index=index,
                            code=WriteConflictError.code,
                            message=str(exc.orig),
                        )
                    )
        except SQLAlchemyError as exc:
            raise StorageUnavailableError(f"insert_many failed: {exc}") from exc

        logger.debug(
            "records_inserted",
            extra={
                "entity_type": self._entity_type,
                "count": len(ids),
                "write_errors": len(errors),
            },
        )
        return InsertManyResult(
            inserted_count=len(ids),
            inserted_ids=tuple(ids),
            write_errors=tuple(errors),
        )

    def bulk_write(self, operations: Sequence[WriteOperation]) -> BulkWriteResult:
        inserted = 0
        modified = 0
        errors: list[WriteError] = []
        try:
            for index, op in enumerate(operations):
                try:
                    with self._session.begin_nested():
                        if self._apply(op):
                            inserted += 1
                        else:
                            modified += 1
                except (WriteConflictError, RecordNotFoundError) as exc:
                    errors.append(WriteError(index=index, code=exc.code, message=str(exc)))
                except IntegrityError as exc:
                    errors.append(
                        WriteError(
                            index=index,
                            code=WriteConflictError.code,
                            message=str(exc.orig),
                        )
                    )
        except SQLAlchemyError as exc:
            raise StorageUnavailableError(f"bulk_write failed: {exc}") from exc

        if errors:
            logger.warning(
                "bulk_write_partial",
                extra={
                    "entity_type": self._entity_type,
                    "operations": len(operations),
                    "write_errors": len(errors),
                },
            )
        return BulkWriteResult(
            inserted_count=inserted,
            modified_count=modified,
            write_errors=tuple(errors),
        )

    def find_one_and_update(
        self,
        filter: dict[str, Any],
        update: dict[str, Any],
        history: Sequence[dict[str, Any]] = (),
    ) -> dict[str, Any] | None:
        try:
            model = self._find(filter)
            if model is None:
                return None
            with self._session.begin_nested():
                self._update(model, update, history)
        except PersistenceError:
            raise
        except SQLAlchemyError as exc:
            raise StorageUnavailableError(f"find_one_and_update failed: {exc}") from exc
        return model.to_document()

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get(self, record_id: Any) -> dict[str, Any] | None:
        model = self._find({ID_FILTER: record_id})
        return model.to_document() if model is not None else None

    def find_by_natural_key(self, natural_key: Any) -> dict[str, Any] | None:
        model = self._find({NATURAL_KEY_FILTER: natural_key})
        return model.to_document() if model is not None else None

    def history_for(
        self, record_id: Any, field_name: str | None = None,
    ) -> list[dict[str, Any]]:
        """History rows for a record, oldest first."""
        rid = _parse_uuid(record_id)
        if rid is None:
            return []
        stmt = (
            select(CalculatedFieldHistoryModel)
            .where(CalculatedFieldHistoryModel.record_id == rid)
            .order_by(CalculatedFieldHistoryModel.seq)
        )
        if field_name is not None:
            stmt = stmt.where(CalculatedFieldHistoryModel.field_name == field_name)
        return [row.to_entry() for row in self._session.scalars(stmt)]

    def count(self) -> int:
        stmt = select(func.count()).select_from(EntityRecordModel).where(
            EntityRecordModel.entity_type == self._entity_type
        )
        return int(self._session.scalar(stmt) or 0)

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _find(self, filter: dict[str, Any]) -> EntityRecordModel | None:
        if ID_FILTER in filter:
            rid = _parse_uuid(filter[ID_FILTER])
            if rid is None:
                return None
            model = self._session.get(EntityRecordModel, rid)
            if model is None or model.entity_type != self._entity_type:
                return None
            return model
        if NATURAL_KEY_FILTER in filter:
            return self._by_natural_key(str(filter[NATURAL_KEY_FILTER]))
        raise ValueError(f"Unsupported filter: {sorted(filter)}")

    def _by_natural_key(self, natural_key: str) -> EntityRecordModel | None:
        stmt = select(EntityRecordModel).where(
            EntityRecordModel.entity_type == self._entity_type,
            EntityRecordModel.natural_key == natural_key,
        )
        return self._session.scalars(stmt).first()

    def _natural_key_of(self, document: dict[str, Any]) -> str | None:
        if not self._natural_key_field:
            return None
        value = document.get(self._natural_key_field)
        return str(value) if value not in (None, "") else None

    def _apply(self, op: WriteOperation) -> bool:
        """Apply one operation; True when it inserted a record."""
        if isinstance(op, InsertOne):
            self._insert(op.document)
            return True

        model = self._find(op.filter)
        if model is not None:
            self._update(model, op.document, op.history)
            return False
        if not op.upsert:
            raise RecordNotFoundError(str(next(iter(op.filter.values()))))

        document = dict(op.document)
        if ID_FILTER in op.filter:
            document[self._id_field] = op.filter[ID_FILTER]
        elif self._natural_key_field:
            document.setdefault(self._natural_key_field, op.filter[NATURAL_KEY_FILTER])
        self._insert(document, op.history)
        return True

    def _insert(
        self,
        document: dict[str, Any],
        history: Sequence[dict[str, Any]] = (),
    ) -> EntityRecordModel:
        raw_id = document.get(self._id_field)
        record_id = _parse_uuid(raw_id) if raw_id else uuid4()
        if record_id is None:
            raise WriteConflictError(
                natural_key=None, existing_id=None, record_id=str(raw_id),
            )
        if self._session.get(EntityRecordModel, record_id) is not None:
            raise WriteConflictError(
                natural_key=None, existing_id=str(record_id), record_id=str(record_id),
            )

        natural_key = self._natural_key_of(document)
        if natural_key is not None:
            existing = self._by_natural_key(natural_key)
            if existing is not None:
                raise WriteConflictError(
                    natural_key=natural_key,
                    existing_id=str(existing.id),
                    record_id=str(record_id),
                )

        body = to_jsonable({k: v for k, v in document.items() if k != self._id_field})
        entries = [*body.get(HISTORY_FIELD, []), *to_jsonable(list(history))]
        if entries:
            body[HISTORY_FIELD] = entries

        now = self._clock.now()
        model = EntityRecordModel(
            id=record_id,
            entity_type=self._entity_type,
            natural_key=natural_key,
            document=body,
            calculation_version=body.get("calculation_version"),
            created_at=now,
            updated_at=now,
        )
        self._session.add(model)
        self._session.flush()
        self._append_history(model, 0, entries, now)
        return model

    def _update(
        self,
        model: EntityRecordModel,
        update: dict[str, Any],
        history: Sequence[dict[str, Any]],
    ) -> None:
        changes = to_jsonable(
            {k: v for k, v in update.items() if k not in (self._id_field, HISTORY_FIELD)}
        )

        natural_key = self._natural_key_of(changes)
        if natural_key is not None and natural_key != model.natural_key:
            existing = self._by_natural_key(natural_key)
            if existing is not None and existing.id != model.id:
                raise WriteConflictError(
                    natural_key=natural_key,
                    existing_id=str(existing.id),
                    record_id=str(model.id),
                )
            model.natural_key = natural_key

        body = merge_update(model.document, changes)
        stored_history = list(body.get(HISTORY_FIELD, []))
        new_entries = to_jsonable(list(history))
        if new_entries:
            body[HISTORY_FIELD] = stored_history + new_entries

        now = self._clock.now()
        # Reassign so the JSON column registers the change.
        model.document = body
        model.calculation_version = body.get("calculation_version", model.calculation_version)
        model.updated_at = now
        self._session.flush()
        self._append_history(model, len(stored_history), new_entries, now)

    def _append_history(
        self,
        model: EntityRecordModel,
        first_seq: int,
        entries: Sequence[dict[str, Any]],
        recorded_at: datetime,
    ) -> None:
        for offset, entry in enumerate(entries):
            self._session.add(
                CalculatedFieldHistoryModel.from_entry(
                    model.id, first_seq + offset, entry, recorded_at,
                )
            )
        if entries:
            self._session.flush()
