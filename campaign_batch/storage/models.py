"""
ORM models for the reference record store.

Contract:
    EntityRecordModel holds one document per record, addressed by id and by
    an optional natural key that is unique per entity type.
    CalculatedFieldHistoryModel is the append-only log of every calculated
    field written for a record.

Architecture: campaign_batch/storage.  Imports from campaign_kernel.db.base only.

Invariants enforced:
    - (entity_type, natural_key) is UNIQUE.
    - History rows are only ever inserted.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from campaign_kernel.db.base import Base, TimestampedBase, UUIDString


class EntityRecordModel(TimestampedBase):
    """One stored document."""

    __tablename__ = "entity_records"

    __table_args__ = (
        UniqueConstraint("entity_type", "natural_key", name="uq_entity_records_natural_key"),
        Index("ix_entity_records_entity_type", "entity_type"),
    )

    entity_type: Mapped[str] = mapped_column(String(100), nullable=False)
    natural_key: Mapped[str | None] = mapped_column(String(200), nullable=True)
    document: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    calculation_version: Mapped[str | None] = mapped_column(String(50), nullable=True)

    history: Mapped[list["CalculatedFieldHistoryModel"]] = relationship(
        "CalculatedFieldHistoryModel",
        back_populates="record",
        order_by="CalculatedFieldHistoryModel.seq",
    )

    def to_document(self) -> dict[str, Any]:
        return {**self.document, "id": str(self.id)}

    def __repr__(self) -> str:
        return (
            f"<EntityRecordModel {self.entity_type}:{self.natural_key} id={self.id}>"
        )


class CalculatedFieldHistoryModel(Base):
    """Append-only calculated field write."""

    __tablename__ = "calculated_field_history"

    __table_args__ = (
        Index("ix_calculated_field_history_record", "record_id"),
        Index("ix_calculated_field_history_field", "record_id", "field_name"),
    )

    record_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("entity_records.id"), nullable=False,
    )
    seq: Mapped[int] = mapped_column(Integer, nullable=False)
    field_name: Mapped[str] = mapped_column(String(100), nullable=False)
    value: Mapped[str] = mapped_column(String(64), nullable=False)
    precision: Mapped[int] = mapped_column(Integer, nullable=False)
    rounding_mode: Mapped[str] = mapped_column(String(20), nullable=False)
    formula: Mapped[str] = mapped_column(Text, nullable=False)
    calculation_version: Mapped[str] = mapped_column(String(50), nullable=False)
    context: Mapped[str] = mapped_column(String(20), nullable=False)
    is_stored: Mapped[bool] = mapped_column(Boolean, nullable=False)
    calculated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    recorded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    record: Mapped[EntityRecordModel] = relationship(
        "EntityRecordModel", back_populates="history",
    )

    @classmethod
    def from_entry(
        cls,
        record_id: UUID,
        seq: int,
        entry: dict[str, Any],
        recorded_at: datetime,
    ) -> CalculatedFieldHistoryModel:
        calculated_at = entry["calculated_at"]
        if isinstance(calculated_at, str):
            calculated_at = datetime.fromisoformat(calculated_at)
        return cls(
            record_id=record_id,
            seq=seq,
            field_name=entry["field"],
            value=str(entry["value"]),
            precision=int(entry["precision"]),
            rounding_mode=entry["rounding_mode"],
            formula=entry["formula"],
            calculation_version=entry["calculation_version"],
            context=entry["context"],
            is_stored=bool(entry["is_stored"]),
            calculated_at=calculated_at,
            recorded_at=recorded_at,
        )

    def to_entry(self) -> dict[str, Any]:
        return {
            "field": self.field_name,
            "value": self.value,
            "precision": self.precision,
            "rounding_mode": self.rounding_mode,
            "formula": self.formula,
            "calculation_version": self.calculation_version,
            "context": self.context,
            "is_stored": self.is_stored,
            "calculated_at": self.calculated_at.isoformat(),
        }
