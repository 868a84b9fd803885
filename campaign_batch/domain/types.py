"""
campaign_batch.domain.types -- Pure frozen dataclasses for bulk operations.

ZERO I/O.  Frozen dataclasses with enum status fields and tuples for
immutable collections.

Invariants enforced:
    - For an input of N items, ``inserted + updated + len(failed) == N``.
    - Every FailedItem names the 0-based index into the original input.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


# =============================================================================
# Enums
# =============================================================================


class BulkMode(str, Enum):
    """Which bulk operation is running."""

    CREATE = "create"
    UPDATE = "update"
    UPSERT = "upsert"


class BulkStatus(str, Enum):
    """Overall outcome of a bulk call."""

    COMPLETED = "completed"  # No failures
    PARTIALLY_COMPLETED = "partially_completed"  # Some items failed
    FAILED = "failed"  # Every item failed
    EMPTY = "empty"  # Nothing to do


class FailureCode:
    """Failure codes that do not come from a kernel exception."""

    NOT_PROCESSED = "NOT_PROCESSED"
    VALIDATION_FAILED = "VALIDATION_FAILED"


# =============================================================================
# Options and results
# =============================================================================


@dataclass(frozen=True)
class BulkOptions:
    """Caller options for one bulk call.

    ``abort_on_error`` turns a ``stop_on_error`` stop into a raised
    BulkOperationAbortedError that carries the partial result.
    """

    validate_all: bool = True
    stop_on_error: bool = False
    apply_calculations: bool = True
    return_failed_records: bool = True
    abort_on_error: bool = False


@dataclass(frozen=True)
class FailedItem:
    """One failed input item."""

    index: int
    error: str
    code: str
    data: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"index": self.index, "error": self.error, "code": self.code}
        if self.data is not None:
            out["data"] = self.data
        return out


@dataclass(frozen=True)
class CalculatedRecord:
    """A record ready for persistence.

    ``history`` holds the calculated-field history entries produced for the
    record; they are appended to the stored history, never replacing it.
    """

    document: dict[str, Any]
    history: tuple[dict[str, Any], ...] = ()


@dataclass(frozen=True)
class BulkResult:
    """Structured outcome of a bulk call."""

    inserted: int
    updated: int
    failed: tuple[FailedItem, ...]
    calculation_version: str
    total: int = 0
    mode: BulkMode | None = None
    stopped_early: bool = False
    batches_processed: int = 0

    @property
    def failed_count(self) -> int:
        return len(self.failed)

    @property
    def succeeded(self) -> int:
        return self.inserted + self.updated

    @property
    def status(self) -> BulkStatus:
        if self.total == 0:
            return BulkStatus.EMPTY
        if not self.failed:
            return BulkStatus.COMPLETED
        if self.succeeded == 0:
            return BulkStatus.FAILED
        return BulkStatus.PARTIALLY_COMPLETED

    def failed_indexes(self) -> tuple[int, ...]:
        return tuple(f.index for f in self.failed)

    def to_dict(self) -> dict[str, Any]:
        return {
            "inserted": self.inserted,
            "updated": self.updated,
            "failed": [f.to_dict() for f in self.failed],
            "calculation_version": self.calculation_version,
        }


@dataclass
class BulkResultBuilder:
    """Mutable accumulator owned by one bulk call."""

    mode: BulkMode
    total: int
    calculation_version: str
    inserted: int = 0
    updated: int = 0
    failed: list[FailedItem] = field(default_factory=list)
    stopped_early: bool = False
    batches_processed: int = 0

    def build(self) -> BulkResult:
        return BulkResult(
            inserted=self.inserted,
            updated=self.updated,
            failed=tuple(sorted(self.failed, key=lambda f: f.index)),
            calculation_version=self.calculation_version,
            total=self.total,
            mode=self.mode,
            stopped_early=self.stopped_early,
            batches_processed=self.batches_processed,
        )
