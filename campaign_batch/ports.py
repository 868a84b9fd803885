"""
campaign_batch.ports -- Storage port consumed by the bulk orchestrator.

Contract:
    ``insert_many`` with ``ordered=True`` is atomic for the documents it
    receives: either every document is inserted or a PersistenceError is
    raised and none are.  With ``ordered=False`` each document is isolated
    and per-document failures come back as WriteError entries.
    ``bulk_write`` applies operations in order and isolates each one;
    per-operation failures come back as WriteError entries, never raised.
    Batch-level failures (store unreachable, timeout) raise a
    PersistenceError.

Non-goals:
    - Does NOT commit.  Transaction ownership stays with the caller.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol, Sequence, runtime_checkable

from campaign_batch.domain.ops import WriteOperation


@dataclass(frozen=True)
class WriteError:
    """A failed operation inside a ``bulk_write`` or unordered ``insert_many`` call.

    ``index`` is the position of the operation in the submitted sequence.
    """

    index: int
    code: str
    message: str


@dataclass(frozen=True)
class InsertManyResult:
    inserted_count: int
    inserted_ids: tuple[str, ...] = ()
    write_errors: tuple[WriteError, ...] = ()


@dataclass(frozen=True)
class BulkWriteResult:
    inserted_count: int
    modified_count: int
    write_errors: tuple[WriteError, ...] = ()


@runtime_checkable
class StoragePort(Protocol):
    """Document store seen by the bulk orchestrator and CampaignService."""

    def insert_many(
        self, documents: Sequence[dict[str, Any]], ordered: bool = True,
    ) -> InsertManyResult:
        ...

    def bulk_write(self, operations: Sequence[WriteOperation]) -> BulkWriteResult:
        ...

    def find_one_and_update(
        self,
        filter: dict[str, Any],
        update: dict[str, Any],
        history: Sequence[dict[str, Any]] = (),
    ) -> dict[str, Any] | None:
        """Apply ``update`` to the matched record; ``None`` when none matches."""
        ...
