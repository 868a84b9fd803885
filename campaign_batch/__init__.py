"""
Bulk create / update / upsert over a storage port.

Public API:
    BulkOrchestrator   -- batched bulk writer with partial-failure isolation
    BulkOptions        -- caller options
    BulkResult         -- structured outcome (counts plus failed items)
    StoragePort        -- protocol a document store must satisfy
"""

from campaign_batch.domain.types import (
    BulkMode,
    BulkOptions,
    BulkResult,
    BulkStatus,
    CalculatedRecord,
    FailedItem,
    FailureCode,
)
from campaign_batch.orchestrator import BulkOrchestrator
from campaign_batch.ports import (
    BulkWriteResult,
    InsertManyResult,
    StoragePort,
    WriteError,
)

__all__ = [
    "BulkMode",
    "BulkOptions",
    "BulkOrchestrator",
    "BulkResult",
    "BulkStatus",
    "BulkWriteResult",
    "CalculatedRecord",
    "FailedItem",
    "FailureCode",
    "InsertManyResult",
    "StoragePort",
    "WriteError",
]
