"""Pure domain types for bulk operations (ZERO I/O)."""

from campaign_batch.domain.ops import (
    InsertOne,
    UpdateOne,
    WriteOperation,
    by_id,
    by_natural_key,
)
from campaign_batch.domain.types import (
    BulkMode,
    BulkOptions,
    BulkResult,
    BulkStatus,
    CalculatedRecord,
    FailedItem,
    FailureCode,
)

__all__ = [
    "BulkMode",
    "BulkOptions",
    "BulkResult",
    "BulkStatus",
    "CalculatedRecord",
    "FailedItem",
    "FailureCode",
    "InsertOne",
    "UpdateOne",
    "WriteOperation",
    "by_id",
    "by_natural_key",
]
