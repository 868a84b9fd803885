"""SQLAlchemy reference adapter for the storage port."""

from campaign_batch.storage.models import CalculatedFieldHistoryModel, EntityRecordModel
from campaign_batch.storage.sqlalchemy_store import (
    SqlAlchemyRecordStore,
    merge_update,
    to_jsonable,
)

__all__ = [
    "CalculatedFieldHistoryModel",
    "EntityRecordModel",
    "SqlAlchemyRecordStore",
    "merge_update",
    "to_jsonable",
]
