"""
Pytest fixtures for the campaign calculation test suite.

Provides:
- Deterministic clock and calculation engine
- In-memory SQLite sessions for the reference record store
- An in-memory StoragePort double with failure injection
- Campaign record factories
- Structured log capture
"""

import json
import logging
from datetime import datetime, timezone
from io import StringIO
from typing import Any, Generator, Sequence
from uuid import uuid4

import pytest
from sqlalchemy.orm import Session

from campaign_batch.domain.ops import (
    ID_FILTER,
    NATURAL_KEY_FILTER,
    InsertOne,
    UpdateOne,
    WriteOperation,
)
from campaign_batch.ports import BulkWriteResult, InsertManyResult, WriteError
from campaign_batch.storage import SqlAlchemyRecordStore, merge_update
from campaign_engines import CalculationEngine
from campaign_kernel.db.engine import (
    create_session_factory,
    create_tables,
    init_engine_from_url,
)
from campaign_kernel.domain.clock import DeterministicClock
from campaign_kernel.exceptions import (
    RecordNotFoundError,
    StorageUnavailableError,
    WriteConflictError,
)
from campaign_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from campaign_services import CampaignService

# Mid-flight for the default sample campaign (2025-01-01 .. 2025-03-31).
FIXED_NOW = datetime(2025, 2, 15, 12, 0, 0, tzinfo=timezone.utc)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG, stream=StringIO())
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture campaign_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, engine):
            engine.calculate("cpc", "10", "5")
            logs = captured_logs()
            assert any(r["message"] == "CAMPAIGN_ENGINE_TRACE" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("campaign_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Clock and engine fixtures
# =============================================================================


@pytest.fixture
def deterministic_clock():
    """Clock frozen mid-flight for the sample campaigns."""
    return DeterministicClock(FIXED_NOW)


@pytest.fixture
def engine(deterministic_clock):
    """Calculation engine on the built-in formula set and policy table."""
    return CalculationEngine(clock=deterministic_clock)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def db_engine():
    engine = init_engine_from_url("sqlite:///:memory:")
    create_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(db_engine) -> Generator[Session, None, None]:
    session = create_session_factory(db_engine)()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def record_store(session, deterministic_clock):
    """Reference SQLAlchemy store for campaigns, keyed by campaign_number."""
    return SqlAlchemyRecordStore(
        session,
        entity_type="campaign",
        natural_key_field="campaign_number",
        clock=deterministic_clock,
    )


@pytest.fixture
def campaign_service(record_store, engine, deterministic_clock):
    return CampaignService(record_store, engine, clock=deterministic_clock)


# =============================================================================
# In-memory storage port
# =============================================================================


class InMemoryRecordStore:
    """
    StoragePort double keeping documents in a dict.

    ``fail_calls`` names the 1-based port calls (insert_many / bulk_write)
    that raise StorageUnavailableError instead of writing.
    """

    def __init__(
        self,
        natural_key_field: str | None = None,
        fail_calls: Sequence[int] = (),
    ) -> None:
        self.natural_key_field = natural_key_field
        self.records: dict[str, dict[str, Any]] = {}
        self.history: dict[str, list[dict[str, Any]]] = {}
        self.fail_calls = set(fail_calls)
        self.calls = 0

    def _maybe_fail(self) -> None:
        self.calls += 1
        if self.calls in self.fail_calls:
            raise StorageUnavailableError("store offline")

    def _by_key(self, key: str) -> str | None:
        for record_id, doc in self.records.items():
            if self.natural_key_field and doc.get(self.natural_key_field) == key:
                return record_id
        return None

    def _find(self, filter: dict[str, Any]) -> str | None:
        if ID_FILTER in filter:
            rid = str(filter[ID_FILTER])
            return rid if rid in self.records else None
        return self._by_key(str(filter[NATURAL_KEY_FILTER]))

    def _insert(self, document: dict[str, Any], history: Sequence[dict] = ()) -> str:
        key = document.get(self.natural_key_field) if self.natural_key_field else None
        if key is not None and self._by_key(key) is not None:
            raise WriteConflictError(key, self._by_key(key))
        record_id = str(document.get("id") or uuid4())
        body = {k: v for k, v in document.items() if k != "calculation_history"}
        self.records[record_id] = {**body, "id": record_id}
        self.history[record_id] = [*document.get("calculation_history", []), *history]
        return record_id

    def insert_many(self, documents, ordered=True):
        self._maybe_fail()
        if ordered:
            before = dict(self.records), dict(self.history)
            try:
                ids = [self._insert(doc) for doc in documents]
            except WriteConflictError:
                self.records, self.history = before
                raise
            return InsertManyResult(inserted_count=len(ids), inserted_ids=tuple(ids))
        ids, errors = [], []
        for index, doc in enumerate(documents):
            try:
                ids.append(self._insert(doc))
            except WriteConflictError as exc:
                errors.append(WriteError(index=index, code=exc.code, message=str(exc)))
        return InsertManyResult(len(ids), tuple(ids), tuple(errors))

    def bulk_write(self, operations: Sequence[WriteOperation]):
        self._maybe_fail()
        inserted = modified = 0
        errors = []
        for index, op in enumerate(operations):
            try:
                if isinstance(op, InsertOne):
                    self._insert(op.document)
                    inserted += 1
                    continue
                assert isinstance(op, UpdateOne)
                record_id = self._find(op.filter)
                if record_id is None:
                    if not op.upsert:
                        raise RecordNotFoundError(str(next(iter(op.filter.values()))))
                    self._insert(op.document, op.history)
                    inserted += 1
                else:
                    self.records[record_id] = merge_update(self.records[record_id], op.document)
                    self.history[record_id].extend(op.history)
                    modified += 1
            except (WriteConflictError, RecordNotFoundError) as exc:
                errors.append(WriteError(index=index, code=exc.code, message=str(exc)))
        return BulkWriteResult(inserted, modified, tuple(errors))

    def find_one_and_update(self, filter, update, history=()):
        record_id = self._find(filter)
        if record_id is None:
            return None
        self.records[record_id] = merge_update(self.records[record_id], update)
        self.history[record_id].extend(history)
        return dict(self.records[record_id])


@pytest.fixture
def memory_store():
    return InMemoryRecordStore(natural_key_field="campaign_number")


# =============================================================================
# Campaign data
# =============================================================================


def make_campaign(n: int = 1, **overrides: Any) -> dict[str, Any]:
    """A valid campaign record; ``overrides`` replace top-level keys."""
    campaign = {
        "name": f"Spring Awareness {n}",
        "campaign_number": f"CN-{n:04d}",
        "dates": {"start": "2025-01-01", "end": "2025-03-31"},
        "price": {"target_amount": "10000.00", "actual_amount": "4000.00"},
        "media_budget": {"target_amount": "7500.00", "actual_spend": "2500.00"},
        "referral_rate": "10",
        "agency_markup_rate": "20",
        "metrics": {"units": "1250000", "clicks": "3100"},
    }
    campaign.update(overrides)
    return campaign


@pytest.fixture
def campaign_factory():
    return make_campaign
