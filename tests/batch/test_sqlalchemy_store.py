"""
Tests for the SQLAlchemy reference store (in-memory SQLite).

Verifies:
- Ordered insert_many is all-or-nothing; unordered reports per-document errors
- Updates merge calculated_fields entry by entry
- bulk_write isolates each operation in its own savepoint
- Updates set top-level fields and append history
- Natural keys are unique per entity type
- Driver errors surface as StorageUnavailableError
"""

from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import text

from campaign_batch.domain.ops import InsertOne, UpdateOne, by_id, by_natural_key
from campaign_batch.ports import StoragePort
from campaign_batch.storage import SqlAlchemyRecordStore, merge_update, to_jsonable
from campaign_kernel.exceptions import StorageUnavailableError, WriteConflictError


def _entry(field, value, version="1.0.0"):
    return {
        "field": field,
        "value": value,
        "precision": 6,
        "rounding_mode": "half_up",
        "formula": "(actual / target) * 100",
        "calculation_version": version,
        "context": "storage",
        "is_stored": True,
        "calculated_at": "2025-02-15T12:00:00+00:00",
    }


def _doc(number, **extra):
    return {"campaign_number": number, "name": f"Campaign {number}", **extra}


class TestInsertMany:

    def test_satisfies_port(self, record_store):
        assert isinstance(record_store, StoragePort)

    def test_insert_and_get(self, record_store):
        result = record_store.insert_many([_doc("CN-1"), _doc("CN-2")])

        assert result.inserted_count == 2
        assert len(result.inserted_ids) == 2
        stored = record_store.get(result.inserted_ids[0])
        assert stored["campaign_number"] == "CN-1"
        assert stored["id"] == result.inserted_ids[0]
        assert record_store.count() == 2

    def test_empty(self, record_store):
        assert record_store.insert_many([]).inserted_count == 0

    def test_decimals_keep_scale(self, record_store):
        result = record_store.insert_many(
            [_doc("CN-1", price={"target_amount": Decimal("10.50")})]
        )
        stored = record_store.get(result.inserted_ids[0])
        assert stored["price"]["target_amount"] == "10.50"

    def test_all_or_nothing(self, record_store):
        with pytest.raises(WriteConflictError) as exc_info:
            record_store.insert_many([_doc("CN-1"), _doc("CN-2"), _doc("CN-1")])
        assert exc_info.value.natural_key == "CN-1"
        assert record_store.count() == 0

    def test_unordered_keeps_going_past_conflicts(self, record_store):
        record_store.insert_many([_doc("CN-5")])

        result = record_store.insert_many(
            [_doc("CN-4"), _doc("CN-5"), _doc("CN-6"), _doc("CN-4")], ordered=False,
        )

        assert result.inserted_count == 2
        assert len(result.inserted_ids) == 2
        assert [(e.index, e.code) for e in result.write_errors] == [
            (1, "WRITE_CONFLICT"),
            (3, "WRITE_CONFLICT"),
        ]
        assert record_store.count() == 3
        assert record_store.find_by_natural_key("CN-6") is not None

    def test_unordered_rejects_bad_identifier_only(self, record_store):
        result = record_store.insert_many(
            [_doc("CN-1", id="not-a-uuid"), _doc("CN-2")], ordered=False,
        )
        assert [e.index for e in result.write_errors] == [0]
        assert record_store.count() == 1

    def test_existing_natural_key(self, record_store):
        record_store.insert_many([_doc("CN-1")])
        with pytest.raises(WriteConflictError):
            record_store.insert_many([_doc("CN-1")])
        assert record_store.count() == 1

    def test_invalid_identifier(self, record_store):
        with pytest.raises(WriteConflictError):
            record_store.insert_many([_doc("CN-1", id="not-a-uuid")])

    def test_history_rows(self, record_store):
        result = record_store.insert_many(
            [_doc("CN-1", calculation_history=[_entry("price.spend_percentage", "40.000000")])]
        )
        rows = record_store.history_for(result.inserted_ids[0])
        assert len(rows) == 1
        assert rows[0]["field"] == "price.spend_percentage"
        assert rows[0]["value"] == "40.000000"

    def test_driver_error_is_wrapped(self, record_store, session):
        session.execute(text("DROP TABLE calculated_field_history"))
        with pytest.raises(StorageUnavailableError):
            record_store.insert_many(
                [_doc("CN-1", calculation_history=[_entry("net_revenue", "9000.000000")])]
            )


class TestBulkWrite:

    def test_operations_are_isolated(self, record_store):
        result = record_store.bulk_write([
            UpdateOne(filter=by_id(uuid4()), document={"name": "ghost"}),
            InsertOne(_doc("CN-1")),
            InsertOne(_doc("CN-1")),
            InsertOne(_doc("CN-2")),
        ])

        assert result.inserted_count == 2
        assert result.modified_count == 0
        assert [(e.index, e.code) for e in result.write_errors] == [
            (0, "RECORD_NOT_FOUND"),
            (2, "WRITE_CONFLICT"),
        ]
        assert record_store.count() == 2

    def test_update_sets_top_level_fields(self, record_store):
        (record_id,) = record_store.insert_many(
            [_doc("CN-1", price={"target_amount": "100.00"})]
        ).inserted_ids

        result = record_store.bulk_write([
            UpdateOne(filter=by_id(record_id), document={"name": "Renamed"}),
        ])
        assert result.modified_count == 1
        stored = record_store.get(record_id)
        assert stored["name"] == "Renamed"
        assert stored["price"] == {"target_amount": "100.00"}

    def test_history_is_appended(self, record_store):
        (record_id,) = record_store.insert_many(
            [_doc("CN-1", calculation_history=[_entry("price.spend_percentage", "40.000000")])]
        ).inserted_ids

        record_store.bulk_write([
            UpdateOne(
                filter=by_natural_key("CN-1"),
                document={"calculation_version": "2.0.0"},
                history=(_entry("price.spend_percentage", "0.400000", "2.0.0"),),
            ),
        ])

        rows = record_store.history_for(record_id, "price.spend_percentage")
        assert [(r["value"], r["calculation_version"]) for r in rows] == [
            ("40.000000", "1.0.0"),
            ("0.400000", "2.0.0"),
        ]
        stored = record_store.get(record_id)
        assert len(stored["calculation_history"]) == 2
        assert stored["calculation_version"] == "2.0.0"

    def test_caller_cannot_replace_history(self, record_store):
        (record_id,) = record_store.insert_many(
            [_doc("CN-1", calculation_history=[_entry("net_revenue", "9000.000000")])]
        ).inserted_ids
        record_store.bulk_write([
            UpdateOne(filter=by_id(record_id), document={"calculation_history": []}),
        ])
        assert len(record_store.get(record_id)["calculation_history"]) == 1

    def test_upsert_by_natural_key_inserts(self, record_store):
        result = record_store.bulk_write([
            UpdateOne(filter=by_natural_key("CN-7"), document={"name": "New"}, upsert=True),
        ])
        assert result.inserted_count == 1
        assert record_store.find_by_natural_key("CN-7")["name"] == "New"

    def test_upsert_by_id_keeps_identifier(self, record_store):
        record_id = str(uuid4())
        record_store.bulk_write([
            UpdateOne(filter=by_id(record_id), document=_doc("CN-8"), upsert=True),
        ])
        assert record_store.get(record_id)["campaign_number"] == "CN-8"

    def test_natural_key_clash_on_update(self, record_store):
        first, _ = record_store.insert_many([_doc("CN-1"), _doc("CN-2")]).inserted_ids
        result = record_store.bulk_write([
            UpdateOne(filter=by_id(first), document={"campaign_number": "CN-2"}, upsert=True),
        ])
        assert result.write_errors[0].code == "WRITE_CONFLICT"
        assert record_store.get(first)["campaign_number"] == "CN-1"

    def test_natural_key_change(self, record_store):
        (record_id,) = record_store.insert_many([_doc("CN-1")]).inserted_ids
        record_store.bulk_write([
            UpdateOne(filter=by_id(record_id), document={"campaign_number": "CN-9"}),
        ])
        assert record_store.find_by_natural_key("CN-9")["id"] == record_id
        assert record_store.find_by_natural_key("CN-1") is None

    def test_calculated_fields_are_merged(self, record_store):
        (record_id,) = record_store.insert_many([_doc(
            "CN-1",
            margin_amount="400.000000",
            price={"spend_percentage": "40.000000"},
            calculated_fields={
                "margin_amount": _entry("margin_amount", "400.000000"),
                "price.spend_percentage": _entry("price.spend_percentage", "40.000000"),
            },
        )]).inserted_ids

        record_store.find_one_and_update(by_id(record_id), {
            "price": {"spend_percentage": "25.000000"},
            "calculated_fields": {
                "price.spend_percentage": _entry("price.spend_percentage", "25.000000"),
            },
        })

        fields = record_store.get(record_id)["calculated_fields"]
        assert set(fields) == {"margin_amount", "price.spend_percentage"}
        assert fields["margin_amount"]["value"] == "400.000000"
        assert fields["price.spend_percentage"]["value"] == "25.000000"


class TestFindOneAndUpdate:

    def test_missing(self, record_store):
        assert record_store.find_one_and_update(by_id(uuid4()), {"name": "x"}) is None

    def test_update(self, record_store):
        (record_id,) = record_store.insert_many([_doc("CN-1")]).inserted_ids
        updated = record_store.find_one_and_update(
            by_id(record_id), {"name": "Updated"}, [_entry("net_revenue", "1.000000")],
        )
        assert updated["name"] == "Updated"
        assert len(record_store.history_for(record_id)) == 1


class TestEntityIsolation:

    def test_entity_types_do_not_mix(self, record_store, session, deterministic_clock):
        (record_id,) = record_store.insert_many([_doc("CN-1")]).inserted_ids
        plans = SqlAlchemyRecordStore(
            session, entity_type="plan", natural_key_field="campaign_number",
            clock=deterministic_clock,
        )
        assert plans.get(record_id) is None
        assert plans.find_by_natural_key("CN-1") is None
        plans.insert_many([_doc("CN-1")])
        assert plans.count() == 1
        assert record_store.count() == 1

    def test_history_for_bad_id(self, record_store):
        assert record_store.history_for("nope") == []


def test_to_jsonable():
    assert to_jsonable({"a": Decimal("1.50"), "b": (1, Decimal("2"))}) == {
        "a": "1.50",
        "b": [1, "2"],
    }


class TestMergeUpdate:

    def test_untouched_entries_survive(self):
        stored = {"cost": "600.00", "calculated_fields": {"margin_amount": {"value": "1"}}}
        merged = merge_update(stored, {"name": "Renamed"})
        assert merged["name"] == "Renamed"
        assert merged["calculated_fields"] == {"margin_amount": {"value": "1"}}

    def test_replaced_group_drops_stale_entries(self):
        stored = {
            "price": {"target_amount": "100", "pacing_status": "behind"},
            "calculated_fields": {
                "price.pacing_status": {"value": "behind"},
                "price.spend_percentage": {"value": "40"},
                "net_revenue": {"value": "90"},
            },
        }
        merged = merge_update(stored, {
            "price": {"target_amount": "200", "spend_percentage": "20"},
            "calculated_fields": {"price.spend_percentage": {"value": "20"}},
        })
        assert merged["calculated_fields"] == {
            "price.spend_percentage": {"value": "20"},
            "net_revenue": {"value": "90"},
        }

    def test_stored_document_not_mutated(self):
        stored = {"calculated_fields": {"net_revenue": {"value": "90"}}}
        merge_update(stored, {"calculated_fields": {"cpc": {"value": "1"}}})
        assert stored == {"calculated_fields": {"net_revenue": {"value": "90"}}}

    def test_no_fields_key_added(self):
        assert merge_update({"name": "a"}, {"name": "b"}) == {"name": "b"}
