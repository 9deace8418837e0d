"""Tests for the Supabase-backed constraint, option and order stores."""

import json

import pytest
from conftest import make_row
from pydantic import ValidationError

from preorder_tracker.core.enums import TargetType
from preorder_tracker.core.exceptions import (
    ConstraintConflictError,
    ConstraintNotFoundError,
    ConstraintStoreError,
    OrderNotFoundError,
)
from preorder_tracker.db.constraints import ConstraintStore, decode_values, row_to_record
from preorder_tracker.models.constraint import ConstraintCreate, ConstraintUpdate
from preorder_tracker.models.order import OrderPayload

TABLE = "option_constraints"


def _create(**overrides):
    data = {
        "sourceType": "model",
        "sourceValue": "premium_lr_awd",
        "vehicleType": "Model 3",
        "targetType": "wheels",
        "constraintType": "allow",
        "values": ["18", "19"],
    }
    data.update(overrides)
    return ConstraintCreate.model_validate(data)


# ---------------------------------------------------------------------------
# Row decoding
# ---------------------------------------------------------------------------


class TestDecoding:
    def test_decode_json_list(self):
        assert decode_values('["18", "19"]') == ["18", "19"]

    def test_decode_json_string(self):
        assert decode_values('"awd"') == "awd"

    def test_non_json_text_passes_through(self):
        assert decode_values("awd") == "awd"

    def test_already_decoded(self):
        assert decode_values(["18"]) == ["18"]

    def test_row_to_record_decodes_values(self):
        record = row_to_record(make_row(values=["18", "19"]))
        assert record.values == ["18", "19"]

    def test_blank_vehicle_type_is_global(self):
        record = row_to_record(make_row(vehicle_type=""))
        assert record.vehicle_type is None

    def test_row_missing_fields_is_skipped(self):
        assert row_to_record({"id": "x"}) is None


# ---------------------------------------------------------------------------
# Listing and caching
# ---------------------------------------------------------------------------


class TestListActive:
    def test_filters_by_vehicle_type_including_global(self, supabase, constraint_store):
        supabase.tables[TABLE] = [
            make_row(id="global", vehicle_type=None),
            make_row(id="m3", vehicle_type="Model 3", target_type="drive",
                     constraint_type="fixed", values="awd"),
            make_row(id="my", vehicle_type="Model Y", target_type="range",
                     constraint_type="fixed", values="standard"),
            make_row(id="inactive", is_active=False),
        ]
        records = constraint_store.list_active_constraints("model", "premium_lr_awd", "Model 3")
        assert sorted(r.id for r in records) == ["global", "m3"]

    def test_ordered_oldest_first_within_target(self, supabase, constraint_store):
        supabase.tables[TABLE] = [
            make_row(id="newer", created_at="2025-03-01T00:00:00+00:00"),
            make_row(id="older", created_at="2025-01-01T00:00:00+00:00"),
        ]
        records = constraint_store.list_active_constraints("model", "premium_lr_awd")
        assert [r.id for r in records] == ["older", "newer"]

    def test_malformed_rows_skipped(self, supabase, constraint_store):
        supabase.tables[TABLE] = [make_row(id="ok"), {"id": "broken", "is_active": True}]
        assert [r.id for r in constraint_store.list_active_constraints()] == ["ok"]

    def test_results_are_cached(self, supabase, constraint_store):
        supabase.tables[TABLE] = [make_row()]
        constraint_store.list_active_constraints("model", "premium_lr_awd")
        constraint_store.list_active_constraints("model", "premium_lr_awd")
        assert supabase.count(TABLE) == 1

    def test_cached_records_are_not_shared(self, supabase, constraint_store):
        supabase.tables[TABLE] = [make_row(values=["18", "19"])]
        first = constraint_store.list_active_constraints()
        first[0].values.append("22")
        with pytest.raises(ValidationError):
            first[0].is_active = False

        second = constraint_store.list_active_constraints()
        assert second[0].values == ["18", "19"]
        assert supabase.count(TABLE) == 1

    def test_cache_disabled_with_zero_ttl(self, supabase):
        store = ConstraintStore(supabase, table=TABLE, cache_ttl=0)
        supabase.tables[TABLE] = [make_row()]
        store.list_active_constraints()
        store.list_active_constraints()
        assert supabase.count(TABLE) == 2

    def test_write_invalidates_cache(self, supabase, constraint_store):
        supabase.tables[TABLE] = []
        assert constraint_store.list_active_constraints("model", "premium_lr_awd") == []
        constraint_store.create_constraint(_create())
        records = constraint_store.list_active_constraints("model", "premium_lr_awd")
        assert [r.target_type for r in records] == ["wheels"]

    def test_store_failure_raises(self, supabase, constraint_store):
        supabase.fail = True
        with pytest.raises(ConstraintStoreError):
            constraint_store.list_active_constraints()


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------


class TestWrites:
    def test_create_stores_json_text(self, supabase, constraint_store):
        record = constraint_store.create_constraint(_create())
        row = supabase.tables[TABLE][0]
        assert json.loads(row["values"]) == ["18", "19"]
        assert record.values == ["18", "19"]
        assert record.vehicle_type == "Model 3"
        assert record.is_active

    def test_create_conflict(self, constraint_store):
        first = constraint_store.create_constraint(_create())
        with pytest.raises(ConstraintConflictError) as exc_info:
            constraint_store.create_constraint(_create(values=["20"]))
        assert exc_info.value.existing_id == first.id

    def test_global_and_specific_rules_do_not_conflict(self, constraint_store):
        constraint_store.create_constraint(_create())
        record = constraint_store.create_constraint(_create(vehicleType=None))
        assert record.vehicle_type is None

    def test_create_rejects_bad_payload_shape(self):
        with pytest.raises(ValueError):
            _create(constraintType="fixed", values=["awd"])
        with pytest.raises(ValueError):
            _create(constraintType="allow", values="18")

    def test_disable_payload_normalized(self):
        assert _create(targetType="towHitch", constraintType="disable", values=None).values == []

    def test_update_values(self, constraint_store):
        record = constraint_store.create_constraint(_create())
        updated = constraint_store.update_constraint(
            record.id, ConstraintUpdate.model_validate({"values": ["19", "20"]})
        )
        assert updated.values == ["19", "20"]

    def test_update_type_and_values(self, constraint_store):
        record = constraint_store.create_constraint(_create())
        updated = constraint_store.update_constraint(
            record.id,
            ConstraintUpdate.model_validate({"constraintType": "fixed", "values": "19"}),
        )
        assert updated.constraint_type == "fixed"
        assert updated.values == "19"

    def test_update_rejects_mismatched_values(self, constraint_store):
        record = constraint_store.create_constraint(_create())
        with pytest.raises(ValueError):
            constraint_store.update_constraint(
                record.id, ConstraintUpdate.model_validate({"constraintType": "fixed"})
            )

    def test_update_missing(self, constraint_store):
        with pytest.raises(ConstraintNotFoundError):
            constraint_store.update_constraint("nope", ConstraintUpdate(is_active=False))

    def test_reactivation_conflict(self, constraint_store):
        old = constraint_store.create_constraint(_create())
        constraint_store.deactivate_constraint(old.id)
        constraint_store.create_constraint(_create(values=["20"]))
        with pytest.raises(ConstraintConflictError):
            constraint_store.update_constraint(old.id, ConstraintUpdate(is_active=True))

    def test_deactivate(self, constraint_store):
        record = constraint_store.create_constraint(_create())
        constraint_store.deactivate_constraint(record.id)
        assert constraint_store.list_active_constraints() == []
        assert constraint_store.get_constraint(record.id).is_active is False

    def test_deactivate_missing(self, constraint_store):
        with pytest.raises(ConstraintNotFoundError):
            constraint_store.deactivate_constraint("nope")


# ---------------------------------------------------------------------------
# Options and orders
# ---------------------------------------------------------------------------


class TestOptionStore:
    def test_groups_by_type_in_display_order(self, supabase, option_store):
        supabase.tables["options"] = [
            {"type": "wheels", "value": "19", "label": '19"', "sort_order": 2, "is_active": True},
            {"type": "wheels", "value": "18", "label": '18"', "sort_order": 1, "is_active": True},
            {"type": "drive", "value": "awd", "label": "AWD", "sort_order": 1, "is_active": True},
            {"type": "wheels", "value": "22", "label": '22"', "sort_order": 3, "is_active": False},
            {"type": "wheels", "value": "21", "label": '21"', "sort_order": 4,
             "vehicle_type": "Model Y", "is_active": True},
        ]
        grouped = option_store.list_options(vehicle_type="Model 3")
        assert [o.value for o in grouped["wheels"]] == ["18", "19"]
        assert [o.value for o in grouped["drive"]] == ["awd"]

    def test_options_by_target(self, supabase, option_store):
        supabase.tables["options"] = [
            {"type": "towHitch", "value": "ja", "label": "Ja", "is_active": True},
            {"type": "country", "value": "de", "label": "Deutschland", "is_active": True},
        ]
        by_target = option_store.options_by_target("Model 3")
        assert set(by_target) == set(TargetType)
        assert [o.value for o in by_target[TargetType.TOW_HITCH]] == ["ja"]
        assert by_target[TargetType.WHEELS] == []


class TestOrderStore:
    def test_create_and_get(self, order_store):
        payload = OrderPayload.model_validate(
            {"name": "Max", "vehicleType": "Model Y", "model": "premium", "wheels": "19"}
        )
        order = order_store.create_order(payload)
        fetched = order_store.get_order(order.id)
        assert fetched.wheels == "19"
        assert fetched.vehicle_type.value == "Model Y"

    def test_update(self, order_store):
        payload = OrderPayload.model_validate({"name": "Max", "vehicleType": "Model Y"})
        order = order_store.create_order(payload)
        updated = order_store.update_order(
            order.id, payload.model_copy(update={"color": "ultra_red"})
        )
        assert updated.color == "ultra_red"

    def test_missing_order(self, order_store):
        with pytest.raises(OrderNotFoundError):
            order_store.get_order("nope")
