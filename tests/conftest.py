"""Shared fixtures: environment, an in-memory Supabase stand-in and rule builders."""

import copy
import itertools
import json
import os

# Settings are read at import time of the app module
os.environ.setdefault("SUPABASE_URL", "http://localhost:54321")
os.environ.setdefault("SUPABASE_KEY", "test-key")
os.environ.setdefault("API_ADMIN_KEY", "test-admin-key")

import pytest

from preorder_tracker.db.constraints import ConstraintStore
from preorder_tracker.db.options import OptionStore
from preorder_tracker.db.orders import OrderStore
from preorder_tracker.models.constraint import ConstraintRecord

ADMIN_HEADERS = {"X-Admin-Key": "test-admin-key"}


# ---------------------------------------------------------------------------
# In-memory Supabase client
# ---------------------------------------------------------------------------


class FakeResult:
    def __init__(self, data):
        self.data = data


class FakeQuery:
    """Subset of the PostgREST query builder used by the stores."""

    def __init__(self, db: "FakeSupabase", table: str):
        self.db = db
        self.table_name = table
        self.filters = []
        self.orders = []
        self.row_limit = None
        self.action = "select"
        self.payload = None

    # -- builder -------------------------------------------------------------

    def select(self, columns="*"):
        self.action = "select"
        return self

    def insert(self, row):
        self.action = "insert"
        self.payload = row
        return self

    def update(self, changes):
        self.action = "update"
        self.payload = changes
        return self

    def eq(self, column, value):
        self.filters.append(lambda row: row.get(column) == value)
        return self

    def is_(self, column, value):
        assert value == "null"
        self.filters.append(lambda row: row.get(column) is None)
        return self

    def or_(self, expression):
        conditions = [_parse_condition(c) for c in expression.split(",")]
        self.filters.append(lambda row: any(cond(row) for cond in conditions))
        return self

    def order(self, column, desc=False):
        self.orders.append(column)
        return self

    def limit(self, n):
        self.row_limit = n
        return self

    # -- execution -----------------------------------------------------------

    def _matches(self, row):
        return all(f(row) for f in self.filters)

    def execute(self):
        self.db.queries.append((self.table_name, self.action))
        if self.db.fail:
            raise RuntimeError("connection refused")

        rows = self.db.tables.setdefault(self.table_name, [])

        if self.action == "insert":
            row = copy.deepcopy(self.payload)
            rows.append(row)
            return FakeResult([copy.deepcopy(row)])

        if self.action == "update":
            updated = []
            for row in rows:
                if self._matches(row):
                    row.update(copy.deepcopy(self.payload))
                    updated.append(copy.deepcopy(row))
            return FakeResult(updated)

        selected = [copy.deepcopy(r) for r in rows if self._matches(r)]
        for column in reversed(self.orders):
            selected.sort(key=lambda r: (r.get(column) is None, str(r.get(column))))
        if self.row_limit is not None:
            selected = selected[: self.row_limit]
        return FakeResult(selected)


def _parse_condition(condition):
    column, op, value = condition.split(".", 2)
    value = value.strip('"')
    if op == "is" and value == "null":
        return lambda row: row.get(column) is None
    if op == "eq":
        return lambda row: row.get(column) is not None and str(row.get(column)) == value
    raise ValueError(f"unsupported filter {condition}")


class FakeSupabase:
    def __init__(self):
        self.tables = {}
        self.queries = []
        self.fail = False

    def table(self, name):
        return FakeQuery(self, name)

    def count(self, table, action="select"):
        return sum(1 for t, a in self.queries if t == table and a == action)


# ---------------------------------------------------------------------------
# Rule helpers
# ---------------------------------------------------------------------------

_ids = itertools.count(1)


def make_record(
    source_value="premium_lr_awd",
    target_type="wheels",
    constraint_type="allow",
    values=None,
    vehicle_type=None,
    source_type="model",
    is_active=True,
    id=None,
):
    """Build a ConstraintRecord with decoded values."""
    return ConstraintRecord(
        id=id or f"c{next(_ids)}",
        source_type=source_type,
        source_value=source_value,
        vehicle_type=vehicle_type,
        target_type=target_type,
        constraint_type=constraint_type,
        values=values,
        is_active=is_active,
    )


def make_row(**kwargs):
    """Build a raw table row (values JSON-encoded as the store keeps them)."""
    values = kwargs.pop("values", None)
    row = {
        "id": kwargs.pop("id", f"r{next(_ids)}"),
        "source_type": "model",
        "source_value": "premium_lr_awd",
        "vehicle_type": None,
        "target_type": "wheels",
        "constraint_type": "allow",
        "values": json.dumps(values),
        "is_active": True,
        "created_at": kwargs.pop("created_at", "2025-01-01T00:00:00+00:00"),
        "updated_at": None,
    }
    row.update(kwargs)
    return row


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def supabase():
    return FakeSupabase()


@pytest.fixture
def constraint_store(supabase):
    return ConstraintStore(supabase, table="option_constraints", cache_ttl=60)


@pytest.fixture
def option_store(supabase):
    return OptionStore(supabase, table="options")


@pytest.fixture
def order_store(supabase):
    return OrderStore(supabase, table="orders")
