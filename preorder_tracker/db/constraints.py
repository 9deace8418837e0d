"""Constraint store backed by the Supabase ``option_constraints`` table.

Rows keep ``values`` as JSON text. It is decoded exactly once, here, so that
everything above the store sees native lists/strings.
"""

import json
import threading
import uuid
from typing import Any, Optional

from cachetools import TTLCache
from pydantic import ValidationError

from supabase import Client

from ..core.enums import ConstraintType
from ..core.exceptions import (
    ConstraintConflictError,
    ConstraintNotFoundError,
    ConstraintStoreError,
)
from ..core.logging import get_logger
from ..models.constraint import (
    ConstraintCreate,
    ConstraintRecord,
    ConstraintUpdate,
    check_values_shape,
)
from .client import run_query, utc_now

logger = get_logger("db.constraints")

_ListKey = tuple[Optional[str], Optional[str], Optional[str]]


def decode_values(raw: Any) -> Any:
    """Decode the JSON-encoded ``values`` column.

    Non-JSON text is passed through unchanged; the resolver decides whether
    it is usable for the rule's constraint type.
    """
    if not isinstance(raw, str):
        return raw
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Constraint values are not valid JSON: %r", raw)
        return raw


def row_to_record(row: dict[str, Any]) -> ConstraintRecord | None:
    """Convert a table row to a record, or None if the row is unusable."""
    try:
        return ConstraintRecord(**{**row, "values": decode_values(row.get("values"))})
    except ValidationError as e:
        logger.warning("Skipping malformed constraint row %s: %s", row.get("id"), e)
        return None


class ConstraintStore:
    """CRUD + filtered listing of constraint rules.

    Listing results are cached per filter in a TTL cache; every write clears
    the cache so an admin edit is visible to the next read. Callers always
    get their own copies of the cached records.
    """

    def __init__(
        self,
        client: Client,
        table: str = "option_constraints",
        cache_ttl: int = 60,
        cache_maxsize: int = 256,
    ) -> None:
        self.client = client
        self.table = table
        self._cache: TTLCache[_ListKey, list[ConstraintRecord]] | None = (
            TTLCache(maxsize=cache_maxsize, ttl=cache_ttl) if cache_ttl > 0 else None
        )
        self._lock = threading.Lock()

    # -- helpers -------------------------------------------------------------

    def _rows(self, build, operation: str) -> list[dict[str, Any]]:
        return run_query(build, operation, self.table, error_cls=ConstraintStoreError)

    def _invalidate(self) -> None:
        if self._cache is not None:
            with self._lock:
                self._cache.clear()

    def find_active(
        self, key: tuple[str, str, Optional[str], str]
    ) -> list[ConstraintRecord]:
        """Active rules with exactly this (source, vehicle type, target) tuple."""
        source_type, source_value, vehicle_type, target_type = key

        def _query():
            query = (
                self.client.table(self.table)
                .select("*")
                .eq("is_active", True)
                .eq("source_type", source_type)
                .eq("source_value", source_value)
                .eq("target_type", target_type)
            )
            if vehicle_type is None:
                return query.is_("vehicle_type", "null")
            return query.eq("vehicle_type", vehicle_type)

        rows = self._rows(_query, "find_active")
        return [r for r in (row_to_record(row) for row in rows) if r is not None]

    # -- reads ---------------------------------------------------------------

    def list_active_constraints(
        self,
        source_type: Optional[str] = None,
        source_value: Optional[str] = None,
        vehicle_type: Optional[str] = None,
    ) -> list[ConstraintRecord]:
        """List active rules.

        Args:
            source_type: Only rules triggered by this option type.
            source_value: Only rules for this source value.
            vehicle_type: Only rules for this vehicle type *or* global rules.

        Returns:
            Records ordered by source type, source value, target type and
            creation time (oldest first, which makes the oldest duplicate
            win resolution).

        Raises:
            ConstraintStoreError: the store could not be queried.
        """
        key: _ListKey = (source_type, source_value, vehicle_type)
        if self._cache is not None:
            with self._lock:
                cached = self._cache.get(key)
            if cached is not None:
                return [r.model_copy(deep=True) for r in cached]

        def _query():
            query = self.client.table(self.table).select("*").eq("is_active", True)
            if source_type:
                query = query.eq("source_type", source_type)
            if source_value:
                query = query.eq("source_value", source_value)
            if vehicle_type:
                query = query.or_(
                    f'vehicle_type.is.null,vehicle_type.eq."{vehicle_type}"'
                )
            return (
                query.order("source_type")
                .order("source_value")
                .order("target_type")
                .order("created_at")
            )

        rows = self._rows(_query, "list_active")
        records = [r for r in (row_to_record(row) for row in rows) if r is not None]

        if self._cache is not None:
            with self._lock:
                self._cache[key] = records
        return [r.model_copy(deep=True) for r in records]

    def get_constraint(self, constraint_id: str) -> ConstraintRecord:
        rows = self._rows(
            lambda: self.client.table(self.table)
            .select("*")
            .eq("id", constraint_id)
            .limit(1),
            "get",
        )
        record = row_to_record(rows[0]) if rows else None
        if record is None:
            raise ConstraintNotFoundError(constraint_id)
        return record

    # -- writes --------------------------------------------------------------

    def create_constraint(self, data: ConstraintCreate) -> ConstraintRecord:
        """Insert a new active rule.

        Raises:
            ConstraintConflictError: an active rule with the same
                (source type, source value, vehicle type, target type) exists.
        """
        existing = self.find_active(data.key)
        if existing:
            raise ConstraintConflictError(data.key, existing[0].id)

        now = utc_now()
        row = {
            "id": str(uuid.uuid4()),
            "source_type": data.source_type.value,
            "source_value": data.source_value,
            "vehicle_type": data.vehicle_type.value if data.vehicle_type else None,
            "target_type": data.target_type.value,
            "constraint_type": data.constraint_type.value,
            "values": json.dumps(data.values),
            "is_active": True,
            "created_at": now,
            "updated_at": now,
        }
        try:
            rows = self._rows(
                lambda: self.client.table(self.table).insert(row), "insert"
            )
        except ConstraintStoreError as e:
            # Unique index hit by a concurrent create
            if "duplicate key" in str(e) or "23505" in str(e):
                raise ConstraintConflictError(data.key) from e
            raise
        finally:
            self._invalidate()

        record = row_to_record(rows[0] if rows else row)
        if record is None:
            raise ConstraintStoreError(f"Insert into {self.table} returned a malformed row")
        logger.info(
            "Created constraint %s: %s=%s -> %s %s (%s)",
            record.id,
            record.source_type,
            record.source_value,
            record.target_type,
            record.constraint_type,
            record.vehicle_type or "all vehicles",
        )
        return record

    def update_constraint(
        self, constraint_id: str, data: ConstraintUpdate
    ) -> ConstraintRecord:
        """Apply a partial update.

        Raises:
            ConstraintNotFoundError: no rule with this id.
            ConstraintConflictError: re-activating would duplicate an active rule.
            ValueError: the resulting payload does not fit the constraint type.
        """
        current = self.get_constraint(constraint_id)
        fields = data.model_fields_set
        changes: dict[str, Any] = {}

        if "constraint_type" in fields or "values" in fields:
            constraint_type = (
                data.constraint_type
                if data.constraint_type is not None
                else ConstraintType(current.constraint_type)
            )
            values = data.values if "values" in fields else current.values
            changes["constraint_type"] = constraint_type.value
            changes["values"] = json.dumps(check_values_shape(constraint_type, values))

        if data.is_active is not None:
            if data.is_active and not current.is_active:
                clash = [r for r in self.find_active(current.key) if r.id != current.id]
                if clash:
                    raise ConstraintConflictError(current.key, clash[0].id)
            changes["is_active"] = data.is_active

        if not changes:
            return current

        changes["updated_at"] = utc_now()
        try:
            rows = self._rows(
                lambda: self.client.table(self.table)
                .update(changes)
                .eq("id", constraint_id),
                "update",
            )
        finally:
            self._invalidate()

        if not rows:
            raise ConstraintNotFoundError(constraint_id)
        record = row_to_record(rows[0])
        if record is None:
            raise ConstraintStoreError(f"Update of {self.table} returned a malformed row")
        return record

    def deactivate_constraint(self, constraint_id: str) -> None:
        """Soft delete: the row stays for the audit trail but stops resolving."""
        try:
            rows = self._rows(
                lambda: self.client.table(self.table)
                .update({"is_active": False, "updated_at": utc_now()})
                .eq("id", constraint_id),
                "deactivate",
            )
        finally:
            self._invalidate()

        if not rows:
            raise ConstraintNotFoundError(constraint_id)
        logger.info("Deactivated constraint %s", constraint_id)
