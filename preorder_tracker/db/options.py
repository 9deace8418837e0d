"""Dropdown option store (``options`` table)."""

import json
from typing import Any, Optional

from supabase import Client

from ..core.enums import TargetType
from ..core.logging import get_logger
from ..models.option import FormOption
from .client import run_query

logger = get_logger("db.options")


def _parse_metadata(raw: Any) -> Optional[dict[str, Any]]:
    if raw is None or isinstance(raw, dict):
        return raw
    try:
        parsed = json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        logger.warning("Option metadata is not valid JSON: %r", raw)
        return None
    return parsed if isinstance(parsed, dict) else None


class OptionStore:
    def __init__(self, client: Client, table: str = "options") -> None:
        self.client = client
        self.table = table

    def list_options(
        self,
        option_type: Optional[str] = None,
        vehicle_type: Optional[str] = None,
    ) -> dict[str, list[FormOption]]:
        """Active options grouped by option type, in display order.

        Options without a vehicle type apply to every vehicle.
        """

        def _query():
            query = self.client.table(self.table).select(
                "type, value, label, metadata, vehicle_type, sort_order"
            )
            query = query.eq("is_active", True)
            if option_type:
                query = query.eq("type", option_type)
            if vehicle_type:
                query = query.or_(
                    f'vehicle_type.is.null,vehicle_type.eq."{vehicle_type}"'
                )
            return query.order("type").order("sort_order").order("label")

        grouped: dict[str, list[FormOption]] = {}
        for row in run_query(_query, "list_options", self.table):
            if not row.get("type") or row.get("value") is None:
                continue
            grouped.setdefault(str(row["type"]), []).append(
                FormOption(
                    value=str(row["value"]),
                    label=str(row.get("label") or row["value"]),
                    sort_order=int(row.get("sort_order") or 0),
                    vehicle_type=row.get("vehicle_type"),
                    metadata=_parse_metadata(row.get("metadata")),
                )
            )
        return grouped

    def options_by_target(self, vehicle_type: Optional[str]) -> dict[TargetType, list[FormOption]]:
        """Option lists for every constrainable field of one vehicle type."""
        grouped = self.list_options(vehicle_type=vehicle_type)
        return {target: grouped.get(target.value, []) for target in TargetType}
