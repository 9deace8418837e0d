"""Order store (``orders`` table).

Only the columns the tracker form writes are handled here; secrets such as
edit codes never leave the database through this module.
"""

import uuid
from typing import Any

from pydantic import ValidationError

from supabase import Client

from ..core.exceptions import OrderNotFoundError, StoreError
from ..core.logging import get_logger
from ..models.order import Order, OrderPayload
from .client import run_query, utc_now

logger = get_logger("db.orders")

ORDER_PUBLIC_COLUMNS = (
    "id, name, vehicle_type, order_date, country, model, range, drive, color, "
    "interior, wheels, tow_hitch, autopilot, delivery_window, delivery_location, "
    "created_at, updated_at"
)


def _row_to_order(row: dict[str, Any]) -> Order:
    try:
        return Order(**row)
    except ValidationError as e:
        raise StoreError(f"Malformed order row {row.get('id')}: {e}") from e


class OrderStore:
    def __init__(self, client: Client, table: str = "orders") -> None:
        self.client = client
        self.table = table

    def get_order(self, order_id: str) -> Order:
        rows = run_query(
            lambda: self.client.table(self.table)
            .select(ORDER_PUBLIC_COLUMNS)
            .eq("id", order_id)
            .limit(1),
            "get_order",
            self.table,
        )
        if not rows:
            raise OrderNotFoundError(order_id)
        return _row_to_order(rows[0])

    def create_order(self, payload: OrderPayload) -> Order:
        now = utc_now()
        row = {
            **payload.model_dump(mode="json"),
            "id": str(uuid.uuid4()),
            "created_at": now,
            "updated_at": now,
        }
        rows = run_query(
            lambda: self.client.table(self.table).insert(row), "create_order", self.table
        )
        order = _row_to_order(rows[0] if rows else row)
        logger.info("Created order %s (%s %s)", order.id, order.vehicle_type.value, order.model)
        return order

    def update_order(self, order_id: str, payload: OrderPayload) -> Order:
        changes = {**payload.model_dump(mode="json"), "updated_at": utc_now()}
        rows = run_query(
            lambda: self.client.table(self.table).update(changes).eq("id", order_id),
            "update_order",
            self.table,
        )
        if not rows:
            raise OrderNotFoundError(order_id)
        return _row_to_order(rows[0])
