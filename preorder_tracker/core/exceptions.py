"""Domain errors raised by the stores and the authoritative re-check.

Route handlers translate these into HTTP responses; nothing below the API
layer knows about status codes.
"""

from typing import Any


class PreorderTrackerError(Exception):
    """Base class for all application errors."""


class StoreError(PreorderTrackerError):
    """The row store could not be reached or rejected the query."""


class ConstraintStoreError(StoreError):
    """The constraint store could not be reached or rejected the query."""


class ConstraintNotFoundError(PreorderTrackerError):
    def __init__(self, constraint_id: str) -> None:
        super().__init__(f"Constraint {constraint_id} not found")
        self.constraint_id = constraint_id


class ConstraintConflictError(PreorderTrackerError):
    """An active rule for the same (source, vehicle type, target) tuple exists."""

    def __init__(self, key: tuple[Any, ...], existing_id: str | None = None) -> None:
        source_type, source_value, vehicle_type, target_type = key
        scope = vehicle_type or "all vehicles"
        super().__init__(
            f"An active constraint for {source_type}={source_value} -> {target_type} "
            f"({scope}) already exists"
        )
        self.key = key
        self.existing_id = existing_id


class ConstraintViolationError(PreorderTrackerError):
    """A submitted order breaks one or more rules for its model."""

    def __init__(self, violations: list[Any]) -> None:
        fields = ", ".join(v.field for v in violations)
        super().__init__(f"Order violates constraints for: {fields}")
        self.violations = violations


class ConstraintVerificationUnavailable(PreorderTrackerError):
    """Rules could not be loaded, so the order cannot be verified."""


class OrderNotFoundError(PreorderTrackerError):
    def __init__(self, order_id: str) -> None:
        super().__init__(f"Order {order_id} not found")
        self.order_id = order_id
