"""Form binding: applies a decision map to the dependent fields of a form.

Each dependent field is in one of four states:

    open      unrestricted   every option shown, value kept
    filtered  allow          options intersected with the allowed values;
                             an out-of-set value is reset per ResetPolicy
    locked    fixed          read-only, value overwritten with the fixed value
    hidden    disable        removed from the step, value cleared

Transitions happen only when the source field (model/trim) changes. The
:class:`FormSession` re-binds *every* field on each change, including fields
on wizard steps the user already left, so going back and switching the trim
never leaves a stale decision behind.
"""

from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import Optional

from ..core.enums import MODEL_SOURCE, FieldState, ResetPolicy, TargetType, VehicleType
from ..core.logging import get_logger, log_error
from ..models.constraint import (
    AllowDecision,
    ConstraintRecord,
    DecisionMap,
    DisableDecision,
    FieldDecision,
    FixedDecision,
)
from ..models.option import FormOption
from .resolver import decision_for, resolve_for

logger = get_logger("form_binding")

ConstraintFetcher = Callable[[str, Optional[str]], Awaitable[list[ConstraintRecord]]]


@dataclass
class FieldBinding:
    """What the form shows for one dependent field."""

    target: TargetType
    state: FieldState
    options: list[FormOption] = field(default_factory=list)
    value: Optional[str] = None
    previous_value: Optional[str] = None

    @property
    def interactive(self) -> bool:
        return self.state in (FieldState.OPEN, FieldState.FILTERED)

    @property
    def visible(self) -> bool:
        return self.state != FieldState.HIDDEN

    @property
    def changed(self) -> bool:
        return self.value != self.previous_value

    def option_values(self) -> list[str]:
        return [o.value for o in self.options]


def _present(options: list[FormOption], values: tuple[str, ...]) -> list[FormOption]:
    """Options matching ``values`` in option-store order.

    When no option matches (or the field has no option list), the raw values
    are shown as-is so the field never offers an empty choice.
    """
    presented = [o for o in options if o.value in values]
    return presented or [FormOption(value=v, label=v) for v in values]


def bind_field(
    target: TargetType,
    decision: FieldDecision,
    options: list[FormOption],
    current: Optional[str],
    policy: ResetPolicy = ResetPolicy.CLEAR,
) -> FieldBinding:
    """Bind one field to its decision."""
    if isinstance(decision, DisableDecision):
        return FieldBinding(target, FieldState.HIDDEN, [], None, current)

    if isinstance(decision, FixedDecision):
        presented = _present(options, (decision.fixed_value,))
        return FieldBinding(
            target, FieldState.LOCKED, presented, decision.fixed_value, current
        )

    if isinstance(decision, AllowDecision):
        presented = _present(options, decision.allowed_values)
        value = current
        if current is not None and current not in {o.value for o in presented}:
            if policy == ResetPolicy.FIRST and presented:
                value = presented[0].value
            else:
                value = None
        return FieldBinding(target, FieldState.FILTERED, presented, value, current)

    return FieldBinding(target, FieldState.OPEN, list(options), current, current)


def bind_form(
    decisions: DecisionMap,
    options_by_target: Mapping[TargetType, list[FormOption]],
    values: Mapping[TargetType, Optional[str]],
    policy: ResetPolicy = ResetPolicy.CLEAR,
) -> dict[TargetType, FieldBinding]:
    """Bind every dependent field. One reset policy applies to all fields."""
    return {
        target: bind_field(
            target,
            decision_for(decisions, target),
            list(options_by_target.get(target, [])),
            values.get(target),
            policy,
        )
        for target in TargetType
    }


class FormSession:
    """State of one order form across source-field changes.

    ``fetch_constraints(source_value, vehicle_type)`` is awaited on every
    source change. When changes overlap, only the newest request is applied:
    each call takes a generation number and a result whose generation is no
    longer current is dropped.
    """

    def __init__(
        self,
        fetch_constraints: ConstraintFetcher,
        options_by_target: Mapping[TargetType, list[FormOption]],
        vehicle_type: VehicleType | str,
        values: Optional[Mapping[TargetType, Optional[str]]] = None,
        policy: ResetPolicy = ResetPolicy.CLEAR,
    ) -> None:
        self._fetch = fetch_constraints
        self.options_by_target = dict(options_by_target)
        self.vehicle_type = VehicleType(vehicle_type).value
        self.policy = policy
        self.source_value: Optional[str] = None
        # Latest requested source value, applied or still in flight
        self._pending_source: Optional[str] = None
        self.values: dict[TargetType, Optional[str]] = {
            target: (values or {}).get(target) for target in TargetType
        }
        self.decisions: DecisionMap = {}
        self.constraints_error: Optional[str] = None
        self.bindings = bind_form({}, self.options_by_target, self.values, policy)
        self._generation = 0

    async def change_source(
        self, source_value: str
    ) -> Optional[dict[TargetType, FieldBinding]]:
        """Fetch rules for a new source value and re-bind every field.

        Returns the new bindings, or None when a newer change superseded this
        one while its fetch was in flight. A failed fetch leaves the form
        unrestricted (``constraints_error`` is set); the server re-check
        still guards the write.
        """
        self._generation += 1
        generation = self._generation
        self._pending_source = source_value

        error: Optional[str] = None
        try:
            records = await self._fetch(source_value, self.vehicle_type)
        except Exception as e:
            log_error("Constraint fetch failed", e, source_value=source_value)
            records, error = [], str(e)

        if generation != self._generation:
            logger.debug(
                "Discarding constraints for %s (request %d superseded by %d)",
                source_value,
                generation,
                self._generation,
            )
            return None

        self.source_value = source_value
        self.constraints_error = error
        self.decisions = resolve_for(records, source_value, self.vehicle_type)
        self.bindings = bind_form(
            self.decisions, self.options_by_target, self.values, self.policy
        )
        self.values = {target: b.value for target, b in self.bindings.items()}
        return self.bindings

    async def change_vehicle_type(
        self,
        vehicle_type: VehicleType | str,
        options_by_target: Optional[Mapping[TargetType, list[FormOption]]] = None,
    ) -> Optional[dict[TargetType, FieldBinding]]:
        """Switch vehicle family; rules are re-fetched for the latest source.

        Any fetch still in flight was made for the old vehicle type and is
        superseded, even when no source value has been applied yet.
        """
        self.vehicle_type = VehicleType(vehicle_type).value
        if options_by_target is not None:
            self.options_by_target = dict(options_by_target)
        if self._pending_source is None:
            self._generation += 1
            self.bindings = bind_form({}, self.options_by_target, self.values, self.policy)
            return self.bindings
        return await self.change_source(self._pending_source)

    def set_value(self, target: TargetType, value: Optional[str]) -> FieldBinding:
        """Edit one dependent field. Never re-resolves constraints.

        Raises:
            ValueError: the field is locked/hidden, or the value is not one of
                the presented options or not allowed for the model.
        """
        binding = self.bindings[target]
        if not binding.interactive:
            raise ValueError(f"{target.value} is {binding.state.value} for this model")
        decision = decision_for(self.decisions, target)
        if value is not None and isinstance(decision, AllowDecision) and not decision.permits(value):
            raise ValueError(
                f"{value!r} is not a selectable {target.value} "
                f"(choose one of {', '.join(decision.allowed_values)})"
            )
        if value is not None and binding.options and value not in binding.option_values():
            raise ValueError(
                f"{value!r} is not a selectable {target.value} "
                f"(choose one of {', '.join(binding.option_values())})"
            )
        binding.previous_value = binding.value
        binding.value = value
        self.values[target] = value
        return binding

    def payload(self) -> dict[str, Optional[str]]:
        """Current selections keyed by wire field name."""
        return {
            "vehicleType": self.vehicle_type,
            MODEL_SOURCE: self.source_value,
            **{target.value: value for target, value in self.values.items()},
        }
