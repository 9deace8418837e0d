"""Server-side re-check of submitted orders against the constraint rules.

The client is untrusted: whatever options it filtered or decisions it
computed are ignored. Rules are re-fetched and re-resolved with the same
resolver the form uses, and every violated field is reported at once.
"""

from collections.abc import Iterable, Mapping
from typing import Any, Optional

from pydantic.alias_generators import to_snake

from ..core.enums import MODEL_SOURCE, TargetType
from ..core.exceptions import (
    ConstraintStoreError,
    ConstraintVerificationUnavailable,
    ConstraintViolationError,
)
from ..core.logging import get_logger
from ..db.constraints import ConstraintStore
from ..models.constraint import AllowDecision, ConstraintRecord, DisableDecision, FixedDecision
from ..models.order import OrderPayload, Violation, VerifyResult
from .resolver import decision_for, resolve_for

logger = get_logger("recheck")


def _submitted(payload: Mapping[str, Any], key: str) -> Any:
    value = payload.get(key)
    if value is None or value == "":
        return None
    return value


def verify(
    payload: Mapping[str, Any] | OrderPayload,
    records: Iterable[ConstraintRecord],
) -> VerifyResult:
    """Check a submitted payload against the rules for its model.

    Args:
        payload: Wire-shaped order (``model``, ``vehicleType`` and the target
            fields by their wire names) or an :class:`OrderPayload`.
        records: Rules fetched for the payload's model. They are filtered to
            the payload's vehicle type here, so a superset is fine.

    Returns:
        ``VerifyResult(ok=True)`` or every violation in target-field order.
        A missing value is never a violation here; required-field checks
        happen in request validation.
    """
    if isinstance(payload, OrderPayload):
        payload = payload.to_wire()

    source_value = _submitted(payload, MODEL_SOURCE)
    if source_value is None:
        return VerifyResult.passed()

    decisions = resolve_for(records, source_value, _submitted(payload, "vehicleType"))
    violations: list[Violation] = []

    for target in TargetType:
        decision = decision_for(decisions, target)
        value = _submitted(payload, target.value)
        if value is None:
            continue

        if isinstance(decision, DisableDecision):
            violations.append(
                Violation(field=target.value, reason="field must be empty for this model")
            )
        elif isinstance(decision, FixedDecision) and value != decision.fixed_value:
            violations.append(
                Violation(
                    field=target.value,
                    reason=f"field must equal {decision.fixed_value}",
                )
            )
        elif isinstance(decision, AllowDecision) and value not in decision.allowed_values:
            violations.append(
                Violation(
                    field=target.value,
                    reason=f"field must be one of {', '.join(decision.allowed_values)}",
                )
            )

    if violations:
        return VerifyResult(ok=False, violations=violations)
    return VerifyResult.passed()


def apply_fixed_values(
    payload: OrderPayload, records: Iterable[ConstraintRecord]
) -> OrderPayload:
    """Fill fields the client left empty but that are fixed for the model."""
    if not payload.model:
        return payload

    decisions = resolve_for(records, payload.model, payload.vehicle_type)
    updates: dict[str, Optional[str]] = {}
    for target, decision in decisions.items():
        attr = to_snake(target.value)
        if isinstance(decision, FixedDecision) and getattr(payload, attr) is None:
            updates[attr] = decision.fixed_value

    if not updates:
        return payload
    logger.info("Filled fixed values for model %s: %s", payload.model, updates)
    return payload.model_copy(update=updates)


def recheck_order(payload: OrderPayload, store: ConstraintStore) -> OrderPayload:
    """Authoritative check before an order create/update reaches the store.

    Returns:
        The payload with omitted fixed values filled in.

    Raises:
        ConstraintVerificationUnavailable: rules could not be loaded. The write
            must be refused rather than treated as unconstrained.
        ConstraintViolationError: at least one field breaks a rule.
    """
    if not payload.model:
        return payload

    try:
        records = store.list_active_constraints(
            MODEL_SOURCE, payload.model, payload.vehicle_type.value
        )
    except ConstraintStoreError as e:
        raise ConstraintVerificationUnavailable(
            f"Cannot verify order for model {payload.model}: constraints unavailable"
        ) from e

    result = verify(payload, records)
    if not result.ok:
        logger.info(
            "Rejected order for model %s (%s): %s",
            payload.model,
            payload.vehicle_type.value,
            ", ".join(f"{v.field}: {v.reason}" for v in result.violations),
        )
        raise ConstraintViolationError(result.violations)

    return apply_fixed_values(payload, records)
