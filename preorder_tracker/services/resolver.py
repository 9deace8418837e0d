"""Option constraint resolver.

Turns the rules fetched for one source value (model/trim) into one decision
per dependent configuration field. Everything here is pure and synchronous:
no store access, no framework types, no hidden state, so the form session
and the server-side re-check share exactly the same code.

Resolution, per target field:
    * no rule                 -> unrestricted (absent from the decision map)
    * one rule                -> mirrors the rule
    * several rules           -> a vehicle-specific rule beats a global one;
                                 among equally specific rules the first one in
                                 input order wins and a warning is logged
    * malformed rule payload  -> unrestricted, with a warning

All comparisons are exact string equality on raw option values, never on
display labels.
"""

from collections.abc import Iterable, Sequence
from typing import Any, Optional

from ..core.enums import MODEL_SOURCE, ConstraintType, TargetType, VehicleType
from ..core.logging import get_logger
from ..models.constraint import (
    UNRESTRICTED,
    AllowDecision,
    ConstraintRecord,
    DecisionMap,
    DisableDecision,
    DuplicateRuleGroup,
    FieldDecision,
    FixedDecision,
)

logger = get_logger("resolver")


def applicable_records(
    records: Iterable[ConstraintRecord],
    source_value: str,
    vehicle_type: VehicleType | str | None = None,
    source_type: str = MODEL_SOURCE,
) -> list[ConstraintRecord]:
    """Caller-side pre-filter for :func:`resolve`.

    Keeps active rules for ``source_type``/``source_value`` whose vehicle
    type is either global (``None``) or equal to ``vehicle_type``. Input
    order is preserved because it breaks ties between duplicate rules.
    """
    if isinstance(vehicle_type, VehicleType):
        vehicle_type = vehicle_type.value
    return [
        r
        for r in records
        if r.is_active
        and r.source_type == source_type
        and r.source_value == source_value
        and (r.vehicle_type is None or r.vehicle_type == vehicle_type)
    ]


def _pick(target: TargetType, group: Sequence[ConstraintRecord]) -> ConstraintRecord:
    """Choose the winning rule among several for one target field."""
    specific = [r for r in group if r.is_vehicle_specific]
    candidates = specific or list(group)
    if len(candidates) > 1:
        winner = candidates[0]
        logger.warning(
            "Duplicate constraint rules for %s=%s -> %s (vehicle_type=%s): "
            "using %s, ignoring %s",
            winner.source_type,
            winner.source_value,
            target.value,
            winner.vehicle_type,
            winner.id,
            ", ".join(r.id for r in candidates[1:]),
        )
    return candidates[0]


def _is_string_list(values: Any) -> bool:
    return isinstance(values, list) and all(isinstance(v, str) for v in values)


def _decide(record: ConstraintRecord) -> Optional[FieldDecision]:
    """Translate one rule into a decision. ``None`` means unrestricted."""
    constraint_type = record.constraint_type
    values = record.values

    if constraint_type == ConstraintType.DISABLE.value:
        return DisableDecision()

    if constraint_type == ConstraintType.FIXED.value:
        if isinstance(values, str) and values:
            return FixedDecision(fixed_value=values)
        logger.warning(
            "Malformed fixed constraint %s (values=%r); treating %s as unrestricted",
            record.id,
            values,
            record.target_type,
        )
        return None

    if constraint_type == ConstraintType.ALLOW.value:
        if not _is_string_list(values):
            logger.warning(
                "Malformed allow constraint %s (values=%r); treating %s as unrestricted",
                record.id,
                values,
                record.target_type,
            )
            return None
        if not values:
            # Nothing allowed at all
            return DisableDecision()
        return AllowDecision(allowed_values=tuple(dict.fromkeys(values)))

    logger.warning(
        "Unknown constraint type %r on constraint %s; treating %s as unrestricted",
        constraint_type,
        record.id,
        record.target_type,
    )
    return None


def resolve(records: Iterable[ConstraintRecord], source_value: str) -> DecisionMap:
    """Resolve rules for ``source_value`` into a decision map.

    Args:
        records: Rules already filtered to the caller's vehicle type (see
            :func:`applicable_records`). Inactive rules and rules for other
            source values are ignored anyway.
        source_value: Raw value of the source field, e.g. a trim code.

    Returns:
        ``{target: decision}`` for every constrained target. Targets missing
        from the map are unrestricted; use :func:`decision_for` to read it.
        Never raises for bad rule data.
    """
    groups: dict[TargetType, list[ConstraintRecord]] = {}
    for record in records:
        if not record.is_active or record.source_value != source_value:
            continue
        target = TargetType.from_string(record.target_type)
        if target is None:
            logger.warning(
                "Constraint %s targets unknown field %r; skipped",
                record.id,
                record.target_type,
            )
            continue
        groups.setdefault(target, []).append(record)

    decisions: DecisionMap = {}
    for target, group in groups.items():
        decision = _decide(_pick(target, group))
        if decision is not None:
            decisions[target] = decision
    return decisions


def resolve_for(
    records: Iterable[ConstraintRecord],
    source_value: str,
    vehicle_type: VehicleType | str | None,
) -> DecisionMap:
    """Pre-filter for one vehicle type, then resolve."""
    return resolve(applicable_records(records, source_value, vehicle_type), source_value)


def decision_for(decisions: DecisionMap, target: TargetType) -> FieldDecision:
    return decisions.get(target, UNRESTRICTED)


def decisions_to_wire(decisions: DecisionMap) -> dict[str, dict[str, Any]]:
    """JSON-ready decision map keyed by target wire name."""
    return {target.value: decision.to_wire() for target, decision in decisions.items()}


def find_duplicate_rules(records: Iterable[ConstraintRecord]) -> list[DuplicateRuleGroup]:
    """Find active rules that share a uniqueness tuple.

    The store rejects such duplicates on create, but rows written before that
    check (or directly in the database) still need to be surfaced to admins.
    """
    by_key: dict[tuple[str, str, Optional[str], str], list[ConstraintRecord]] = {}
    for record in records:
        if record.is_active:
            by_key.setdefault(record.key, []).append(record)

    groups = []
    for (source_type, source_value, vehicle_type, target_type), group in by_key.items():
        if len(group) > 1:
            groups.append(
                DuplicateRuleGroup(
                    source_type=source_type,
                    source_value=source_value,
                    vehicle_type=vehicle_type,
                    target_type=target_type,
                    constraint_ids=[r.id for r in group],
                )
            )
    return groups
