"""Default constraint rules for the current Model 3 / Model Y line-up.

Values are raw option values as stored in the ``options`` table.
"""

from dataclasses import dataclass, field
from typing import Any, Optional

from ..core.enums import ConstraintType, OptionType, TargetType, VehicleType
from ..core.exceptions import ConstraintConflictError, ConstraintStoreError
from ..core.logging import get_logger
from ..db.constraints import ConstraintStore
from ..models.constraint import ConstraintCreate

logger = get_logger("seed")


def _rule(
    vehicle_type: VehicleType,
    source_value: str,
    target_type: TargetType,
    constraint_type: ConstraintType,
    values: Any = None,
) -> ConstraintCreate:
    return ConstraintCreate(
        source_type=OptionType.MODEL,
        source_value=source_value,
        vehicle_type=vehicle_type,
        target_type=target_type,
        constraint_type=constraint_type,
        values=values,
    )


_M3 = VehicleType.MODEL_3
_MY = VehicleType.MODEL_Y
_ALLOW, _FIXED, _DISABLE = ConstraintType.ALLOW, ConstraintType.FIXED, ConstraintType.DISABLE
_T = TargetType

MODEL_3_RULES = [
    # Hinterradantrieb (tow hitch available, no rule)
    _rule(_M3, "hinterradantrieb", _T.WHEELS, _FIXED, "18"),
    _rule(_M3, "hinterradantrieb", _T.RANGE, _FIXED, "standard"),
    _rule(_M3, "hinterradantrieb", _T.DRIVE, _FIXED, "rwd"),
    _rule(_M3, "hinterradantrieb", _T.INTERIOR, _FIXED, "black"),
    _rule(_M3, "hinterradantrieb", _T.COLOR, _ALLOW, ["pearl_white", "diamond_black", "stealth_grey"]),
    # Premium Maximale Reichweite RWD
    _rule(_M3, "premium_lr_rwd", _T.WHEELS, _ALLOW, ["18", "19"]),
    _rule(_M3, "premium_lr_rwd", _T.RANGE, _FIXED, "maximale_reichweite"),
    _rule(_M3, "premium_lr_rwd", _T.DRIVE, _FIXED, "rwd"),
    _rule(_M3, "premium_lr_rwd", _T.TOW_HITCH, _DISABLE),
    # Premium Maximale Reichweite AWD
    _rule(_M3, "premium_lr_awd", _T.WHEELS, _ALLOW, ["18", "19"]),
    _rule(_M3, "premium_lr_awd", _T.RANGE, _FIXED, "maximale_reichweite"),
    _rule(_M3, "premium_lr_awd", _T.DRIVE, _FIXED, "awd"),
    _rule(_M3, "premium_lr_awd", _T.TOW_HITCH, _DISABLE),
    # Performance
    _rule(_M3, "performance_m3", _T.WHEELS, _FIXED, "20"),
    _rule(_M3, "performance_m3", _T.RANGE, _FIXED, "maximale_reichweite"),
    _rule(_M3, "performance_m3", _T.DRIVE, _FIXED, "awd"),
    _rule(_M3, "performance_m3", _T.TOW_HITCH, _DISABLE),
]

MODEL_Y_RULES = [
    _rule(_MY, "standard", _T.RANGE, _FIXED, "standard"),
    _rule(_MY, "standard", _T.WHEELS, _FIXED, "18"),
    _rule(_MY, "standard", _T.DRIVE, _FIXED, "rwd"),
    _rule(_MY, "performance", _T.RANGE, _FIXED, "maximale_reichweite"),
    _rule(_MY, "performance", _T.WHEELS, _FIXED, "21"),
    _rule(_MY, "performance", _T.DRIVE, _FIXED, "awd"),
    # Premium: wheels restricted, range left open
    _rule(_MY, "premium", _T.WHEELS, _ALLOW, ["19", "20"]),
]

DEFAULT_RULES = MODEL_3_RULES + MODEL_Y_RULES


@dataclass
class SeedResult:
    dry_run: bool
    total: int = 0
    created: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)
    details: list[dict[str, str]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": not self.errors,
            "dryRun": self.dry_run,
            "total": self.total,
            "created": self.created,
            "skipped": self.skipped,
            "errors": self.errors,
            "details": self.details,
        }


def seed_constraints(
    store: ConstraintStore,
    vehicle_type: Optional[VehicleType] = None,
    dry_run: bool = False,
    rules: Optional[list[ConstraintCreate]] = None,
) -> SeedResult:
    """Create the default rules that do not exist yet.

    Existing active rules for the same tuple are left untouched (skipped).
    With ``dry_run`` nothing is written; the result reports what would be.
    """
    selected = [
        r
        for r in (rules if rules is not None else DEFAULT_RULES)
        if vehicle_type is None or r.vehicle_type == vehicle_type
    ]
    result = SeedResult(dry_run=dry_run, total=len(selected))

    for rule in selected:
        label = f"{rule.vehicle_type.value if rule.vehicle_type else '*'}:{rule.source_value}:{rule.target_type.value}"

        try:
            exists = bool(store.find_active(rule.key))
        except ConstraintStoreError as e:
            result.errors.append(f"{label}: {e}")
            continue
        if exists:
            result.skipped += 1
            result.details.append({"constraint": label, "action": "skipped (exists)"})
            continue

        if dry_run:
            result.created += 1
            result.details.append({"constraint": label, "action": "would create"})
            continue

        try:
            store.create_constraint(rule)
        except ConstraintConflictError as e:
            result.skipped += 1
            result.details.append({"constraint": label, "action": "skipped (exists)"})
            logger.info("Seed skipped %s: %s", label, e)
            continue
        except ConstraintStoreError as e:
            result.errors.append(f"{label}: {e}")
            continue
        result.created += 1
        result.details.append({"constraint": label, "action": "created"})

    logger.info(
        "Seeded constraints: created=%d skipped=%d dry_run=%s",
        result.created,
        result.skipped,
        dry_run,
    )
    return result
