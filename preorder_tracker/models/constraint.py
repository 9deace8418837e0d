from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from ..core.enums import ConstraintType, OptionType, TargetType, VehicleType

_WIRE_CONFIG = ConfigDict(
    alias_generator=to_camel,
    populate_by_name=True,
    coerce_numbers_to_str=True,
)


class ConstraintRecord(BaseModel):
    """A single rule as it leaves the constraint store.

    Fields are loosely typed: a row with an unknown target or a payload of
    the wrong shape still loads, and the resolver degrades that one field.
    ``values`` is already JSON-decoded by the store.
    """

    model_config = ConfigDict(**_WIRE_CONFIG, frozen=True)

    id: str
    source_type: str
    source_value: str
    vehicle_type: Optional[str] = None
    target_type: str
    constraint_type: str
    values: Any = None
    is_active: bool = True
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @field_validator("vehicle_type", mode="before")
    @classmethod
    def blank_vehicle_type_is_global(cls, v: Any) -> Any:
        return v or None

    @property
    def key(self) -> tuple[str, str, Optional[str], str]:
        """Uniqueness tuple: at most one active rule may exist per key."""
        return (self.source_type, self.source_value, self.vehicle_type, self.target_type)

    @property
    def is_vehicle_specific(self) -> bool:
        return self.vehicle_type is not None

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


def check_values_shape(constraint_type: ConstraintType, values: Any) -> Any:
    """Validate a rule payload against its constraint type.

    Returns the normalized payload: a list of strings for ``allow``, a single
    string for ``fixed`` and an empty list for ``disable``.
    """
    if constraint_type == ConstraintType.ALLOW:
        if not isinstance(values, list) or not all(isinstance(v, str) for v in values):
            raise ValueError('For "allow" constraint, values must be an array of strings')
        # Keep first occurrence order, drop duplicates
        return list(dict.fromkeys(values))
    if constraint_type == ConstraintType.FIXED:
        if not isinstance(values, str) or not values:
            raise ValueError('For "fixed" constraint, values must be a non-empty string')
        return values
    return []


class ConstraintCreate(BaseModel):
    """Admin request body for a new rule."""

    model_config = _WIRE_CONFIG

    source_type: OptionType = OptionType.MODEL
    source_value: str = Field(..., min_length=1, max_length=100)
    vehicle_type: Optional[VehicleType] = None
    target_type: TargetType
    constraint_type: ConstraintType
    values: Union[list[str], str, None] = None

    @field_validator("vehicle_type", mode="before")
    @classmethod
    def blank_vehicle_type_is_global(cls, v: Any) -> Any:
        return v or None

    @model_validator(mode="after")
    def validate_values(self) -> "ConstraintCreate":
        self.values = check_values_shape(self.constraint_type, self.values)
        return self

    @property
    def key(self) -> tuple[str, str, Optional[str], str]:
        return (
            self.source_type.value,
            self.source_value,
            self.vehicle_type.value if self.vehicle_type else None,
            self.target_type.value,
        )


class ConstraintUpdate(BaseModel):
    """Partial update. Only fields present in the request are applied."""

    model_config = _WIRE_CONFIG

    constraint_type: Optional[ConstraintType] = None
    values: Union[list[str], str, None] = None
    is_active: Optional[bool] = None


# ---------------------------------------------------------------------------
# Field decisions (tagged union keyed by ``kind``)
# ---------------------------------------------------------------------------


class _Decision(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True
    )

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


class UnrestrictedDecision(_Decision):
    kind: Literal["unrestricted"] = "unrestricted"


class AllowDecision(_Decision):
    kind: Literal["allow"] = "allow"
    allowed_values: tuple[str, ...]

    def permits(self, value: str) -> bool:
        return value in self.allowed_values


class FixedDecision(_Decision):
    kind: Literal["fixed"] = "fixed"
    fixed_value: str

    def permits(self, value: str) -> bool:
        return value == self.fixed_value


class DisableDecision(_Decision):
    kind: Literal["disable"] = "disable"


FieldDecision = Annotated[
    Union[UnrestrictedDecision, AllowDecision, FixedDecision, DisableDecision],
    Field(discriminator="kind"),
]

UNRESTRICTED = UnrestrictedDecision()

DecisionMap = dict[TargetType, Union[AllowDecision, FixedDecision, DisableDecision]]


class DuplicateRuleGroup(BaseModel):
    """Active rules sharing one uniqueness tuple (rule-authoring error)."""

    model_config = _WIRE_CONFIG

    source_type: str
    source_value: str
    vehicle_type: Optional[str] = None
    target_type: str
    constraint_ids: list[str]
