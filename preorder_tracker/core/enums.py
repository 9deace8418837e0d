"""Enums for configuration fields and constraint rules."""

from enum import Enum


class VehicleType(str, Enum):
    """Vehicle families a rule or an order can be scoped to."""

    MODEL_Y = "Model Y"
    MODEL_3 = "Model 3"


class OptionType(str, Enum):
    """Option types a rule may use as its source or target."""

    MODEL = "model"
    RANGE = "range"
    DRIVE = "drive"
    COLOR = "color"
    INTERIOR = "interior"
    WHEELS = "wheels"
    AUTOPILOT = "autopilot"
    TOW_HITCH = "towHitch"


class TargetType(str, Enum):
    """Dependent configuration fields a rule can govern.

    Values are the raw wire names used by the store and the order payload.
    """

    RANGE = "range"
    DRIVE = "drive"
    WHEELS = "wheels"
    COLOR = "color"
    INTERIOR = "interior"
    TOW_HITCH = "towHitch"
    AUTOPILOT = "autopilot"

    @classmethod
    def from_string(cls, value: str | None) -> "TargetType | None":
        """Convert string to enum, returning None if unknown."""
        if not value:
            return None
        try:
            return cls(value)
        except ValueError:
            return None


class ConstraintType(str, Enum):
    """Kind of restriction a single rule applies."""

    ALLOW = "allow"
    FIXED = "fixed"
    DISABLE = "disable"


class FieldState(str, Enum):
    """Presentation state of a dependent form field."""

    OPEN = "open"
    FILTERED = "filtered"
    LOCKED = "locked"
    HIDDEN = "hidden"


class ResetPolicy(str, Enum):
    """What a filtered field falls back to when its value drops out."""

    CLEAR = "clear"
    FIRST = "first"


# Source type the form and the re-check resolve against
MODEL_SOURCE = OptionType.MODEL.value

# Option types served by the option store (dropdown lists)
OPTION_STORE_TYPES = (
    "country",
    "model",
    "range",
    "drive",
    "color",
    "interior",
    "wheels",
    "autopilot",
    "towHitch",
    "deliveryLocation",
)
