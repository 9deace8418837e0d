from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from ..core.enums import VehicleType

# Configuration fields carried as raw option values
OPTION_FIELDS = (
    "model",
    "range",
    "drive",
    "color",
    "interior",
    "wheels",
    "tow_hitch",
    "autopilot",
)


class OrderPayload(BaseModel):
    """Order create/update body as submitted by the form."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    name: str = Field(..., min_length=1, max_length=100)
    vehicle_type: VehicleType
    order_date: Optional[str] = None
    country: Optional[str] = None

    model: Optional[str] = None
    range: Optional[str] = None
    drive: Optional[str] = None
    color: Optional[str] = None
    interior: Optional[str] = None
    wheels: Optional[str] = None
    tow_hitch: Optional[str] = None
    autopilot: Optional[str] = None

    delivery_window: Optional[str] = None
    delivery_location: Optional[str] = None

    @field_validator(*OPTION_FIELDS, "country", "order_date", mode="before")
    @classmethod
    def empty_select_is_none(cls, v: Any) -> Any:
        """Select widgets submit "" for "nothing chosen"."""
        if isinstance(v, str) and not v.strip():
            return None
        return v

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


class Order(OrderPayload):
    id: str
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class Violation(BaseModel):
    field: str
    reason: str


class VerifyResult(BaseModel):
    ok: bool
    violations: list[Violation] = []

    @classmethod
    def passed(cls) -> "VerifyResult":
        return cls(ok=True)
