from typing import Any, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class FormOption(BaseModel):
    """One selectable entry of a dropdown: raw value plus display label."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    value: str
    label: str
    sort_order: int = 0
    vehicle_type: Optional[str] = None
    metadata: Optional[dict[str, Any]] = None
