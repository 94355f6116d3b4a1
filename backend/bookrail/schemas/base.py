"""Schema baselines."""

from pydantic import BaseModel, ConfigDict


class StandardizedModel(BaseModel):
    """Response base; reads straight from ORM objects."""

    model_config = ConfigDict(use_enum_values=True, populate_by_name=True, from_attributes=True)


class StrictRequestModel(BaseModel):
    """Request DTO base that always forbids unexpected fields."""

    model_config = ConfigDict(extra="forbid", validate_assignment=True)
