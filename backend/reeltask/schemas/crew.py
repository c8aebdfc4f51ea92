import uuid
from datetime import date, datetime
from pydantic import BaseModel, ConfigDict, Field, computed_field


class RoleCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    project_id: uuid.UUID
    role_name: str = Field(min_length=1, max_length=100)
    department_id: uuid.UUID | None = None
    department_name: str = ""
    required_count: int = Field(default=1, ge=0)


class RoleRead(BaseModel):
    """A role requirement with its derived fill level."""
    id: uuid.UUID
    project_id: uuid.UUID
    role_name: str
    department_id: uuid.UUID | None
    department_name: str
    required_count: int
    filled_count: int = 0
    is_active: bool

    @computed_field
    @property
    def is_overfilled(self) -> bool:
        # Over-fill is allowed; it is only flagged for the UI
        return self.filled_count > self.required_count

    @computed_field
    @property
    def open_slots(self) -> int:
        return max(self.required_count - self.filled_count, 0)

    model_config = {"from_attributes": True}


class CrewCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    project_id: uuid.UUID
    project_role_id: uuid.UUID
    user_id: str = Field(min_length=1, max_length=255)
    user_name: str = ""
    is_lead: bool = False
    joined_date: date | None = None
    notes: str | None = Field(default=None, max_length=1000)


class CrewUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    is_lead: bool | None = None
    is_active: bool | None = None
    left_date: date | None = None
    notes: str | None = Field(default=None, max_length=1000)


class CrewRead(BaseModel):
    id: uuid.UUID
    project_id: uuid.UUID
    project_role_id: uuid.UUID
    user_id: str
    user_name: str
    is_lead: bool
    is_active: bool
    joined_date: date | None
    left_date: date | None
    notes: str | None
    created_at: datetime

    model_config = {"from_attributes": True}
