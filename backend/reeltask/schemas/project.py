import uuid
from datetime import date, datetime
from pydantic import BaseModel, ConfigDict, Field

from reeltask.models.project import ProjectStatus


class ProjectCreate(BaseModel):
    """Schema for creating a new project."""
    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1, max_length=200)
    description: str | None = None
    start_date: date | None = None
    end_date: date | None = None


class ProjectUpdate(BaseModel):
    """Schema for updating a project. Status is derived, except for holds."""
    model_config = ConfigDict(extra="forbid")

    name: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = None
    start_date: date | None = None
    end_date: date | None = None
    on_hold: bool | None = None


class ProjectRead(BaseModel):
    """Schema for reading a project."""
    id: uuid.UUID
    name: str
    description: str | None
    status: ProjectStatus
    start_date: date | None
    end_date: date | None
    is_archived: bool
    created_by: str
    updated_by: str | None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
