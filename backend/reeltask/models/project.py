import uuid
from datetime import date, datetime
from enum import Enum
from typing import TYPE_CHECKING
from sqlmodel import SQLModel, Field, Relationship

if TYPE_CHECKING:
    from reeltask.models.task import Task


class ProjectStatus(str, Enum):
    PLANNING = "planning"
    ACTIVE = "active"
    ON_HOLD = "on_hold"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    ESCALATED = "escalated"


class Project(SQLModel, table=True):
    """Project model - a production whose tasks run through the engine."""

    __tablename__ = "projects"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    name: str = Field(index=True, max_length=200)
    description: str | None = Field(default=None)
    status: ProjectStatus = Field(default=ProjectStatus.PLANNING, index=True)
    start_date: date | None = Field(default=None)
    end_date: date | None = Field(default=None)
    is_archived: bool = Field(default=False, index=True)

    created_by: str = Field(default="system", max_length=255)
    updated_by: str | None = Field(default=None, max_length=255)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    # Relationships
    tasks: list["Task"] = Relationship(back_populates="project")
