import uuid
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any
from sqlalchemy import Column, JSON, UniqueConstraint
from sqlmodel import SQLModel, Field, Relationship

if TYPE_CHECKING:
    from reeltask.models.project import Project


class TaskStatus(str, Enum):
    PENDING = "pending"
    ONGOING = "ongoing"
    COMPLETED = "completed"
    ESCALATED = "escalated"
    BLOCKED = "blocked"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({TaskStatus.COMPLETED, TaskStatus.CANCELLED})


class TaskCategory(str, Enum):
    PRE_PRODUCTION = "pre_production"
    PRODUCTION = "production"
    POST_PRODUCTION = "post_production"
    ADMINISTRATIVE = "administrative"
    CREATIVE = "creative"
    TECHNICAL = "technical"
    LOGISTICS = "logistics"


class Task(SQLModel, table=True):
    """
    A unit of production work inside a project.

    Key fields:
    - (phase_order, step_order, task_order): structural order, unique per project
    - parent_task_id: weak reference; the parent may live in another project/template
    - version_id: compare-and-swap guard, regenerated on every write
    """

    __tablename__ = "project_tasks"
    __table_args__ = (
        UniqueConstraint(
            "project_id", "phase_order", "step_order", "task_order",
            name="uq_project_tasks_structural_order",
        ),
    )

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    project_id: uuid.UUID = Field(foreign_key="projects.id", index=True)

    name: str = Field(index=True, max_length=200)
    description: str | None = Field(default=None)
    phase_name: str = Field(default="", max_length=200)
    step_name: str = Field(default="", max_length=200)
    phase_order: int = Field(default=1, ge=0)
    step_order: int = Field(default=1, ge=0)
    task_order: int = Field(default=1, ge=0)

    estimated_hours: float | None = Field(default=None, ge=0)
    actual_hours: float | None = Field(default=None, ge=0)
    status: TaskStatus = Field(default=TaskStatus.PENDING, index=True)
    category: TaskCategory | None = Field(default=None, index=True)

    checklist_items: list[dict[str, Any]] = Field(
        default_factory=list, sa_column=Column(JSON, nullable=False)
    )
    file_attachments: list[dict[str, Any]] = Field(
        default_factory=list, sa_column=Column(JSON, nullable=False)
    )
    comments: list[dict[str, Any]] = Field(
        default_factory=list, sa_column=Column(JSON, nullable=False)
    )

    expected_start_time: datetime | None = Field(default=None)
    expected_end_time: datetime | None = Field(default=None, index=True)
    actual_start_time: datetime | None = Field(default=None)
    actual_end_time: datetime | None = Field(default=None)

    is_critical: bool = Field(default=False, index=True)
    escalation_reason: str | None = Field(default=None, max_length=500)
    escalated_at: datetime | None = Field(default=None, index=True)

    parent_task_id: uuid.UUID | None = Field(default=None, index=True)
    assigned_role_id: uuid.UUID | None = Field(
        default=None, foreign_key="project_roles.id", index=True
    )
    assigned_crew_id: uuid.UUID | None = Field(
        default=None, foreign_key="project_crew.id", index=True
    )

    is_archived: bool = Field(default=False, index=True)
    version_id: uuid.UUID = Field(default_factory=uuid.uuid4)

    created_by: str = Field(default="system", max_length=255)
    updated_by: str | None = Field(default=None, max_length=255)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    # Relationships
    project: "Project" = Relationship(back_populates="tasks")

    @property
    def structural_order(self) -> tuple[int, int, int]:
        return (self.phase_order, self.step_order, self.task_order)
