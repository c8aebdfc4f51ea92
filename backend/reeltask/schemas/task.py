import uuid
from datetime import datetime, timezone
from typing import Annotated, Literal, Union
from pydantic import AfterValidator, BaseModel, ConfigDict, Field

from reeltask.models.task import TaskCategory, TaskStatus


def to_naive_utc(value: datetime) -> datetime:
    """Stored times are naive UTC; convert offset-aware input to match."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


UtcDatetime = Annotated[datetime, AfterValidator(to_naive_utc)]


class ChecklistItem(BaseModel):
    text: str = Field(min_length=1, max_length=500)
    completed: bool = False


class Comment(BaseModel):
    text: str
    author: str
    created_at: datetime


class Attachment(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    url: str = Field(min_length=1)
    type: str = Field(default="application/octet-stream", max_length=100)
    size: int = Field(default=0, ge=0)


class TaskCreate(BaseModel):
    """Schema for creating a new task (always created as pending)."""
    model_config = ConfigDict(extra="forbid")

    project_id: uuid.UUID
    name: str = Field(min_length=1, max_length=200)
    description: str | None = None
    phase_name: str = ""
    step_name: str = ""
    phase_order: int = Field(default=1, ge=0)
    step_order: int = Field(default=1, ge=0)
    task_order: int = Field(default=1, ge=0)
    estimated_hours: float | None = Field(default=None, ge=0)
    category: TaskCategory | None = None
    is_critical: bool = False
    expected_start_time: UtcDatetime | None = None
    expected_end_time: UtcDatetime | None = None
    checklist_items: list[ChecklistItem] = Field(default_factory=list)
    parent_task_id: uuid.UUID | None = None
    assigned_role_id: uuid.UUID | None = None


# =============================================================================
# Field updates
# =============================================================================
# Checklist changes are a closed set of operations instead of a replacement
# list, so concurrent editors only touch the item they name.

class ChecklistAdd(BaseModel):
    model_config = ConfigDict(extra="forbid")
    op: Literal["add"]
    text: str = Field(min_length=1, max_length=500)
    completed: bool = False


class ChecklistToggle(BaseModel):
    model_config = ConfigDict(extra="forbid")
    op: Literal["toggle"]
    index: int = Field(ge=0)
    completed: bool


class ChecklistEdit(BaseModel):
    model_config = ConfigDict(extra="forbid")
    op: Literal["edit"]
    index: int = Field(ge=0)
    text: str = Field(min_length=1, max_length=500)


class ChecklistRemove(BaseModel):
    model_config = ConfigDict(extra="forbid")
    op: Literal["remove"]
    index: int = Field(ge=0)


ChecklistOperation = Annotated[
    Union[ChecklistAdd, ChecklistToggle, ChecklistEdit, ChecklistRemove],
    Field(discriminator="op"),
]


class TaskUpdate(BaseModel):
    """
    Editable task fields.

    Status and lifecycle timestamps are owned by the lifecycle controller and
    are deliberately absent; unknown fields are rejected.
    """
    model_config = ConfigDict(extra="forbid")

    name: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = None
    phase_name: str | None = None
    step_name: str | None = None
    estimated_hours: float | None = Field(default=None, ge=0)
    expected_start_time: UtcDatetime | None = None
    expected_end_time: UtcDatetime | None = None
    is_critical: bool | None = None
    category: TaskCategory | None = None
    assigned_role_id: uuid.UUID | None = None
    parent_task_id: uuid.UUID | None = None
    checklist: list[ChecklistOperation] = Field(default_factory=list)


class CommentCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")
    text: str = Field(min_length=1, max_length=2000)


# =============================================================================
# Transitions
# =============================================================================

class StartRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")
    # Start without a crew assignment even when assignment is mandatory
    force: bool = False


class EscalateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")
    reason: str | None = Field(default=None, max_length=500)


class CompleteResult(BaseModel):
    task: "TaskRead"
    propagated_ready_count: int


class QuickCompleteRequest(StartRequest):
    pass


class EscalationScanResult(BaseModel):
    escalated_task_ids: list[uuid.UUID]
    scanned_at: datetime


class AutoStartResult(BaseModel):
    started_count: int
    queued: bool = False


# =============================================================================
# Read models
# =============================================================================

class TaskRead(BaseModel):
    """Full task record."""
    id: uuid.UUID
    project_id: uuid.UUID
    name: str
    description: str | None
    phase_name: str
    step_name: str
    phase_order: int
    step_order: int
    task_order: int
    estimated_hours: float | None
    actual_hours: float | None
    status: TaskStatus
    category: TaskCategory | None
    checklist_items: list[ChecklistItem]
    file_attachments: list[Attachment]
    comments: list[Comment]
    expected_start_time: datetime | None
    expected_end_time: datetime | None
    actual_start_time: datetime | None
    actual_end_time: datetime | None
    is_critical: bool
    escalation_reason: str | None
    escalated_at: datetime | None
    parent_task_id: uuid.UUID | None
    assigned_role_id: uuid.UUID | None
    assigned_crew_id: uuid.UUID | None
    is_archived: bool
    version_id: uuid.UUID
    created_by: str
    updated_by: str | None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class TaskSummary(BaseModel):
    """
    List/board projection of a task.

    The crew, role and department names are a display cache resolved from the
    crew directory on every read, never stored on the task.
    """
    id: uuid.UUID
    project_id: uuid.UUID
    name: str
    phase_name: str
    step_name: str
    phase_order: int
    step_order: int
    task_order: int
    status: TaskStatus
    category: TaskCategory | None
    is_critical: bool
    expected_end_time: datetime | None
    escalated_at: datetime | None
    parent_task_id: uuid.UUID | None
    assigned_role_id: uuid.UUID | None
    assigned_crew_id: uuid.UUID | None
    assigned_crew_name: str | None = None
    assigned_role_name: str | None = None
    department_name: str | None = None
    has_crew_available: bool | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class TaskStats(BaseModel):
    total: int = 0
    pending: int = 0
    ongoing: int = 0
    completed: int = 0
    escalated: int = 0
    blocked: int = 0
    cancelled: int = 0
    unassigned: int = 0


CompleteResult.model_rebuild()
