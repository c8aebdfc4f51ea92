import math
import uuid
from enum import Enum
from typing import Literal
from pydantic import BaseModel, ConfigDict, Field, computed_field

from reeltask.models.task import TaskCategory, TaskStatus
from reeltask.schemas.task import TaskSummary

UNASSIGNED = "unassigned"


class TaskTab(str, Enum):
    """Filter presets used by the task board tabs."""
    READY = "ready"
    UPCOMING = "upcoming"

    @property
    def statuses(self) -> frozenset[TaskStatus]:
        if self is TaskTab.READY:
            return frozenset({TaskStatus.PENDING, TaskStatus.ONGOING, TaskStatus.BLOCKED})
        return frozenset({TaskStatus.ESCALATED, TaskStatus.CANCELLED})


class SortKey(str, Enum):
    DUE_DATE = "due_date"
    PRIORITY = "priority"
    STRUCTURAL = "structural"
    CREATED = "created"


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


class TaskFilters(BaseModel):
    model_config = ConfigDict(extra="forbid")

    search: str | None = Field(default=None, max_length=200)
    status: TaskStatus | None = None
    tab: TaskTab | None = None
    assigned_crew_id: uuid.UUID | Literal["unassigned"] | None = None
    assigned_role_id: uuid.UUID | None = None
    department_id: uuid.UUID | None = None
    due_within_hours: float | None = Field(default=None, gt=0)
    escalated_only: bool = False
    category: TaskCategory | None = None
    is_critical: bool | None = None
    include_archived: bool = False


class TaskSort(BaseModel):
    model_config = ConfigDict(extra="forbid")

    key: SortKey = SortKey.STRUCTURAL
    direction: SortDirection = SortDirection.ASC


class Pagination(BaseModel):
    model_config = ConfigDict(extra="forbid")

    page: int = Field(default=1, ge=1)
    # None means the configured default page size
    page_size: int | None = Field(default=None, ge=1)


class TaskPage(BaseModel):
    items: list[TaskSummary]
    page: int
    page_size: int
    total_count: int

    @computed_field
    @property
    def total_pages(self) -> int:
        if self.total_count == 0:
            return 0
        return math.ceil(self.total_count / self.page_size)
