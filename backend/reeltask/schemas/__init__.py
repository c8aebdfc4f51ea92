from reeltask.schemas.project import ProjectCreate, ProjectUpdate, ProjectRead
from reeltask.schemas.task import (
    Attachment,
    AutoStartResult,
    ChecklistItem,
    Comment,
    CommentCreate,
    CompleteResult,
    EscalateRequest,
    EscalationScanResult,
    QuickCompleteRequest,
    StartRequest,
    TaskCreate,
    TaskUpdate,
    TaskRead,
    TaskStats,
    TaskSummary,
)
from reeltask.schemas.query import (
    UNASSIGNED,
    Pagination,
    SortDirection,
    SortKey,
    TaskFilters,
    TaskPage,
    TaskSort,
    TaskTab,
)
from reeltask.schemas.crew import RoleCreate, RoleRead, CrewCreate, CrewUpdate, CrewRead

__all__ = [
    "ProjectCreate",
    "ProjectUpdate",
    "ProjectRead",
    "Attachment",
    "AutoStartResult",
    "ChecklistItem",
    "Comment",
    "CommentCreate",
    "CompleteResult",
    "EscalateRequest",
    "EscalationScanResult",
    "QuickCompleteRequest",
    "StartRequest",
    "TaskCreate",
    "TaskUpdate",
    "TaskRead",
    "TaskStats",
    "TaskSummary",
    "UNASSIGNED",
    "Pagination",
    "SortDirection",
    "SortKey",
    "TaskFilters",
    "TaskPage",
    "TaskSort",
    "TaskTab",
    "RoleCreate",
    "RoleRead",
    "CrewCreate",
    "CrewUpdate",
    "CrewRead",
]
