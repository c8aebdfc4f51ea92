from reeltask.models.project import Project, ProjectStatus
from reeltask.models.crew import ProjectRole, ProjectCrew
from reeltask.models.task import Task, TaskStatus, TaskCategory, TERMINAL_STATUSES

__all__ = [
    "Project",
    "ProjectStatus",
    "ProjectRole",
    "ProjectCrew",
    "Task",
    "TaskStatus",
    "TaskCategory",
    "TERMINAL_STATUSES",
]
