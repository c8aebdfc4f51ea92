"""
Project status rollup from task statuses.

- any critical task escalated     -> escalated
- every live task completed       -> completed
- anything ongoing or escalated   -> active
- otherwise                       -> planning

Projects put on hold or cancelled by hand are left alone.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from reeltask.models import Project, ProjectStatus, Task, TaskStatus
from reeltask.services.timeouts import bounded
from reeltask.logging_config import get_logger

logger = get_logger(__name__)

MANUAL_STATUSES = frozenset({ProjectStatus.ON_HOLD, ProjectStatus.CANCELLED})


@dataclass
class StatusCounts:
    total: int = 0
    completed: int = 0
    ongoing: int = 0
    escalated: int = 0
    critical_escalated: int = 0


def derive_project_status(counts: StatusCounts) -> ProjectStatus:
    if counts.critical_escalated > 0:
        return ProjectStatus.ESCALATED
    if counts.total > 0 and counts.completed == counts.total:
        return ProjectStatus.COMPLETED
    if counts.ongoing > 0 or counts.escalated > 0:
        return ProjectStatus.ACTIVE
    return ProjectStatus.PLANNING


class ProjectStatusRollup:
    def __init__(self, session: AsyncSession, timeout_seconds: float = 10.0):
        self.session = session
        self.timeout_seconds = timeout_seconds

    async def _run(self, awaitable, operation: str):
        return await bounded(awaitable, self.timeout_seconds, f"project rollup: {operation}")

    async def counts(self, project_id: uuid.UUID) -> StatusCounts:
        query = (
            select(Task.status, Task.is_critical, func.count())
            .where(Task.project_id == project_id, Task.is_archived == False)  # noqa: E712
            .group_by(Task.status, Task.is_critical)
        )
        result = await self._run(self.session.execute(query), "count task statuses")
        counts = StatusCounts()
        for status, is_critical, count in result.all():
            counts.total += count
            if status == TaskStatus.COMPLETED:
                counts.completed += count
            elif status == TaskStatus.ONGOING:
                counts.ongoing += count
            elif status == TaskStatus.ESCALATED:
                counts.escalated += count
                if is_critical:
                    counts.critical_escalated += count
        return counts

    async def refresh(self, project_id: uuid.UUID, actor: str) -> ProjectStatus | None:
        """Recompute and store the project's status; returns it, or None if unknown."""
        project = await self._run(self.session.get(Project, project_id), "get project")
        if project is None:
            return None
        if project.status in MANUAL_STATUSES:
            return project.status

        new_status = derive_project_status(await self.counts(project_id))
        if new_status != project.status:
            logger.info(f"Project {project_id} status {project.status.value} -> {new_status.value}")
            project.status = new_status
            project.updated_by = actor
            project.updated_at = datetime.utcnow()
            await self._run(self.session.flush(), "save project status")
        return new_status
