"""
Task Store: persistence of task records.

Reads are plain selects. Every write goes through compare_and_set(), a single
conditional UPDATE guarded by the task's version_id (and optionally its
current status), so two writers racing on the same task cannot both win.
"""

import uuid
from datetime import datetime
from typing import Any, Iterable

from sqlalchemy import func, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from reeltask.exceptions import TaskNotFoundError
from reeltask.logging_config import get_logger
from reeltask.models import Project, Task, TaskStatus
from reeltask.services.timeouts import bounded

logger = get_logger(__name__)


class TaskStore:
    """Async task repository bound to one database session."""

    def __init__(self, session: AsyncSession, timeout_seconds: float = 10.0):
        self.session = session
        self.timeout_seconds = timeout_seconds

    async def _run(self, awaitable, operation: str):
        return await bounded(awaitable, self.timeout_seconds, f"task store: {operation}")

    # ---- reads ----

    async def get(self, task_id: uuid.UUID) -> Task | None:
        return await self._run(self.session.get(Task, task_id), "get task")

    async def require(self, task_id: uuid.UUID) -> Task:
        task = await self.get(task_id)
        if task is None:
            raise TaskNotFoundError(str(task_id))
        return task

    async def get_many(self, task_ids: Iterable[uuid.UUID]) -> dict[uuid.UUID, Task]:
        ids = list(set(task_ids))
        if not ids:
            return {}
        result = await self._run(
            self.session.execute(select(Task).where(Task.id.in_(ids))),
            "get tasks",
        )
        return {task.id: task for task in result.scalars().all()}

    async def list_for_project(
        self,
        project_id: uuid.UUID,
        include_archived: bool = False,
    ) -> list[Task]:
        query = select(Task).where(Task.project_id == project_id)
        if not include_archived:
            query = query.where(Task.is_archived == False)  # noqa: E712
        query = query.order_by(Task.phase_order, Task.step_order, Task.task_order)
        result = await self._run(self.session.execute(query), "list project tasks")
        return list(result.scalars().all())

    async def find_by_structural_order(
        self,
        project_id: uuid.UUID,
        phase_order: int,
        step_order: int,
        task_order: int,
    ) -> Task | None:
        query = select(Task).where(
            Task.project_id == project_id,
            Task.phase_order == phase_order,
            Task.step_order == step_order,
            Task.task_order == task_order,
        )
        result = await self._run(self.session.execute(query), "find task by order")
        return result.scalars().first()

    async def find_overdue(
        self,
        cutoff: datetime,
        project_id: uuid.UUID | None = None,
    ) -> list[Task]:
        """Ongoing, never-escalated, non-archived tasks due before `cutoff`."""
        query = select(Task).where(
            Task.status == TaskStatus.ONGOING,
            Task.is_archived == False,  # noqa: E712
            Task.escalated_at.is_(None),
            Task.expected_end_time.is_not(None),
            Task.expected_end_time < cutoff,
        )
        if project_id is not None:
            query = query.where(Task.project_id == project_id)
        query = query.order_by(Task.expected_end_time)
        result = await self._run(self.session.execute(query), "find overdue tasks")
        return list(result.scalars().all())

    async def count_ongoing_in_project(self, project_id: uuid.UUID) -> int:
        query = select(func.count()).select_from(Task).where(
            Task.project_id == project_id,
            Task.status == TaskStatus.ONGOING,
            Task.is_archived == False,  # noqa: E712
        )
        result = await self._run(self.session.execute(query), "count ongoing tasks")
        return int(result.scalar_one())

    async def project_exists(self, project_id: uuid.UUID) -> bool:
        project = await self._run(self.session.get(Project, project_id), "get project")
        return project is not None

    # ---- writes ----

    def savepoint(self):
        """Nested transaction; a failure inside it rolls back only its own writes."""
        return self.session.begin_nested()

    async def add(self, task: Task) -> Task:
        self.session.add(task)
        await self._run(self.session.flush(), "insert task")
        await self.session.refresh(task)
        return task

    async def compare_and_set(
        self,
        task_id: uuid.UUID,
        expected_version: uuid.UUID,
        values: dict[str, Any],
        expected_status: TaskStatus | None = None,
        conditions: Iterable[Any] = (),
    ) -> Task | None:
        """
        Atomically apply `values` if the task is still at `expected_version`.

        Extra `conditions` are added to the WHERE clause (e.g. "still overdue").
        Returns the refreshed task, or None when the guard did not match, in
        which case nothing was written.
        """
        changes = dict(values)
        changes["version_id"] = uuid.uuid4()
        changes["updated_at"] = datetime.utcnow()

        stmt = update(Task).where(Task.id == task_id, Task.version_id == expected_version)
        if expected_status is not None:
            stmt = stmt.where(Task.status == expected_status)
        for condition in conditions:
            stmt = stmt.where(condition)
        stmt = stmt.values(**changes).execution_options(synchronize_session=False)

        result = await self._run(self.session.execute(stmt), "conditional update")
        if result.rowcount != 1:
            logger.debug(f"Conditional update missed: task={task_id} version={expected_version}")
            return None

        return await self._run(
            self.session.get(Task, task_id, populate_existing=True),
            "reload task",
        )
