"""
Query/filter layer for task lists.

Filters, sorting and offset pagination are translated into one SQL query
plus a count. Summaries get their crew/role display names from the crew
directory at read time.
"""

import uuid
from datetime import datetime, timedelta
from typing import Any, Iterable

import pydantic
from sqlalchemy import func, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from reeltask.config import EngineConfig
from reeltask.exceptions import ValidationError
from reeltask.models import Task, TaskStatus
from reeltask.schemas import (
    UNASSIGNED,
    Pagination,
    SortDirection,
    SortKey,
    TaskFilters,
    TaskPage,
    TaskSort,
    TaskStats,
    TaskSummary,
)
from reeltask.services.crew_directory import CrewDirectory
from reeltask.services.timeouts import bounded
from reeltask.logging_config import get_logger

logger = get_logger(__name__)


async def build_summaries(tasks: Iterable[Task], directory: CrewDirectory) -> list[TaskSummary]:
    """Project tasks into summaries with fresh crew/role display names."""
    tasks = list(tasks)
    names = await directory.get_display_names(
        (t.assigned_crew_id for t in tasks if t.assigned_crew_id is not None),
        (t.assigned_role_id for t in tasks if t.assigned_role_id is not None),
    )
    summaries = []
    for task in tasks:
        summary = TaskSummary.model_validate(task)
        if task.assigned_crew_id is not None:
            summary.assigned_crew_name = names.crew_names.get(task.assigned_crew_id)
        role = names.roles.get(task.assigned_role_id) if task.assigned_role_id else None
        if role is not None:
            summary.assigned_role_name = role.role_name
            summary.department_name = role.department_name
        summaries.append(summary)
    return summaries


def coerce_model(model: type[pydantic.BaseModel], value: Any):
    """Accept a model instance, a plain dict, or None (defaults)."""
    if value is None:
        return model()
    if isinstance(value, model):
        return value
    try:
        return model.model_validate(value)
    except pydantic.ValidationError as exc:
        raise ValidationError.from_pydantic(exc) from exc


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def structural_ordering(direction: SortDirection = SortDirection.ASC) -> list:
    columns = [Task.phase_order, Task.step_order, Task.task_order]
    if direction == SortDirection.DESC:
        return [c.desc() for c in columns]
    return [c.asc() for c in columns]


def sort_clauses(sort: TaskSort) -> list:
    """ORDER BY clauses for a sort; task id is the final tie-breaker."""
    descending = sort.direction == SortDirection.DESC

    if sort.key == SortKey.DUE_DATE:
        due = Task.expected_end_time.desc() if descending else Task.expected_end_time.asc()
        # Tasks without a due date always go last
        clauses = [Task.expected_end_time.is_(None).asc(), due] + structural_ordering()
    elif sort.key == SortKey.PRIORITY:
        critical = Task.is_critical.asc() if descending else Task.is_critical.desc()
        clauses = [critical] + structural_ordering()
    elif sort.key == SortKey.CREATED:
        clauses = [Task.created_at.desc() if descending else Task.created_at.asc()]
    else:
        clauses = structural_ordering(sort.direction)

    return clauses + [Task.id.asc()]


class TaskQueryService:
    """Paginated, filtered task listing for the presentation layer."""

    def __init__(self, session: AsyncSession, directory: CrewDirectory, config: EngineConfig):
        self.session = session
        self.directory = directory
        self.config = config

    async def _execute(self, query, operation: str):
        return await bounded(
            self.session.execute(query),
            self.config.io_timeout_seconds,
            f"task query: {operation}",
        )

    async def _conditions(
        self,
        project_id: uuid.UUID,
        filters: TaskFilters,
        now: datetime,
    ) -> list:
        conditions = [Task.project_id == project_id]

        if not filters.include_archived:
            conditions.append(Task.is_archived == False)  # noqa: E712

        if filters.search and filters.search.strip():
            pattern = f"%{_escape_like(filters.search.strip())}%"
            conditions.append(or_(
                Task.name.ilike(pattern, escape="\\"),
                Task.description.ilike(pattern, escape="\\"),
                Task.phase_name.ilike(pattern, escape="\\"),
                Task.step_name.ilike(pattern, escape="\\"),
            ))

        statuses: set[TaskStatus] | None = None
        if filters.status is not None:
            statuses = {filters.status}
        if filters.tab is not None:
            tab_statuses = set(filters.tab.statuses)
            statuses = tab_statuses if statuses is None else statuses & tab_statuses
        if filters.escalated_only:
            statuses = {TaskStatus.ESCALATED} if statuses is None else statuses & {TaskStatus.ESCALATED}
        if statuses is not None:
            conditions.append(Task.status.in_(sorted(statuses, key=lambda s: s.value)))

        if filters.assigned_crew_id == UNASSIGNED:
            conditions.append(Task.assigned_crew_id.is_(None))
        elif filters.assigned_crew_id is not None:
            conditions.append(Task.assigned_crew_id == filters.assigned_crew_id)

        if filters.assigned_role_id is not None:
            conditions.append(Task.assigned_role_id == filters.assigned_role_id)

        if filters.department_id is not None:
            role_ids = await self.directory.get_role_ids_for_department(
                project_id, filters.department_id
            )
            conditions.append(Task.assigned_role_id.in_(role_ids))

        if filters.due_within_hours is not None:
            horizon = now + timedelta(hours=filters.due_within_hours)
            conditions.append(Task.expected_end_time.is_not(None))
            conditions.append(Task.expected_end_time <= horizon)

        if filters.category is not None:
            conditions.append(Task.category == filters.category)

        if filters.is_critical is not None:
            conditions.append(Task.is_critical == filters.is_critical)

        return conditions

    async def list_tasks(
        self,
        project_id: uuid.UUID,
        filters: TaskFilters | dict | None = None,
        sort: TaskSort | dict | None = None,
        pagination: Pagination | dict | None = None,
        now: datetime | None = None,
    ) -> TaskPage:
        """
        One page of a project's tasks.

        Raises:
            ValidationError: malformed filters, sort or pagination.
        """
        filters = coerce_model(TaskFilters, filters)
        sort = coerce_model(TaskSort, sort)
        pagination = coerce_model(Pagination, pagination)
        now = now or datetime.utcnow()

        page_size = pagination.page_size or self.config.page_size_default
        if page_size > self.config.page_size_max:
            raise ValidationError(
                f"page_size must be at most {self.config.page_size_max}",
                details=[{
                    "loc": ["query", "page_size"],
                    "msg": f"{page_size} exceeds {self.config.page_size_max}",
                    "type": "value_error",
                }],
            )

        conditions = await self._conditions(project_id, filters, now)

        count_result = await self._execute(
            select(func.count()).select_from(Task).where(*conditions),
            "count",
        )
        total_count = int(count_result.scalar_one())

        query = (
            select(Task)
            .where(*conditions)
            .order_by(*sort_clauses(sort))
            .offset((pagination.page - 1) * page_size)
            .limit(page_size)
        )
        result = await self._execute(query, "page")
        tasks = list(result.scalars().all())

        logger.debug(
            f"Listed {len(tasks)}/{total_count} tasks for project={project_id} "
            f"page={pagination.page} sort={sort.key.value}:{sort.direction.value}"
        )

        return TaskPage(
            items=await build_summaries(tasks, self.directory),
            page=pagination.page,
            page_size=page_size,
            total_count=total_count,
        )

    async def task_stats(self, project_id: uuid.UUID) -> TaskStats:
        """Counts per status plus unassigned, over non-archived tasks."""
        result = await self._execute(
            select(Task.status, func.count())
            .where(Task.project_id == project_id, Task.is_archived == False)  # noqa: E712
            .group_by(Task.status),
            "status counts",
        )
        stats = TaskStats()
        for status, count in result.all():
            setattr(stats, TaskStatus(status).value, int(count))
            stats.total += int(count)

        unassigned = await self._execute(
            select(func.count()).select_from(Task).where(
                Task.project_id == project_id,
                Task.is_archived == False,  # noqa: E712
                Task.assigned_crew_id.is_(None),
            ),
            "unassigned count",
        )
        stats.unassigned = int(unassigned.scalar_one())
        return stats
