"""
Crew/Role directory.

The engine consumes crew and role data but does not own it. CrewDirectory is
the read contract the engine depends on; SqlCrewDirectory answers it from the
project_roles / project_crew tables.
"""

import uuid
from dataclasses import dataclass, field
from datetime import date
from typing import Iterable, Protocol

from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from reeltask.models import ProjectCrew, ProjectRole, Task, TaskStatus
from reeltask.services.timeouts import bounded


@dataclass(frozen=True)
class CrewRef:
    """An active crew member as seen by the assignment policy."""
    crew_id: uuid.UUID
    project_id: uuid.UUID
    project_role_id: uuid.UUID
    user_id: str
    user_name: str
    is_lead: bool
    joined_date: date | None


@dataclass(frozen=True)
class RoleLabel:
    role_name: str
    department_id: uuid.UUID | None
    department_name: str


@dataclass
class DisplayNames:
    """Display cache for task summaries, refreshed on every read."""
    crew_names: dict[uuid.UUID, str] = field(default_factory=dict)
    roles: dict[uuid.UUID, RoleLabel] = field(default_factory=dict)


class CrewDirectory(Protocol):
    async def get_active_crew_for_role(self, role_id: uuid.UUID) -> list[CrewRef]:
        ...

    async def get_ongoing_task_count_for_crew(self, crew_id: uuid.UUID) -> int:
        ...

    async def get_role_ids_for_department(
        self, project_id: uuid.UUID, department_id: uuid.UUID
    ) -> list[uuid.UUID]:
        ...

    async def get_roles_with_active_crew(self, role_ids: Iterable[uuid.UUID]) -> set[uuid.UUID]:
        ...

    async def get_display_names(
        self, crew_ids: Iterable[uuid.UUID], role_ids: Iterable[uuid.UUID]
    ) -> DisplayNames:
        ...

    async def role_in_project(self, role_id: uuid.UUID, project_id: uuid.UUID) -> bool:
        ...


class SqlCrewDirectory:
    """CrewDirectory backed by the project_roles and project_crew tables."""

    def __init__(self, session: AsyncSession, timeout_seconds: float = 10.0):
        self.session = session
        self.timeout_seconds = timeout_seconds

    async def _execute(self, query, operation: str):
        return await bounded(
            self.session.execute(query),
            self.timeout_seconds,
            f"crew directory: {operation}",
        )

    async def get_active_crew_for_role(self, role_id: uuid.UUID) -> list[CrewRef]:
        query = (
            select(ProjectCrew)
            .join(ProjectRole, ProjectRole.id == ProjectCrew.project_role_id)
            .where(
                ProjectCrew.project_role_id == role_id,
                ProjectCrew.is_active == True,  # noqa: E712
                ProjectRole.is_active == True,  # noqa: E712
            )
        )
        result = await self._execute(query, "active crew for role")
        return [
            CrewRef(
                crew_id=member.id,
                project_id=member.project_id,
                project_role_id=member.project_role_id,
                user_id=member.user_id,
                user_name=member.user_name,
                is_lead=member.is_lead,
                joined_date=member.joined_date,
            )
            for member in result.scalars().all()
        ]

    async def get_ongoing_task_count_for_crew(self, crew_id: uuid.UUID) -> int:
        query = select(func.count()).select_from(Task).where(
            Task.assigned_crew_id == crew_id,
            Task.status == TaskStatus.ONGOING,
            Task.is_archived == False,  # noqa: E712
        )
        result = await self._execute(query, "ongoing task count")
        return int(result.scalar_one())

    async def get_role_ids_for_department(
        self, project_id: uuid.UUID, department_id: uuid.UUID
    ) -> list[uuid.UUID]:
        query = select(ProjectRole.id).where(
            ProjectRole.project_id == project_id,
            ProjectRole.department_id == department_id,
        )
        result = await self._execute(query, "roles for department")
        return [row[0] for row in result.all()]

    async def get_roles_with_active_crew(self, role_ids: Iterable[uuid.UUID]) -> set[uuid.UUID]:
        ids = list(set(role_ids))
        if not ids:
            return set()
        query = (
            select(ProjectCrew.project_role_id)
            .join(ProjectRole, ProjectRole.id == ProjectCrew.project_role_id)
            .where(
                ProjectCrew.project_role_id.in_(ids),
                ProjectCrew.is_active == True,  # noqa: E712
                ProjectRole.is_active == True,  # noqa: E712
            )
            .distinct()
        )
        result = await self._execute(query, "roles with crew")
        return {row[0] for row in result.all()}

    async def get_display_names(
        self, crew_ids: Iterable[uuid.UUID], role_ids: Iterable[uuid.UUID]
    ) -> DisplayNames:
        names = DisplayNames()
        crew_ids = list(set(crew_ids))
        role_ids = list(set(role_ids))

        if crew_ids:
            result = await self._execute(
                select(ProjectCrew.id, ProjectCrew.user_name, ProjectCrew.user_id).where(
                    ProjectCrew.id.in_(crew_ids)
                ),
                "crew names",
            )
            for crew_id, user_name, user_id in result.all():
                names.crew_names[crew_id] = user_name or user_id

        if role_ids:
            result = await self._execute(
                select(ProjectRole).where(ProjectRole.id.in_(role_ids)),
                "role names",
            )
            for role in result.scalars().all():
                names.roles[role.id] = RoleLabel(
                    role_name=role.role_name,
                    department_id=role.department_id,
                    department_name=role.department_name,
                )

        return names

    async def role_in_project(self, role_id: uuid.UUID, project_id: uuid.UUID) -> bool:
        role = await bounded(
            self.session.get(ProjectRole, role_id),
            self.timeout_seconds,
            "crew directory: get role",
        )
        return role is not None and role.project_id == project_id

    async def filled_counts(self, role_ids: Iterable[uuid.UUID]) -> dict[uuid.UUID, int]:
        """Active crew per role (the derived filled_count)."""
        ids = list(set(role_ids))
        if not ids:
            return {}
        query = (
            select(ProjectCrew.project_role_id, func.count())
            .where(
                ProjectCrew.project_role_id.in_(ids),
                ProjectCrew.is_active == True,  # noqa: E712
            )
            .group_by(ProjectCrew.project_role_id)
        )
        result = await self._execute(query, "filled counts")
        counts = {role_id: 0 for role_id in ids}
        counts.update({role_id: int(count) for role_id, count in result.all()})
        return counts
