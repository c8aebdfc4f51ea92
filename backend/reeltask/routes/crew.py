"""
Crew routes: project roles and the crew members filling them.

filled_count on a role is derived from its active crew on every read.
Over-filling a role is allowed and only flagged.
"""

import uuid
from datetime import datetime
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from reeltask.auth import get_actor
from reeltask.config import get_settings
from reeltask.database import get_session
from reeltask.models import Project, ProjectCrew, ProjectRole
from reeltask.schemas import CrewCreate, CrewRead, CrewUpdate, RoleCreate, RoleRead
from reeltask.services.crew_directory import SqlCrewDirectory
from reeltask.exceptions import NotFoundError, ValidationError
from reeltask.logging_config import get_logger

logger = get_logger(__name__)

router = APIRouter()


def _directory(session: AsyncSession) -> SqlCrewDirectory:
    return SqlCrewDirectory(session, get_settings().io_timeout_seconds)


async def _role_reads(session: AsyncSession, roles: list[ProjectRole]) -> list[RoleRead]:
    counts = await _directory(session).filled_counts(role.id for role in roles)
    return [
        RoleRead.model_validate(role).model_copy(update={"filled_count": counts.get(role.id, 0)})
        for role in roles
    ]


@router.post("/roles", response_model=RoleRead, status_code=status.HTTP_201_CREATED)
async def create_role(
    role_in: RoleCreate,
    session: AsyncSession = Depends(get_session),
    actor: str = Depends(get_actor),
) -> RoleRead:
    project = await session.get(Project, role_in.project_id)
    if not project:
        raise NotFoundError("Project", str(role_in.project_id))

    existing = await session.execute(
        select(ProjectRole).where(
            ProjectRole.project_id == role_in.project_id,
            ProjectRole.role_name == role_in.role_name,
        )
    )
    if existing.scalars().first() is not None:
        raise ValidationError(f"Role '{role_in.role_name}' already exists in this project")

    role = ProjectRole(**role_in.model_dump(), created_by=actor, updated_by=actor)
    session.add(role)
    await session.flush()
    await session.refresh(role)

    logger.info(f"Created role: id={role.id} '{role.role_name}' project={role.project_id}")

    return (await _role_reads(session, [role]))[0]


@router.get("/roles", response_model=list[RoleRead])
async def list_roles(
    project_id: uuid.UUID,
    include_inactive: bool = False,
    session: AsyncSession = Depends(get_session),
) -> list[RoleRead]:
    query = select(ProjectRole).where(ProjectRole.project_id == project_id)
    if not include_inactive:
        query = query.where(ProjectRole.is_active == True)  # noqa: E712
    result = await session.execute(query.order_by(ProjectRole.department_name, ProjectRole.role_name))
    return await _role_reads(session, list(result.scalars().all()))


@router.post("/members", response_model=CrewRead, status_code=status.HTTP_201_CREATED)
async def add_crew_member(
    crew_in: CrewCreate,
    session: AsyncSession = Depends(get_session),
    actor: str = Depends(get_actor),
) -> ProjectCrew:
    """Put a person on a project role."""
    role = await session.get(ProjectRole, crew_in.project_role_id)
    if not role or role.project_id != crew_in.project_id:
        raise NotFoundError("Role", str(crew_in.project_role_id))
    if not role.is_active:
        raise ValidationError(f"Role '{role.role_name}' is not active")

    existing = await session.execute(
        select(ProjectCrew).where(
            ProjectCrew.project_id == crew_in.project_id,
            ProjectCrew.project_role_id == crew_in.project_role_id,
            ProjectCrew.user_id == crew_in.user_id,
        )
    )
    if existing.scalars().first() is not None:
        raise ValidationError(f"{crew_in.user_id} already holds role '{role.role_name}'")

    data = crew_in.model_dump(exclude_none=True)
    member = ProjectCrew(**data, created_by=actor, updated_by=actor)
    session.add(member)
    await session.flush()
    await session.refresh(member)

    logger.info(f"Added crew {member.user_id} to role '{role.role_name}' (lead={member.is_lead})")

    return member


@router.get("/members", response_model=list[CrewRead])
async def list_crew(
    project_id: uuid.UUID,
    role_id: uuid.UUID | None = None,
    include_inactive: bool = False,
    session: AsyncSession = Depends(get_session),
) -> list[ProjectCrew]:
    query = select(ProjectCrew).where(ProjectCrew.project_id == project_id)
    if role_id:
        query = query.where(ProjectCrew.project_role_id == role_id)
    if not include_inactive:
        query = query.where(ProjectCrew.is_active == True)  # noqa: E712
    result = await session.execute(query.order_by(ProjectCrew.joined_date, ProjectCrew.user_name))
    return list(result.scalars().all())


@router.patch("/members/{crew_id}", response_model=CrewRead)
async def update_crew_member(
    crew_id: uuid.UUID,
    crew_in: CrewUpdate,
    session: AsyncSession = Depends(get_session),
    actor: str = Depends(get_actor),
) -> ProjectCrew:
    """Update a crew member. Setting left_date also takes them off the crew."""
    member = await session.get(ProjectCrew, crew_id)
    if not member:
        raise NotFoundError("Crew member", str(crew_id))

    update_data = crew_in.model_dump(exclude_unset=True)

    left_date = update_data.get("left_date")
    if left_date is not None:
        if member.joined_date and left_date < member.joined_date:
            raise ValidationError("left_date must not be before joined_date")
        update_data.setdefault("is_active", False)

    logger.info(f"Updating crew member {crew_id}: {update_data}")

    for field, value in update_data.items():
        setattr(member, field, value)

    member.updated_by = actor
    member.updated_at = datetime.utcnow()
    await session.flush()
    await session.refresh(member)
    return member
