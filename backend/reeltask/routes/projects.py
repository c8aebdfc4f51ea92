"""
Project routes for the Reeltask API.
"""

import uuid
from datetime import datetime
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from reeltask.auth import get_actor
from reeltask.database import get_session
from reeltask.dependencies import get_engine
from reeltask.models import Project, ProjectStatus
from reeltask.schemas import (
    AutoStartResult,
    ProjectCreate,
    ProjectRead,
    ProjectUpdate,
    TaskStats,
    TaskSummary,
)
from reeltask.services.engine import TaskEngine
from reeltask.worker import enqueue_auto_start
from reeltask.exceptions import NotFoundError, ValidationError
from reeltask.logging_config import get_logger

logger = get_logger(__name__)

router = APIRouter()


def _check_dates(start_date, end_date) -> None:
    if start_date and end_date and end_date < start_date:
        raise ValidationError("end_date must not be before start_date")


async def _get_project(session: AsyncSession, project_id: uuid.UUID) -> Project:
    project = await session.get(Project, project_id)
    if not project or project.is_archived:
        raise NotFoundError("Project", str(project_id))
    return project


@router.post("/", response_model=ProjectRead, status_code=status.HTTP_201_CREATED)
async def create_project(
    project_in: ProjectCreate,
    session: AsyncSession = Depends(get_session),
    actor: str = Depends(get_actor),
) -> Project:
    """Create a new project."""
    _check_dates(project_in.start_date, project_in.end_date)

    project = Project(**project_in.model_dump(), created_by=actor, updated_by=actor)
    session.add(project)
    await session.flush()
    await session.refresh(project)

    logger.info(f"Created project: id={project.id} name='{project.name}' by {actor}")

    return project


@router.get("/", response_model=list[ProjectRead])
async def list_projects(
    include_archived: bool = False,
    session: AsyncSession = Depends(get_session),
) -> list[Project]:
    """List projects, newest first."""
    query = select(Project)
    if not include_archived:
        query = query.where(Project.is_archived == False)  # noqa: E712
    result = await session.execute(query.order_by(Project.created_at.desc()))
    projects = list(result.scalars().all())

    logger.debug(f"Listed {len(projects)} projects")

    return projects


@router.get("/{project_id}", response_model=ProjectRead)
async def get_project(
    project_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
) -> Project:
    """Get a project by ID."""
    return await _get_project(session, project_id)


@router.patch("/{project_id}", response_model=ProjectRead)
async def update_project(
    project_id: uuid.UUID,
    project_in: ProjectUpdate,
    engine: TaskEngine = Depends(get_engine),
    actor: str = Depends(get_actor),
) -> Project:
    """
    Update a project.

    Status is derived from the tasks; the only manual control is putting the
    project on hold and releasing it again.
    """
    session = engine.session
    project = await _get_project(session, project_id)

    update_data = project_in.model_dump(exclude_unset=True)
    on_hold = update_data.pop("on_hold", None)

    _check_dates(
        update_data.get("start_date", project.start_date),
        update_data.get("end_date", project.end_date),
    )

    logger.info(f"Updating project {project_id}: {update_data}")

    for field, value in update_data.items():
        setattr(project, field, value)

    if on_hold is True and project.status != ProjectStatus.CANCELLED:
        project.status = ProjectStatus.ON_HOLD
    elif on_hold is False and project.status == ProjectStatus.ON_HOLD:
        project.status = ProjectStatus.PLANNING

    project.updated_by = actor
    project.updated_at = datetime.utcnow()
    await session.flush()

    if on_hold is False:
        await engine.rollup.refresh(project_id, actor)

    await session.refresh(project)
    return project


@router.delete("/{project_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_project(
    project_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
    actor: str = Depends(get_actor),
) -> None:
    """Archive a project. Its tasks are kept for history."""
    project = await _get_project(session, project_id)

    logger.info(f"Archiving project {project_id}: '{project.name}'")

    project.is_archived = True
    project.updated_by = actor
    project.updated_at = datetime.utcnow()
    await session.flush()


@router.get("/{project_id}/ready", response_model=list[TaskSummary])
async def ready_tasks(
    project_id: uuid.UUID,
    engine: TaskEngine = Depends(get_engine),
) -> list[TaskSummary]:
    """Pending tasks whose prerequisites are all satisfied, in structural order."""
    await _get_project(engine.session, project_id)
    return await engine.compute_ready_set(project_id)


@router.get("/{project_id}/stats", response_model=TaskStats)
async def project_stats(
    project_id: uuid.UUID,
    engine: TaskEngine = Depends(get_engine),
) -> TaskStats:
    await _get_project(engine.session, project_id)
    return await engine.task_stats(project_id)


@router.post("/{project_id}/auto-start", response_model=AutoStartResult)
async def auto_start(
    project_id: uuid.UUID,
    background: bool = False,
    engine: TaskEngine = Depends(get_engine),
    actor: str = Depends(get_actor),
) -> AutoStartResult:
    """
    Start ready, staffed tasks up to the concurrency cap.

    With background=true the run is queued on the worker instead.
    """
    await _get_project(engine.session, project_id)

    if background:
        await enqueue_auto_start(str(project_id), actor)
        return AutoStartResult(started_count=0, queued=True)

    started = await engine.auto_start_ready_tasks(project_id, actor)
    return AutoStartResult(started_count=started)
