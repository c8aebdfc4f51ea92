"""
Task routes for the Reeltask API.

Status changes go through the lifecycle endpoints (start, complete, ...);
PATCH only edits fields. Every mutating endpoint records the caller as actor.
"""

import uuid
from fastapi import APIRouter, Depends, Query, status

from reeltask.auth import get_actor
from reeltask.dependencies import get_engine
from reeltask.models import Task
from reeltask.schemas import (
    Attachment,
    CommentCreate,
    CompleteResult,
    EscalateRequest,
    QuickCompleteRequest,
    StartRequest,
    TaskCreate,
    TaskPage,
    TaskRead,
    TaskUpdate,
)
from reeltask.services.engine import TaskEngine
from reeltask.services.lifecycle import TransitionResult
from reeltask.logging_config import get_logger

logger = get_logger(__name__)

router = APIRouter()


def _present(**params) -> dict:
    return {key: value for key, value in params.items() if value is not None}


def _complete_result(result: TransitionResult) -> CompleteResult:
    return CompleteResult(
        task=TaskRead.model_validate(result.task),
        propagated_ready_count=result.propagated_ready_count,
    )


@router.post("/", response_model=TaskRead, status_code=status.HTTP_201_CREATED)
async def create_task(
    task_in: TaskCreate,
    engine: TaskEngine = Depends(get_engine),
    actor: str = Depends(get_actor),
) -> Task:
    """Create a new task. Tasks always start out pending."""
    return await engine.create_task(task_in, actor)


@router.get("/", response_model=TaskPage)
async def list_tasks(
    project_id: uuid.UUID,
    search: str | None = None,
    task_status: str | None = Query(default=None, alias="status"),
    tab: str | None = None,
    assigned_crew_id: str | None = None,
    assigned_role_id: str | None = None,
    department_id: str | None = None,
    due_within_hours: str | None = None,
    escalated_only: str | None = None,
    category: str | None = None,
    is_critical: str | None = None,
    include_archived: str | None = None,
    sort: str | None = None,
    direction: str | None = None,
    page: str | None = None,
    page_size: str | None = None,
    engine: TaskEngine = Depends(get_engine),
) -> TaskPage:
    """
    List a project's tasks, filtered, sorted and paginated.

    Query values are validated by the engine so that malformed input comes
    back as a validation_error like every other engine error.
    """
    filters = _present(
        search=search,
        status=task_status,
        tab=tab,
        assigned_crew_id=assigned_crew_id,
        assigned_role_id=assigned_role_id,
        department_id=department_id,
        due_within_hours=due_within_hours,
        escalated_only=escalated_only,
        category=category,
        is_critical=is_critical,
        include_archived=include_archived,
    )
    return await engine.list_tasks(
        project_id,
        filters=filters,
        sort=_present(key=sort, direction=direction),
        pagination=_present(page=page, page_size=page_size),
    )


@router.get("/{task_id}", response_model=TaskRead)
async def get_task(
    task_id: uuid.UUID,
    engine: TaskEngine = Depends(get_engine),
) -> Task:
    """Get a task by ID."""
    return await engine.get_task(task_id)


@router.patch("/{task_id}", response_model=TaskRead)
async def update_task(
    task_id: uuid.UUID,
    task_in: TaskUpdate,
    engine: TaskEngine = Depends(get_engine),
    actor: str = Depends(get_actor),
) -> Task:
    """Edit task fields and apply checklist operations."""
    return await engine.update_task(task_id, task_in, actor)


@router.delete("/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_task(
    task_id: uuid.UUID,
    engine: TaskEngine = Depends(get_engine),
    actor: str = Depends(get_actor),
) -> None:
    """Archive a task. Archived tasks are kept but leave every list and scan."""
    await engine.archive_task(task_id, actor)


# =============================================================================
# Lifecycle
# =============================================================================

@router.post("/{task_id}/start", response_model=TaskRead)
async def start_task(
    task_id: uuid.UUID,
    body: StartRequest | None = None,
    engine: TaskEngine = Depends(get_engine),
    actor: str = Depends(get_actor),
) -> Task:
    """Start a task, assigning a crew member from its role."""
    force = body.force if body else False
    return await engine.start_task(task_id, actor, force=force)


@router.post("/{task_id}/complete", response_model=CompleteResult)
async def complete_task(
    task_id: uuid.UUID,
    engine: TaskEngine = Depends(get_engine),
    actor: str = Depends(get_actor),
) -> CompleteResult:
    """Complete a task; reports how many dependents became ready."""
    return _complete_result(await engine.complete_task(task_id, actor))


@router.post("/{task_id}/escalate", response_model=TaskRead)
async def escalate_task(
    task_id: uuid.UUID,
    body: EscalateRequest | None = None,
    engine: TaskEngine = Depends(get_engine),
    actor: str = Depends(get_actor),
) -> Task:
    reason = body.reason if body else None
    return await engine.escalate_task(task_id, actor, reason)


@router.post("/{task_id}/block", response_model=TaskRead)
async def block_task(
    task_id: uuid.UUID,
    engine: TaskEngine = Depends(get_engine),
    actor: str = Depends(get_actor),
) -> Task:
    return await engine.block_task(task_id, actor)


@router.post("/{task_id}/unblock", response_model=TaskRead)
async def unblock_task(
    task_id: uuid.UUID,
    engine: TaskEngine = Depends(get_engine),
    actor: str = Depends(get_actor),
) -> Task:
    return await engine.unblock_task(task_id, actor)


@router.post("/{task_id}/cancel", response_model=TaskRead)
async def cancel_task(
    task_id: uuid.UUID,
    engine: TaskEngine = Depends(get_engine),
    actor: str = Depends(get_actor),
) -> Task:
    return await engine.cancel_task(task_id, actor)


@router.post("/{task_id}/quick-complete", response_model=CompleteResult)
async def quick_complete(
    task_id: uuid.UUID,
    body: QuickCompleteRequest | None = None,
    engine: TaskEngine = Depends(get_engine),
    actor: str = Depends(get_actor),
) -> CompleteResult:
    """Start and immediately complete a task."""
    force = body.force if body else False
    return _complete_result(await engine.quick_complete(task_id, actor, force=force))


# =============================================================================
# Comments & attachments
# =============================================================================

@router.post("/{task_id}/comments", response_model=TaskRead, status_code=status.HTTP_201_CREATED)
async def add_comment(
    task_id: uuid.UUID,
    comment_in: CommentCreate,
    engine: TaskEngine = Depends(get_engine),
    actor: str = Depends(get_actor),
) -> Task:
    return await engine.add_comment(task_id, comment_in.text, actor)


@router.post("/{task_id}/attachments", response_model=TaskRead, status_code=status.HTTP_201_CREATED)
async def add_attachment(
    task_id: uuid.UUID,
    attachment_in: Attachment,
    engine: TaskEngine = Depends(get_engine),
    actor: str = Depends(get_actor),
) -> Task:
    return await engine.add_attachment(task_id, attachment_in, actor)
