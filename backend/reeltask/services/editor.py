"""
Task editing: creation, field updates, comments, attachments and archiving.

Status and lifecycle timestamps are never written here; they belong to the
lifecycle controller. Every edit of an existing task is a compare-and-swap on
its version_id, like a transition.
"""

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy.exc import IntegrityError

from reeltask.exceptions import (
    ConcurrentModificationError,
    CycleDetectedError,
    NotFoundError,
    TaskArchivedError,
    ValidationError,
)
from reeltask.models import Task
from reeltask.schemas import Attachment, ChecklistItem, Comment, TaskCreate, TaskUpdate
from reeltask.schemas.task import ChecklistAdd, ChecklistEdit, ChecklistRemove, ChecklistToggle
from reeltask.services.crew_directory import CrewDirectory
from reeltask.services.queries import coerce_model
from reeltask.services.readiness import ReadinessEvaluator
from reeltask.services.task_store import TaskStore
from reeltask.logging_config import get_logger

logger = get_logger(__name__)

# Columns that may be edited but never cleared
NON_NULLABLE_FIELDS = ("name", "phase_name", "step_name", "is_critical")


def apply_checklist_operations(items: list[dict[str, Any]], operations) -> list[dict[str, Any]]:
    """
    Apply checklist operations in order and return the new item list.

    Indexes refer to the list as it stands when the operation runs, so a
    remove shifts the items after it.
    """
    items = [dict(item) for item in items]

    for position, op in enumerate(operations):
        if isinstance(op, ChecklistAdd):
            items.append(ChecklistItem(text=op.text, completed=op.completed).model_dump())
            continue

        if op.index >= len(items):
            raise ValidationError(
                f"Checklist item {op.index} does not exist",
                details=[{
                    "loc": ["body", "checklist", position, "index"],
                    "msg": f"index out of range (checklist has {len(items)} items)",
                    "type": "value_error",
                }],
            )

        if isinstance(op, ChecklistToggle):
            items[op.index]["completed"] = op.completed
        elif isinstance(op, ChecklistEdit):
            items[op.index]["text"] = op.text
        elif isinstance(op, ChecklistRemove):
            del items[op.index]

    return items


class TaskEditor:
    def __init__(self, store: TaskStore, readiness: ReadinessEvaluator, directory: CrewDirectory):
        self.store = store
        self.readiness = readiness
        self.directory = directory

    async def _check_role(self, role_id: uuid.UUID | None, project_id: uuid.UUID) -> None:
        if role_id is None:
            return
        if not await self.directory.role_in_project(role_id, project_id):
            raise ValidationError(
                f"Role {role_id} does not belong to project {project_id}",
                details=[{
                    "loc": ["body", "assigned_role_id"],
                    "msg": "role not in project",
                    "type": "value_error",
                }],
            )

    async def _check_parent(self, candidate: Task) -> None:
        if candidate.parent_task_id is None:
            return
        if candidate.parent_task_id == candidate.id:
            raise CycleDetectedError(str(candidate.id), str(candidate.parent_task_id))
        if await self.readiness.would_create_cycle(candidate):
            raise CycleDetectedError(str(candidate.id), str(candidate.parent_task_id))

    async def _save(self, task: Task, values: dict[str, Any], actor: str) -> Task:
        values["updated_by"] = actor
        updated = await self.store.compare_and_set(task.id, task.version_id, values)
        if updated is None:
            raise ConcurrentModificationError(str(task.id))
        return updated

    async def _editable(self, task_id: uuid.UUID) -> Task:
        task = await self.store.require(task_id)
        if task.is_archived:
            raise TaskArchivedError(str(task_id))
        return task

    async def create_task(self, data: TaskCreate | dict, actor: str) -> Task:
        """Create a pending task."""
        data = coerce_model(TaskCreate, data)

        if not await self.store.project_exists(data.project_id):
            raise NotFoundError("Project", str(data.project_id))

        existing = await self.store.find_by_structural_order(
            data.project_id, data.phase_order, data.step_order, data.task_order
        )
        if existing is not None:
            raise ValidationError(
                f"Position {data.phase_order}.{data.step_order}.{data.task_order} "
                f"is already taken in project {data.project_id}",
                details=[{
                    "loc": ["body", "task_order"],
                    "msg": f"taken by task {existing.id}",
                    "type": "value_error",
                }],
            )

        await self._check_role(data.assigned_role_id, data.project_id)

        task = Task(
            **data.model_dump(exclude={"checklist_items"}),
            checklist_items=[item.model_dump() for item in data.checklist_items],
            created_by=actor,
            updated_by=actor,
        )
        await self._check_parent(task)

        try:
            task = await self.store.add(task)
        except IntegrityError as exc:
            # Another create took the position after the check above
            raise ValidationError(
                f"Position {data.phase_order}.{data.step_order}.{data.task_order} "
                f"is already taken in project {data.project_id}",
                details=[{
                    "loc": ["body", "task_order"],
                    "msg": "position taken by a concurrent create",
                    "type": "value_error",
                }],
            ) from exc
        logger.info(
            f"Created task: id={task.id} name='{task.name}' project={task.project_id} "
            f"at {task.phase_order}.{task.step_order}.{task.task_order}"
        )
        return task

    async def update_task(self, task_id: uuid.UUID, changes: TaskUpdate | dict, actor: str) -> Task:
        """
        Apply field updates and checklist operations to a task.

        Raises:
            TaskNotFoundError, TaskArchivedError, ValidationError,
            CycleDetectedError, ConcurrentModificationError
        """
        changes = coerce_model(TaskUpdate, changes)
        task = await self._editable(task_id)

        values = changes.model_dump(exclude_unset=True, exclude={"checklist"})
        for field in NON_NULLABLE_FIELDS:
            if field in values and values[field] is None:
                raise ValidationError(f"{field} cannot be cleared")

        start = values.get("expected_start_time", task.expected_start_time)
        end = values.get("expected_end_time", task.expected_end_time)
        if start is not None and end is not None and end < start:
            raise ValidationError("expected_end_time must not be before expected_start_time")

        if "assigned_role_id" in values:
            await self._check_role(values["assigned_role_id"], task.project_id)

        if values.get("parent_task_id") is not None:
            candidate = Task(**{**task.model_dump(), **values})
            await self._check_parent(candidate)

        if changes.checklist:
            values["checklist_items"] = apply_checklist_operations(
                task.checklist_items, changes.checklist
            )

        if not values:
            return task

        logger.info(f"Updating task {task_id}: {sorted(values)}")
        return await self._save(task, values, actor)

    async def add_comment(self, task_id: uuid.UUID, text: str, actor: str) -> Task:
        task = await self._editable(task_id)
        comment = Comment(text=text, author=actor, created_at=datetime.utcnow())
        comments = list(task.comments) + [comment.model_dump(mode="json")]
        return await self._save(task, {"comments": comments}, actor)

    async def add_attachment(self, task_id: uuid.UUID, attachment: Attachment | dict, actor: str) -> Task:
        attachment = coerce_model(Attachment, attachment)
        task = await self._editable(task_id)
        attachments = list(task.file_attachments) + [attachment.model_dump(mode="json")]
        logger.info(f"Attached '{attachment.name}' to task {task_id}")
        return await self._save(task, {"file_attachments": attachments}, actor)

    async def archive_task(self, task_id: uuid.UUID, actor: str) -> Task:
        """Soft-delete a task; it drops out of readiness, queries and scans."""
        task = await self._editable(task_id)
        logger.info(f"Archiving task {task_id}: '{task.name}'")
        return await self._save(task, {"is_archived": True}, actor)
