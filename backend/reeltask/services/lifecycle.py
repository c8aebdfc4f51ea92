"""
Lifecycle controller: the task status state machine.

This is the only writer of a task's status and of actual_start_time,
actual_end_time and escalated_at. Each transition:

1. loads the task and checks it exists, is not archived, and that the
   source -> target pair is legal
2. computes the side effects (timestamps, assignment, hours)
3. writes them with one compare-and-swap on (version_id, status); losing the
   race raises ConcurrentModificationError and nothing is retried
4. runs best-effort follow-ups: dependent propagation, project status
   rollup, notification
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from reeltask.config import EngineConfig
from reeltask.exceptions import (
    ConcurrentModificationError,
    InvalidTransitionError,
    NoCrewAvailableError,
    TaskArchivedError,
    TaskNotFoundError,
    ValidationError,
)
from reeltask.models import Task, TaskStatus
from reeltask.schemas import TaskRead
from reeltask.services.assignment import AssignmentPolicy
from reeltask.services.notifications import NotificationSink, emit
from reeltask.services.project_status import ProjectStatusRollup
from reeltask.services.readiness import ReadinessEvaluator
from reeltask.services.task_store import TaskStore
from reeltask.logging_config import get_audit_logger, get_logger

logger = get_logger(__name__)
audit = get_audit_logger()

MANUAL_ESCALATION_REASON = "Manually escalated"
MAX_ESCALATION_REASON = 500

ALLOWED_TRANSITIONS: dict[TaskStatus, frozenset[TaskStatus]] = {
    TaskStatus.PENDING: frozenset({TaskStatus.ONGOING, TaskStatus.BLOCKED, TaskStatus.CANCELLED}),
    TaskStatus.ONGOING: frozenset({
        TaskStatus.COMPLETED, TaskStatus.ESCALATED, TaskStatus.BLOCKED, TaskStatus.CANCELLED,
    }),
    TaskStatus.BLOCKED: frozenset({TaskStatus.PENDING, TaskStatus.ONGOING, TaskStatus.CANCELLED}),
    TaskStatus.ESCALATED: frozenset({TaskStatus.ONGOING, TaskStatus.CANCELLED}),
    TaskStatus.COMPLETED: frozenset(),
    TaskStatus.CANCELLED: frozenset(),
}


def can_transition(source: TaskStatus, target: TaskStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[source]


def check_transition(task: Task, target: TaskStatus) -> None:
    if task.is_archived:
        raise TaskArchivedError(str(task.id))
    if not can_transition(task.status, target):
        raise InvalidTransitionError(str(task.id), task.status.value, target.value)


def hours_between(start: datetime, end: datetime) -> float:
    return round(max((end - start).total_seconds(), 0) / 3600, 2)


def lifecycle_changes(
    task: Task,
    target: TaskStatus,
    now: datetime,
    reason: str | None = None,
) -> dict[str, Any]:
    """
    Column values written when `task` enters `target` at `now`.

    Assignment and planned times are added separately by the controller.
    """
    changes: dict[str, Any] = {"status": target}

    if target == TaskStatus.ONGOING:
        if task.actual_start_time is None:
            changes["actual_start_time"] = now

    elif target == TaskStatus.COMPLETED:
        changes["actual_end_time"] = now
        if task.actual_start_time is not None:
            changes["actual_hours"] = hours_between(task.actual_start_time, now)

    elif target == TaskStatus.ESCALATED:
        reason = (reason or "").strip() or MANUAL_ESCALATION_REASON
        if len(reason) > MAX_ESCALATION_REASON:
            raise ValidationError(
                f"escalation_reason must be at most {MAX_ESCALATION_REASON} characters"
            )
        changes["escalated_at"] = now
        changes["escalation_reason"] = reason

    elif target == TaskStatus.CANCELLED:
        changes["actual_end_time"] = now

    return changes


@dataclass
class TransitionResult:
    task: Task
    propagated_ready_count: int = 0


class LifecycleController:
    def __init__(
        self,
        store: TaskStore,
        assignment: AssignmentPolicy,
        readiness: ReadinessEvaluator,
        config: EngineConfig,
        notifier: NotificationSink | None = None,
        rollup: ProjectStatusRollup | None = None,
    ):
        self.store = store
        self.assignment = assignment
        self.readiness = readiness
        self.config = config
        self.notifier = notifier
        self.rollup = rollup

    async def transition(
        self,
        task_id: uuid.UUID,
        target: TaskStatus,
        actor: str,
        reason: str | None = None,
        force: bool = False,
    ) -> TransitionResult:
        """
        Move a task to `target` on behalf of `actor`.

        Args:
            reason: escalation reason (escalated only)
            force: start without a crew member even in strict assignment mode

        Raises:
            TaskNotFoundError, TaskArchivedError, InvalidTransitionError,
            NoCrewAvailableError, ConcurrentModificationError, EngineTimeoutError
        """
        task = await self.store.get(task_id)
        if task is None:
            raise TaskNotFoundError(str(task_id))
        check_transition(task, target)

        now = datetime.utcnow()
        source = task.status
        changes = lifecycle_changes(task, target, now, reason)

        if target == TaskStatus.ONGOING:
            changes.update(await self._start_changes(task, now, force))

        changes["updated_by"] = actor

        updated = await self.store.compare_and_set(
            task.id,
            task.version_id,
            changes,
            expected_status=source,
        )
        if updated is None:
            logger.warning(f"Transition {source.value}->{target.value} lost race on task {task_id}")
            raise ConcurrentModificationError(str(task_id))

        audit.info(
            f"{actor} moved task {task_id} {source.value} -> {target.value}",
            extra={
                "actor": actor,
                "task_id": task_id,
                "project_id": updated.project_id,
                "from_status": source.value,
                "to_status": target.value,
            },
        )

        result = TransitionResult(task=updated)
        if target == TaskStatus.COMPLETED or (
            target == TaskStatus.CANCELLED and self.config.cancel_unblocks_dependents
        ):
            result.propagated_ready_count = await self._propagate(updated)

        await self._refresh_project(updated.project_id, actor)
        await emit(self.notifier, f"task.{target.value}", {
            **TaskRead.model_validate(updated).model_dump(mode="json"),
            "actor": actor,
            "from_status": source.value,
            "propagated_ready_count": result.propagated_ready_count,
        })
        return result

    async def _start_changes(self, task: Task, now: datetime, force: bool) -> dict[str, Any]:
        changes: dict[str, Any] = {}

        if task.assigned_crew_id is None:
            crew_id = await self.assignment.assign(task)
            if crew_id is not None:
                changes["assigned_crew_id"] = crew_id
            elif self.config.assignment_mode == "strict" and not force:
                raise NoCrewAvailableError(
                    str(task.id),
                    str(task.assigned_role_id) if task.assigned_role_id else None,
                )
            else:
                logger.info(f"Starting task {task.id} without crew (mode={self.config.assignment_mode}, force={force})")

        # Plan the working window when none was scheduled
        start = task.expected_start_time
        if start is None:
            start = now
            changes["expected_start_time"] = now
        if task.expected_end_time is None:
            hours = task.estimated_hours or self.config.default_estimated_hours
            changes["expected_end_time"] = start + timedelta(hours=hours)

        return changes

    async def _propagate(self, task: Task) -> int:
        """Count dependents made ready by `task`; failures are logged, not raised."""
        try:
            ready = await self.readiness.newly_ready_dependents(task)
        except Exception:
            logger.exception(f"Dependent propagation failed for task {task.id}")
            return 0
        if ready:
            logger.info(
                f"Task {task.id} released {len(ready)} dependent(s): "
                + ", ".join(str(t.id) for t in ready)
            )
        return len(ready)

    async def _refresh_project(self, project_id: uuid.UUID, actor: str) -> None:
        if self.rollup is None:
            return
        try:
            await self.rollup.refresh(project_id, actor)
        except Exception:
            logger.exception(f"Project status rollup failed for project {project_id}")

    # ---- convenience operations ----

    async def start_task(self, task_id: uuid.UUID, actor: str, force: bool = False) -> Task:
        return (await self.transition(task_id, TaskStatus.ONGOING, actor, force=force)).task

    async def complete_task(self, task_id: uuid.UUID, actor: str) -> TransitionResult:
        return await self.transition(task_id, TaskStatus.COMPLETED, actor)

    async def escalate_task(self, task_id: uuid.UUID, actor: str, reason: str | None = None) -> Task:
        return (await self.transition(task_id, TaskStatus.ESCALATED, actor, reason=reason)).task

    async def block_task(self, task_id: uuid.UUID, actor: str) -> Task:
        return (await self.transition(task_id, TaskStatus.BLOCKED, actor)).task

    async def unblock_task(self, task_id: uuid.UUID, actor: str) -> Task:
        return (await self.transition(task_id, TaskStatus.PENDING, actor)).task

    async def cancel_task(self, task_id: uuid.UUID, actor: str) -> Task:
        return (await self.transition(task_id, TaskStatus.CANCELLED, actor)).task

    async def quick_complete(self, task_id: uuid.UUID, actor: str, force: bool = False) -> TransitionResult:
        """Start then complete; a failed start aborts before completing."""
        task = await self.store.require(task_id)
        if task.status != TaskStatus.ONGOING:
            await self.start_task(task_id, actor, force=force)
        return await self.complete_task(task_id, actor)

    async def auto_start_ready_tasks(
        self,
        project_id: uuid.UUID,
        actor: str,
        limit: int | None = None,
    ) -> int:
        """
        Start ready, staffed tasks in structural order while the project has
        fewer than max_concurrent_auto_start ongoing tasks.
        """
        ongoing = await self.store.count_ongoing_in_project(project_id)
        capacity = max(self.config.max_concurrent_auto_start - ongoing, 0)
        if limit is not None:
            capacity = min(capacity, limit)
        if capacity == 0:
            logger.info(f"Auto-start skipped for project={project_id}: {ongoing} already ongoing")
            return 0

        started = 0
        for summary in await self.readiness.compute_ready_set(project_id):
            if started >= capacity:
                break
            if not summary.has_crew_available:
                continue
            try:
                await self.start_task(summary.id, actor)
            except (NoCrewAvailableError, ConcurrentModificationError, InvalidTransitionError) as exc:
                logger.info(f"Auto-start skipped task {summary.id}: {exc.error_code}")
                continue
            started += 1

        logger.info(f"Auto-started {started} task(s) in project={project_id}")
        return started

