"""
TaskEngine: the operation surface of the task lifecycle and readiness engine.

One engine is bound to one database session. It wires the task store, crew
directory, readiness evaluator, assignment policy, lifecycle controller,
escalation scanner, query layer and editor together; routes and worker jobs
call it and never reach into the parts directly.
"""

import uuid
from datetime import datetime

from reeltask.config import EngineConfig, get_settings
from reeltask.models import Task
from reeltask.schemas import (
    Attachment,
    Pagination,
    TaskCreate,
    TaskFilters,
    TaskPage,
    TaskSort,
    TaskStats,
    TaskSummary,
    TaskUpdate,
)
from reeltask.services.assignment import AssignmentPolicy
from reeltask.services.crew_directory import CrewDirectory, SqlCrewDirectory
from reeltask.services.editor import TaskEditor
from reeltask.services.escalation import EscalationScanner
from reeltask.services.lifecycle import LifecycleController, TransitionResult
from reeltask.services.notifications import NotificationSink
from reeltask.services.project_status import ProjectStatusRollup
from reeltask.services.queries import TaskQueryService
from reeltask.services.readiness import ReadinessEvaluator
from reeltask.services.task_store import TaskStore


class TaskEngine:
    def __init__(
        self,
        session,
        config: EngineConfig | None = None,
        notifier: NotificationSink | None = None,
        directory: CrewDirectory | None = None,
    ):
        self.session = session
        self.config = config or get_settings().engine_config()
        self.notifier = notifier

        timeout = self.config.io_timeout_seconds
        self.store = TaskStore(session, timeout)
        self.directory = directory or SqlCrewDirectory(session, timeout)
        self.rollup = ProjectStatusRollup(session, timeout)
        self.readiness = ReadinessEvaluator(self.store, self.directory, self.config)
        self.assignment = AssignmentPolicy(self.directory)
        self.lifecycle = LifecycleController(
            self.store,
            self.assignment,
            self.readiness,
            self.config,
            notifier=notifier,
            rollup=self.rollup,
        )
        self.scanner = EscalationScanner(self.store, self.config, notifier, self.rollup)
        self.queries = TaskQueryService(session, self.directory, self.config)
        self.editor = TaskEditor(self.store, self.readiness, self.directory)

    # ---- lifecycle ----

    async def start_task(self, task_id: uuid.UUID, actor: str, force: bool = False) -> Task:
        return await self.lifecycle.start_task(task_id, actor, force=force)

    async def complete_task(self, task_id: uuid.UUID, actor: str) -> TransitionResult:
        return await self.lifecycle.complete_task(task_id, actor)

    async def escalate_task(self, task_id: uuid.UUID, actor: str, reason: str | None = None) -> Task:
        return await self.lifecycle.escalate_task(task_id, actor, reason)

    async def block_task(self, task_id: uuid.UUID, actor: str) -> Task:
        return await self.lifecycle.block_task(task_id, actor)

    async def unblock_task(self, task_id: uuid.UUID, actor: str) -> Task:
        return await self.lifecycle.unblock_task(task_id, actor)

    async def cancel_task(self, task_id: uuid.UUID, actor: str) -> Task:
        return await self.lifecycle.cancel_task(task_id, actor)

    async def quick_complete(self, task_id: uuid.UUID, actor: str, force: bool = False) -> TransitionResult:
        return await self.lifecycle.quick_complete(task_id, actor, force=force)

    async def auto_start_ready_tasks(
        self, project_id: uuid.UUID, actor: str, limit: int | None = None
    ) -> int:
        return await self.lifecycle.auto_start_ready_tasks(project_id, actor, limit)

    async def run_escalation_scan(
        self, now: datetime | None = None, project_id: uuid.UUID | None = None
    ) -> list[uuid.UUID]:
        return await self.scanner.scan(now, project_id)

    # ---- reads ----

    async def get_task(self, task_id: uuid.UUID) -> Task:
        return await self.store.require(task_id)

    async def compute_ready_set(self, project_id: uuid.UUID) -> list[TaskSummary]:
        return await self.readiness.compute_ready_set(project_id)

    async def list_tasks(
        self,
        project_id: uuid.UUID,
        filters: TaskFilters | dict | None = None,
        sort: TaskSort | dict | None = None,
        pagination: Pagination | dict | None = None,
        now: datetime | None = None,
    ) -> TaskPage:
        return await self.queries.list_tasks(project_id, filters, sort, pagination, now)

    async def task_stats(self, project_id: uuid.UUID) -> TaskStats:
        return await self.queries.task_stats(project_id)

    # ---- editing ----

    async def create_task(self, data: TaskCreate | dict, actor: str) -> Task:
        return await self.editor.create_task(data, actor)

    async def update_task(self, task_id: uuid.UUID, changes: TaskUpdate | dict, actor: str) -> Task:
        return await self.editor.update_task(task_id, changes, actor)

    async def add_comment(self, task_id: uuid.UUID, text: str, actor: str) -> Task:
        return await self.editor.add_comment(task_id, text, actor)

    async def add_attachment(self, task_id: uuid.UUID, attachment: Attachment | dict, actor: str) -> Task:
        return await self.editor.add_attachment(task_id, attachment, actor)

    async def archive_task(self, task_id: uuid.UUID, actor: str) -> Task:
        return await self.editor.archive_task(task_id, actor)
