"""
Escalation scanner: periodic sweep that escalates overdue ongoing tasks.

Each candidate is escalated with a conditional update that only matches if
the task is still ongoing, unchanged since it was read, never escalated and
still overdue. Two sweeps running at once therefore escalate a task once;
the loser's update simply matches no row.

Each update runs in its own savepoint so a database error on one task does
not abort the writes already made for the others.
"""

import uuid
from datetime import datetime, timedelta

from reeltask.config import EngineConfig
from reeltask.models import Task, TaskStatus
from reeltask.schemas import TaskRead
from reeltask.services.notifications import NotificationSink, emit
from reeltask.services.project_status import ProjectStatusRollup
from reeltask.services.task_store import TaskStore
from reeltask.logging_config import get_audit_logger, get_logger

logger = get_logger(__name__)
audit = get_audit_logger()

SCANNER_ACTOR = "escalation_scanner"


def format_overrun(delta: timedelta) -> str:
    """Compact duration such as '2d 3h', '1h 5m' or '0m'."""
    total_minutes = max(int(delta.total_seconds() // 60), 0)
    days, remainder = divmod(total_minutes, 24 * 60)
    hours, minutes = divmod(remainder, 60)

    parts = []
    if days:
        parts.append(f"{days}d")
    if hours:
        parts.append(f"{hours}h")
    if minutes or not parts:
        parts.append(f"{minutes}m")
    return " ".join(parts)


def escalation_reason(task: Task, now: datetime) -> str:
    return f"SLA exceeded by {format_overrun(now - task.expected_end_time)}"


class EscalationScanner:
    def __init__(
        self,
        store: TaskStore,
        config: EngineConfig,
        notifier: NotificationSink | None = None,
        rollup: ProjectStatusRollup | None = None,
    ):
        self.store = store
        self.config = config
        self.notifier = notifier
        self.rollup = rollup

    async def scan(
        self,
        now: datetime | None = None,
        project_id: uuid.UUID | None = None,
    ) -> list[uuid.UUID]:
        """
        Escalate every overdue ongoing task; returns the IDs escalated by this pass.

        Failing to load candidates raises. A failure on an individual task is
        logged and the sweep moves on.
        """
        now = now or datetime.utcnow()
        cutoff = now - timedelta(minutes=self.config.escalation_grace_minutes)

        candidates = await self.store.find_overdue(cutoff, project_id)
        logger.debug(f"Escalation scan at {now.isoformat()}: {len(candidates)} candidate(s)")

        escalated: list[uuid.UUID] = []
        touched_projects: set[uuid.UUID] = set()

        for task in candidates:
            try:
                async with self.store.savepoint():
                    updated = await self.store.compare_and_set(
                        task.id,
                        task.version_id,
                        {
                            "status": TaskStatus.ESCALATED,
                            "escalated_at": now,
                            "escalation_reason": escalation_reason(task, now),
                            "updated_by": SCANNER_ACTOR,
                        },
                        expected_status=TaskStatus.ONGOING,
                        conditions=[
                            Task.escalated_at.is_(None),
                            Task.is_archived == False,  # noqa: E712
                            Task.expected_end_time < cutoff,
                        ],
                    )
            except Exception:
                logger.exception(f"Escalation of task {task.id} failed; continuing scan")
                continue

            if updated is None:
                logger.info(f"Task {task.id} changed before escalation; skipped")
                continue

            escalated.append(updated.id)
            touched_projects.add(updated.project_id)
            audit.info(
                f"{SCANNER_ACTOR} moved task {updated.id} ongoing -> escalated",
                extra={
                    "actor": SCANNER_ACTOR,
                    "task_id": updated.id,
                    "project_id": updated.project_id,
                    "from_status": TaskStatus.ONGOING.value,
                    "to_status": TaskStatus.ESCALATED.value,
                },
            )
            await emit(self.notifier, "task.escalated", {
                **TaskRead.model_validate(updated).model_dump(mode="json"),
                "actor": SCANNER_ACTOR,
                "from_status": TaskStatus.ONGOING.value,
            })

        if self.rollup is not None:
            for touched in touched_projects:
                try:
                    await self.rollup.refresh(touched, SCANNER_ACTOR)
                except Exception:
                    logger.exception(f"Project status rollup failed for project {touched}")

        if escalated:
            logger.info(f"Escalation scan escalated {len(escalated)} task(s)")
        return escalated
