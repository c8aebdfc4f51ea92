"""
Assignment policy: which crew member picks up a task entering "ongoing".

Candidates are the active crew of the task's role. The lead wins; otherwise
the least loaded member (fewest ongoing tasks), then the one who joined the
project first. The policy only proposes; the lifecycle controller writes.
"""

import uuid
from datetime import date

from reeltask.models import Task
from reeltask.services.crew_directory import CrewDirectory, CrewRef
from reeltask.logging_config import get_logger

logger = get_logger(__name__)


def selection_key(crew: CrewRef, ongoing_count: int) -> tuple:
    """Sort key: lead first, then lighter load, then earlier join date."""
    return (
        not crew.is_lead,
        ongoing_count,
        crew.joined_date or date.max,
        str(crew.crew_id),
    )


class AssignmentPolicy:
    def __init__(self, directory: CrewDirectory):
        self.directory = directory

    async def assign(self, task: Task) -> uuid.UUID | None:
        """
        Pick a crew member for `task`, or None when nobody is available.

        Idempotent: an already assigned task keeps (and returns) its crew.
        """
        if task.assigned_crew_id is not None:
            return task.assigned_crew_id

        if task.assigned_role_id is None:
            logger.debug(f"Task {task.id} has no role; nothing to assign")
            return None

        candidates = await self.directory.get_active_crew_for_role(task.assigned_role_id)
        if not candidates:
            logger.info(f"No active crew for role={task.assigned_role_id} (task {task.id})")
            return None

        loads = {}
        for crew in candidates:
            loads[crew.crew_id] = await self.directory.get_ongoing_task_count_for_crew(crew.crew_id)

        chosen = min(candidates, key=lambda c: selection_key(c, loads[c.crew_id]))
        logger.debug(
            f"Selected crew={chosen.crew_id} for task {task.id} "
            f"(lead={chosen.is_lead}, load={loads[chosen.crew_id]}, of {len(candidates)})"
        )
        return chosen.crew_id
