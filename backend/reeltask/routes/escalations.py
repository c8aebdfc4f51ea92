"""
Escalation routes: run the overdue-task sweep on demand.

The worker runs the same sweep on a schedule.
"""

import uuid
from datetime import datetime
from fastapi import APIRouter, Depends

from reeltask.dependencies import get_engine
from reeltask.schemas import EscalationScanResult
from reeltask.services.engine import TaskEngine

router = APIRouter()


@router.post("/scan", response_model=EscalationScanResult)
async def run_escalation_scan(
    project_id: uuid.UUID | None = None,
    engine: TaskEngine = Depends(get_engine),
) -> EscalationScanResult:
    scanned_at = datetime.utcnow()
    escalated = await engine.run_escalation_scan(scanned_at, project_id)
    return EscalationScanResult(escalated_task_ids=escalated, scanned_at=scanned_at)
