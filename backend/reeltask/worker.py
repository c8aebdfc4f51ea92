"""
ARQ Worker for background task processing.

This worker handles:
- escalation_scan: cron sweep escalating overdue ongoing tasks
- auto_start_project: starts ready, staffed tasks of one project

Usage:
    arq reeltask.worker.WorkerSettings
"""

import uuid

from arq import create_pool, cron
from arq.connections import RedisSettings, ArqRedis

from reeltask.config import get_settings
from reeltask.database import get_session_context
from reeltask.services.engine import TaskEngine
from reeltask.services.notifications import get_notification_sink
from reeltask.logging_config import setup_logging, get_logger

setup_logging()
logger = get_logger(__name__)

settings = get_settings()

AUTO_START_ACTOR = "auto_start"


def parse_redis_url(url: str) -> RedisSettings:
    """Parse redis URL into RedisSettings."""
    # redis://localhost:6380/0 -> host=localhost, port=6380, database=0 (password too, if given)
    return RedisSettings.from_dsn(url)


def scan_minutes(interval: int) -> set[int]:
    """Minutes of the hour at which the cron scan fires; `interval` divides 60."""
    return set(range(0, 60, interval))


async def escalation_scan(ctx: dict, project_id: str | None = None) -> list[str]:
    """Escalate overdue ongoing tasks; returns the escalated task IDs."""
    async with get_session_context() as session:
        engine = TaskEngine(
            session,
            config=settings.engine_config(),
            notifier=get_notification_sink(),
        )
        escalated = await engine.run_escalation_scan(
            project_id=uuid.UUID(project_id) if project_id else None
        )
    logger.info(f"Escalation scan job finished: {len(escalated)} task(s) escalated")
    return [str(task_id) for task_id in escalated]


async def auto_start_project(ctx: dict, project_id: str, actor: str = AUTO_START_ACTOR) -> int:
    """Start ready tasks in a project up to the concurrency cap."""
    async with get_session_context() as session:
        engine = TaskEngine(
            session,
            config=settings.engine_config(),
            notifier=get_notification_sink(),
        )
        started = await engine.auto_start_ready_tasks(uuid.UUID(project_id), actor)
    logger.info(f"Auto-start job for project={project_id[:8]}... started {started} task(s)")
    return started


async def startup(ctx: dict) -> None:
    logger.info("ARQ Worker starting up...")
    logger.info(f"Redis: {settings.redis_url}")
    logger.info(f"Escalation scan every {settings.escalation_scan_interval_minutes} min")


async def shutdown(ctx: dict) -> None:
    logger.info("ARQ Worker shutting down...")


class WorkerSettings:
    """ARQ Worker configuration."""

    functions = [escalation_scan, auto_start_project]
    cron_jobs = [
        cron(
            escalation_scan,
            minute=scan_minutes(settings.escalation_scan_interval_minutes),
            run_at_startup=True,
            unique=True,
        ),
    ]
    on_startup = startup
    on_shutdown = shutdown
    redis_settings = parse_redis_url(settings.redis_url)
    max_jobs = 10
    job_timeout = 300  # 5 minutes max per job


# Redis pool for enqueuing jobs from the API
_arq_pool: ArqRedis | None = None


async def get_arq_pool() -> ArqRedis:
    """Get or create the ARQ Redis pool for enqueuing jobs."""
    global _arq_pool
    if _arq_pool is None:
        logger.debug("Creating ARQ Redis pool")
        _arq_pool = await create_pool(parse_redis_url(settings.redis_url))
    return _arq_pool


async def enqueue_auto_start(project_id: str, actor: str) -> None:
    """Queue an auto-start run for a project."""
    pool = await get_arq_pool()
    logger.debug(f"Enqueuing auto-start job: project={project_id[:8]}... actor={actor}")
    await pool.enqueue_job("auto_start_project", project_id, actor)
