"""
Reeltask - task lifecycle and readiness engine for film production schedules.
"""

from fastapi import FastAPI
from contextlib import asynccontextmanager

from reeltask.database import init_db
from reeltask.routes import crew, escalations, projects, tasks
from reeltask.exceptions import register_exception_handlers
from reeltask.logging_config import setup_logging, get_logger

# Initialize logging
setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown events."""
    logger.info("Starting Reeltask API...")
    await init_db()
    logger.info("Database initialized")
    yield
    logger.info("Shutting down Reeltask API...")


app = FastAPI(
    title="Reeltask",
    description="Task lifecycle and readiness engine for film production schedules",
    version="0.1.0",
    lifespan=lifespan,
)

register_exception_handlers(app)

app.include_router(projects.router, prefix="/projects", tags=["Projects"])
app.include_router(tasks.router, prefix="/tasks", tags=["Tasks"])
app.include_router(crew.router, prefix="/crew", tags=["Crew"])
app.include_router(escalations.router, prefix="/escalations", tags=["Escalations"])


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}
