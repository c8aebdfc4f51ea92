"""
Pytest configuration and fixtures for Reeltask tests.
"""

import uuid
from datetime import date

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

from reeltask.main import app
from reeltask.auth import get_actor
from reeltask.config import EngineConfig
from reeltask.database import get_session
from reeltask.models import Project, ProjectCrew, ProjectRole, Task
from reeltask.services.engine import TaskEngine
from reeltask.services.notifications import RecordingNotificationSink


# In-memory SQLite shared across connections of one engine
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

TEST_ACTOR = "tester@example.com"


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create a test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def test_session(test_engine):
    """Create a test database session."""
    async_session_maker = async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session_maker() as session:
        yield session


@pytest.fixture
def notifier():
    return RecordingNotificationSink()


@pytest.fixture
def engine_config():
    return EngineConfig()


@pytest.fixture
def task_engine(test_session, engine_config, notifier):
    """A TaskEngine on the test session."""
    return TaskEngine(test_session, config=engine_config, notifier=notifier)


@pytest_asyncio.fixture(scope="function")
async def client(test_engine):
    """Create an async test client with test database."""
    async_session_maker = async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async def override_get_session():
        async with async_session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def override_get_actor():
        return TEST_ACTOR

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_actor] = override_get_actor

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# =============================================================================
# Data builders
# =============================================================================

@pytest_asyncio.fixture
async def project(test_session):
    project = Project(name="The Long Take", created_by=TEST_ACTOR)
    test_session.add(project)
    await test_session.flush()
    return project


async def make_role(session, project, role_name="Gaffer", required_count=1, **fields) -> ProjectRole:
    role = ProjectRole(
        project_id=project.id,
        role_name=role_name,
        department_name=fields.pop("department_name", "Lighting"),
        required_count=required_count,
        **fields,
    )
    session.add(role)
    await session.flush()
    return role


async def make_crew(session, role, user_id=None, is_lead=False, joined=None, **fields) -> ProjectCrew:
    member = ProjectCrew(
        project_id=role.project_id,
        project_role_id=role.id,
        user_id=user_id or f"crew-{uuid.uuid4().hex[:8]}",
        user_name=fields.pop("user_name", "Crew Member"),
        is_lead=is_lead,
        joined_date=joined or date(2026, 1, 1),
        **fields,
    )
    session.add(member)
    await session.flush()
    return member


async def make_task(session, project, task_order=1, step_order=1, phase_order=1, **fields) -> Task:
    """Insert a task row directly, bypassing the engine."""
    task = Task(
        project_id=project.id,
        name=fields.pop("name", f"Task {phase_order}.{step_order}.{task_order}"),
        phase_order=phase_order,
        step_order=step_order,
        task_order=task_order,
        **fields,
    )
    session.add(task)
    await session.flush()
    return task
