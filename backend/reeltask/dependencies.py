"""
FastAPI dependencies shared by the routers.
"""

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from reeltask.config import get_settings
from reeltask.database import get_session
from reeltask.services.engine import TaskEngine
from reeltask.services.notifications import get_notification_sink


async def get_engine(session: AsyncSession = Depends(get_session)) -> TaskEngine:
    """A TaskEngine bound to the request's session."""
    return TaskEngine(
        session,
        config=get_settings().engine_config(),
        notifier=get_notification_sink(),
    )
