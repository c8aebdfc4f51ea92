"""
Bounded I/O against the task store and crew directory.

The engine never retries: an operation that exceeds its budget surfaces as
EngineTimeoutError and the caller decides what to do.
"""

import asyncio
from typing import Awaitable, TypeVar

from reeltask.exceptions import EngineTimeoutError

T = TypeVar("T")


async def bounded(awaitable: Awaitable[T], seconds: float, operation: str) -> T:
    """Await `awaitable`, raising EngineTimeoutError after `seconds`."""
    try:
        return await asyncio.wait_for(awaitable, timeout=seconds)
    except asyncio.TimeoutError as exc:
        raise EngineTimeoutError(operation, seconds) from exc
