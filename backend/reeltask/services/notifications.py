"""
Notification sinks for task lifecycle events.

Notifications are fire-and-forget: emit() logs sink failures and never
propagates them into the operation that triggered the event.
"""

from datetime import datetime
from functools import lru_cache
from typing import Any, Protocol

import httpx

from reeltask.config import get_settings
from reeltask.logging_config import get_logger

logger = get_logger(__name__)


class NotificationSink(Protocol):
    async def notify(self, event_type: str, payload: dict[str, Any]) -> None:
        ...


class LoggingNotificationSink:
    """Writes events to the log; the default when no webhook is configured."""

    async def notify(self, event_type: str, payload: dict[str, Any]) -> None:
        logger.info(f"event={event_type} task={payload.get('id')} status={payload.get('status')}")


class WebhookNotificationSink:
    """POSTs each event as JSON to a webhook URL."""

    def __init__(self, url: str, timeout_seconds: float = 5.0):
        self.url = url
        self.timeout_seconds = timeout_seconds

    async def notify(self, event_type: str, payload: dict[str, Any]) -> None:
        body = {
            "event": event_type,
            "sent_at": datetime.utcnow().isoformat(),
            "payload": payload,
        }
        async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
            response = await client.post(self.url, json=body)
            response.raise_for_status()


class RecordingNotificationSink:
    """Keeps events in memory; used for local runs and tests."""

    def __init__(self):
        self.events: list[tuple[str, dict[str, Any]]] = []

    async def notify(self, event_type: str, payload: dict[str, Any]) -> None:
        self.events.append((event_type, payload))


async def emit(sink: NotificationSink | None, event_type: str, payload: dict[str, Any]) -> None:
    """Deliver an event, logging instead of raising on failure."""
    if sink is None:
        return
    try:
        await sink.notify(event_type, payload)
    except Exception as exc:
        logger.warning(f"Notification {event_type} failed: {exc}")


@lru_cache()
def get_notification_sink() -> NotificationSink:
    settings = get_settings()
    if settings.notification_webhook_url:
        logger.info("Task notifications go to the configured webhook")
        return WebhookNotificationSink(
            settings.notification_webhook_url,
            settings.notification_timeout_seconds,
        )
    return LoggingNotificationSink()
