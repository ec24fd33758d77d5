# ruff: noqa: TC003
"""Outbound notifications. Delivery is best-effort and never affects adjudication."""

from __future__ import annotations

import logging
import uuid
from typing import Any, Protocol, runtime_checkable

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class NotificationEvent(BaseModel):
    """Event emitted on request submission, decisions, escalation and finalization."""

    event_type: str  # e.g. "request.escalated"
    recipient_ids: list[uuid.UUID]
    request_id: uuid.UUID | None = None
    data: dict[str, Any] = Field(default_factory=dict)


@runtime_checkable
class NotificationService(Protocol):
    """Interface for the notification collaborator."""

    async def notify(self, event: NotificationEvent) -> None:
        """Hand an event off for delivery."""
        ...


class InMemoryNotificationService:
    """In-memory stub that keeps every event it receives."""

    def __init__(self) -> None:
        self.events: list[NotificationEvent] = []

    async def notify(self, event: NotificationEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: str) -> list[NotificationEvent]:
        return [e for e in self.events if e.event_type == event_type]


_notification_service: NotificationService = InMemoryNotificationService()


def get_notification_service() -> NotificationService:
    return _notification_service


def set_notification_service(service: NotificationService) -> None:
    """Override the service (for testing or production wiring)."""
    global _notification_service
    _notification_service = service


async def send_notification(
    event_type: str,
    recipient_ids: list[uuid.UUID | None],
    *,
    request_id: uuid.UUID | None = None,
    **data: Any,
) -> None:
    """Fire-and-forget: failures are logged and never raised to the caller."""
    recipients = [r for r in recipient_ids if r is not None]
    if not recipients:
        return
    event = NotificationEvent(event_type=event_type, recipient_ids=recipients, request_id=request_id, data=data)
    try:
        await _notification_service.notify(event)
    except Exception:
        logger.exception("Notification %s for request=%s could not be handed off", event_type, request_id)
