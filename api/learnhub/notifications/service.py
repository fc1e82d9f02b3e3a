"""Notification sink.

``notify`` persists one inbox entry for the payload's ``recipient_id``.
Producers never let a notification failure undo their own work: they call
``notify_safely``, which logs the failure and returns.
"""

from typing import TYPE_CHECKING, Any, Protocol
from uuid import UUID

import structlog

from .models import Notification, NotificationType, build_notification


if TYPE_CHECKING:
    from .repository import NotificationRepository


logger = structlog.get_logger(__name__)


class NotificationSink(Protocol):
    async def notify(self, event: NotificationType, payload: dict[str, Any]) -> None: ...


class NotificationService:
    """Service storing notifications in the user inbox."""

    def __init__(self, repository: "NotificationRepository"):
        self.repository = repository

    async def notify(self, event: NotificationType, payload: dict[str, Any]) -> None:
        """Persist a notification for ``payload["recipient_id"]``."""
        notification = build_notification(event, payload)
        await self.repository.insert(notification)
        logger.debug(
            "notification_created",
            notification_id=str(notification.notification_id),
            user_id=str(notification.user_id),
            type=event.value,
        )

    async def list_for_user(self, user_id: UUID, limit: int = 20) -> list[Notification]:
        """Newest notifications for a user."""
        return await self.repository.list_for_user(user_id, limit)


async def notify_safely(
    sink: NotificationSink | None,
    event: NotificationType,
    payload: dict[str, Any],
) -> None:
    """Fire-and-forget notification; failures are logged, never raised."""
    if sink is None:
        return
    try:
        await sink.notify(event, payload)
    except Exception as e:
        logger.warning(
            "notification_failed",
            notification_type=event.value,
            recipient_id=str(payload.get("recipient_id")),
            error=str(e),
            error_type=type(e).__name__,
        )
