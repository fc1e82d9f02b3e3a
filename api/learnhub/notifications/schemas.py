"""Pydantic schemas for notifications."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from learnhub.notifications.models import Notification, NotificationType


class NotificationResponse(BaseModel):
    """Single notification response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID = Field(description="Notification ID")
    type: NotificationType = Field(description="Notification type")
    title: str = Field(description="Notification title")
    message: str | None = Field(None, description="Notification message")
    actor_id: UUID | None = Field(None, description="User who triggered it")
    course_id: UUID | None = Field(None, description="Related course")
    reference_id: UUID | None = Field(None, description="Related record")
    is_read: bool = Field(description="Whether notification was read")
    created_at: datetime = Field(description="When notification was created")

    @classmethod
    def from_notification(cls, notification: Notification) -> "NotificationResponse":
        """Create response from notification entity."""
        return cls(
            id=notification.notification_id,
            type=notification.type,
            title=notification.title,
            message=notification.message,
            actor_id=notification.actor_id,
            course_id=notification.course_id,
            reference_id=notification.reference_id,
            is_read=notification.is_read,
            created_at=notification.created_at,
        )


class NotificationListResponse(BaseModel):
    """Notification list response."""

    items: list[NotificationResponse] = Field(description="List of notifications")
    total: int = Field(description="Number of notifications returned")
