"""Database models for notifications.

Cassandra table definitions for:
- Notifications: per-user inbox, newest first

Notifications are written by the ledger and the assessment services as a
side effect of their operations. Delivery (push, e-mail, websocket) is done
by other systems reading this inbox.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from learnhub.utils import ensure_utc_aware, utc_now


class NotificationType(str, Enum):
    """Events that produce a notification."""

    ENROLLMENT_REQUESTED = "enrollment_requested"
    ENROLLMENT_APPROVED = "enrollment_approved"
    ENROLLMENT_REJECTED = "enrollment_rejected"
    ENROLLMENT_CANCELLED = "enrollment_cancelled"
    ENROLLMENT_REMOVED = "enrollment_removed"
    COURSE_COMPLETED = "course_completed"
    SHORT_QUESTION_SUBMITTED = "short_question_submitted"
    SHORT_QUESTION_GRADED = "short_question_graded"


NOTIFICATION_TITLES: dict[NotificationType, str] = {
    NotificationType.ENROLLMENT_REQUESTED: "New enrollment request",
    NotificationType.ENROLLMENT_APPROVED: "Your enrollment was approved",
    NotificationType.ENROLLMENT_REJECTED: "Your enrollment was rejected",
    NotificationType.ENROLLMENT_CANCELLED: "A student cancelled their enrollment",
    NotificationType.ENROLLMENT_REMOVED: "You were removed from a course",
    NotificationType.COURSE_COMPLETED: "Course completed",
    NotificationType.SHORT_QUESTION_SUBMITTED: "New answers to grade",
    NotificationType.SHORT_QUESTION_GRADED: "Your answers were graded",
}


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

# Partitioned by user_id for inbox queries
NOTIFICATION_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.notifications (
    user_id UUID,
    notification_id UUID,
    type TEXT,
    title TEXT,
    message TEXT,
    actor_id UUID,
    course_id UUID,
    reference_id UUID,
    is_read BOOLEAN,
    created_at TIMESTAMP,
    PRIMARY KEY ((user_id), created_at, notification_id)
) WITH CLUSTERING ORDER BY (created_at DESC, notification_id ASC)
"""

NOTIFICATIONS_TABLES_CQL = [
    NOTIFICATION_TABLE_CQL,
]


# ==============================================================================
# Entity Classes
# ==============================================================================


@dataclass
class Notification:
    """Notification entity."""

    user_id: UUID
    type: NotificationType
    title: str
    message: str | None = None
    actor_id: UUID | None = None
    course_id: UUID | None = None
    reference_id: UUID | None = None
    is_read: bool = False
    notification_id: UUID = field(default_factory=uuid4)
    created_at: datetime = field(default_factory=utc_now)

    @classmethod
    def from_row(cls, row: Any) -> "Notification":
        """Create Notification from Cassandra row."""
        return cls(
            notification_id=row.notification_id,
            user_id=row.user_id,
            type=NotificationType(row.type),
            title=row.title,
            message=row.message,
            actor_id=row.actor_id,
            course_id=row.course_id,
            reference_id=row.reference_id,
            is_read=row.is_read or False,
            created_at=ensure_utc_aware(row.created_at) or utc_now(),
        )


def build_notification(
    event: NotificationType, payload: dict[str, Any]
) -> Notification:
    """Create a notification for ``payload["recipient_id"]``.

    Raises:
        KeyError: If the payload has no recipient
    """
    return Notification(
        user_id=payload["recipient_id"],
        type=event,
        title=payload.get("title") or NOTIFICATION_TITLES[event],
        message=payload.get("message"),
        actor_id=payload.get("actor_id"),
        course_id=payload.get("course_id"),
        reference_id=payload.get("reference_id"),
    )
