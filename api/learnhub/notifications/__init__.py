"""Notification inbox."""

from .models import NOTIFICATIONS_TABLES_CQL, Notification, NotificationType
from .service import NotificationService, notify_safely


__all__ = [
    "NOTIFICATIONS_TABLES_CQL",
    "Notification",
    "NotificationService",
    "NotificationType",
    "notify_safely",
]
