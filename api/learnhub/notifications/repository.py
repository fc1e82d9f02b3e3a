# ruff: noqa: S608 - All CQL queries use keyspace from config, not user input
"""Notification inbox storage."""

from typing import TYPE_CHECKING, Protocol
from uuid import UUID

from .models import Notification


if TYPE_CHECKING:
    from cassandra.cluster import Session

    from learnhub.core.database.memory import MemoryDatabase


class NotificationRepository(Protocol):
    async def insert(self, notification: Notification) -> None: ...

    async def list_for_user(
        self, user_id: UUID, limit: int
    ) -> list[Notification]: ...


class CassandraNotificationRepository:
    def __init__(self, session: "Session", keyspace: str):
        self.session = session
        self.keyspace = keyspace
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for efficient execution."""
        self._insert_notification = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.notifications
            (user_id, notification_id, type, title, message, actor_id,
             course_id, reference_id, is_read, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """)
        self._get_notifications = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.notifications
            WHERE user_id = ?
            LIMIT ?
        """)

    async def insert(self, notification: Notification) -> None:
        await self.session.aexecute(
            self._insert_notification,
            [
                notification.user_id,
                notification.notification_id,
                notification.type.value,
                notification.title,
                notification.message,
                notification.actor_id,
                notification.course_id,
                notification.reference_id,
                notification.is_read,
                notification.created_at,
            ],
        )

    async def list_for_user(self, user_id: UUID, limit: int) -> list[Notification]:
        rows = await self.session.aexecute(self._get_notifications, [user_id, limit])
        return [Notification.from_row(row) for row in rows]


class MemoryNotificationRepository:
    TABLE = "notifications"

    def __init__(self, db: "MemoryDatabase"):
        self.db = db

    async def insert(self, notification: Notification) -> None:
        self.db.put(self.TABLE, notification.notification_id, notification)

    async def list_for_user(self, user_id: UUID, limit: int) -> list[Notification]:
        notifications = [
            n for n in self.db.scan(self.TABLE) if n.user_id == user_id
        ]
        notifications.sort(key=lambda n: n.created_at, reverse=True)
        return notifications[:limit]
