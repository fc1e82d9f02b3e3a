"""Tests for the notification inbox."""

from datetime import timedelta
from unittest.mock import AsyncMock, Mock
from uuid import uuid4

import pytest

from learnhub.notifications import service as notification_service_module
from learnhub.notifications.models import (
    NOTIFICATION_TITLES,
    NotificationType,
    build_notification,
)
from learnhub.notifications.service import notify_safely


class TestBuildNotification:
    def test_default_title(self):
        recipient = uuid4()

        notification = build_notification(
            NotificationType.ENROLLMENT_APPROVED, {"recipient_id": recipient}
        )

        assert notification.user_id == recipient
        assert notification.title == NOTIFICATION_TITLES[
            NotificationType.ENROLLMENT_APPROVED
        ]
        assert notification.is_read is False

    def test_custom_title_and_references(self):
        course_id = uuid4()

        notification = build_notification(
            NotificationType.COURSE_COMPLETED,
            {
                "recipient_id": uuid4(),
                "title": "Well done",
                "message": "You completed Pharmacology 101",
                "course_id": course_id,
            },
        )

        assert notification.title == "Well done"
        assert notification.course_id == course_id

    def test_missing_recipient(self):
        with pytest.raises(KeyError):
            build_notification(NotificationType.COURSE_COMPLETED, {})


class TestNotificationService:
    @pytest.mark.asyncio
    async def test_notify_persists(self, notification_service, student, instructor):
        await notification_service.notify(
            NotificationType.SHORT_QUESTION_GRADED,
            {"recipient_id": student.id, "actor_id": instructor.id},
        )

        [item] = await notification_service.list_for_user(student.id)

        assert item.type == NotificationType.SHORT_QUESTION_GRADED
        assert item.actor_id == instructor.id
        assert item.title == "Your answers were graded"

    @pytest.mark.asyncio
    async def test_limit_and_isolation(
        self, notification_service, student, other_student
    ):
        for _ in range(3):
            await notification_service.notify(
                NotificationType.ENROLLMENT_APPROVED, {"recipient_id": student.id}
            )
        await notification_service.notify(
            NotificationType.ENROLLMENT_REJECTED, {"recipient_id": other_student.id}
        )

        assert len(await notification_service.list_for_user(student.id, limit=2)) == 2
        others = await notification_service.list_for_user(other_student.id)
        assert [n.type for n in others] == [NotificationType.ENROLLMENT_REJECTED]

    @pytest.mark.asyncio
    async def test_ordering_uses_created_at(self, notification_service, student):
        first = build_notification(
            NotificationType.ENROLLMENT_APPROVED, {"recipient_id": student.id}
        )
        later = build_notification(
            NotificationType.COURSE_COMPLETED, {"recipient_id": student.id}
        )
        later.created_at = first.created_at + timedelta(minutes=5)

        await notification_service.repository.insert(later)
        await notification_service.repository.insert(first)

        items = await notification_service.list_for_user(student.id)
        assert [n.notification_id for n in items] == [
            later.notification_id,
            first.notification_id,
        ]


class TestNotifySafely:
    @pytest.mark.asyncio
    async def test_swallows_sink_errors(self):
        sink = AsyncMock()
        sink.notify.side_effect = RuntimeError("inbox unavailable")

        await notify_safely(
            sink, NotificationType.ENROLLMENT_APPROVED, {"recipient_id": uuid4()}
        )

        sink.notify.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_failure_is_logged(self, monkeypatch):
        logger = Mock()
        monkeypatch.setattr(notification_service_module, "logger", logger)
        sink = AsyncMock()
        sink.notify.side_effect = RuntimeError("inbox unavailable")
        recipient = uuid4()

        await notify_safely(
            sink, NotificationType.ENROLLMENT_REQUESTED, {"recipient_id": recipient}
        )

        logger.warning.assert_called_once_with(
            "notification_failed",
            notification_type="enrollment_requested",
            recipient_id=str(recipient),
            error="inbox unavailable",
            error_type="RuntimeError",
        )

    @pytest.mark.asyncio
    async def test_no_sink(self):
        await notify_safely(
            None, NotificationType.ENROLLMENT_APPROVED, {"recipient_id": uuid4()}
        )


class TestNotificationsApi:
    def test_requires_auth(self, client):
        response = client.get("/v1/notifications")

        assert response.status_code == 401

    def test_lists_own_notifications(
        self, client, instructor, student, auth_headers
    ):
        course_id = client.post(
            "/v1/courses",
            json={"title": "Pharmacology 101"},
            headers=auth_headers(instructor),
        ).json()["id"]
        client.post(
            "/v1/enrollments",
            json={"course_id": course_id},
            headers=auth_headers(student),
        )

        response = client.get("/v1/notifications", headers=auth_headers(instructor))

        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 1
        assert body["items"][0]["type"] == "enrollment_requested"
        assert body["items"][0]["course_id"] == course_id

        student_inbox = client.get(
            "/v1/notifications", headers=auth_headers(student)
        ).json()
        assert student_inbox["total"] == 0
