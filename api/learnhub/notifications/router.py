"""Notification API routes.

Endpoints for:
- GET /v1/notifications - List the caller's notifications
"""

from fastapi import APIRouter, Query

from learnhub.auth.dependencies import CurrentUser
from learnhub.notifications.dependencies import NotificationServiceDep
from learnhub.notifications.schemas import (
    NotificationListResponse,
    NotificationResponse,
)


router = APIRouter(
    prefix="/v1/notifications",
    tags=["notifications"],
)


@router.get(
    "",
    response_model=NotificationListResponse,
    summary="List user notifications",
)
async def list_notifications(
    current_user: CurrentUser,
    service: NotificationServiceDep,
    limit: int = Query(default=20, ge=1, le=100, description="Items to return"),
) -> NotificationListResponse:
    """List notifications for the current user, newest first."""
    notifications = await service.list_for_user(current_user.id, limit)
    return NotificationListResponse(
        items=[NotificationResponse.from_notification(n) for n in notifications],
        total=len(notifications),
    )
