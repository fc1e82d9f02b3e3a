"""FastAPI dependencies for progress tracking."""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from .aggregator import ProgressAggregator
from .service import LessonProgressService


def _from_state(request: Request, name: str):
    service = getattr(request.app.state, name, None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Progress service not available",
        )
    return service


async def get_lesson_progress_service(request: Request) -> LessonProgressService:
    """Get lesson progress service from app state."""
    return _from_state(request, "lesson_progress_service")


async def get_progress_aggregator(request: Request) -> ProgressAggregator:
    """Get progress aggregator from app state."""
    return _from_state(request, "progress_aggregator")


LessonProgressServiceDep = Annotated[
    LessonProgressService, Depends(get_lesson_progress_service)
]
ProgressAggregatorDep = Annotated[ProgressAggregator, Depends(get_progress_aggregator)]
