"""Student progress tracking API endpoints.

Provides routes for:
- Lesson completion (and reset) with course progress refresh
- Lesson access tracking
- Progress queries
"""

from uuid import UUID

from fastapi import APIRouter

from learnhub.auth.dependencies import CurrentUser
from learnhub.core.exceptions import DomainError, to_http_exception
from learnhub.courses.dependencies import CourseServiceDep

from .dependencies import LessonProgressServiceDep, ProgressAggregatorDep
from .schemas import (
    CourseProgressResponse,
    LessonProgressListResponse,
    LessonProgressRequest,
    LessonProgressResponse,
    LessonProgressUpdateResponse,
    MarkLessonIncompleteRequest,
)


router = APIRouter(prefix="/v1/progress", tags=["progress"])


def _update_response(progress, breakdown) -> LessonProgressUpdateResponse:
    return LessonProgressUpdateResponse(
        lesson=LessonProgressResponse.from_entity(progress),
        course_progress=(
            CourseProgressResponse.from_breakdown(breakdown) if breakdown else None
        ),
    )


# ==============================================================================
# Lesson Endpoints
# ==============================================================================


@router.post(
    "/lessons/complete",
    response_model=LessonProgressUpdateResponse,
    summary="Mark lesson as complete",
)
async def mark_lesson_complete(
    data: LessonProgressRequest,
    progress_service: LessonProgressServiceDep,
    user: CurrentUser,
) -> LessonProgressUpdateResponse:
    """Mark a lesson completed and return the refreshed course progress."""
    try:
        progress, breakdown = await progress_service.mark_lesson_completed(
            student_id=user.id,
            course_id=data.course_id,
            lesson_id=data.lesson_id,
            module_id=data.module_id,
            time_spent=data.time_spent,
        )
    except DomainError as e:
        raise to_http_exception(e) from e
    return _update_response(progress, breakdown)


@router.post(
    "/lessons/incomplete",
    response_model=LessonProgressUpdateResponse,
    summary="Mark lesson as incomplete",
)
async def mark_lesson_incomplete(
    data: MarkLessonIncompleteRequest,
    progress_service: LessonProgressServiceDep,
    user: CurrentUser,
) -> LessonProgressUpdateResponse:
    try:
        progress, breakdown = await progress_service.mark_lesson_incomplete(
            student_id=user.id,
            course_id=data.course_id,
            lesson_id=data.lesson_id,
        )
    except DomainError as e:
        raise to_http_exception(e) from e
    return _update_response(progress, breakdown)


@router.post(
    "/lessons/access",
    response_model=LessonProgressResponse,
    summary="Track lesson access",
)
async def record_lesson_access(
    data: LessonProgressRequest,
    progress_service: LessonProgressServiceDep,
    user: CurrentUser,
) -> LessonProgressResponse:
    """Record a visit and time spent; completion is unchanged."""
    try:
        progress = await progress_service.record_lesson_access(
            student_id=user.id,
            course_id=data.course_id,
            lesson_id=data.lesson_id,
            module_id=data.module_id,
            time_spent=data.time_spent,
        )
    except DomainError as e:
        raise to_http_exception(e) from e
    return LessonProgressResponse.from_entity(progress)


# ==============================================================================
# Course Progress Endpoints
# ==============================================================================


@router.get(
    "/courses/{course_id}/lessons",
    response_model=LessonProgressListResponse,
    summary="Get my lesson progress in a course",
)
async def get_course_lesson_progress(
    course_id: UUID,
    progress_service: LessonProgressServiceDep,
    user: CurrentUser,
) -> LessonProgressListResponse:
    records = await progress_service.get_course_lesson_progress(user.id, course_id)
    return LessonProgressListResponse(
        items=[LessonProgressResponse.from_entity(r) for r in records],
        total=len(records),
    )


@router.get(
    "/courses/{course_id}",
    response_model=CourseProgressResponse,
    summary="Get my course progress",
)
async def get_course_progress(
    course_id: UUID,
    aggregator: ProgressAggregatorDep,
    user: CurrentUser,
) -> CourseProgressResponse:
    """Recompute, store and return the caller's course progress."""
    try:
        breakdown = await aggregator.refresh(course_id, user.id)
    except DomainError as e:
        raise to_http_exception(e) from e
    return CourseProgressResponse.from_breakdown(breakdown)


@router.get(
    "/courses/{course_id}/students/{student_id}",
    response_model=CourseProgressResponse,
    summary="Get a student's course progress",
)
async def get_student_course_progress(
    course_id: UUID,
    student_id: UUID,
    aggregator: ProgressAggregatorDep,
    course_service: CourseServiceDep,
    user: CurrentUser,
) -> CourseProgressResponse:
    """Course instructor or admin view of a student's progress."""
    try:
        await course_service.require_manageable(course_id, user)
        breakdown = await aggregator.refresh(course_id, student_id)
    except DomainError as e:
        raise to_http_exception(e) from e
    return CourseProgressResponse.from_breakdown(breakdown)
