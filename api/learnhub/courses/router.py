"""Course management API endpoints.

Provides routes for:
- Courses: creation and detail with stats
- Lessons: listing, creation and deletion
"""

from uuid import UUID

from fastapi import APIRouter, status

from learnhub.auth.dependencies import CurrentUser, InstructorUser
from learnhub.core.exceptions import DomainError, to_http_exception

from .dependencies import CourseServiceDep
from .models import CourseStatus
from .schemas import (
    CourseResponse,
    CreateCourseRequest,
    CreateLessonRequest,
    LessonListResponse,
    LessonResponse,
)


router = APIRouter(prefix="/v1/courses", tags=["courses"])


# ==============================================================================
# Course Endpoints
# ==============================================================================


@router.post(
    "",
    response_model=CourseResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a course",
)
async def create_course(
    data: CreateCourseRequest,
    course_service: CourseServiceDep,
    user: InstructorUser,
) -> CourseResponse:
    """Create a course owned by the current instructor.

    Admins may pass ``instructor_id`` to create it for someone else.
    """
    try:
        course = await course_service.create_course(
            actor=user,
            title=data.title,
            description=data.description,
            instructor_id=data.instructor_id,
            status=CourseStatus(data.status),
        )
        return CourseResponse.from_entity(course)
    except DomainError as e:
        raise to_http_exception(e) from e


@router.get(
    "/{course_id}",
    response_model=CourseResponse,
    summary="Get a course with its stats",
)
async def get_course(
    course_id: UUID,
    course_service: CourseServiceDep,
    user: CurrentUser,
) -> CourseResponse:
    try:
        course = await course_service.get_course(course_id)
        return CourseResponse.from_entity(course)
    except DomainError as e:
        raise to_http_exception(e) from e


# ==============================================================================
# Lesson Endpoints
# ==============================================================================


@router.get(
    "/{course_id}/lessons",
    response_model=LessonListResponse,
    summary="List course lessons",
)
async def list_lessons(
    course_id: UUID,
    course_service: CourseServiceDep,
    user: CurrentUser,
) -> LessonListResponse:
    lessons = await course_service.list_lessons(course_id)
    return LessonListResponse(
        items=[LessonResponse.from_entity(lesson) for lesson in lessons],
        total=len(lessons),
    )


@router.post(
    "/{course_id}/lessons",
    response_model=LessonResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add a lesson",
)
async def add_lesson(
    course_id: UUID,
    data: CreateLessonRequest,
    course_service: CourseServiceDep,
    user: InstructorUser,
) -> LessonResponse:
    try:
        lesson = await course_service.add_lesson(
            course_id,
            user,
            title=data.title,
            module_id=data.module_id,
            position=data.position,
        )
        return LessonResponse.from_entity(lesson)
    except DomainError as e:
        raise to_http_exception(e) from e


@router.delete(
    "/{course_id}/lessons/{lesson_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a lesson",
)
async def delete_lesson(
    course_id: UUID,
    lesson_id: UUID,
    course_service: CourseServiceDep,
    user: InstructorUser,
) -> None:
    try:
        await course_service.remove_lesson(course_id, lesson_id, user)
    except DomainError as e:
        raise to_http_exception(e) from e
