"""Short-answer question API endpoints.

Provides routes for:
- Question sets: authoring and listing
- Attempts: start, submit, abandon
- Grading queue and grading by the course instructor or an admin
"""

from uuid import UUID

from fastapi import APIRouter, status

from learnhub.auth.dependencies import CurrentUser, InstructorUser
from learnhub.core.exceptions import DomainError, to_http_exception
from learnhub.progress.schemas import CourseProgressResponse

from .dependencies import ShortQuestionServiceDep
from .schemas import (
    AttemptListResponse,
    AttemptResponse,
    GradeAttemptRequest,
    GradeAttemptResponse,
    QuestionSetListResponse,
    QuestionSetResponse,
    SaveQuestionSetRequest,
    SubmitAttemptRequest,
)


router = APIRouter(prefix="/v1/short-questions", tags=["short-questions"])


# ==============================================================================
# Sets
# ==============================================================================


@router.put(
    "/courses/{course_id}/sets",
    response_model=QuestionSetResponse,
    summary="Create or replace a question set",
)
async def save_set(
    course_id: UUID,
    data: SaveQuestionSetRequest,
    service: ShortQuestionServiceDep,
    user: InstructorUser,
) -> QuestionSetResponse:
    try:
        question_set = await service.save_set(
            course_id,
            user,
            title=data.title,
            questions=[q.to_entity() for q in data.questions],
            set_id=data.set_id,
            description=data.description,
            instructions=data.instructions,
            passing_score=data.passing_score,
            allow_retake=data.allow_retake,
            is_published=data.is_published,
            time_limit=data.time_limit,
        )
        return QuestionSetResponse.from_entity(question_set)
    except DomainError as e:
        raise to_http_exception(e) from e


@router.get(
    "/courses/{course_id}/sets",
    response_model=QuestionSetListResponse,
    summary="List published question sets",
)
async def list_sets(
    course_id: UUID,
    service: ShortQuestionServiceDep,
    user: CurrentUser,
) -> QuestionSetListResponse:
    sets = await service.list_sets(course_id)
    return QuestionSetListResponse(
        items=[QuestionSetResponse.from_entity(s) for s in sets],
        total=len(sets),
    )


@router.delete(
    "/sets/{set_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a question set",
)
async def delete_set(
    set_id: UUID,
    service: ShortQuestionServiceDep,
    user: InstructorUser,
) -> None:
    try:
        await service.delete_set(set_id, user)
    except DomainError as e:
        raise to_http_exception(e) from e


# ==============================================================================
# Attempts
# ==============================================================================


@router.post(
    "/sets/{set_id}/attempts",
    response_model=AttemptResponse,
    summary="Start or resume an attempt",
)
async def start_attempt(
    set_id: UUID,
    service: ShortQuestionServiceDep,
    user: CurrentUser,
) -> AttemptResponse:
    try:
        attempt = await service.start_attempt(set_id, user.id)
        return AttemptResponse.from_entity(attempt)
    except DomainError as e:
        raise to_http_exception(e) from e


@router.post(
    "/attempts/{attempt_id}/submit",
    response_model=AttemptResponse,
    summary="Submit answers for grading",
)
async def submit_attempt(
    attempt_id: UUID,
    data: SubmitAttemptRequest,
    service: ShortQuestionServiceDep,
    user: CurrentUser,
) -> AttemptResponse:
    try:
        attempt = await service.submit_attempt(
            attempt_id, user.id, data.answers, data.time_spent
        )
        return AttemptResponse.from_entity(attempt)
    except DomainError as e:
        raise to_http_exception(e) from e


@router.post(
    "/attempts/{attempt_id}/abandon",
    response_model=AttemptResponse,
    summary="Abandon an attempt",
)
async def abandon_attempt(
    attempt_id: UUID,
    service: ShortQuestionServiceDep,
    user: CurrentUser,
) -> AttemptResponse:
    try:
        attempt = await service.abandon_attempt(attempt_id, user.id)
        return AttemptResponse.from_entity(attempt)
    except DomainError as e:
        raise to_http_exception(e) from e


@router.get(
    "/attempts/{attempt_id}",
    response_model=AttemptResponse,
    summary="Get an attempt",
)
async def get_attempt(
    attempt_id: UUID,
    service: ShortQuestionServiceDep,
    user: CurrentUser,
) -> AttemptResponse:
    try:
        attempt = await service.get_attempt(attempt_id, user)
        return AttemptResponse.from_entity(attempt)
    except DomainError as e:
        raise to_http_exception(e) from e


@router.get(
    "/courses/{course_id}/attempts/me",
    response_model=AttemptListResponse,
    summary="List my attempts in a course",
)
async def list_my_attempts(
    course_id: UUID,
    service: ShortQuestionServiceDep,
    user: CurrentUser,
) -> AttemptListResponse:
    attempts = await service.list_attempts(course_id, user.id)
    return AttemptListResponse(
        items=[AttemptResponse.from_entity(a) for a in attempts],
        total=len(attempts),
    )


# ==============================================================================
# Grading
# ==============================================================================


@router.get(
    "/courses/{course_id}/pending",
    response_model=AttemptListResponse,
    summary="List attempts waiting for grading",
)
async def list_pending_grading(
    course_id: UUID,
    service: ShortQuestionServiceDep,
    user: InstructorUser,
) -> AttemptListResponse:
    try:
        attempts = await service.list_pending_grading(course_id, user)
    except DomainError as e:
        raise to_http_exception(e) from e
    return AttemptListResponse(
        items=[AttemptResponse.from_entity(a) for a in attempts],
        total=len(attempts),
    )


@router.post(
    "/attempts/{attempt_id}/grade",
    response_model=GradeAttemptResponse,
    summary="Grade an attempt",
)
async def grade_attempt(
    attempt_id: UUID,
    data: GradeAttemptRequest,
    service: ShortQuestionServiceDep,
    user: InstructorUser,
) -> GradeAttemptResponse:
    """Assign points; the attempt completes once every answer is graded."""
    grades = {g.question_index: (g.points, g.feedback) for g in data.grades}
    try:
        attempt, breakdown = await service.grade_attempt(
            attempt_id, user, grades, data.overall_feedback
        )
    except DomainError as e:
        raise to_http_exception(e) from e
    return GradeAttemptResponse(
        attempt=AttemptResponse.from_entity(attempt),
        course_progress=(
            CourseProgressResponse.from_breakdown(breakdown) if breakdown else None
        ),
    )
