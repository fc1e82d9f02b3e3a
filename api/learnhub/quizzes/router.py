"""Quiz API endpoints.

Provides routes for:
- Quiz authoring by the course instructor or an admin
- Taking the quiz: start, submit, progress and results
"""

from uuid import UUID

from fastapi import APIRouter, status

from learnhub.auth.dependencies import CurrentUser, InstructorUser
from learnhub.core.exceptions import DomainError, to_http_exception
from learnhub.progress.schemas import CourseProgressResponse

from .dependencies import QuizServiceDep
from .schemas import (
    QuizProgressResponse,
    QuizResponse,
    QuizResultsResponse,
    SaveQuizRequest,
    StartQuizResponse,
    SubmitQuizRequest,
    SubmitQuizResponse,
)


router = APIRouter(prefix="/v1/quizzes", tags=["quizzes"])


# ==============================================================================
# Authoring
# ==============================================================================


@router.put(
    "/courses/{course_id}",
    response_model=QuizResponse,
    summary="Create or replace the course quiz",
)
async def save_quiz(
    course_id: UUID,
    data: SaveQuizRequest,
    quiz_service: QuizServiceDep,
    user: InstructorUser,
) -> QuizResponse:
    try:
        quiz = await quiz_service.save_quiz(
            course_id,
            user,
            title=data.title,
            questions=[q.to_entity() for q in data.questions],
            instructions=data.instructions,
            is_published=data.is_published,
            time_limit=data.time_limit,
        )
        return QuizResponse.from_entity(quiz)
    except DomainError as e:
        raise to_http_exception(e) from e


@router.delete(
    "/courses/{course_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete the course quiz",
)
async def delete_quiz(
    course_id: UUID,
    quiz_service: QuizServiceDep,
    user: InstructorUser,
) -> None:
    try:
        await quiz_service.delete_quiz(course_id, user)
    except DomainError as e:
        raise to_http_exception(e) from e


# ==============================================================================
# Attempts
# ==============================================================================


@router.post(
    "/courses/{course_id}/start",
    response_model=StartQuizResponse,
    summary="Start or resume the quiz",
)
async def start_quiz(
    course_id: UUID,
    quiz_service: QuizServiceDep,
    user: CurrentUser,
) -> StartQuizResponse:
    """Requires an approved enrollment and every lesson completed."""
    try:
        quiz, progress = await quiz_service.start_quiz(course_id, user.id)
    except DomainError as e:
        raise to_http_exception(e) from e
    return StartQuizResponse(
        quiz=QuizResponse.from_entity(quiz),
        progress=QuizProgressResponse.from_entity(progress),
    )


@router.post(
    "/courses/{course_id}/submit",
    response_model=SubmitQuizResponse,
    summary="Submit quiz answers",
)
async def submit_quiz(
    course_id: UUID,
    data: SubmitQuizRequest,
    quiz_service: QuizServiceDep,
    user: CurrentUser,
) -> SubmitQuizResponse:
    try:
        progress, breakdown = await quiz_service.submit_quiz(
            course_id, user.id, data.answers, data.time_spent
        )
    except DomainError as e:
        raise to_http_exception(e) from e
    return SubmitQuizResponse(
        progress=QuizProgressResponse.from_entity(progress),
        course_progress=(
            CourseProgressResponse.from_breakdown(breakdown) if breakdown else None
        ),
    )


@router.get(
    "/courses/{course_id}/progress",
    response_model=QuizProgressResponse,
    summary="Get my quiz progress",
)
async def get_quiz_progress(
    course_id: UUID,
    quiz_service: QuizServiceDep,
    user: CurrentUser,
) -> QuizProgressResponse:
    try:
        progress = await quiz_service.get_quiz_progress(course_id, user.id)
    except DomainError as e:
        raise to_http_exception(e) from e
    return QuizProgressResponse.from_entity(progress)


@router.get(
    "/courses/{course_id}/results/{student_id}",
    response_model=QuizResultsResponse,
    summary="Get quiz results",
)
async def get_quiz_results(
    course_id: UUID,
    student_id: UUID,
    quiz_service: QuizServiceDep,
    user: CurrentUser,
) -> QuizResultsResponse:
    """Results with the answer key, for the student or course managers."""
    try:
        quiz, progress = await quiz_service.get_quiz_results(course_id, student_id, user)
    except DomainError as e:
        raise to_http_exception(e) from e
    return QuizResultsResponse.from_entities(quiz, progress)
