"""Short-answer question sets, attempts and manual grading.

Attempt lifecycle::

    in_progress -> submitted -> graded -> completed
         |
         +-> abandoned

``graded`` means some answers still lack points. Only completed attempts
count toward course progress.
"""

from decimal import Decimal
from typing import TYPE_CHECKING, Any
from uuid import UUID

import structlog

from learnhub.auth.schemas import AuthenticatedUser
from learnhub.core.exceptions import ForbiddenError, NotEligibleError, NotFoundError
from learnhub.notifications import NotificationType, notify_safely
from learnhub.utils import utc_now

from .models import (
    AWAITING_GRADING,
    DEFAULT_PASSING_SCORE,
    AttemptStatus,
    ShortAnswer,
    ShortQuestion,
    ShortQuestionAttempt,
    ShortQuestionSet,
)


if TYPE_CHECKING:
    from learnhub.courses.service import CourseService
    from learnhub.enrollments.service import EnrollmentLedger
    from learnhub.notifications.service import NotificationSink
    from learnhub.progress.aggregator import ProgressAggregator, ProgressBreakdown

    from .repository import ShortQuestionAttemptRepository, ShortQuestionSetRepository


logger = structlog.get_logger(__name__)


# ==============================================================================
# Custom Exceptions
# ==============================================================================


class QuestionSetNotFoundError(NotFoundError):
    """Short question set not found."""

    def __init__(self, message: str = "Question set not found"):
        super().__init__(message, "question_set_not_found")


class AttemptNotFoundError(NotFoundError):
    """Short question attempt not found."""

    def __init__(self, message: str = "Attempt not found"):
        super().__init__(message, "attempt_not_found")


class AttemptForbiddenError(ForbiddenError):
    """Attempt belongs to another student."""

    def __init__(self, message: str = "You can only access your own attempts"):
        super().__init__(message, "attempt_forbidden")


# ==============================================================================
# Short Question Service
# ==============================================================================


class ShortQuestionService:
    """Service for short-answer sets and their attempts."""

    def __init__(
        self,
        set_repository: "ShortQuestionSetRepository",
        attempt_repository: "ShortQuestionAttemptRepository",
        course_service: "CourseService",
        ledger: "EnrollmentLedger",
        aggregator: "ProgressAggregator",
        notifications: "NotificationSink | None" = None,
        default_passing_score: int = DEFAULT_PASSING_SCORE,
    ):
        self.sets = set_repository
        self.attempts = attempt_repository
        self.courses = course_service
        self.ledger = ledger
        self.aggregator = aggregator
        self.notifications = notifications
        self.default_passing_score = default_passing_score

    async def _notify(self, event: NotificationType, **payload: Any) -> None:
        await notify_safely(self.notifications, event, payload)

    # --------------------------------------------------------------------------
    # Sets
    # --------------------------------------------------------------------------

    async def get_set(self, set_id: UUID) -> ShortQuestionSet:
        question_set = await self.sets.get(set_id)
        if question_set is None:
            raise QuestionSetNotFoundError
        return question_set

    async def list_sets(
        self, course_id: UUID, published_only: bool = True
    ) -> list[ShortQuestionSet]:
        sets = await self.sets.list_by_course(course_id)
        if published_only:
            sets = [s for s in sets if s.is_published]
        return sorted(sets, key=lambda s: s.created_at)

    async def save_set(
        self,
        course_id: UUID,
        actor: AuthenticatedUser,
        title: str,
        questions: list[ShortQuestion],
        set_id: UUID | None = None,
        description: str | None = None,
        instructions: str | None = None,
        passing_score: int | None = None,
        allow_retake: bool = True,
        is_published: bool = True,
        time_limit: int | None = None,
    ) -> ShortQuestionSet:
        """Create a set, or replace ``set_id``, then recompute course stats."""
        await self.courses.require_manageable(course_id, actor)

        question_set = ShortQuestionSet(
            course_id=course_id,
            title=title.strip(),
            questions=questions,
            description=description,
            instructions=instructions,
            passing_score=(
                passing_score if passing_score is not None else self.default_passing_score
            ),
            allow_retake=allow_retake,
            is_published=is_published,
            time_limit=time_limit,
        )

        if set_id is not None:
            existing = await self.get_set(set_id)
            if existing.course_id != course_id:
                raise QuestionSetNotFoundError
            question_set.set_id = existing.set_id
            question_set.created_at = existing.created_at

        await self.sets.save(question_set)
        await self.courses.recompute_short_question_stats(course_id)

        logger.info(
            "short_question_set_saved",
            course_id=str(course_id),
            set_id=str(question_set.set_id),
            questions=len(questions),
            published=is_published,
        )
        return question_set

    async def delete_set(self, set_id: UUID, actor: AuthenticatedUser) -> None:
        """Delete a set with its attempts.

        Approved students who had attempts on the set get their course
        progress recomputed without it.
        """
        question_set = await self.get_set(set_id)
        course_id = question_set.course_id
        await self.courses.require_manageable(course_id, actor)

        await self.sets.delete(question_set)
        await self.courses.recompute_short_question_stats(course_id)

        removed_attempts = 0
        for enrollment in await self.ledger.list_for_course(course_id, actor):
            removed = await self.attempts.delete_for_set(
                course_id, enrollment.student_id, set_id
            )
            removed_attempts += removed
            if removed and enrollment.is_approved:
                await self.aggregator.try_refresh(course_id, enrollment.student_id)

        logger.info(
            "short_question_set_deleted",
            course_id=str(course_id),
            set_id=str(set_id),
            removed_attempts=removed_attempts,
        )

    # --------------------------------------------------------------------------
    # Attempts
    # --------------------------------------------------------------------------

    async def start_attempt(self, set_id: UUID, student_id: UUID) -> ShortQuestionAttempt:
        """Start a new attempt, or resume the one in progress.

        Raises:
            QuestionSetNotFoundError: Unknown or unpublished set
            NotEnrolledError: Without an approved enrollment
            NotEligibleError: An attempt awaits grading, the set is already
                passed, retakes are disabled, or a concurrent start won
                without leaving an attempt in progress
        """
        question_set = await self.get_set(set_id)
        if not question_set.is_published:
            raise QuestionSetNotFoundError
        await self.ledger.require_approved(question_set.course_id, student_id)

        previous = [
            a
            for a in await self.attempts.list_for_student(
                question_set.course_id, student_id
            )
            if a.set_id == set_id
        ]

        for attempt in previous:
            if attempt.status == AttemptStatus.IN_PROGRESS.value:
                return attempt
        if any(a.status in AWAITING_GRADING for a in previous):
            raise NotEligibleError(
                "Previous attempt is waiting for grading", "attempt_pending_grading"
            )
        completed = [a for a in previous if a.is_completed]
        if any(a.passed for a in completed):
            raise NotEligibleError("Question set already passed", "set_already_passed")
        if completed and not question_set.allow_retake:
            raise NotEligibleError(
                "Retakes are not allowed for this set", "retake_not_allowed"
            )

        attempt = ShortQuestionAttempt(
            course_id=question_set.course_id,
            student_id=student_id,
            set_id=set_id,
            attempt_number=len(previous) + 1,
            answers=[
                ShortAnswer(question_index=index, max_points=question.points)
                for index, question in enumerate(question_set.questions)
            ],
        )
        if not await self.attempts.insert(attempt):
            # A concurrent start took this attempt number
            return await self._resume_started(question_set.course_id, student_id, set_id)

        logger.info(
            "short_question_attempt_started",
            attempt_id=str(attempt.attempt_id),
            set_id=str(set_id),
            student_id=str(student_id),
            attempt_number=attempt.attempt_number,
        )
        return attempt

    async def _resume_started(
        self, course_id: UUID, student_id: UUID, set_id: UUID
    ) -> ShortQuestionAttempt:
        for attempt in await self.attempts.list_for_student(course_id, student_id):
            if attempt.set_id == set_id and (
                attempt.status == AttemptStatus.IN_PROGRESS.value
            ):
                return attempt
        raise NotEligibleError(
            "Another attempt was started at the same time", "attempt_conflict"
        )

    async def _require_own_attempt(
        self, attempt_id: UUID, student_id: UUID
    ) -> ShortQuestionAttempt:
        attempt = await self.attempts.get(attempt_id)
        if attempt is None:
            raise AttemptNotFoundError
        if attempt.student_id != student_id:
            raise AttemptForbiddenError
        return attempt

    async def submit_attempt(
        self,
        attempt_id: UUID,
        student_id: UUID,
        answers: dict[int, str],
        time_spent: int = 0,
    ) -> ShortQuestionAttempt:
        """Submit answers for grading.

        Args:
            answers: Answer text by question index
        """
        attempt = await self._require_own_attempt(attempt_id, student_id)
        if attempt.status != AttemptStatus.IN_PROGRESS.value:
            raise NotEligibleError("Attempt is not in progress", "attempt_not_in_progress")

        question_set = await self.get_set(attempt.set_id)
        for answer in attempt.answers:
            text = answers.get(answer.question_index, "").strip()
            if answer.question_index < len(question_set.questions):
                max_length = question_set.questions[answer.question_index].max_length
                if len(text) > max_length:
                    raise NotEligibleError(
                        f"Answer {answer.question_index} exceeds "
                        f"{max_length} characters",
                        "answer_too_long",
                    )
            answer.answer = text

        attempt.status = AttemptStatus.SUBMITTED.value
        attempt.submitted_at = utc_now()
        attempt.time_spent = max(time_spent, 0)

        if not await self.attempts.update(attempt, AttemptStatus.IN_PROGRESS.value):
            raise NotEligibleError("Attempt is not in progress", "attempt_not_in_progress")

        logger.info(
            "short_question_attempt_submitted",
            attempt_id=str(attempt_id),
            set_id=str(attempt.set_id),
            student_id=str(student_id),
        )

        course = await self.courses.find_by_id(attempt.course_id)
        if course is not None:
            await self._notify(
                NotificationType.SHORT_QUESTION_SUBMITTED,
                recipient_id=course.instructor_id,
                actor_id=student_id,
                course_id=attempt.course_id,
                reference_id=attempt_id,
                message=f"New answers to grade for {question_set.title}",
            )
        return attempt

    async def abandon_attempt(
        self, attempt_id: UUID, student_id: UUID
    ) -> ShortQuestionAttempt:
        attempt = await self._require_own_attempt(attempt_id, student_id)
        if attempt.status != AttemptStatus.IN_PROGRESS.value:
            raise NotEligibleError("Attempt is not in progress", "attempt_not_in_progress")

        attempt.status = AttemptStatus.ABANDONED.value
        if not await self.attempts.update(attempt, AttemptStatus.IN_PROGRESS.value):
            raise NotEligibleError("Attempt is not in progress", "attempt_not_in_progress")

        logger.info("short_question_attempt_abandoned", attempt_id=str(attempt_id))
        return attempt

    async def grade_attempt(
        self,
        attempt_id: UUID,
        actor: AuthenticatedUser,
        grades: dict[int, tuple[int, str | None]],
        overall_feedback: str | None = None,
    ) -> tuple[ShortQuestionAttempt, "ProgressBreakdown | None"]:
        """Assign points to answers.

        Once every answer has points the attempt is completed, scored
        against the set's passing score, and course progress is refreshed.

        Args:
            grades: (points, feedback) by question index
        """
        attempt = await self.attempts.get(attempt_id)
        if attempt is None:
            raise AttemptNotFoundError
        await self.courses.require_manageable(attempt.course_id, actor)

        if attempt.status not in AWAITING_GRADING:
            raise NotEligibleError(
                "Attempt is not awaiting grading", "attempt_not_gradable"
            )
        expected_status = attempt.status

        answers = {answer.question_index: answer for answer in attempt.answers}
        for index, (points, feedback) in grades.items():
            answer = answers.get(index)
            if answer is None:
                raise NotEligibleError(f"No answer at index {index}", "invalid_grade")
            if not 0 <= points <= answer.max_points:
                raise NotEligibleError(
                    f"Points for answer {index} must be between 0 and "
                    f"{answer.max_points}",
                    "invalid_grade",
                )
            answer.points = points
            answer.feedback = feedback

        question_set = await self.get_set(attempt.set_id)
        now = utc_now()
        attempt.graded_by = actor.id
        attempt.graded_at = now
        if overall_feedback is not None:
            attempt.overall_feedback = overall_feedback

        if all(answer.is_graded for answer in attempt.answers):
            attempt.score = sum(answer.points or 0 for answer in attempt.answers)
            attempt.max_score = sum(answer.max_points for answer in attempt.answers)
            attempt.percentage = (
                float(round(Decimal(attempt.score) * 100 / attempt.max_score, 2))
                if attempt.max_score
                else 0.0
            )
            attempt.passed = (
                attempt.max_score > 0
                and attempt.score * 100 >= question_set.passing_score * attempt.max_score
            )
            attempt.status = AttemptStatus.COMPLETED.value
        else:
            attempt.status = AttemptStatus.GRADED.value

        if not await self.attempts.update(attempt, expected_status):
            raise NotEligibleError(
                "Attempt changed while grading, reload it", "attempt_not_gradable"
            )

        logger.info(
            "short_question_attempt_graded",
            attempt_id=str(attempt_id),
            graded_by=str(actor.id),
            status=attempt.status,
            score=attempt.score,
            passed=attempt.passed,
        )

        breakdown = None
        if attempt.is_completed:
            breakdown = await self.aggregator.try_refresh(
                attempt.course_id, attempt.student_id
            )
            await self._notify(
                NotificationType.SHORT_QUESTION_GRADED,
                recipient_id=attempt.student_id,
                actor_id=actor.id,
                course_id=attempt.course_id,
                reference_id=attempt_id,
                message=f"Your answers to {question_set.title} were graded",
            )
        return attempt, breakdown

    # --------------------------------------------------------------------------
    # Queries
    # --------------------------------------------------------------------------

    async def get_attempt(
        self, attempt_id: UUID, actor: AuthenticatedUser
    ) -> ShortQuestionAttempt:
        attempt = await self.attempts.get(attempt_id)
        if attempt is None:
            raise AttemptNotFoundError
        if attempt.student_id != actor.id:
            await self.courses.require_manageable(attempt.course_id, actor)
        return attempt

    async def list_attempts(
        self, course_id: UUID, student_id: UUID
    ) -> list[ShortQuestionAttempt]:
        attempts = await self.attempts.list_for_student(course_id, student_id)
        return sorted(attempts, key=lambda a: a.started_at)

    async def list_pending_grading(
        self, course_id: UUID, actor: AuthenticatedUser
    ) -> list[ShortQuestionAttempt]:
        """Attempts of the course waiting for the instructor, oldest first."""
        await self.courses.require_manageable(course_id, actor)
        attempts = await self.attempts.list_pending(course_id)
        return sorted(attempts, key=lambda a: a.submitted_at or a.started_at)
