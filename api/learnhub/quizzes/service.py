"""Course quiz authoring and attempts.

A course has at most one quiz. Students may take it once every lesson of
the course is completed; a failed attempt can be retaken until the attempt
limit, a passed quiz cannot be retaken. Submitting scores the attempt and
refreshes course progress.
"""

from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

import structlog

from learnhub.auth.schemas import AuthenticatedUser
from learnhub.core.exceptions import ForbiddenError, NotEligibleError, NotFoundError
from learnhub.utils import utc_now

from .models import Quiz, QuizAnswer, QuizAttemptStatus, QuizProgress, QuizQuestion


if TYPE_CHECKING:
    from learnhub.courses.service import CourseService
    from learnhub.enrollments.service import EnrollmentLedger
    from learnhub.progress.aggregator import ProgressAggregator, ProgressBreakdown
    from learnhub.progress.repository import LessonProgressRepository

    from .repository import QuizProgressRepository, QuizRepository


logger = structlog.get_logger(__name__)

DEFAULT_PASSING_PERCENTAGE = 70
DEFAULT_MAX_ATTEMPTS = 3


# ==============================================================================
# Custom Exceptions
# ==============================================================================


class QuizNotFoundError(NotFoundError):
    """Quiz not found."""

    def __init__(self, message: str = "Quiz not found"):
        super().__init__(message, "quiz_not_found")


class QuizAttemptNotFoundError(NotFoundError):
    """No quiz attempt for the student."""

    def __init__(self, message: str = "Quiz attempt not found"):
        super().__init__(message, "quiz_attempt_not_found")


# ==============================================================================
# Quiz Service
# ==============================================================================


class QuizService:
    """Service for course quizzes and quiz attempts."""

    def __init__(
        self,
        quiz_repository: "QuizRepository",
        progress_repository: "QuizProgressRepository",
        lesson_progress_repository: "LessonProgressRepository",
        course_service: "CourseService",
        ledger: "EnrollmentLedger",
        aggregator: "ProgressAggregator",
        passing_percentage: int = DEFAULT_PASSING_PERCENTAGE,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ):
        self.quizzes = quiz_repository
        self.progress = progress_repository
        self.lesson_progress = lesson_progress_repository
        self.courses = course_service
        self.ledger = ledger
        self.aggregator = aggregator
        self.passing_percentage = passing_percentage
        self.max_attempts = max_attempts

    # --------------------------------------------------------------------------
    # Authoring
    # --------------------------------------------------------------------------

    async def save_quiz(
        self,
        course_id: UUID,
        actor: AuthenticatedUser,
        title: str,
        questions: list[QuizQuestion],
        instructions: str | None = None,
        is_published: bool = True,
        time_limit: int | None = None,
    ) -> Quiz:
        """Create or replace the course quiz, then recompute quiz stats."""
        await self.courses.require_manageable(course_id, actor)

        for index, question in enumerate(questions):
            if not 0 <= question.correct_index < len(question.options):
                msg = f"Question {index} has no option at index {question.correct_index}"
                raise NotEligibleError(msg, "invalid_question")

        existing = await self.quizzes.get_by_course(course_id)
        quiz = Quiz(
            course_id=course_id,
            title=title.strip(),
            questions=questions,
            instructions=instructions,
            is_published=is_published,
            time_limit=time_limit,
        )
        if existing is not None:
            quiz.quiz_id = existing.quiz_id
            quiz.created_at = existing.created_at

        await self.quizzes.save(quiz)
        await self.courses.recompute_quiz_stats(course_id)

        logger.info(
            "quiz_saved",
            course_id=str(course_id),
            quiz_id=str(quiz.quiz_id),
            questions=len(questions),
            published=is_published,
        )
        return quiz

    async def delete_quiz(self, course_id: UUID, actor: AuthenticatedUser) -> None:
        """Delete the course quiz, then recompute quiz stats."""
        await self.courses.require_manageable(course_id, actor)

        if await self.quizzes.get_by_course(course_id) is None:
            raise QuizNotFoundError

        await self.quizzes.delete(course_id)
        await self.courses.recompute_quiz_stats(course_id)

        logger.info("quiz_deleted", course_id=str(course_id))

    async def get_quiz(self, course_id: UUID) -> Quiz:
        quiz = await self.quizzes.get_by_course(course_id)
        if quiz is None:
            raise QuizNotFoundError
        return quiz

    # --------------------------------------------------------------------------
    # Attempts
    # --------------------------------------------------------------------------

    async def start_quiz(
        self, course_id: UUID, student_id: UUID
    ) -> tuple[Quiz, QuizProgress]:
        """Start (or resume) an attempt.

        Raises:
            NotEnrolledError: Without an approved enrollment
            QuizNotFoundError: If the course has no published quiz
            NotEligibleError: Lessons not completed, quiz already passed,
                or no attempts left
        """
        await self.ledger.require_approved(course_id, student_id)

        quiz = await self.quizzes.get_by_course(course_id)
        if quiz is None or not quiz.is_published:
            raise QuizNotFoundError("This course has no published quiz")

        total_lessons = await self.courses.count_total_lessons(course_id)
        records = await self.lesson_progress.list_by_course(student_id, course_id)
        completed_lessons = sum(1 for record in records if record.completed)
        if completed_lessons < total_lessons:
            msg = f"Complete all {total_lessons} lessons before taking the quiz"
            raise NotEligibleError(msg, "lessons_incomplete")

        progress = await self.progress.get(course_id, student_id)
        if progress is not None and progress.status == QuizAttemptStatus.IN_PROGRESS.value:
            return quiz, progress

        if progress is not None and progress.passed:
            raise NotEligibleError("Quiz already passed", "quiz_already_passed")

        if progress is None:
            progress = QuizProgress(
                course_id=course_id,
                student_id=student_id,
                quiz_id=quiz.quiz_id,
                total_questions=len(quiz.questions),
                total_points=quiz.total_points,
                max_attempts=self.max_attempts,
            )
        elif progress.attempt_count >= progress.max_attempts:
            raise NotEligibleError(
                "Maximum quiz attempts reached", "quiz_attempts_exhausted"
            )

        progress.quiz_id = quiz.quiz_id
        progress.total_questions = len(quiz.questions)
        progress.total_points = quiz.total_points
        progress.attempt_count += 1
        progress.status = QuizAttemptStatus.IN_PROGRESS.value
        progress.score = 0
        progress.correct_answers = 0
        progress.percentage = 0.0
        progress.answers = []
        progress.started_at = utc_now()
        progress.completed_at = None
        progress.time_spent = 0

        await self.progress.save(progress)
        logger.info(
            "quiz_started",
            course_id=str(course_id),
            student_id=str(student_id),
            attempt=progress.attempt_count,
        )
        return quiz, progress

    async def submit_quiz(
        self,
        course_id: UUID,
        student_id: UUID,
        answers: dict[int, int],
        time_spent: int = 0,
    ) -> tuple[QuizProgress, "ProgressBreakdown | None"]:
        """Score the open attempt and refresh course progress.

        Args:
            answers: Selected option index by question index

        Raises:
            QuizAttemptNotFoundError: If the student never started the quiz
            NotEligibleError: If no attempt is in progress
        """
        progress = await self.progress.get(course_id, student_id)
        if progress is None:
            raise QuizAttemptNotFoundError
        if progress.status != QuizAttemptStatus.IN_PROGRESS.value:
            raise NotEligibleError("Quiz is not in progress", "quiz_not_in_progress")

        quiz = await self.get_quiz(course_id)

        score = 0
        correct = 0
        scored: list[QuizAnswer] = []
        for index, question in enumerate(quiz.questions):
            selected = answers.get(index, -1)
            is_correct = selected == question.correct_index
            if is_correct:
                score += question.points
                correct += 1
            scored.append(
                QuizAnswer(
                    question_index=index,
                    selected_option=selected,
                    is_correct=is_correct,
                )
            )

        total_points = quiz.total_points
        percentage = (
            float(round(Decimal(score) * 100 / total_points, 2)) if total_points else 0.0
        )
        passed = total_points > 0 and score * 100 >= self.passing_percentage * total_points

        progress.score = score
        progress.correct_answers = correct
        progress.total_questions = len(quiz.questions)
        progress.total_points = total_points
        progress.percentage = percentage
        progress.passed = passed
        progress.status = (
            QuizAttemptStatus.COMPLETED.value if passed else QuizAttemptStatus.FAILED.value
        )
        progress.answers = scored
        progress.completed_at = utc_now()
        progress.time_spent = max(time_spent, 0)

        if not await self.progress.finish_attempt(progress):
            raise NotEligibleError("Quiz is not in progress", "quiz_not_in_progress")

        logger.info(
            "quiz_submitted",
            course_id=str(course_id),
            student_id=str(student_id),
            attempt=progress.attempt_count,
            score=score,
            percentage=percentage,
            passed=passed,
        )

        breakdown = await self.aggregator.try_refresh(course_id, student_id)
        return progress, breakdown

    async def get_quiz_progress(self, course_id: UUID, student_id: UUID) -> QuizProgress:
        progress = await self.progress.get(course_id, student_id)
        if progress is None:
            raise QuizAttemptNotFoundError
        return progress

    async def get_quiz_results(
        self, course_id: UUID, student_id: UUID, actor: AuthenticatedUser
    ) -> tuple[Quiz, QuizProgress]:
        """Scored attempt with the correct answers, once it is finished."""
        if actor.id != student_id:
            course = await self.courses.find_by_id(course_id)
            if not actor.can_manage(course.instructor_id if course else None):
                raise ForbiddenError("You can only see your own quiz results")

        progress = await self.get_quiz_progress(course_id, student_id)
        if not progress.is_finished:
            raise NotEligibleError("Quiz attempt not finished yet", "quiz_not_finished")

        quiz = await self.get_quiz(course_id)
        return quiz, progress
