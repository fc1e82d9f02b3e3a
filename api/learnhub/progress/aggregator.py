"""Weighted course progress.

Course progress is the sum of three shares:

- lessons: 60 points, proportional to completed lessons
- quiz: 20 points when the course quiz is passed, 0 otherwise
- short-answer sets: 20 points, proportional to the sets passed, judged on
  the latest completed attempt of each set

Shares are rounded half-up and the total is capped at 100. The result is
written back through the enrollment ledger, which ignores it once the
student graduated.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

import structlog

from learnhub.core.exceptions import ProgressComputeError
from learnhub.utils import round_half_up


if TYPE_CHECKING:
    from learnhub.courses.service import CourseService
    from learnhub.enrollments.service import EnrollmentLedger
    from learnhub.quizzes.repository import QuizProgressRepository
    from learnhub.short_questions.models import ShortQuestionAttempt
    from learnhub.short_questions.repository import ShortQuestionAttemptRepository

    from .repository import LessonProgressRepository


logger = structlog.get_logger(__name__)

LESSON_WEIGHT = 60
QUIZ_WEIGHT = 20
SHORT_QUESTION_WEIGHT = 20
MAX_PROGRESS = 100


@dataclass
class LessonShare:
    completed: int
    total: int
    points: int
    weight: int = LESSON_WEIGHT


@dataclass
class QuizShare:
    attempted: bool
    passed: bool
    percentage: float | None
    points: int
    weight: int = QUIZ_WEIGHT


@dataclass
class ShortQuestionShare:
    passed: int
    attempted: int
    points: int
    weight: int = SHORT_QUESTION_WEIGHT


@dataclass
class ProgressBreakdown:
    """Course progress of one student with the share of each source."""

    course_id: UUID
    student_id: UUID
    lessons: LessonShare
    quiz: QuizShare
    short_questions: ShortQuestionShare
    total: int = field(init=False)

    def __post_init__(self) -> None:
        points = self.lessons.points + self.quiz.points + self.short_questions.points
        self.total = min(points, MAX_PROGRESS)


def lesson_points(completed: int, total: int) -> int:
    """Lesson share out of 60; ``completed`` is clamped to ``total``."""
    if total <= 0:
        return 0
    completed = max(0, min(completed, total))
    return round_half_up(Decimal(completed) * LESSON_WEIGHT / total)


def short_question_points(passed: int, attempted: int) -> int:
    """Short-answer share out of 20."""
    if attempted <= 0:
        return 0
    if passed >= attempted:
        return SHORT_QUESTION_WEIGHT
    return round_half_up(Decimal(passed) * SHORT_QUESTION_WEIGHT / attempted)


def latest_completed_per_set(
    attempts: list["ShortQuestionAttempt"],
) -> list["ShortQuestionAttempt"]:
    """Keep the most recent completed attempt of each set."""
    latest: dict[UUID, ShortQuestionAttempt] = {}
    for attempt in attempts:
        if not attempt.is_completed:
            continue
        current = latest.get(attempt.set_id)
        if current is None or attempt.attempt_number > current.attempt_number:
            latest[attempt.set_id] = attempt
    return list(latest.values())


class ProgressAggregator:
    """Computes course progress and stores it on the enrollment."""

    def __init__(
        self,
        course_service: "CourseService",
        lesson_progress_repository: "LessonProgressRepository",
        quiz_progress_repository: "QuizProgressRepository",
        short_question_attempt_repository: "ShortQuestionAttemptRepository",
        ledger: "EnrollmentLedger",
    ):
        self.courses = course_service
        self.lesson_progress = lesson_progress_repository
        self.quiz_progress = quiz_progress_repository
        self.short_question_attempts = short_question_attempt_repository
        self.ledger = ledger

    async def compute(self, course_id: UUID, student_id: UUID) -> ProgressBreakdown:
        """Compute progress without writing it.

        Raises:
            ProgressComputeError: If any of the source reads failed
        """
        try:
            total_lessons = await self.courses.count_total_lessons(course_id)
            lesson_records = await self.lesson_progress.list_by_course(
                student_id, course_id
            )
            quiz = await self.quiz_progress.get(course_id, student_id)
            attempts = await self.short_question_attempts.list_for_student(
                course_id, student_id
            )
            set_ids = await self.courses.short_question_set_ids(course_id)
        except Exception as e:
            logger.exception(
                "course_progress_compute_failed",
                course_id=str(course_id),
                student_id=str(student_id),
                error=str(e),
            )
            raise ProgressComputeError from e

        completed_lessons = sum(1 for record in lesson_records if record.completed)
        # Attempts of deleted sets no longer count
        latest = latest_completed_per_set(
            [attempt for attempt in attempts if attempt.set_id in set_ids]
        )
        passed_sets = sum(1 for attempt in latest if attempt.passed)
        quiz_passed = quiz is not None and quiz.passed

        return ProgressBreakdown(
            course_id=course_id,
            student_id=student_id,
            lessons=LessonShare(
                completed=min(completed_lessons, total_lessons),
                total=total_lessons,
                points=lesson_points(completed_lessons, total_lessons),
            ),
            quiz=QuizShare(
                attempted=quiz is not None and quiz.is_finished,
                passed=quiz_passed,
                percentage=quiz.percentage if quiz is not None else None,
                points=QUIZ_WEIGHT if quiz_passed else 0,
            ),
            short_questions=ShortQuestionShare(
                passed=passed_sets,
                attempted=len(latest),
                points=short_question_points(passed_sets, len(latest)),
            ),
        )

    async def refresh(self, course_id: UUID, student_id: UUID) -> ProgressBreakdown:
        """Recompute progress and store it on the student's enrollment.

        Nothing is written when the computation fails.
        """
        breakdown = await self.compute(course_id, student_id)
        await self.ledger.set_progress(course_id, student_id, breakdown.total)

        logger.debug(
            "course_progress_refreshed",
            course_id=str(course_id),
            student_id=str(student_id),
            total=breakdown.total,
            lesson_points=breakdown.lessons.points,
            quiz_points=breakdown.quiz.points,
            short_question_points=breakdown.short_questions.points,
        )
        return breakdown

    async def try_refresh(
        self, course_id: UUID, student_id: UUID
    ) -> ProgressBreakdown | None:
        """Refresh after a producer's own write already committed.

        The producer's result stands even if the recomputation fails; the
        next refresh for the student catches up.
        """
        try:
            return await self.refresh(course_id, student_id)
        except ProgressComputeError:
            logger.warning(
                "course_progress_refresh_skipped",
                course_id=str(course_id),
                student_id=str(student_id),
            )
            return None
