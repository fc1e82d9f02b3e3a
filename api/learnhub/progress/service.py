"""Lesson progress recording.

Students mark lessons completed or incomplete and report time spent.
Completion changes feed the course progress through the aggregator; plain
access tracking does not.
"""

from typing import TYPE_CHECKING
from uuid import UUID

import structlog

from learnhub.core.exceptions import NotFoundError
from learnhub.utils import utc_now

from .models import LessonProgress


if TYPE_CHECKING:
    from learnhub.courses.service import CourseService
    from learnhub.enrollments.service import EnrollmentLedger

    from .aggregator import ProgressAggregator, ProgressBreakdown
    from .repository import LessonProgressRepository


logger = structlog.get_logger(__name__)


class LessonProgressNotFoundError(NotFoundError):
    """No progress recorded for the lesson."""

    def __init__(self, message: str = "Lesson progress not found"):
        super().__init__(message, "progress_not_found")


class LessonProgressService:
    """Service for per-lesson progress."""

    def __init__(
        self,
        repository: "LessonProgressRepository",
        course_service: "CourseService",
        ledger: "EnrollmentLedger",
        aggregator: "ProgressAggregator",
    ):
        self.repository = repository
        self.courses = course_service
        self.ledger = ledger
        self.aggregator = aggregator

    async def _require_access(
        self, student_id: UUID, course_id: UUID, lesson_id: UUID
    ) -> None:
        await self.ledger.require_approved(course_id, student_id)
        await self.courses.get_lesson(course_id, lesson_id)

    async def mark_lesson_completed(
        self,
        student_id: UUID,
        course_id: UUID,
        lesson_id: UUID,
        module_id: UUID | None = None,
        time_spent: int = 0,
    ) -> tuple[LessonProgress, "ProgressBreakdown | None"]:
        """Mark a lesson completed and refresh course progress.

        Marking an already completed lesson again keeps the first
        completion time.
        """
        await self._require_access(student_id, course_id, lesson_id)

        now = utc_now()
        progress = await self.repository.get(student_id, course_id, lesson_id)
        if progress is None:
            progress = LessonProgress(
                student_id=student_id,
                course_id=course_id,
                lesson_id=lesson_id,
                module_id=module_id,
            )

        if not progress.completed:
            progress.completed = True
            progress.completed_at = now
        progress.module_id = module_id or progress.module_id
        progress.time_spent += max(time_spent, 0)
        progress.last_accessed_at = now

        await self.repository.save(progress)
        logger.info(
            "lesson_marked_complete",
            student_id=str(student_id),
            course_id=str(course_id),
            lesson_id=str(lesson_id),
        )

        breakdown = await self.aggregator.try_refresh(course_id, student_id)
        return progress, breakdown

    async def mark_lesson_incomplete(
        self, student_id: UUID, course_id: UUID, lesson_id: UUID
    ) -> tuple[LessonProgress, "ProgressBreakdown | None"]:
        """Reset a lesson's completion and refresh course progress."""
        await self.ledger.require_approved(course_id, student_id)

        progress = await self.repository.get(student_id, course_id, lesson_id)
        if progress is None:
            raise LessonProgressNotFoundError

        progress.completed = False
        progress.completed_at = None
        progress.last_accessed_at = utc_now()

        await self.repository.save(progress)
        logger.info(
            "lesson_marked_incomplete",
            student_id=str(student_id),
            course_id=str(course_id),
            lesson_id=str(lesson_id),
        )

        breakdown = await self.aggregator.try_refresh(course_id, student_id)
        return progress, breakdown

    async def record_lesson_access(
        self,
        student_id: UUID,
        course_id: UUID,
        lesson_id: UUID,
        module_id: UUID | None = None,
        time_spent: int = 0,
    ) -> LessonProgress:
        """Track an access to a lesson and accumulate time spent."""
        await self._require_access(student_id, course_id, lesson_id)

        progress = await self.repository.get(student_id, course_id, lesson_id)
        if progress is None:
            progress = LessonProgress(
                student_id=student_id,
                course_id=course_id,
                lesson_id=lesson_id,
                module_id=module_id,
            )

        progress.module_id = module_id or progress.module_id
        progress.time_spent += max(time_spent, 0)
        progress.last_accessed_at = utc_now()

        await self.repository.save(progress)
        return progress

    async def get_course_lesson_progress(
        self, student_id: UUID, course_id: UUID
    ) -> list[LessonProgress]:
        return await self.repository.list_by_course(student_id, course_id)
