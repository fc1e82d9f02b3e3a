"""Course service.

Owns the course record and its denormalized counters:
- ``total_lessons`` moves by exactly one together with each lesson
  create/delete
- quiz and short-question stats are recomputed by an explicit call from the
  quiz/short-question services once their own write has committed
- ``student_count`` is owned by the enrollment ledger and only read here
"""

from typing import TYPE_CHECKING
from uuid import UUID

import structlog

from learnhub.auth.permissions import is_instructor
from learnhub.auth.schemas import AuthenticatedUser
from learnhub.core.exceptions import ForbiddenError, NotFoundError

from .models import Course, CourseStatus, Lesson


if TYPE_CHECKING:
    from learnhub.enrollments.repository import EnrollmentRepository
    from learnhub.quizzes.repository import QuizRepository
    from learnhub.short_questions.repository import ShortQuestionSetRepository

    from .repository import CourseRepository, LessonRepository


logger = structlog.get_logger(__name__)


# ==============================================================================
# Custom Exceptions
# ==============================================================================


class CourseNotFoundError(NotFoundError):
    """Course not found."""

    def __init__(self, message: str = "Course not found"):
        super().__init__(message, "course_not_found")


class LessonNotFoundError(NotFoundError):
    """Lesson not found in the course."""

    def __init__(self, message: str = "Lesson not found"):
        super().__init__(message, "lesson_not_found")


class CourseForbiddenError(ForbiddenError):
    """Caller does not manage the course."""

    def __init__(self, message: str = "Only the course instructor or an admin can do this"):
        super().__init__(message, "course_forbidden")


# ==============================================================================
# Course Service
# ==============================================================================


class CourseService:
    """Service for courses, lessons and course counters."""

    def __init__(
        self,
        course_repository: "CourseRepository",
        lesson_repository: "LessonRepository",
        enrollment_repository: "EnrollmentRepository",
        quiz_repository: "QuizRepository",
        short_question_repository: "ShortQuestionSetRepository",
    ):
        self.courses = course_repository
        self.lessons = lesson_repository
        self.enrollments = enrollment_repository
        self.quizzes = quiz_repository
        self.short_questions = short_question_repository

    # --------------------------------------------------------------------------
    # Courses
    # --------------------------------------------------------------------------

    async def create_course(
        self,
        actor: AuthenticatedUser,
        title: str,
        description: str | None = None,
        instructor_id: UUID | None = None,
        status: CourseStatus = CourseStatus.ACTIVE,
    ) -> Course:
        """Create a course owned by the calling instructor.

        Admins may create a course on behalf of another instructor.
        """
        if actor.is_admin:
            owner_id = instructor_id or actor.id
        elif is_instructor(actor.role):
            owner_id = actor.id
        else:
            raise CourseForbiddenError("Only instructors can create courses")

        course = Course(
            title=title.strip(),
            description=description,
            instructor_id=owner_id,
            status=status.value,
        )
        await self.courses.insert(course)

        logger.info(
            "course_created",
            course_id=str(course.course_id),
            instructor_id=str(owner_id),
        )
        return course

    async def find_by_id(self, course_id: UUID) -> Course | None:
        """Get the course record without the enrolled-student count."""
        return await self.courses.get(course_id)

    async def get_course(self, course_id: UUID) -> Course:
        """Get a course with all of its stats.

        Raises:
            CourseNotFoundError: If the course does not exist
        """
        course = await self.courses.get(course_id)
        if course is None:
            raise CourseNotFoundError
        course.stats.student_count = await self.enrollments.get_student_count(course_id)
        return course

    async def require_manageable(
        self, course_id: UUID, actor: AuthenticatedUser
    ) -> Course:
        """Get the course, checking the actor is its instructor or an admin."""
        course = await self.courses.get(course_id)
        if course is None:
            raise CourseNotFoundError
        if not actor.can_manage(course.instructor_id):
            raise CourseForbiddenError
        return course

    async def update_counter(self, course_id: UUID, field: str, delta: int) -> int:
        """Apply a guarded increment/decrement to a course counter.

        Returns:
            The new counter value (never below zero)
        """
        value = await self.courses.update_counter(course_id, field, delta)
        if value is None:
            raise CourseNotFoundError
        logger.debug(
            "course_counter_updated",
            course_id=str(course_id),
            field=field,
            delta=delta,
            value=value,
        )
        return value

    # --------------------------------------------------------------------------
    # Lessons
    # --------------------------------------------------------------------------

    async def add_lesson(
        self,
        course_id: UUID,
        actor: AuthenticatedUser,
        title: str,
        module_id: UUID | None = None,
        position: int | None = None,
    ) -> Lesson:
        """Create a lesson and bump ``total_lessons``."""
        await self.require_manageable(course_id, actor)

        if position is None:
            position = await self.lessons.count_by_course(course_id)

        lesson = Lesson(
            course_id=course_id,
            title=title.strip(),
            module_id=module_id,
            position=position,
        )
        await self.lessons.insert(lesson)
        try:
            await self.update_counter(course_id, "total_lessons", 1)
        except Exception:
            # The counter lives in another table; undo so both stay in step
            await self.lessons.delete(course_id, lesson.lesson_id)
            logger.warning(
                "lesson_create_reverted",
                course_id=str(course_id),
                lesson_id=str(lesson.lesson_id),
            )
            raise

        logger.info(
            "lesson_created",
            course_id=str(course_id),
            lesson_id=str(lesson.lesson_id),
        )
        return lesson

    async def remove_lesson(
        self, course_id: UUID, lesson_id: UUID, actor: AuthenticatedUser
    ) -> None:
        """Delete a lesson and decrement ``total_lessons``."""
        await self.require_manageable(course_id, actor)

        lesson = await self.lessons.get(course_id, lesson_id)
        if lesson is None:
            raise LessonNotFoundError

        await self.lessons.delete(course_id, lesson_id)
        try:
            await self.update_counter(course_id, "total_lessons", -1)
        except Exception:
            await self.lessons.insert(lesson)
            logger.warning(
                "lesson_delete_reverted",
                course_id=str(course_id),
                lesson_id=str(lesson_id),
            )
            raise

        logger.info(
            "lesson_deleted",
            course_id=str(course_id),
            lesson_id=str(lesson_id),
        )

    async def get_lesson(self, course_id: UUID, lesson_id: UUID) -> Lesson:
        lesson = await self.lessons.get(course_id, lesson_id)
        if lesson is None:
            raise LessonNotFoundError
        return lesson

    async def list_lessons(self, course_id: UUID) -> list[Lesson]:
        return await self.lessons.list_by_course(course_id)

    async def count_total_lessons(self, course_id: UUID) -> int:
        """Number of lessons currently in the course."""
        return await self.lessons.count_by_course(course_id)

    # --------------------------------------------------------------------------
    # Assessment stats
    # --------------------------------------------------------------------------

    async def recompute_quiz_stats(self, course_id: UUID) -> None:
        """Rewrite quiz stats from the course's published quiz."""
        quiz = await self.quizzes.get_by_course(course_id)
        published = quiz is not None and quiz.is_published
        quiz_count = 1 if published else 0
        total_questions = len(quiz.questions) if published else 0

        await self.courses.set_stats(
            course_id,
            {
                "quiz_count": quiz_count,
                "total_quiz_questions": total_questions,
                "has_quiz": quiz_count > 0,
            },
        )
        logger.info(
            "course_quiz_stats_updated",
            course_id=str(course_id),
            quiz_count=quiz_count,
            total_questions=total_questions,
        )

    async def short_question_set_ids(self, course_id: UUID) -> set[UUID]:
        """Ids of the short-answer sets that currently exist in the course."""
        sets = await self.short_questions.list_by_course(course_id)
        return {question_set.set_id for question_set in sets}

    async def recompute_short_question_stats(self, course_id: UUID) -> None:
        """Rewrite short-question stats from the course's published sets."""
        sets = [
            question_set
            for question_set in await self.short_questions.list_by_course(course_id)
            if question_set.is_published
        ]
        total_questions = sum(len(question_set.questions) for question_set in sets)

        await self.courses.set_stats(
            course_id,
            {
                "short_question_count": len(sets),
                "total_short_questions": total_questions,
                "has_short_question": len(sets) > 0,
            },
        )
        logger.info(
            "course_short_question_stats_updated",
            course_id=str(course_id),
            short_question_count=len(sets),
            total_questions=total_questions,
        )
