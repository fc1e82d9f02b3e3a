# ruff: noqa: S608 - All CQL queries use keyspace from config, not user input
"""Persistence for courses and lessons.

``CourseRepository`` / ``LessonRepository`` are the store interfaces the
services depend on; Cassandra and in-memory implementations follow.
Counter changes are compare-and-set writes (``IF <counter> = <read value>``)
so two concurrent lesson creations can never lose an increment.
"""

from typing import TYPE_CHECKING, Any, Protocol
from uuid import UUID

import structlog

from learnhub.core.exceptions import TransactionConflictError
from learnhub.utils import utc_now

from .models import COUNTER_FIELDS, FLAG_FIELDS, Course, Lesson


if TYPE_CHECKING:
    from cassandra.cluster import Session

    from learnhub.core.database.memory import MemoryDatabase


logger = structlog.get_logger(__name__)

DEFAULT_CAS_ATTEMPTS = 5


class CourseRepository(Protocol):
    """Course store."""

    async def get(self, course_id: UUID) -> Course | None: ...

    async def insert(self, course: Course) -> None: ...

    async def update_counter(
        self, course_id: UUID, field: str, delta: int
    ) -> int | None: ...

    async def set_stats(self, course_id: UUID, values: dict[str, Any]) -> None: ...


class LessonRepository(Protocol):
    """Lesson store."""

    async def get(self, course_id: UUID, lesson_id: UUID) -> Lesson | None: ...

    async def insert(self, lesson: Lesson) -> None: ...

    async def delete(self, course_id: UUID, lesson_id: UUID) -> None: ...

    async def list_by_course(self, course_id: UUID) -> list[Lesson]: ...

    async def count_by_course(self, course_id: UUID) -> int: ...


def _check_stat_fields(fields: set[str] | frozenset[str]) -> None:
    unknown = set(fields) - COUNTER_FIELDS - FLAG_FIELDS
    if unknown:
        msg = f"Unknown course stat fields: {sorted(unknown)}"
        raise ValueError(msg)


# ==============================================================================
# Cassandra
# ==============================================================================


class CassandraCourseRepository:
    """Course store backed by the ``courses`` table."""

    def __init__(
        self,
        session: "Session",
        keyspace: str,
        max_cas_attempts: int = DEFAULT_CAS_ATTEMPTS,
    ):
        self.session = session
        self.keyspace = keyspace
        self.max_cas_attempts = max_cas_attempts
        self._set_stats_statements: dict[tuple[str, ...], Any] = {}
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for efficient execution."""
        self._get_course = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.courses WHERE course_id = ?
        """)

        self._insert_course = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.courses
            (course_id, title, description, instructor_id, status,
             total_lessons, quiz_count, total_quiz_questions,
             short_question_count, total_short_questions,
             has_quiz, has_short_question, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """)

        # One compare-and-set statement per counter column
        self._cas_counter = {
            field: self.session.prepare(f"""
                UPDATE {self.keyspace}.courses
                SET {field} = ?, updated_at = ?
                WHERE course_id = ?
                IF {field} = ?
            """)
            for field in sorted(COUNTER_FIELDS)
        }

    async def get(self, course_id: UUID) -> Course | None:
        result = await self.session.aexecute(self._get_course, [course_id])
        row = result.one()
        return Course.from_row(row) if row else None

    async def insert(self, course: Course) -> None:
        stats = course.stats
        await self.session.aexecute(
            self._insert_course,
            [
                course.course_id,
                course.title,
                course.description,
                course.instructor_id,
                course.status,
                stats.total_lessons,
                stats.quiz_count,
                stats.total_quiz_questions,
                stats.short_question_count,
                stats.total_short_questions,
                stats.has_quiz,
                stats.has_short_question,
                course.created_at,
                course.updated_at,
            ],
        )

    async def update_counter(
        self, course_id: UUID, field: str, delta: int
    ) -> int | None:
        """Atomically add ``delta`` to a counter column (floored at zero).

        Returns:
            The new value, or None if the course does not exist.

        Raises:
            TransactionConflictError: If the compare-and-set kept losing.
        """
        if field not in COUNTER_FIELDS:
            msg = f"Not a course counter: {field}"
            raise ValueError(msg)

        for attempt in range(1, self.max_cas_attempts + 1):
            result = await self.session.aexecute(self._get_course, [course_id])
            row = result.one()
            if row is None:
                return None

            current = getattr(row, field)
            new_value = max((current or 0) + delta, 0)
            applied = await self.session.aexecute(
                self._cas_counter[field],
                [new_value, utc_now(), course_id, current],
            )
            if applied.was_applied:
                return new_value

            logger.debug(
                "course_counter_cas_retry",
                course_id=str(course_id),
                field=field,
                attempt=attempt,
            )

        raise TransactionConflictError

    async def set_stats(self, course_id: UUID, values: dict[str, Any]) -> None:
        """Overwrite recomputed stat columns."""
        _check_stat_fields(frozenset(values))
        fields = tuple(sorted(values))
        statement = self._set_stats_statements.get(fields)
        if statement is None:
            assignments = ", ".join(f"{field} = ?" for field in fields)
            statement = self.session.prepare(f"""
                UPDATE {self.keyspace}.courses
                SET {assignments}, updated_at = ?
                WHERE course_id = ?
            """)
            self._set_stats_statements[fields] = statement

        await self.session.aexecute(
            statement, [*(values[field] for field in fields), utc_now(), course_id]
        )


class CassandraLessonRepository:
    """Lesson store backed by the ``lessons`` table."""

    def __init__(self, session: "Session", keyspace: str):
        self.session = session
        self.keyspace = keyspace
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for efficient execution."""
        self._get_lesson = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.lessons
            WHERE course_id = ? AND lesson_id = ?
        """)

        self._list_lessons = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.lessons WHERE course_id = ?
        """)

        self._count_lessons = self.session.prepare(f"""
            SELECT COUNT(*) AS total FROM {self.keyspace}.lessons WHERE course_id = ?
        """)

        self._insert_lesson = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.lessons
            (course_id, lesson_id, module_id, title, position, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
        """)

        self._delete_lesson = self.session.prepare(f"""
            DELETE FROM {self.keyspace}.lessons
            WHERE course_id = ? AND lesson_id = ?
        """)

    async def get(self, course_id: UUID, lesson_id: UUID) -> Lesson | None:
        result = await self.session.aexecute(self._get_lesson, [course_id, lesson_id])
        row = result.one()
        return Lesson.from_row(row) if row else None

    async def insert(self, lesson: Lesson) -> None:
        await self.session.aexecute(
            self._insert_lesson,
            [
                lesson.course_id,
                lesson.lesson_id,
                lesson.module_id,
                lesson.title,
                lesson.position,
                lesson.created_at,
            ],
        )

    async def delete(self, course_id: UUID, lesson_id: UUID) -> None:
        await self.session.aexecute(self._delete_lesson, [course_id, lesson_id])

    async def list_by_course(self, course_id: UUID) -> list[Lesson]:
        rows = await self.session.aexecute(self._list_lessons, [course_id])
        lessons = [Lesson.from_row(row) for row in rows]
        return sorted(lessons, key=lambda lesson: lesson.position)

    async def count_by_course(self, course_id: UUID) -> int:
        result = await self.session.aexecute(self._count_lessons, [course_id])
        row = result.one()
        return row.total if row else 0


# ==============================================================================
# In-memory
# ==============================================================================


class MemoryCourseRepository:
    """Course store on ``MemoryDatabase``."""

    TABLE = "courses"

    def __init__(self, db: "MemoryDatabase"):
        self.db = db

    async def get(self, course_id: UUID) -> Course | None:
        return self.db.get(self.TABLE, course_id)

    async def insert(self, course: Course) -> None:
        self.db.put(self.TABLE, course.course_id, course)

    async def update_counter(
        self, course_id: UUID, field: str, delta: int
    ) -> int | None:
        if field not in COUNTER_FIELDS:
            msg = f"Not a course counter: {field}"
            raise ValueError(msg)

        async with self.db.lock:
            course = self.db.get(self.TABLE, course_id)
            if course is None:
                return None
            new_value = max(getattr(course.stats, field) + delta, 0)
            setattr(course.stats, field, new_value)
            course.updated_at = utc_now()
            self.db.put(self.TABLE, course_id, course)
            return new_value

    async def set_stats(self, course_id: UUID, values: dict[str, Any]) -> None:
        _check_stat_fields(frozenset(values))
        async with self.db.lock:
            course = self.db.get(self.TABLE, course_id)
            if course is None:
                return
            for field, value in values.items():
                setattr(course.stats, field, value)
            course.updated_at = utc_now()
            self.db.put(self.TABLE, course_id, course)


class MemoryLessonRepository:
    """Lesson store on ``MemoryDatabase``."""

    TABLE = "lessons"

    def __init__(self, db: "MemoryDatabase"):
        self.db = db

    async def get(self, course_id: UUID, lesson_id: UUID) -> Lesson | None:
        return self.db.get(self.TABLE, (course_id, lesson_id))

    async def insert(self, lesson: Lesson) -> None:
        self.db.put(self.TABLE, (lesson.course_id, lesson.lesson_id), lesson)

    async def delete(self, course_id: UUID, lesson_id: UUID) -> None:
        self.db.delete(self.TABLE, (course_id, lesson_id))

    async def list_by_course(self, course_id: UUID) -> list[Lesson]:
        lessons = [
            lesson for lesson in self.db.scan(self.TABLE) if lesson.course_id == course_id
        ]
        return sorted(lessons, key=lambda lesson: lesson.position)

    async def count_by_course(self, course_id: UUID) -> int:
        return len(await self.list_by_course(course_id))
