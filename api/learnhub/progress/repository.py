# ruff: noqa: S608 - All CQL queries use keyspace from config, not user input
"""Lesson progress storage."""

from typing import TYPE_CHECKING, Protocol
from uuid import UUID

from .models import LessonProgress


if TYPE_CHECKING:
    from cassandra.cluster import Session

    from learnhub.core.database.memory import MemoryDatabase


class LessonProgressRepository(Protocol):
    async def get(
        self, student_id: UUID, course_id: UUID, lesson_id: UUID
    ) -> LessonProgress | None: ...

    async def save(self, progress: LessonProgress) -> None: ...

    async def list_by_course(
        self, student_id: UUID, course_id: UUID
    ) -> list[LessonProgress]: ...


class CassandraLessonProgressRepository:
    def __init__(self, session: "Session", keyspace: str):
        self.session = session
        self.keyspace = keyspace
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for efficient execution."""
        self._get_progress = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.lesson_progress
            WHERE student_id = ? AND course_id = ? AND lesson_id = ?
        """)
        self._list_progress = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.lesson_progress
            WHERE student_id = ? AND course_id = ?
        """)
        # INSERT is an upsert: marking the same lesson twice is idempotent
        self._upsert_progress = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.lesson_progress
            (student_id, course_id, lesson_id, module_id, completed,
             completed_at, time_spent, last_accessed_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """)

    async def get(
        self, student_id: UUID, course_id: UUID, lesson_id: UUID
    ) -> LessonProgress | None:
        result = await self.session.aexecute(
            self._get_progress, [student_id, course_id, lesson_id]
        )
        row = result.one()
        return LessonProgress.from_row(row) if row else None

    async def save(self, progress: LessonProgress) -> None:
        await self.session.aexecute(
            self._upsert_progress,
            [
                progress.student_id,
                progress.course_id,
                progress.lesson_id,
                progress.module_id,
                progress.completed,
                progress.completed_at,
                progress.time_spent,
                progress.last_accessed_at,
            ],
        )

    async def list_by_course(
        self, student_id: UUID, course_id: UUID
    ) -> list[LessonProgress]:
        rows = await self.session.aexecute(self._list_progress, [student_id, course_id])
        return [LessonProgress.from_row(row) for row in rows]


class MemoryLessonProgressRepository:
    TABLE = "lesson_progress"

    def __init__(self, db: "MemoryDatabase"):
        self.db = db

    async def get(
        self, student_id: UUID, course_id: UUID, lesson_id: UUID
    ) -> LessonProgress | None:
        return self.db.get(self.TABLE, (student_id, course_id, lesson_id))

    async def save(self, progress: LessonProgress) -> None:
        key = (progress.student_id, progress.course_id, progress.lesson_id)
        self.db.put(self.TABLE, key, progress)

    async def list_by_course(
        self, student_id: UUID, course_id: UUID
    ) -> list[LessonProgress]:
        return [
            p
            for p in self.db.scan(self.TABLE)
            if p.student_id == student_id and p.course_id == course_id
        ]
