# ruff: noqa: S608 - All CQL queries use keyspace from config, not user input
"""Quiz and quiz attempt storage."""

from typing import TYPE_CHECKING, Protocol
from uuid import UUID

from .models import Quiz, QuizAttemptStatus, QuizProgress


if TYPE_CHECKING:
    from cassandra.cluster import Session

    from learnhub.core.database.memory import MemoryDatabase


class QuizRepository(Protocol):
    async def get_by_course(self, course_id: UUID) -> Quiz | None: ...

    async def save(self, quiz: Quiz) -> None: ...

    async def delete(self, course_id: UUID) -> None: ...


class QuizProgressRepository(Protocol):
    async def get(self, course_id: UUID, student_id: UUID) -> QuizProgress | None: ...

    async def save(self, progress: QuizProgress) -> None: ...

    async def finish_attempt(self, progress: QuizProgress) -> bool: ...


# ==============================================================================
# Cassandra
# ==============================================================================


class CassandraQuizRepository:
    def __init__(self, session: "Session", keyspace: str):
        self.session = session
        self.keyspace = keyspace
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for efficient execution."""
        self._get_quiz = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.quizzes WHERE course_id = ?
        """)
        self._upsert_quiz = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.quizzes
            (course_id, quiz_id, title, instructions, questions, is_published,
             time_limit, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """)
        self._delete_quiz = self.session.prepare(f"""
            DELETE FROM {self.keyspace}.quizzes WHERE course_id = ?
        """)

    async def get_by_course(self, course_id: UUID) -> Quiz | None:
        result = await self.session.aexecute(self._get_quiz, [course_id])
        row = result.one()
        return Quiz.from_row(row) if row else None

    async def save(self, quiz: Quiz) -> None:
        await self.session.aexecute(
            self._upsert_quiz,
            [
                quiz.course_id,
                quiz.quiz_id,
                quiz.title,
                quiz.instructions,
                quiz.questions_json(),
                quiz.is_published,
                quiz.time_limit,
                quiz.created_at,
                quiz.updated_at,
            ],
        )

    async def delete(self, course_id: UUID) -> None:
        await self.session.aexecute(self._delete_quiz, [course_id])


class CassandraQuizProgressRepository:
    def __init__(self, session: "Session", keyspace: str):
        self.session = session
        self.keyspace = keyspace
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for efficient execution."""
        self._get_progress = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.quiz_progress
            WHERE course_id = ? AND student_id = ?
        """)
        self._upsert_progress = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.quiz_progress
            (course_id, student_id, quiz_id, score, total_questions, total_points,
             correct_answers, percentage, passed, status, attempt_count,
             max_attempts, answers, started_at, completed_at, time_spent)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """)
        # Only the attempt that is still open may be scored
        self._finish_attempt = self.session.prepare(f"""
            UPDATE {self.keyspace}.quiz_progress
            SET score = ?, correct_answers = ?, percentage = ?, passed = ?,
                status = ?, answers = ?, completed_at = ?, time_spent = ?
            WHERE course_id = ? AND student_id = ?
            IF status = ? AND attempt_count = ?
        """)

    async def get(self, course_id: UUID, student_id: UUID) -> QuizProgress | None:
        result = await self.session.aexecute(self._get_progress, [course_id, student_id])
        row = result.one()
        return QuizProgress.from_row(row) if row else None

    async def save(self, progress: QuizProgress) -> None:
        await self.session.aexecute(
            self._upsert_progress,
            [
                progress.course_id,
                progress.student_id,
                progress.quiz_id,
                progress.score,
                progress.total_questions,
                progress.total_points,
                progress.correct_answers,
                progress.percentage,
                progress.passed,
                progress.status,
                progress.attempt_count,
                progress.max_attempts,
                progress.answers_json(),
                progress.started_at,
                progress.completed_at,
                progress.time_spent,
            ],
        )

    async def finish_attempt(self, progress: QuizProgress) -> bool:
        result = await self.session.aexecute(
            self._finish_attempt,
            [
                progress.score,
                progress.correct_answers,
                progress.percentage,
                progress.passed,
                progress.status,
                progress.answers_json(),
                progress.completed_at,
                progress.time_spent,
                progress.course_id,
                progress.student_id,
                QuizAttemptStatus.IN_PROGRESS.value,
                progress.attempt_count,
            ],
        )
        return result.was_applied


# ==============================================================================
# In-memory
# ==============================================================================


class MemoryQuizRepository:
    TABLE = "quizzes"

    def __init__(self, db: "MemoryDatabase"):
        self.db = db

    async def get_by_course(self, course_id: UUID) -> Quiz | None:
        return self.db.get(self.TABLE, course_id)

    async def save(self, quiz: Quiz) -> None:
        self.db.put(self.TABLE, quiz.course_id, quiz)

    async def delete(self, course_id: UUID) -> None:
        self.db.delete(self.TABLE, course_id)


class MemoryQuizProgressRepository:
    TABLE = "quiz_progress"

    def __init__(self, db: "MemoryDatabase"):
        self.db = db

    async def get(self, course_id: UUID, student_id: UUID) -> QuizProgress | None:
        return self.db.get(self.TABLE, (course_id, student_id))

    async def save(self, progress: QuizProgress) -> None:
        self.db.put(self.TABLE, (progress.course_id, progress.student_id), progress)

    async def finish_attempt(self, progress: QuizProgress) -> bool:
        key = (progress.course_id, progress.student_id)
        async with self.db.lock:
            current = self.db.get(self.TABLE, key)
            if (
                current is None
                or current.status != QuizAttemptStatus.IN_PROGRESS.value
                or current.attempt_count != progress.attempt_count
            ):
                return False
            self.db.put(self.TABLE, key, progress)
            return True
