# ruff: noqa: S608 - All CQL queries use keyspace from config, not user input
"""Short-answer set and attempt storage."""

from typing import TYPE_CHECKING, Protocol
from uuid import UUID

from cassandra.query import BatchStatement

from .models import AWAITING_GRADING, ShortQuestionAttempt, ShortQuestionSet


if TYPE_CHECKING:
    from cassandra.cluster import Session

    from learnhub.core.database.memory import MemoryDatabase


class ShortQuestionSetRepository(Protocol):
    async def get(self, set_id: UUID) -> ShortQuestionSet | None: ...

    async def list_by_course(self, course_id: UUID) -> list[ShortQuestionSet]: ...

    async def save(self, question_set: ShortQuestionSet) -> None: ...

    async def delete(self, question_set: ShortQuestionSet) -> None: ...


class ShortQuestionAttemptRepository(Protocol):
    async def get(self, attempt_id: UUID) -> ShortQuestionAttempt | None: ...

    async def list_for_student(
        self, course_id: UUID, student_id: UUID
    ) -> list[ShortQuestionAttempt]: ...

    async def list_pending(self, course_id: UUID) -> list[ShortQuestionAttempt]: ...

    async def insert(self, attempt: ShortQuestionAttempt) -> bool: ...

    async def update(
        self, attempt: ShortQuestionAttempt, expected_status: str
    ) -> bool: ...

    async def delete_for_set(
        self, course_id: UUID, student_id: UUID, set_id: UUID
    ) -> int: ...


# ==============================================================================
# Cassandra
# ==============================================================================


class CassandraShortQuestionSetRepository:
    def __init__(self, session: "Session", keyspace: str):
        self.session = session
        self.keyspace = keyspace
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for efficient execution."""
        ks = self.keyspace
        self._get_set = self.session.prepare(f"""
            SELECT * FROM {ks}.short_question_sets WHERE course_id = ? AND set_id = ?
        """)
        self._get_set_course = self.session.prepare(f"""
            SELECT course_id FROM {ks}.short_question_sets_by_id WHERE set_id = ?
        """)
        self._list_sets = self.session.prepare(f"""
            SELECT * FROM {ks}.short_question_sets WHERE course_id = ?
        """)
        self._upsert_set = self.session.prepare(f"""
            INSERT INTO {ks}.short_question_sets
            (course_id, set_id, title, description, instructions, questions,
             passing_score, allow_retake, is_published, time_limit, created_at,
             updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """)
        self._insert_set_lookup = self.session.prepare(f"""
            INSERT INTO {ks}.short_question_sets_by_id (set_id, course_id)
            VALUES (?, ?)
        """)
        self._delete_set = self.session.prepare(f"""
            DELETE FROM {ks}.short_question_sets WHERE course_id = ? AND set_id = ?
        """)
        self._delete_set_lookup = self.session.prepare(f"""
            DELETE FROM {ks}.short_question_sets_by_id WHERE set_id = ?
        """)

    async def get(self, set_id: UUID) -> ShortQuestionSet | None:
        result = await self.session.aexecute(self._get_set_course, [set_id])
        lookup = result.one()
        if lookup is None:
            return None
        result = await self.session.aexecute(self._get_set, [lookup.course_id, set_id])
        row = result.one()
        return ShortQuestionSet.from_row(row) if row else None

    async def list_by_course(self, course_id: UUID) -> list[ShortQuestionSet]:
        rows = await self.session.aexecute(self._list_sets, [course_id])
        return [ShortQuestionSet.from_row(row) for row in rows]

    async def save(self, question_set: ShortQuestionSet) -> None:
        await self.session.aexecute(
            self._upsert_set,
            [
                question_set.course_id,
                question_set.set_id,
                question_set.title,
                question_set.description,
                question_set.instructions,
                question_set.questions_json(),
                question_set.passing_score,
                question_set.allow_retake,
                question_set.is_published,
                question_set.time_limit,
                question_set.created_at,
                question_set.updated_at,
            ],
        )
        await self.session.aexecute(
            self._insert_set_lookup, [question_set.set_id, question_set.course_id]
        )

    async def delete(self, question_set: ShortQuestionSet) -> None:
        await self.session.aexecute(
            self._delete_set, [question_set.course_id, question_set.set_id]
        )
        await self.session.aexecute(self._delete_set_lookup, [question_set.set_id])


class CassandraShortQuestionAttemptRepository:
    def __init__(self, session: "Session", keyspace: str):
        self.session = session
        self.keyspace = keyspace
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for efficient execution."""
        ks = self.keyspace
        self._get_attempt = self.session.prepare(f"""
            SELECT * FROM {ks}.short_question_attempts
            WHERE course_id = ? AND student_id = ? AND attempt_id = ?
        """)
        self._get_attempt_lookup = self.session.prepare(f"""
            SELECT * FROM {ks}.short_question_attempts_by_id WHERE attempt_id = ?
        """)
        self._list_for_student = self.session.prepare(f"""
            SELECT * FROM {ks}.short_question_attempts
            WHERE course_id = ? AND student_id = ?
        """)
        self._list_pending = self.session.prepare(f"""
            SELECT * FROM {ks}.short_question_pending WHERE course_id = ?
        """)
        self._insert_attempt = self.session.prepare(f"""
            INSERT INTO {ks}.short_question_attempts
            (course_id, student_id, attempt_id, set_id, attempt_number, status,
             score, max_score, percentage, passed, answers, overall_feedback,
             graded_by, started_at, submitted_at, graded_at, time_spent)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """)
        self._insert_attempt_lookup = self.session.prepare(f"""
            INSERT INTO {ks}.short_question_attempts_by_id
            (attempt_id, course_id, student_id)
            VALUES (?, ?, ?)
        """)
        self._update_attempt = self.session.prepare(f"""
            UPDATE {ks}.short_question_attempts
            SET status = ?, score = ?, max_score = ?, percentage = ?, passed = ?,
                answers = ?, overall_feedback = ?, graded_by = ?,
                submitted_at = ?, graded_at = ?, time_spent = ?
            WHERE course_id = ? AND student_id = ? AND attempt_id = ?
            IF status = ?
        """)
        self._insert_pending = self.session.prepare(f"""
            INSERT INTO {ks}.short_question_pending
            (course_id, attempt_id, student_id, set_id, submitted_at)
            VALUES (?, ?, ?, ?, ?)
        """)
        self._delete_pending = self.session.prepare(f"""
            DELETE FROM {ks}.short_question_pending
            WHERE course_id = ? AND attempt_id = ?
        """)
        self._claim_slot = self.session.prepare(f"""
            INSERT INTO {ks}.short_question_attempt_slots
            (course_id, student_id, set_id, attempt_number, attempt_id)
            VALUES (?, ?, ?, ?, ?)
            IF NOT EXISTS
        """)
        self._delete_slots = self.session.prepare(f"""
            DELETE FROM {ks}.short_question_attempt_slots
            WHERE course_id = ? AND student_id = ? AND set_id = ?
        """)
        self._delete_attempt = self.session.prepare(f"""
            DELETE FROM {ks}.short_question_attempts
            WHERE course_id = ? AND student_id = ? AND attempt_id = ?
        """)
        self._delete_attempt_lookup = self.session.prepare(f"""
            DELETE FROM {ks}.short_question_attempts_by_id WHERE attempt_id = ?
        """)

    async def _fetch(
        self, course_id: UUID, student_id: UUID, attempt_id: UUID
    ) -> ShortQuestionAttempt | None:
        result = await self.session.aexecute(
            self._get_attempt, [course_id, student_id, attempt_id]
        )
        row = result.one()
        return ShortQuestionAttempt.from_row(row) if row else None

    async def get(self, attempt_id: UUID) -> ShortQuestionAttempt | None:
        result = await self.session.aexecute(self._get_attempt_lookup, [attempt_id])
        lookup = result.one()
        if lookup is None:
            return None
        return await self._fetch(lookup.course_id, lookup.student_id, attempt_id)

    async def list_for_student(
        self, course_id: UUID, student_id: UUID
    ) -> list[ShortQuestionAttempt]:
        rows = await self.session.aexecute(
            self._list_for_student, [course_id, student_id]
        )
        return [ShortQuestionAttempt.from_row(row) for row in rows]

    async def list_pending(self, course_id: UUID) -> list[ShortQuestionAttempt]:
        rows = await self.session.aexecute(self._list_pending, [course_id])
        attempts = []
        for row in rows:
            attempt = await self._fetch(course_id, row.student_id, row.attempt_id)
            if attempt is not None and attempt.status in AWAITING_GRADING:
                attempts.append(attempt)
        return attempts

    async def insert(self, attempt: ShortQuestionAttempt) -> bool:
        """Store a new attempt unless its attempt number is already taken.

        Two concurrent starts of the same set compute the same attempt
        number; only the one that claims the slot writes its attempt.
        """
        claimed = await self.session.aexecute(
            self._claim_slot,
            [
                attempt.course_id,
                attempt.student_id,
                attempt.set_id,
                attempt.attempt_number,
                attempt.attempt_id,
            ],
        )
        if not claimed.was_applied:
            return False

        await self.session.aexecute(
            self._insert_attempt,
            [
                attempt.course_id,
                attempt.student_id,
                attempt.attempt_id,
                attempt.set_id,
                attempt.attempt_number,
                attempt.status,
                attempt.score,
                attempt.max_score,
                attempt.percentage,
                attempt.passed,
                attempt.answers_json(),
                attempt.overall_feedback,
                attempt.graded_by,
                attempt.started_at,
                attempt.submitted_at,
                attempt.graded_at,
                attempt.time_spent,
            ],
        )
        await self.session.aexecute(
            self._insert_attempt_lookup,
            [attempt.attempt_id, attempt.course_id, attempt.student_id],
        )
        return True

    async def update(self, attempt: ShortQuestionAttempt, expected_status: str) -> bool:
        """Write the attempt if its stored status is still ``expected_status``."""
        result = await self.session.aexecute(
            self._update_attempt,
            [
                attempt.status,
                attempt.score,
                attempt.max_score,
                attempt.percentage,
                attempt.passed,
                attempt.answers_json(),
                attempt.overall_feedback,
                attempt.graded_by,
                attempt.submitted_at,
                attempt.graded_at,
                attempt.time_spent,
                attempt.course_id,
                attempt.student_id,
                attempt.attempt_id,
                expected_status,
            ],
        )
        if not result.was_applied:
            return False

        if attempt.status in AWAITING_GRADING:
            await self.session.aexecute(
                self._insert_pending,
                [
                    attempt.course_id,
                    attempt.attempt_id,
                    attempt.student_id,
                    attempt.set_id,
                    attempt.submitted_at,
                ],
            )
        else:
            await self.session.aexecute(
                self._delete_pending, [attempt.course_id, attempt.attempt_id]
            )
        return True

    async def delete_for_set(
        self, course_id: UUID, student_id: UUID, set_id: UUID
    ) -> int:
        """Delete a student's attempts of one set with their lookup rows.

        Returns:
            Number of attempts deleted
        """
        attempts = [
            attempt
            for attempt in await self.list_for_student(course_id, student_id)
            if attempt.set_id == set_id
        ]
        if not attempts:
            return 0

        batch = BatchStatement()
        for attempt in attempts:
            batch.add(
                self._delete_attempt, [course_id, student_id, attempt.attempt_id]
            )
            batch.add(self._delete_attempt_lookup, [attempt.attempt_id])
            batch.add(self._delete_pending, [course_id, attempt.attempt_id])
        batch.add(self._delete_slots, [course_id, student_id, set_id])
        await self.session.aexecute(batch)
        return len(attempts)


# ==============================================================================
# In-memory
# ==============================================================================


class MemoryShortQuestionSetRepository:
    TABLE = "short_question_sets"

    def __init__(self, db: "MemoryDatabase"):
        self.db = db

    async def get(self, set_id: UUID) -> ShortQuestionSet | None:
        return self.db.get(self.TABLE, set_id)

    async def list_by_course(self, course_id: UUID) -> list[ShortQuestionSet]:
        return [s for s in self.db.scan(self.TABLE) if s.course_id == course_id]

    async def save(self, question_set: ShortQuestionSet) -> None:
        self.db.put(self.TABLE, question_set.set_id, question_set)

    async def delete(self, question_set: ShortQuestionSet) -> None:
        self.db.delete(self.TABLE, question_set.set_id)


class MemoryShortQuestionAttemptRepository:
    TABLE = "short_question_attempts"

    def __init__(self, db: "MemoryDatabase"):
        self.db = db

    async def get(self, attempt_id: UUID) -> ShortQuestionAttempt | None:
        return self.db.get(self.TABLE, attempt_id)

    async def list_for_student(
        self, course_id: UUID, student_id: UUID
    ) -> list[ShortQuestionAttempt]:
        return [
            a
            for a in self.db.scan(self.TABLE)
            if a.course_id == course_id and a.student_id == student_id
        ]

    async def list_pending(self, course_id: UUID) -> list[ShortQuestionAttempt]:
        return [
            a
            for a in self.db.scan(self.TABLE)
            if a.course_id == course_id and a.status in AWAITING_GRADING
        ]

    def _of_set(
        self, course_id: UUID, student_id: UUID, set_id: UUID
    ) -> list[ShortQuestionAttempt]:
        return [
            a
            for a in self.db.scan(self.TABLE)
            if a.course_id == course_id
            and a.student_id == student_id
            and a.set_id == set_id
        ]

    async def insert(self, attempt: ShortQuestionAttempt) -> bool:
        async with self.db.lock:
            taken = any(
                a.attempt_number == attempt.attempt_number
                for a in self._of_set(
                    attempt.course_id, attempt.student_id, attempt.set_id
                )
            )
            if taken:
                return False
            self.db.put(self.TABLE, attempt.attempt_id, attempt)
            return True

    async def update(self, attempt: ShortQuestionAttempt, expected_status: str) -> bool:
        async with self.db.lock:
            current = self.db.get(self.TABLE, attempt.attempt_id)
            if current is None or current.status != expected_status:
                return False
            self.db.put(self.TABLE, attempt.attempt_id, attempt)
            return True

    async def delete_for_set(
        self, course_id: UUID, student_id: UUID, set_id: UUID
    ) -> int:
        async with self.db.lock:
            attempts = self._of_set(course_id, student_id, set_id)
            for attempt in attempts:
                self.db.delete(self.TABLE, attempt.attempt_id)
            return len(attempts)
