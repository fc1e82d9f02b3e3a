# ruff: noqa: S608 - All CQL queries use keyspace from config, not user input
"""Persistence for the enrollment ledger.

Every write that the ledger's invariants depend on is guarded: the
expected state travels with the write and the store reports whether it was
applied. Writes that also move the course's approved-student counter commit
the row change and the counter change together or not at all.
"""

from datetime import datetime
from typing import TYPE_CHECKING, Any, Protocol
from uuid import UUID

import structlog
from cassandra.query import BatchStatement

from learnhub.core.exceptions import TransactionConflictError
from learnhub.utils import utc_now

from .models import Enrollment, EnrollmentStatus


if TYPE_CHECKING:
    from cassandra.cluster import Session

    from learnhub.core.database.memory import MemoryDatabase


logger = structlog.get_logger(__name__)

DEFAULT_MAX_ATTEMPTS = 5

# Columns a status transition may set besides ``status``
TRANSITION_FIELDS = frozenset({"approved_at", "cancelled_at"})


class EnrollmentRepository(Protocol):
    """Enrollment store used by the ledger."""

    async def get(self, enrollment_id: UUID) -> Enrollment | None: ...

    async def find(self, course_id: UUID, student_id: UUID) -> Enrollment | None: ...

    async def list_by_course(self, course_id: UUID) -> list[Enrollment]: ...

    async def list_by_student(self, student_id: UUID) -> list[Enrollment]: ...

    async def get_student_count(self, course_id: UUID) -> int: ...

    async def create(self, enrollment: Enrollment) -> bool: ...

    async def replace_cancelled(
        self, previous: Enrollment, enrollment: Enrollment
    ) -> bool: ...

    async def transition(
        self,
        enrollment: Enrollment,
        new_status: EnrollmentStatus,
        changes: dict[str, Any],
        counter_delta: int,
    ) -> bool: ...

    async def delete(self, enrollment: Enrollment, counter_delta: int) -> bool: ...

    async def set_progress(
        self, enrollment: Enrollment, progress: int, at: datetime
    ) -> bool: ...

    async def mark_graduated(self, enrollment: Enrollment, at: datetime) -> bool: ...


def _check_transition_fields(changes: dict[str, Any]) -> tuple[str, ...]:
    unknown = set(changes) - TRANSITION_FIELDS
    if unknown:
        msg = f"Fields not settable by a transition: {sorted(unknown)}"
        raise ValueError(msg)
    return tuple(sorted(changes))


# ==============================================================================
# Cassandra
# ==============================================================================


class CassandraEnrollmentRepository:
    """Enrollment store on Cassandra lightweight transactions.

    ``enrollments`` is partitioned by course, and ``student_count`` is a
    static column of that partition. A status change plus its counter change
    is a conditional batch over the one partition, which Cassandra applies
    atomically and in isolation: either both conditions hold and both writes
    land, or nothing is written.
    """

    def __init__(
        self,
        session: "Session",
        keyspace: str,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ):
        self.session = session
        self.keyspace = keyspace
        self.max_attempts = max_attempts
        self._transition_statements: dict[tuple[str, ...], Any] = {}
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for efficient execution."""
        ks = self.keyspace

        # Reads
        self._get_row = self.session.prepare(f"""
            SELECT * FROM {ks}.enrollments WHERE course_id = ? AND student_id = ?
        """)
        self._list_by_course = self.session.prepare(f"""
            SELECT * FROM {ks}.enrollments WHERE course_id = ?
        """)
        self._get_student_count = self.session.prepare(f"""
            SELECT student_count FROM {ks}.enrollments WHERE course_id = ? LIMIT 1
        """)
        self._get_by_id = self.session.prepare(f"""
            SELECT * FROM {ks}.enrollments_by_id WHERE enrollment_id = ?
        """)
        self._list_by_student = self.session.prepare(f"""
            SELECT * FROM {ks}.enrollments_by_student WHERE student_id = ?
        """)

        # Guarded writes
        self._insert_if_not_exists = self.session.prepare(f"""
            INSERT INTO {ks}.enrollments
            (course_id, student_id, enrollment_id, status, progress, completed,
             instructor_approved, enrolled_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            IF NOT EXISTS
        """)
        self._replace_cancelled = self.session.prepare(f"""
            UPDATE {ks}.enrollments
            SET enrollment_id = ?, status = ?, progress = 0, completed = false,
                instructor_approved = false, enrolled_at = ?, approved_at = null,
                cancelled_at = null, graduated_at = null, last_activity_at = null
            WHERE course_id = ? AND student_id = ?
            IF enrollment_id = ? AND status = ?
        """)
        self._delete_row = self.session.prepare(f"""
            DELETE FROM {ks}.enrollments
            WHERE course_id = ? AND student_id = ?
            IF enrollment_id = ? AND status = ?
        """)
        self._cas_student_count = self.session.prepare(f"""
            UPDATE {ks}.enrollments SET student_count = ?
            WHERE course_id = ?
            IF student_count = ?
        """)
        self._set_progress = self.session.prepare(f"""
            UPDATE {ks}.enrollments SET progress = ?, last_activity_at = ?
            WHERE course_id = ? AND student_id = ?
            IF enrollment_id = ? AND completed = false
        """)
        self._mark_graduated = self.session.prepare(f"""
            UPDATE {ks}.enrollments
            SET completed = true, instructor_approved = true, graduated_at = ?
            WHERE course_id = ? AND student_id = ?
            IF enrollment_id = ? AND status = ? AND progress = 100
               AND completed = false
        """)

        # Lookup and history tables
        self._insert_by_id = self.session.prepare(f"""
            INSERT INTO {ks}.enrollments_by_id (enrollment_id, course_id, student_id)
            VALUES (?, ?, ?)
        """)
        self._delete_by_id = self.session.prepare(f"""
            DELETE FROM {ks}.enrollments_by_id WHERE enrollment_id = ?
        """)
        self._insert_by_student = self.session.prepare(f"""
            INSERT INTO {ks}.enrollments_by_student
            (student_id, course_id, enrollment_id, enrolled_at)
            VALUES (?, ?, ?, ?)
        """)
        self._delete_by_student = self.session.prepare(f"""
            DELETE FROM {ks}.enrollments_by_student
            WHERE student_id = ? AND course_id = ?
        """)
        self._insert_history = self.session.prepare(f"""
            INSERT INTO {ks}.enrollment_history
            (course_id, student_id, enrollment_id, status, progress, enrolled_at,
             approved_at, cancelled_at, archived_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """)

    def _transition_statement(self, fields: tuple[str, ...]) -> Any:
        statement = self._transition_statements.get(fields)
        if statement is None:
            assignments = "".join(f", {field} = ?" for field in fields)
            statement = self.session.prepare(f"""
                UPDATE {self.keyspace}.enrollments
                SET status = ?{assignments}
                WHERE course_id = ? AND student_id = ?
                IF enrollment_id = ? AND status = ?
            """)
            self._transition_statements[fields] = statement
        return statement

    # --------------------------------------------------------------------------
    # Reads
    # --------------------------------------------------------------------------

    async def _read_row(self, course_id: UUID, student_id: UUID) -> Any:
        result = await self.session.aexecute(self._get_row, [course_id, student_id])
        return result.one()

    async def find(self, course_id: UUID, student_id: UUID) -> Enrollment | None:
        row = await self._read_row(course_id, student_id)
        if row is None or row.enrollment_id is None:
            return None
        return Enrollment.from_row(row)

    async def get(self, enrollment_id: UUID) -> Enrollment | None:
        result = await self.session.aexecute(self._get_by_id, [enrollment_id])
        lookup = result.one()
        if lookup is None:
            return None

        enrollment = await self.find(lookup.course_id, lookup.student_id)
        # The pair may have been re-enrolled under a new id
        if enrollment is None or enrollment.enrollment_id != enrollment_id:
            return None
        return enrollment

    async def list_by_course(self, course_id: UUID) -> list[Enrollment]:
        rows = await self.session.aexecute(self._list_by_course, [course_id])
        # A partition holding only the static counter yields a row without student
        return [
            Enrollment.from_row(row)
            for row in rows
            if row.student_id is not None and row.enrollment_id is not None
        ]

    async def list_by_student(self, student_id: UUID) -> list[Enrollment]:
        rows = await self.session.aexecute(self._list_by_student, [student_id])
        enrollments = []
        for row in rows:
            enrollment = await self.find(row.course_id, student_id)
            if enrollment is not None:
                enrollments.append(enrollment)
        return enrollments

    async def _read_student_count(self, course_id: UUID) -> int | None:
        result = await self.session.aexecute(self._get_student_count, [course_id])
        row = result.one()
        return row.student_count if row else None

    async def get_student_count(self, course_id: UUID) -> int:
        return await self._read_student_count(course_id) or 0

    # --------------------------------------------------------------------------
    # Guarded writes
    # --------------------------------------------------------------------------

    async def _write_lookups(self, enrollment: Enrollment) -> None:
        await self.session.aexecute(
            self._insert_by_id,
            [enrollment.enrollment_id, enrollment.course_id, enrollment.student_id],
        )
        await self.session.aexecute(
            self._insert_by_student,
            [
                enrollment.student_id,
                enrollment.course_id,
                enrollment.enrollment_id,
                enrollment.enrolled_at,
            ],
        )

    async def create(self, enrollment: Enrollment) -> bool:
        """Insert the first record of a (course, student) pair."""
        result = await self.session.aexecute(
            self._insert_if_not_exists,
            [
                enrollment.course_id,
                enrollment.student_id,
                enrollment.enrollment_id,
                enrollment.status,
                enrollment.progress,
                enrollment.completed,
                enrollment.instructor_approved,
                enrollment.enrolled_at,
            ],
        )
        if not result.was_applied:
            return False

        await self._write_lookups(enrollment)
        return True

    async def replace_cancelled(
        self, previous: Enrollment, enrollment: Enrollment
    ) -> bool:
        """Archive a cancelled record and reuse its slot for a new request."""
        await self.session.aexecute(
            self._insert_history,
            [
                previous.course_id,
                previous.student_id,
                previous.enrollment_id,
                previous.status,
                previous.progress,
                previous.enrolled_at,
                previous.approved_at,
                previous.cancelled_at,
                utc_now(),
            ],
        )

        result = await self.session.aexecute(
            self._replace_cancelled,
            [
                enrollment.enrollment_id,
                enrollment.status,
                enrollment.enrolled_at,
                enrollment.course_id,
                enrollment.student_id,
                previous.enrollment_id,
                EnrollmentStatus.CANCELLED.value,
            ],
        )
        if not result.was_applied:
            return False

        await self.session.aexecute(self._delete_by_id, [previous.enrollment_id])
        await self._write_lookups(enrollment)
        return True

    async def _guarded_write(
        self,
        enrollment: Enrollment,
        statement: Any,
        params: list[Any],
        counter_delta: int,
    ) -> bool:
        """Run a row write guarded on the enrollment's current state.

        With a non-zero ``counter_delta`` the write is batched with a
        compare-and-set of the partition's ``student_count``. When only the
        counter condition failed (another enrollment of the course moved it),
        the whole transaction is attempted again with the fresh count.
        """
        if counter_delta == 0:
            result = await self.session.aexecute(statement, params)
            return result.was_applied

        for attempt in range(1, self.max_attempts + 1):
            current = await self._read_student_count(enrollment.course_id)
            new_count = max((current or 0) + counter_delta, 0)

            batch = BatchStatement()
            batch.add(statement, params)
            batch.add(
                self._cas_student_count, [new_count, enrollment.course_id, current]
            )
            result = await self.session.aexecute(batch)
            if result.was_applied:
                return True

            row = await self._read_row(enrollment.course_id, enrollment.student_id)
            if (
                row is None
                or row.enrollment_id != enrollment.enrollment_id
                or row.status != enrollment.status
            ):
                return False

            logger.debug(
                "enrollment_transaction_retry",
                enrollment_id=str(enrollment.enrollment_id),
                course_id=str(enrollment.course_id),
                attempt=attempt,
            )

        logger.warning(
            "enrollment_transaction_conflict",
            enrollment_id=str(enrollment.enrollment_id),
            course_id=str(enrollment.course_id),
            attempts=self.max_attempts,
        )
        raise TransactionConflictError

    async def transition(
        self,
        enrollment: Enrollment,
        new_status: EnrollmentStatus,
        changes: dict[str, Any],
        counter_delta: int,
    ) -> bool:
        """Move the record from its current status to ``new_status``."""
        fields = _check_transition_fields(changes)
        statement = self._transition_statement(fields)
        params = [
            new_status.value,
            *(changes[field] for field in fields),
            enrollment.course_id,
            enrollment.student_id,
            enrollment.enrollment_id,
            enrollment.status,
        ]
        return await self._guarded_write(enrollment, statement, params, counter_delta)

    async def delete(self, enrollment: Enrollment, counter_delta: int) -> bool:
        """Hard delete the record if it is still in the state that was read."""
        params = [
            enrollment.course_id,
            enrollment.student_id,
            enrollment.enrollment_id,
            enrollment.status,
        ]
        applied = await self._guarded_write(
            enrollment, self._delete_row, params, counter_delta
        )
        if not applied:
            return False

        await self.session.aexecute(self._delete_by_id, [enrollment.enrollment_id])
        await self.session.aexecute(
            self._delete_by_student, [enrollment.student_id, enrollment.course_id]
        )
        return True

    async def set_progress(
        self, enrollment: Enrollment, progress: int, at: datetime
    ) -> bool:
        """Write progress unless the student already graduated."""
        result = await self.session.aexecute(
            self._set_progress,
            [
                progress,
                at,
                enrollment.course_id,
                enrollment.student_id,
                enrollment.enrollment_id,
            ],
        )
        return result.was_applied

    async def mark_graduated(self, enrollment: Enrollment, at: datetime) -> bool:
        result = await self.session.aexecute(
            self._mark_graduated,
            [
                at,
                enrollment.course_id,
                enrollment.student_id,
                enrollment.enrollment_id,
                EnrollmentStatus.APPROVED.value,
            ],
        )
        return result.was_applied


# ==============================================================================
# In-memory
# ==============================================================================


class MemoryEnrollmentRepository:
    """Enrollment store on ``MemoryDatabase``.

    Each guarded write checks and writes while holding the database lock,
    which gives it the same all-or-nothing behaviour as the Cassandra batch.
    """

    TABLE = "enrollments"
    COUNTS = "enrollment_student_counts"
    HISTORY = "enrollment_history"

    def __init__(self, db: "MemoryDatabase"):
        self.db = db

    def _matches(self, enrollment: Enrollment) -> Enrollment | None:
        """Current record if it is still the one that was read, else None."""
        current = self.db.get(self.TABLE, (enrollment.course_id, enrollment.student_id))
        if (
            current is None
            or current.enrollment_id != enrollment.enrollment_id
            or current.status != enrollment.status
        ):
            return None
        return current

    def _move_counter(self, course_id: UUID, delta: int) -> None:
        if delta:
            count = self.db.get(self.COUNTS, course_id) or 0
            self.db.put(self.COUNTS, course_id, max(count + delta, 0))

    async def get(self, enrollment_id: UUID) -> Enrollment | None:
        for enrollment in self.db.scan(self.TABLE):
            if enrollment.enrollment_id == enrollment_id:
                return enrollment
        return None

    async def find(self, course_id: UUID, student_id: UUID) -> Enrollment | None:
        return self.db.get(self.TABLE, (course_id, student_id))

    async def list_by_course(self, course_id: UUID) -> list[Enrollment]:
        return [e for e in self.db.scan(self.TABLE) if e.course_id == course_id]

    async def list_by_student(self, student_id: UUID) -> list[Enrollment]:
        return [e for e in self.db.scan(self.TABLE) if e.student_id == student_id]

    async def get_student_count(self, course_id: UUID) -> int:
        return self.db.get(self.COUNTS, course_id) or 0

    async def create(self, enrollment: Enrollment) -> bool:
        key = (enrollment.course_id, enrollment.student_id)
        async with self.db.lock:
            if self.db.get(self.TABLE, key) is not None:
                return False
            self.db.put(self.TABLE, key, enrollment)
            return True

    async def replace_cancelled(
        self, previous: Enrollment, enrollment: Enrollment
    ) -> bool:
        key = (enrollment.course_id, enrollment.student_id)
        async with self.db.lock:
            if self._matches(previous) is None or not previous.is_cancelled:
                return False
            self.db.put(self.HISTORY, previous.enrollment_id, previous)
            self.db.put(self.TABLE, key, enrollment)
            return True

    async def transition(
        self,
        enrollment: Enrollment,
        new_status: EnrollmentStatus,
        changes: dict[str, Any],
        counter_delta: int,
    ) -> bool:
        _check_transition_fields(changes)
        async with self.db.lock:
            current = self._matches(enrollment)
            if current is None:
                return False

            current.status = new_status.value
            for field, value in changes.items():
                setattr(current, field, value)
            self.db.put(self.TABLE, (current.course_id, current.student_id), current)
            self._move_counter(current.course_id, counter_delta)
            return True

    async def delete(self, enrollment: Enrollment, counter_delta: int) -> bool:
        async with self.db.lock:
            if self._matches(enrollment) is None:
                return False
            self.db.delete(self.TABLE, (enrollment.course_id, enrollment.student_id))
            self._move_counter(enrollment.course_id, counter_delta)
            return True

    async def set_progress(
        self, enrollment: Enrollment, progress: int, at: datetime
    ) -> bool:
        key = (enrollment.course_id, enrollment.student_id)
        async with self.db.lock:
            current = self.db.get(self.TABLE, key)
            if (
                current is None
                or current.enrollment_id != enrollment.enrollment_id
                or current.completed
            ):
                return False
            current.progress = progress
            current.last_activity_at = at
            self.db.put(self.TABLE, key, current)
            return True

    async def mark_graduated(self, enrollment: Enrollment, at: datetime) -> bool:
        key = (enrollment.course_id, enrollment.student_id)
        async with self.db.lock:
            current = self.db.get(self.TABLE, key)
            if (
                current is None
                or current.enrollment_id != enrollment.enrollment_id
                or not current.is_approved
                or current.progress != 100
                or current.completed
            ):
                return False
            current.completed = True
            current.instructor_approved = True
            current.graduated_at = at
            self.db.put(self.TABLE, key, current)
            return True
