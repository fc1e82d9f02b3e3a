"""Tests for the Cassandra enrollment repository with a mocked session.

The session's ``prepare`` returns the normalized CQL text so each call to
``aexecute`` can be matched to its statement.
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock
from uuid import uuid4

import pytest
from cassandra.cluster import Session

from learnhub.core.exceptions import TransactionConflictError
from learnhub.enrollments import repository as repository_module
from learnhub.enrollments.models import Enrollment, EnrollmentStatus
from learnhub.enrollments.repository import CassandraEnrollmentRepository


class RecordingBatch:
    """Stands in for BatchStatement and records what was added."""

    def __init__(self):
        self.statements = []

    def add(self, statement, parameters=None):
        self.statements.append((statement, parameters))


def result(was_applied=True, one=None):
    """Mock ResultSet."""
    mock_result = Mock()
    mock_result.was_applied = was_applied
    mock_result.one.return_value = one
    return mock_result


def count_row(value):
    return result(one=SimpleNamespace(student_count=value))


@pytest.fixture
def mock_session():
    """Mock Cassandra session."""
    session = Mock(spec=Session)
    session.prepare = Mock(side_effect=lambda query: " ".join(query.split()))
    session.aexecute = AsyncMock()
    return session


@pytest.fixture
def repository(mock_session, monkeypatch):
    monkeypatch.setattr(repository_module, "BatchStatement", RecordingBatch)
    return CassandraEnrollmentRepository(mock_session, "test_keyspace", max_attempts=3)


@pytest.fixture
def pending() -> Enrollment:
    return Enrollment(course_id=uuid4(), student_id=uuid4())


def same_row(enrollment: Enrollment) -> SimpleNamespace:
    return SimpleNamespace(
        enrollment_id=enrollment.enrollment_id, status=enrollment.status
    )


class TestGuardedTransition:
    """Tests for the status + counter conditional batch."""

    @pytest.mark.asyncio
    async def test_applied_batch_moves_counter(self, repository, mock_session, pending):
        """Should batch the row update with a CAS of student_count."""
        mock_session.aexecute.side_effect = [count_row(4), result(was_applied=True)]

        applied = await repository.transition(
            pending, EnrollmentStatus.APPROVED, {"approved_at": None}, counter_delta=1
        )

        assert applied is True
        batch = mock_session.aexecute.call_args_list[1].args[0]
        row_statement, row_params = batch.statements[0]
        counter_statement, counter_params = batch.statements[1]
        assert "IF enrollment_id = ? AND status = ?" in row_statement
        assert row_params[0] == EnrollmentStatus.APPROVED.value
        assert row_params[-1] == EnrollmentStatus.PENDING.value
        assert "IF student_count = ?" in counter_statement
        assert counter_params == [5, pending.course_id, 4]

    @pytest.mark.asyncio
    async def test_counter_conflict_is_retried(self, repository, mock_session, pending):
        """Should retry with the fresh count when only the counter moved."""
        mock_session.aexecute.side_effect = [
            count_row(4),
            result(was_applied=False),
            result(one=same_row(pending)),
            count_row(5),
            result(was_applied=True),
        ]

        applied = await repository.transition(
            pending, EnrollmentStatus.APPROVED, {"approved_at": None}, counter_delta=1
        )

        assert applied is True
        batch = mock_session.aexecute.call_args_list[4].args[0]
        assert batch.statements[1][1] == [6, pending.course_id, 5]

    @pytest.mark.asyncio
    async def test_row_guard_failure_returns_false(
        self, repository, mock_session, pending
    ):
        """Should report not applied when the record itself changed."""
        approved_row = SimpleNamespace(
            enrollment_id=pending.enrollment_id,
            status=EnrollmentStatus.APPROVED.value,
        )
        mock_session.aexecute.side_effect = [
            count_row(1),
            result(was_applied=False),
            result(one=approved_row),
        ]

        applied = await repository.transition(
            pending, EnrollmentStatus.APPROVED, {"approved_at": None}, counter_delta=1
        )

        assert applied is False
        assert mock_session.aexecute.call_count == 3

    @pytest.mark.asyncio
    async def test_persistent_conflict_raises(self, repository, mock_session, pending):
        """Should give up with TransactionConflictError after max_attempts."""
        mock_session.aexecute.side_effect = [
            count_row(1),
            result(was_applied=False),
            result(one=same_row(pending)),
        ] * 3

        with pytest.raises(TransactionConflictError):
            await repository.transition(
                pending,
                EnrollmentStatus.APPROVED,
                {"approved_at": None},
                counter_delta=1,
            )

        assert mock_session.aexecute.call_count == 9

    @pytest.mark.asyncio
    async def test_counter_never_negative(self, repository, mock_session, pending):
        """Should clamp a decrement of a missing counter at zero."""
        mock_session.aexecute.side_effect = [result(one=None), result(was_applied=True)]

        await repository.transition(
            pending, EnrollmentStatus.CANCELLED, {"cancelled_at": None}, counter_delta=-1
        )

        batch = mock_session.aexecute.call_args_list[1].args[0]
        assert batch.statements[1][1] == [0, pending.course_id, None]

    @pytest.mark.asyncio
    async def test_without_counter_change_runs_single_statement(
        self, repository, mock_session, pending
    ):
        """Should skip the batch when the counter does not move."""
        mock_session.aexecute.return_value = result(was_applied=True)

        applied = await repository.transition(
            pending, EnrollmentStatus.CANCELLED, {"cancelled_at": None}, counter_delta=0
        )

        assert applied is True
        assert mock_session.aexecute.call_count == 1

    @pytest.mark.asyncio
    async def test_unknown_fields_rejected(self, repository, pending):
        """Should only allow the timestamp columns of a transition."""
        with pytest.raises(ValueError, match="student_count"):
            await repository.transition(
                pending,
                EnrollmentStatus.APPROVED,
                {"student_count": 10},
                counter_delta=0,
            )


class TestCreateAndLookup:
    """Tests for create and get."""

    @pytest.mark.asyncio
    async def test_create_not_applied_skips_lookups(
        self, repository, mock_session, pending
    ):
        """Should not write lookup rows when the pair already exists."""
        mock_session.aexecute.return_value = result(was_applied=False)

        created = await repository.create(pending)

        assert created is False
        assert mock_session.aexecute.call_count == 1

    @pytest.mark.asyncio
    async def test_create_writes_lookups(self, repository, mock_session, pending):
        """Should write the by-id and by-student lookup rows."""
        mock_session.aexecute.return_value = result(was_applied=True)

        assert await repository.create(pending) is True

        statements = [call.args[0] for call in mock_session.aexecute.call_args_list]
        assert "IF NOT EXISTS" in statements[0]
        assert any("enrollments_by_id" in s for s in statements[1:])
        assert any("enrollments_by_student" in s for s in statements[1:])

    @pytest.mark.asyncio
    async def test_get_ignores_superseded_id(self, repository, mock_session, pending):
        """Should return None for an id replaced by a re-enrollment."""
        lookup = SimpleNamespace(
            course_id=pending.course_id, student_id=pending.student_id
        )
        current = SimpleNamespace(**pending.to_dict())
        current.enrollment_id = uuid4()
        mock_session.aexecute.side_effect = [result(one=lookup), result(one=current)]

        assert await repository.get(pending.enrollment_id) is None

    @pytest.mark.asyncio
    async def test_find_static_only_partition(self, repository, mock_session):
        """A partition holding only the counter has no enrollment."""
        mock_session.aexecute.return_value = result(
            one=SimpleNamespace(enrollment_id=None, student_count=3)
        )

        assert await repository.find(uuid4(), uuid4()) is None

    @pytest.mark.asyncio
    async def test_student_count_defaults_to_zero(self, repository, mock_session):
        mock_session.aexecute.return_value = result(one=None)

        assert await repository.get_student_count(uuid4()) == 0
