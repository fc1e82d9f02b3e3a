"""Database models for the enrollment ledger.

Cassandra table definitions for:
- Enrollments: one current record per (course, student), partitioned by
  course, with the course's approved-student counter as a static column
- Lookup by enrollment id and by student
- History: cancelled records replaced by a re-enrollment

Keeping ``student_count`` in the enrollment partition lets a status change
and its counter change commit in one single-partition conditional batch.
"""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from learnhub.utils import ensure_utc_aware, utc_now


class EnrollmentStatus(str, Enum):
    """Enrollment lifecycle status."""

    PENDING = "pending"
    APPROVED = "approved"
    CANCELLED = "cancelled"


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

ENROLLMENT_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.enrollments (
    course_id UUID,
    student_id UUID,
    student_count INT STATIC,
    enrollment_id UUID,
    status TEXT,
    progress INT,
    completed BOOLEAN,
    instructor_approved BOOLEAN,
    enrolled_at TIMESTAMP,
    approved_at TIMESTAMP,
    cancelled_at TIMESTAMP,
    graduated_at TIMESTAMP,
    last_activity_at TIMESTAMP,
    PRIMARY KEY ((course_id), student_id)
)
"""

ENROLLMENTS_BY_ID_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.enrollments_by_id (
    enrollment_id UUID PRIMARY KEY,
    course_id UUID,
    student_id UUID
)
"""

ENROLLMENTS_BY_STUDENT_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.enrollments_by_student (
    student_id UUID,
    course_id UUID,
    enrollment_id UUID,
    enrolled_at TIMESTAMP,
    PRIMARY KEY ((student_id), course_id)
)
"""

# Cancelled records superseded by a re-enrollment
ENROLLMENT_HISTORY_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.enrollment_history (
    course_id UUID,
    student_id UUID,
    enrollment_id UUID,
    status TEXT,
    progress INT,
    enrolled_at TIMESTAMP,
    approved_at TIMESTAMP,
    cancelled_at TIMESTAMP,
    archived_at TIMESTAMP,
    PRIMARY KEY ((course_id, student_id), enrollment_id)
)
"""

ENROLLMENTS_TABLES_CQL = [
    ENROLLMENT_TABLE_CQL,
    ENROLLMENTS_BY_ID_TABLE_CQL,
    ENROLLMENTS_BY_STUDENT_TABLE_CQL,
    ENROLLMENT_HISTORY_TABLE_CQL,
]


# ==============================================================================
# Entities
# ==============================================================================


class Enrollment:
    """A student's enrollment in a course.

    Attributes:
        enrollment_id: Enrollment UUID
        course_id: Course UUID
        student_id: Student UUID
        status: pending, approved or cancelled
        progress: Derived course progress (0-100)
        completed: Graduated (course completion approved)
        instructor_approved: Completion approved by instructor/admin
        enrolled_at: Request timestamp
        approved_at: Approval timestamp
        cancelled_at: Cancellation timestamp
        graduated_at: Completion approval timestamp
        last_activity_at: Last progress write
    """

    def __init__(
        self,
        course_id: UUID,
        student_id: UUID,
        enrollment_id: UUID | None = None,
        status: str = EnrollmentStatus.PENDING.value,
        progress: int = 0,
        completed: bool = False,
        instructor_approved: bool = False,
        enrolled_at: datetime | None = None,
        approved_at: datetime | None = None,
        cancelled_at: datetime | None = None,
        graduated_at: datetime | None = None,
        last_activity_at: datetime | None = None,
    ):
        self.enrollment_id = enrollment_id or uuid4()
        self.course_id = course_id
        self.student_id = student_id
        self.status = status
        self.progress = progress
        self.completed = completed
        self.instructor_approved = instructor_approved
        self.enrolled_at = ensure_utc_aware(enrolled_at) or utc_now()
        self.approved_at = ensure_utc_aware(approved_at)
        self.cancelled_at = ensure_utc_aware(cancelled_at)
        self.graduated_at = ensure_utc_aware(graduated_at)
        self.last_activity_at = ensure_utc_aware(last_activity_at)

    @property
    def is_approved(self) -> bool:
        return self.status == EnrollmentStatus.APPROVED.value

    @property
    def is_cancelled(self) -> bool:
        return self.status == EnrollmentStatus.CANCELLED.value

    @property
    def counted(self) -> int:
        """Contribution of this record to the course's student count."""
        return 1 if self.is_approved else 0

    @classmethod
    def from_row(cls, row: Any) -> "Enrollment":
        """Create Enrollment from a Cassandra row."""
        return cls(
            enrollment_id=row.enrollment_id,
            course_id=row.course_id,
            student_id=row.student_id,
            status=row.status,
            progress=row.progress or 0,
            completed=bool(row.completed),
            instructor_approved=bool(row.instructor_approved),
            enrolled_at=row.enrolled_at,
            approved_at=row.approved_at,
            cancelled_at=row.cancelled_at,
            graduated_at=row.graduated_at,
            last_activity_at=row.last_activity_at,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "enrollment_id": self.enrollment_id,
            "course_id": self.course_id,
            "student_id": self.student_id,
            "status": self.status,
            "progress": self.progress,
            "completed": self.completed,
            "instructor_approved": self.instructor_approved,
            "enrolled_at": self.enrolled_at,
            "approved_at": self.approved_at,
            "cancelled_at": self.cancelled_at,
            "graduated_at": self.graduated_at,
            "last_activity_at": self.last_activity_at,
        }

    def __repr__(self) -> str:
        return f"<Enrollment {self.enrollment_id} {self.status} {self.progress}%>"
