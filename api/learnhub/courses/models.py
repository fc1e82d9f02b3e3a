"""Database models for courses, lessons and course counters.

Cassandra table definitions for:
- Courses: course record with denormalized content counters
- Lessons: lessons of a course, partitioned by course

The enrolled-student counter is not stored here: it lives as a static
column of the ``enrollments`` partition so it can be changed in the same
transaction as the enrollment status (see ``learnhub.enrollments.models``).
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from learnhub.utils import ensure_utc_aware, utc_now


class CourseStatus(str, Enum):
    """Course moderation status."""

    DRAFT = "draft"
    PENDING = "pending"  # Awaiting admin review
    ACTIVE = "active"
    INACTIVE = "inactive"


# Counters kept on the course row. Only these may go through update_counter.
COUNTER_FIELDS = frozenset(
    {
        "total_lessons",
        "quiz_count",
        "total_quiz_questions",
        "short_question_count",
        "total_short_questions",
    }
)

FLAG_FIELDS = frozenset({"has_quiz", "has_short_question"})


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

COURSE_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.courses (
    course_id UUID PRIMARY KEY,
    title TEXT,
    description TEXT,
    instructor_id UUID,
    status TEXT,
    total_lessons INT,
    quiz_count INT,
    total_quiz_questions INT,
    short_question_count INT,
    total_short_questions INT,
    has_quiz BOOLEAN,
    has_short_question BOOLEAN,
    created_at TIMESTAMP,
    updated_at TIMESTAMP
)
"""

# Lessons of a course, ordered by position inside the partition
LESSON_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.lessons (
    course_id UUID,
    lesson_id UUID,
    module_id UUID,
    title TEXT,
    position INT,
    created_at TIMESTAMP,
    PRIMARY KEY ((course_id), lesson_id)
)
"""

COURSES_TABLES_CQL = [
    COURSE_TABLE_CQL,
    LESSON_TABLE_CQL,
]


# ==============================================================================
# Entities
# ==============================================================================


@dataclass
class CourseStats:
    """Denormalized course aggregates."""

    student_count: int = 0
    total_lessons: int = 0
    quiz_count: int = 0
    total_quiz_questions: int = 0
    short_question_count: int = 0
    total_short_questions: int = 0
    has_quiz: bool = False
    has_short_question: bool = False


class Course:
    """Course entity.

    Attributes:
        course_id: Course UUID
        title: Course title
        description: Optional description
        instructor_id: Owning instructor
        status: Moderation status
        stats: Denormalized counters
        created_at: Creation timestamp
        updated_at: Last update timestamp
    """

    def __init__(
        self,
        title: str,
        instructor_id: UUID,
        course_id: UUID | None = None,
        description: str | None = None,
        status: str = CourseStatus.DRAFT.value,
        stats: CourseStats | None = None,
        created_at: datetime | None = None,
        updated_at: datetime | None = None,
    ):
        self.course_id = course_id or uuid4()
        self.title = title
        self.description = description
        self.instructor_id = instructor_id
        self.status = status
        self.stats = stats or CourseStats()
        self.created_at = ensure_utc_aware(created_at) or utc_now()
        self.updated_at = ensure_utc_aware(updated_at) or self.created_at

    def is_managed_by(self, user_id: UUID) -> bool:
        """Check if the user is the course instructor."""
        return self.instructor_id == user_id

    @classmethod
    def from_row(cls, row: Any, student_count: int = 0) -> "Course":
        """Create Course from a Cassandra row."""
        return cls(
            course_id=row.course_id,
            title=row.title,
            description=row.description,
            instructor_id=row.instructor_id,
            status=row.status or CourseStatus.DRAFT.value,
            stats=CourseStats(
                student_count=student_count,
                total_lessons=row.total_lessons or 0,
                quiz_count=row.quiz_count or 0,
                total_quiz_questions=row.total_quiz_questions or 0,
                short_question_count=row.short_question_count or 0,
                total_short_questions=row.total_short_questions or 0,
                has_quiz=bool(row.has_quiz),
                has_short_question=bool(row.has_short_question),
            ),
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    def __repr__(self) -> str:
        return f"<Course {self.course_id} {self.title!r} {self.status}>"


@dataclass
class Lesson:
    """Lesson belonging to a course."""

    course_id: UUID
    title: str
    lesson_id: UUID = field(default_factory=uuid4)
    module_id: UUID | None = None
    position: int = 0
    created_at: datetime = field(default_factory=utc_now)

    @classmethod
    def from_row(cls, row: Any) -> "Lesson":
        """Create Lesson from a Cassandra row."""
        return cls(
            course_id=row.course_id,
            lesson_id=row.lesson_id,
            module_id=row.module_id,
            title=row.title,
            position=row.position or 0,
            created_at=ensure_utc_aware(row.created_at) or utc_now(),
        )
