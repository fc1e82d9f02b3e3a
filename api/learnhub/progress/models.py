"""Database models for lesson progress.

Cassandra table definitions for:
- Lesson progress: completion and watch time per student and lesson

Partition key ``(student_id, course_id)`` keeps the whole course history of a
student in one partition, which is what the progress aggregator reads.
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from learnhub.utils import ensure_utc_aware, utc_now


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

LESSON_PROGRESS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.lesson_progress (
    student_id UUID,
    course_id UUID,
    lesson_id UUID,
    module_id UUID,
    completed BOOLEAN,
    completed_at TIMESTAMP,
    time_spent INT,
    last_accessed_at TIMESTAMP,
    PRIMARY KEY ((student_id, course_id), lesson_id)
)
"""

PROGRESS_TABLES_CQL = [
    LESSON_PROGRESS_TABLE_CQL,
]


# ==============================================================================
# Entity Classes
# ==============================================================================


class LessonProgress:
    """Lesson progress of one student.

    Attributes:
        student_id: Student UUID
        course_id: Course UUID
        lesson_id: Lesson UUID
        module_id: Optional module UUID
        completed: Lesson marked as completed
        completed_at: Completion timestamp (null if not completed)
        time_spent: Accumulated time in the lesson, in seconds
        last_accessed_at: Last access timestamp
    """

    def __init__(
        self,
        student_id: UUID,
        course_id: UUID,
        lesson_id: UUID,
        module_id: UUID | None = None,
        completed: bool = False,
        completed_at: datetime | None = None,
        time_spent: int = 0,
        last_accessed_at: datetime | None = None,
    ):
        self.student_id = student_id
        self.course_id = course_id
        self.lesson_id = lesson_id
        self.module_id = module_id
        self.completed = completed
        self.completed_at = ensure_utc_aware(completed_at)
        self.time_spent = time_spent
        self.last_accessed_at = ensure_utc_aware(last_accessed_at) or utc_now()

    @classmethod
    def from_row(cls, row: Any) -> "LessonProgress":
        """Create LessonProgress instance from Cassandra row."""
        return cls(
            student_id=row.student_id,
            course_id=row.course_id,
            lesson_id=row.lesson_id,
            module_id=row.module_id,
            completed=bool(row.completed),
            completed_at=row.completed_at,
            time_spent=row.time_spent or 0,
            last_accessed_at=row.last_accessed_at,
        )

    def __repr__(self) -> str:
        state = "completed" if self.completed else "open"
        return f"<LessonProgress student={self.student_id} lesson={self.lesson_id} {state}>"
