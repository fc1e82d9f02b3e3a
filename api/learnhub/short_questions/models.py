"""Database models for short-answer question sets and attempts.

Cassandra table definitions for:
- Short question sets: partitioned by course, plus a lookup by set id
- Attempts: partitioned by (course, student), plus a lookup by attempt id
- Pending grading: attempts of a course waiting for the instructor
- Attempt slots: one row per (set, attempt number), claimed with IF NOT EXISTS

Answers are free text graded by the instructor; a point value stays
``None`` until it has been assigned.
"""

import json
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from learnhub.utils import ensure_utc_aware, utc_now


DEFAULT_PASSING_SCORE = 70


class AttemptStatus(str, Enum):
    """Short-answer attempt status."""

    IN_PROGRESS = "in_progress"
    SUBMITTED = "submitted"  # Waiting for grading
    GRADED = "graded"  # Partially graded
    COMPLETED = "completed"  # Every answer graded
    ABANDONED = "abandoned"


AWAITING_GRADING = frozenset({AttemptStatus.SUBMITTED.value, AttemptStatus.GRADED.value})


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

SHORT_QUESTION_SET_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.short_question_sets (
    course_id UUID,
    set_id UUID,
    title TEXT,
    description TEXT,
    instructions TEXT,
    questions TEXT,
    passing_score INT,
    allow_retake BOOLEAN,
    is_published BOOLEAN,
    time_limit INT,
    created_at TIMESTAMP,
    updated_at TIMESTAMP,
    PRIMARY KEY ((course_id), set_id)
)
"""

SHORT_QUESTION_SETS_BY_ID_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.short_question_sets_by_id (
    set_id UUID PRIMARY KEY,
    course_id UUID
)
"""

SHORT_QUESTION_ATTEMPT_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.short_question_attempts (
    course_id UUID,
    student_id UUID,
    attempt_id UUID,
    set_id UUID,
    attempt_number INT,
    status TEXT,
    score INT,
    max_score INT,
    percentage DOUBLE,
    passed BOOLEAN,
    answers TEXT,
    overall_feedback TEXT,
    graded_by UUID,
    started_at TIMESTAMP,
    submitted_at TIMESTAMP,
    graded_at TIMESTAMP,
    time_spent INT,
    PRIMARY KEY ((course_id, student_id), attempt_id)
)
"""

SHORT_QUESTION_ATTEMPTS_BY_ID_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.short_question_attempts_by_id (
    attempt_id UUID PRIMARY KEY,
    course_id UUID,
    student_id UUID
)
"""

SHORT_QUESTION_PENDING_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.short_question_pending (
    course_id UUID,
    attempt_id UUID,
    student_id UUID,
    set_id UUID,
    submitted_at TIMESTAMP,
    PRIMARY KEY ((course_id), attempt_id)
)
"""

SHORT_QUESTION_ATTEMPT_SLOTS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.short_question_attempt_slots (
    course_id UUID,
    student_id UUID,
    set_id UUID,
    attempt_number INT,
    attempt_id UUID,
    PRIMARY KEY ((course_id, student_id, set_id), attempt_number)
)
"""

SHORT_QUESTIONS_TABLES_CQL = [
    SHORT_QUESTION_SET_TABLE_CQL,
    SHORT_QUESTION_SETS_BY_ID_TABLE_CQL,
    SHORT_QUESTION_ATTEMPT_TABLE_CQL,
    SHORT_QUESTION_ATTEMPTS_BY_ID_TABLE_CQL,
    SHORT_QUESTION_PENDING_TABLE_CQL,
    SHORT_QUESTION_ATTEMPT_SLOTS_TABLE_CQL,
]


# ==============================================================================
# Entities
# ==============================================================================


@dataclass
class ShortQuestion:
    """Open question with a reference answer for the grader."""

    question: str
    correct_answer: str
    explanation: str | None = None
    points: int = 1
    min_length: int = 0
    max_length: int = 500


@dataclass
class ShortQuestionSet:
    """Set of short-answer questions of a course."""

    course_id: UUID
    title: str
    questions: list[ShortQuestion]
    set_id: UUID = field(default_factory=uuid4)
    description: str | None = None
    instructions: str | None = None
    passing_score: int = DEFAULT_PASSING_SCORE
    allow_retake: bool = True
    is_published: bool = True
    time_limit: int | None = None  # minutes
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    @classmethod
    def from_row(cls, row: Any) -> "ShortQuestionSet":
        """Create ShortQuestionSet from a Cassandra row."""
        return cls(
            course_id=row.course_id,
            set_id=row.set_id,
            title=row.title,
            description=row.description,
            instructions=row.instructions,
            questions=[
                ShortQuestion(**q) for q in json.loads(row.questions or "[]")
            ],
            passing_score=(
                row.passing_score
                if row.passing_score is not None
                else DEFAULT_PASSING_SCORE
            ),
            allow_retake=row.allow_retake is not False,
            is_published=bool(row.is_published),
            time_limit=row.time_limit,
            created_at=ensure_utc_aware(row.created_at) or utc_now(),
            updated_at=ensure_utc_aware(row.updated_at) or utc_now(),
        )

    def questions_json(self) -> str:
        return json.dumps([asdict(question) for question in self.questions])


@dataclass
class ShortAnswer:
    """Student answer to one question and its grade."""

    question_index: int
    max_points: int
    answer: str = ""
    points: int | None = None
    feedback: str | None = None

    @property
    def is_graded(self) -> bool:
        return self.points is not None


@dataclass
class ShortQuestionAttempt:
    """One attempt of a student at a short-answer set."""

    course_id: UUID
    student_id: UUID
    set_id: UUID
    attempt_number: int
    answers: list[ShortAnswer]
    attempt_id: UUID = field(default_factory=uuid4)
    status: str = AttemptStatus.IN_PROGRESS.value
    score: int = 0
    max_score: int = 0
    percentage: float = 0.0
    passed: bool = False
    overall_feedback: str | None = None
    graded_by: UUID | None = None
    started_at: datetime = field(default_factory=utc_now)
    submitted_at: datetime | None = None
    graded_at: datetime | None = None
    time_spent: int = 0

    @property
    def is_completed(self) -> bool:
        return self.status == AttemptStatus.COMPLETED.value

    @classmethod
    def from_row(cls, row: Any) -> "ShortQuestionAttempt":
        """Create ShortQuestionAttempt from a Cassandra row."""
        return cls(
            course_id=row.course_id,
            student_id=row.student_id,
            attempt_id=row.attempt_id,
            set_id=row.set_id,
            attempt_number=row.attempt_number or 1,
            status=row.status,
            score=row.score or 0,
            max_score=row.max_score or 0,
            percentage=row.percentage or 0.0,
            passed=bool(row.passed),
            answers=[ShortAnswer(**a) for a in json.loads(row.answers or "[]")],
            overall_feedback=row.overall_feedback,
            graded_by=row.graded_by,
            started_at=ensure_utc_aware(row.started_at) or utc_now(),
            submitted_at=ensure_utc_aware(row.submitted_at),
            graded_at=ensure_utc_aware(row.graded_at),
            time_spent=row.time_spent or 0,
        )

    def answers_json(self) -> str:
        return json.dumps([asdict(answer) for answer in self.answers])
