"""Database models for course quizzes and quiz attempts.

Cassandra table definitions for:
- Quizzes: the (single) quiz of a course, questions stored as JSON
- Quiz progress: one record per student and course, reused across attempts

Question and answer lists are nested documents; they are stored as JSON
text and decoded in ``from_row``.
"""

import json
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from learnhub.utils import ensure_utc_aware, utc_now


class QuizAttemptStatus(str, Enum):
    """Quiz attempt status."""

    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"  # Finished and passed
    FAILED = "failed"  # Finished below the passing percentage


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

QUIZ_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.quizzes (
    course_id UUID PRIMARY KEY,
    quiz_id UUID,
    title TEXT,
    instructions TEXT,
    questions TEXT,
    is_published BOOLEAN,
    time_limit INT,
    created_at TIMESTAMP,
    updated_at TIMESTAMP
)
"""

QUIZ_PROGRESS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.quiz_progress (
    course_id UUID,
    student_id UUID,
    quiz_id UUID,
    score INT,
    total_questions INT,
    total_points INT,
    correct_answers INT,
    percentage DOUBLE,
    passed BOOLEAN,
    status TEXT,
    attempt_count INT,
    max_attempts INT,
    answers TEXT,
    started_at TIMESTAMP,
    completed_at TIMESTAMP,
    time_spent INT,
    PRIMARY KEY ((course_id), student_id)
)
"""

QUIZZES_TABLES_CQL = [
    QUIZ_TABLE_CQL,
    QUIZ_PROGRESS_TABLE_CQL,
]


# ==============================================================================
# Entities
# ==============================================================================


@dataclass
class QuizQuestion:
    """Multiple-choice question."""

    question: str
    options: list[str]
    correct_index: int
    points: int = 1


@dataclass
class QuizAnswer:
    """A student's answer to one question, as scored."""

    question_index: int
    selected_option: int
    is_correct: bool = False
    time_spent: int = 0


@dataclass
class Quiz:
    """Course quiz."""

    course_id: UUID
    title: str
    questions: list[QuizQuestion]
    quiz_id: UUID = field(default_factory=uuid4)
    instructions: str | None = None
    is_published: bool = True
    time_limit: int | None = None  # minutes
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    @property
    def total_points(self) -> int:
        return sum(question.points for question in self.questions)

    @classmethod
    def from_row(cls, row: Any) -> "Quiz":
        """Create Quiz from a Cassandra row."""
        return cls(
            course_id=row.course_id,
            quiz_id=row.quiz_id,
            title=row.title,
            instructions=row.instructions,
            questions=[QuizQuestion(**q) for q in json.loads(row.questions or "[]")],
            is_published=bool(row.is_published),
            time_limit=row.time_limit,
            created_at=ensure_utc_aware(row.created_at) or utc_now(),
            updated_at=ensure_utc_aware(row.updated_at) or utc_now(),
        )

    def questions_json(self) -> str:
        return json.dumps([asdict(question) for question in self.questions])


@dataclass
class QuizProgress:
    """A student's attempts at the course quiz.

    ``attempt_count`` counts started attempts; a failed attempt may be
    followed by another one until ``max_attempts`` is reached.
    """

    course_id: UUID
    student_id: UUID
    quiz_id: UUID
    total_questions: int
    total_points: int
    max_attempts: int
    score: int = 0
    correct_answers: int = 0
    percentage: float = 0.0
    passed: bool = False
    status: str = QuizAttemptStatus.NOT_STARTED.value
    attempt_count: int = 0
    answers: list[QuizAnswer] = field(default_factory=list)
    started_at: datetime | None = None
    completed_at: datetime | None = None
    time_spent: int = 0

    @property
    def is_finished(self) -> bool:
        return self.status in (
            QuizAttemptStatus.COMPLETED.value,
            QuizAttemptStatus.FAILED.value,
        )

    @classmethod
    def from_row(cls, row: Any) -> "QuizProgress":
        """Create QuizProgress from a Cassandra row."""
        return cls(
            course_id=row.course_id,
            student_id=row.student_id,
            quiz_id=row.quiz_id,
            score=row.score or 0,
            total_questions=row.total_questions or 0,
            total_points=row.total_points or 0,
            correct_answers=row.correct_answers or 0,
            percentage=row.percentage or 0.0,
            passed=bool(row.passed),
            status=row.status or QuizAttemptStatus.NOT_STARTED.value,
            attempt_count=row.attempt_count or 0,
            max_attempts=row.max_attempts or 0,
            answers=[QuizAnswer(**a) for a in json.loads(row.answers or "[]")],
            started_at=ensure_utc_aware(row.started_at),
            completed_at=ensure_utc_aware(row.completed_at),
            time_spent=row.time_spent or 0,
        )

    def answers_json(self) -> str:
        return json.dumps([asdict(answer) for answer in self.answers])
