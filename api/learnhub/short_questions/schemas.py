"""Pydantic schemas for short-answer question sets and attempts."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from learnhub.progress.schemas import CourseProgressResponse

from .models import (
    AttemptStatus,
    ShortQuestion,
    ShortQuestionAttempt,
    ShortQuestionSet,
)


# ==============================================================================
# Sets
# ==============================================================================


class ShortQuestionInput(BaseModel):
    question: str = Field(..., min_length=1, max_length=2000)
    correct_answer: str = Field(..., min_length=1, max_length=5000)
    explanation: str | None = Field(None, max_length=5000)
    points: int = Field(1, ge=1, le=100)
    min_length: int = Field(0, ge=0)
    max_length: int = Field(500, ge=1, le=10000)

    def to_entity(self) -> ShortQuestion:
        return ShortQuestion(**self.model_dump())


class SaveQuestionSetRequest(BaseModel):
    """Create a set, or replace it when ``set_id`` is given."""

    set_id: UUID | None = None
    title: str = Field(..., min_length=1, max_length=200)
    description: str | None = Field(None, max_length=5000)
    instructions: str | None = Field(None, max_length=5000)
    questions: list[ShortQuestionInput] = Field(..., min_length=1)
    passing_score: int | None = Field(None, ge=0, le=100)
    allow_retake: bool = True
    is_published: bool = True
    time_limit: int | None = Field(None, ge=1, description="Minutes")


class ShortQuestionResponse(BaseModel):
    """Question as shown to students."""

    question: str
    points: int
    min_length: int
    max_length: int


class QuestionSetResponse(BaseModel):
    id: UUID
    course_id: UUID
    title: str
    description: str | None = None
    instructions: str | None = None
    questions: list[ShortQuestionResponse]
    passing_score: int
    allow_retake: bool
    is_published: bool
    time_limit: int | None = None
    created_at: datetime

    @classmethod
    def from_entity(cls, entity: ShortQuestionSet) -> "QuestionSetResponse":
        return cls(
            id=entity.set_id,
            course_id=entity.course_id,
            title=entity.title,
            description=entity.description,
            instructions=entity.instructions,
            questions=[
                ShortQuestionResponse(
                    question=q.question,
                    points=q.points,
                    min_length=q.min_length,
                    max_length=q.max_length,
                )
                for q in entity.questions
            ],
            passing_score=entity.passing_score,
            allow_retake=entity.allow_retake,
            is_published=entity.is_published,
            time_limit=entity.time_limit,
            created_at=entity.created_at,
        )


class QuestionSetListResponse(BaseModel):
    items: list[QuestionSetResponse]
    total: int


# ==============================================================================
# Attempts
# ==============================================================================


class SubmitAttemptRequest(BaseModel):
    """Answer text for each question index."""

    answers: dict[int, str] = Field(default_factory=dict)
    time_spent: int = Field(0, ge=0, description="Seconds")


class AnswerGrade(BaseModel):
    question_index: int = Field(..., ge=0)
    points: int = Field(..., ge=0)
    feedback: str | None = Field(None, max_length=5000)


class GradeAttemptRequest(BaseModel):
    grades: list[AnswerGrade] = Field(..., min_length=1)
    overall_feedback: str | None = Field(None, max_length=5000)


class ShortAnswerResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    question_index: int
    answer: str
    max_points: int
    points: int | None = None
    feedback: str | None = None


class AttemptResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    attempt_id: UUID
    course_id: UUID
    set_id: UUID
    student_id: UUID
    attempt_number: int
    status: AttemptStatus
    answers: list[ShortAnswerResponse]
    score: int
    max_score: int
    percentage: float
    passed: bool
    overall_feedback: str | None = None
    graded_by: UUID | None = None
    started_at: datetime
    submitted_at: datetime | None = None
    graded_at: datetime | None = None
    time_spent: int = 0

    @classmethod
    def from_entity(cls, entity: ShortQuestionAttempt) -> "AttemptResponse":
        return cls.model_validate(entity)


class AttemptListResponse(BaseModel):
    items: list[AttemptResponse]
    total: int


class GradeAttemptResponse(BaseModel):
    attempt: AttemptResponse
    course_progress: CourseProgressResponse | None = None
