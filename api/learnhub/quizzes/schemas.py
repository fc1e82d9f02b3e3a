"""Pydantic schemas for course quizzes."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from learnhub.progress.schemas import CourseProgressResponse

from .models import Quiz, QuizAttemptStatus, QuizProgress, QuizQuestion


# ==============================================================================
# Authoring
# ==============================================================================


class QuizQuestionInput(BaseModel):
    """Multiple-choice question."""

    question: str = Field(..., min_length=1, max_length=1000)
    options: list[str] = Field(..., min_length=2, max_length=10)
    correct_index: int = Field(..., ge=0, description="Index of the right option")
    points: int = Field(1, ge=1, le=100)

    def to_entity(self) -> QuizQuestion:
        return QuizQuestion(
            question=self.question,
            options=list(self.options),
            correct_index=self.correct_index,
            points=self.points,
        )


class SaveQuizRequest(BaseModel):
    """Create or replace the course quiz."""

    title: str = Field(..., min_length=1, max_length=200)
    instructions: str | None = Field(None, max_length=5000)
    questions: list[QuizQuestionInput] = Field(..., min_length=1)
    is_published: bool = True
    time_limit: int | None = Field(None, ge=1, description="Minutes")


# ==============================================================================
# Quiz views
# ==============================================================================


class QuizQuestionResponse(BaseModel):
    """Question as shown while taking the quiz."""

    question: str
    options: list[str]
    points: int


class QuizQuestionResultResponse(QuizQuestionResponse):
    correct_index: int


class QuizResponse(BaseModel):
    """Quiz without its answer key."""

    id: UUID
    course_id: UUID
    title: str
    instructions: str | None = None
    questions: list[QuizQuestionResponse]
    total_points: int
    is_published: bool
    time_limit: int | None = None
    updated_at: datetime

    @classmethod
    def from_entity(cls, entity: Quiz) -> "QuizResponse":
        return cls(
            id=entity.quiz_id,
            course_id=entity.course_id,
            title=entity.title,
            instructions=entity.instructions,
            questions=[
                QuizQuestionResponse(
                    question=q.question, options=q.options, points=q.points
                )
                for q in entity.questions
            ],
            total_points=entity.total_points,
            is_published=entity.is_published,
            time_limit=entity.time_limit,
            updated_at=entity.updated_at,
        )


# ==============================================================================
# Attempts
# ==============================================================================


class SubmitQuizRequest(BaseModel):
    """Selected option index for each question index."""

    answers: dict[int, int] = Field(default_factory=dict)
    time_spent: int = Field(0, ge=0, description="Seconds")


class QuizAnswerResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    question_index: int
    selected_option: int
    is_correct: bool


class QuizProgressResponse(BaseModel):
    """State of the student's quiz attempts."""

    model_config = ConfigDict(from_attributes=True)

    course_id: UUID
    student_id: UUID
    quiz_id: UUID
    status: QuizAttemptStatus
    attempt_count: int
    max_attempts: int
    score: int
    total_points: int
    correct_answers: int
    total_questions: int
    percentage: float
    passed: bool
    started_at: datetime | None = None
    completed_at: datetime | None = None
    time_spent: int = 0

    @classmethod
    def from_entity(cls, entity: QuizProgress) -> "QuizProgressResponse":
        return cls.model_validate(entity)


class StartQuizResponse(BaseModel):
    quiz: QuizResponse
    progress: QuizProgressResponse


class SubmitQuizResponse(BaseModel):
    """Scored attempt and the refreshed course progress (null if it failed)."""

    progress: QuizProgressResponse
    course_progress: CourseProgressResponse | None = None


class QuizResultsResponse(BaseModel):
    """Finished attempt with the answer key."""

    progress: QuizProgressResponse
    answers: list[QuizAnswerResponse]
    questions: list[QuizQuestionResultResponse]

    @classmethod
    def from_entities(cls, quiz: Quiz, progress: QuizProgress) -> "QuizResultsResponse":
        return cls(
            progress=QuizProgressResponse.from_entity(progress),
            answers=[QuizAnswerResponse.model_validate(a) for a in progress.answers],
            questions=[
                QuizQuestionResultResponse(
                    question=q.question,
                    options=q.options,
                    points=q.points,
                    correct_index=q.correct_index,
                )
                for q in quiz.questions
            ],
        )
