"""Pydantic schemas for student progress tracking.

Request and response models for:
- Lesson completion and access
- Course progress breakdown
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from .aggregator import ProgressBreakdown
from .models import LessonProgress


# ==============================================================================
# Lesson Schemas
# ==============================================================================


class LessonProgressRequest(BaseModel):
    """Lesson completion or access event."""

    course_id: UUID = Field(..., description="Course UUID")
    lesson_id: UUID = Field(..., description="Lesson UUID")
    module_id: UUID | None = Field(None, description="Module UUID")
    time_spent: int = Field(0, ge=0, description="Seconds spent since last event")


class MarkLessonIncompleteRequest(BaseModel):
    """Request to reset a lesson's completion."""

    course_id: UUID = Field(..., description="Course UUID")
    lesson_id: UUID = Field(..., description="Lesson UUID")


class LessonProgressResponse(BaseModel):
    """Lesson progress response."""

    model_config = ConfigDict(from_attributes=True)

    lesson_id: UUID
    course_id: UUID
    module_id: UUID | None = None
    completed: bool
    completed_at: datetime | None = None
    time_spent: int = 0
    last_accessed_at: datetime | None = None

    @classmethod
    def from_entity(cls, entity: LessonProgress) -> "LessonProgressResponse":
        """Create response from entity."""
        return cls.model_validate(entity)


class LessonProgressListResponse(BaseModel):
    items: list[LessonProgressResponse]
    total: int


# ==============================================================================
# Course Progress Schemas
# ==============================================================================


class LessonShareResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    completed: int
    total: int
    points: int
    weight: int


class QuizShareResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    attempted: bool
    passed: bool
    percentage: float | None = None
    points: int
    weight: int


class ShortQuestionShareResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    passed: int
    attempted: int
    points: int
    weight: int


class CourseProgressResponse(BaseModel):
    """Course progress with the share of each source."""

    model_config = ConfigDict(from_attributes=True)

    course_id: UUID
    student_id: UUID
    total: int = Field(description="0-100 percentage")
    lessons: LessonShareResponse
    quiz: QuizShareResponse
    short_questions: ShortQuestionShareResponse

    @classmethod
    def from_breakdown(cls, breakdown: ProgressBreakdown) -> "CourseProgressResponse":
        return cls.model_validate(breakdown)


class LessonProgressUpdateResponse(BaseModel):
    """Lesson progress after a completion change.

    ``course_progress`` is null when the course progress could not be
    recomputed; the lesson change itself was saved.
    """

    lesson: LessonProgressResponse
    course_progress: CourseProgressResponse | None = None
