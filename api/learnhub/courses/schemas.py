"""Pydantic schemas for courses and lessons."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from .models import Course, CourseStatus, Lesson


# ==============================================================================
# Course Schemas
# ==============================================================================


class CreateCourseRequest(BaseModel):
    """Request to create a course."""

    title: str = Field(..., min_length=3, max_length=200)
    description: str | None = Field(None, max_length=5000)
    instructor_id: UUID | None = Field(
        None, description="Owning instructor (admins only)"
    )
    status: CourseStatus = CourseStatus.ACTIVE


class CourseStatsResponse(BaseModel):
    """Denormalized course counters."""

    model_config = ConfigDict(from_attributes=True)

    student_count: int
    total_lessons: int
    quiz_count: int
    total_quiz_questions: int
    short_question_count: int
    total_short_questions: int
    has_quiz: bool
    has_short_question: bool


class CourseResponse(BaseModel):
    """Course response with its stats."""

    id: UUID
    title: str
    description: str | None = None
    instructor_id: UUID
    status: CourseStatus
    stats: CourseStatsResponse
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_entity(cls, entity: Course) -> "CourseResponse":
        """Create response from entity."""
        return cls(
            id=entity.course_id,
            title=entity.title,
            description=entity.description,
            instructor_id=entity.instructor_id,
            status=CourseStatus(entity.status),
            stats=CourseStatsResponse.model_validate(entity.stats),
            created_at=entity.created_at,
            updated_at=entity.updated_at,
        )


# ==============================================================================
# Lesson Schemas
# ==============================================================================


class CreateLessonRequest(BaseModel):
    """Request to add a lesson to a course."""

    title: str = Field(..., min_length=1, max_length=200)
    module_id: UUID | None = None
    position: int | None = Field(None, ge=0)


class LessonResponse(BaseModel):
    """Lesson response."""

    model_config = ConfigDict(from_attributes=True)

    lesson_id: UUID
    course_id: UUID
    module_id: UUID | None = None
    title: str
    position: int
    created_at: datetime

    @classmethod
    def from_entity(cls, entity: Lesson) -> "LessonResponse":
        return cls.model_validate(entity)


class LessonListResponse(BaseModel):
    """Lessons of a course in order."""

    items: list[LessonResponse]
    total: int
