"""Pydantic schemas for enrollments."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from .models import Enrollment, EnrollmentStatus


class EnrollRequest(BaseModel):
    """Request to join a course."""

    course_id: UUID = Field(..., description="Course UUID")


class EnrollmentResponse(BaseModel):
    """Enrollment response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    course_id: UUID
    student_id: UUID
    status: EnrollmentStatus
    progress: int = Field(description="Course progress 0-100")
    completed: bool
    instructor_approved: bool
    enrolled_at: datetime
    approved_at: datetime | None = None
    cancelled_at: datetime | None = None
    graduated_at: datetime | None = None
    last_activity_at: datetime | None = None

    @classmethod
    def from_entity(cls, entity: Enrollment) -> "EnrollmentResponse":
        """Create response from entity."""
        return cls(
            id=entity.enrollment_id,
            course_id=entity.course_id,
            student_id=entity.student_id,
            status=EnrollmentStatus(entity.status),
            progress=entity.progress,
            completed=entity.completed,
            instructor_approved=entity.instructor_approved,
            enrolled_at=entity.enrolled_at,
            approved_at=entity.approved_at,
            cancelled_at=entity.cancelled_at,
            graduated_at=entity.graduated_at,
            last_activity_at=entity.last_activity_at,
        )


class EnrollmentListResponse(BaseModel):
    """List of enrollments."""

    items: list[EnrollmentResponse]
    total: int
