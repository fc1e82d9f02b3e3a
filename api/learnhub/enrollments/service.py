"""Enrollment ledger.

State machine of a student's enrollment in a course::

    (none) --request--> pending --approve--> approved
    pending/approved --cancel--> cancelled --request--> pending
    pending/approved/cancelled --reject/force delete--> (deleted)

``approved`` is exactly the set of records counted in the course's
``student_count``. Every transition that enters or leaves ``approved``
moves the counter by one in the same transaction as the status change, and
the status it expects to find is part of that transaction, so a retried or
duplicated request can never count a student twice.
"""

from typing import TYPE_CHECKING, Any
from uuid import UUID

import structlog

from learnhub.auth.schemas import AuthenticatedUser
from learnhub.core.exceptions import (
    AlreadyApprovedError,
    AlreadyEnrolledError,
    ForbiddenError,
    NotEligibleError,
    NotFoundError,
    TransactionConflictError,
)
from learnhub.courses.service import CourseNotFoundError
from learnhub.notifications import NotificationType, notify_safely
from learnhub.utils import utc_now

from .models import Enrollment, EnrollmentStatus
from .repository import DEFAULT_MAX_ATTEMPTS


if TYPE_CHECKING:
    from learnhub.courses.models import Course
    from learnhub.courses.service import CourseService
    from learnhub.notifications.service import NotificationSink

    from .repository import EnrollmentRepository


logger = structlog.get_logger(__name__)

MAX_PROGRESS = 100


# ==============================================================================
# Custom Exceptions
# ==============================================================================


class EnrollmentNotFoundError(NotFoundError):
    """Enrollment not found."""

    def __init__(self, message: str = "Enrollment not found"):
        super().__init__(message, "enrollment_not_found")


class NotEnrolledError(ForbiddenError):
    """Student has no approved enrollment in the course."""

    def __init__(self, message: str = "You are not enrolled in this course"):
        super().__init__(message, "not_enrolled")


class EnrollmentForbiddenError(ForbiddenError):
    """Caller may not act on this enrollment."""

    def __init__(self, message: str = "You are not allowed to manage this enrollment"):
        super().__init__(message, "enrollment_forbidden")


# ==============================================================================
# Enrollment Ledger
# ==============================================================================


class EnrollmentLedger:
    """Enrollment state machine and owner of the course's student count."""

    def __init__(
        self,
        repository: "EnrollmentRepository",
        course_service: "CourseService",
        notifications: "NotificationSink | None" = None,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ):
        self.repository = repository
        self.courses = course_service
        self.notifications = notifications
        self.max_attempts = max_attempts

    # --------------------------------------------------------------------------
    # Helpers
    # --------------------------------------------------------------------------

    async def _require_enrollment(self, enrollment_id: UUID) -> Enrollment:
        enrollment = await self.repository.get(enrollment_id)
        if enrollment is None:
            raise EnrollmentNotFoundError
        return enrollment

    async def _require_manager(
        self, course_id: UUID, actor: AuthenticatedUser
    ) -> "Course | None":
        """Check the actor is the course instructor or an admin."""
        course = await self.courses.find_by_id(course_id)
        instructor_id = course.instructor_id if course else None
        if not actor.can_manage(instructor_id):
            raise EnrollmentForbiddenError
        return course

    async def _notify(self, event: NotificationType, **payload: Any) -> None:
        await notify_safely(self.notifications, event, payload)

    # --------------------------------------------------------------------------
    # Transitions
    # --------------------------------------------------------------------------

    async def request_enrollment(self, student_id: UUID, course_id: UUID) -> Enrollment:
        """Create a pending enrollment.

        A cancelled record of the same pair is archived and replaced.

        Raises:
            CourseNotFoundError: If the course does not exist
            AlreadyEnrolledError: If a pending or approved record exists
        """
        course = await self.courses.find_by_id(course_id)
        if course is None:
            raise CourseNotFoundError

        existing = await self.repository.find(course_id, student_id)
        if existing is not None and not existing.is_cancelled:
            raise AlreadyEnrolledError

        enrollment = Enrollment(course_id=course_id, student_id=student_id)
        if existing is None:
            created = await self.repository.create(enrollment)
        else:
            created = await self.repository.replace_cancelled(existing, enrollment)

        # Lost the race against a concurrent request for the same pair
        if not created:
            raise AlreadyEnrolledError

        logger.info(
            "enrollment_requested",
            enrollment_id=str(enrollment.enrollment_id),
            course_id=str(course_id),
            student_id=str(student_id),
            re_enrollment=existing is not None,
        )
        await self._notify(
            NotificationType.ENROLLMENT_REQUESTED,
            recipient_id=course.instructor_id,
            actor_id=student_id,
            course_id=course_id,
            reference_id=enrollment.enrollment_id,
            message=f"A student asked to join {course.title}",
        )
        return enrollment

    async def approve_enrollment(
        self, enrollment_id: UUID, actor: AuthenticatedUser
    ) -> Enrollment:
        """Approve a pending enrollment and count the student.

        Raises:
            EnrollmentNotFoundError: If the enrollment does not exist
            EnrollmentForbiddenError: If actor is not instructor/admin
            AlreadyApprovedError: If it is already approved
            NotEligibleError: If it was cancelled
        """
        enrollment = await self._require_enrollment(enrollment_id)
        await self._require_manager(enrollment.course_id, actor)

        if enrollment.is_approved:
            raise AlreadyApprovedError
        if enrollment.is_cancelled:
            raise NotEligibleError(
                "Cancelled enrollments cannot be approved", "enrollment_cancelled"
            )

        now = utc_now()
        applied = await self.repository.transition(
            enrollment,
            EnrollmentStatus.APPROVED,
            {"approved_at": now},
            counter_delta=1,
        )
        if not applied:
            # Someone else moved the record between our read and write
            current = await self.repository.get(enrollment_id)
            if current is None:
                raise EnrollmentNotFoundError
            if current.is_approved:
                raise AlreadyApprovedError
            raise NotEligibleError(
                "Cancelled enrollments cannot be approved", "enrollment_cancelled"
            )

        enrollment.status = EnrollmentStatus.APPROVED.value
        enrollment.approved_at = now

        logger.info(
            "enrollment_approved",
            enrollment_id=str(enrollment_id),
            course_id=str(enrollment.course_id),
            student_id=str(enrollment.student_id),
            approved_by=str(actor.id),
        )
        await self._notify(
            NotificationType.ENROLLMENT_APPROVED,
            recipient_id=enrollment.student_id,
            actor_id=actor.id,
            course_id=enrollment.course_id,
            reference_id=enrollment_id,
        )
        return enrollment

    async def _delete_reversing_counter(self, enrollment_id: UUID) -> Enrollment:
        """Hard delete, uncounting the student if the record was approved.

        The delete is guarded on the status read just before it; if the
        status changed in between, the decision is re-made on fresh state.
        """
        for _ in range(self.max_attempts):
            enrollment = await self._require_enrollment(enrollment_id)
            if await self.repository.delete(enrollment, -enrollment.counted):
                return enrollment
        raise TransactionConflictError

    async def reject_enrollment(
        self, enrollment_id: UUID, actor: AuthenticatedUser
    ) -> Enrollment:
        """Reject (hard delete) an enrollment.

        Raises:
            EnrollmentNotFoundError: If the enrollment does not exist
            EnrollmentForbiddenError: If actor is not instructor/admin
        """
        enrollment = await self._require_enrollment(enrollment_id)
        await self._require_manager(enrollment.course_id, actor)

        deleted = await self._delete_reversing_counter(enrollment_id)

        logger.info(
            "enrollment_rejected",
            enrollment_id=str(enrollment_id),
            course_id=str(deleted.course_id),
            student_id=str(deleted.student_id),
            was_approved=deleted.is_approved,
            rejected_by=str(actor.id),
        )
        await self._notify(
            NotificationType.ENROLLMENT_REJECTED,
            recipient_id=deleted.student_id,
            actor_id=actor.id,
            course_id=deleted.course_id,
            reference_id=enrollment_id,
        )
        return deleted

    async def force_delete_enrollment(
        self, enrollment_id: UUID, actor: AuthenticatedUser
    ) -> Enrollment:
        """Remove a student from a course regardless of status."""
        enrollment = await self._require_enrollment(enrollment_id)
        await self._require_manager(enrollment.course_id, actor)

        deleted = await self._delete_reversing_counter(enrollment_id)

        logger.info(
            "enrollment_force_deleted",
            enrollment_id=str(enrollment_id),
            course_id=str(deleted.course_id),
            student_id=str(deleted.student_id),
            was_approved=deleted.is_approved,
            deleted_by=str(actor.id),
        )
        await self._notify(
            NotificationType.ENROLLMENT_REMOVED,
            recipient_id=deleted.student_id,
            actor_id=actor.id,
            course_id=deleted.course_id,
            reference_id=enrollment_id,
        )
        return deleted

    async def cancel_enrollment(
        self, enrollment_id: UUID, requesting_student_id: UUID
    ) -> Enrollment:
        """Cancel the caller's own enrollment.

        Raises:
            EnrollmentNotFoundError: If the enrollment does not exist
            EnrollmentForbiddenError: If it belongs to another student
            NotEligibleError: If it is already cancelled
        """
        for _ in range(self.max_attempts):
            enrollment = await self._require_enrollment(enrollment_id)
            if enrollment.student_id != requesting_student_id:
                raise EnrollmentForbiddenError("You can only cancel your own enrollment")
            if enrollment.is_cancelled:
                raise NotEligibleError(
                    "Enrollment is already cancelled", "already_cancelled"
                )

            was_approved = enrollment.is_approved
            now = utc_now()
            applied = await self.repository.transition(
                enrollment,
                EnrollmentStatus.CANCELLED,
                {"cancelled_at": now},
                counter_delta=-enrollment.counted,
            )
            if applied:
                break
        else:
            raise TransactionConflictError

        enrollment.status = EnrollmentStatus.CANCELLED.value
        enrollment.cancelled_at = now

        logger.info(
            "enrollment_cancelled",
            enrollment_id=str(enrollment_id),
            course_id=str(enrollment.course_id),
            student_id=str(requesting_student_id),
            was_approved=was_approved,
        )
        course = await self.courses.find_by_id(enrollment.course_id)
        if course is not None:
            await self._notify(
                NotificationType.ENROLLMENT_CANCELLED,
                recipient_id=course.instructor_id,
                actor_id=requesting_student_id,
                course_id=enrollment.course_id,
                reference_id=enrollment_id,
            )
        return enrollment

    async def approve_course_completion(
        self, course_id: UUID, student_id: UUID, actor: AuthenticatedUser
    ) -> Enrollment:
        """Graduate a student who reached 100% progress.

        Eligibility is checked before authorization: progress below 100 is
        refused with NotEligible whoever asks.

        Raises:
            CourseNotFoundError: If the course does not exist
            EnrollmentNotFoundError: If the student has no enrollment
            NotEligibleError: Not approved, progress < 100, or already completed
            EnrollmentForbiddenError: If actor is not instructor/admin
        """
        course = await self.courses.find_by_id(course_id)
        if course is None:
            raise CourseNotFoundError

        enrollment = await self.repository.find(course_id, student_id)
        if enrollment is None:
            raise EnrollmentNotFoundError
        self._check_completion_eligible(enrollment)

        if not actor.can_manage(course.instructor_id):
            raise EnrollmentForbiddenError

        now = utc_now()
        if not await self.repository.mark_graduated(enrollment, now):
            current = await self.repository.find(course_id, student_id)
            if current is None or current.enrollment_id != enrollment.enrollment_id:
                raise EnrollmentNotFoundError
            self._check_completion_eligible(current)
            raise TransactionConflictError

        enrollment.completed = True
        enrollment.instructor_approved = True
        enrollment.graduated_at = now

        logger.info(
            "course_completed",
            enrollment_id=str(enrollment.enrollment_id),
            course_id=str(course_id),
            student_id=str(student_id),
            approved_by=str(actor.id),
        )
        await self._notify(
            NotificationType.COURSE_COMPLETED,
            recipient_id=student_id,
            actor_id=actor.id,
            course_id=course_id,
            reference_id=enrollment.enrollment_id,
            message=f"Congratulations, you completed {course.title}",
        )
        return enrollment

    @staticmethod
    def _check_completion_eligible(enrollment: Enrollment) -> None:
        if not enrollment.is_approved:
            raise NotEligibleError(
                "Enrollment must be approved before completion",
                "enrollment_not_approved",
            )
        if enrollment.completed:
            raise NotEligibleError("Course already completed", "already_completed")
        if enrollment.progress < MAX_PROGRESS:
            raise NotEligibleError(
                f"Course progress is {enrollment.progress}%, 100% is required",
                "progress_incomplete",
            )

    async def set_progress(self, course_id: UUID, student_id: UUID, progress: int) -> bool:
        """Store derived progress; never touches status or counters.

        Returns:
            False if there is no enrollment or the student already graduated
        """
        progress = max(0, min(progress, MAX_PROGRESS))
        enrollment = await self.repository.find(course_id, student_id)
        if enrollment is None:
            return False

        written = await self.repository.set_progress(enrollment, progress, utc_now())
        if written:
            logger.info(
                "course_progress_updated",
                course_id=str(course_id),
                student_id=str(student_id),
                progress=progress,
            )
        return written

    # --------------------------------------------------------------------------
    # Queries
    # --------------------------------------------------------------------------

    async def get_enrollment(
        self, enrollment_id: UUID, actor: AuthenticatedUser
    ) -> Enrollment:
        """Get an enrollment visible to its student or the course managers."""
        enrollment = await self._require_enrollment(enrollment_id)
        if enrollment.student_id != actor.id:
            await self._require_manager(enrollment.course_id, actor)
        return enrollment

    async def get_for_student(self, course_id: UUID, student_id: UUID) -> Enrollment:
        enrollment = await self.repository.find(course_id, student_id)
        if enrollment is None:
            raise EnrollmentNotFoundError
        return enrollment

    async def require_approved(self, course_id: UUID, student_id: UUID) -> Enrollment:
        """Get the student's approved enrollment or raise NotEnrolledError."""
        enrollment = await self.repository.find(course_id, student_id)
        if enrollment is None or not enrollment.is_approved:
            raise NotEnrolledError
        return enrollment

    async def list_for_student(self, student_id: UUID) -> list[Enrollment]:
        enrollments = await self.repository.list_by_student(student_id)
        return sorted(enrollments, key=lambda e: e.enrolled_at, reverse=True)

    async def list_for_course(
        self,
        course_id: UUID,
        actor: AuthenticatedUser,
        status: EnrollmentStatus | None = None,
    ) -> list[Enrollment]:
        """List a course's enrollments (instructor/admin only)."""
        course = await self._require_manager(course_id, actor)
        if course is None:
            raise CourseNotFoundError

        enrollments = await self.repository.list_by_course(course_id)
        if status is not None:
            enrollments = [e for e in enrollments if e.status == status.value]
        return sorted(enrollments, key=lambda e: e.enrolled_at, reverse=True)
