"""Tests for the enrollment ledger on the in-memory backend.

Covers:
- request / approve / reject / cancel / force delete transitions
- student_count moving only when a record enters or leaves approved
- concurrent approvals counting the student once
- course completion eligibility
"""

import asyncio
from uuid import uuid4

import pytest

from learnhub.auth.permissions import UserRole
from learnhub.auth.schemas import AuthenticatedUser
from learnhub.core.exceptions import (
    AlreadyApprovedError,
    AlreadyEnrolledError,
    ForbiddenError,
    NotEligibleError,
    NotFoundError,
)
from learnhub.courses.service import CourseNotFoundError
from learnhub.enrollments.models import EnrollmentStatus
from learnhub.enrollments.repository import MemoryEnrollmentRepository
from learnhub.enrollments.service import (
    EnrollmentForbiddenError,
    EnrollmentLedger,
    EnrollmentNotFoundError,
    NotEnrolledError,
)
from learnhub.notifications import NotificationType


async def student_count(course_service, course) -> int:
    return (await course_service.get_course(course.course_id)).stats.student_count


def new_student() -> AuthenticatedUser:
    return AuthenticatedUser(id=uuid4(), role=UserRole.STUDENT)


class TestRequestEnrollment:
    """Tests for request_enrollment."""

    @pytest.mark.asyncio
    async def test_creates_pending_enrollment(self, ledger, course, student):
        """Should create a pending record with zero progress."""
        enrollment = await ledger.request_enrollment(student.id, course.course_id)

        assert enrollment.status == EnrollmentStatus.PENDING.value
        assert enrollment.progress == 0
        assert enrollment.completed is False
        stored = await ledger.get_for_student(course.course_id, student.id)
        assert stored.enrollment_id == enrollment.enrollment_id

    @pytest.mark.asyncio
    async def test_unknown_course(self, ledger, student):
        """Should raise CourseNotFoundError for a missing course."""
        with pytest.raises(CourseNotFoundError):
            await ledger.request_enrollment(student.id, uuid4())

    @pytest.mark.asyncio
    async def test_duplicate_request_rejected(self, ledger, course, student):
        """Should refuse a second request while one is pending."""
        await ledger.request_enrollment(student.id, course.course_id)

        with pytest.raises(AlreadyEnrolledError):
            await ledger.request_enrollment(student.id, course.course_id)

    @pytest.mark.asyncio
    async def test_request_while_approved_rejected(
        self, ledger, course, student, instructor, enroll
    ):
        """Should refuse a request while the student is approved."""
        await enroll(course, student, instructor)

        with pytest.raises(AlreadyEnrolledError):
            await ledger.request_enrollment(student.id, course.course_id)

    @pytest.mark.asyncio
    async def test_re_enroll_after_cancel(
        self, ledger, db, course, student, instructor
    ):
        """Should archive the cancelled record and create a fresh pending one."""
        first = await ledger.request_enrollment(student.id, course.course_id)
        await ledger.cancel_enrollment(first.enrollment_id, student.id)

        second = await ledger.request_enrollment(student.id, course.course_id)

        assert second.enrollment_id != first.enrollment_id
        assert second.status == EnrollmentStatus.PENDING.value
        history = db.get(MemoryEnrollmentRepository.HISTORY, first.enrollment_id)
        assert history.status == EnrollmentStatus.CANCELLED.value
        with pytest.raises(EnrollmentNotFoundError):
            await ledger.approve_enrollment(first.enrollment_id, instructor)

    @pytest.mark.asyncio
    async def test_concurrent_requests_create_one_record(
        self, ledger, course, student
    ):
        """Should let exactly one of two simultaneous requests through."""
        results = await asyncio.gather(
            ledger.request_enrollment(student.id, course.course_id),
            ledger.request_enrollment(student.id, course.course_id),
            return_exceptions=True,
        )

        errors = [r for r in results if isinstance(r, Exception)]
        assert len(errors) == 1
        assert isinstance(errors[0], AlreadyEnrolledError)


class TestApproveEnrollment:
    """Tests for approve_enrollment."""

    @pytest.mark.asyncio
    async def test_approve_counts_student(
        self, ledger, course_service, course, student, instructor
    ):
        """Should approve and increment student_count by one."""
        pending = await ledger.request_enrollment(student.id, course.course_id)

        approved = await ledger.approve_enrollment(pending.enrollment_id, instructor)

        assert approved.status == EnrollmentStatus.APPROVED.value
        assert approved.approved_at is not None
        assert await student_count(course_service, course) == 1

    @pytest.mark.asyncio
    async def test_admin_can_approve(
        self, ledger, course_service, course, student, admin
    ):
        """Should let an admin approve in any course."""
        pending = await ledger.request_enrollment(student.id, course.course_id)

        await ledger.approve_enrollment(pending.enrollment_id, admin)

        assert await student_count(course_service, course) == 1

    @pytest.mark.asyncio
    async def test_double_approve_is_not_counted_twice(
        self, ledger, course_service, course, student, instructor
    ):
        """Should raise AlreadyApprovedError and leave the count at one."""
        pending = await ledger.request_enrollment(student.id, course.course_id)
        await ledger.approve_enrollment(pending.enrollment_id, instructor)

        with pytest.raises(AlreadyApprovedError):
            await ledger.approve_enrollment(pending.enrollment_id, instructor)

        assert await student_count(course_service, course) == 1

    @pytest.mark.asyncio
    async def test_concurrent_approvals_count_once(
        self, ledger, course_service, course, student, instructor
    ):
        """Two simultaneous approvals: one succeeds, one is AlreadyApproved."""
        pending = await ledger.request_enrollment(student.id, course.course_id)

        results = await asyncio.gather(
            ledger.approve_enrollment(pending.enrollment_id, instructor),
            ledger.approve_enrollment(pending.enrollment_id, instructor),
            return_exceptions=True,
        )

        succeeded = [r for r in results if not isinstance(r, Exception)]
        failed = [r for r in results if isinstance(r, Exception)]
        assert len(succeeded) == 1
        assert len(failed) == 1
        assert isinstance(failed[0], AlreadyApprovedError)
        assert await student_count(course_service, course) == 1

    @pytest.mark.asyncio
    async def test_other_instructor_forbidden(
        self, ledger, course_service, course, student, other_instructor
    ):
        """Should refuse instructors of other courses."""
        pending = await ledger.request_enrollment(student.id, course.course_id)

        with pytest.raises(EnrollmentForbiddenError):
            await ledger.approve_enrollment(pending.enrollment_id, other_instructor)

        assert await student_count(course_service, course) == 0

    @pytest.mark.asyncio
    async def test_student_cannot_self_approve(self, ledger, course, student):
        """Should refuse the enrolling student."""
        pending = await ledger.request_enrollment(student.id, course.course_id)

        with pytest.raises(ForbiddenError):
            await ledger.approve_enrollment(pending.enrollment_id, student)

    @pytest.mark.asyncio
    async def test_unknown_enrollment(self, ledger, instructor):
        """Should raise a NotFound error."""
        with pytest.raises(NotFoundError):
            await ledger.approve_enrollment(uuid4(), instructor)

    @pytest.mark.asyncio
    async def test_cancelled_cannot_be_approved(
        self, ledger, course_service, course, student, instructor
    ):
        """Should refuse to approve a cancelled record."""
        pending = await ledger.request_enrollment(student.id, course.course_id)
        await ledger.cancel_enrollment(pending.enrollment_id, student.id)

        with pytest.raises(NotEligibleError) as exc_info:
            await ledger.approve_enrollment(pending.enrollment_id, instructor)

        assert exc_info.value.code == "enrollment_cancelled"
        assert await student_count(course_service, course) == 0


class TestCancelEnrollment:
    """Tests for cancel_enrollment."""

    @pytest.mark.asyncio
    async def test_cancel_approved_uncounts(
        self, ledger, course_service, course, student, instructor, enroll
    ):
        """Should cancel and decrement student_count."""
        enrollment = await enroll(course, student, instructor)

        cancelled = await ledger.cancel_enrollment(enrollment.enrollment_id, student.id)

        assert cancelled.status == EnrollmentStatus.CANCELLED.value
        assert cancelled.cancelled_at is not None
        assert await student_count(course_service, course) == 0

    @pytest.mark.asyncio
    async def test_cancel_pending_leaves_count(
        self,
        ledger,
        course_service,
        course,
        student,
        other_student,
        instructor,
        enroll,
    ):
        """Should not touch the count when the record was never approved."""
        await enroll(course, other_student, instructor)
        pending = await ledger.request_enrollment(student.id, course.course_id)

        await ledger.cancel_enrollment(pending.enrollment_id, student.id)

        assert await student_count(course_service, course) == 1

    @pytest.mark.asyncio
    async def test_cancel_twice(self, ledger, course, student):
        """Should refuse to cancel an already cancelled record."""
        pending = await ledger.request_enrollment(student.id, course.course_id)
        await ledger.cancel_enrollment(pending.enrollment_id, student.id)

        with pytest.raises(NotEligibleError) as exc_info:
            await ledger.cancel_enrollment(pending.enrollment_id, student.id)

        assert exc_info.value.code == "already_cancelled"

    @pytest.mark.asyncio
    async def test_only_owner_can_cancel(
        self, ledger, course, student, other_student, instructor
    ):
        """Should refuse other students and the instructor."""
        pending = await ledger.request_enrollment(student.id, course.course_id)

        with pytest.raises(EnrollmentForbiddenError):
            await ledger.cancel_enrollment(pending.enrollment_id, other_student.id)
        with pytest.raises(EnrollmentForbiddenError):
            await ledger.cancel_enrollment(pending.enrollment_id, instructor.id)


class TestRejectAndForceDelete:
    """Tests for reject_enrollment and force_delete_enrollment."""

    @pytest.mark.asyncio
    async def test_reject_pending_deletes_record(
        self, ledger, course_service, course, student, instructor
    ):
        """Should hard delete the record without moving the count."""
        pending = await ledger.request_enrollment(student.id, course.course_id)

        await ledger.reject_enrollment(pending.enrollment_id, instructor)

        assert await ledger.repository.get(pending.enrollment_id) is None
        assert await student_count(course_service, course) == 0

    @pytest.mark.asyncio
    async def test_reject_approved_uncounts(
        self, ledger, course_service, course, student, instructor, enroll
    ):
        """Should decrement the count when rejecting an approved record."""
        enrollment = await enroll(course, student, instructor)

        await ledger.reject_enrollment(enrollment.enrollment_id, instructor)

        assert await student_count(course_service, course) == 0

    @pytest.mark.asyncio
    async def test_reject_unknown(self, ledger, instructor):
        """Should raise EnrollmentNotFoundError."""
        with pytest.raises(EnrollmentNotFoundError):
            await ledger.reject_enrollment(uuid4(), instructor)

    @pytest.mark.asyncio
    async def test_student_can_request_again_after_rejection(
        self, ledger, course, student, instructor
    ):
        """Should allow a new request once the record is gone."""
        pending = await ledger.request_enrollment(student.id, course.course_id)
        await ledger.reject_enrollment(pending.enrollment_id, instructor)

        again = await ledger.request_enrollment(student.id, course.course_id)

        assert again.status == EnrollmentStatus.PENDING.value

    @pytest.mark.asyncio
    async def test_force_delete_by_admin(
        self, ledger, course_service, course, student, instructor, admin, enroll
    ):
        """Should remove an approved student and uncount them."""
        enrollment = await enroll(course, student, instructor)

        deleted = await ledger.force_delete_enrollment(enrollment.enrollment_id, admin)

        assert deleted.enrollment_id == enrollment.enrollment_id
        assert await student_count(course_service, course) == 0

    @pytest.mark.asyncio
    async def test_force_delete_cancelled_leaves_count(
        self,
        ledger,
        course_service,
        course,
        student,
        other_student,
        instructor,
        enroll,
    ):
        """Should not move the count for a cancelled record."""
        await enroll(course, other_student, instructor)
        enrollment = await enroll(course, student, instructor)
        await ledger.cancel_enrollment(enrollment.enrollment_id, student.id)

        await ledger.force_delete_enrollment(enrollment.enrollment_id, instructor)

        assert await student_count(course_service, course) == 1

    @pytest.mark.asyncio
    async def test_force_delete_forbidden(
        self, ledger, course, student, instructor, other_instructor, enroll
    ):
        """Should refuse anyone but the course instructor or an admin."""
        enrollment = await enroll(course, student, instructor)

        with pytest.raises(EnrollmentForbiddenError):
            await ledger.force_delete_enrollment(
                enrollment.enrollment_id, other_instructor
            )
        with pytest.raises(EnrollmentForbiddenError):
            await ledger.force_delete_enrollment(enrollment.enrollment_id, student)


class TestStudentCount:
    """student_count equals the number of approved records."""

    @pytest.mark.asyncio
    async def test_count_follows_mixed_transitions(
        self, ledger, course_service, course, instructor, enroll
    ):
        """Should end with exactly the approved records counted."""
        students = [new_student() for _ in range(5)]
        enrollments = [await enroll(course, s, instructor) for s in students]

        await ledger.cancel_enrollment(enrollments[0].enrollment_id, students[0].id)
        await ledger.reject_enrollment(enrollments[1].enrollment_id, instructor)
        pending_student = uuid4()
        await ledger.request_enrollment(pending_student, course.course_id)

        approved = [
            e
            for e in await ledger.list_for_course(course.course_id, instructor)
            if e.is_approved
        ]
        assert len(approved) == 3
        assert await student_count(course_service, course) == 3


class TestCourseCompletion:
    """Tests for approve_course_completion."""

    @pytest.mark.asyncio
    async def test_progress_below_100_not_eligible(
        self, ledger, course, student, instructor, admin, enroll
    ):
        """Should refuse with NotEligible whoever asks."""
        await enroll(course, student, instructor)
        await ledger.set_progress(course.course_id, student.id, 80)

        for actor in (instructor, admin):
            with pytest.raises(NotEligibleError) as exc_info:
                await ledger.approve_course_completion(
                    course.course_id, student.id, actor
                )
            assert exc_info.value.code == "progress_incomplete"

    @pytest.mark.asyncio
    async def test_graduates_at_100(self, ledger, course, student, instructor, enroll):
        """Should mark the enrollment completed and instructor approved."""
        await enroll(course, student, instructor)
        await ledger.set_progress(course.course_id, student.id, 100)

        graduated = await ledger.approve_course_completion(
            course.course_id, student.id, instructor
        )

        assert graduated.completed is True
        assert graduated.instructor_approved is True
        assert graduated.graduated_at is not None
        stored = await ledger.get_for_student(course.course_id, student.id)
        assert stored.completed is True

    @pytest.mark.asyncio
    async def test_already_completed(self, ledger, course, student, instructor, enroll):
        """Should refuse a second completion approval."""
        await enroll(course, student, instructor)
        await ledger.set_progress(course.course_id, student.id, 100)
        await ledger.approve_course_completion(course.course_id, student.id, instructor)

        with pytest.raises(NotEligibleError) as exc_info:
            await ledger.approve_course_completion(
                course.course_id, student.id, instructor
            )

        assert exc_info.value.code == "already_completed"

    @pytest.mark.asyncio
    async def test_other_instructor_forbidden(
        self, ledger, course, student, instructor, other_instructor, enroll
    ):
        """Should refuse instructors of other courses once eligible."""
        await enroll(course, student, instructor)
        await ledger.set_progress(course.course_id, student.id, 100)

        with pytest.raises(EnrollmentForbiddenError):
            await ledger.approve_course_completion(
                course.course_id, student.id, other_instructor
            )

    @pytest.mark.asyncio
    async def test_pending_enrollment_not_eligible(
        self, ledger, course, student, instructor
    ):
        """Should require an approved enrollment."""
        await ledger.request_enrollment(student.id, course.course_id)

        with pytest.raises(NotEligibleError) as exc_info:
            await ledger.approve_course_completion(
                course.course_id, student.id, instructor
            )

        assert exc_info.value.code == "enrollment_not_approved"

    @pytest.mark.asyncio
    async def test_missing_enrollment(self, ledger, course, student, instructor):
        """Should raise EnrollmentNotFoundError."""
        with pytest.raises(EnrollmentNotFoundError):
            await ledger.approve_course_completion(
                course.course_id, student.id, instructor
            )

    @pytest.mark.asyncio
    async def test_progress_frozen_after_graduation(
        self, ledger, course, student, instructor, enroll
    ):
        """Should not overwrite progress once the student graduated."""
        await enroll(course, student, instructor)
        await ledger.set_progress(course.course_id, student.id, 100)
        await ledger.approve_course_completion(course.course_id, student.id, instructor)

        written = await ledger.set_progress(course.course_id, student.id, 40)

        assert written is False
        stored = await ledger.get_for_student(course.course_id, student.id)
        assert stored.progress == 100


class TestSetProgress:
    """Tests for set_progress."""

    @pytest.mark.asyncio
    async def test_clamps_to_range(self, ledger, course, student, instructor, enroll):
        """Should keep progress within 0..100."""
        await enroll(course, student, instructor)

        await ledger.set_progress(course.course_id, student.id, 140)
        assert (await ledger.get_for_student(course.course_id, student.id)).progress == 100

        await ledger.set_progress(course.course_id, student.id, -5)
        assert (await ledger.get_for_student(course.course_id, student.id)).progress == 0

    @pytest.mark.asyncio
    async def test_without_enrollment(self, ledger, course, student):
        """Should report nothing written."""
        assert await ledger.set_progress(course.course_id, student.id, 50) is False

    @pytest.mark.asyncio
    async def test_does_not_touch_status(
        self, ledger, course_service, course, student, instructor, enroll
    ):
        """Should leave status and student_count alone."""
        await enroll(course, student, instructor)

        await ledger.set_progress(course.course_id, student.id, 55)

        stored = await ledger.get_for_student(course.course_id, student.id)
        assert stored.status == EnrollmentStatus.APPROVED.value
        assert stored.last_activity_at is not None
        assert await student_count(course_service, course) == 1


class TestQueries:
    """Tests for the read operations."""

    @pytest.mark.asyncio
    async def test_require_approved(self, ledger, course, student, instructor):
        """Should raise NotEnrolledError until the enrollment is approved."""
        pending = await ledger.request_enrollment(student.id, course.course_id)
        with pytest.raises(NotEnrolledError):
            await ledger.require_approved(course.course_id, student.id)

        await ledger.approve_enrollment(pending.enrollment_id, instructor)

        enrollment = await ledger.require_approved(course.course_id, student.id)
        assert enrollment.enrollment_id == pending.enrollment_id

    @pytest.mark.asyncio
    async def test_list_for_course_filters_status(
        self, ledger, course, student, other_student, instructor, enroll
    ):
        """Should filter by status when asked."""
        await enroll(course, student, instructor)
        await ledger.request_enrollment(other_student.id, course.course_id)

        pending = await ledger.list_for_course(
            course.course_id, instructor, EnrollmentStatus.PENDING
        )
        everything = await ledger.list_for_course(course.course_id, instructor)

        assert [e.student_id for e in pending] == [other_student.id]
        assert len(everything) == 2

    @pytest.mark.asyncio
    async def test_list_for_course_forbidden_to_students(self, ledger, course, student):
        """Should refuse students."""
        with pytest.raises(EnrollmentForbiddenError):
            await ledger.list_for_course(course.course_id, student)

    @pytest.mark.asyncio
    async def test_get_enrollment_visibility(
        self, ledger, course, student, other_student, instructor
    ):
        """Should show a record to its student and managers only."""
        pending = await ledger.request_enrollment(student.id, course.course_id)

        assert (await ledger.get_enrollment(pending.enrollment_id, student)).student_id
        assert await ledger.get_enrollment(pending.enrollment_id, instructor)
        with pytest.raises(EnrollmentForbiddenError):
            await ledger.get_enrollment(pending.enrollment_id, other_student)

    @pytest.mark.asyncio
    async def test_list_for_student(
        self, ledger, course_service, student, instructor
    ):
        """Should list the student's enrollments across courses."""
        first = await course_service.create_course(instructor, "Course A")
        second = await course_service.create_course(instructor, "Course B")
        await ledger.request_enrollment(student.id, first.course_id)
        await ledger.request_enrollment(student.id, second.course_id)

        enrollments = await ledger.list_for_student(student.id)

        assert {e.course_id for e in enrollments} == {
            first.course_id,
            second.course_id,
        }


class TestNotifications:
    """Notification side effects of the ledger."""

    @pytest.mark.asyncio
    async def test_request_notifies_instructor(
        self, ledger, notification_service, course, student, instructor
    ):
        """Should put an enrollment request in the instructor's inbox."""
        enrollment = await ledger.request_enrollment(student.id, course.course_id)

        inbox = await notification_service.list_for_user(instructor.id)

        assert len(inbox) == 1
        assert inbox[0].type == NotificationType.ENROLLMENT_REQUESTED
        assert inbox[0].reference_id == enrollment.enrollment_id
        assert inbox[0].actor_id == student.id

    @pytest.mark.asyncio
    async def test_approval_notifies_student(
        self, notification_service, course, student, instructor, enroll
    ):
        """Should tell the student their enrollment was approved."""
        await enroll(course, student, instructor)

        inbox = await notification_service.list_for_user(student.id)

        assert [n.type for n in inbox] == [NotificationType.ENROLLMENT_APPROVED]

    @pytest.mark.asyncio
    async def test_notification_failure_does_not_undo_transition(
        self, db, course_service, course, student, instructor
    ):
        """Should keep the enrollment when the notification sink fails."""

        class BrokenSink:
            async def notify(self, event, payload):
                raise RuntimeError("inbox unavailable")

        ledger = EnrollmentLedger(
            repository=MemoryEnrollmentRepository(db),
            course_service=course_service,
            notifications=BrokenSink(),
        )

        pending = await ledger.request_enrollment(student.id, course.course_id)
        approved = await ledger.approve_enrollment(pending.enrollment_id, instructor)

        assert approved.is_approved
        assert await student_count(course_service, course) == 1
