"""Enrollment API endpoints.

Provides routes for:
- Enrollment requests and cancellation by students
- Approval, rejection and removal by the course instructor or an admin
- Course completion approval
- Enrollment queries
"""

from uuid import UUID

from fastapi import APIRouter, Query, status

from learnhub.auth.dependencies import CurrentUser
from learnhub.core.exceptions import DomainError, to_http_exception

from .dependencies import EnrollmentLedgerDep
from .models import EnrollmentStatus
from .schemas import EnrollmentListResponse, EnrollmentResponse, EnrollRequest


router = APIRouter(prefix="/v1/enrollments", tags=["enrollments"])


# ==============================================================================
# Student Endpoints
# ==============================================================================


@router.post(
    "",
    response_model=EnrollmentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Request enrollment in a course",
)
async def request_enrollment(
    data: EnrollRequest,
    ledger: EnrollmentLedgerDep,
    user: CurrentUser,
) -> EnrollmentResponse:
    """Create a pending enrollment for the current user."""
    try:
        enrollment = await ledger.request_enrollment(user.id, data.course_id)
        return EnrollmentResponse.from_entity(enrollment)
    except DomainError as e:
        raise to_http_exception(e) from e


@router.post(
    "/{enrollment_id}/cancel",
    response_model=EnrollmentResponse,
    summary="Cancel own enrollment",
)
async def cancel_enrollment(
    enrollment_id: UUID,
    ledger: EnrollmentLedgerDep,
    user: CurrentUser,
) -> EnrollmentResponse:
    try:
        enrollment = await ledger.cancel_enrollment(enrollment_id, user.id)
        return EnrollmentResponse.from_entity(enrollment)
    except DomainError as e:
        raise to_http_exception(e) from e


@router.get(
    "/me",
    response_model=EnrollmentListResponse,
    summary="List my enrollments",
)
async def list_my_enrollments(
    ledger: EnrollmentLedgerDep,
    user: CurrentUser,
) -> EnrollmentListResponse:
    """All enrollments of the current user, newest first."""
    enrollments = await ledger.list_for_student(user.id)
    return EnrollmentListResponse(
        items=[EnrollmentResponse.from_entity(e) for e in enrollments],
        total=len(enrollments),
    )


# ==============================================================================
# Instructor / Admin Endpoints
# ==============================================================================


@router.post(
    "/{enrollment_id}/approve",
    response_model=EnrollmentResponse,
    summary="Approve an enrollment request",
)
async def approve_enrollment(
    enrollment_id: UUID,
    ledger: EnrollmentLedgerDep,
    user: CurrentUser,
) -> EnrollmentResponse:
    try:
        enrollment = await ledger.approve_enrollment(enrollment_id, user)
        return EnrollmentResponse.from_entity(enrollment)
    except DomainError as e:
        raise to_http_exception(e) from e


@router.post(
    "/{enrollment_id}/reject",
    response_model=EnrollmentResponse,
    summary="Reject an enrollment request",
)
async def reject_enrollment(
    enrollment_id: UUID,
    ledger: EnrollmentLedgerDep,
    user: CurrentUser,
) -> EnrollmentResponse:
    """Reject the request; the record is deleted."""
    try:
        enrollment = await ledger.reject_enrollment(enrollment_id, user)
        return EnrollmentResponse.from_entity(enrollment)
    except DomainError as e:
        raise to_http_exception(e) from e


@router.delete(
    "/{enrollment_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Remove a student from a course",
)
async def delete_enrollment(
    enrollment_id: UUID,
    ledger: EnrollmentLedgerDep,
    user: CurrentUser,
) -> None:
    try:
        await ledger.force_delete_enrollment(enrollment_id, user)
    except DomainError as e:
        raise to_http_exception(e) from e


@router.post(
    "/courses/{course_id}/students/{student_id}/complete",
    response_model=EnrollmentResponse,
    summary="Approve course completion",
)
async def approve_course_completion(
    course_id: UUID,
    student_id: UUID,
    ledger: EnrollmentLedgerDep,
    user: CurrentUser,
) -> EnrollmentResponse:
    """Graduate a student whose course progress reached 100%."""
    try:
        enrollment = await ledger.approve_course_completion(course_id, student_id, user)
        return EnrollmentResponse.from_entity(enrollment)
    except DomainError as e:
        raise to_http_exception(e) from e


@router.get(
    "/courses/{course_id}",
    response_model=EnrollmentListResponse,
    summary="List course enrollments",
)
async def list_course_enrollments(
    course_id: UUID,
    ledger: EnrollmentLedgerDep,
    user: CurrentUser,
    status_filter: EnrollmentStatus | None = Query(
        default=None, alias="status", description="Filter by status"
    ),
) -> EnrollmentListResponse:
    try:
        enrollments = await ledger.list_for_course(course_id, user, status_filter)
    except DomainError as e:
        raise to_http_exception(e) from e
    return EnrollmentListResponse(
        items=[EnrollmentResponse.from_entity(e) for e in enrollments],
        total=len(enrollments),
    )


# ==============================================================================
# Queries
# ==============================================================================


@router.get(
    "/{enrollment_id}",
    response_model=EnrollmentResponse,
    summary="Get an enrollment",
)
async def get_enrollment(
    enrollment_id: UUID,
    ledger: EnrollmentLedgerDep,
    user: CurrentUser,
) -> EnrollmentResponse:
    """Visible to the enrolled student and the course managers."""
    try:
        enrollment = await ledger.get_enrollment(enrollment_id, user)
        return EnrollmentResponse.from_entity(enrollment)
    except DomainError as e:
        raise to_http_exception(e) from e
