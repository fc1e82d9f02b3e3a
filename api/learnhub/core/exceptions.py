"""Domain error taxonomy shared by every service.

Services raise these; routers translate them with ``to_http_exception``.
Each domain module subclasses the kinds below with its own message and
``code`` so API clients can tell e.g. a missing course from a missing
enrollment.
"""

from fastapi import HTTPException, status


class DomainError(Exception):
    """Base domain error."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, code: str = "domain_error"):
        self.message = message
        self.code = code
        super().__init__(message)


class NotFoundError(DomainError):
    """Referenced record does not exist."""

    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, message: str = "Record not found", code: str = "not_found"):
        super().__init__(message, code)


class ForbiddenError(DomainError):
    """Caller lacks ownership or role for the mutation."""

    status_code = status.HTTP_403_FORBIDDEN

    def __init__(
        self,
        message: str = "You are not allowed to perform this action",
        code: str = "forbidden",
    ):
        super().__init__(message, code)


class AlreadyEnrolledError(DomainError):
    """A non-cancelled enrollment already exists for the student and course."""

    status_code = status.HTTP_409_CONFLICT

    def __init__(self, message: str = "Student is already enrolled in this course"):
        super().__init__(message, "already_enrolled")


class AlreadyApprovedError(DomainError):
    """The enrollment is already approved."""

    status_code = status.HTTP_409_CONFLICT

    def __init__(self, message: str = "Enrollment is already approved"):
        super().__init__(message, "already_approved")


class NotEligibleError(DomainError):
    """A business precondition is not met."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY

    def __init__(self, message: str, code: str = "not_eligible"):
        super().__init__(message, code)


class ProgressComputeError(DomainError):
    """A sub-progress read failed; nothing was written."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    def __init__(self, message: str = "Could not compute course progress"):
        super().__init__(message, "progress_compute_failed")


class TransactionConflictError(DomainError):
    """The atomic transaction could not commit; retry the whole operation."""

    status_code = status.HTTP_409_CONFLICT

    def __init__(
        self, message: str = "Concurrent update detected, please retry the request"
    ):
        super().__init__(message, "transaction_conflict")


def to_http_exception(error: DomainError) -> HTTPException:
    """Convert a domain error to an HTTP exception."""
    return HTTPException(status_code=error.status_code, detail=error.message)
