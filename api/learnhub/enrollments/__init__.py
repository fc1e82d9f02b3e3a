"""Enrollment ledger: enrollment lifecycle and course student counts."""

from .models import ENROLLMENTS_TABLES_CQL, Enrollment, EnrollmentStatus
from .service import EnrollmentLedger


__all__ = [
    "ENROLLMENTS_TABLES_CQL",
    "Enrollment",
    "EnrollmentLedger",
    "EnrollmentStatus",
]
