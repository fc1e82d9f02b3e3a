"""Shared fixtures.

Tests run against the in-memory storage backend; Cassandra repositories are
tested separately with a mocked session.
"""

import os
from collections.abc import Iterator
from datetime import UTC, datetime, timedelta
from uuid import uuid4

import pytest


os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("DATABASE_BACKEND", "memory")
os.environ.setdefault("LOG_TO_FILE", "false")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from fastapi.testclient import TestClient  # noqa: E402
from jose import jwt  # noqa: E402

from learnhub.auth.permissions import UserRole  # noqa: E402
from learnhub.auth.schemas import AuthenticatedUser  # noqa: E402
from learnhub.config.settings import Settings, get_settings  # noqa: E402
from learnhub.core.database.memory import MemoryDatabase  # noqa: E402
from learnhub.courses.models import Course  # noqa: E402
from learnhub.enrollments.models import Enrollment  # noqa: E402
from learnhub.services import Services, build_services, memory_repositories  # noqa: E402


get_settings.cache_clear()


# ==============================================================================
# Users
# ==============================================================================


def make_user(role: UserRole) -> AuthenticatedUser:
    return AuthenticatedUser(id=uuid4(), role=role)


@pytest.fixture
def instructor() -> AuthenticatedUser:
    return make_user(UserRole.INSTRUCTOR)


@pytest.fixture
def other_instructor() -> AuthenticatedUser:
    return make_user(UserRole.INSTRUCTOR)


@pytest.fixture
def admin() -> AuthenticatedUser:
    return make_user(UserRole.ADMIN)


@pytest.fixture
def student() -> AuthenticatedUser:
    return make_user(UserRole.STUDENT)


@pytest.fixture
def other_student() -> AuthenticatedUser:
    return make_user(UserRole.STUDENT)


# ==============================================================================
# Services on the in-memory backend
# ==============================================================================


@pytest.fixture
def settings() -> Settings:
    return get_settings()


@pytest.fixture
def db() -> MemoryDatabase:
    return MemoryDatabase()


@pytest.fixture
def services(db: MemoryDatabase, settings: Settings) -> Services:
    return build_services(memory_repositories(db), settings)


@pytest.fixture
def course_service(services: Services):
    return services.course_service


@pytest.fixture
def ledger(services: Services):
    return services.enrollment_ledger


@pytest.fixture
def aggregator(services: Services):
    return services.progress_aggregator


@pytest.fixture
def lesson_progress_service(services: Services):
    return services.lesson_progress_service


@pytest.fixture
def quiz_service(services: Services):
    return services.quiz_service


@pytest.fixture
def short_question_service(services: Services):
    return services.short_question_service


@pytest.fixture
def notification_service(services: Services):
    return services.notification_service


@pytest.fixture
async def course(services: Services, instructor: AuthenticatedUser) -> Course:
    """Course of ``instructor`` with no lessons."""
    return await services.course_service.create_course(instructor, "Pharmacology 101")


@pytest.fixture
def add_lessons(services: Services):
    """Add ``count`` lessons to a course."""

    async def _add(course: Course, actor: AuthenticatedUser, count: int) -> list:
        return [
            await services.course_service.add_lesson(
                course.course_id, actor, f"Lesson {i}"
            )
            for i in range(1, count + 1)
        ]

    return _add


@pytest.fixture
def enroll(services: Services):
    """Request and approve an enrollment."""

    async def _enroll(
        course: Course, student: AuthenticatedUser, approver: AuthenticatedUser
    ) -> Enrollment:
        ledger = services.enrollment_ledger
        enrollment = await ledger.request_enrollment(student.id, course.course_id)
        return await ledger.approve_enrollment(enrollment.enrollment_id, approver)

    return _enroll


# ==============================================================================
# HTTP
# ==============================================================================


def make_token(user: AuthenticatedUser, token_type: str = "access", **claims) -> str:
    settings = get_settings()
    payload = {
        "sub": str(user.id),
        "role": user.role.value,
        "type": token_type,
        "exp": datetime.now(UTC) + timedelta(minutes=15),
        **claims,
    }
    return jwt.encode(payload, settings.auth_secret_key, algorithm=settings.auth_algorithm)


@pytest.fixture
def auth_headers():
    """Bearer headers for a user."""

    def _headers(user: AuthenticatedUser, **claims) -> dict[str, str]:
        return {"Authorization": f"Bearer {make_token(user, **claims)}"}

    return _headers


@pytest.fixture
def client() -> Iterator[TestClient]:
    """Client on a fresh app; the lifespan wires the in-memory backend."""
    from learnhub.main import create_app

    with TestClient(create_app()) as test_client:
        yield test_client
