"""Service wiring.

Builds the repositories for the configured storage backend and the domain
services on top of them. ``main.py`` runs this at startup; the test suite
runs it against the in-memory backend.
"""

from dataclasses import dataclass
from typing import Any

from learnhub.config.settings import Settings
from learnhub.core.database.memory import MemoryDatabase
from learnhub.courses.repository import (
    CassandraCourseRepository,
    CassandraLessonRepository,
    CourseRepository,
    LessonRepository,
    MemoryCourseRepository,
    MemoryLessonRepository,
)
from learnhub.courses.service import CourseService
from learnhub.enrollments.repository import (
    CassandraEnrollmentRepository,
    EnrollmentRepository,
    MemoryEnrollmentRepository,
)
from learnhub.enrollments.service import EnrollmentLedger
from learnhub.notifications.repository import (
    CassandraNotificationRepository,
    MemoryNotificationRepository,
    NotificationRepository,
)
from learnhub.notifications.service import NotificationService
from learnhub.progress.aggregator import ProgressAggregator
from learnhub.progress.repository import (
    CassandraLessonProgressRepository,
    LessonProgressRepository,
    MemoryLessonProgressRepository,
)
from learnhub.progress.service import LessonProgressService
from learnhub.quizzes.repository import (
    CassandraQuizProgressRepository,
    CassandraQuizRepository,
    MemoryQuizProgressRepository,
    MemoryQuizRepository,
    QuizProgressRepository,
    QuizRepository,
)
from learnhub.quizzes.service import QuizService
from learnhub.short_questions.repository import (
    CassandraShortQuestionAttemptRepository,
    CassandraShortQuestionSetRepository,
    MemoryShortQuestionAttemptRepository,
    MemoryShortQuestionSetRepository,
    ShortQuestionAttemptRepository,
    ShortQuestionSetRepository,
)
from learnhub.short_questions.service import ShortQuestionService


@dataclass
class Repositories:
    courses: CourseRepository
    lessons: LessonRepository
    enrollments: EnrollmentRepository
    lesson_progress: LessonProgressRepository
    quizzes: QuizRepository
    quiz_progress: QuizProgressRepository
    short_question_sets: ShortQuestionSetRepository
    short_question_attempts: ShortQuestionAttemptRepository
    notifications: NotificationRepository


@dataclass
class Services:
    course_service: CourseService
    enrollment_ledger: EnrollmentLedger
    progress_aggregator: ProgressAggregator
    lesson_progress_service: LessonProgressService
    quiz_service: QuizService
    short_question_service: ShortQuestionService
    notification_service: NotificationService


def memory_repositories(db: MemoryDatabase) -> Repositories:
    """Repositories on the in-memory backend."""
    return Repositories(
        courses=MemoryCourseRepository(db),
        lessons=MemoryLessonRepository(db),
        enrollments=MemoryEnrollmentRepository(db),
        lesson_progress=MemoryLessonProgressRepository(db),
        quizzes=MemoryQuizRepository(db),
        quiz_progress=MemoryQuizProgressRepository(db),
        short_question_sets=MemoryShortQuestionSetRepository(db),
        short_question_attempts=MemoryShortQuestionAttemptRepository(db),
        notifications=MemoryNotificationRepository(db),
    )


def cassandra_repositories(session: Any, settings: Settings) -> Repositories:
    """Repositories on a Cassandra session (statements are prepared here)."""
    keyspace = settings.cassandra_keyspace
    max_attempts = settings.enrollment_transaction_max_attempts
    return Repositories(
        courses=CassandraCourseRepository(session, keyspace, max_attempts),
        lessons=CassandraLessonRepository(session, keyspace),
        enrollments=CassandraEnrollmentRepository(session, keyspace, max_attempts),
        lesson_progress=CassandraLessonProgressRepository(session, keyspace),
        quizzes=CassandraQuizRepository(session, keyspace),
        quiz_progress=CassandraQuizProgressRepository(session, keyspace),
        short_question_sets=CassandraShortQuestionSetRepository(session, keyspace),
        short_question_attempts=CassandraShortQuestionAttemptRepository(
            session, keyspace
        ),
        notifications=CassandraNotificationRepository(session, keyspace),
    )


def build_services(repos: Repositories, settings: Settings) -> Services:
    """Wire the domain services; each one receives what it reads and writes."""
    notification_service = NotificationService(repos.notifications)

    course_service = CourseService(
        course_repository=repos.courses,
        lesson_repository=repos.lessons,
        enrollment_repository=repos.enrollments,
        quiz_repository=repos.quizzes,
        short_question_repository=repos.short_question_sets,
    )
    ledger = EnrollmentLedger(
        repository=repos.enrollments,
        course_service=course_service,
        notifications=notification_service,
        max_attempts=settings.enrollment_transaction_max_attempts,
    )
    aggregator = ProgressAggregator(
        course_service=course_service,
        lesson_progress_repository=repos.lesson_progress,
        quiz_progress_repository=repos.quiz_progress,
        short_question_attempt_repository=repos.short_question_attempts,
        ledger=ledger,
    )

    return Services(
        course_service=course_service,
        enrollment_ledger=ledger,
        progress_aggregator=aggregator,
        lesson_progress_service=LessonProgressService(
            repository=repos.lesson_progress,
            course_service=course_service,
            ledger=ledger,
            aggregator=aggregator,
        ),
        quiz_service=QuizService(
            quiz_repository=repos.quizzes,
            progress_repository=repos.quiz_progress,
            lesson_progress_repository=repos.lesson_progress,
            course_service=course_service,
            ledger=ledger,
            aggregator=aggregator,
            passing_percentage=settings.quiz_passing_percentage,
            max_attempts=settings.quiz_max_attempts,
        ),
        short_question_service=ShortQuestionService(
            set_repository=repos.short_question_sets,
            attempt_repository=repos.short_question_attempts,
            course_service=course_service,
            ledger=ledger,
            aggregator=aggregator,
            notifications=notification_service,
            default_passing_score=settings.short_question_passing_percentage,
        ),
        notification_service=notification_service,
    )
