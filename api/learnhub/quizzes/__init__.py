"""Course quizzes: multiple-choice questions scored automatically."""

from .models import QUIZZES_TABLES_CQL, Quiz, QuizAttemptStatus, QuizProgress
from .service import QuizService


__all__ = [
    "QUIZZES_TABLES_CQL",
    "Quiz",
    "QuizAttemptStatus",
    "QuizProgress",
    "QuizService",
]
