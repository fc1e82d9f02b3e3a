"""Short-answer question sets graded by the course instructor."""

from .models import (
    SHORT_QUESTIONS_TABLES_CQL,
    AttemptStatus,
    ShortQuestionAttempt,
    ShortQuestionSet,
)
from .service import ShortQuestionService


__all__ = [
    "SHORT_QUESTIONS_TABLES_CQL",
    "AttemptStatus",
    "ShortQuestionAttempt",
    "ShortQuestionService",
    "ShortQuestionSet",
]
