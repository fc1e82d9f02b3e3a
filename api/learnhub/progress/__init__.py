"""Student progress tracking.

Provides:
- Lesson completion and access tracking
- Weighted course progress aggregation
"""

from .aggregator import ProgressAggregator, ProgressBreakdown
from .models import PROGRESS_TABLES_CQL, LessonProgress
from .service import LessonProgressService


__all__ = [
    "PROGRESS_TABLES_CQL",
    "LessonProgress",
    "LessonProgressService",
    "ProgressAggregator",
    "ProgressBreakdown",
]
