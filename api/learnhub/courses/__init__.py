"""Courses, lessons and denormalized course stats."""

from .models import COURSES_TABLES_CQL, Course, CourseStats, CourseStatus, Lesson
from .service import CourseService


__all__ = [
    "COURSES_TABLES_CQL",
    "Course",
    "CourseService",
    "CourseStats",
    "CourseStatus",
    "Lesson",
]
