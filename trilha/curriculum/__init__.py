"""Curriculum (courses, modules, lessons) read side.

Provides:
- Course, Module and Lesson entities
- Cassandra-backed loader with per-course memoization
"""

from .models import CURRICULUM_TABLES_CQL, Course, Lesson, Module


__all__ = [
    "CURRICULUM_TABLES_CQL",
    "Course",
    "Lesson",
    "Module",
]
