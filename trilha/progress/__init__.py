"""Learner progression and module gating.

Provides:
- Module lock evaluation for sequential courses
- Course and module completion percentages, next lesson
- Per-lesson active-time timer and time-log duration policy
- The progression controller (optimistic toggles, push reconciliation)
- Enrollment store and push feed adapters
"""

from .models import (
    PROGRESS_TABLES_CQL,
    CourseStatus,
    CourseSummary,
    Enrollment,
    LessonStatus,
    ModuleState,
    ProgressSnapshot,
)


__all__ = [
    "PROGRESS_TABLES_CQL",
    "CourseStatus",
    "CourseSummary",
    "Enrollment",
    "LessonStatus",
    "ModuleState",
    "ProgressSnapshot",
]
