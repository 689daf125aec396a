"""Completion percentages and "resume where you left off"."""

from collections.abc import Collection, Iterable, Sequence
from uuid import UUID

from trilha.curriculum.models import Module

from .models import CourseStatus
from .timeutils import round_half_up


# Displayed once a learner has started, before any lesson is completed
STARTED_PROGRESS_FLOOR = 5


def _percent(completed: Collection[UUID], lesson_ids: Iterable[UUID]) -> int | None:
    lesson_ids = set(lesson_ids)
    if not lesson_ids:
        return None
    done = len(lesson_ids.intersection(completed))
    return round_half_up(100 * done, len(lesson_ids))


def course_progress(completed: Collection[UUID], all_lessons: Iterable[UUID]) -> int:
    """Course completion percentage; a course without lessons is at 0."""
    percent = _percent(completed, all_lessons)
    return 0 if percent is None else percent


def module_progress(
    completed: Collection[UUID], module_lessons: Iterable[UUID]
) -> int:
    """Module completion percentage; a module without lessons is at 100."""
    percent = _percent(completed, module_lessons)
    return 100 if percent is None else percent


def next_lesson(
    modules: Sequence[Module], completed: Collection[UUID]
) -> UUID | None:
    """First lesson in course order that is not completed.

    Lock-agnostic: locked modules are not skipped.
    """
    for module in modules:
        for lesson in module.lessons:
            if lesson.id not in completed:
                return lesson.id
    return None


def apply_started_floor(new_progress: int, previous_progress: int) -> int:
    """Keep a started course from dropping back to 0% after a toggle."""
    if new_progress == 0 and previous_progress > 0:
        return STARTED_PROGRESS_FLOOR
    return new_progress


def course_status(progress: int) -> CourseStatus:
    """Map a progress percentage to the course state machine."""
    if progress <= 0:
        return CourseStatus.NOT_STARTED
    if progress >= 100:
        return CourseStatus.COMPLETED
    return CourseStatus.IN_PROGRESS
