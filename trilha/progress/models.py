"""Models for learner progression.

- Cassandra table definitions for course enrollments (completion set,
  progress, notes) with a by-user lookup table (dual write)
- Enrollment entity mapped from Cassandra rows
- Derived, never-stored values: module lock states, progress snapshots,
  lesson status and course summary
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import UUID


class CourseStatus(str, Enum):
    """Course-level progression state (derived from progress)."""

    NOT_STARTED = "not_started"  # progress == 0
    IN_PROGRESS = "in_progress"  # 0 < progress < 100 (inclui o piso de 5%)
    COMPLETED = "completed"  # progress == 100, reversivel por aula


# ==============================================================================
# Helper Functions
# ==============================================================================


def ensure_utc_aware(dt: datetime | None) -> datetime | None:
    """Ensure datetime is UTC-aware (Cassandra returns naive datetimes)."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

# Inscricao por curso - particionado por course_id
COURSE_ENROLLMENTS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.course_enrollments (
    course_id UUID,
    user_id UUID,
    progress INT,
    completed_lessons SET<UUID>,
    notes MAP<UUID, TEXT>,
    created_at TIMESTAMP,
    updated_at TIMESTAMP,
    PRIMARY KEY (course_id, user_id)
)
"""

# Lookup: cursos por usuario
COURSE_ENROLLMENTS_BY_USER_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.course_enrollments_by_user (
    user_id UUID,
    course_id UUID,
    progress INT,
    lessons_completed INT,
    updated_at TIMESTAMP,
    PRIMARY KEY (user_id, course_id)
)
"""

PROGRESS_TABLES_CQL = [
    COURSE_ENROLLMENTS_TABLE_CQL,
    COURSE_ENROLLMENTS_BY_USER_TABLE_CQL,
]


# ==============================================================================
# Entity Classes
# ==============================================================================


class Enrollment:
    """Persisted progression of one learner in one course.

    Attributes:
        course_id: Course UUID
        user_id: Learner UUID
        progress: Course completion percentage (0-100)
        completed_lessons: Completed lesson IDs
        notes: Free-text notes keyed by lesson ID
        created_at: Enrollment timestamp
        updated_at: Last write timestamp
    """

    def __init__(
        self,
        course_id: UUID,
        user_id: UUID,
        progress: int = 0,
        completed_lessons: set[UUID] | None = None,
        notes: dict[UUID, str] | None = None,
        created_at: datetime | None = None,
        updated_at: datetime | None = None,
    ):
        self.course_id = course_id
        self.user_id = user_id
        self.progress = progress
        self.completed_lessons = set(completed_lessons or ())
        self.notes = dict(notes or {})
        self.created_at = ensure_utc_aware(created_at) or datetime.now(UTC)
        self.updated_at = ensure_utc_aware(updated_at)

    @classmethod
    def from_row(cls, row: Any) -> "Enrollment":
        """Create Enrollment instance from Cassandra row.

        Empty Cassandra collections come back as None.
        """
        return cls(
            course_id=row.course_id,
            user_id=row.user_id,
            progress=row.progress or 0,
            completed_lessons=set(row.completed_lessons or ()),
            notes=dict(row.notes or {}),
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "course_id": self.course_id,
            "user_id": self.user_id,
            "progress": self.progress,
            "completed_lessons": sorted(self.completed_lessons, key=str),
            "notes": self.notes,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    def __repr__(self) -> str:
        return (
            f"<Enrollment user={self.user_id} course={self.course_id} "
            f"{len(self.completed_lessons)} done {self.progress}%>"
        )


# ==============================================================================
# Derived Values
# ==============================================================================


@dataclass(frozen=True)
class ModuleState:
    """Lock status of one module, recomputed on every evaluation."""

    is_locked: bool
    locked_reason: str
    awaiting_validation: bool
    module_completed: bool


@dataclass(frozen=True)
class ProgressSnapshot:
    """Completion state published to observers and used for rollback."""

    completed_lessons: frozenset[UUID] = frozenset()
    progress: int = 0
    notes: dict[UUID, str] = field(default_factory=dict)


@dataclass(frozen=True)
class LessonStatus:
    """Everything a lesson view needs to render one lesson."""

    lesson_id: UUID
    is_completed: bool
    is_in_progress: bool
    is_next: bool
    is_locked: bool
    note: str = ""
    # Only set for the lesson the timer is tracking
    timer_seconds: int | None = None
    timer_running: bool | None = None


@dataclass(frozen=True)
class CourseSummary:
    """Aggregate progression figures for a course view."""

    total_lessons: int
    completed_lessons: int
    progress: int
    status: CourseStatus
    next_lesson_id: UUID | None
    selected_lesson_id: UUID | None
