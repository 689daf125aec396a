"""Enrollment store.

Business logic for:
- Reading and upserting a learner's enrollment (completion set, progress,
  notes) with a dual write to the by-user lookup table
- Publishing every stored snapshot on the push feed
- Building the course overview (module locks and percentages) from
  persisted state
- Validating client-supplied enrollments against the curriculum
"""

from datetime import UTC, datetime
from typing import TYPE_CHECKING
from uuid import UUID

import structlog

from trilha.curriculum.models import Course

from .calculator import (
    STARTED_PROGRESS_FLOOR,
    course_progress,
    course_status,
    module_progress,
    next_lesson,
)
from .exceptions import InvalidProgressError
from .gating import evaluate_module_states, is_lesson_locked
from .models import Enrollment
from .schemas import (
    CourseOverviewResponse,
    EnrollmentSnapshot,
    ModuleStateResponse,
    UserEnrollmentSummary,
)


if TYPE_CHECKING:
    from cassandra.cluster import Session

    from .feed import RedisEnrollmentFeed

logger = structlog.get_logger(__name__)


# ==============================================================================
# Enrollment Service
# ==============================================================================


class EnrollmentService:
    """Cassandra-backed enrollment store."""

    def __init__(
        self,
        session: "Session",
        keyspace: str,
        feed: "RedisEnrollmentFeed | None" = None,
    ):
        """Initialize with Cassandra session and optional push feed."""
        self.session = session
        self.keyspace = keyspace
        self.feed = feed
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for efficient execution."""
        self._get_enrollment = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.course_enrollments
            WHERE course_id = ? AND user_id = ?
        """)

        # Without notes: stored notes are left untouched
        self._upsert_enrollment = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.course_enrollments
            (course_id, user_id, progress, completed_lessons, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?)
        """)

        self._upsert_enrollment_with_notes = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.course_enrollments
            (course_id, user_id, progress, completed_lessons, notes,
             created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """)

        # Enrollments by user (lookup)
        self._upsert_enrollment_by_user = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.course_enrollments_by_user
            (user_id, course_id, progress, lessons_completed, updated_at)
            VALUES (?, ?, ?, ?, ?)
        """)

        self._get_user_enrollments = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.course_enrollments_by_user
            WHERE user_id = ?
        """)

    # ==========================================================================
    # Enrollment Operations
    # ==========================================================================

    async def get_enrollment_record(
        self, course_id: UUID, user_id: UUID
    ) -> Enrollment | None:
        """Get the stored enrollment entity."""
        result = await self.session.aexecute(self._get_enrollment, [course_id, user_id])
        row = result.one()
        return Enrollment.from_row(row) if row else None

    async def get_enrollment(
        self, course_id: UUID, user_id: UUID
    ) -> EnrollmentSnapshot | None:
        """Get the stored enrollment snapshot, or None when not enrolled."""
        enrollment = await self.get_enrollment_record(course_id, user_id)
        return EnrollmentSnapshot.from_entity(enrollment) if enrollment else None

    async def save_enrollment(
        self,
        course_id: UUID,
        user_id: UUID,
        progress: int,
        completed_lessons: list[UUID],
        notes: dict[UUID, str] | None = None,
    ) -> Enrollment:
        """Create or replace an enrollment.

        Args:
            course_id: Course UUID
            user_id: Learner UUID
            progress: Course completion percentage (0-100)
            completed_lessons: Completed lesson IDs
            notes: Replacement notes; None keeps the stored ones

        Returns:
            Stored Enrollment entity
        """
        existing = await self.get_enrollment_record(course_id, user_id)
        now = datetime.now(UTC)

        enrollment = Enrollment(
            course_id=course_id,
            user_id=user_id,
            progress=progress,
            completed_lessons=set(completed_lessons),
            notes=notes if notes is not None else (existing.notes if existing else {}),
            created_at=existing.created_at if existing else now,
            updated_at=now,
        )

        # Dual write: main table + lookup table
        if notes is None:
            await self.session.aexecute(
                self._upsert_enrollment,
                [
                    enrollment.course_id,
                    enrollment.user_id,
                    enrollment.progress,
                    enrollment.completed_lessons,
                    enrollment.created_at,
                    enrollment.updated_at,
                ],
            )
        else:
            await self.session.aexecute(
                self._upsert_enrollment_with_notes,
                [
                    enrollment.course_id,
                    enrollment.user_id,
                    enrollment.progress,
                    enrollment.completed_lessons,
                    enrollment.notes,
                    enrollment.created_at,
                    enrollment.updated_at,
                ],
            )

        await self.session.aexecute(
            self._upsert_enrollment_by_user,
            [
                enrollment.user_id,
                enrollment.course_id,
                enrollment.progress,
                len(enrollment.completed_lessons),
                enrollment.updated_at,
            ],
        )

        if self.feed:
            await self.feed.publish(EnrollmentSnapshot.from_entity(enrollment))

        logger.info(
            "enrollment_upserted",
            course_id=str(course_id),
            user_id=str(user_id),
            progress=enrollment.progress,
            lessons_completed=len(enrollment.completed_lessons),
            created=existing is None,
        )
        return enrollment

    async def upsert_enrollment(
        self,
        course_id: UUID,
        user_id: UUID,
        progress: int,
        completed_lessons: list[UUID],
        notes: dict[UUID, str] | None = None,
    ) -> EnrollmentSnapshot:
        """Create or replace an enrollment and return the stored snapshot."""
        enrollment = await self.save_enrollment(
            course_id, user_id, progress, completed_lessons, notes
        )
        return EnrollmentSnapshot.from_entity(enrollment)

    async def get_user_enrollments(self, user_id: UUID) -> list[UserEnrollmentSummary]:
        """List a learner's enrollments from the lookup table."""
        rows = await self.session.aexecute(self._get_user_enrollments, [user_id])
        return [
            UserEnrollmentSummary(
                course_id=row.course_id,
                progress=row.progress or 0,
                lessons_completed=row.lessons_completed or 0,
                updated_at=row.updated_at,
            )
            for row in rows
        ]


# ==============================================================================
# Course Overview
# ==============================================================================


def build_course_overview(
    course: Course, enrollment: Enrollment
) -> CourseOverviewResponse:
    """Module lock states and percentages of a persisted enrollment."""
    completed = enrollment.completed_lessons
    states = evaluate_module_states(course.modules, completed, course.sequential_modules)
    lesson_ids = course.lesson_ids

    upcoming = next_lesson(course.modules, completed)
    actionable = upcoming
    if upcoming is not None and is_lesson_locked(
        course.modules, completed, course.sequential_modules, upcoming
    ):
        actionable = None

    return CourseOverviewResponse(
        course_id=course.id,
        user_id=enrollment.user_id,
        status=course_status(enrollment.progress),
        progress=enrollment.progress,
        lessons_completed=len(set(lesson_ids) & completed),
        lessons_total=len(lesson_ids),
        computed_progress=course_progress(completed, lesson_ids),
        next_lesson_id=upcoming,
        actionable_next_lesson_id=actionable,
        modules=[
            ModuleStateResponse(
                module_id=module.id,
                title=module.title,
                is_locked=state.is_locked,
                locked_reason=state.locked_reason,
                awaiting_validation=state.awaiting_validation,
                module_completed=state.module_completed,
                progress=module_progress(completed, module.lesson_ids),
                lessons_total=len(module.lessons),
            )
            for module, state in zip(course.modules, states, strict=True)
        ],
    )


def validate_enrollment_write(
    course: Course, completed_lessons: list[UUID], progress: int
) -> None:
    """Check a client-supplied enrollment against the course curriculum.

    Completed lessons must belong to the course, and progress must be the
    percentage of the completion set (or the started floor when that is 0).

    Raises:
        InvalidProgressError: If either check fails
    """
    lesson_ids = course.lesson_ids
    foreign = set(completed_lessons) - set(lesson_ids)
    if foreign:
        raise InvalidProgressError("Aula nao pertence ao curso")

    expected = course_progress(set(completed_lessons), lesson_ids)
    if progress != expected and not (
        expected == 0 and progress == STARTED_PROGRESS_FLOOR
    ):
        raise InvalidProgressError(
            f"Progresso {progress}% nao corresponde as aulas concluidas ({expected}%)"
        )
