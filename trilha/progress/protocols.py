"""Collaborator contracts of the progression controller.

The controller only talks to these protocols; the Cassandra and Redis
services satisfy them in production and tests substitute in-memory fakes.
"""

from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Protocol
from uuid import UUID


if TYPE_CHECKING:
    from trilha.curriculum.models import Module
    from trilha.timelogs.schemas import TimeLogCreate

    from .schemas import EnrollmentSnapshot


SnapshotCallback = Callable[["EnrollmentSnapshot"], Awaitable[None] | None]


class CurriculumLoader(Protocol):
    """Source of a course's ordered modules (with ordered lessons)."""

    async def get_modules(self, course_id: UUID) -> list["Module"]:
        """Load the modules of a course, in course order."""
        ...


class EnrollmentStore(Protocol):
    """Persistent learner progression."""

    async def get_enrollment(
        self, course_id: UUID, user_id: UUID
    ) -> "EnrollmentSnapshot | None":
        """Get the stored enrollment, or None when the learner is not enrolled."""
        ...

    async def upsert_enrollment(
        self,
        course_id: UUID,
        user_id: UUID,
        progress: int,
        completed_lessons: list[UUID],
        notes: dict[UUID, str] | None = None,
    ) -> "EnrollmentSnapshot":
        """Create or replace the enrollment; raises on failure.

        ``notes=None`` leaves stored notes untouched.
        """
        ...


class FeedSubscription(Protocol):
    """Handle of an active push-feed subscription."""

    async def unsubscribe(self) -> None: ...


class EnrollmentFeed(Protocol):
    """Server-push enrollment updates keyed by (course, user)."""

    async def subscribe(
        self, course_id: UUID, user_id: UUID, callback: SnapshotCallback
    ) -> FeedSubscription:
        """Deliver every new snapshot of the pair to ``callback``."""
        ...


class TimeLogSink(Protocol):
    """External time-tracking collaborator."""

    async def append(self, entry: "TimeLogCreate") -> object: ...


class ContentOpener(Protocol):
    """Presentation collaborator opening a lesson's content externally."""

    def open(self, url: str) -> None: ...
