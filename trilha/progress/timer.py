"""Active-time timer for the lesson currently being worked on.

``TimerState`` is an immutable value whose transitions are pure functions of
the current time. ``LessonTimer`` holds the single state of a course view and
samples an injected clock, so elapsed time can be computed on demand without
any polling. A display may poll ``elapsed_ms`` every second; correctness does
not depend on it.
"""

from collections.abc import Callable
from dataclasses import dataclass, replace
from enum import Enum
from uuid import UUID

from .timeutils import monotonic_ms


Clock = Callable[[], int]


class TimerStatus(str, Enum):
    """Timer lifecycle state."""

    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"


@dataclass(frozen=True)
class TimerState:
    """Timer snapshot. Times are milliseconds on the timer's clock."""

    lesson_id: UUID | None = None
    started_at: int | None = None
    accumulated_ms: int = 0
    running: bool = False

    @property
    def status(self) -> TimerStatus:
        if self.lesson_id is None:
            return TimerStatus.IDLE
        return TimerStatus.RUNNING if self.running else TimerStatus.PAUSED

    def start(self, lesson_id: UUID, now: int) -> "TimerState":
        """Start timing ``lesson_id``.

        Same lesson: no-op while running, resume while paused. Any other
        lesson resets the timer, discarding unsaved time of the previous one.
        """
        if self.lesson_id == lesson_id:
            if self.running:
                return self
            return replace(self, started_at=now, running=True)
        return TimerState(lesson_id=lesson_id, started_at=now, running=True)

    def pause_resume(self, now: int) -> "TimerState":
        """Pause a running timer or resume a paused one. Idle stays idle."""
        if self.lesson_id is None:
            return self
        if self.running:
            return replace(
                self,
                accumulated_ms=self.elapsed_ms(self.lesson_id, now),
                started_at=None,
                running=False,
            )
        return replace(self, started_at=now, running=True)

    def elapsed_ms(self, lesson_id: UUID, now: int) -> int:
        """Active time for ``lesson_id``; 0 for any lesson not being timed."""
        if self.lesson_id != lesson_id:
            return 0
        total = self.accumulated_ms
        if self.running and self.started_at is not None:
            total += max(0, now - self.started_at)
        return total


IDLE_TIMER = TimerState()


class LessonTimer:
    """Single active timer of a course view."""

    def __init__(self, clock: Clock | None = None):
        self._clock = clock or monotonic_ms
        self.state = IDLE_TIMER

    @property
    def lesson_id(self) -> UUID | None:
        return self.state.lesson_id

    @property
    def running(self) -> bool:
        return self.state.running

    def is_tracking(self, lesson_id: UUID) -> bool:
        return self.state.lesson_id == lesson_id

    def start(self, lesson_id: UUID) -> None:
        self.state = self.state.start(lesson_id, self._clock())

    def pause_resume(self) -> None:
        self.state = self.state.pause_resume(self._clock())

    def elapsed_ms(self, lesson_id: UUID) -> int:
        return self.state.elapsed_ms(lesson_id, self._clock())

    def reset(self) -> None:
        self.state = IDLE_TIMER
