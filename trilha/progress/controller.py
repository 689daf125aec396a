"""Progression controller for one learner in one course.

Owns the completion set, the progress percentage, lesson notes, the
in-progress set, the selected lesson and the lesson timer. Every intent
applies its local mutation before its first ``await``; persistence is
optimistic and a failed enrollment upsert is compensated by restoring only
the lesson the intent changed.

Push updates replace persisted state wholesale (last writer wins). A push
arriving while an upsert is pending may overwrite the optimistic change.
"""

from collections.abc import Callable, Sequence
from datetime import UTC, date, datetime
from uuid import UUID

import structlog

from trilha.core.context import ProgressContext
from trilha.curriculum.models import Course, Lesson, Module
from trilha.curriculum.service import CachedCurriculumLoader
from trilha.timelogs.models import TimeLogEntityType
from trilha.timelogs.schemas import TimeLogCreate

from .calculator import (
    STARTED_PROGRESS_FLOOR,
    apply_started_floor,
    course_progress,
    course_status,
    next_lesson,
)
from .exceptions import LessonNotFoundError, ProgressPersistenceError
from .gating import evaluate_module_states, is_lesson_locked
from .models import CourseSummary, LessonStatus, ModuleState, ProgressSnapshot
from .protocols import (
    ContentOpener,
    CurriculumLoader,
    EnrollmentFeed,
    EnrollmentStore,
    FeedSubscription,
    TimeLogSink,
)
from .schemas import EnrollmentSnapshot
from .timer import Clock, LessonTimer
from .timeutils import minutes_to_log


logger = structlog.get_logger(__name__)

Observer = Callable[[ProgressSnapshot], None]


def _utc_today() -> date:
    return datetime.now(UTC).date()


class ProgressionController:
    """Progression and gating state machine of a course view.

    Args:
        course: Course being followed; its ``modules`` are replaced on load
        user_id: Learner UUID
        curriculum: Module loader (memoized loaders are invalidated on reload)
        enrollments: Enrollment store
        feed: Optional push feed for the (course, learner) pair
        time_logs: Optional sink receiving one entry per completed lesson
        opener: Optional presentation collaborator opening lesson content
        clock: Millisecond clock of the lesson timer
        today: Date of time-log entries
    """

    def __init__(
        self,
        course: Course,
        user_id: UUID,
        *,
        curriculum: CurriculumLoader,
        enrollments: EnrollmentStore,
        feed: EnrollmentFeed | None = None,
        time_logs: TimeLogSink | None = None,
        opener: ContentOpener | None = None,
        clock: Clock | None = None,
        today: Callable[[], date] | None = None,
    ):
        self.course = course
        self.user_id = user_id
        self.timer = LessonTimer(clock)

        self._curriculum = curriculum
        self._enrollments = enrollments
        self._feed = feed
        self._time_logs = time_logs
        self._opener = opener
        self._today = today or _utc_today

        self._completed: set[UUID] = set()
        self._progress = 0
        self._notes: dict[UUID, str] = {}
        self._in_progress: set[UUID] = set()
        self._selected: UUID | None = None
        self._enrolled = False
        self._subscription: FeedSubscription | None = None
        self._observers: list[Observer] = []
        self._log = logger.bind(course_id=str(course.id), user_id=str(user_id))

    # ==========================================================================
    # State Accessors
    # ==========================================================================

    @property
    def modules(self) -> list[Module]:
        return self.course.modules

    @property
    def completed_lessons(self) -> frozenset[UUID]:
        return frozenset(self._completed)

    @property
    def progress(self) -> int:
        return self._progress

    @property
    def notes(self) -> dict[UUID, str]:
        return dict(self._notes)

    @property
    def in_progress_lessons(self) -> frozenset[UUID]:
        return frozenset(self._in_progress)

    @property
    def selected_lesson(self) -> UUID | None:
        return self._selected

    @property
    def enrolled(self) -> bool:
        return self._enrolled

    def snapshot(self) -> ProgressSnapshot:
        """Current completion state."""
        return ProgressSnapshot(
            completed_lessons=frozenset(self._completed),
            progress=self._progress,
            notes=dict(self._notes),
        )

    # ==========================================================================
    # Observers
    # ==========================================================================

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        """Register an observer of completion state; returns its unsubscriber."""
        self._observers.append(observer)

        def unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    def _publish(self) -> None:
        snapshot = self.snapshot()
        for observer in list(self._observers):
            try:
                observer(snapshot)
            except Exception:
                self._log.exception("progress_observer_failed")

    # ==========================================================================
    # Lifecycle
    # ==========================================================================

    async def load(self) -> None:
        """Load modules, follow the push feed and load the enrollment.

        A learner without an enrollment is enrolled with no progress.

        Raises:
            ProgressPersistenceError: If the automatic enrollment fails
        """
        with ProgressContext(course_id=self.course.id, user_id=self.user_id):
            try:
                modules = await self._curriculum.get_modules(self.course.id)
            except Exception as e:
                self._log.warning("curriculum_load_failed", error=str(e))
                return
            self.course.modules = list(modules)

            await self._subscribe_feed()
            try:
                await self._load_enrollment()
            finally:
                # Resume at the first uncompleted lesson
                self._ensure_selection()

            self._log.info(
                "progression_loaded",
                modules=len(self.modules),
                lessons_completed=len(self._completed),
                progress=self._progress,
            )

    async def _load_enrollment(self) -> None:
        try:
            stored = await self._enrollments.get_enrollment(
                self.course.id, self.user_id
            )
        except Exception as e:
            self._log.warning("enrollment_load_failed", error=str(e))
            return

        if stored is None:
            try:
                stored = await self._enrollments.upsert_enrollment(
                    self.course.id, self.user_id, 0, []
                )
            except Exception as e:
                self._log.warning("enrollment_auto_create_failed", error=str(e))
                raise ProgressPersistenceError from e
            self._log.info("enrollment_auto_created")

        self._enrolled = True
        self._apply_remote(stored.completed_lessons, stored.progress, stored.notes)

    async def close(self) -> None:
        """Stop following the push feed."""
        subscription, self._subscription = self._subscription, None
        if subscription is None:
            return
        try:
            await subscription.unsubscribe()
        except Exception as e:
            self._log.warning("feed_unsubscribe_failed", error=str(e))

    async def _subscribe_feed(self) -> None:
        if self._feed is None or self._subscription is not None:
            return
        try:
            self._subscription = await self._feed.subscribe(
                self.course.id, self.user_id, self._on_feed_update
            )
        except Exception as e:
            self._log.warning("feed_subscribe_failed", error=str(e))

    def _on_feed_update(self, snapshot: EnrollmentSnapshot) -> None:
        if snapshot.course_id != self.course.id or snapshot.user_id != self.user_id:
            self._log.debug(
                "feed_update_ignored",
                snapshot_course_id=str(snapshot.course_id),
                snapshot_user_id=str(snapshot.user_id),
            )
            return
        self.reconcile_external_update(
            snapshot.completed_lessons, snapshot.progress, snapshot.notes
        )

    async def reload_curriculum(self) -> None:
        """Re-query the curriculum loader and re-apply the selection fallback."""
        if isinstance(self._curriculum, CachedCurriculumLoader):
            self._curriculum.invalidate(self.course.id)
        try:
            modules = await self._curriculum.get_modules(self.course.id)
        except Exception as e:
            self._log.warning("curriculum_reload_failed", error=str(e))
            return
        self.replace_modules(modules)

    def replace_modules(self, modules: Sequence[Module]) -> None:
        """Swap in an externally reloaded curriculum."""
        self.course.modules = list(modules)
        self._ensure_selection()

    # ==========================================================================
    # Derived State
    # ==========================================================================

    def module_states(self) -> list[ModuleState]:
        """Lock state of every module, in course order."""
        return evaluate_module_states(
            self.modules, self._completed, self.course.sequential_modules
        )

    def is_lesson_locked(self, lesson_id: UUID) -> bool:
        return is_lesson_locked(
            self.modules, self._completed, self.course.sequential_modules, lesson_id
        )

    def next_lesson_id(self) -> UUID | None:
        """First uncompleted lesson in course order, ignoring locks."""
        return next_lesson(self.modules, self._completed)

    def actionable_next_lesson_id(self) -> UUID | None:
        """Next lesson, unless it sits in a locked module."""
        lesson_id = self.next_lesson_id()
        if lesson_id is None or self.is_lesson_locked(lesson_id):
            return None
        return lesson_id

    def lesson_status(self, lesson_id: UUID) -> LessonStatus:
        """Flags, note and timer reading of one lesson."""
        self._require_lesson(lesson_id)
        tracked = self.timer.is_tracking(lesson_id)
        return LessonStatus(
            lesson_id=lesson_id,
            is_completed=lesson_id in self._completed,
            is_in_progress=lesson_id in self._in_progress,
            is_next=lesson_id == self.next_lesson_id(),
            is_locked=self.is_lesson_locked(lesson_id),
            note=self._notes.get(lesson_id, ""),
            timer_seconds=self.timer.elapsed_ms(lesson_id) // 1000 if tracked else None,
            timer_running=self.timer.running if tracked else None,
        )

    def summary(self) -> CourseSummary:
        """Course-level figures."""
        lesson_ids = set(self.course.lesson_ids)
        return CourseSummary(
            total_lessons=len(lesson_ids),
            completed_lessons=len(lesson_ids & self._completed),
            progress=self._progress,
            status=course_status(self._progress),
            next_lesson_id=self.next_lesson_id(),
            selected_lesson_id=self._selected,
        )

    # ==========================================================================
    # Intents
    # ==========================================================================

    def select_lesson(self, lesson_id: UUID | None) -> UUID | None:
        """Point the view at a lesson.

        Unknown lessons fall back to the next lesson, then to the first
        lesson of the course.
        """
        if lesson_id is not None and self.course.find_lesson(lesson_id) is not None:
            self._selected = lesson_id
        else:
            self._selected = self.next_lesson_id() or self._first_lesson_id()
        return self._selected

    def start_lesson(self, lesson_id: UUID) -> bool:
        """Start working on a lesson.

        Returns False when the lesson sits in a locked module and is not
        completed.

        Raises:
            LessonNotFoundError: If the lesson is not in the curriculum
        """
        lesson = self._require_lesson(lesson_id)
        if self.is_lesson_locked(lesson_id):
            self._log.debug("lesson_start_rejected", lesson_id=str(lesson_id))
            return False

        self.timer.start(lesson_id)
        self._in_progress.add(lesson_id)
        if self._progress == 0:
            self._progress = STARTED_PROGRESS_FLOOR
        self._selected = lesson_id
        self._publish()

        content_url = lesson.content_url or self.course.content_url
        if content_url and self._opener is not None:
            self._opener.open(content_url)

        self._log.info("lesson_started", lesson_id=str(lesson_id))
        return True

    def continue_course(self) -> bool:
        """Start the next lesson, if it is actionable."""
        lesson_id = self.actionable_next_lesson_id()
        if lesson_id is None:
            return False
        return self.start_lesson(lesson_id)

    def pause_resume_timer(self) -> None:
        self.timer.pause_resume()

    async def toggle_completion(self, lesson_id: UUID) -> bool:
        """Flip a lesson between completed and not completed.

        Returns False when the lesson sits in a locked module and is not
        completed. Completing a lesson logs the time spent on it and may
        advance the selection to the next lesson.

        Raises:
            LessonNotFoundError: If the lesson is neither in the curriculum
                nor completed
            ProgressPersistenceError: If the upsert fails; the lesson has
                already been restored and observers notified
        """
        found = self.course.find_lesson(lesson_id)
        if found is None and lesson_id not in self._completed:
            raise LessonNotFoundError
        if self.is_lesson_locked(lesson_id):
            self._log.debug("lesson_toggle_rejected", lesson_id=str(lesson_id))
            return False
        lesson = found[1] if found else None

        was_completed = lesson_id in self._completed
        was_in_progress = lesson_id in self._in_progress
        before = self.snapshot()
        # Sampled before persisting; later intents may restart the timer
        elapsed_ms = self.timer.elapsed_ms(lesson_id)

        if was_completed:
            self._completed.discard(lesson_id)
        else:
            self._completed.add(lesson_id)
        self._in_progress.discard(lesson_id)
        self._progress = apply_started_floor(
            course_progress(self._completed, self.course.lesson_ids), before.progress
        )
        self._publish()

        with ProgressContext(course_id=self.course.id, user_id=self.user_id):
            try:
                await self._enrollments.upsert_enrollment(
                    self.course.id,
                    self.user_id,
                    self._progress,
                    sorted(self._completed, key=str),
                )
            except Exception as e:
                self._rollback_toggle(lesson_id, was_completed, was_in_progress, before)
                self._log.warning(
                    "lesson_toggle_persist_failed",
                    lesson_id=str(lesson_id),
                    error=str(e),
                )
                raise ProgressPersistenceError from e

            if not was_completed:
                minutes = minutes_to_log(
                    elapsed_ms,
                    lesson.duration_hint if lesson else None,
                )
                await self._append_time_log(lesson, minutes)

        if self.timer.is_tracking(lesson_id):
            self.timer.reset()

        if not was_completed:
            upcoming = self.next_lesson_id()
            if upcoming is not None and upcoming != self._selected:
                self.select_lesson(upcoming)

        self._log.info(
            "lesson_completion_toggled",
            lesson_id=str(lesson_id),
            completed=not was_completed,
            progress=self._progress,
        )
        return True

    def _rollback_toggle(
        self,
        lesson_id: UUID,
        was_completed: bool,
        was_in_progress: bool,
        before: ProgressSnapshot,
    ) -> None:
        # Only this lesson is restored; other changes made meanwhile survive
        if was_completed:
            self._completed.add(lesson_id)
        else:
            self._completed.discard(lesson_id)
        if was_in_progress:
            self._in_progress.add(lesson_id)

        if self._completed == before.completed_lessons:
            self._progress = before.progress
        else:
            self._progress = apply_started_floor(
                course_progress(self._completed, self.course.lesson_ids),
                self._progress,
            )
        self._publish()

    async def _append_time_log(self, lesson: Lesson | None, minutes: int) -> None:
        if self._time_logs is None:
            return
        lesson_title = lesson.title if lesson else "uma aula"
        entry = TimeLogCreate(
            user_id=self.user_id,
            entity_type=TimeLogEntityType.COURSE,
            entity_id=self.course.id,
            entity_title=(
                f"{self.course.title} • {lesson.title}" if lesson else self.course.title
            ),
            log_date=self._today(),
            duration_minutes=minutes,
            description=f"Tempo dedicado a {lesson_title}",
        )
        try:
            await self._time_logs.append(entry)
        except Exception as e:
            self._log.warning(
                "time_log_append_failed",
                duration_minutes=minutes,
                error=str(e),
            )

    async def update_note(self, lesson_id: UUID, note: str) -> None:
        """Edit a lesson note.

        The note is applied locally at once, then merged into the stored
        notes when the learner has an enrollment.

        Raises:
            LessonNotFoundError: If the lesson is not in the curriculum
        """
        self._require_lesson(lesson_id)
        self._notes[lesson_id] = note
        self._publish()

        with ProgressContext(course_id=self.course.id, user_id=self.user_id):
            try:
                stored = await self._enrollments.get_enrollment(
                    self.course.id, self.user_id
                )
                if stored is None:
                    return
                notes = {**stored.notes, lesson_id: note}
                await self._enrollments.upsert_enrollment(
                    self.course.id,
                    self.user_id,
                    self._progress,
                    sorted(self._completed, key=str),
                    notes=notes,
                )
            except Exception as e:
                self._log.warning(
                    "lesson_note_save_failed", lesson_id=str(lesson_id), error=str(e)
                )

    def reconcile_external_update(
        self,
        completed_lessons: Sequence[UUID],
        progress: int,
        notes: dict[UUID, str] | None = None,
    ) -> None:
        """Replace persisted state with a pushed snapshot (last writer wins).

        The timer and the in-progress set are session-local and untouched.
        """
        self._apply_remote(completed_lessons, progress, notes)
        self._ensure_selection()
        self._log.info(
            "progress_reconciled",
            lessons_completed=len(self._completed),
            progress=self._progress,
        )

    # ==========================================================================
    # Helpers
    # ==========================================================================

    def _apply_remote(
        self,
        completed_lessons: Sequence[UUID],
        progress: int,
        notes: dict[UUID, str] | None,
    ) -> None:
        self._completed = set(completed_lessons)
        self._progress = progress or 0
        self._notes = dict(notes or {})
        self._publish()

    def _ensure_selection(self) -> None:
        self.select_lesson(self._selected)

    def _first_lesson_id(self) -> UUID | None:
        for module in self.modules:
            if module.lessons:
                return module.lessons[0].id
        return None

    def _require_lesson(self, lesson_id: UUID) -> Lesson:
        found = self.course.find_lesson(lesson_id)
        if found is None:
            raise LessonNotFoundError
        return found[1]
