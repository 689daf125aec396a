"""Tests for the progression controller.

Covers loading and auto-enrollment, lesson start, completion toggles with
time logging and rollback, reconciliation of pushed snapshots, notes and the
derived lesson/course views.
"""

import asyncio
from uuid import uuid4

import pytest

from trilha.curriculum.models import Course, Lesson, Module
from trilha.curriculum.service import CachedCurriculumLoader
from trilha.progress.exceptions import LessonNotFoundError, ProgressPersistenceError
from trilha.progress.models import CourseStatus
from trilha.timelogs.models import TimeLogEntityType


async def _until_pending(store, count: int) -> None:
    while len(store.upserts) < count:
        await asyncio.sleep(0)


class CountingLoader:
    def __init__(self, modules):
        self.modules = modules
        self.calls = 0

    async def get_modules(self, course_id):
        self.calls += 1
        return list(self.modules)


class TestLoad:
    """Tests for load / close."""

    @pytest.mark.asyncio
    async def test_auto_enrolls_when_missing(self, make_controller, course_factory, store):
        course = course_factory([2, 1])
        controller = make_controller(Course(id=course.id, title=course.title))
        controller._curriculum.modules = course.modules

        await controller.load()

        assert controller.enrolled is True
        assert len(controller.modules) == 2
        assert store.upserts == [
            {
                "course_id": course.id,
                "user_id": controller.user_id,
                "progress": 0,
                "completed_lessons": [],
                "notes": None,
            }
        ]
        assert controller.selected_lesson == course.modules[0].lessons[0].id

    @pytest.mark.asyncio
    async def test_applies_stored_enrollment(
        self, make_controller, course_factory, store, snapshot_for
    ):
        course = course_factory([2, 1])
        first = course.modules[0].lessons[0].id
        stored = snapshot_for(course, completed=[first], progress=33, notes={first: "ok"})
        store.snapshots[(course.id, stored.user_id)] = stored
        controller = make_controller(course)

        await controller.load()

        assert store.upserts == []
        assert controller.completed_lessons == {first}
        assert controller.progress == 33
        assert controller.notes == {first: "ok"}
        assert controller.selected_lesson == course.modules[0].lessons[1].id

    @pytest.mark.asyncio
    async def test_auto_enroll_failure_raises(self, make_controller, course_factory, store):
        store.fail_upsert = True
        controller = make_controller(course_factory([1]))

        with pytest.raises(ProgressPersistenceError) as exc_info:
            await controller.load()

        assert exc_info.value.code == "persistence_failed"
        assert controller.enrolled is False

    @pytest.mark.asyncio
    async def test_curriculum_failure_is_logged_only(self, make_controller, course_factory):
        controller = make_controller(course_factory([1]))
        controller._curriculum.error = ConnectionError("down")

        await controller.load()

        assert controller.enrolled is False

    @pytest.mark.asyncio
    async def test_close_unsubscribes_feed(self, make_controller, course_factory, feed):
        controller = make_controller(course_factory([1]))
        await controller.load()
        assert len(feed.subscriptions) == 1

        await controller.close()
        await controller.close()

        assert feed.subscriptions[0].closed is True

    @pytest.mark.asyncio
    async def test_reload_bypasses_memoized_curriculum(
        self, make_controller, course_factory
    ):
        course = course_factory([1])
        source = CountingLoader(course.modules)
        controller = make_controller(
            course, curriculum=CachedCurriculumLoader(source)
        )
        await controller.load()
        await controller.load()
        assert source.calls == 1

        added = Module(title="M2", lessons=[Lesson(title="L2.1")])
        source.modules = [*course.modules, added]
        await controller.reload_curriculum()

        assert source.calls == 2
        assert [m.id for m in controller.modules] == [course.modules[0].id, added.id]
        assert controller.selected_lesson == course.modules[0].lessons[0].id

    @pytest.mark.asyncio
    async def test_reload_failure_keeps_curriculum(
        self, make_controller, course_factory
    ):
        course = course_factory([2])
        controller = make_controller(course)
        await controller.load()
        controller._curriculum.error = ConnectionError("down")

        await controller.reload_curriculum()

        assert len(controller.modules) == 1
        assert len(controller.modules[0].lessons) == 2


class TestSelectAndStart:
    """Tests for select_lesson / start_lesson / continue_course."""

    def test_select_unknown_falls_back_to_next(self, make_controller, course_factory):
        course = course_factory([2])
        controller = make_controller(course)
        controller._completed = {course.modules[0].lessons[0].id}

        selected = controller.select_lesson(uuid4())

        assert selected == course.modules[0].lessons[1].id

    def test_select_falls_back_to_first_when_all_done(
        self, make_controller, course_factory
    ):
        course = course_factory([2])
        controller = make_controller(course)
        controller._completed = set(course.lesson_ids)

        assert controller.select_lesson(None) == course.modules[0].lessons[0].id

    def test_selection_fixed_when_lesson_disappears(
        self, make_controller, course_factory
    ):
        course = course_factory([2])
        controller = make_controller(course)
        removed = course.modules[0].lessons[1]
        controller.select_lesson(removed.id)

        controller.replace_modules([Module(title="M1", lessons=[course.modules[0].lessons[0]])])

        assert controller.selected_lesson == course.modules[0].lessons[0].id

    def test_start_lesson(self, make_controller, course_factory, clock, opener):
        course = course_factory([2])
        lesson = course.modules[0].lessons[1]
        lesson.content_url = "https://cdn.example.com/l2"
        controller = make_controller(course)
        published = []
        controller.subscribe(published.append)

        assert controller.start_lesson(lesson.id) is True

        assert controller.timer.is_tracking(lesson.id)
        assert lesson.id in controller.in_progress_lessons
        assert controller.progress == 5
        assert controller.selected_lesson == lesson.id
        assert opener.opened == ["https://cdn.example.com/l2"]
        assert published[-1].progress == 5

    def test_pause_resume_timer(self, make_controller, course_factory, clock):
        course = course_factory([1])
        lesson_id = course.modules[0].lessons[0].id
        controller = make_controller(course)
        controller.start_lesson(lesson_id)
        clock.advance(2_000)

        controller.pause_resume_timer()
        clock.advance(50_000)
        paused = controller.lesson_status(lesson_id)
        controller.pause_resume_timer()
        clock.advance(1_000)

        assert (paused.timer_seconds, paused.timer_running) == (2, False)
        assert controller.lesson_status(lesson_id).timer_seconds == 3

    def test_start_falls_back_to_course_content(
        self, make_controller, course_factory, opener
    ):
        course = course_factory([1])
        course.content_url = "https://cdn.example.com/course"
        controller = make_controller(course)

        controller.start_lesson(course.modules[0].lessons[0].id)

        assert opener.opened == ["https://cdn.example.com/course"]

    def test_start_keeps_real_progress(self, make_controller, course_factory):
        course = course_factory([4])
        controller = make_controller(course)
        controller._completed = {course.lesson_ids[0]}
        controller._progress = 25

        controller.start_lesson(course.lesson_ids[1])

        assert controller.progress == 25

    def test_start_in_locked_module_rejected(self, make_controller, course_factory, opener):
        course = course_factory([1, 1])
        controller = make_controller(course)
        locked = course.modules[1].lessons[0].id

        assert controller.start_lesson(locked) is False
        assert controller.timer.lesson_id is None
        assert controller.progress == 0
        assert opener.opened == []

    def test_start_unknown_lesson_raises(self, make_controller, course_factory):
        controller = make_controller(course_factory([1]))
        with pytest.raises(LessonNotFoundError):
            controller.start_lesson(uuid4())

    def test_continue_starts_actionable_next(self, make_controller, course_factory):
        course = course_factory([1, 1])
        controller = make_controller(course)
        controller._completed = {course.lesson_ids[0]}

        assert controller.continue_course() is True
        assert controller.timer.is_tracking(course.lesson_ids[1])

    def test_continue_blocked_by_lock(self, make_controller, course_factory):
        course = course_factory([1, 1], unlocks_next_module=False)
        controller = make_controller(course)
        controller._completed = {course.lesson_ids[0]}

        assert controller.actionable_next_lesson_id() is None
        assert controller.continue_course() is False


class TestToggleCompletion:
    """Tests for toggle_completion."""

    @pytest.mark.asyncio
    async def test_completing_module_unlocks_next(self, make_controller, course_factory):
        course = course_factory([2, 1], requires_validation=False)
        controller = make_controller(course)
        m1_a, m1_b = course.modules[0].lessons
        m2_lesson = course.modules[1].lessons[0]

        assert controller.module_states()[1].is_locked is True

        assert await controller.toggle_completion(m1_a.id) is True
        assert await controller.toggle_completion(m1_b.id) is True

        assert controller.module_states()[1].is_locked is False
        assert controller.next_lesson_id() == m2_lesson.id
        assert controller.selected_lesson == m2_lesson.id
        assert controller.progress == 67

    @pytest.mark.asyncio
    async def test_logs_duration_hint_without_timer(
        self, make_controller, sink, today
    ):
        lesson = Lesson(title="Posologia", duration_hint="45 min")
        course = Course(
            title="Farmacologia",
            modules=[Module(title="M1", lessons=[lesson])],
            sequential_modules=True,
        )
        controller = make_controller(course)

        await controller.toggle_completion(lesson.id)

        assert len(sink.entries) == 1
        entry = sink.entries[0]
        assert entry.duration_minutes == 45
        assert entry.entity_type == TimeLogEntityType.COURSE
        assert entry.entity_id == course.id
        assert entry.entity_title == "Farmacologia • Posologia"
        assert entry.log_date == today
        assert controller.progress == 100

    @pytest.mark.asyncio
    async def test_logs_timer_minutes_and_resets_timer(
        self, make_controller, course_factory, clock, sink
    ):
        course = course_factory([2])
        lesson_id = course.lesson_ids[0]
        controller = make_controller(course)
        controller.start_lesson(lesson_id)
        clock.advance(125_000)

        await controller.toggle_completion(lesson_id)

        assert [e.duration_minutes for e in sink.entries] == [2]
        assert controller.timer.lesson_id is None
        assert lesson_id not in controller.in_progress_lessons

    @pytest.mark.asyncio
    async def test_uncompleting_resets_timer_without_log(
        self, make_controller, course_factory, sink
    ):
        course = course_factory([2])
        lesson_id = course.lesson_ids[0]
        controller = make_controller(course)
        controller._completed = {lesson_id}
        controller._progress = 50
        controller.timer.start(lesson_id)

        await controller.toggle_completion(lesson_id)

        assert sink.entries == []
        assert controller.timer.lesson_id is None
        assert controller.completed_lessons == frozenset()
        # Started course never drops back to 0
        assert controller.progress == 5

    @pytest.mark.asyncio
    async def test_toggle_twice_restores_state(
        self, make_controller, course_factory, store
    ):
        course = course_factory([4])
        controller = make_controller(course)
        controller._completed = {course.lesson_ids[0]}
        controller._progress = 25
        before = controller.snapshot()

        await controller.toggle_completion(course.lesson_ids[2])
        assert controller.progress == 50
        await controller.toggle_completion(course.lesson_ids[2])

        assert controller.snapshot() == before
        assert [u["progress"] for u in store.upserts] == [50, 25]

    @pytest.mark.asyncio
    async def test_locked_toggle_rejected(self, make_controller, course_factory, store):
        course = course_factory([1, 1])
        controller = make_controller(course)

        assert await controller.toggle_completion(course.lesson_ids[1]) is False
        assert store.upserts == []
        assert controller.completed_lessons == frozenset()

    @pytest.mark.asyncio
    async def test_persistence_failure_rolls_back(
        self, make_controller, course_factory, store, sink, clock
    ):
        course = course_factory([2])
        lesson_id = course.lesson_ids[0]
        controller = make_controller(course)
        controller.start_lesson(lesson_id)
        clock.advance(60_000)
        published = []
        controller.subscribe(published.append)
        store.fail_upsert = True

        with pytest.raises(ProgressPersistenceError):
            await controller.toggle_completion(lesson_id)

        assert controller.completed_lessons == frozenset()
        assert controller.progress == 5
        assert lesson_id in controller.in_progress_lessons
        assert controller.timer.is_tracking(lesson_id)
        assert sink.entries == []
        # Optimistic publish, then the compensation
        assert [p.progress for p in published] == [50, 5]

    @pytest.mark.asyncio
    async def test_time_log_failure_keeps_completion(
        self, make_controller, course_factory, sink
    ):
        course = course_factory([1])
        controller = make_controller(course)
        sink.error = ConnectionError("tracker down")

        assert await controller.toggle_completion(course.lesson_ids[0]) is True
        assert controller.progress == 100

    @pytest.mark.asyncio
    async def test_unknown_lesson_raises(self, make_controller, course_factory):
        controller = make_controller(course_factory([1]))
        with pytest.raises(LessonNotFoundError):
            await controller.toggle_completion(uuid4())


class TestReconcile:
    """Tests for reconciliation of pushed snapshots."""

    def test_remote_snapshot_wins(self, make_controller, course_factory, clock):
        course = course_factory([4])
        controller = make_controller(course)
        controller._completed = set(course.lesson_ids[:3])
        controller._progress = 75
        controller.start_lesson(course.lesson_ids[3])
        clock.advance(20_000)

        controller.reconcile_external_update([], 0, {})

        assert controller.completed_lessons == frozenset()
        assert controller.progress == 0
        assert controller.timer.is_tracking(course.lesson_ids[3])
        assert controller.timer.elapsed_ms(course.lesson_ids[3]) == 20_000
        assert course.lesson_ids[3] in controller.in_progress_lessons

    @pytest.mark.asyncio
    async def test_feed_push_applied(
        self, make_controller, course_factory, feed, snapshot_for
    ):
        course = course_factory([2])
        controller = make_controller(course)
        await controller.load()
        note_lesson = course.lesson_ids[1]

        feed.push(
            snapshot_for(
                course, completed=course.lesson_ids, progress=100, notes={note_lesson: "x"}
            )
        )

        assert controller.completed_lessons == set(course.lesson_ids)
        assert controller.progress == 100
        assert controller.notes == {note_lesson: "x"}

    @pytest.mark.asyncio
    async def test_feed_push_for_other_pair_ignored(
        self, make_controller, course_factory, feed
    ):
        from trilha.progress.schemas import EnrollmentSnapshot

        course = course_factory([2])
        controller = make_controller(course)
        await controller.load()

        feed.push(
            EnrollmentSnapshot(
                course_id=course.id,
                user_id=uuid4(),
                completed_lessons=course.lesson_ids,
                progress=100,
            )
        )

        assert controller.progress == 0


class TestNotes:
    """Tests for update_note."""

    @pytest.mark.asyncio
    async def test_merges_into_stored_notes(
        self, make_controller, course_factory, store, snapshot_for
    ):
        course = course_factory([2])
        first, second = course.lesson_ids
        stored = snapshot_for(course, notes={first: "antes"})
        store.snapshots[(course.id, stored.user_id)] = stored
        controller = make_controller(course)

        await controller.update_note(second, "depois")

        assert controller.notes == {second: "depois"}
        assert store.upserts[-1]["notes"] == {first: "antes", second: "depois"}

    @pytest.mark.asyncio
    async def test_without_enrollment_only_local(
        self, make_controller, course_factory, store
    ):
        course = course_factory([1])
        controller = make_controller(course)

        await controller.update_note(course.lesson_ids[0], "nota")

        assert controller.notes == {course.lesson_ids[0]: "nota"}
        assert store.upserts == []

    @pytest.mark.asyncio
    async def test_save_failure_is_not_raised(
        self, make_controller, course_factory, store
    ):
        course = course_factory([1])
        controller = make_controller(course)
        store.fail_get = True

        await controller.update_note(course.lesson_ids[0], "nota")

        assert controller.notes == {course.lesson_ids[0]: "nota"}


class TestViews:
    """Tests for lesson_status and summary."""

    def test_lesson_status(self, make_controller, course_factory, clock):
        course = course_factory([2, 1])
        first, second = course.modules[0].lessons
        locked = course.modules[1].lessons[0]
        controller = make_controller(course)
        controller.start_lesson(second.id)
        clock.advance(65_400)

        status = controller.lesson_status(second.id)
        assert status.is_in_progress is True
        assert status.is_next is False
        assert status.timer_seconds == 65
        assert status.timer_running is True

        first_status = controller.lesson_status(first.id)
        assert first_status.is_next is True
        assert first_status.timer_seconds is None

        assert controller.lesson_status(locked.id).is_locked is True

    def test_summary(self, make_controller, course_factory):
        course = course_factory([2, 2])
        controller = make_controller(course)
        controller._completed = {course.lesson_ids[0], uuid4()}
        controller._progress = 25
        controller.select_lesson(course.lesson_ids[1])

        summary = controller.summary()

        assert summary.total_lessons == 4
        assert summary.completed_lessons == 1
        assert summary.status == CourseStatus.IN_PROGRESS
        assert summary.next_lesson_id == course.lesson_ids[1]
        assert summary.selected_lesson_id == course.lesson_ids[1]

    def test_observer_unsubscribe(self, make_controller, course_factory):
        course = course_factory([1])
        controller = make_controller(course)
        published = []
        unsubscribe = controller.subscribe(published.append)

        unsubscribe()
        controller.start_lesson(course.lesson_ids[0])

        assert published == []


class TestPendingPersistence:
    """Intents and pushes arriving while an upsert is still pending."""

    @pytest.mark.asyncio
    async def test_time_sampled_when_marked_complete(
        self, make_controller, course_factory, store, clock, sink
    ):
        course = course_factory([2])
        lesson_id = course.lesson_ids[0]
        controller = make_controller(course)
        controller.start_lesson(lesson_id)
        clock.advance(125_000)
        store.gate = asyncio.Event()

        pending = asyncio.create_task(controller.toggle_completion(lesson_id))
        await _until_pending(store, 1)
        # Store latency is not study time
        clock.advance(600_000)
        store.gate.set()
        await pending

        assert [e.duration_minutes for e in sink.entries] == [2]

    @pytest.mark.asyncio
    async def test_starting_next_lesson_while_pending_keeps_logged_time(
        self, make_controller, course_factory, store, clock, sink
    ):
        course = course_factory([2])
        first, second = course.lesson_ids
        controller = make_controller(course)
        controller.start_lesson(first)
        clock.advance(125_000)
        store.gate = asyncio.Event()

        pending = asyncio.create_task(controller.toggle_completion(first))
        await _until_pending(store, 1)
        assert controller.start_lesson(second) is True
        clock.advance(30_000)
        store.gate.set()
        await pending

        assert [e.duration_minutes for e in sink.entries] == [2]
        assert controller.timer.is_tracking(second)
        assert controller.timer.elapsed_ms(second) == 30_000

    @pytest.mark.asyncio
    async def test_push_during_pending_toggle_wins(
        self, make_controller, course_factory, store, feed, snapshot_for
    ):
        course = course_factory([2])
        lesson_id = course.lesson_ids[0]
        controller = make_controller(course)
        await controller.load()
        store.gate = asyncio.Event()

        pending = asyncio.create_task(controller.toggle_completion(lesson_id))
        await _until_pending(store, 2)
        assert controller.completed_lessons == {lesson_id}
        feed.push(snapshot_for(course, completed=[], progress=5))
        store.gate.set()

        assert await pending is True
        # Last writer wins: the pushed snapshot replaced the optimistic change
        assert controller.completed_lessons == frozenset()
        assert controller.progress == 5
        assert store.upserts[-1]["completed_lessons"] == [lesson_id]

    @pytest.mark.asyncio
    async def test_failed_upsert_restores_only_its_lesson(
        self, make_controller, course_factory, store
    ):
        course = course_factory([4], sequential=False)
        a, b = course.lesson_ids[:2]
        controller = make_controller(course)
        store.gate = asyncio.Event()
        store.failing_calls = {0}

        first = asyncio.create_task(controller.toggle_completion(a))
        second = asyncio.create_task(controller.toggle_completion(b))
        await _until_pending(store, 2)
        assert controller.completed_lessons == {a, b}
        assert controller.progress == 50
        store.gate.set()
        results = await asyncio.gather(first, second, return_exceptions=True)

        assert isinstance(results[0], ProgressPersistenceError)
        assert results[1] is True
        assert controller.completed_lessons == {b}
        assert controller.progress == 25
