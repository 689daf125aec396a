"""Fixtures and in-memory collaborators for progression tests."""

import asyncio
from datetime import date
from uuid import UUID, uuid4

import pytest

from trilha.curriculum.models import Course, Lesson, Module
from trilha.progress.schemas import EnrollmentSnapshot


class FakeClock:
    """Manually advanced millisecond clock."""

    def __init__(self, now: int = 1_000_000):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class FakeCurriculum:
    def __init__(self, modules: list[Module]):
        self.modules = modules
        self.calls = 0
        self.error: Exception | None = None

    async def get_modules(self, course_id: UUID) -> list[Module]:
        self.calls += 1
        if self.error:
            raise self.error
        return list(self.modules)


class FakeEnrollmentStore:
    """Enrollment store keeping one snapshot per (course, user)."""

    def __init__(self):
        self.snapshots: dict[tuple[UUID, UUID], EnrollmentSnapshot] = {}
        self.upserts: list[dict] = []
        self.fail_upsert = False
        self.fail_get = False
        # Upserts wait on the gate when set; indexes in failing_calls fail
        self.gate: asyncio.Event | None = None
        self.failing_calls: set[int] = set()

    async def get_enrollment(self, course_id, user_id):
        if self.fail_get:
            raise ConnectionError("store unavailable")
        return self.snapshots.get((course_id, user_id))

    async def upsert_enrollment(
        self, course_id, user_id, progress, completed_lessons, notes=None
    ):
        self.upserts.append(
            {
                "course_id": course_id,
                "user_id": user_id,
                "progress": progress,
                "completed_lessons": list(completed_lessons),
                "notes": notes,
            }
        )
        call_index = len(self.upserts) - 1
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_upsert or call_index in self.failing_calls:
            raise ConnectionError("store unavailable")
        previous = self.snapshots.get((course_id, user_id))
        kept_notes = previous.notes if previous else {}
        snapshot = EnrollmentSnapshot(
            course_id=course_id,
            user_id=user_id,
            progress=progress,
            completed_lessons=list(completed_lessons),
            notes=notes if notes is not None else kept_notes,
        )
        self.snapshots[(course_id, user_id)] = snapshot
        return snapshot


class FakeSubscription:
    def __init__(self):
        self.closed = False

    async def unsubscribe(self) -> None:
        self.closed = True


class FakeFeed:
    def __init__(self):
        self.callbacks = []
        self.subscriptions: list[FakeSubscription] = []

    async def subscribe(self, course_id, user_id, callback):
        self.callbacks.append(callback)
        subscription = FakeSubscription()
        self.subscriptions.append(subscription)
        return subscription

    def push(self, snapshot: EnrollmentSnapshot) -> None:
        for callback in self.callbacks:
            callback(snapshot)


class FakeTimeLogSink:
    def __init__(self):
        self.entries = []
        self.error: Exception | None = None

    async def append(self, entry):
        if self.error:
            raise self.error
        self.entries.append(entry)
        return entry


class FakeOpener:
    def __init__(self):
        self.opened: list[str] = []

    def open(self, url: str) -> None:
        self.opened.append(url)


def make_course(
    lessons_per_module: list[int],
    sequential: bool = True,
    **module_flags,
) -> Course:
    """Course with ``len(lessons_per_module)`` modules of numbered lessons."""
    modules = [
        Module(
            title=f"M{m + 1}",
            lessons=[
                Lesson(title=f"L{m + 1}.{n + 1}", duration_hint="10 min")
                for n in range(count)
            ],
            **module_flags,
        )
        for m, count in enumerate(lessons_per_module)
    ]
    return Course(title="Farmacologia", modules=modules, sequential_modules=sequential)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> FakeEnrollmentStore:
    return FakeEnrollmentStore()


@pytest.fixture
def feed() -> FakeFeed:
    return FakeFeed()


@pytest.fixture
def sink() -> FakeTimeLogSink:
    return FakeTimeLogSink()


@pytest.fixture
def opener() -> FakeOpener:
    return FakeOpener()


@pytest.fixture
def user_id() -> UUID:
    return uuid4()


@pytest.fixture
def today() -> date:
    return date(2026, 3, 14)


@pytest.fixture
def course_factory():
    """Build a course from per-module lesson counts."""
    return make_course


@pytest.fixture
def make_controller(clock, store, feed, sink, opener, user_id, today):
    """Build a controller over in-memory collaborators."""
    from trilha.progress.controller import ProgressionController

    def build(course: Course, **overrides) -> ProgressionController:
        options = {
            "curriculum": FakeCurriculum(course.modules),
            "enrollments": store,
            "feed": feed,
            "time_logs": sink,
            "opener": opener,
            "clock": clock,
            "today": lambda: today,
        }
        options.update(overrides)
        return ProgressionController(course, user_id, **options)

    return build


@pytest.fixture
def snapshot_for(user_id):
    """Build an enrollment snapshot for a course and the test learner."""

    def build(course: Course, completed=(), progress=0, notes=None):
        return EnrollmentSnapshot(
            course_id=course.id,
            user_id=user_id,
            completed_lessons=list(completed),
            progress=progress,
            notes=notes or {},
        )

    return build
