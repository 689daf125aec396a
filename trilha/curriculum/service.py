"""Curriculum read service.

Loads a course with its ordered modules and lessons from Cassandra, and
memoizes module lists per course so repeated mounts of the same course do
not re-fetch.
"""

from typing import TYPE_CHECKING
from uuid import UUID

import structlog

from .models import Course, Lesson, Module


if TYPE_CHECKING:
    from cassandra.cluster import Session

    from trilha.progress.protocols import CurriculumLoader

logger = structlog.get_logger(__name__)


# ==============================================================================
# Custom Exceptions
# ==============================================================================


class CurriculumError(Exception):
    """Base curriculum error."""

    def __init__(self, message: str, code: str = "curriculum_error"):
        self.message = message
        self.code = code
        super().__init__(message)


class CourseNotFoundError(CurriculumError):
    """Course not found."""

    def __init__(self, message: str = "Curso nao encontrado"):
        super().__init__(message, "course_not_found")


# ==============================================================================
# Curriculum Service
# ==============================================================================


class CurriculumService:
    """Cassandra-backed curriculum loader."""

    def __init__(self, session: "Session", keyspace: str):
        """Initialize with Cassandra session."""
        self.session = session
        self.keyspace = keyspace
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements."""
        self._get_course_by_id = self.session.prepare(
            f"SELECT * FROM {self.keyspace}.courses WHERE id = ?"
        )
        self._get_module_by_id = self.session.prepare(
            f"SELECT * FROM {self.keyspace}.modules WHERE id = ?"
        )
        self._get_lesson_by_id = self.session.prepare(
            f"SELECT * FROM {self.keyspace}.lessons WHERE id = ?"
        )
        self._get_course_modules = self.session.prepare(
            f"SELECT * FROM {self.keyspace}.course_modules WHERE course_id = ?"
        )
        self._get_module_lessons = self.session.prepare(
            f"SELECT * FROM {self.keyspace}.module_lessons WHERE module_id = ?"
        )

    async def get_course(self, course_id: UUID) -> Course:
        """Get a course with its full curriculum.

        Raises:
            CourseNotFoundError: If the course does not exist
        """
        result = await self.session.aexecute(self._get_course_by_id, [course_id])
        row = result.one()
        if not row:
            raise CourseNotFoundError
        modules = await self.get_modules(course_id)
        return Course.from_row(row, modules=modules)

    async def get_modules(self, course_id: UUID) -> list[Module]:
        """Get the ordered modules of a course, lessons included."""
        links = await self.session.aexecute(self._get_course_modules, [course_id])

        modules = []
        # Clustering order is position ASC
        for link in links:
            result = await self.session.aexecute(
                self._get_module_by_id, [link.module_id]
            )
            row = result.one()
            if not row:
                logger.warning(
                    "course_module_missing",
                    course_id=str(course_id),
                    module_id=str(link.module_id),
                )
                continue
            lessons = await self._get_module_lessons_ordered(link.module_id)
            modules.append(Module.from_row(row, lessons=lessons))

        logger.debug(
            "curriculum_loaded",
            course_id=str(course_id),
            modules=len(modules),
            lessons=sum(len(m.lessons) for m in modules),
        )
        return modules

    async def _get_module_lessons_ordered(self, module_id: UUID) -> list[Lesson]:
        links = await self.session.aexecute(self._get_module_lessons, [module_id])

        lessons = []
        for link in links:
            result = await self.session.aexecute(
                self._get_lesson_by_id, [link.lesson_id]
            )
            row = result.one()
            if row:
                lessons.append(Lesson.from_row(row))
        return lessons


class CachedCurriculumLoader:
    """Memoizes ``get_modules`` per course ID.

    Wraps any curriculum loader. ``invalidate`` forces the next call for a
    course (or every course) to hit the wrapped loader again.
    """

    def __init__(self, loader: "CurriculumLoader"):
        self._loader = loader
        self._cache: dict[UUID, list[Module]] = {}

    async def get_modules(self, course_id: UUID) -> list[Module]:
        """Get modules, fetching from the wrapped loader only once per course."""
        if course_id in self._cache:
            return self._cache[course_id]

        modules = await self._loader.get_modules(course_id)
        self._cache[course_id] = modules
        return modules

    def invalidate(self, course_id: UUID | None = None) -> None:
        """Drop the memoized curriculum of one course, or of all courses."""
        if course_id is None:
            self._cache.clear()
        else:
            self._cache.pop(course_id, None)
