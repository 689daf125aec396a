"""Curriculum entities and Cassandra table definitions.

A course is an ordered list of modules, a module an ordered list of lessons.
Ordering comes from the junction tables (``course_modules``,
``module_lessons``) clustered by position. Authoring happens elsewhere; this
package only reads the curriculum.
"""

from typing import Any
from uuid import UUID, uuid4


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

COURSE_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.courses (
    id UUID PRIMARY KEY,
    title TEXT,
    content_url TEXT,
    sequential_modules BOOLEAN
)
"""

MODULE_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.modules (
    id UUID PRIMARY KEY,
    title TEXT,
    requires_validation BOOLEAN,
    unlocks_next_module BOOLEAN
)
"""

LESSON_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.lessons (
    id UUID PRIMARY KEY,
    title TEXT,
    duration TEXT,
    content_url TEXT
)
"""

# Junction Tables (ordered by position)
COURSE_MODULES_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.course_modules (
    course_id UUID,
    position INT,
    module_id UUID,
    PRIMARY KEY (course_id, position, module_id)
) WITH CLUSTERING ORDER BY (position ASC, module_id ASC)
"""

MODULE_LESSONS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.module_lessons (
    module_id UUID,
    position INT,
    lesson_id UUID,
    PRIMARY KEY (module_id, position, lesson_id)
) WITH CLUSTERING ORDER BY (position ASC, lesson_id ASC)
"""

CURRICULUM_TABLES_CQL = [
    COURSE_TABLE_CQL,
    MODULE_TABLE_CQL,
    LESSON_TABLE_CQL,
    COURSE_MODULES_TABLE_CQL,
    MODULE_LESSONS_TABLE_CQL,
]


# ==============================================================================
# Entity Classes
# ==============================================================================


class Lesson:
    """Atomic content unit; the unit of completion tracking.

    Attributes:
        id: Lesson UUID
        title: Lesson title
        duration_hint: Free-text estimate ("30 min", "2h"), used only as a
            fallback when logging time
        content_url: External content opened when the lesson starts
    """

    def __init__(
        self,
        id: UUID | None = None,
        title: str = "",
        duration_hint: str | None = None,
        content_url: str | None = None,
    ):
        self.id = id or uuid4()
        self.title = title.strip()
        self.duration_hint = duration_hint
        self.content_url = content_url

    @classmethod
    def from_row(cls, row: Any) -> "Lesson":
        """Create Lesson instance from Cassandra row."""
        return cls(
            id=row.id,
            title=row.title or "",
            duration_hint=row.duration,
            content_url=row.content_url,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "title": self.title,
            "duration_hint": self.duration_hint,
            "content_url": self.content_url,
        }

    def __repr__(self) -> str:
        return f"<Lesson {self.title} ({self.id})>"


class Module:
    """Ordered group of lessons; the unit of sequential gating.

    Attributes:
        id: Module UUID
        title: Module title
        lessons: Lessons in display order
        requires_validation: An instructor must approve completion
        unlocks_next_module: Administrative override; when False the module
            never unlocks the next one, even fully completed
    """

    def __init__(
        self,
        id: UUID | None = None,
        title: str = "",
        lessons: list[Lesson] | None = None,
        requires_validation: bool = False,
        unlocks_next_module: bool = True,
    ):
        self.id = id or uuid4()
        self.title = title.strip()
        self.lessons = list(lessons or [])
        self.requires_validation = requires_validation
        self.unlocks_next_module = unlocks_next_module

    @classmethod
    def from_row(cls, row: Any, lessons: list[Lesson] | None = None) -> "Module":
        """Create Module instance from Cassandra row."""
        return cls(
            id=row.id,
            title=row.title or "",
            lessons=lessons,
            requires_validation=bool(row.requires_validation),
            unlocks_next_module=(
                True if row.unlocks_next_module is None else row.unlocks_next_module
            ),
        )

    @property
    def lesson_ids(self) -> list[UUID]:
        """Lesson IDs in display order."""
        return [lesson.id for lesson in self.lessons]

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "title": self.title,
            "requires_validation": self.requires_validation,
            "unlocks_next_module": self.unlocks_next_module,
            "lessons": [lesson.to_dict() for lesson in self.lessons],
        }

    def __repr__(self) -> str:
        return f"<Module {self.title} ({len(self.lessons)} lessons)>"


class Course:
    """Course curriculum.

    Completion state is not stored here; the progression controller owns it.

    Attributes:
        id: Course UUID
        title: Course title (used in time-log titles)
        modules: Modules in course order
        sequential_modules: Modules gate each other when True
        content_url: Fallback content for lessons without their own
    """

    def __init__(
        self,
        id: UUID | None = None,
        title: str = "",
        modules: list[Module] | None = None,
        sequential_modules: bool = False,
        content_url: str | None = None,
    ):
        self.id = id or uuid4()
        self.title = title.strip()
        self.modules = list(modules or [])
        self.sequential_modules = sequential_modules
        self.content_url = content_url

    @classmethod
    def from_row(cls, row: Any, modules: list[Module] | None = None) -> "Course":
        """Create Course instance from Cassandra row."""
        return cls(
            id=row.id,
            title=row.title or "",
            modules=modules,
            sequential_modules=bool(row.sequential_modules),
            content_url=row.content_url,
        )

    @property
    def lesson_ids(self) -> list[UUID]:
        """All lesson IDs in course order."""
        return [lesson.id for module in self.modules for lesson in module.lessons]

    def find_lesson(self, lesson_id: UUID) -> tuple[int, Lesson] | None:
        """Locate a lesson, returning (module index, lesson)."""
        for index, module in enumerate(self.modules):
            for lesson in module.lessons:
                if lesson.id == lesson_id:
                    return index, lesson
        return None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "title": self.title,
            "sequential_modules": self.sequential_modules,
            "content_url": self.content_url,
            "modules": [module.to_dict() for module in self.modules],
        }

    def __repr__(self) -> str:
        return f"<Course {self.title} ({len(self.modules)} modules)>"
