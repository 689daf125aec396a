"""Database models for time logs.

Cassandra table definition for time entries logged against a learning entity
(a course, for lesson completions). Partitioned by (user_id, entity_id) so a
learner's time on one course is a single-partition read.
"""

from datetime import UTC, date, datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from trilha.progress.models import ensure_utc_aware


class TimeLogEntityType(str, Enum):
    """Kind of entity time is logged against."""

    COURSE = "course"


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

# Registros de tempo - particionado por usuario e entidade
TIME_LOGS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.time_logs (
    user_id UUID,
    entity_id UUID,
    created_at TIMESTAMP,
    id UUID,
    entity_type TEXT,
    entity_title TEXT,
    log_date DATE,
    duration_minutes INT,
    description TEXT,
    PRIMARY KEY ((user_id, entity_id), created_at, id)
) WITH CLUSTERING ORDER BY (created_at DESC, id ASC)
"""

TIMELOGS_TABLES_CQL = [
    TIME_LOGS_TABLE_CQL,
]


def _as_date(value: Any) -> date | None:
    # cassandra.util.Date exposes .date()
    if value is None or isinstance(value, date):
        return value
    return value.date()


# ==============================================================================
# Entity Classes
# ==============================================================================


class TimeLog:
    """A block of time a learner spent on an entity."""

    def __init__(
        self,
        user_id: UUID,
        entity_id: UUID,
        entity_type: str,
        entity_title: str,
        log_date: date,
        duration_minutes: int,
        description: str = "",
        id: UUID | None = None,
        created_at: datetime | None = None,
    ):
        self.id = id or uuid4()
        self.user_id = user_id
        self.entity_id = entity_id
        self.entity_type = entity_type
        self.entity_title = entity_title
        self.log_date = log_date
        self.duration_minutes = duration_minutes
        self.description = description
        self.created_at = ensure_utc_aware(created_at) or datetime.now(UTC)

    @classmethod
    def from_row(cls, row: Any) -> "TimeLog":
        """Create TimeLog instance from Cassandra row."""
        return cls(
            id=row.id,
            user_id=row.user_id,
            entity_id=row.entity_id,
            entity_type=row.entity_type,
            entity_title=row.entity_title or "",
            log_date=_as_date(row.log_date),
            duration_minutes=row.duration_minutes or 0,
            description=row.description or "",
            created_at=row.created_at,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "entity_id": self.entity_id,
            "entity_type": self.entity_type,
            "entity_title": self.entity_title,
            "log_date": self.log_date,
            "duration_minutes": self.duration_minutes,
            "description": self.description,
            "created_at": self.created_at,
        }

    def __repr__(self) -> str:
        return f"<TimeLog {self.entity_title!r} {self.duration_minutes}min>"
