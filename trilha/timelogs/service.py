"""Time-log service.

Appends entries logged when a learner completes a lesson (or logs time by
hand) and lists/totals a learner's time on a course.
"""

from typing import TYPE_CHECKING
from uuid import UUID

import structlog

from .models import TimeLog
from .schemas import TimeLogCreate


if TYPE_CHECKING:
    from cassandra.cluster import Session

logger = structlog.get_logger(__name__)


class TimeLogService:
    """Cassandra-backed time-log sink."""

    def __init__(self, session: "Session", keyspace: str):
        """Initialize with Cassandra session."""
        self.session = session
        self.keyspace = keyspace
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for efficient execution."""
        self._insert_time_log = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.time_logs
            (user_id, entity_id, created_at, id, entity_type, entity_title,
             log_date, duration_minutes, description)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """)

        self._get_entity_time_logs = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.time_logs
            WHERE user_id = ? AND entity_id = ?
        """)

    async def append(self, entry: TimeLogCreate) -> TimeLog:
        """Persist a time-log entry."""
        time_log = TimeLog(
            user_id=entry.user_id,
            entity_id=entry.entity_id,
            entity_type=entry.entity_type.value,
            entity_title=entry.entity_title,
            log_date=entry.log_date,
            duration_minutes=entry.duration_minutes,
            description=entry.description,
        )

        await self.session.aexecute(
            self._insert_time_log,
            [
                time_log.user_id,
                time_log.entity_id,
                time_log.created_at,
                time_log.id,
                time_log.entity_type,
                time_log.entity_title,
                time_log.log_date,
                time_log.duration_minutes,
                time_log.description,
            ],
        )

        logger.info(
            "time_log_appended",
            time_log_id=str(time_log.id),
            entity_id=str(time_log.entity_id),
            duration_minutes=time_log.duration_minutes,
        )
        return time_log

    async def list_entity_logs(self, user_id: UUID, entity_id: UUID) -> list[TimeLog]:
        """List a learner's entries on one entity, newest first."""
        rows = await self.session.aexecute(
            self._get_entity_time_logs, [user_id, entity_id]
        )
        return [TimeLog.from_row(row) for row in rows]

    async def total_minutes(self, user_id: UUID, entity_id: UUID) -> int:
        """Total minutes a learner logged on one entity."""
        logs = await self.list_entity_logs(user_id, entity_id)
        return sum(log.duration_minutes for log in logs)
