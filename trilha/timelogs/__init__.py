"""Time logged by learners on courses."""

from .models import TIMELOGS_TABLES_CQL, TimeLog, TimeLogEntityType
from .schemas import TimeLogCreate


__all__ = [
    "TIMELOGS_TABLES_CQL",
    "TimeLog",
    "TimeLogCreate",
    "TimeLogEntityType",
]
