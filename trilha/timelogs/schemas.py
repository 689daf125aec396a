"""Pydantic schemas for time logs."""

from datetime import date, datetime
from uuid import UUID

from pydantic import BaseModel, Field

from .models import TimeLog, TimeLogEntityType


class TimeLogCreate(BaseModel):
    """Request to append a time-log entry."""

    user_id: UUID
    entity_type: TimeLogEntityType = TimeLogEntityType.COURSE
    entity_id: UUID
    entity_title: str = Field(..., min_length=1, max_length=500)
    log_date: date
    duration_minutes: int = Field(..., gt=0, description="Whole minutes")
    description: str = Field("", max_length=2000)


class TimeLogResponse(BaseModel):
    """Time-log entry response."""

    id: UUID
    user_id: UUID
    entity_type: TimeLogEntityType
    entity_id: UUID
    entity_title: str
    log_date: date
    duration_minutes: int
    description: str
    created_at: datetime

    @classmethod
    def from_entity(cls, entity: TimeLog) -> "TimeLogResponse":
        """Create response from entity."""
        return cls(
            id=entity.id,
            user_id=entity.user_id,
            entity_type=entity.entity_type,
            entity_id=entity.entity_id,
            entity_title=entity.entity_title,
            log_date=entity.log_date,
            duration_minutes=entity.duration_minutes,
            description=entity.description,
            created_at=entity.created_at,
        )


class TimeLogListResponse(BaseModel):
    """Time logged by a learner on one course."""

    items: list[TimeLogResponse]
    total_minutes: int
    total_formatted: str = Field(description='Total as "<h>h <m>m"')
