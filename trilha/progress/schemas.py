"""Pydantic schemas for learner progression.

- Enrollment snapshots (store reads, push feed payloads)
- Enrollment upsert requests and responses
- Course overview (module lock states and percentages)
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .models import CourseStatus, Enrollment


# ==============================================================================
# Enrollment Schemas
# ==============================================================================


class EnrollmentSnapshot(BaseModel):
    """Persisted progression state of one learner in one course.

    This is what the store returns and what the push feed delivers; a
    snapshot always replaces local state as a whole.
    """

    model_config = ConfigDict(from_attributes=True)

    course_id: UUID
    user_id: UUID
    completed_lessons: list[UUID] = Field(default_factory=list)
    progress: int = Field(0, ge=0, le=100, description="0-100 percentage")
    notes: dict[UUID, str] = Field(default_factory=dict)

    @field_validator("completed_lessons", "notes", "progress", mode="before")
    @classmethod
    def _null_as_empty(cls, value: Any, info) -> Any:
        # Push payloads carry nulls for empty collections
        if value is None:
            return {"completed_lessons": [], "notes": {}, "progress": 0}[
                info.field_name
            ]
        return value

    @classmethod
    def from_entity(cls, entity: Enrollment) -> "EnrollmentSnapshot":
        """Create snapshot from entity."""
        return cls(
            course_id=entity.course_id,
            user_id=entity.user_id,
            completed_lessons=sorted(entity.completed_lessons, key=str),
            progress=entity.progress,
            notes=entity.notes,
        )


class UpsertEnrollmentRequest(BaseModel):
    """Request to create or replace an enrollment's progression."""

    progress: int = Field(..., ge=0, le=100, description="0-100 percentage")
    completed_lessons: list[UUID] = Field(default_factory=list)
    notes: dict[UUID, str] | None = Field(
        None, description="Replaces stored notes when given; untouched when null"
    )


class EnrollmentResponse(EnrollmentSnapshot):
    """Enrollment response."""

    lessons_completed: int
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_entity(cls, entity: Enrollment) -> "EnrollmentResponse":
        """Create response from entity."""
        return cls(
            course_id=entity.course_id,
            user_id=entity.user_id,
            completed_lessons=sorted(entity.completed_lessons, key=str),
            progress=entity.progress,
            notes=entity.notes,
            lessons_completed=len(entity.completed_lessons),
            created_at=entity.created_at,
            updated_at=entity.updated_at,
        )


class UserEnrollmentSummary(BaseModel):
    """Compact enrollment row from the by-user lookup table."""

    course_id: UUID
    progress: int
    lessons_completed: int
    updated_at: datetime | None = None


class EnrollmentListResponse(BaseModel):
    """List of a learner's enrollments."""

    items: list[UserEnrollmentSummary]
    total: int


# ==============================================================================
# Course Overview Schemas
# ==============================================================================


class ModuleStateResponse(BaseModel):
    """Lock state and completion of one module."""

    module_id: UUID
    title: str
    is_locked: bool
    locked_reason: str = ""
    awaiting_validation: bool
    module_completed: bool
    progress: int = Field(description="0-100 percentage")
    lessons_total: int


class CourseOverviewResponse(BaseModel):
    """Progression of a learner across a whole course."""

    course_id: UUID
    user_id: UUID
    status: CourseStatus
    progress: int = Field(description="0-100 percentage, as persisted")
    computed_progress: int = Field(
        description="0-100 percentage recomputed from the completion set"
    )
    lessons_completed: int
    lessons_total: int
    next_lesson_id: UUID | None = Field(
        None, description="First uncompleted lesson, ignoring locks"
    )
    actionable_next_lesson_id: UUID | None = Field(
        None, description="Next lesson if its module is unlocked"
    )
    modules: list[ModuleStateResponse] = Field(default_factory=list)


# ==============================================================================
# Generic Response
# ==============================================================================


class MessageResponse(BaseModel):
    """Generic message response."""

    message: str
    success: bool = True
