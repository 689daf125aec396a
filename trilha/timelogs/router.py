"""Time-log API endpoints."""

from uuid import UUID

from fastapi import APIRouter, status

from trilha.progress.timeutils import format_minutes

from .dependencies import TimeLogServiceDep
from .schemas import TimeLogCreate, TimeLogListResponse, TimeLogResponse


router = APIRouter(prefix="/v1/time-logs", tags=["time-logs"])


@router.post(
    "",
    response_model=TimeLogResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Log time",
)
async def create_time_log(
    data: TimeLogCreate,
    time_log_service: TimeLogServiceDep,
) -> TimeLogResponse:
    """Append a time-log entry."""
    time_log = await time_log_service.append(data)
    return TimeLogResponse.from_entity(time_log)


@router.get(
    "/courses/{course_id}/users/{user_id}",
    response_model=TimeLogListResponse,
    summary="Time logged on a course",
)
async def list_course_time_logs(
    course_id: UUID,
    user_id: UUID,
    time_log_service: TimeLogServiceDep,
) -> TimeLogListResponse:
    """List a learner's time on a course, with the total."""
    logs = await time_log_service.list_entity_logs(user_id, course_id)
    total = sum(log.duration_minutes for log in logs)
    return TimeLogListResponse(
        items=[TimeLogResponse.from_entity(log) for log in logs],
        total_minutes=total,
        total_formatted=format_minutes(total),
    )
