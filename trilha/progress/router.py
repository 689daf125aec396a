"""Learner progression API endpoints.

Provides routes for:
- Enrollment read and upsert (completion set, progress, notes)
- Course overview (module locks, per-module progress, next lesson)
- A learner's enrollments
"""

from uuid import UUID

from fastapi import APIRouter

from trilha.curriculum.service import CurriculumError

from .dependencies import (
    CurriculumServiceDep,
    EnrollmentServiceDep,
    handle_curriculum_error,
    handle_progress_error,
)
from .exceptions import NotEnrolledError, ProgressError
from .schemas import (
    CourseOverviewResponse,
    EnrollmentListResponse,
    EnrollmentResponse,
    UpsertEnrollmentRequest,
)
from .service import build_course_overview, validate_enrollment_write


router = APIRouter(prefix="/v1/courses", tags=["enrollments"])
users_router = APIRouter(prefix="/v1/users", tags=["enrollments"])


# ==============================================================================
# Enrollment Endpoints
# ==============================================================================


@router.get(
    "/{course_id}/enrollments/{user_id}",
    response_model=EnrollmentResponse,
    summary="Get enrollment",
)
async def get_enrollment(
    course_id: UUID,
    user_id: UUID,
    enrollment_service: EnrollmentServiceDep,
) -> EnrollmentResponse:
    """Get a learner's stored progression in a course."""
    try:
        enrollment = await enrollment_service.get_enrollment_record(course_id, user_id)
        if not enrollment:
            raise NotEnrolledError
        return EnrollmentResponse.from_entity(enrollment)
    except ProgressError as e:
        raise handle_progress_error(e) from e


@router.put(
    "/{course_id}/enrollments/{user_id}",
    response_model=EnrollmentResponse,
    summary="Upsert enrollment",
)
async def upsert_enrollment(
    course_id: UUID,
    user_id: UUID,
    data: UpsertEnrollmentRequest,
    enrollment_service: EnrollmentServiceDep,
    curriculum_service: CurriculumServiceDep,
) -> EnrollmentResponse:
    """Create or replace a learner's progression.

    Completed lessons must belong to the course and progress must match
    them. Omitting ``notes`` keeps the stored notes. The stored snapshot is
    pushed to subscribers of the (course, learner) feed.
    """
    try:
        course = await curriculum_service.get_course(course_id)
    except CurriculumError as e:
        raise handle_curriculum_error(e) from e

    try:
        validate_enrollment_write(course, data.completed_lessons, data.progress)
    except ProgressError as e:
        raise handle_progress_error(e) from e

    enrollment = await enrollment_service.save_enrollment(
        course_id=course_id,
        user_id=user_id,
        progress=data.progress,
        completed_lessons=data.completed_lessons,
        notes=data.notes,
    )
    return EnrollmentResponse.from_entity(enrollment)


@router.get(
    "/{course_id}/enrollments/{user_id}/overview",
    response_model=CourseOverviewResponse,
    summary="Course overview",
)
async def get_course_overview(
    course_id: UUID,
    user_id: UUID,
    enrollment_service: EnrollmentServiceDep,
    curriculum_service: CurriculumServiceDep,
) -> CourseOverviewResponse:
    """Module lock states, per-module progress and the next lesson."""
    try:
        course = await curriculum_service.get_course(course_id)
    except CurriculumError as e:
        raise handle_curriculum_error(e) from e

    try:
        enrollment = await enrollment_service.get_enrollment_record(course_id, user_id)
        if not enrollment:
            raise NotEnrolledError
    except ProgressError as e:
        raise handle_progress_error(e) from e

    return build_course_overview(course, enrollment)


@users_router.get(
    "/{user_id}/enrollments",
    response_model=EnrollmentListResponse,
    summary="List learner enrollments",
)
async def list_user_enrollments(
    user_id: UUID,
    enrollment_service: EnrollmentServiceDep,
) -> EnrollmentListResponse:
    """List every course a learner is enrolled in."""
    items = await enrollment_service.get_user_enrollments(user_id)
    return EnrollmentListResponse(items=items, total=len(items))
