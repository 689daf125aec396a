"""FastAPI dependencies for learner progression.

Provides dependency injection for:
- Enrollment service
- Curriculum service
- Push feed
- Error handlers
"""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from trilha.curriculum.service import CurriculumError, CurriculumService

from .exceptions import ProgressError
from .feed import RedisEnrollmentFeed
from .service import EnrollmentService


async def get_enrollment_service(request: Request) -> EnrollmentService:
    """Get enrollment service from app state.

    Args:
        request: FastAPI request

    Returns:
        EnrollmentService instance
    """
    app_state = request.app.state
    if not hasattr(app_state, "enrollment_service") or not app_state.enrollment_service:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Servico de progresso nao disponivel",
        )
    return app_state.enrollment_service


async def get_curriculum_service(request: Request) -> CurriculumService:
    """Get curriculum service from app state."""
    app_state = request.app.state
    if not hasattr(app_state, "curriculum_service") or not app_state.curriculum_service:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Servico de cursos nao disponivel",
        )
    return app_state.curriculum_service


def get_enrollment_feed(request: Request) -> RedisEnrollmentFeed | None:
    """Get the push feed from app state; None when Redis is unavailable."""
    return getattr(request.app.state, "enrollment_feed", None)


# Type aliases for dependency injection
EnrollmentServiceDep = Annotated[EnrollmentService, Depends(get_enrollment_service)]
CurriculumServiceDep = Annotated[CurriculumService, Depends(get_curriculum_service)]


def handle_progress_error(error: ProgressError) -> HTTPException:
    """Convert progress errors to HTTP exceptions.

    Args:
        error: Progress error

    Returns:
        HTTPException with appropriate status code
    """
    status_map = {
        "not_enrolled": status.HTTP_404_NOT_FOUND,
        "lesson_not_found": status.HTTP_404_NOT_FOUND,
        "persistence_failed": status.HTTP_503_SERVICE_UNAVAILABLE,
        "invalid_progress": status.HTTP_422_UNPROCESSABLE_ENTITY,
    }

    status_code = status_map.get(error.code, status.HTTP_500_INTERNAL_SERVER_ERROR)

    return HTTPException(
        status_code=status_code,
        detail=error.message,
    )


def handle_curriculum_error(error: CurriculumError) -> HTTPException:
    """Convert curriculum errors to HTTP exceptions."""
    status_map = {
        "course_not_found": status.HTTP_404_NOT_FOUND,
    }

    return HTTPException(
        status_code=status_map.get(error.code, status.HTTP_500_INTERNAL_SERVER_ERROR),
        detail=error.message,
    )
