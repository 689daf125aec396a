"""FastAPI dependencies for time logs."""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from .service import TimeLogService


async def get_time_log_service(request: Request) -> TimeLogService:
    """Get time-log service from app state."""
    app_state = request.app.state
    if not hasattr(app_state, "time_log_service") or not app_state.time_log_service:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Servico de registro de tempo nao disponivel",
        )
    return app_state.time_log_service


TimeLogServiceDep = Annotated[TimeLogService, Depends(get_time_log_service)]
