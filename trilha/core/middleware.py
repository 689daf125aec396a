"""Request middleware for context management and logging."""

import re
import time
from collections.abc import Awaitable, Callable

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from trilha.core.context import ProgressContext, clear_context, set_request_id


logger = structlog.get_logger(__name__)

_UUID = r"[0-9a-fA-F]{8}-(?:[0-9a-fA-F]{4}-){3}[0-9a-fA-F]{12}"
_COURSE_IN_PATH = re.compile(rf"/courses/({_UUID})")
_USER_IN_PATH = re.compile(rf"(?<!/ws)/(?:users|enrollments)/({_UUID})(?:/|$)")


def progress_ids_from_path(path: str) -> tuple[str | None, str | None]:
    """Extract (course_id, user_id) from an enrollment or time-log URL."""
    course = _COURSE_IN_PATH.search(path)
    user = _USER_IN_PATH.search(path)
    return (
        course.group(1) if course else None,
        user.group(1) if user else None,
    )


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Binds request, course and learner IDs to every log line of a request.

    The request ID comes from the ``X-Request-ID`` header (or is generated)
    and is echoed back on the response. Course and learner IDs are read from
    the URL, so log lines written by services and the controller carry them
    without the IDs being passed around.
    """

    REQUEST_ID_HEADER = "X-Request-ID"

    def __init__(
        self,
        app: ASGIApp,
        log_requests: bool = True,
        exclude_paths: list[str] | None = None,
    ) -> None:
        super().__init__(app)
        self.log_requests = log_requests
        self.exclude_paths = tuple(exclude_paths or ("/health",))

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        path = request.url.path
        request_id = set_request_id(request.headers.get(self.REQUEST_ID_HEADER))
        request.state.request_id = request_id
        course_id, user_id = progress_ids_from_path(path)
        should_log = self.log_requests and not path.startswith(self.exclude_paths)

        started = time.perf_counter()
        try:
            with ProgressContext(course_id=course_id, user_id=user_id):
                if should_log:
                    logger.info("request_started", method=request.method, path=path)

                response = await call_next(request)

                if should_log:
                    level = "warning" if response.status_code >= 400 else "info"
                    getattr(logger, level)(
                        "request_completed",
                        method=request.method,
                        path=path,
                        status_code=response.status_code,
                        duration_ms=_elapsed_ms(started),
                    )
        except Exception as e:
            logger.exception(
                "request_failed",
                method=request.method,
                path=path,
                error_type=type(e).__name__,
                duration_ms=_elapsed_ms(started),
            )
            raise
        finally:
            clear_context()

        response.headers[self.REQUEST_ID_HEADER] = request_id
        return response


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)
