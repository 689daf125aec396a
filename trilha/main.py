"""Trilha API - Main Application."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from trilha.config import get_settings
from trilha.core.context import get_request_id
from trilha.core.database import init_async_cassandra, shutdown_async_cassandra
from trilha.core.logging import configure_structlog, get_logger
from trilha.core.middleware import RequestContextMiddleware
from trilha.core.redis import init_redis, shutdown_redis
from trilha.curriculum.service import (
    CachedCurriculumLoader,
    CurriculumError,
    CurriculumService,
)
from trilha.health import router as health_router
from trilha.progress.dependencies import handle_curriculum_error, handle_progress_error
from trilha.progress.exceptions import ProgressError
from trilha.progress.feed import RedisEnrollmentFeed
from trilha.progress.router import router as enrollments_router
from trilha.progress.router import users_router as user_enrollments_router
from trilha.progress.service import EnrollmentService
from trilha.progress.websocket_router import router as enrollments_ws_router
from trilha.timelogs.router import router as time_logs_router
from trilha.timelogs.service import TimeLogService


# Configure logging early (before creating logger)
settings = get_settings()
configure_structlog(settings, log_dir=Path(settings.log_dir))

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    settings = get_settings()
    logger.info(
        "starting_application",
        app_name=settings.app_name,
        version=settings.app_version,
        environment=settings.environment,
    )

    # Redis is optional: without it there is no push feed
    app.state.enrollment_feed = None
    try:
        redis_client = await init_redis()
        app.state.enrollment_feed = RedisEnrollmentFeed(
            redis_client,
            poll_timeout=settings.feed_poll_timeout_seconds,
            poll_interval=settings.feed_poll_interval_seconds,
        )
        logger.info("enrollment_feed_initialized")
    except Exception as e:
        logger.warning(
            "redis_init_skipped",
            error=str(e),
            message="Running without Redis - push feed disabled",
        )

    try:
        session = await init_async_cassandra()

        app.state.curriculum_service = CurriculumService(
            session=session,
            keyspace=settings.cassandra_keyspace,
        )
        app.state.curriculum_loader = CachedCurriculumLoader(
            app.state.curriculum_service
        )
        app.state.enrollment_service = EnrollmentService(
            session=session,
            keyspace=settings.cassandra_keyspace,
            feed=app.state.enrollment_feed,
        )
        app.state.time_log_service = TimeLogService(
            session=session,
            keyspace=settings.cassandra_keyspace,
        )
        logger.info(
            "services_initialized",
            push_feed=app.state.enrollment_feed is not None,
        )
    except Exception as e:
        logger.warning(
            "database_init_skipped",
            error=str(e),
            message="Running without database connection",
        )

    yield

    # Shutdown
    logger.info("shutting_down_application")
    await shutdown_redis()
    await shutdown_async_cassandra()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    # debug=False keeps Starlette from rendering stack traces
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Trilha - progresso e liberacao de modulos de cursos",
        debug=False,
        lifespan=lifespan,
        default_response_class=ORJSONResponse,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        openapi_url="/openapi.json" if settings.is_development else None,
    )

    # Request context middleware (must be added first - outermost)
    app.add_middleware(
        RequestContextMiddleware,
        log_requests=settings.log_requests,
        exclude_paths=settings.log_exclude_paths,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
        max_age=settings.cors_max_age,
    )

    def _get_request_id_safe(request: Request) -> str | None:
        """Get request_id from request state or context."""
        if hasattr(request.state, "request_id"):
            return request.state.request_id
        return get_request_id()

    def _error_response(
        request: Request, status_code: int, message: str
    ) -> ORJSONResponse:
        return ORJSONResponse(
            status_code=status_code,
            content={
                "error": True,
                "message": message,
                "status_code": status_code,
                "request_id": _get_request_id_safe(request),
            },
        )

    # Global exception handlers (never expose stack traces)
    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> ORJSONResponse:
        """Handle HTTP exceptions with safe error messages."""
        logger.warning(
            "http_exception",
            status_code=exc.status_code,
            detail=str(exc.detail),
            path=request.url.path,
            method=request.method,
        )
        return _error_response(
            request,
            exc.status_code,
            str(exc.detail)
            if exc.status_code < status.HTTP_500_INTERNAL_SERVER_ERROR
            else "Internal server error",
        )

    @app.exception_handler(ProgressError)
    async def progress_exception_handler(
        request: Request, exc: ProgressError
    ) -> ORJSONResponse:
        """Progress errors that escaped a router."""
        http_exc = handle_progress_error(exc)
        logger.warning("progress_error", code=exc.code, path=request.url.path)
        return _error_response(request, http_exc.status_code, exc.message)

    @app.exception_handler(CurriculumError)
    async def curriculum_exception_handler(
        request: Request, exc: CurriculumError
    ) -> ORJSONResponse:
        """Curriculum errors that escaped a router."""
        http_exc = handle_curriculum_error(exc)
        logger.warning("curriculum_error", code=exc.code, path=request.url.path)
        return _error_response(request, http_exc.status_code, exc.message)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> ORJSONResponse:
        """Handle validation errors with safe error messages."""
        logger.warning(
            "validation_error",
            errors=exc.errors(),
            path=request.url.path,
            method=request.method,
        )
        return ORJSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={
                "error": True,
                "message": "Validation error",
                "status_code": 422,
                "request_id": _get_request_id_safe(request),
                "details": [
                    {
                        "field": ".".join(str(loc) for loc in err.get("loc", [])),
                        "message": err.get("msg", "Invalid value"),
                    }
                    for err in exc.errors()
                ],
            },
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(
        request: Request, exc: Exception
    ) -> ORJSONResponse:
        """Catch-all handler for unhandled exceptions."""
        logger.exception(
            "unhandled_exception",
            error_type=type(exc).__name__,
            error_message=str(exc),
            path=request.url.path,
            method=request.method,
        )
        return _error_response(
            request,
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "An unexpected error occurred. Please try again later.",
        )

    # Include routers
    app.include_router(health_router)
    app.include_router(enrollments_router)
    app.include_router(user_enrollments_router)
    app.include_router(enrollments_ws_router)
    app.include_router(time_logs_router)

    @app.get("/", include_in_schema=False)
    async def root(request: Request) -> dict[str, str]:
        """Root endpoint."""
        return {
            "message": "Trilha API",
            "version": settings.app_version,
            "docs": f"{request.url}docs",
        }

    return app


app = create_app()
