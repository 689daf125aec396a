# Core infrastructure
from trilha.core.context import (
    ProgressContext,
    clear_context,
    get_context,
    get_request_id,
    set_request_id,
)
from trilha.core.logging import configure_structlog, get_logger
from trilha.core.middleware import RequestContextMiddleware


__all__ = [
    "ProgressContext",
    "RequestContextMiddleware",
    "clear_context",
    "configure_structlog",
    "get_context",
    "get_logger",
    "get_request_id",
    "set_request_id",
]
