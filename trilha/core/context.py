"""Log context management using contextvars.

Every HTTP request gets a request ID; progression work additionally binds
the course and learner it is acting for, so log lines emitted deep inside the
controller or the stores can be correlated without passing IDs around.
"""

from contextvars import ContextVar, Token
from typing import Any
from uuid import UUID, uuid4


request_id_var: ContextVar[str] = ContextVar("request_id", default="")
user_id_var: ContextVar[str | None] = ContextVar("user_id", default=None)
course_id_var: ContextVar[str | None] = ContextVar("course_id", default=None)


def generate_request_id() -> str:
    """Generate a new unique request ID."""
    return str(uuid4())


def get_request_id() -> str:
    """Get the current request ID."""
    return request_id_var.get()


def set_request_id(request_id: str | None = None) -> str:
    """Set the request ID for the current context.

    Args:
        request_id: Optional request ID. If not provided, generates a new one.

    Returns:
        The request ID that was set.
    """
    rid = request_id or generate_request_id()
    request_id_var.set(rid)
    return rid


def get_user_id() -> str | None:
    """Get the current learner ID."""
    return user_id_var.get()


def get_course_id() -> str | None:
    """Get the current course ID."""
    return course_id_var.get()


def get_context() -> dict[str, Any]:
    """Get all non-empty context variables as a dictionary."""
    context: dict[str, Any] = {}

    request_id = get_request_id()
    if request_id:
        context["request_id"] = request_id

    user_id = get_user_id()
    if user_id:
        context["user_id"] = user_id

    course_id = get_course_id()
    if course_id:
        context["course_id"] = course_id

    return context


def clear_context() -> None:
    """Clear all context variables.

    Called at the end of each request to prevent context leakage.
    """
    request_id_var.set("")
    user_id_var.set(None)
    course_id_var.set(None)


class ProgressContext:
    """Context manager binding a (course, learner) pair to log lines.

    Usage:
        with ProgressContext(course_id=course.id, user_id=user_id):
            logger.info("lesson_started")  # includes course_id, user_id
    """

    def __init__(
        self,
        course_id: str | UUID | None = None,
        user_id: str | UUID | None = None,
    ) -> None:
        self.course_id = course_id
        self.user_id = user_id
        self._tokens: list[tuple[ContextVar, Token]] = []

    def __enter__(self) -> "ProgressContext":
        if self.course_id is not None:
            self._tokens.append(
                (course_id_var, course_id_var.set(str(self.course_id)))
            )
        if self.user_id is not None:
            self._tokens.append((user_id_var, user_id_var.set(str(self.user_id))))
        return self

    def __exit__(self, *_: object) -> None:
        for var, token in reversed(self._tokens):
            var.reset(token)
        self._tokens.clear()
