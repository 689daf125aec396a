"""Progression errors."""


# ==============================================================================
# Custom Exceptions
# ==============================================================================


class ProgressError(Exception):
    """Base progress error."""

    def __init__(self, message: str, code: str = "progress_error"):
        self.message = message
        self.code = code
        super().__init__(message)


class ProgressPersistenceError(ProgressError):
    """Enrollment upsert failed; local state was rolled back."""

    def __init__(self, message: str = "Nao foi possivel salvar o progresso"):
        super().__init__(message, "persistence_failed")


class NotEnrolledError(ProgressError):
    """User not enrolled in course."""

    def __init__(self, message: str = "Usuario nao inscrito no curso"):
        super().__init__(message, "not_enrolled")


class LessonNotFoundError(ProgressError):
    """Lesson is not part of the course curriculum."""

    def __init__(self, message: str = "Aula nao encontrada no curso"):
        super().__init__(message, "lesson_not_found")


class InvalidProgressError(ProgressError):
    """Written completion set or progress does not match the curriculum."""

    def __init__(self, message: str = "Progresso inconsistente com o curso"):
        super().__init__(message, "invalid_progress")
