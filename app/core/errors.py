from typing import Any


class AppError(Exception):
    """
    Base for errors the HTTP layer knows how to render.
    `status_code` picks the response status; the message is safe to show callers.
    """
    status_code: int = 500

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(AppError):
    """Caller supplied invalid input. `details` lists the offending fields."""
    status_code = 400

    def __init__(self, message: str, details: list[dict[str, Any]] | None = None):
        super().__init__(message)
        self.details = details


class StorageError(AppError):
    """
    Backing store rejected a read or write.
    The underlying exception is kept on `cause` for operators; it is never sent to callers.
    """
    status_code = 500

    def __init__(self, message: str, cause: BaseException | None = None):
        super().__init__(message)
        self.cause = cause


def field_error(field: str, message: str) -> dict[str, Any]:
    return {"field": field, "message": message}
