"""Domain-level exceptions, mapped to HTTP responses by the global error handler."""

from __future__ import annotations


class CoworkError(Exception):
    """Base class for domain errors."""

    status_code: int = 400
    detail: str = "Request could not be completed"

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(detail or self.detail)
        if detail:
            self.detail = detail


class InvalidOperationError(CoworkError):
    status_code = 400
    detail = "Invalid operation"


class PermissionDeniedError(CoworkError):
    status_code = 403
    detail = "You do not have permission to perform this action"


class NotFoundError(CoworkError):
    status_code = 404
    detail = "Not found"


class ConflictError(CoworkError):
    status_code = 409
    detail = "Conflict"


class ServiceUnavailableError(CoworkError):
    status_code = 503
    detail = "Service temporarily unavailable"
