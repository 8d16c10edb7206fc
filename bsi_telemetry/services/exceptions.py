from __future__ import annotations


class ServiceError(RuntimeError):
    code = "SERVER_ERROR"

    def __init__(self, message: str, *, code: str | None = None):
        super().__init__(message)
        if code is not None:
            self.code = code


class NotFound(ServiceError):
    code = "NOT_FOUND"


class Conflict(ServiceError):
    code = "CONFLICT"


class ValidationFailed(ServiceError):
    code = "VALIDATION_ERROR"
