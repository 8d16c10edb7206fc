from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from bsi_telemetry.services.access_control_service import NodeAccessDenied
from bsi_telemetry.services.access_policy import PermissionDenied
from bsi_telemetry.services.exceptions import Conflict, NotFound, ServiceError, ValidationFailed
from bsi_telemetry.services.report_service import ReportDeadlineExceeded

logger = logging.getLogger(__name__)

DEFAULT_CODES: Dict[int, str] = {
    400: "VALIDATION_ERROR",
    401: "INVALID_TOKEN",
    403: "INSUFFICIENT_PERMISSIONS",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
    413: "PAYLOAD_TOO_LARGE",
    429: "RATE_LIMITED",
    504: "REPORT_TIMEOUT",
}


class ApiError(Exception):
    """Raised by routers for any non-2xx outcome with a stable error code."""

    def __init__(
        self,
        status_code: int,
        message: str,
        code: Optional[str] = None,
        *,
        detail: Any = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> None:
        super().__init__(message)
        self.status_code = int(status_code)
        self.message = message
        self.code = code or DEFAULT_CODES.get(self.status_code, "SERVER_ERROR")
        self.detail = detail
        self.headers = dict(headers or {})


def error_response(
    status_code: int,
    message: str,
    code: Optional[str] = None,
    *,
    detail: Any = None,
    headers: Optional[Mapping[str, str]] = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "error": message,
            "message": message,
            "code": code or DEFAULT_CODES.get(status_code, "SERVER_ERROR"),
            "detail": detail,
        },
        headers=dict(headers or {}) or None,
    )


def _service_status(exc: ServiceError) -> int:
    if isinstance(exc, NotFound):
        return 404
    if isinstance(exc, Conflict):
        return 409
    if isinstance(exc, ValidationFailed):
        return 400
    return 500


def register_error_handlers(app: FastAPI, *, expose_details: bool = False) -> None:
    @app.exception_handler(ApiError)
    async def api_error_handler(_, exc: ApiError):
        return error_response(exc.status_code, exc.message, exc.code, detail=exc.detail, headers=exc.headers)

    @app.exception_handler(ServiceError)
    async def service_error_handler(_, exc: ServiceError):
        return error_response(_service_status(exc), str(exc), exc.code)

    @app.exception_handler(NodeAccessDenied)
    async def node_access_handler(_, exc: NodeAccessDenied):
        return error_response(403, "Access to this node is not permitted", "NODE_ACCESS_DENIED")

    @app.exception_handler(PermissionDenied)
    async def permission_handler(_, exc: PermissionDenied):
        return error_response(403, "Insufficient permissions", "INSUFFICIENT_PERMISSIONS")

    @app.exception_handler(ReportDeadlineExceeded)
    async def report_deadline_handler(_, exc: ReportDeadlineExceeded):
        return error_response(504, "Report generation timed out", "REPORT_TIMEOUT", detail={"deadline_s": exc.deadline_s})

    @app.exception_handler(HTTPException)
    async def http_exception_handler(_, exc: HTTPException):
        message = exc.detail if isinstance(exc.detail, str) else "Request failed"
        return error_response(exc.status_code, message, headers=getattr(exc, "headers", None))

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(_, exc: RequestValidationError):
        return error_response(400, "Validation error", "VALIDATION_ERROR", detail=exc.errors())

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(_, exc: Exception):
        logger.exception("Unhandled error: %s", exc)
        return error_response(500, "Internal server error", "SERVER_ERROR", detail=str(exc) if expose_details else None)
