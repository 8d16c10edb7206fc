from __future__ import annotations

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from bsi_telemetry.api.errors import error_response
from bsi_telemetry.api.security import Principal, is_path_allowlisted
from bsi_telemetry.db.models import User
from bsi_telemetry.services.auth_service import InvalidToken, TokenExpired


class AuthEnforcementMiddleware(BaseHTTPMiddleware):
    """Default-deny bearer auth for every non-allowlisted path.

    On success a `Principal` is attached to `request.state.principal` for the
    FastAPI dependencies to reuse.
    """

    async def dispatch(self, request: Request, call_next):
        settings = getattr(request.app.state, "settings", None)
        if not settings or not getattr(settings, "auth_enabled", True):
            return await call_next(request)

        # CORS preflight carries no Authorization header.
        if request.method.upper() == "OPTIONS":
            return await call_next(request)
        if is_path_allowlisted(request.url.path, env=getattr(settings, "env", "prod")):
            return await call_next(request)

        raw = (request.headers.get("authorization") or "").strip()
        token = raw.split(" ", 1)[1].strip() if raw.lower().startswith("bearer ") else ""
        if not token:
            return error_response(401, "Access token required", "NO_TOKEN")

        auth = request.app.state.auth_service
        try:
            claims = auth.decode_token(token)
        except TokenExpired:
            return error_response(401, "Token expired", "TOKEN_EXPIRED")
        except InvalidToken:
            return error_response(401, "Invalid token", "INVALID_TOKEN")

        SessionLocal = request.app.state.db_sessionmaker
        with SessionLocal() as db:
            user = db.query(User).filter(User.id == claims.user_id).one_or_none()
            if user is None or not user.is_active:
                return error_response(401, "Invalid token", "INVALID_TOKEN")
            # Detach with attributes loaded; the request handlers use their own session.
            db.expunge(user)

        request.state.principal = Principal.from_user(user)
        return await call_next(request)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        response: Response = await call_next(request)
        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        response.headers.setdefault("X-Frame-Options", "DENY")
        response.headers.setdefault("Referrer-Policy", "no-referrer")
        if request.url.scheme == "https":
            response.headers.setdefault("Strict-Transport-Security", "max-age=31536000")

        path = request.url.path
        if path.startswith("/api/reports"):
            # Rendered reports embed inline styles and SVG only.
            response.headers.setdefault(
                "Content-Security-Policy",
                "default-src 'none'; style-src 'unsafe-inline'; img-src data:; frame-ancestors 'none'",
            )
        if path.startswith("/api/auth") or path.startswith("/api/users") or path.startswith("/api/node-assignments"):
            response.headers.setdefault("Cache-Control", "no-store")
        return response


class RequestSizeLimitMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, max_bytes: int) -> None:
        super().__init__(app)
        self.max_bytes = max(1, int(max_bytes))

    async def dispatch(self, request: Request, call_next):
        cl = request.headers.get("content-length")
        if cl:
            try:
                too_large = int(cl) > self.max_bytes
            except ValueError:
                return error_response(400, "Invalid Content-Length header", "VALIDATION_ERROR")
            if too_large:
                return error_response(413, "Request too large", "PAYLOAD_TOO_LARGE")
        return await call_next(request)
