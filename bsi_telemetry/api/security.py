from __future__ import annotations

from dataclasses import dataclass

from starlette.requests import Request

from bsi_telemetry.db.models import User


@dataclass(slots=True)
class Principal:
    """Authenticated user for a request.

    Role is taken from the database row at validation time, not from the
    token claims, so demotions apply to tokens already issued.
    """

    user: User
    user_id: int
    username: str
    role: str

    @classmethod
    def from_user(cls, user: User) -> "Principal":
        return cls(user=user, user_id=int(user.id), username=user.username, role=user.role)


def client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def is_path_allowlisted(path: str, *, env: str) -> bool:
    """Paths that bypass bearer-token enforcement. Keep this list minimal."""
    path = (path or "/").strip() or "/"

    if path == "/api/auth/login":
        return True
    if path == "/health":
        return True

    # Swagger docs only in dev
    if env.lower() in ("dev", "development", "local"):
        if path in ("/docs", "/openapi.json", "/redoc"):
            return True

    return False
