from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel
from sqlalchemy.orm import Session

from bsi_telemetry.api.deps import (
    get_activity_service,
    get_auth_service,
    get_current_principal,
    get_db,
    get_rate_limiter,
    get_settings,
)
from bsi_telemetry.api.errors import ApiError
from bsi_telemetry.api.security import Principal, client_ip
from bsi_telemetry.core.settings import Settings
from bsi_telemetry.services.activity_service import ActivityService
from bsi_telemetry.services.auth_service import AccountDisabled, AuthService, InvalidCredentials
from bsi_telemetry.services.mappers import session_user_out
from bsi_telemetry.services.rate_limiter import RateLimiter

router = APIRouter(prefix="/api/auth", tags=["auth"])


class LoginRequest(BaseModel):
    # Optional so missing fields map to MISSING_CREDENTIALS rather than a schema error.
    username: Optional[str] = None
    password: Optional[str] = None


@router.post("/login")
def login(
    req: LoginRequest,
    request: Request,
    db: Session = Depends(get_db),
    auth: AuthService = Depends(get_auth_service),
    activity: ActivityService = Depends(get_activity_service),
    limiter: RateLimiter = Depends(get_rate_limiter),
    settings: Settings = Depends(get_settings),
):
    ip = client_ip(request)
    # Every attempt counts, whatever its outcome.
    lim = limiter.hit(f"login:{ip}", limit=settings.login_rate_limit, window_s=settings.login_rate_window_s)
    if not lim.allowed:
        raise ApiError(
            429,
            "Too many login attempts from this IP, please try again later",
            "RATE_LIMITED",
            headers={"Retry-After": str(lim.retry_after)},
        )

    username = (req.username or "").strip()
    if not username or not req.password:
        raise ApiError(400, "Username and password are required", "MISSING_CREDENTIALS")

    try:
        user = auth.authenticate(db, username=username, password=req.password)
    except InvalidCredentials:
        raise ApiError(401, "Invalid credentials", "INVALID_CREDENTIALS")
    except AccountDisabled:
        raise ApiError(403, "Account is disabled", "ACCOUNT_DISABLED")

    activity.log(db, action="LOGIN", user_id=user.id, client_ip=ip, resource="auth")
    issued = auth.issue_token(user)
    return {
        "success": True,
        "message": "Login successful",
        "token": issued.token,
        "user": session_user_out(user),
        "expiresIn": issued.expires_in_s,
    }


@router.get("/verify")
def verify(principal: Principal = Depends(get_current_principal)):
    return {
        "success": True,
        "user": {"id": principal.user_id, "username": principal.username, "role": principal.role},
    }


@router.post("/logout")
def logout(
    request: Request,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    activity: ActivityService = Depends(get_activity_service),
):
    # Tokens are stateless; the client discards it. This records the event.
    activity.log(db, action="LOGOUT", user_id=principal.user_id, client_ip=client_ip(request), resource="auth")
    return {"success": True, "message": "Logout successful"}
