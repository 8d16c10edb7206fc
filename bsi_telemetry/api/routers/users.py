from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel
from sqlalchemy.orm import Session

from bsi_telemetry.api.deps import (
    get_activity_service,
    get_db,
    get_policy,
    get_rate_limiter,
    get_settings,
    get_user_service,
    require_policy,
)
from bsi_telemetry.api.errors import ApiError
from bsi_telemetry.api.security import Principal, client_ip
from bsi_telemetry.core.settings import Settings
from bsi_telemetry.services.access_policy import AuthorizationPolicy
from bsi_telemetry.services.activity_service import ActivityService
from bsi_telemetry.services.mappers import activity_out, user_out
from bsi_telemetry.services.rate_limiter import RateLimiter
from bsi_telemetry.services.user_service import PRIVILEGED_FIELDS, UserService

router = APIRouter(prefix="/api/users", tags=["users"])


class UserCreate(BaseModel):
    username: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None
    role: Optional[str] = None
    firstName: Optional[str] = None
    lastName: Optional[str] = None


class UserUpdate(BaseModel):
    email: Optional[str] = None
    firstName: Optional[str] = None
    lastName: Optional[str] = None
    role: Optional[str] = None
    isActive: Optional[Any] = None
    password: Optional[str] = None


def _create(
    req: UserCreate,
    request: Request,
    db: Session,
    svc: UserService,
    limiter: RateLimiter,
    settings: Settings,
    principal: Principal,
):
    ip = client_ip(request)
    lim = limiter.hit(f"user_create:{ip}", limit=settings.user_create_rate_limit, window_s=settings.login_rate_window_s)
    if not lim.allowed:
        raise ApiError(
            429,
            "Too many accounts created from this IP, please try again later",
            "RATE_LIMITED",
            headers={"Retry-After": str(lim.retry_after)},
        )

    user = svc.create(
        db,
        actor_id=principal.user_id,
        client_ip=ip,
        username=req.username,
        email=req.email,
        password=req.password,
        role=req.role,
        first_name=req.firstName,
        last_name=req.lastName,
    )
    return {"success": True, "message": "User created successfully", "user": user_out(user)}


@router.post("", status_code=201)
def create_user(
    req: UserCreate,
    request: Request,
    db: Session = Depends(get_db),
    svc: UserService = Depends(get_user_service),
    limiter: RateLimiter = Depends(get_rate_limiter),
    settings: Settings = Depends(get_settings),
    principal: Principal = Depends(require_policy("create", "users")),
):
    return _create(req, request, db, svc, limiter, settings, principal)


@router.post("/signup", status_code=201)
def signup(
    req: UserCreate,
    request: Request,
    db: Session = Depends(get_db),
    svc: UserService = Depends(get_user_service),
    limiter: RateLimiter = Depends(get_rate_limiter),
    settings: Settings = Depends(get_settings),
    principal: Principal = Depends(require_policy("create", "users")),
):
    return _create(req, request, db, svc, limiter, settings, principal)


@router.get("")
def list_users(
    db: Session = Depends(get_db),
    svc: UserService = Depends(get_user_service),
    _principal: Principal = Depends(require_policy("list", "users")),
):
    return {"success": True, "users": [user_out(u) for u in svc.list_users(db)]}


# Declared before /{user_id} so "activity" is not parsed as an id.
@router.get("/activity/logs")
def activity_logs(
    limit: int = Query(100, ge=1, le=1000),
    user_id: Optional[int] = Query(None, alias="userId"),
    action: Optional[str] = Query(None, max_length=100),
    db: Session = Depends(get_db),
    activity: ActivityService = Depends(get_activity_service),
    _principal: Principal = Depends(require_policy("read", "activity_logs")),
):
    logs = activity.recent(db, limit=limit, user_id=user_id, action=action)
    return {"success": True, "logs": [activity_out(log) for log in logs]}


@router.get("/{user_id}")
def get_user(
    user_id: int,
    db: Session = Depends(get_db),
    svc: UserService = Depends(get_user_service),
    _principal: Principal = Depends(require_policy("read", "users", self_param="user_id")),
):
    return {"success": True, "user": user_out(svc.get(db, user_id))}


@router.put("/{user_id}")
def update_user(
    user_id: int,
    req: UserUpdate,
    request: Request,
    db: Session = Depends(get_db),
    svc: UserService = Depends(get_user_service),
    policy: AuthorizationPolicy = Depends(get_policy),
    principal: Principal = Depends(require_policy("update", "users", self_param="user_id")),
):
    changes = req.model_dump(exclude_unset=True)
    if PRIVILEGED_FIELDS.intersection(changes) and not policy.allows(principal.role, "set_role", "users"):
        raise ApiError(403, "Only admins can change user roles or active status", "INSUFFICIENT_PERMISSIONS")

    user = svc.update(
        db,
        actor_id=principal.user_id,
        client_ip=client_ip(request),
        user_id=user_id,
        changes=changes,
    )
    return {"success": True, "message": "User updated successfully", "user": user_out(user)}


@router.delete("/{user_id}")
def delete_user(
    user_id: int,
    request: Request,
    db: Session = Depends(get_db),
    svc: UserService = Depends(get_user_service),
    principal: Principal = Depends(require_policy("delete", "users")),
):
    svc.delete(db, actor_id=principal.user_id, client_ip=client_ip(request), user_id=user_id)
    return {"success": True, "message": "User deleted successfully"}
