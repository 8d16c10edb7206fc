from __future__ import annotations

from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from bsi_telemetry.api.errors import ApiError
from bsi_telemetry.api.security import Principal
from bsi_telemetry.core.settings import Settings
from bsi_telemetry.db.models import User
from bsi_telemetry.services.access_control_service import AccessControlService
from bsi_telemetry.services.access_policy import AuthorizationPolicy
from bsi_telemetry.services.activity_service import ActivityService
from bsi_telemetry.services.auth_service import AuthService, InvalidToken, TokenExpired
from bsi_telemetry.services.basestation_directory import BaseStationDirectory
from bsi_telemetry.services.metric_mapping_service import MetricMappingService
from bsi_telemetry.services.node_assignment_service import NodeAssignmentService
from bsi_telemetry.services.rate_limiter import RateLimiter
from bsi_telemetry.services.report_mailer import ReportMailer
from bsi_telemetry.services.report_service import ReportService
from bsi_telemetry.services.telemetry_service import TelemetryService
from bsi_telemetry.services.user_service import UserService


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


# -----------------
# Database / services
# -----------------

def get_db(request: Request):
    SessionLocal = request.app.state.db_sessionmaker
    db: Session = SessionLocal()  # type: ignore
    try:
        yield db
    finally:
        db.close()


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


def get_activity_service(request: Request) -> ActivityService:
    return request.app.state.activity_service


def get_rate_limiter(request: Request) -> RateLimiter:
    return request.app.state.rate_limiter


def get_policy(request: Request) -> AuthorizationPolicy:
    return request.app.state.policy


def get_access_control_service(request: Request) -> AccessControlService:
    return request.app.state.access_control_service


def get_telemetry_service(request: Request) -> TelemetryService:
    return request.app.state.telemetry_service


def get_metric_mapping_service(request: Request) -> MetricMappingService:
    return request.app.state.metric_mapping_service


def get_user_service(request: Request) -> UserService:
    return request.app.state.user_service


def get_node_assignment_service(request: Request) -> NodeAssignmentService:
    return request.app.state.node_assignment_service


def get_report_service(request: Request) -> ReportService:
    return request.app.state.report_service


def get_report_mailer(request: Request) -> ReportMailer:
    return request.app.state.report_mailer


def get_basestation_directory(request: Request) -> BaseStationDirectory:
    return request.app.state.basestation_directory


# -----------------
# Auth
# -----------------

_bearer = HTTPBearer(auto_error=False)


def get_current_principal(
    request: Request,
    creds: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
    db: Session = Depends(get_db),
    auth: AuthService = Depends(get_auth_service),
) -> Principal:
    # Preferred path: AuthEnforcementMiddleware already validated the request.
    principal = getattr(request.state, "principal", None)
    if isinstance(principal, Principal):
        return principal

    # Fallback path (AUTH_ENABLED=0 skips the middleware): validate here.
    if not creds or not creds.credentials:
        raise ApiError(401, "Access token required", "NO_TOKEN")
    try:
        claims = auth.decode_token(creds.credentials)
    except TokenExpired:
        raise ApiError(401, "Token expired", "TOKEN_EXPIRED")
    except InvalidToken:
        raise ApiError(401, "Invalid token", "INVALID_TOKEN")

    user = db.query(User).filter(User.id == claims.user_id).one_or_none()
    if not user or not user.is_active:
        raise ApiError(401, "Invalid token", "INVALID_TOKEN")
    return Principal.from_user(user)


def require_policy(action: str, resource: str, *, self_param: Optional[str] = None):
    """Gate a route on the authorization policy.

    When ``self_param`` names a path parameter holding a user id, requests
    about the caller's own record also pass self-service rules.
    """

    def _inner(
        request: Request,
        principal: Principal = Depends(get_current_principal),
        policy: AuthorizationPolicy = Depends(get_policy),
    ) -> Principal:
        is_self = False
        if self_param is not None:
            raw = request.path_params.get(self_param)
            try:
                is_self = raw is not None and int(raw) == principal.user_id
            except (TypeError, ValueError):
                is_self = False
        # PermissionDenied maps to 403 INSUFFICIENT_PERMISSIONS in errors.py
        policy.check(principal.role, action, resource, is_self=is_self)
        return principal

    return _inner
