from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import OperationalError

from bsi_telemetry.api.errors import register_error_handlers
from bsi_telemetry.api.middleware import AuthEnforcementMiddleware, RequestSizeLimitMiddleware, SecurityHeadersMiddleware
from bsi_telemetry.api.routers import (
    auth,
    health,
    mail,
    metric_mappings,
    node_assignments,
    nodes,
    reports,
    telemetry,
    users,
)
from bsi_telemetry.core.settings import Settings
from bsi_telemetry.db.base import Base
from bsi_telemetry.db.session import create_engine_and_sessionmaker
from bsi_telemetry.services.access_control_service import AccessControlService
from bsi_telemetry.services.access_policy import AuthorizationPolicy
from bsi_telemetry.services.activity_service import ActivityService
from bsi_telemetry.services.auth_service import AuthService
from bsi_telemetry.services.basestation_directory import BaseStationDirectory
from bsi_telemetry.services.db_log_handler import DBLogHandler
from bsi_telemetry.services.metric_mapping_service import MetricMappingService
from bsi_telemetry.services.node_assignment_service import NodeAssignmentService
from bsi_telemetry.services.rate_limiter import RateLimiter
from bsi_telemetry.services.report_mailer import ReportMailer, SmtpConfig
from bsi_telemetry.services.report_service import ReportService
from bsi_telemetry.services.telemetry_service import TelemetryService
from bsi_telemetry.services.user_service import UserService

logger = logging.getLogger(__name__)


def _repo_root() -> Path:
    # .../repo_root/bsi_telemetry/api/app.py -> parents[2] == repo_root
    return Path(__file__).resolve().parents[2]


def _resolve(p: str) -> str:
    path = Path(p)
    if path.is_absolute():
        return str(path)
    return str((_repo_root() / path).resolve())


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or Settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting BSI telemetry API (env=%s)...", settings.env)

        app.state.settings = settings

        # --- DB ---
        db_rt = create_engine_and_sessionmaker(
            settings.database_url,
            echo=settings.db_echo,
            pool_size=settings.db_pool_size,
        )
        app.state.db_engine = db_rt.engine
        app.state.db_sessionmaker = db_rt.SessionLocal
        if settings.auto_create_db:
            Base.metadata.create_all(bind=db_rt.engine)

        # --- Auth / activity ---
        if not settings.jwt_secret_key:
            raise RuntimeError("JWT_SECRET_KEY is required")

        app.state.auth_service = AuthService(
            jwt_secret_key=settings.jwt_secret_key,
            jwt_issuer=settings.jwt_issuer,
            session_timeout_minutes=settings.session_timeout_minutes,
        )
        app.state.activity_service = ActivityService()
        app.state.rate_limiter = RateLimiter()
        app.state.policy = AuthorizationPolicy()

        # Bootstrap initial admin if DB empty
        try:
            with db_rt.SessionLocal() as db:
                try:
                    app.state.auth_service.ensure_initial_admin(
                        db,
                        username=settings.initial_admin_username,
                        password=settings.initial_admin_password,
                        email=settings.initial_admin_email,
                    )
                except OperationalError as e:
                    raise RuntimeError(
                        "Database schema not initialized. Run `alembic upgrade head` (or set AUTO_CREATE_DB=1 for dev)."
                    ) from e
        except Exception:
            logger.exception("Failed to bootstrap initial admin")
            raise

        # --- Domain services ---
        app.state.access_control_service = AccessControlService()
        app.state.telemetry_service = TelemetryService(raw_point_limit=settings.telemetry_raw_point_limit)
        app.state.metric_mapping_service = MetricMappingService(app.state.activity_service)
        app.state.user_service = UserService(app.state.auth_service, app.state.activity_service)
        app.state.node_assignment_service = NodeAssignmentService(app.state.activity_service)
        app.state.report_service = ReportService(
            telemetry=app.state.telemetry_service,
            access=app.state.access_control_service,
            deadline_s=settings.report_deadline_s,
        )
        app.state.basestation_directory = BaseStationDirectory(_resolve(settings.basestations_file))
        app.state.report_mailer = ReportMailer(
            SmtpConfig(
                host=settings.smtp_host,
                port=settings.smtp_port,
                secure=settings.smtp_secure,
                username=settings.smtp_user,
                password=settings.smtp_pass,
                from_email=settings.default_from_email,
            )
        )
        if not app.state.report_mailer.configured:
            logger.info("SMTP_HOST or DEFAULT_FROM_EMAIL not set; report email is disabled")

        # --- DB log handler (WARNING+) ---
        db_handler = DBLogHandler(db_rt.SessionLocal)
        db_handler.setLevel(logging.WARNING)
        pkg_logger = logging.getLogger("bsi_telemetry")
        pkg_logger.addHandler(db_handler)

        try:
            yield
        finally:
            logger.info("Shutting down BSI telemetry API...")
            pkg_logger.removeHandler(db_handler)
            db_rt.engine.dispose()
            logger.info("BSI telemetry API shutdown complete.")

    app = FastAPI(
        title="BSI Telemetry API",
        lifespan=lifespan,
        docs_url="/docs" if settings.is_dev else None,
        redoc_url="/redoc" if settings.is_dev else None,
        openapi_url="/openapi.json" if settings.is_dev else None,
    )

    # Middleware
    app.add_middleware(RequestSizeLimitMiddleware, max_bytes=settings.max_request_size_bytes)
    app.add_middleware(AuthEnforcementMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins or [],
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
    )

    register_error_handlers(app, expose_details=settings.is_dev)

    # Routers
    app.include_router(health.router)
    app.include_router(auth.router)
    app.include_router(nodes.router)
    app.include_router(telemetry.router)
    app.include_router(reports.router)
    app.include_router(mail.router)
    app.include_router(users.router)
    app.include_router(node_assignments.router)
    app.include_router(metric_mappings.router)

    return app
