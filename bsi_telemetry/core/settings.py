from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from typing import Callable, List, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

_FALSY = ("0", "false", "no", "off")


def _env_bool(key: str, default: str = "1") -> bool:
    return os.getenv(key, default).strip().lower() not in _FALSY


def _env_number(key: str, default: str, cast: Callable[[str], T]) -> T:
    raw = os.getenv(key, default).strip()
    try:
        return cast(raw)
    except ValueError:
        logger.warning("Ignoring invalid %s=%r, using %s", key, raw, default)
        return cast(default)


def _env_int(key: str, default: str) -> int:
    return _env_number(key, default, int)


def _env_float(key: str, default: str) -> float:
    return _env_number(key, default, float)


def _env_list(key: str, default: str = "") -> List[str]:
    """Comma separated, or a JSON array when the value starts with ``[``."""
    raw = os.getenv(key, default).strip()
    if not raw:
        return []
    if raw.startswith("["):
        try:
            values = json.loads(raw)
        except json.JSONDecodeError:
            values = None
        if isinstance(values, list):
            return [str(x).strip() for x in values if str(x).strip()]
        raw = raw.strip("[]")
    return [x.strip() for x in raw.split(",") if x.strip()]


@dataclass(frozen=True, slots=True)
class Settings:
    # dev|development|local enables /docs and error details in 500 responses
    env: str = field(default_factory=lambda: os.getenv("ENV", "prod").strip())
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO").strip().upper())

    # Files (relative to repo root unless absolute)
    basestations_file: str = field(default_factory=lambda: os.getenv("BASESTATIONS_FILE", "config/basestations.yaml"))

    # CORS defaults to locked-down (no cross-origin). Set CORS_ALLOW_ORIGINS to enable the dashboard on another origin.
    cors_allow_origins: List[str] = field(default_factory=lambda: _env_list("CORS_ALLOW_ORIGINS", ""))
    cors_allow_methods: List[str] = field(default_factory=lambda: _env_list("CORS_ALLOW_METHODS", "GET,POST,PUT,DELETE,OPTIONS"))
    cors_allow_headers: List[str] = field(default_factory=lambda: _env_list("CORS_ALLOW_HEADERS", "Authorization,Content-Type"))
    cors_allow_credentials: bool = field(default_factory=lambda: _env_bool("CORS_ALLOW_CREDENTIALS", "1"))

    # Database
    database_url: str = field(default_factory=lambda: os.getenv("DATABASE_URL", "sqlite:///./bsi_telemetry.db"))
    db_echo: bool = field(default_factory=lambda: _env_bool("DB_ECHO", "0"))
    db_pool_size: int = field(default_factory=lambda: _env_int("DB_POOL_SIZE", "10"))
    # NOTE: In production, use Alembic migrations (alembic upgrade head). AUTO_CREATE_DB is a dev/test escape hatch.
    auto_create_db: bool = field(default_factory=lambda: _env_bool("AUTO_CREATE_DB", "0"))

    # Auth
    auth_enabled: bool = field(default_factory=lambda: _env_bool("AUTH_ENABLED", "1"))
    jwt_secret_key: str = field(default_factory=lambda: os.getenv("JWT_SECRET_KEY", "").strip())
    jwt_issuer: str = field(default_factory=lambda: os.getenv("JWT_ISSUER", "bsi_telemetry").strip())
    session_timeout_minutes: int = field(default_factory=lambda: _env_int("SESSION_TIMEOUT_MINUTES", "30"))
    login_rate_limit: int = field(default_factory=lambda: _env_int("LOGIN_RATE_LIMIT", "5"))
    login_rate_window_s: int = field(default_factory=lambda: _env_int("LOGIN_RATE_WINDOW_S", str(15 * 60)))
    user_create_rate_limit: int = field(default_factory=lambda: _env_int("USER_CREATE_RATE_LIMIT", "5"))

    # Bootstrap
    initial_admin_username: str = field(default_factory=lambda: os.getenv("INITIAL_ADMIN_USERNAME", "admin").strip())
    initial_admin_password: str = field(default_factory=lambda: os.getenv("INITIAL_ADMIN_PASSWORD", "").strip())
    initial_admin_email: str = field(default_factory=lambda: os.getenv("INITIAL_ADMIN_EMAIL", "admin@localhost").strip())

    # Request limits / hardening
    max_request_size_bytes: int = field(default_factory=lambda: _env_int("MAX_REQUEST_SIZE_BYTES", str(10 * 1024 * 1024)))

    # Telemetry
    telemetry_raw_point_limit: int = field(default_factory=lambda: _env_int("TELEMETRY_RAW_POINT_LIMIT", "500"))

    # Reports
    report_deadline_s: float = field(default_factory=lambda: _env_float("REPORT_DEADLINE_S", "30"))

    # Report email (SMTP). Sending is refused until SMTP_HOST and DEFAULT_FROM_EMAIL are set.
    smtp_host: str = field(default_factory=lambda: os.getenv("SMTP_HOST", "").strip())
    smtp_port: int = field(default_factory=lambda: _env_int("SMTP_PORT", "587"))
    smtp_secure: bool = field(default_factory=lambda: _env_bool("SMTP_SECURE", "0"))
    smtp_user: str = field(default_factory=lambda: os.getenv("SMTP_USER", "").strip())
    smtp_pass: str = field(default_factory=lambda: os.getenv("SMTP_PASS", ""))
    default_from_email: str = field(default_factory=lambda: os.getenv("DEFAULT_FROM_EMAIL", "").strip())
    report_email_rate_limit: int = field(default_factory=lambda: _env_int("REPORT_EMAIL_RATE_LIMIT", "5"))
    report_email_max_bytes: int = field(default_factory=lambda: _env_int("REPORT_EMAIL_MAX_BYTES", str(10 * 1024 * 1024)))

    @property
    def is_dev(self) -> bool:
        return self.env.lower() in ("dev", "development", "local")
