from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import NullPool

logger = logging.getLogger(__name__)

# Applied to every new SQLite connection. foreign_keys is what makes the
# ON DELETE CASCADE / SET NULL clauses on users and mappings take effect.
SQLITE_PRAGMAS = (
    "PRAGMA foreign_keys=ON",
    "PRAGMA journal_mode=WAL",
    "PRAGMA synchronous=NORMAL",
    "PRAGMA busy_timeout=5000",
)

# MySQL closes idle connections after wait_timeout (8h by default).
SERVER_POOL_RECYCLE_S = 3600


@dataclass(frozen=True)
class DBRuntime:
    engine: Engine
    SessionLocal: sessionmaker


def _install_sqlite_pragmas(engine: Engine) -> None:
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):  # pragma: no cover
        cursor = dbapi_connection.cursor()
        try:
            for stmt in SQLITE_PRAGMAS:
                cursor.execute(stmt)
        except Exception as e:
            # WAL is refused on read-only or in-memory databases; the rest still applied.
            logger.warning("Could not apply SQLite pragma: %s", e)
        finally:
            cursor.close()


def create_engine_and_sessionmaker(
    database_url: str,
    *,
    echo: bool = False,
    pool_size: int = 10,
) -> DBRuntime:
    """Engine + sessionmaker for the telemetry database.

    The samples table usually lives in MySQL next to the gateway that writes
    it; SQLite files are supported for development and tests.
    """
    is_sqlite = database_url.startswith("sqlite")

    kwargs: Dict[str, Any] = {"echo": echo, "future": True, "pool_pre_ping": True}
    if is_sqlite:
        # Requests run on a threadpool; each checkout opens its own connection.
        kwargs["connect_args"] = {"check_same_thread": False, "timeout": 5}
        kwargs["poolclass"] = NullPool
    else:
        kwargs["pool_size"] = max(1, int(pool_size))
        kwargs["max_overflow"] = 0
        kwargs["pool_recycle"] = SERVER_POOL_RECYCLE_S

    engine = create_engine(database_url, **kwargs)

    if is_sqlite:
        _install_sqlite_pragmas(engine)

    SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
    return DBRuntime(engine=engine, SessionLocal=SessionLocal)
