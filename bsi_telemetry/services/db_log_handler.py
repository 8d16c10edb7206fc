from __future__ import annotations

import logging
from typing import Callable

from sqlalchemy.orm import Session

from bsi_telemetry.db.models import ServerLog


class DBLogHandler(logging.Handler):
    """Persists WARNING+ records into ``server_logs``.

    Attach it to the ``bsi_telemetry`` logger only. SQLAlchemy's own loggers
    must stay off this handler or a failing insert would log into itself.
    """

    def __init__(self, sessionmaker: Callable[[], Session], *, level: int = logging.WARNING) -> None:
        super().__init__(level=level)
        self._sessionmaker = sessionmaker

    def emit(self, record: logging.LogRecord) -> None:
        if record.name.startswith("sqlalchemy"):
            return
        try:
            meta = {"pathname": record.pathname, "lineno": record.lineno, "func": record.funcName}
            if record.exc_info and record.exc_info[0] is not None:
                meta["exc_type"] = record.exc_info[0].__name__
            with self._sessionmaker() as db:
                db.add(
                    ServerLog(
                        level=record.levelname,
                        logger=record.name,
                        message=self.format(record),
                        meta=meta,
                    )
                )
                db.commit()
        except Exception:
            # Never raise from logging
            self.handleError(record)
