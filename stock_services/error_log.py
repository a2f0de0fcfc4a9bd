"""
ErrorLogRecorder -- persists whole-run failures to the ``error_log`` table.

The entry is written in its own session and transaction so that it survives
the rollback of the failed run.  A failure to write the entry is logged and
does not mask the original error, which the caller re-raises.
"""

from __future__ import annotations

import json
import traceback
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from stock_kernel.domain.clock import Clock
from stock_kernel.logging_config import LogContext, get_logger
from stock_kernel.models.error_log import ErrorLogEntry

logger = get_logger("services.error_log")


def _context_json(context: dict[str, Any]) -> str:
    return json.dumps(context, ensure_ascii=False, sort_keys=True, default=str)


class ErrorLogRecorder:
    """Writes ErrorLogEntry rows in a separate transaction."""

    def __init__(self, session_factory: sessionmaker[Session], clock: Clock):
        self._session_factory = session_factory
        self._clock = clock

    def record(
        self,
        function: str,
        error: BaseException,
        context: dict[str, Any] | None = None,
    ) -> ErrorLogEntry | None:
        """
        Persist one failure.

        Returns:
            The stored entry, or None if it could not be written.
        """
        full_context = {**LogContext.get_all(), **(context or {})}
        entry = ErrorLogEntry(
            occurred_at=self._clock.now(),
            function=function,
            error_code=getattr(error, "code", "") or type(error).__name__,
            message=str(error),
            stack="".join(
                traceback.format_exception(type(error), error, error.__traceback__)
            ),
            context=_context_json(full_context),
        )
        session = self._session_factory()
        try:
            session.add(entry)
            session.commit()
        except SQLAlchemyError:
            session.rollback()
            logger.exception("error_log_write_failed", extra={"function": function})
            return None
        finally:
            session.close()

        logger.info(
            "error_logged",
            extra={"function": function, "error_code": entry.error_code},
        )
        return entry
