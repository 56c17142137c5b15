"""
Session correlation ids.

Every client session gets one id. It is stamped on every log record and sent
as X-Request-ID on every HTTP request so server-side logs can be joined with
the console's.
"""

import logging
import uuid
from contextvars import ContextVar

HEADER_NAME = "X-Request-ID"

# Context variable for the session id (task-local under asyncio)
session_id_var: ContextVar[str] = ContextVar("session_id", default="")


def new_session_id() -> str:
    """Generate a fresh session id."""
    return uuid.uuid4().hex


def bind_session_id(session_id: str) -> None:
    """Bind the session id for the current context and tasks spawned from it."""
    session_id_var.set(session_id)


def get_session_id() -> str:
    """Get the current session id, or an empty string if none is bound."""
    return session_id_var.get()


class CorrelationIdFilter(logging.Filter):
    """
    Logging filter that adds session_id to log records.

    Usage:
        handler = logging.StreamHandler()
        handler.addFilter(CorrelationIdFilter())
    """

    def filter(self, record: logging.LogRecord) -> bool:
        record.session_id = session_id_var.get() or "-"
        return True
