"""
Structured logging for the client session.

Loggers returned by get_logger() accept keyword arguments as structured data:

    logger.info("Reconnect scheduled", attempt=2, delay=4.0)

Production renders one JSON object per line; development renders a short
coloured line. Both carry the client session id (see
infrastructure.correlation) so channel, upload and HTTP logs can be joined.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from pmon_client.config.settings import ClientSettings, get_settings

NOISY_LIBRARIES = ("httpx", "httpcore", "websockets")


def _record_session(record: logging.LogRecord) -> str | None:
    session_id = getattr(record, "session_id", None)
    return session_id if session_id and session_id != "-" else None


def _record_data(record: logging.LogRecord) -> dict[str, Any]:
    return getattr(record, "extra_data", None) or {}


class StructuredFormatter(logging.Formatter):
    """One JSON document per record, for log shippers."""

    def __init__(self, include_source: bool = False) -> None:
        super().__init__()
        self._include_source = include_source

    def format(self, record: logging.LogRecord) -> str:
        document: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        session_id = _record_session(record)
        if session_id:
            document["session_id"] = session_id
        data = _record_data(record)
        if data:
            document["data"] = data
        if record.exc_info:
            document["exception"] = self.formatException(record.exc_info)
        if self._include_source:
            document["source"] = f"{record.pathname}:{record.lineno} ({record.funcName})"
        return json.dumps(document, default=str)


class DevelopmentFormatter(logging.Formatter):
    """Compact coloured lines for a terminal."""

    LEVEL_COLOURS = {
        logging.DEBUG: "\033[2;36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[1;33m",
        logging.ERROR: "\033[1;31m",
        logging.CRITICAL: "\033[1;35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        colour = self.LEVEL_COLOURS.get(record.levelno, "")
        when = datetime.fromtimestamp(record.created).strftime("%H:%M:%S.%f")[:-3]
        parts = [when, f"{colour}{record.levelname[:4]}{self.RESET}", record.name]

        session_id = _record_session(record)
        if session_id:
            parts.append(f"<{session_id[:8]}>")
        parts.append(record.getMessage())

        data = _record_data(record)
        if data:
            parts.append(" ".join(f"{key}={value!r}" for key, value in data.items()))

        line = " ".join(parts)
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


class StructuredLogger(logging.Logger):
    """
    Logger whose level methods take structured data as keyword arguments.

    Standard keywords (exc_info, extra, stack_info, stacklevel) keep their
    usual meaning; everything else lands in the record's extra_data.
    """

    def _log(  # type: ignore[override]
        self,
        level: int,
        msg: object,
        args: Any,
        exc_info: Any = None,
        extra: dict[str, Any] | None = None,
        stack_info: bool = False,
        stacklevel: int = 1,
        **data: Any,
    ) -> None:
        extra = dict(extra or {})
        extra["extra_data"] = data or None
        super()._log(
            level,
            msg,
            args,
            exc_info=exc_info,
            extra=extra,
            stack_info=stack_info,
            stacklevel=stacklevel + 1,
        )


logging.setLoggerClass(StructuredLogger)


def setup_logging(settings: ClientSettings | None = None) -> None:
    """Install the session's handler on the root logger. The CLI calls this once."""
    from pmon_client.infrastructure.correlation import CorrelationIdFilter

    settings = settings or get_settings()
    level = logging.DEBUG if settings.debug else logging.INFO

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.addFilter(CorrelationIdFilter())
    if settings.environment == "production":
        handler.setFormatter(StructuredFormatter(include_source=settings.debug))
    else:
        handler.setFormatter(DevelopmentFormatter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in NOISY_LIBRARIES:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> StructuredLogger:
    """Module logger; call as get_logger(__name__)."""
    return logging.getLogger(name)  # type: ignore[return-value]


def mask_token(token: str | None) -> str:
    """
    Shorten an anti-forgery token for logs.

    "abc12345-6789-..." -> "abc12345..."; very short values keep one character.
    """
    if not token:
        return "<no-token>"
    if len(token) <= 8:
        return token[0] + "***"
    return f"{token[:8]}..."
