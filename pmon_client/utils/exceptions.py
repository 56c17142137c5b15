"""
Centralized client exceptions for consistent error handling.

Every exception logs itself once, with structured context, when constructed.
Callers therefore never need to log before raising.

Usage:
    from pmon_client.utils.exceptions import ForbiddenError, TransportError

    raise TransportError("POST /project/upload/init", "connection refused")
    raise ForbiddenError("POST /project/manager")
"""

from typing import Any

from pmon_client.config.logging import get_logger

logger = get_logger(__name__)


class PmonClientError(Exception):
    """
    Base exception with automatic logging.

    All client exceptions inherit from this class to ensure consistent
    logging and a readable message.
    """

    log_level: str = "warning"

    def __init__(self, detail: str, log_level: str | None = None, **log_context: Any):
        self.detail = detail
        self.context = log_context
        log_fn = getattr(logger, log_level or self.log_level, logger.warning)
        log_fn(detail, error=type(self).__name__, **log_context)
        super().__init__(detail)


class ConfigurationError(PmonClientError):
    """Settings failed validation."""

    log_level = "error"

    def __init__(self, problems: list[str]):
        self.problems = problems
        super().__init__(
            "Invalid client configuration: " + "; ".join(problems),
            problems=problems,
        )


# =============================================================================
# Transport Errors
# =============================================================================


class TransportError(PmonClientError):
    """
    Network-level failure talking to the service.

    Usage:
        raise TransportError("GET /logs/files", str(exc))
    """

    def __init__(self, operation: str, reason: str, **log_context: Any):
        self.operation = operation
        self.reason = reason
        super().__init__(
            f"{operation} failed: {reason}",
            operation=operation,
            **log_context,
        )


class ServiceStatusError(TransportError):
    """The service answered with a non-2xx status."""

    def __init__(self, operation: str, status_code: int, **log_context: Any):
        self.status_code = status_code
        super().__init__(
            operation,
            f"HTTP {status_code}",
            status_code=status_code,
            **log_context,
        )


class ForbiddenError(ServiceStatusError):
    """
    The service rejected the anti-forgery token (403).

    Callers refresh the token once and surface the failure; the request
    itself is never replayed.
    """

    def __init__(self, operation: str, **log_context: Any):
        super().__init__(operation, 403, **log_context)


# =============================================================================
# Security Errors
# =============================================================================


class TokenUnavailableError(PmonClientError):
    """No anti-forgery token could be obtained."""

    log_level = "error"

    def __init__(self, reason: str, **log_context: Any):
        self.reason = reason
        super().__init__(f"Could not obtain token: {reason}", **log_context)


# =============================================================================
# Upload Errors
# =============================================================================


class UploadBusyError(PmonClientError):
    """Another upload is already in flight."""

    log_level = "info"

    def __init__(self, active_upload_id: str, **log_context: Any):
        self.active_upload_id = active_upload_id
        super().__init__(
            "Upload already in progress",
            active_upload_id=active_upload_id,
            **log_context,
        )


class UploadCancelledError(PmonClientError):
    """The user cancelled the upload."""

    log_level = "info"

    def __init__(self, upload_id: str, **log_context: Any):
        self.upload_id = upload_id
        super().__init__("Upload cancelled", upload_id=upload_id, **log_context)


class UploadFailedError(PmonClientError):
    """The upload could not be completed."""

    def __init__(self, upload_id: str, reason: str, forbidden: bool = False, **log_context: Any):
        self.upload_id = upload_id
        self.reason = reason
        self.forbidden = forbidden
        super().__init__(
            f"Upload failed: {reason}",
            upload_id=upload_id,
            forbidden=forbidden,
            **log_context,
        )
