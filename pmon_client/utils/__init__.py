"""
Utilities: exception taxonomy.
"""

from pmon_client.utils.exceptions import (
    ConfigurationError,
    ForbiddenError,
    PmonClientError,
    ServiceStatusError,
    TokenUnavailableError,
    TransportError,
    UploadBusyError,
    UploadCancelledError,
    UploadFailedError,
)

__all__ = [
    "ConfigurationError",
    "ForbiddenError",
    "PmonClientError",
    "ServiceStatusError",
    "TokenUnavailableError",
    "TransportError",
    "UploadBusyError",
    "UploadCancelledError",
    "UploadFailedError",
]
