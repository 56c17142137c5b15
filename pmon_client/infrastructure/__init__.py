"""
Infrastructure: session correlation ids and the HTTP surface client.
"""

from pmon_client.infrastructure.correlation import (
    CorrelationIdFilter,
    bind_session_id,
    get_session_id,
    new_session_id,
)
from pmon_client.infrastructure.http import ProgressReader, ServiceHttpClient

__all__ = [
    "CorrelationIdFilter",
    "bind_session_id",
    "get_session_id",
    "new_session_id",
    "ProgressReader",
    "ServiceHttpClient",
]
