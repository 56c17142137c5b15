"""
Resilience: reconnect and retry schedules.
"""

from pmon_client.components.resilience.retry import (
    ReconnectPolicy,
    calculate_backoff_delay,
    linear_backoff,
)

__all__ = [
    "ReconnectPolicy",
    "calculate_backoff_delay",
    "linear_backoff",
]
