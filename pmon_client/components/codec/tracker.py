"""
Bookkeeping for inbound message types this client does not know.
"""

from __future__ import annotations

from typing import Any, Final

from pmon_client.config.logging import get_logger

logger = get_logger(__name__)

MAX_UNKNOWN_TYPES: Final[int] = 50


class UnknownTypeTracker:
    """
    Counts unknown inbound types for monitoring.

    Bounded: once max_types distinct types are tracked, the oldest is evicted
    (dict insertion order gives FIFO). The first occurrence of a type is
    logged at WARNING, repeats at DEBUG.
    """

    def __init__(self, max_types: int = MAX_UNKNOWN_TYPES):
        self._max_types = max_types
        self._seen: dict[str, int] = {}
        self._count = 0

    @property
    def count(self) -> int:
        """Total number of unknown frames received."""
        return self._count

    @property
    def types_seen(self) -> list[str]:
        """Unique unknown types currently tracked (oldest first)."""
        return list(self._seen.keys())

    def record(self, message_type: str | None) -> bool:
        """
        Record an unknown type.

        Args:
            message_type: The unrecognized type (None when the frame had none).

        Returns:
            True if the type was not being tracked yet.
        """
        key = message_type if message_type is not None else "<missing>"
        self._count += 1

        if key in self._seen:
            self._seen[key] += 1
            logger.debug("Unknown message type dropped", message_type=key, seen=self._seen[key])
            return False

        if len(self._seen) >= self._max_types:
            oldest = next(iter(self._seen))
            del self._seen[oldest]
            logger.debug("Unknown type tracker at capacity, evicting oldest", evicted=oldest)

        self._seen[key] = 1
        logger.warning("Unknown message type dropped", message_type=key, total_count=self._count)
        return True

    def get_metrics(self) -> dict[str, Any]:
        return {
            "unknown_types_count": self._count,
            "unknown_types_seen": list(self._seen.keys()),
            "type_counts": dict(self._seen),
        }
