"""
Retry and backoff policies.

Two schedules are used by the client:
    - exponential backoff for channel reconnection
      (base_delay * multiplier ^ attempt, capped attempt count)
    - linear backoff between chunk retry attempts (attempt * unit)

Jitter is supported but disabled by default: the reconnect schedule is part of
the observable contract with the service operators.
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Final


# =============================================================================
# Constants
# =============================================================================


DEFAULT_BASE_DELAY: Final[float] = 2.0

DEFAULT_MULTIPLIER: Final[float] = 2.0

DEFAULT_MAX_ATTEMPTS: Final[int] = 5

DEFAULT_LINEAR_UNIT: Final[float] = 1.0


# =============================================================================
# Data Classes
# =============================================================================


@dataclass(frozen=True, slots=True)
class ReconnectPolicy:
    """
    Exponential reconnect schedule.

    Attributes:
        base_delay: Delay before the first reconnect, in seconds (default: 2.0).
        multiplier: Growth factor per attempt (default: 2.0).
        max_attempts: Reconnects tried before giving up (default: 5).
        jitter_factor: Random jitter range as fraction (default: 0, exact schedule).
    """

    base_delay: float = DEFAULT_BASE_DELAY
    multiplier: float = DEFAULT_MULTIPLIER
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    jitter_factor: float = 0.0

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if self.base_delay <= 0:
            raise ValueError("base_delay must be positive")
        if self.multiplier < 1:
            raise ValueError("multiplier must be >= 1")
        if self.max_attempts < 0:
            raise ValueError("max_attempts must be >= 0")
        if not 0 <= self.jitter_factor <= 1:
            raise ValueError("jitter_factor must be between 0 and 1")

    def can_retry(self, attempt: int) -> bool:
        """Whether a reconnect may be scheduled for this 0-indexed attempt."""
        return attempt < self.max_attempts

    def delay_for(self, attempt: int) -> float:
        """Delay in seconds before the 0-indexed reconnect attempt."""
        return calculate_backoff_delay(attempt, self)


# =============================================================================
# Retry Functions
# =============================================================================


def calculate_backoff_delay(attempt: int, policy: ReconnectPolicy | None = None) -> float:
    """
    Calculate the reconnect delay for an attempt.

    The delay is calculated as:
        base = base_delay * (multiplier ^ attempt)
        final = base * (1 ± jitter_factor)

    Args:
        attempt: Current attempt number (0-indexed).
        policy: Reconnect policy (uses defaults if None).

    Returns:
        Delay in seconds.

    Example:
        >>> calculate_backoff_delay(0)  # 2.0
        >>> calculate_backoff_delay(4)  # 32.0
    """
    if policy is None:
        policy = ReconnectPolicy()

    base = policy.base_delay * (policy.multiplier ** attempt)
    if not policy.jitter_factor:
        return base

    jitter_range = base * policy.jitter_factor
    return max(0.0, base + random.uniform(-jitter_range, jitter_range))


def linear_backoff(attempt: int, unit: float = DEFAULT_LINEAR_UNIT) -> float:
    """
    Delay after a failed 1-indexed retry attempt: attempt * unit.

    Example:
        >>> linear_backoff(1)  # 1.0
        >>> linear_backoff(2)  # 2.0
    """
    return max(0, attempt) * unit
