"""
Rate Limiting

Fixed minimum spacing between accepted pings for a check, measured
from the last accepted ping. Independent of the check's interval.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime

DEFAULT_FLOOR_SECONDS = 30


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of a rate limit check."""

    allowed: bool
    retry_after_seconds: int = 0


def check_rate_limit(
    last_pinged_at: datetime | None,
    now: datetime,
    floor_seconds: int = DEFAULT_FLOOR_SECONDS,
) -> RateLimitDecision:
    """
    Decide whether a ping may be accepted.

    Args:
        last_pinged_at: Time of the last accepted ping, or None
        now: Current time
        floor_seconds: Minimum seconds between accepted pings

    Returns:
        RateLimitDecision; when rejected, retry_after_seconds is in (0, floor]
    """
    if last_pinged_at is None:
        return RateLimitDecision(allowed=True)

    elapsed = (now - last_pinged_at).total_seconds()
    if elapsed >= floor_seconds:
        return RateLimitDecision(allowed=True)

    # A last_pinged_at in the future (clock skew) waits the full floor
    remaining = floor_seconds - max(elapsed, 0.0)
    retry_after = min(max(math.ceil(remaining), 1), floor_seconds)
    return RateLimitDecision(allowed=False, retry_after_seconds=retry_after)
