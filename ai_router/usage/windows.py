"""Minute/day bucket arithmetic shared by the usage stores and the rate limit manager."""

import time

from ai_router.routing.models import UsageData

MINUTE_MS = 60_000
DAY_MS = 86_400_000


def now_ms() -> int:
    return time.time_ns() // 1_000_000


def minute_bucket(at_ms: int) -> int:
    return at_ms // MINUTE_MS


def day_bucket(at_ms: int) -> int:
    return at_ms // DAY_MS


def new_usage(at_ms: int | None = None) -> UsageData:
    """Zeroed usage record stamped with the current buckets."""
    at_ms = now_ms() if at_ms is None else at_ms
    return UsageData(last_reset_minute=minute_bucket(at_ms), last_reset_day=day_bucket(at_ms))


def apply_window_reset(usage: UsageData, at_ms: int | None = None) -> bool:
    """Zero the counters whose bucket has rolled over. Returns True if anything changed.

    The minute and day resets are independent of each other.
    """
    at_ms = now_ms() if at_ms is None else at_ms
    current_minute = minute_bucket(at_ms)
    current_day = day_bucket(at_ms)
    changed = False

    if usage.last_reset_minute != current_minute:
        usage.requests_this_minute = 0
        usage.tokens_this_minute = 0
        usage.last_reset_minute = current_minute
        changed = True

    if usage.last_reset_day != current_day:
        usage.requests_today = 0
        usage.last_reset_day = current_day
        changed = True

    return changed


def seconds_until_next_minute(at_ms: int | None = None) -> int:
    """Whole seconds until the minute window rolls over (at least 1)."""
    at_ms = now_ms() if at_ms is None else at_ms
    remaining_ms = MINUTE_MS - (at_ms % MINUTE_MS)
    return max(1, -(-remaining_ms // 1000))
