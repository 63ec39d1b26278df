"""Usage store abstraction + in-memory implementation."""

import copy
from abc import ABC, abstractmethod
from typing import Protocol, runtime_checkable

from ai_router.routing.models import UsageData
from ai_router.usage.windows import apply_window_reset, new_usage, now_ms


class UsageStore(ABC):
    """Abstract base for per-identity usage persistence."""

    @abstractmethod
    async def get(self, identity_key: str) -> UsageData | None:
        """Return the stored record, or None if the key has never been seen."""
        ...

    @abstractmethod
    async def set(self, identity_key: str, usage: UsageData) -> None:
        """Persist a record, replacing any previous one."""
        ...


@runtime_checkable
class SupportsIncrement(Protocol):
    """Optional capability: atomic increment-with-reset on one key.

    Implementations apply the minute/day window reset and the deltas as
    one logical operation with respect to concurrent callers, and return
    the resulting record.
    """

    async def increment(self, identity_key: str, request_delta: int, token_delta: int) -> UsageData:
        ...


class MemoryUsageStore(UsageStore):
    """Process-local store backed by a dict.

    ``increment`` never suspends between reading and writing a record,
    so under asyncio it is atomic with respect to other coroutines.
    Records are copied on the way in and out so callers cannot mutate
    stored state behind the store's back.
    """

    def __init__(self):
        self._data: dict[str, UsageData] = {}

    async def get(self, identity_key: str) -> UsageData | None:
        usage = self._data.get(identity_key)
        return copy.copy(usage) if usage is not None else None

    async def set(self, identity_key: str, usage: UsageData) -> None:
        self._data[identity_key] = copy.copy(usage)

    async def increment(self, identity_key: str, request_delta: int, token_delta: int) -> UsageData:
        at_ms = now_ms()
        usage = self._data.get(identity_key)
        if usage is None:
            usage = new_usage(at_ms)
            self._data[identity_key] = usage

        apply_window_reset(usage, at_ms)
        usage.requests_this_minute += request_delta
        usage.tokens_this_minute += token_delta
        usage.requests_today += request_delta

        return copy.copy(usage)

    def clear(self) -> None:
        """Drop all usage records."""
        self._data.clear()

    def __len__(self) -> int:
        return len(self._data)
