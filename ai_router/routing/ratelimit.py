"""Rate limit manager: rolling per-(account, model) usage windows.

Each (credential, model) pair is one bucket, addressed by an identity
key. Buckets hold fixed minute and day windows (not sliding): counters
reset when the epoch-minute or epoch-day index changes, lazily, on the
next read or increment.

Admission (``can_handle``) and recording (``record_request``) are two
separate steps. Concurrent requests may both be admitted against the
last unit of quota for a key before either records; the overshoot is at
most N-1 for N racing requests and clears with the next window. A
caller needing strict ceilings has to serialize check-and-record per
identity key around this class.
"""

import asyncio
import hashlib

from ai_router.logging.audit import get_audit_logger
from ai_router.routing.models import Account, ChatRequest, RateLimit, UsageData
from ai_router.routing.tokens import TokenEstimator
from ai_router.usage.store import MemoryUsageStore, SupportsIncrement, UsageStore
from ai_router.usage.windows import apply_window_reset, new_usage

logger = get_audit_logger("ratelimit")


def _headroom(ceiling: int, used: int) -> float:
    if ceiling <= 0:
        return 0.0
    return max(0, ceiling - used) / ceiling


class RateLimitManager:
    """Admission checks, availability scoring and usage recording over a UsageStore."""

    def __init__(self, store: UsageStore | None = None, estimator: TokenEstimator | None = None):
        self._store = store if store is not None else MemoryUsageStore()
        self._estimator = estimator or TokenEstimator()
        # Guards the read-modify-write path for stores without atomic increment
        self._locks: dict[str, asyncio.Lock] = {}

    @property
    def store(self) -> UsageStore:
        return self._store

    @property
    def estimator(self) -> TokenEstimator:
        return self._estimator

    @staticmethod
    def identity_key(account: Account, model: str) -> str:
        """Stable bucket key for (credential, model); never contains the credential itself."""
        raw = f"{account.api_key}\x00{model}".encode("utf-8")
        return hashlib.sha256(raw).hexdigest()[:32]

    async def current_usage(self, identity_key: str) -> UsageData:
        """Fetch-or-initialize a record and apply any pending window reset.

        A reset is written back so that later reads and increments see
        the same state. A record that does not exist yet is not created.

        Stores with atomic increment persist the reset through a zero-delta
        increment, which applies it against the stored buckets rather than
        overwriting whatever another writer put there since the read.
        Other stores write it back under the identity key's lock.
        """
        if not isinstance(self._store, SupportsIncrement):
            async with self._lock_for(identity_key):
                return await self._read_and_reset(identity_key)

        usage = await self._store.get(identity_key)
        if usage is None:
            return new_usage()

        if apply_window_reset(usage):
            usage = await self._store.increment(identity_key, 0, 0)
        return usage

    async def _read_and_reset(self, identity_key: str) -> UsageData:
        usage = await self._store.get(identity_key)
        if usage is None:
            return new_usage()

        if apply_window_reset(usage):
            await self._store.set(identity_key, usage)
        return usage

    async def can_handle(self, account: Account, model: str, estimated_tokens: int = 0) -> bool:
        """True if one more request of ``estimated_tokens`` fits every configured ceiling."""
        limits = account.limit_for(model)
        if limits is None:
            return True

        usage = await self.current_usage(self.identity_key(account, model))

        if limits.rpm is not None and usage.requests_this_minute >= limits.rpm:
            return False
        if limits.tpm is not None and usage.tokens_this_minute + estimated_tokens > limits.tpm:
            return False
        if limits.rpd is not None and usage.requests_today >= limits.rpd:
            return False
        return True

    async def record_request(self, account: Account, model: str, tokens_used: int = 0) -> UsageData:
        """Count one dispatched request and its tokens.

        Must be called once per dispatch attempt, with zero tokens when
        the attempt failed.
        """
        identity_key = self.identity_key(account, model)
        tokens_used = max(0, int(tokens_used))

        if isinstance(self._store, SupportsIncrement):
            usage = await self._store.increment(identity_key, 1, tokens_used)
        else:
            async with self._lock_for(identity_key):
                usage = await self._read_and_reset(identity_key)
                usage.requests_this_minute += 1
                usage.tokens_this_minute += tokens_used
                usage.requests_today += 1
                await self._store.set(identity_key, usage)

        logger.debug(
            "Usage recorded",
            extra={"audit_data": {
                "identity_key": identity_key,
                "model": model,
                "tokens": tokens_used,
                "requests_this_minute": usage.requests_this_minute,
                "tokens_this_minute": usage.tokens_this_minute,
                "requests_today": usage.requests_today,
            }},
        )
        return usage

    async def availability_score(self, account: Account, model: str) -> float:
        """Remaining headroom in [0, 1]: the product over configured dimensions only."""
        limits = account.limit_for(model)
        if limits is None:
            return 1.0

        usage = await self.current_usage(self.identity_key(account, model))
        return self._score(limits, usage)

    @staticmethod
    def _score(limits: RateLimit, usage: UsageData) -> float:
        score = 1.0
        if limits.rpm is not None:
            score *= _headroom(limits.rpm, usage.requests_this_minute)
        if limits.tpm is not None:
            score *= _headroom(limits.tpm, usage.tokens_this_minute)
        if limits.rpd is not None:
            score *= _headroom(limits.rpd, usage.requests_today)
        return score

    def estimate_tokens(self, request: ChatRequest, model: str | None = None) -> int:
        if model:
            return self._estimator.estimate_for_model(request, model)
        return self._estimator.estimate_request(request)

    async def get_usage(self, account: Account, model: str) -> UsageData:
        """Current usage for monitoring; reflects any pending window reset."""
        return await self.current_usage(self.identity_key(account, model))

    def _lock_for(self, identity_key: str) -> asyncio.Lock:
        lock = self._locks.get(identity_key)
        if lock is None:
            lock = self._locks[identity_key] = asyncio.Lock()
        return lock
