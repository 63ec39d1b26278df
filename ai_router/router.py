"""AIRouter: select a candidate, dispatch to it, record the usage.

Usage::

    router = AIRouter(load_router_config("router.json"))
    body = await router.chat({"messages": [{"role": "user", "content": "Hi"}]})
"""

import asyncio
import random

from ai_router.logging.audit import RequestTimer, get_audit_logger
from ai_router.providers.base import Dispatcher, ProviderResponse
from ai_router.providers.openai import OpenAICompatibleDispatcher
from ai_router.routing.models import Account, Candidate, ChatRequest, RouterConfig, UsageData
from ai_router.routing.ratelimit import RateLimitManager
from ai_router.routing.selector import flatten_candidates, select_candidate
from ai_router.usage.store import UsageStore

logger = get_audit_logger("router")


class AIRouter:
    """Routes chat completions across provider accounts and models.

    The config is read-only for the router's lifetime. Usage state lives
    in the rate limit manager's store, which this router owns unless
    one is injected.
    """

    def __init__(
        self,
        config: RouterConfig,
        usage_store: UsageStore | None = None,
        rate_limit_manager: RateLimitManager | None = None,
        dispatcher: Dispatcher | None = None,
        rng: random.Random | None = None,
    ):
        self._config = config
        self._manager = rate_limit_manager or RateLimitManager(usage_store)
        self._dispatcher = dispatcher or OpenAICompatibleDispatcher()
        self._rng = rng
        self._inflight: set[asyncio.Task] = set()

    @property
    def config(self) -> RouterConfig:
        return self._config

    @property
    def rate_limit_manager(self) -> RateLimitManager:
        return self._manager

    async def select(self, request: ChatRequest | None = None) -> Candidate:
        return await select_candidate(self._config, self._manager, request, rng=self._rng)

    async def chat(self, request: ChatRequest | dict) -> dict:
        """Send a chat completion through the selected candidate and return the response body.

        Dispatch and usage recording run in their own task: if the caller
        stops waiting, the request still completes and is still counted.
        Dispatch errors are re-raised unchanged after zero-token usage has
        been recorded. A failure to record is logged and does not change the
        outcome.
        """
        if isinstance(request, dict):
            request = ChatRequest.from_dict(request)

        candidate = await self.select(request)

        task = asyncio.ensure_future(self._dispatch_and_record(candidate, request))
        self._inflight.add(task)
        task.add_done_callback(self._on_dispatch_done)

        response = await asyncio.shield(task)
        return response.body

    async def _dispatch_and_record(self, candidate: Candidate, request: ChatRequest) -> ProviderResponse:
        body = request.to_body(candidate.model)
        estimated = self._manager.estimate_tokens(request, candidate.model)
        identity_key = self._manager.identity_key(candidate.account, candidate.model)
        tokens_used = 0

        try:
            with RequestTimer() as timer:
                response = await self._dispatcher.chat_completion(candidate, body)
            reported = response.total_tokens
            tokens_used = reported if reported is not None else estimated
        except Exception as e:
            logger.warning(
                "Dispatch failed",
                extra={"audit_data": {
                    "provider": candidate.provider_name,
                    "model": candidate.model,
                    "identity_key": identity_key,
                    "error": str(e),
                    "error_type": type(e).__name__,
                }},
            )
            raise
        finally:
            await self._record_usage(candidate, identity_key, tokens_used)

        logger.info(
            "Request dispatched",
            extra={"audit_data": {
                "provider": candidate.provider_name,
                "model": candidate.model,
                "identity_key": identity_key,
                "upstream_status": response.status_code,
                "latency_ms": timer.elapsed_ms,
                "tokens": tokens_used,
                "estimated_tokens": estimated,
            }},
        )
        return response

    async def _record_usage(self, candidate: Candidate, identity_key: str, tokens_used: int) -> None:
        # A store failure never replaces the dispatch outcome
        try:
            await self._manager.record_request(candidate.account, candidate.model, tokens_used)
        except Exception:
            logger.exception(
                "Usage recording failed",
                extra={"audit_data": {
                    "provider": candidate.provider_name,
                    "model": candidate.model,
                    "identity_key": identity_key,
                    "tokens": tokens_used,
                }},
            )

    def _on_dispatch_done(self, task: asyncio.Task) -> None:
        self._inflight.discard(task)
        # Mark the outcome as retrieved when the caller already walked away
        if not task.cancelled():
            task.exception()

    async def get_usage(self, account: Account, model: str) -> UsageData:
        return await self._manager.get_usage(account, model)

    async def usage_overview(self) -> list[dict]:
        """Per-candidate limits, current usage and availability score."""
        overview = []
        for candidate in flatten_candidates(self._config):
            limits = candidate.account.limit_for(candidate.model)
            usage = await self._manager.get_usage(candidate.account, candidate.model)
            overview.append({
                "provider": candidate.provider_name,
                "model": candidate.model,
                "endpoint": candidate.endpoint,
                "identity_key": self._manager.identity_key(candidate.account, candidate.model),
                "rate_limit": limits.to_dict() if limits else None,
                "usage": usage.to_dict(),
                "availability_score": await self._manager.availability_score(
                    candidate.account, candidate.model
                ),
            })
        return overview

    async def close(self) -> None:
        """Wait for in-flight dispatches to finish recording, then close connections."""
        if self._inflight:
            await asyncio.gather(*self._inflight, return_exceptions=True)
        await self._dispatcher.close()
