"""Provider selection: flatten the configuration into candidates and pick one."""

import random

from ai_router.logging.audit import get_audit_logger
from ai_router.routing.endpoints import resolve_endpoint
from ai_router.routing.errors import (
    AllAccountsExhausted,
    NoProvidersConfigured,
    RateLimitManagerRequired,
    UnknownStrategy,
)
from ai_router.routing.models import Candidate, ChatRequest, RouterConfig
from ai_router.routing.ratelimit import RateLimitManager

logger = get_audit_logger("selector")


class Strategy:
    RANDOM = "random"
    RATE_LIMIT_AWARE = "rate-limit-aware"

    ALL = (RANDOM, RATE_LIMIT_AWARE)


def flatten_candidates(config: RouterConfig) -> list[Candidate]:
    """All (account, model) pairings in provider -> account -> model order.

    A request's model hint never narrows this list; the chosen candidate's
    model replaces it in the outbound body.
    """
    candidates: list[Candidate] = []
    for provider in config.providers:
        pairs = [
            (account, spec.name)
            for account in provider.accounts
            for spec in account.models
        ]
        if not pairs:
            continue

        endpoint = resolve_endpoint(provider)
        candidates.extend(
            Candidate(
                model=name,
                endpoint=endpoint,
                api_key=account.api_key,
                account=account,
                provider_name=provider.name,
            )
            for account, name in pairs
        )
    return candidates


async def select_candidate(
    config: RouterConfig,
    rate_limit_manager: RateLimitManager | None = None,
    request: ChatRequest | None = None,
    rng: random.Random | None = None,
) -> Candidate:
    """Pick one candidate according to ``config.strategy``.

    Raises:
        NoProvidersConfigured: nothing to choose from.
        AllAccountsExhausted: rate-limit-aware and every candidate is at a limit.
        UnknownStrategy: unrecognized strategy name.
        RateLimitManagerRequired: rate-limit-aware without a manager.
    """
    if not config.providers:
        raise NoProvidersConfigured()

    candidates = flatten_candidates(config)
    if not candidates:
        raise NoProvidersConfigured()

    strategy = config.strategy or Strategy.RANDOM
    if strategy not in Strategy.ALL:
        raise UnknownStrategy(strategy)

    if strategy == Strategy.RANDOM:
        rng = rng or random
        return candidates[rng.randrange(len(candidates))]

    if rate_limit_manager is None:
        raise RateLimitManagerRequired()
    return await _select_rate_limit_aware(candidates, rate_limit_manager, request)


async def _select_rate_limit_aware(
    candidates: list[Candidate],
    manager: RateLimitManager,
    request: ChatRequest | None,
) -> Candidate:
    estimated_tokens = (
        manager.estimate_tokens(request, request.model) if request is not None else 0
    )

    admissible = [
        c for c in candidates
        if await manager.can_handle(c.account, c.model, estimated_tokens)
    ]
    if not admissible:
        logger.warning(
            "All candidates at their rate limits",
            extra={"audit_data": {
                "candidates": len(candidates),
                "estimated_tokens": estimated_tokens,
            }},
        )
        raise AllAccountsExhausted()

    # Highest score wins; strict comparison keeps the earliest on ties
    best = admissible[0]
    best_score = await manager.availability_score(best.account, best.model)
    for candidate in admissible[1:]:
        score = await manager.availability_score(candidate.account, candidate.model)
        if score > best_score:
            best, best_score = candidate, score

    logger.info(
        "Candidate selected",
        extra={"audit_data": {
            "provider": best.provider_name,
            "model": best.model,
            "endpoint": best.endpoint,
            "identity_key": manager.identity_key(best.account, best.model),
            "availability_score": round(best_score, 4),
            "admissible": len(admissible),
            "estimated_tokens": estimated_tokens,
        }},
    )
    return best
