"""Shared fixtures for the AI Router test suite."""

import json
from unittest.mock import patch

import pytest

from ai_router.config.settings import get_settings
from ai_router.routing.models import Account, ChatMessage, ChatRequest, Provider, RateLimit, RouterConfig

# Start of an epoch minute, mid-day (UTC)
START_MS = 1_700_000_040_000


class Clock:
    """Wall clock in epoch milliseconds that tests move by hand."""

    def __init__(self, ms: int = START_MS):
        self.ms = ms

    def advance(self, ms: int) -> None:
        self.ms += ms

    def time_ns(self) -> int:
        return self.ms * 1_000_000


@pytest.fixture
def clock():
    """Patch the clock used for minute/day buckets."""
    c = Clock()
    with patch("ai_router.usage.windows.time.time_ns", side_effect=c.time_ns):
        yield c


@pytest.fixture
def limited_account() -> Account:
    return Account(
        api_key="sk-test-key-123",
        models=["gpt-4o-mini"],
        rate_limit=RateLimit(rpm=10, tpm=1000, rpd=100),
    )


@pytest.fixture
def unlimited_account() -> Account:
    return Account(api_key="sk-unlimited", models=["gpt-4o-mini"])


@pytest.fixture
def chat_request() -> ChatRequest:
    return ChatRequest(messages=[ChatMessage(role="user", content="Hello, how are you?")])


@pytest.fixture
def make_config():
    """Factory fixture: single-provider config over the given accounts."""
    def _make(*accounts: Account, strategy: str = "rate-limit-aware") -> RouterConfig:
        return RouterConfig(
            providers=(Provider(name="test", endpoint="https://api.test.com/v1", accounts=accounts),),
            strategy=strategy,
        )

    return _make


@pytest.fixture
def router_config_file(tmp_path):
    """Create a temp router.json and return its path."""
    data = {
        "strategy": "rate-limit-aware",
        "providers": [
            {
                "name": "primary",
                "endpoint": "https://api.test.com/v1",
                "accounts": [
                    {"api_key": "sk-a", "rate_limit": {"rpm": 2}, "models": ["m"]},
                ],
            }
        ],
    }
    path = tmp_path / "router.json"
    path.write_text(json.dumps(data), encoding="utf-8")
    return str(path)


@pytest.fixture
def override_settings(monkeypatch):
    """Factory fixture: set env vars and clear settings cache.

    Usage:
        override_settings(USAGE_STORE_BACKEND="dynamodb", LOG_LEVEL="DEBUG")
    """
    def _override(**kwargs):
        for key, value in kwargs.items():
            monkeypatch.setenv(key.upper(), str(value))
        get_settings.cache_clear()

    yield _override

    get_settings.cache_clear()
