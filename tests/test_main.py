"""Integration tests for ai_router/main.py — the HTTP service via ASGI transport."""

from unittest.mock import AsyncMock, patch

import httpx
import pytest
from fastapi import HTTPException

from ai_router.main import app
from ai_router.providers.base import Dispatcher, ProviderResponse

CHAT_BODY = {"model": "m", "messages": [{"role": "user", "content": "hi"}]}


@pytest.fixture(autouse=True)
def reset_router():
    """Each test builds its router from fresh settings."""
    app.state.router = None
    yield
    app.state.router = None


@pytest.fixture
def mock_dispatcher():
    """Dispatcher that returns a successful completion with reported usage."""
    dispatcher = AsyncMock(spec=Dispatcher)
    dispatcher.chat_completion.return_value = ProviderResponse(
        status_code=200,
        body={
            "model": "m",
            "choices": [{"message": {"role": "assistant", "content": "Hello!"}}],
            "usage": {"total_tokens": 7},
        },
    )
    return dispatcher


@pytest.fixture
def app_client(override_settings, mock_dispatcher, router_config_file, clock):
    """httpx AsyncClient wired to the FastAPI app with a mocked dispatcher."""
    override_settings(
        ROUTER_CONFIG_PATH=router_config_file,
        USAGE_STORE_BACKEND="memory",
        GATEWAY_API_KEYS="gw-test-key",
    )
    with patch("ai_router.router.OpenAICompatibleDispatcher", return_value=mock_dispatcher):
        transport = httpx.ASGITransport(app=app)
        client = httpx.AsyncClient(transport=transport, base_url="http://test")
        yield client


AUTH = {"X-API-Key": "gw-test-key"}


class TestHealthEndpoint:

    async def test_health(self, app_client):
        resp = await app_client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "healthy", "version": "0.1.0"}


class TestAuth:

    async def test_missing_api_key(self, app_client):
        resp = await app_client.post("/v1/chat/completions", json=CHAT_BODY)
        assert resp.status_code == 401

    async def test_invalid_api_key(self, app_client):
        resp = await app_client.post("/v1/chat/completions", json=CHAT_BODY, headers={"X-API-Key": "wrong"})
        assert resp.status_code == 403

    async def test_open_mode(self, app_client, override_settings):
        override_settings(GATEWAY_API_KEYS="")
        resp = await app_client.post("/v1/chat/completions", json=CHAT_BODY)
        assert resp.status_code == 200

    async def test_stats_requires_key(self, app_client):
        resp = await app_client.get("/stats")
        assert resp.status_code == 401


class TestChatCompletions:

    async def test_success(self, app_client, mock_dispatcher):
        resp = await app_client.post("/v1/chat/completions", json=CHAT_BODY, headers=AUTH)

        assert resp.status_code == 200
        assert resp.json()["choices"][0]["message"]["content"] == "Hello!"
        assert len(resp.headers["X-Request-Id"]) == 12

        candidate, body = mock_dispatcher.chat_completion.await_args.args
        assert candidate.endpoint == "https://api.test.com/v1"
        assert candidate.api_key == "sk-a"
        assert body == {"model": "m", "messages": [{"role": "user", "content": "hi"}]}

    async def test_router_built_once(self, app_client):
        await app_client.post("/v1/chat/completions", json=CHAT_BODY, headers=AUTH)
        router = app.state.router
        await app_client.post("/v1/chat/completions", json=CHAT_BODY, headers=AUTH)
        assert app.state.router is router

    async def test_exhausted_returns_429(self, app_client):
        for _ in range(2):
            resp = await app_client.post("/v1/chat/completions", json=CHAT_BODY, headers=AUTH)
            assert resp.status_code == 200

        resp = await app_client.post("/v1/chat/completions", json=CHAT_BODY, headers=AUTH)
        assert resp.status_code == 429
        assert resp.json() == {"error": "All accounts have exceeded their rate limits"}
        assert resp.headers["Retry-After"] == "60"

    async def test_recovers_after_a_minute(self, app_client, clock):
        for _ in range(2):
            await app_client.post("/v1/chat/completions", json=CHAT_BODY, headers=AUTH)

        clock.advance(60_000)
        resp = await app_client.post("/v1/chat/completions", json=CHAT_BODY, headers=AUTH)
        assert resp.status_code == 200

    async def test_unconfigured_model_is_routed(self, app_client, mock_dispatcher):
        body = {"model": "gpt-4o", "messages": [{"role": "user", "content": "hi"}]}
        resp = await app_client.post("/v1/chat/completions", json=body, headers=AUTH)

        assert resp.status_code == 200
        _, sent = mock_dispatcher.chat_completion.await_args.args
        assert sent["model"] == "m"

    async def test_non_object_message_returns_400(self, app_client, mock_dispatcher):
        resp = await app_client.post("/v1/chat/completions", json={"messages": ["hi"]}, headers=AUTH)

        assert resp.status_code == 400
        mock_dispatcher.chat_completion.assert_not_awaited()

    async def test_missing_messages_returns_400(self, app_client):
        resp = await app_client.post("/v1/chat/completions", json={"model": "m"}, headers=AUTH)
        assert resp.status_code == 400

    async def test_invalid_json_returns_400(self, app_client):
        resp = await app_client.post(
            "/v1/chat/completions",
            content=b"{not json",
            headers={**AUTH, "Content-Type": "application/json"},
        )
        assert resp.status_code == 400

    async def test_upstream_error_passes_through(self, app_client, mock_dispatcher):
        mock_dispatcher.chat_completion.side_effect = HTTPException(
            status_code=504, detail="Upstream provider timed out"
        )
        resp = await app_client.post("/v1/chat/completions", json=CHAT_BODY, headers=AUTH)
        assert resp.status_code == 504
        assert resp.json()["detail"] == "Upstream provider timed out"

    async def test_failed_dispatch_still_counts(self, app_client, mock_dispatcher):
        mock_dispatcher.chat_completion.side_effect = HTTPException(status_code=502, detail="boom")
        for _ in range(2):
            resp = await app_client.post("/v1/chat/completions", json=CHAT_BODY, headers=AUTH)
            assert resp.status_code == 502

        resp = await app_client.post("/v1/chat/completions", json=CHAT_BODY, headers=AUTH)
        assert resp.status_code == 429


class TestConfigErrors:

    async def test_missing_config_returns_503(self, app_client, override_settings, tmp_path):
        override_settings(ROUTER_CONFIG_PATH=str(tmp_path / "missing.json"))
        resp = await app_client.post("/v1/chat/completions", json=CHAT_BODY, headers=AUTH)
        assert resp.status_code == 503
        assert "Cannot read router config" in resp.json()["error"]

    async def test_no_providers_returns_503(self, app_client, override_settings, tmp_path):
        path = tmp_path / "empty.json"
        path.write_text('{"providers": []}', encoding="utf-8")
        override_settings(ROUTER_CONFIG_PATH=str(path))
        resp = await app_client.post("/v1/chat/completions", json=CHAT_BODY, headers=AUTH)
        assert resp.status_code == 503
        assert resp.json() == {"error": "No providers configured"}


class TestStats:

    async def test_reports_usage(self, app_client):
        await app_client.post("/v1/chat/completions", json=CHAT_BODY, headers=AUTH)

        resp = await app_client.get("/stats", headers=AUTH)
        assert resp.status_code == 200
        data = resp.json()
        assert data["strategy"] == "rate-limit-aware"
        [entry] = data["candidates"]
        assert entry["provider"] == "primary"
        assert entry["model"] == "m"
        assert entry["rate_limit"] == {"rpm": 2}
        assert entry["usage"]["requests_this_minute"] == 1
        assert entry["usage"]["tokens_this_minute"] == 7
        assert entry["availability_score"] == 0.5
        assert "sk-a" not in resp.text
