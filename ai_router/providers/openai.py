"""Dispatcher for OpenAI-compatible chat completion APIs."""

import httpx
from fastapi import HTTPException

from ai_router.config.settings import get_settings
from ai_router.providers.base import Dispatcher, ProviderResponse
from ai_router.routing.models import Candidate


class OpenAICompatibleDispatcher(Dispatcher):
    """POSTs to ``{endpoint}/chat/completions`` with a bearer credential."""

    def __init__(self, client: httpx.AsyncClient | None = None):
        self._client = client

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            settings = get_settings()
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(
                    settings.upstream_timeout_seconds,
                    connect=settings.upstream_connect_timeout_seconds,
                )
            )
        return self._client

    @staticmethod
    def _build_headers(api_key: str) -> dict:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {api_key}",
        }

    async def chat_completion(self, candidate: Candidate, body: dict) -> ProviderResponse:
        url = f"{candidate.endpoint}/chat/completions"
        headers = self._build_headers(candidate.api_key)

        client = await self._get_client()
        try:
            response = await client.post(url, json=body, headers=headers)
        except httpx.ConnectError:
            raise HTTPException(status_code=502, detail="Cannot reach upstream provider")
        except httpx.TimeoutException:
            raise HTTPException(status_code=504, detail="Upstream provider timed out")
        except httpx.HTTPError as e:
            raise HTTPException(status_code=502, detail=f"Upstream error: {e}")

        if not response.is_success:
            raise HTTPException(
                status_code=response.status_code,
                detail=f"Request failed: {response.status_code} {response.reason_phrase}",
            )

        try:
            data = response.json()
        except ValueError:
            raise HTTPException(status_code=502, detail="Upstream returned invalid JSON")

        return ProviderResponse(status_code=response.status_code, body=data)

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None
