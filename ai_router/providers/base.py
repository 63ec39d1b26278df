"""Abstract base for outbound dispatchers."""

from abc import ABC, abstractmethod
from dataclasses import dataclass

from ai_router.routing.models import Candidate


@dataclass
class ProviderResponse:
    status_code: int
    body: dict

    @property
    def total_tokens(self) -> int | None:
        """Token usage reported by the provider, if any."""
        usage = self.body.get("usage") if isinstance(self.body, dict) else None
        if not isinstance(usage, dict):
            return None
        total = usage.get("total_tokens")
        if isinstance(total, int) and not isinstance(total, bool):
            return total
        prompt, completion = usage.get("prompt_tokens"), usage.get("completion_tokens")
        if isinstance(prompt, int) and isinstance(completion, int):
            return prompt + completion
        return None


class Dispatcher(ABC):
    """Sends a chat completion body to a selected candidate."""

    @abstractmethod
    async def chat_completion(self, candidate: Candidate, body: dict) -> ProviderResponse:
        """Send the request and return the parsed response.

        Args:
            candidate: Target endpoint, credential and model.
            body: OpenAI-compatible request body, model already filled in.

        Raises:
            fastapi.HTTPException: on transport failure or a non-2xx status.
        """
        ...

    async def close(self) -> None:
        """Cleanup resources. Override if the dispatcher holds connections."""
        pass
