"""Default API endpoints for known provider types."""

from ai_router.routing.errors import EndpointNotConfigured
from ai_router.routing.models import Provider

PROVIDER_ENDPOINTS: dict[str, str] = {
    "openai": "https://api.openai.com/v1",
    "google": "https://generativelanguage.googleapis.com/v1beta/openai",
    "anthropic": "https://api.anthropic.com/v1",
    "openrouter": "https://openrouter.ai/api/v1",
    "groq": "https://api.groq.com/openai/v1",
    "cerebras": "https://api.cerebras.ai/v1",
    "dashscope": "https://dashscope.aliyuncs.com/compatible-mode/v1",
    "ollama": "http://localhost:11434/v1",
}


def resolve_endpoint(provider: Provider) -> str:
    """Explicit endpoint if set, else the default for the provider's type."""
    if provider.endpoint:
        return provider.endpoint.rstrip("/")

    if provider.type:
        endpoint = PROVIDER_ENDPOINTS.get(provider.type)
        if endpoint:
            return endpoint
        raise EndpointNotConfigured(
            f"Provider {provider.name!r} has unsupported type {provider.type!r} and no endpoint"
        )

    raise EndpointNotConfigured(f"Provider {provider.name!r} has neither an endpoint nor a type")
