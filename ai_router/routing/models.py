"""Router configuration, candidate, usage and request models.

Configuration objects are frozen once built and are shared by every
request a router serves; mutating them after construction is not
supported. ``UsageData`` is the only mutable record and is owned by the
usage store.
"""

from dataclasses import asdict, dataclass, field
from typing import Any


@dataclass(frozen=True)
class RateLimit:
    """Per (account, model) ceilings. ``None`` means unlimited for that dimension."""

    rpm: int | None = None  # requests per minute
    tpm: int | None = None  # tokens per minute
    rpd: int | None = None  # requests per day

    def to_dict(self) -> dict:
        return {k: v for k, v in asdict(self).items() if v is not None}


@dataclass(frozen=True)
class ModelSpec:
    name: str
    rate_limit: RateLimit | None = None


@dataclass(frozen=True)
class Account:
    api_key: str = field(repr=False)
    models: tuple[ModelSpec, ...] = ()
    # Applies to every model entry that carries no limit of its own
    rate_limit: RateLimit | None = None

    def __post_init__(self):
        specs = tuple(
            m if isinstance(m, ModelSpec) else ModelSpec(name=m) for m in self.models
        )
        object.__setattr__(self, "models", specs)

    def limit_for(self, model: str) -> RateLimit | None:
        """Effective rate limit for one of this account's models."""
        for spec in self.models:
            if spec.name == model and spec.rate_limit is not None:
                return spec.rate_limit
        return self.rate_limit


@dataclass(frozen=True)
class Provider:
    name: str
    accounts: tuple[Account, ...] = ()
    type: str | None = None  # maps to a default endpoint, see routing/endpoints.py
    endpoint: str | None = None  # wins over the type default

    def __post_init__(self):
        object.__setattr__(self, "accounts", tuple(self.accounts))


@dataclass(frozen=True)
class RouterConfig:
    providers: tuple[Provider, ...] = ()
    strategy: str = "random"

    def __post_init__(self):
        object.__setattr__(self, "providers", tuple(self.providers))


@dataclass(frozen=True)
class Candidate:
    """One concrete (account, model) pairing with its resolved endpoint."""

    model: str
    endpoint: str
    api_key: str = field(repr=False)
    account: Account = field(repr=False)
    provider_name: str = ""


@dataclass
class UsageData:
    """Rolling counters for one identity key.

    The counters are only meaningful together with the bucket indices
    they were accumulated in.
    """

    requests_this_minute: int = 0
    tokens_this_minute: int = 0
    requests_today: int = 0
    last_reset_minute: int = 0  # floor(epoch_ms / 60_000)
    last_reset_day: int = 0  # floor(epoch_ms / 86_400_000)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "UsageData":
        return cls(
            requests_this_minute=int(data.get("requests_this_minute", 0)),
            tokens_this_minute=int(data.get("tokens_this_minute", 0)),
            requests_today=int(data.get("requests_today", 0)),
            last_reset_minute=int(data.get("last_reset_minute", 0)),
            last_reset_day=int(data.get("last_reset_day", 0)),
        )


@dataclass
class ChatMessage:
    role: str
    content: Any = None  # str, list of content parts, or None

    @property
    def text(self) -> str:
        """Plain text of the message, joining the text parts of multi-part content."""
        if isinstance(self.content, str):
            return self.content
        if isinstance(self.content, list):
            return "\n".join(
                part.get("text", "") or ""
                for part in self.content
                if isinstance(part, dict) and part.get("type") == "text"
            )
        return ""


@dataclass
class ChatRequest:
    """An OpenAI-style chat completion request.

    ``model`` is only a hint; the router picks the concrete model. Any
    other body fields (temperature, max_tokens, ...) ride along in
    ``extra`` and are forwarded untouched.
    """

    messages: list[ChatMessage] = field(default_factory=list)
    model: str | None = None
    extra: dict = field(default_factory=dict)

    @classmethod
    def from_dict(cls, body: dict) -> "ChatRequest":
        body = dict(body)
        messages = [
            m if isinstance(m, ChatMessage) else ChatMessage(role=m.get("role", "user"), content=m.get("content"))
            for m in body.pop("messages", None) or []
        ]
        model = body.pop("model", None) or None
        return cls(messages=messages, model=model, extra=body)

    def to_body(self, model: str) -> dict:
        """Outbound JSON body with the chosen model filled in."""
        return {
            **self.extra,
            "model": model,
            "messages": [
                {"role": m.role, "content": m.content if m.content is not None else ""}
                for m in self.messages
            ],
        }
