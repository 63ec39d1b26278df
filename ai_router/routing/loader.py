"""Load a RouterConfig from a JSON file.

File format::

    {
      "strategy": "rate-limit-aware",
      "providers": [
        {
          "name": "primary",
          "type": "openai",
          "endpoint": "https://api.example.com/v1",
          "accounts": [
            {
              "api_key": "sk-...",
              "rate_limit": {"rpm": 60},
              "models": ["gpt-4o-mini", {"name": "gpt-4o", "rate_limit": {"rpm": 10, "tpm": 30000}}]
            }
          ]
        }
      ]
    }
"""

import json

from ai_router.routing.errors import InvalidRouterConfig
from ai_router.routing.models import Account, ModelSpec, Provider, RateLimit, RouterConfig

_LIMIT_FIELDS = ("rpm", "tpm", "rpd")


def load_router_config(path: str, default_strategy: str = "random") -> RouterConfig:
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except OSError as e:
        raise InvalidRouterConfig(f"Cannot read router config {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise InvalidRouterConfig(f"Router config {path} is not valid JSON: {e}") from e

    return parse_router_config(data, default_strategy=default_strategy)


def parse_router_config(data: dict, default_strategy: str = "random") -> RouterConfig:
    if not isinstance(data, dict):
        raise InvalidRouterConfig("Router config must be a JSON object")

    providers = data.get("providers", [])
    if not isinstance(providers, list):
        raise InvalidRouterConfig("'providers' must be a list")

    return RouterConfig(
        providers=tuple(_parse_provider(p, i) for i, p in enumerate(providers)),
        strategy=data.get("strategy") or default_strategy,
    )


def _parse_provider(entry, index: int) -> Provider:
    if not isinstance(entry, dict):
        raise InvalidRouterConfig(f"providers[{index}] must be an object")

    name = entry.get("name") or f"provider-{index}"
    accounts = entry.get("accounts", [])
    if not isinstance(accounts, list):
        raise InvalidRouterConfig(f"Provider {name!r}: 'accounts' must be a list")

    return Provider(
        name=name,
        type=entry.get("type"),
        endpoint=entry.get("endpoint"),
        accounts=tuple(_parse_account(a, name, i) for i, a in enumerate(accounts)),
    )


def _parse_account(entry, provider_name: str, index: int) -> Account:
    where = f"Provider {provider_name!r} account {index}"
    if not isinstance(entry, dict):
        raise InvalidRouterConfig(f"{where} must be an object")

    api_key = entry.get("api_key")
    if not api_key or not isinstance(api_key, str):
        raise InvalidRouterConfig(f"{where}: 'api_key' is required")

    models = entry.get("models", [])
    if not isinstance(models, list):
        raise InvalidRouterConfig(f"{where}: 'models' must be a list")

    return Account(
        api_key=api_key,
        models=tuple(_parse_model(m, where) for m in models),
        rate_limit=_parse_rate_limit(entry.get("rate_limit"), where),
    )


def _parse_model(entry, where: str) -> ModelSpec:
    if isinstance(entry, str) and entry:
        return ModelSpec(name=entry)
    if isinstance(entry, dict) and isinstance(entry.get("name"), str) and entry["name"]:
        return ModelSpec(
            name=entry["name"],
            rate_limit=_parse_rate_limit(entry.get("rate_limit"), f"{where} model {entry['name']!r}"),
        )
    raise InvalidRouterConfig(f"{where}: model entries must be a name or an object with 'name'")


def _parse_rate_limit(entry, where: str) -> RateLimit | None:
    if entry is None:
        return None
    if not isinstance(entry, dict):
        raise InvalidRouterConfig(f"{where}: 'rate_limit' must be an object")

    values = {}
    for field_name in _LIMIT_FIELDS:
        value = entry.get(field_name)
        if value is None:
            continue
        # bool is an int subclass; reject it explicitly
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise InvalidRouterConfig(f"{where}: '{field_name}' must be a non-negative integer")
        values[field_name] = value

    return RateLimit(**values)
