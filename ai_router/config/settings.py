"""Application settings loaded from environment variables."""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Router configuration
    router_config_path: str = "router.json"  # providers/accounts/models JSON
    strategy: str = "random"  # random | rate-limit-aware (used when the file omits it)

    # Usage store
    usage_store_backend: str = "memory"  # "memory" | "dynamodb"
    dynamodb_table_name: str = "ai-router-usage"
    aws_region: str = "us-east-1"

    # Upstream HTTP
    upstream_timeout_seconds: float = 60.0
    upstream_connect_timeout_seconds: float = 10.0

    # Gateway authentication
    # Comma-separated list of keys accepted by the HTTP service; empty disables auth
    gateway_api_keys: str = ""

    # Logging
    log_level: str = "INFO"
    audit_log_file: str = ""  # Empty = stdout only

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    @property
    def api_keys_list(self) -> list[str]:
        """Parse comma-separated gateway keys into a list."""
        return [k.strip() for k in self.gateway_api_keys.split(",") if k.strip()]


@lru_cache
def get_settings() -> Settings:
    return Settings()
