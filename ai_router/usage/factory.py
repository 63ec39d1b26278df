"""Factory for usage store backends."""

from ai_router.config.settings import Settings, get_settings
from ai_router.routing.errors import InvalidRouterConfig
from ai_router.usage.store import MemoryUsageStore, UsageStore


def create_usage_store(settings: Settings | None = None) -> UsageStore:
    """Build a fresh usage store for the configured backend.

    Each call returns a new instance; the router that receives it owns it.
    """
    settings = settings or get_settings()
    backend = settings.usage_store_backend

    if backend == "memory":
        return MemoryUsageStore()

    if backend == "dynamodb":
        # Lazy import to avoid boto3 dependency when not needed
        from ai_router.usage.dynamodb_store import DynamoDBUsageStore
        return DynamoDBUsageStore(
            table_name=settings.dynamodb_table_name,
            region=settings.aws_region,
        )

    raise InvalidRouterConfig(f"Unknown usage store backend: {backend}")
