"""Router error taxonomy.

None of these are retried by the router itself; callers decide whether
to back off (``AllAccountsExhausted``) or fix their configuration
(everything else).
"""


class RouterError(Exception):
    """Base class for routing failures."""

    default_message = "Routing failed"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.default_message)


class NoProvidersConfigured(RouterError):
    default_message = "No providers configured"


class AllAccountsExhausted(RouterError):
    default_message = "All accounts have exceeded their rate limits"


class UnknownStrategy(RouterError):
    default_message = "Unknown strategy"

    def __init__(self, strategy: str | None = None):
        super().__init__(f"Unknown strategy: {strategy}" if strategy else None)
        self.strategy = strategy


class RateLimitManagerRequired(RouterError):
    default_message = "Rate limit manager is required for rate-limit-aware strategy"


class EndpointNotConfigured(RouterError):
    default_message = "Provider has no endpoint and no known type"


class InvalidRouterConfig(RouterError):
    default_message = "Invalid router configuration"


class UsageStoreConflict(RouterError):
    default_message = "Usage record kept changing during an atomic increment"
