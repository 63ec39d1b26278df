"""Gateway key authentication for the HTTP service.

Validates the X-API-Key header against the comma-separated
GATEWAY_API_KEYS setting. With no keys configured the service is open,
which suits a router running as a private sidecar.
"""

import hashlib
import hmac

from fastapi import HTTPException, Security
from fastapi.security import APIKeyHeader

from ai_router.config.settings import get_settings

api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


def _client_label(key: str) -> str:
    return "gw-" + hashlib.sha256(key.encode("utf-8")).hexdigest()[:8]


async def verify_gateway_key(api_key: str | None = Security(api_key_header)) -> str:
    """FastAPI dependency returning a loggable label for the calling client."""
    valid_keys = get_settings().api_keys_list
    if not valid_keys:
        return "anonymous"

    if api_key is None:
        raise HTTPException(status_code=401, detail="Missing API key")

    match = None
    for valid_key in valid_keys:
        # Compare against every key so timing does not reveal which one matched
        if hmac.compare_digest(api_key, valid_key):
            match = valid_key

    if match is None:
        raise HTTPException(status_code=403, detail="Invalid API key")
    return _client_label(match)
