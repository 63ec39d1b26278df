"""AWS Lambda entry point.

Mangum translates API Gateway HTTP API (v2) events into ASGI. Lambda
instances come and go, so usage counters only hold across invocations
with USAGE_STORE_BACKEND=dynamodb.
"""

from mangum import Mangum

from ai_router.config.settings import get_settings
from ai_router.logging.audit import get_audit_logger, setup_logging
from ai_router.main import app

setup_logging()

if get_settings().usage_store_backend != "dynamodb":
    get_audit_logger("lambda").warning(
        "Usage store is not durable across Lambda invocations",
        extra={"audit_data": {"usage_store_backend": get_settings().usage_store_backend}},
    )

handler = Mangum(app, lifespan="off")
