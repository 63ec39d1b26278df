"""AI Router HTTP service — FastAPI application entry point.

Exposes the router as an OpenAI-compatible chat completions endpoint
plus a usage overview for monitoring.
"""

from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from ai_router.config.settings import get_settings
from ai_router.logging.audit import (
    RequestTimer,
    generate_request_id,
    get_audit_logger,
    request_id_var,
    setup_logging,
)
from ai_router.router import AIRouter
from ai_router.routing.errors import AllAccountsExhausted, RouterError
from ai_router.routing.loader import load_router_config
from ai_router.routing.models import ChatRequest
from ai_router.security.auth import verify_gateway_key
from ai_router.usage.factory import create_usage_store
from ai_router.usage.windows import seconds_until_next_minute

VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle hooks."""
    setup_logging()
    get_audit_logger().info("Router started")
    yield
    router = getattr(app.state, "router", None)
    if router is not None:
        await router.close()
        app.state.router = None
    get_audit_logger().info("Router stopped")


app = FastAPI(
    title="AI Router",
    description="Rate-limit-aware router for chat completion providers",
    version=VERSION,
    lifespan=lifespan,
)


async def get_router(request: Request) -> AIRouter:
    """Router for this app, built from settings on first use."""
    router = getattr(request.app.state, "router", None)
    if router is None:
        settings = get_settings()
        config = load_router_config(settings.router_config_path, default_strategy=settings.strategy)
        router = AIRouter(config, usage_store=create_usage_store(settings))
        request.app.state.router = router
    return router


@app.exception_handler(RouterError)
async def router_error_handler(request: Request, exc: RouterError):
    logger = get_audit_logger()
    if isinstance(exc, AllAccountsExhausted):
        retry_after = seconds_until_next_minute()
        logger.warning(
            "All accounts exhausted",
            extra={"audit_data": {"path": request.url.path, "retry_after": retry_after}},
        )
        return JSONResponse(
            status_code=429,
            content={"error": str(exc)},
            headers={"Retry-After": str(retry_after)},
        )

    logger.error(
        "Routing failed",
        extra={"audit_data": {"path": request.url.path, "error_type": type(exc).__name__, "error": str(exc)}},
    )
    return JSONResponse(status_code=503, content={"error": str(exc)})


@app.get("/health")
async def health():
    return {"status": "healthy", "version": VERSION}


@app.post("/v1/chat/completions")
async def chat_completions(
    request: Request,
    client_id: str = Depends(verify_gateway_key),
    router: AIRouter = Depends(get_router),
):
    """Proxy endpoint mirroring the OpenAI chat completions API.

    Pipeline: Auth -> Select (strategy + rate limits) -> Dispatch -> Record usage -> Log
    """
    logger = get_audit_logger()
    rid = generate_request_id()
    request_id_var.set(rid)

    try:
        body = await request.json()
    except ValueError:
        raise HTTPException(status_code=400, detail="Request body must be valid JSON")
    if not isinstance(body, dict) or not isinstance(body.get("messages"), list):
        raise HTTPException(status_code=400, detail="Request body must contain a 'messages' list")
    if not all(isinstance(m, dict) for m in body["messages"]):
        raise HTTPException(status_code=400, detail="Each message must be an object with 'role' and 'content'")

    chat_request = ChatRequest.from_dict(body)
    with RequestTimer() as timer:
        result = await router.chat(chat_request)

    logger.info(
        "Request routed",
        extra={"audit_data": {
            "client_id": client_id,
            "requested_model": chat_request.model,
            "model": result.get("model") if isinstance(result, dict) else None,
            "latency_ms": timer.elapsed_ms,
        }},
    )
    return JSONResponse(content=result, headers={"X-Request-Id": rid})


@app.get("/stats")
async def stats(
    client_id: str = Depends(verify_gateway_key),
    router: AIRouter = Depends(get_router),
):
    """Usage overview per (account, model) candidate."""
    return {
        "strategy": router.config.strategy,
        "candidates": await router.usage_overview(),
    }
