"""FastAPI application creation and configuration.

This module creates and configures the FastAPI application instance.
It registers exception handlers, auth middleware, request-id middleware, and routes.

Middleware Ordering (Critical):
- Middleware runs in reverse order of registration
- RequestIDMiddleware is added LAST so it runs FIRST (outermost)
- This ensures all requests (including auth failures) get X-Request-ID

Shared Resources (created in lifespan, stored in app.state):
- httpx_client: one AsyncClient for providers, hosting API, tools and quota store
- llm_router: LLMRouter wrapping the shared client
- redis_client: optional sync Redis client for the quota log
- quota_limiter: QuotaLimiter over Redis, Supabase metadata, or nothing
- tool_registry: the tools exposed to the model
"""

import json
from contextlib import asynccontextmanager

import httpx
import redis
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from dropdawn.api.routes import create_api_router
from dropdawn.auth.middleware import AuthMiddleware
from dropdawn.auth.verifier import SupabaseJwksVerifier
from dropdawn.config import Settings, get_settings
from dropdawn.errors import ApiError, ApiErrorCode
from dropdawn.logging import configure_logging, get_logger
from dropdawn.middleware.request_id import RequestIDMiddleware
from dropdawn.responses import (
    api_error_handler,
    error_response,
    http_exception_handler,
    unhandled_exception_handler,
)
from dropdawn.services.llm import LLMRouter
from dropdawn.services.quota import QuotaLimiter, RedisQuotaStore, SupabaseQuotaStore
from dropdawn.tools import build_default_registry

# Configure structured logging at import time
configure_logging()

logger = get_logger(__name__)


def create_token_verifier() -> SupabaseJwksVerifier:
    """Create the token verifier using Supabase JWKS.

    Returns:
        SupabaseJwksVerifier configured with settings from environment.
    """
    settings = get_settings()

    return SupabaseJwksVerifier(
        jwks_url=settings.supabase_jwks_url,  # type: ignore
        issuer=settings.normalized_issuer,  # type: ignore
        audiences=settings.audience_list,
    )


def create_redis_client(settings: Settings):
    """Connect to Redis if configured. Returns None when unset or unreachable."""
    if not settings.redis_url:
        return None
    try:
        client = redis.Redis.from_url(settings.redis_url, decode_responses=True, socket_timeout=5)
        client.ping()
    except redis.RedisError as e:
        logger.warning("redis_client_init_failed", error_type=type(e).__name__)
        return None
    logger.info("redis_client_initialized")
    return client


def create_quota_limiter(
    settings: Settings, http_client: httpx.AsyncClient, redis_client
) -> QuotaLimiter:
    """Pick the quota store: Redis first, then Supabase user metadata."""
    store = None
    if redis_client is not None:
        store = RedisQuotaStore(redis_client, window=settings.quota_window)
    elif settings.supabase_admin_configured:
        store = SupabaseQuotaStore(
            http_client,
            settings.supabase_url,  # type: ignore
            settings.supabase_service_key,  # type: ignore
        )

    logger.info("quota_limiter_initialized", store=type(store).__name__ if store else None)
    return QuotaLimiter(
        store,
        max_messages=settings.quota_max_messages,
        window=settings.quota_window,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create shared clients at startup and close them on shutdown."""
    settings = get_settings()

    app.state.httpx_client = httpx.AsyncClient(
        timeout=httpx.Timeout(60.0, connect=10.0),
        limits=httpx.Limits(max_connections=100, max_keepalive_connections=20),
    )
    app.state.llm_router = LLMRouter(app.state.httpx_client)
    app.state.tool_registry = build_default_registry()

    redis_client = create_redis_client(settings)
    app.state.redis_client = redis_client
    app.state.quota_limiter = create_quota_limiter(settings, app.state.httpx_client, redis_client)

    logger.info("llm_router_initialized", tools=len(app.state.tool_registry.names))

    yield

    await app.state.httpx_client.aclose()
    if redis_client is not None:
        try:
            redis_client.close()
        except redis.RedisError as e:
            logger.warning("redis_client_close_failed", error_type=type(e).__name__)
    logger.info("httpx_client_closed")


def create_app(
    skip_auth_middleware: bool = False,
    token_verifier=None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        skip_auth_middleware: If True, skip adding auth middleware (for testing).
        token_verifier: Optional custom token verifier (for testing).

    Returns:
        Configured FastAPI application instance.
    """
    settings = get_settings()

    app = FastAPI(
        title="Dropdawn API",
        description="Chat assistant that can call tools and deploy websites",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Handle request validation errors (including malformed JSON)."""
        return JSONResponse(
            status_code=400,
            content=error_response(ApiErrorCode.E_INVALID_REQUEST, "Invalid request body"),
        )

    @app.middleware("http")
    async def catch_json_decode_errors(request: Request, call_next):
        """Catch JSON decode errors before they reach route handlers."""
        if request.method in ("POST", "PUT", "PATCH"):
            content_type = request.headers.get("content-type", "")
            if "application/json" in content_type:
                body = await request.body()
                if body:
                    try:
                        json.loads(body)
                    except json.JSONDecodeError:
                        return JSONResponse(
                            status_code=400,
                            content=error_response(
                                ApiErrorCode.E_INVALID_REQUEST, "Malformed JSON body"
                            ),
                        )
        return await call_next(request)

    app.include_router(create_api_router())

    if not skip_auth_middleware:
        verifier = token_verifier or create_token_verifier()
        app.add_middleware(AuthMiddleware, verifier=verifier)
        logger.info("auth_middleware_enabled", env=settings.dropdawn_env.value)

    return app


def add_request_id_middleware(app: FastAPI, log_requests: bool = True) -> None:
    """Add request-id middleware to the app.

    This should be called AFTER all other middleware is added, so it runs FIRST.
    This ensures every response includes X-Request-ID, including auth failures.

    Args:
        app: The FastAPI application.
        log_requests: Whether to log access entries for each request.
    """
    app.add_middleware(RequestIDMiddleware, log_requests=log_requests)
    logger.info("request_id_middleware_enabled")
