"""FastAPI dependencies for route handlers.

Shared resources are created once in the app lifespan and read from
app.state here.
"""

import httpx
from fastapi import Request

from dropdawn.db.session import get_db, get_session_factory
from dropdawn.services.llm import LLMRouter
from dropdawn.services.quota import QuotaLimiter
from dropdawn.tools import ToolRegistry

__all__ = [
    "get_db",
    "get_http_client",
    "get_llm_router",
    "get_quota_limiter",
    "get_session_factory",
    "get_tool_registry",
]


def get_llm_router(request: Request) -> LLMRouter:
    """Get the shared LLM router from app state."""
    return request.app.state.llm_router


def get_http_client(request: Request) -> httpx.AsyncClient:
    """Get the shared outbound HTTP client (tools and quota store use it)."""
    return request.app.state.httpx_client


def get_quota_limiter(request: Request) -> QuotaLimiter:
    return request.app.state.quota_limiter


def get_tool_registry(request: Request) -> ToolRegistry:
    return request.app.state.tool_registry
