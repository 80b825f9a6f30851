"""Abstract base class for LLM adapters.

- Async adapters with httpx.AsyncClient
- No retries inside adapters
- No DB access
- No logging of request/response bodies
- Raw provider errors bubble up to router for classification
- Each adapter handles Turn -> provider format conversion internally
"""

import json
import uuid
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from typing import Any

import httpx

from dropdawn.services.llm.types import LLMChunk, LLMRequest


def parse_arguments(raw: str | dict | None) -> dict[str, Any]:
    """Decode streamed tool arguments; malformed JSON becomes an empty dict."""
    if isinstance(raw, dict):
        return raw
    if not raw:
        return {}
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        return {}
    return value if isinstance(value, dict) else {}


def new_call_id() -> str:
    return f"call_{uuid.uuid4().hex[:16]}"


class LLMAdapter(ABC):
    """Abstract base class for LLM provider adapters.

    Each adapter implements provider-specific HTTP communication,
    Turn -> provider format conversion and tool-call parsing.
    """

    provider_name: str = ""

    def __init__(self, client: httpx.AsyncClient):
        """Initialize adapter with shared HTTP client."""
        self._client = client

    @abstractmethod
    async def generate_stream(
        self,
        req: LLMRequest,
        *,
        api_key: str,
        timeout_s: int,
    ) -> AsyncIterator[LLMChunk]:
        """Streaming generation. Yields chunks until done=True.

        Raises:
            httpx.HTTPStatusError: On non-2xx HTTP response.
            httpx.TimeoutException: On request timeout.
            httpx.NetworkError: On network failure.
            LLMError: If stream ends without proper terminal marker.
        """
        pass
        # This is an abstract async generator, must yield to be valid
        yield  # type: ignore
