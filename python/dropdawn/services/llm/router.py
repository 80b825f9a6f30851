"""LLM router for provider binding and error normalization.

- Binds a request's provider/model pair to an adapter and API key
- Wraps adapter streams with error normalization
- Centralizes error classification (one place, not per adapter)
- Emits llm.request.started / llm.request.finished / llm.request.failed events,
  all through safe_kv() so message content and keys never reach the logs

Error handling:
- Provider 401/403 -> E_LLM_INVALID_KEY
- Provider 429 -> E_LLM_RATE_LIMIT
- Timeout -> E_LLM_TIMEOUT
- Context too large -> E_LLM_CONTEXT_TOO_LARGE
- Other -> E_LLM_PROVIDER_DOWN
"""

import time
from collections.abc import AsyncIterator
from dataclasses import dataclass

import httpx

from dropdawn.config import Settings
from dropdawn.errors import ApiError, ApiErrorCode
from dropdawn.logging import get_logger
from dropdawn.services.llm.adapter import LLMAdapter
from dropdawn.services.llm.errors import LLMError, LLMErrorClass, classify_provider_error
from dropdawn.services.llm.providers import PROVIDER_REGISTRY, Provider, parse_provider
from dropdawn.services.llm.types import LLMChunk, LLMRequest
from dropdawn.services.redact import safe_kv

logger = get_logger(__name__)

# Default timeout for LLM requests in seconds
DEFAULT_TIMEOUT_S = 60


@dataclass(frozen=True)
class ProviderBinding:
    """A provider ready to be called: adapter, model and credential."""

    provider: Provider
    model_name: str
    adapter: LLMAdapter
    api_key: str

    def __repr__(self) -> str:
        return f"ProviderBinding(provider={self.provider.value!r}, model_name={self.model_name!r})"


class LLMRouter:
    """Routes LLM requests to provider adapters.

    One adapter instance per provider shares the app's httpx client.
    """

    def __init__(self, client: httpx.AsyncClient):
        self._client = client
        self._adapters: dict[Provider, LLMAdapter] = {
            provider: entry.adapter_class(client) for provider, entry in PROVIDER_REGISTRY.items()
        }

    def bind(self, provider_name: str, model: str | None, settings: Settings) -> ProviderBinding:
        """Resolve provider, model and key for one request.

        Raises:
            ApiError(E_UNKNOWN_PROVIDER): Provider name not recognized.
            ApiError(E_PROVIDER_NOT_CONFIGURED): Key missing or a placeholder.
        """
        provider = parse_provider(provider_name)
        if provider is None:
            raise ApiError(
                ApiErrorCode.E_UNKNOWN_PROVIDER,
                f"Unknown provider: {provider_name}. "
                f"Choose one of {', '.join(p.value for p in Provider)}.",
            )

        entry = PROVIDER_REGISTRY[provider]
        api_key = getattr(settings, entry.settings_attr, None)
        if not api_key or not entry.key_is_valid(api_key):
            logger.warning("llm.provider.not_configured", provider=provider.value)
            raise ApiError(ApiErrorCode.E_PROVIDER_NOT_CONFIGURED, entry.missing_message(provider))

        model_name = (model or "").strip() or entry.default_model
        return ProviderBinding(
            provider=provider,
            model_name=model_name,
            adapter=self._adapters[provider],
            api_key=api_key,
        )

    async def generate_stream(
        self,
        binding: ProviderBinding,
        req: LLMRequest,
        *,
        timeout_s: int = DEFAULT_TIMEOUT_S,
    ) -> AsyncIterator[LLMChunk]:
        """Streaming LLM generation with error normalization.

        Yields:
            LLMChunk objects until terminal chunk (done=True).

        Raises:
            LLMError: With normalized error class on failure.
        """
        provider = binding.provider.value
        base = {
            "provider": provider,
            "model_name": req.model_name,
            "streaming": True,
            "tool_count": len(req.tools),
        }
        logger.info(
            "llm.request.started",
            **safe_kv(**base, message_chars=sum(len(m.content) for m in req.messages)),
        )

        start = time.monotonic()

        def failed(error_class: LLMErrorClass) -> None:
            logger.error(
                "llm.request.failed",
                **safe_kv(
                    **base,
                    outcome="error",
                    error_class=error_class.value,
                    latency_ms=int((time.monotonic() - start) * 1000),
                ),
            )

        try:
            async for chunk in binding.adapter.generate_stream(
                req, api_key=binding.api_key, timeout_s=timeout_s
            ):
                if chunk.done:
                    usage = chunk.usage
                    logger.info(
                        "llm.request.finished",
                        **safe_kv(
                            **base,
                            outcome="success",
                            latency_ms=int((time.monotonic() - start) * 1000),
                            tool_calls=len(chunk.tool_calls),
                            finish_reason=chunk.finish_reason,
                            tokens_input=usage.prompt_tokens if usage else None,
                            tokens_output=usage.completion_tokens if usage else None,
                            tokens_total=usage.total_tokens if usage else None,
                            provider_request_id=chunk.provider_request_id,
                        ),
                    )
                yield chunk

        except httpx.TimeoutException as e:
            failed(LLMErrorClass.TIMEOUT)
            raise LLMError(LLMErrorClass.TIMEOUT, "Stream timed out", provider=provider) from e

        except httpx.HTTPStatusError as e:
            json_body = self._safe_parse_json(e.response)
            error_class = classify_provider_error(provider, e.response.status_code, json_body, None)
            failed(error_class)
            raise LLMError(
                error_class,
                f"Provider returned HTTP {e.response.status_code}",
                provider=provider,
            ) from e

        except httpx.NetworkError as e:
            failed(LLMErrorClass.PROVIDER_DOWN)
            raise LLMError(
                LLMErrorClass.PROVIDER_DOWN, "Network error during stream", provider=provider
            ) from e

        except LLMError as e:
            failed(e.error_class)
            raise

        except Exception as e:
            failed(LLMErrorClass.PROVIDER_DOWN)
            raise LLMError(
                LLMErrorClass.PROVIDER_DOWN,
                f"Unexpected stream error: {type(e).__name__}",
                provider=provider,
            ) from e

    def _safe_parse_json(self, response: httpx.Response) -> dict | None:
        """Parse JSON from an error response, returning None on failure."""
        try:
            body = response.json()
        except (ValueError, httpx.ResponseNotRead):
            return None
        return body if isinstance(body, dict) else None
