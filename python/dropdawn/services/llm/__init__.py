"""LLM adapter layer for provider-agnostic LLM integration.

Supports Google (Gemini), Mistral, Cohere and DeepInfra behind one streaming
interface that carries text deltas and tool calls.

Usage:
    from dropdawn.services.llm import LLMRouter, LLMRequest, Turn

    router = LLMRouter(httpx_client)
    binding = router.bind("Mistral", None, settings)
    request = LLMRequest(
        model_name=binding.model_name,
        messages=[Turn(role="user", content="Hello!")],
        max_tokens=1024,
    )
    async for chunk in router.generate_stream(binding, request):
        ...

Adapters:
- Are async using httpx.AsyncClient
- Never retry
- Never log request/response bodies
- Let raw provider errors bubble up to the router for classification
"""

from dropdawn.services.llm.adapter import LLMAdapter
from dropdawn.services.llm.errors import (
    ERROR_CLASS_MESSAGES,
    LLMError,
    LLMErrorClass,
    classify_provider_error,
)
from dropdawn.services.llm.prompt import (
    SYSTEM_PROMPT,
    PromptTooLargeError,
    render_prompt,
    validate_prompt_size,
)
from dropdawn.services.llm.providers import PROVIDER_REGISTRY, Provider, parse_provider
from dropdawn.services.llm.router import LLMRouter, ProviderBinding
from dropdawn.services.llm.types import (
    LLMChunk,
    LLMRequest,
    LLMUsage,
    ToolCall,
    ToolSpec,
    Turn,
)

__all__ = [
    # Core types
    "Turn",
    "ToolCall",
    "ToolSpec",
    "LLMRequest",
    "LLMChunk",
    "LLMUsage",
    # Providers
    "Provider",
    "PROVIDER_REGISTRY",
    "parse_provider",
    # Adapter interface
    "LLMAdapter",
    # Router
    "LLMRouter",
    "ProviderBinding",
    # Errors
    "LLMError",
    "LLMErrorClass",
    "ERROR_CLASS_MESSAGES",
    "classify_provider_error",
    # Prompt rendering
    "SYSTEM_PROMPT",
    "render_prompt",
    "validate_prompt_size",
    "PromptTooLargeError",
]
