"""LLM error classification and normalization.

Called by the router after catching adapter exceptions.

Error classes:
- E_LLM_INVALID_KEY: Authentication failure (401/403)
- E_LLM_RATE_LIMIT: Rate limit exceeded (429)
- E_LLM_CONTEXT_TOO_LARGE: Context length exceeded
- E_LLM_TIMEOUT: Request timed out
- E_LLM_PROVIDER_DOWN: Provider unavailable (5xx, network error)
- E_MODEL_NOT_AVAILABLE: Model not found or disabled
"""

from enum import Enum

from dropdawn.logging import get_logger

logger = get_logger(__name__)


class LLMErrorClass(str, Enum):
    """Normalized LLM error classifications."""

    INVALID_KEY = "E_LLM_INVALID_KEY"
    RATE_LIMIT = "E_LLM_RATE_LIMIT"
    CONTEXT_TOO_LARGE = "E_LLM_CONTEXT_TOO_LARGE"
    TIMEOUT = "E_LLM_TIMEOUT"
    PROVIDER_DOWN = "E_LLM_PROVIDER_DOWN"
    MODEL_NOT_AVAILABLE = "E_MODEL_NOT_AVAILABLE"


# User-facing text for each class, shown inline in the chat
ERROR_CLASS_MESSAGES: dict[LLMErrorClass, str] = {
    LLMErrorClass.INVALID_KEY: "The provider rejected the configured API key.",
    LLMErrorClass.RATE_LIMIT: "The provider is rate limiting requests. Try again shortly.",
    LLMErrorClass.CONTEXT_TOO_LARGE: "The conversation is too long for this model.",
    LLMErrorClass.TIMEOUT: "The model took too long to respond.",
    LLMErrorClass.PROVIDER_DOWN: "The model provider is unavailable right now.",
    LLMErrorClass.MODEL_NOT_AVAILABLE: "The selected model is not available.",
}


class LLMError(Exception):
    """Exception for LLM-related errors.

    Attributes:
        error_class: The normalized error classification
        message: Human-readable error message
        provider: The provider that returned the error (if known)
    """

    def __init__(
        self,
        error_class: LLMErrorClass,
        message: str,
        provider: str | None = None,
    ):
        self.error_class = error_class
        self.message = message
        self.provider = provider
        super().__init__(message)


def classify_provider_error(
    provider: str,
    status_code: int | None,
    json_body: dict | None,
    exception: Exception | None,
) -> LLMErrorClass:
    """Classify provider error into normalized error class.

    Args:
        provider: Provider wire name ("Google", "Mistral", "Cohere", "DeepInfra")
        status_code: HTTP status code (if available)
        json_body: Parsed JSON error response (if available)
        exception: The exception that was raised (if any)
    """
    if exception is not None:
        exception_type = type(exception).__name__
        if "Timeout" in exception_type or "timeout" in str(exception).lower():
            return LLMErrorClass.TIMEOUT
        if "Network" in exception_type or "Connection" in exception_type:
            return LLMErrorClass.PROVIDER_DOWN

    if status_code is None:
        return LLMErrorClass.PROVIDER_DOWN

    if provider == "Google":
        return _classify_gemini_error(status_code, json_body)
    elif provider in ("Mistral", "DeepInfra"):
        return _classify_openai_compatible_error(status_code, json_body)
    elif provider == "Cohere":
        return _classify_cohere_error(status_code, json_body)
    else:
        logger.warning("unknown_provider_for_error_classification", provider=provider)
        return LLMErrorClass.PROVIDER_DOWN


def _error_message(json_body: dict | None) -> str:
    if not json_body:
        return ""
    error = json_body.get("error")
    if isinstance(error, dict):
        return str(error.get("message", "")).lower()
    if isinstance(error, str):
        return error.lower()
    return str(json_body.get("message", "")).lower()


def _classify_openai_compatible_error(status_code: int, json_body: dict | None) -> LLMErrorClass:
    """Mistral and DeepInfra share the chat-completions error shape.

    - 401 or 403 -> INVALID_KEY
    - 429 -> RATE_LIMIT
    - 404 -> MODEL_NOT_AVAILABLE
    - 5xx -> PROVIDER_DOWN
    - 400 mentioning context length / too many tokens -> CONTEXT_TOO_LARGE
    """
    if status_code in (401, 403):
        return LLMErrorClass.INVALID_KEY
    if status_code == 429:
        return LLMErrorClass.RATE_LIMIT
    if status_code == 404:
        return LLMErrorClass.MODEL_NOT_AVAILABLE
    if status_code >= 500:
        return LLMErrorClass.PROVIDER_DOWN

    message = _error_message(json_body)
    if status_code in (400, 422):
        if "context length" in message or "too many tokens" in message:
            return LLMErrorClass.CONTEXT_TOO_LARGE
        if "model" in message and ("not found" in message or "invalid" in message):
            return LLMErrorClass.MODEL_NOT_AVAILABLE

    return LLMErrorClass.PROVIDER_DOWN


def _classify_cohere_error(status_code: int, json_body: dict | None) -> LLMErrorClass:
    """Cohere errors carry a top-level "message".

    - 401 or 403 -> INVALID_KEY
    - 429 -> RATE_LIMIT
    - 404 or unknown model -> MODEL_NOT_AVAILABLE
    - 400 "too many tokens" -> CONTEXT_TOO_LARGE
    """
    if status_code in (401, 403):
        return LLMErrorClass.INVALID_KEY
    if status_code == 429:
        return LLMErrorClass.RATE_LIMIT

    message = _error_message(json_body)
    if status_code == 404 or ("model" in message and "not found" in message):
        return LLMErrorClass.MODEL_NOT_AVAILABLE
    if status_code == 400 and "too many tokens" in message:
        return LLMErrorClass.CONTEXT_TOO_LARGE

    return LLMErrorClass.PROVIDER_DOWN


def _classify_gemini_error(status_code: int, json_body: dict | None) -> LLMErrorClass:
    """Classify Gemini-specific errors.

    - 401 or 403 or "API_KEY_INVALID" in body -> INVALID_KEY
    - 429 or "RESOURCE_EXHAUSTED" -> RATE_LIMIT
    - "exceeds the maximum" in message -> CONTEXT_TOO_LARGE
    - 404 or "model not found" -> MODEL_NOT_AVAILABLE
    - 5xx -> PROVIDER_DOWN
    """
    body_str = str(json_body).lower() if json_body else ""

    if "api_key_invalid" in body_str:
        return LLMErrorClass.INVALID_KEY
    if status_code in (401, 403):
        return LLMErrorClass.INVALID_KEY
    if status_code == 429 or "resource_exhausted" in body_str:
        return LLMErrorClass.RATE_LIMIT
    if "exceeds the maximum" in body_str:
        return LLMErrorClass.CONTEXT_TOO_LARGE
    if status_code == 404 or "model not found" in body_str:
        return LLMErrorClass.MODEL_NOT_AVAILABLE

    return LLMErrorClass.PROVIDER_DOWN
