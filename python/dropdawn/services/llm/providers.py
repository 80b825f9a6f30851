"""Provider registry.

Maps each supported provider to its adapter class, the setting holding its
API key, and the model used when the request does not name one.
"""

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from dropdawn.services.llm.adapter import LLMAdapter
from dropdawn.services.llm.cohere_adapter import CohereAdapter
from dropdawn.services.llm.gemini_adapter import GeminiAdapter
from dropdawn.services.llm.openai_adapter import DeepInfraAdapter, MistralAdapter


class Provider(str, Enum):
    """Supported providers. Values are the names clients send."""

    GOOGLE = "Google"
    MISTRAL = "Mistral"
    COHERE = "Cohere"
    DEEPINFRA = "DeepInfra"


def google_key_is_valid(key: str) -> bool:
    """Reject template placeholders and obviously truncated keys."""
    return "your_" not in key and len(key) >= 20


def any_key_is_valid(key: str) -> bool:
    return bool(key.strip())


@dataclass(frozen=True)
class ProviderEntry:
    adapter_class: type[LLMAdapter]
    settings_attr: str
    env_var: str
    default_model: str
    key_is_valid: Callable[[str], bool] = any_key_is_valid
    missing_key_message: str | None = None

    def missing_message(self, provider: Provider) -> str:
        if self.missing_key_message:
            return self.missing_key_message
        return f"{self.env_var} is missing. Add it to your .env file to use {provider.value}."


PROVIDER_REGISTRY: dict[Provider, ProviderEntry] = {
    Provider.GOOGLE: ProviderEntry(
        adapter_class=GeminiAdapter,
        settings_attr="google_api_key",
        env_var="GOOGLE_GENERATIVE_AI_API_KEY",
        default_model="gemini-2.5-flash",
        key_is_valid=google_key_is_valid,
        missing_key_message=(
            "Invalid or missing Google API key. Please add your "
            "GOOGLE_GENERATIVE_AI_API_KEY from Google AI Studio to your .env file."
        ),
    ),
    Provider.MISTRAL: ProviderEntry(
        adapter_class=MistralAdapter,
        settings_attr="mistral_api_key",
        env_var="MISTRAL_API_KEY",
        default_model="mistral-large-latest",
    ),
    Provider.COHERE: ProviderEntry(
        adapter_class=CohereAdapter,
        settings_attr="cohere_api_key",
        env_var="COHERE_API_KEY",
        default_model="command-r-plus",
    ),
    Provider.DEEPINFRA: ProviderEntry(
        adapter_class=DeepInfraAdapter,
        settings_attr="deepinfra_api_key",
        env_var="DEEPINFRA_API_KEY",
        default_model="meta-llama/Llama-3.3-70B-Instruct-Turbo",
    ),
}


def parse_provider(name: str) -> Provider | None:
    """Match a provider name case-insensitively; None when unknown."""
    wanted = (name or "").strip().lower()
    for provider in Provider:
        if wanted in (provider.value.lower(), provider.name.lower()):
            return provider
    return None
