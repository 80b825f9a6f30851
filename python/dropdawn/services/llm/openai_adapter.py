"""OpenAI-compatible chat-completions adapters (Mistral, DeepInfra).

- Headers: Authorization: Bearer <key>, Content-Type: application/json
- Streaming: Server-Sent Events with data: {...} format
- Terminal event: data: [DONE]

Request body:
{
  "model": "<model_name>",
  "messages": [
    {"role": "system", "content": "..."},
    {"role": "user", "content": "..."},
    {"role": "assistant", "content": "", "tool_calls": [...]},
    {"role": "tool", "tool_call_id": "...", "name": "...", "content": "<json>"}
  ],
  "tools": [{"type": "function", "function": {"name", "description", "parameters"}}],
  "max_tokens": 1024,
  "stream": true
}

Tool calls stream as choices[0].delta.tool_calls fragments keyed by index;
the first fragment carries id and name, later fragments append to arguments.
"""

import json
from collections.abc import AsyncIterator

import httpx

from dropdawn.logging import get_logger
from dropdawn.services.llm.adapter import LLMAdapter, new_call_id, parse_arguments
from dropdawn.services.llm.errors import LLMError, LLMErrorClass
from dropdawn.services.llm.types import LLMChunk, LLMRequest, LLMUsage, ToolCall, Turn

logger = get_logger(__name__)

MISTRAL_CHAT_URL = "https://api.mistral.ai/v1/chat/completions"
DEEPINFRA_CHAT_URL = "https://api.deepinfra.com/v1/openai/chat/completions"


class OpenAICompatibleAdapter(LLMAdapter):
    """Adapter for providers exposing the chat-completions wire format."""

    chat_url: str = ""

    async def generate_stream(
        self,
        req: LLMRequest,
        *,
        api_key: str,
        timeout_s: int,
    ) -> AsyncIterator[LLMChunk]:
        """Streaming chat completion using Server-Sent Events."""
        async with self._client.stream(
            "POST",
            self.chat_url,
            headers=self._build_headers(api_key),
            json=self._build_request_body(req),
            timeout=httpx.Timeout(timeout_s, connect=10.0),
        ) as response:
            if response.is_error:
                await response.aread()
            response.raise_for_status()

            provider_request_id = response.headers.get("x-request-id")
            usage: LLMUsage | None = None
            finish_reason: str | None = None
            # index -> {"id", "name", "arguments"}
            pending: dict[int, dict] = {}

            async for line in response.aiter_lines():
                if not line.startswith("data: "):
                    continue

                data_str = line[6:]
                if data_str == "[DONE]":
                    yield LLMChunk(
                        delta_text="",
                        done=True,
                        tool_calls=self._finish_tool_calls(pending),
                        finish_reason=finish_reason,
                        usage=usage,
                        provider_request_id=provider_request_id,
                    )
                    return

                try:
                    data = json.loads(data_str)
                except json.JSONDecodeError:
                    continue

                if data.get("usage"):
                    usage_data = data["usage"]
                    usage = LLMUsage(
                        prompt_tokens=usage_data.get("prompt_tokens"),
                        completion_tokens=usage_data.get("completion_tokens"),
                        total_tokens=usage_data.get("total_tokens"),
                    )

                choices = data.get("choices") or []
                if not choices:
                    continue

                choice = choices[0]
                finish_reason = choice.get("finish_reason") or finish_reason
                delta = choice.get("delta") or {}

                for position, fragment in enumerate(delta.get("tool_calls") or []):
                    index = fragment.get("index", position)
                    entry = pending.setdefault(index, {"id": None, "name": "", "arguments": ""})
                    if fragment.get("id"):
                        entry["id"] = fragment["id"]
                    function = fragment.get("function") or {}
                    if function.get("name"):
                        entry["name"] = function["name"]
                    arguments = function.get("arguments")
                    if isinstance(arguments, dict):
                        entry["arguments"] = json.dumps(arguments)
                    elif arguments:
                        entry["arguments"] += arguments

                delta_text = delta.get("content") or ""
                if delta_text:
                    yield LLMChunk(delta_text=delta_text, done=False)

            raise LLMError(
                LLMErrorClass.PROVIDER_DOWN,
                f"{self.provider_name} stream ended without [DONE] marker",
                provider=self.provider_name,
            )

    def _finish_tool_calls(self, pending: dict[int, dict]) -> tuple[ToolCall, ...]:
        return tuple(
            ToolCall(
                id=entry["id"] or new_call_id(),
                name=entry["name"],
                arguments=parse_arguments(entry["arguments"]),
            )
            for _, entry in sorted(pending.items())
            if entry["name"]
        )

    def _build_headers(self, api_key: str) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }

    def _build_request_body(self, req: LLMRequest) -> dict:
        body: dict = {
            "model": req.model_name,
            "messages": [self._turn_to_message(turn) for turn in req.messages],
            "max_tokens": req.max_tokens,
            "stream": True,
        }
        if req.temperature is not None:
            body["temperature"] = req.temperature
        if req.tools:
            body["tools"] = [
                {
                    "type": "function",
                    "function": {
                        "name": tool.name,
                        "description": tool.description,
                        "parameters": tool.parameters,
                    },
                }
                for tool in req.tools
            ]
            body["tool_choice"] = "auto"
        return body

    def _turn_to_message(self, turn: Turn) -> dict:
        if turn.role == "tool":
            return {
                "role": "tool",
                "tool_call_id": turn.tool_call_id,
                "name": turn.tool_name,
                "content": turn.content,
            }

        message: dict = {"role": turn.role, "content": turn.content}
        if turn.tool_calls:
            message["tool_calls"] = [
                {
                    "id": call.id,
                    "type": "function",
                    "function": {"name": call.name, "arguments": json.dumps(call.arguments)},
                }
                for call in turn.tool_calls
            ]
        return message


class MistralAdapter(OpenAICompatibleAdapter):
    """Mistral La Plateforme chat completions."""

    provider_name = "Mistral"
    chat_url = MISTRAL_CHAT_URL


class DeepInfraAdapter(OpenAICompatibleAdapter):
    """DeepInfra's OpenAI-compatible endpoint."""

    provider_name = "DeepInfra"
    chat_url = DEEPINFRA_CHAT_URL
