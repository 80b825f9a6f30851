"""Gemini LLM adapter implementation.

- Streaming: POST https://generativelanguage.googleapis.com/v1beta/models/{model}:streamGenerateContent?alt=sse

Auth:
- Header: x-goog-api-key: <key>
- NEVER put key in query param

Turn conversion:
- System turn -> systemInstruction.parts[0].text
- "assistant" role -> "model" role, tool calls -> functionCall parts
- "tool" role -> "user" role with functionResponse parts
- Consecutive turns with the same Gemini role are merged into one content

Tools:
- tools: [{"functionDeclarations": [{"name", "description", "parameters"}]}]

Streaming:
- Each event: data: {"candidates":[{"content":{"parts":[{"text":"..."} | {"functionCall": {...}}]}}]}
- Terminal: the event carrying finishReason
- Usage in final event's usageMetadata
- Gemini has no call ids; they are synthesized
"""

import json
from collections.abc import AsyncIterator

import httpx

from dropdawn.logging import get_logger
from dropdawn.services.llm.adapter import LLMAdapter, new_call_id, parse_arguments
from dropdawn.services.llm.errors import LLMError, LLMErrorClass
from dropdawn.services.llm.types import LLMChunk, LLMRequest, LLMUsage, ToolCall, Turn

logger = get_logger(__name__)

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/models"


class GeminiAdapter(LLMAdapter):
    """Google Gemini API adapter."""

    provider_name = "Google"

    async def generate_stream(
        self,
        req: LLMRequest,
        *,
        api_key: str,
        timeout_s: int,
    ) -> AsyncIterator[LLMChunk]:
        """Streaming content generation using Server-Sent Events."""
        url = f"{GEMINI_BASE_URL}/{req.model_name}:streamGenerateContent?alt=sse"

        async with self._client.stream(
            "POST",
            url,
            headers=self._build_headers(api_key),
            json=self._build_request_body(req),
            timeout=httpx.Timeout(timeout_s, connect=10.0),
        ) as response:
            if response.is_error:
                await response.aread()
            response.raise_for_status()

            usage: LLMUsage | None = None
            tool_calls: list[ToolCall] = []

            async for line in response.aiter_lines():
                if not line.startswith("data: "):
                    continue

                try:
                    data = json.loads(line[6:])
                except json.JSONDecodeError:
                    continue

                usage_metadata = data.get("usageMetadata")
                if usage_metadata:
                    usage = LLMUsage(
                        prompt_tokens=usage_metadata.get("promptTokenCount"),
                        completion_tokens=usage_metadata.get("candidatesTokenCount"),
                        total_tokens=usage_metadata.get("totalTokenCount"),
                    )

                candidates = data.get("candidates", [])
                if not candidates:
                    continue
                candidate = candidates[0]

                delta_text = ""
                for part in candidate.get("content", {}).get("parts", []):
                    if "text" in part and not part.get("thought"):
                        delta_text += part["text"]
                    elif "functionCall" in part:
                        call = part["functionCall"]
                        tool_calls.append(
                            ToolCall(
                                id=call.get("id") or new_call_id(),
                                name=call.get("name", ""),
                                arguments=parse_arguments(call.get("args")),
                            )
                        )

                if delta_text:
                    yield LLMChunk(delta_text=delta_text, done=False)

                finish_reason = candidate.get("finishReason")
                if finish_reason:
                    yield LLMChunk(
                        delta_text="",
                        done=True,
                        tool_calls=tuple(tool_calls),
                        finish_reason=finish_reason,
                        usage=usage,
                    )
                    return

            raise LLMError(
                LLMErrorClass.PROVIDER_DOWN,
                "Gemini stream ended without finish reason",
                provider=self.provider_name,
            )

    def _build_headers(self, api_key: str) -> dict[str, str]:
        """API key goes in header, NEVER in query param."""
        return {
            "x-goog-api-key": api_key,
            "Content-Type": "application/json",
        }

    def _build_request_body(self, req: LLMRequest) -> dict:
        system_prompt = None
        contents: list[dict] = []

        for turn in req.messages:
            if turn.role == "system":
                system_prompt = turn.content
                continue
            content = self._turn_to_content(turn)
            if contents and contents[-1]["role"] == content["role"]:
                contents[-1]["parts"].extend(content["parts"])
            else:
                contents.append(content)

        body: dict = {
            "contents": contents,
            "generationConfig": {"maxOutputTokens": req.max_tokens},
        }
        if system_prompt:
            body["systemInstruction"] = {"parts": [{"text": system_prompt}]}
        if req.temperature is not None:
            body["generationConfig"]["temperature"] = req.temperature
        if req.tools:
            body["tools"] = [
                {
                    "functionDeclarations": [
                        {
                            "name": tool.name,
                            "description": tool.description,
                            "parameters": tool.parameters,
                        }
                        for tool in req.tools
                    ]
                }
            ]
        return body

    def _turn_to_content(self, turn: Turn) -> dict:
        if turn.role == "tool":
            try:
                result = json.loads(turn.content)
            except json.JSONDecodeError:
                result = turn.content
            if not isinstance(result, dict):
                result = {"result": result}
            return {
                "role": "user",
                "parts": [{"functionResponse": {"name": turn.tool_name, "response": result}}],
            }

        role = "model" if turn.role == "assistant" else turn.role
        parts: list[dict] = []
        if turn.content:
            parts.append({"text": turn.content})
        for call in turn.tool_calls:
            parts.append({"functionCall": {"name": call.name, "args": call.arguments}})
        if not parts:
            parts.append({"text": ""})
        return {"role": role, "parts": parts}
