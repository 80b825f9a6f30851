"""Cohere v2 chat adapter implementation.

- Endpoint: POST https://api.cohere.com/v2/chat (stream: true)
- Headers: Authorization: Bearer <key>

Stream events (data: {"type": ...}):
- content-delta: delta.message.content.text
- tool-call-start: delta.message.tool_calls {id, function: {name, arguments}}
- tool-call-delta: delta.message.tool_calls.function.arguments (appended)
- message-end: terminal; delta.finish_reason, delta.usage.billed_units

Tool results are sent back as {"role": "tool", "tool_call_id", "content"}.
"""

import json
from collections.abc import AsyncIterator

import httpx

from dropdawn.logging import get_logger
from dropdawn.services.llm.adapter import LLMAdapter, new_call_id, parse_arguments
from dropdawn.services.llm.errors import LLMError, LLMErrorClass
from dropdawn.services.llm.types import LLMChunk, LLMRequest, LLMUsage, ToolCall, Turn

logger = get_logger(__name__)

COHERE_CHAT_URL = "https://api.cohere.com/v2/chat"


class CohereAdapter(LLMAdapter):
    """Cohere chat API adapter."""

    provider_name = "Cohere"

    async def generate_stream(
        self,
        req: LLMRequest,
        *,
        api_key: str,
        timeout_s: int,
    ) -> AsyncIterator[LLMChunk]:
        async with self._client.stream(
            "POST",
            COHERE_CHAT_URL,
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
                "Accept": "text/event-stream",
            },
            json=self._build_request_body(req),
            timeout=httpx.Timeout(timeout_s, connect=10.0),
        ) as response:
            if response.is_error:
                await response.aread()
            response.raise_for_status()

            provider_request_id = response.headers.get("x-request-id")
            tool_calls: list[dict] = []

            async for line in response.aiter_lines():
                if not line.startswith("data: "):
                    continue
                try:
                    event = json.loads(line[6:])
                except json.JSONDecodeError:
                    continue

                event_type = event.get("type")
                message = (event.get("delta") or {}).get("message") or {}

                if event_type == "content-delta":
                    text = (message.get("content") or {}).get("text", "")
                    if text:
                        yield LLMChunk(delta_text=text, done=False)

                elif event_type == "tool-call-start":
                    call = message.get("tool_calls") or {}
                    function = call.get("function") or {}
                    tool_calls.append(
                        {
                            "id": call.get("id"),
                            "name": function.get("name", ""),
                            "arguments": function.get("arguments") or "",
                        }
                    )

                elif event_type == "tool-call-delta" and tool_calls:
                    call = message.get("tool_calls") or {}
                    fragment = (call.get("function") or {}).get("arguments")
                    if fragment:
                        tool_calls[-1]["arguments"] += fragment

                elif event_type == "message-end":
                    delta = event.get("delta") or {}
                    yield LLMChunk(
                        delta_text="",
                        done=True,
                        tool_calls=tuple(
                            ToolCall(
                                id=call["id"] or new_call_id(),
                                name=call["name"],
                                arguments=parse_arguments(call["arguments"]),
                            )
                            for call in tool_calls
                            if call["name"]
                        ),
                        finish_reason=delta.get("finish_reason"),
                        usage=self._parse_usage(delta.get("usage")),
                        provider_request_id=provider_request_id,
                    )
                    return

            raise LLMError(
                LLMErrorClass.PROVIDER_DOWN,
                "Cohere stream ended without message-end event",
                provider=self.provider_name,
            )

    def _parse_usage(self, usage: dict | None) -> LLMUsage | None:
        if not usage:
            return None
        units = usage.get("billed_units") or usage.get("tokens") or {}
        prompt = units.get("input_tokens")
        completion = units.get("output_tokens")
        total = None
        if prompt is not None and completion is not None:
            total = int(prompt) + int(completion)
        return LLMUsage(prompt_tokens=prompt, completion_tokens=completion, total_tokens=total)

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
        return body

    def _turn_to_message(self, turn: Turn) -> dict:
        if turn.role == "tool":
            return {
                "role": "tool",
                "tool_call_id": turn.tool_call_id,
                "content": turn.content,
            }

        if turn.role == "assistant" and turn.tool_calls:
            message: dict = {
                "role": "assistant",
                "tool_calls": [
                    {
                        "id": call.id,
                        "type": "function",
                        "function": {
                            "name": call.name,
                            "arguments": json.dumps(call.arguments),
                        },
                    }
                    for call in turn.tool_calls
                ],
            }
            if turn.content:
                message["tool_plan"] = turn.content
            return message

        return {"role": turn.role, "content": turn.content}
