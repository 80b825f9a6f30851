"""Streaming chat orchestration.

stream_chat drives a bounded multi-step tool-calling loop against one bound
provider and relays it to the client as Server-Sent Events:

- start: {"provider", "model", "conversation_id"?}
- text-delta: {"delta": "text chunk"}
- tool-call: {"toolCallId", "toolName", "args", "status"} (before the tool runs)
- tool-result: {"toolCallId", "toolName", "result"}
- step-finish: {"step", "toolCalls"}
- error: {"code", "message"} (provider failures, after the stream has started)
- done: {"status": "complete|error", "steps", "conversation_id"?}

Each step is one model call. Tool calls of a step run sequentially and their
results are appended to the turn list before the next step. After
max_steps the loop finalizes without another model call.

Persistence is best effort and happens after the loop; failures are logged
and never reach the client.
"""

import json
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session, sessionmaker
from starlette.concurrency import run_in_threadpool

from dropdawn.logging import get_logger, set_conversation_id
from dropdawn.services.conversations import record_exchange
from dropdawn.services.llm import (
    ERROR_CLASS_MESSAGES,
    LLMError,
    LLMRequest,
    LLMRouter,
    ProviderBinding,
    ToolCall,
    Turn,
)
from dropdawn.services.redact import safe_kv
from dropdawn.tools import ToolContext, ToolOutcome, ToolRegistry, status_message

logger = get_logger(__name__)

DEFAULT_MAX_STEPS = 5
MAX_OUTPUT_TOKENS = 8192
LLM_TIMEOUT_SECONDS = 60

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "X-Accel-Buffering": "no",
}
SSE_MEDIA_TYPE = "text/event-stream; charset=utf-8"


def format_sse_event(event: str, data: dict) -> str:
    """Format data as an SSE event."""
    return f"event: {event}\ndata: {json.dumps(data)}\n\n"


@dataclass
class ChatPersistence:
    """Where to store the exchange once the stream completes."""

    session_factory: sessionmaker[Session]
    user_id: UUID
    user_message: str
    conversation_id: UUID | None = None


def _persist(
    target: ChatPersistence, assistant_content: str, tool_results: list[dict[str, Any]]
) -> UUID:
    db = target.session_factory()
    try:
        return record_exchange(
            db,
            target.user_id,
            target.conversation_id,
            target.user_message,
            assistant_content,
            tool_results or None,
        )
    finally:
        db.close()


def _tool_turn(call: ToolCall, result: dict[str, Any]) -> Turn:
    return Turn(
        role="tool",
        content=json.dumps(result, default=str),
        tool_call_id=call.id,
        tool_name=call.name,
    )


async def stream_chat(
    *,
    router: LLMRouter,
    binding: ProviderBinding,
    turns: list[Turn],
    registry: ToolRegistry,
    tool_ctx: ToolContext,
    max_steps: int = DEFAULT_MAX_STEPS,
    persistence: ChatPersistence | None = None,
) -> AsyncIterator[str]:
    """Run the step loop and yield SSE-formatted events.

    Args:
        router: LLM router used for every step.
        binding: Provider, model and key resolved for this request.
        turns: Rendered prompt (system turn first).
        registry: Tools exposed to the model.
        tool_ctx: Resources handed to tool handlers.
        max_steps: Ceiling on model calls.
        persistence: Storage target, or None for temporary/anonymous chats.
    """
    turns = list(turns)
    tool_specs = registry.specs()
    conversation_id = persistence.conversation_id if persistence else None

    start: dict[str, Any] = {
        "provider": binding.provider.value,
        "model": binding.model_name,
    }
    if conversation_id:
        start["conversation_id"] = str(conversation_id)
        set_conversation_id(str(conversation_id))
    yield format_sse_event("start", start)

    logger.info(
        "chat.started",
        **safe_kv(
            provider=binding.provider.value,
            model_name=binding.model_name,
            max_steps=max_steps,
            tool_count=len(tool_specs),
        ),
    )

    text_parts: list[str] = []
    outcomes: list[ToolOutcome] = []
    steps = 0
    status = "complete"

    try:
        for step in range(1, max_steps + 1):
            steps = step
            step_text: list[str] = []
            tool_calls: tuple[ToolCall, ...] = ()

            request = LLMRequest(
                model_name=binding.model_name,
                messages=list(turns),
                max_tokens=MAX_OUTPUT_TOKENS,
                tools=tool_specs,
            )
            async for chunk in router.generate_stream(
                binding, request, timeout_s=LLM_TIMEOUT_SECONDS
            ):
                if chunk.done:
                    tool_calls = chunk.tool_calls
                elif chunk.delta_text:
                    step_text.append(chunk.delta_text)
                    yield format_sse_event("text-delta", {"delta": chunk.delta_text})

            text = "".join(step_text)
            text_parts.append(text)

            if tool_calls:
                turns.append(Turn(role="assistant", content=text, tool_calls=tool_calls))
                for call in tool_calls:
                    yield format_sse_event(
                        "tool-call",
                        {
                            "toolCallId": call.id,
                            "toolName": call.name,
                            "args": call.arguments,
                            "status": status_message(call.name),
                        },
                    )
                    result = await registry.execute(call.name, call.arguments, tool_ctx)
                    outcome = ToolOutcome(call.id, call.name, call.arguments, result)
                    outcomes.append(outcome)
                    logger.info(
                        "chat.tool_finished",
                        tool_name=call.name,
                        outcome="error" if outcome.is_error else "success",
                    )
                    yield format_sse_event(
                        "tool-result",
                        {"toolCallId": call.id, "toolName": call.name, "result": result},
                    )
                    turns.append(_tool_turn(call, result))
            elif text:
                turns.append(Turn(role="assistant", content=text))

            yield format_sse_event("step-finish", {"step": step, "toolCalls": len(tool_calls)})

            if not tool_calls:
                break
        else:
            logger.info("chat.step_limit_reached", max_steps=max_steps)

    except LLMError as e:
        status = "error"
        logger.warning("chat.llm_error", error_class=e.error_class.value, steps=steps)
        yield format_sse_event(
            "error",
            {
                "code": e.error_class.value,
                "message": ERROR_CLASS_MESSAGES.get(e.error_class, e.message),
            },
        )

    assistant_content = "\n\n".join(part for part in text_parts if part)

    if persistence is not None and (assistant_content or outcomes):
        try:
            conversation_id = await run_in_threadpool(
                _persist,
                persistence,
                assistant_content,
                [outcome.to_dict() for outcome in outcomes],
            )
            set_conversation_id(str(conversation_id))
        except Exception as e:
            logger.warning("chat.persist_failed", error_type=type(e).__name__)

    logger.info(
        "chat.finished",
        **safe_kv(
            status=status,
            steps=steps,
            tool_calls=len(outcomes),
            response_chars=len(assistant_content),
        ),
    )

    done: dict[str, Any] = {"status": status, "steps": steps}
    if conversation_id:
        done["conversation_id"] = str(conversation_id)
    yield format_sse_event("done", done)
