"""Shared type definitions for the LLM adapter layer.

- Turn: Provider-agnostic conversation turn (text, tool calls, tool results)
- ToolSpec: Tool declaration exposed to the model
- ToolCall: One tool invocation requested by the model
- LLMRequest: Request to LLM adapter
- LLMUsage: Token usage from provider response
- LLMChunk: Single chunk from streaming response

Streaming invariants:
- Chunks with done=False carry only delta_text
- Exactly ONE terminal chunk with done=True
- Terminal chunk carries the step's accumulated tool_calls, and usage /
  provider_request_id when the provider returns them
- If provider stream ends without terminal marker: raise E_LLM_PROVIDER_DOWN
"""

from dataclasses import dataclass, field
from typing import Any, Literal


@dataclass(frozen=True)
class ToolCall:
    """A tool invocation requested by the model.

    Attributes:
        id: Provider-assigned call id (synthesized when the provider has none)
        name: Tool name
        arguments: Parsed JSON arguments
    """

    id: str
    name: str
    arguments: dict[str, Any]


@dataclass(frozen=True)
class ToolSpec:
    """Tool declaration: name, description and JSON schema of its parameters."""

    name: str
    description: str
    parameters: dict[str, Any]


@dataclass(frozen=True)
class Turn:
    """Provider-agnostic conversation turn.

    Attributes:
        role: One of "system", "user", "assistant", or "tool"
        content: Text content (for tool turns, the JSON-encoded result)
        tool_calls: Calls requested by an assistant turn
        tool_call_id: For tool turns, the call being answered
        tool_name: For tool turns, the tool that produced the result
    """

    role: Literal["system", "user", "assistant", "tool"]
    content: str
    tool_calls: tuple[ToolCall, ...] = ()
    tool_call_id: str | None = None
    tool_name: str | None = None


@dataclass(frozen=True)
class LLMUsage:
    """Token usage from provider response. Any field may be missing."""

    prompt_tokens: int | None
    completion_tokens: int | None
    total_tokens: int | None


@dataclass(frozen=True)
class LLMRequest:
    """Request to LLM adapter.

    Attributes:
        model_name: The model identifier (e.g., "gemini-2.5-flash")
        messages: List of Turn objects (system turn first if present)
        max_tokens: Maximum tokens in the completion
        temperature: Sampling temperature, None uses provider default
        tools: Tools the model may call in this step
    """

    model_name: str
    messages: list[Turn]
    max_tokens: int
    temperature: float | None = None
    tools: list[ToolSpec] = field(default_factory=list)


@dataclass(frozen=True)
class LLMChunk:
    """Single chunk from streaming response.

    Attributes:
        delta_text: New text content in this chunk (may be empty)
        done: Whether this is the final chunk
        tool_calls: Tool calls of this step (terminal chunk only)
        finish_reason: Provider finish reason (terminal chunk only)
        usage: Token usage (terminal chunk only)
        provider_request_id: Provider's request ID (terminal chunk only)
    """

    delta_text: str
    done: bool
    tool_calls: tuple[ToolCall, ...] = ()
    finish_reason: str | None = None
    usage: LLMUsage | None = None
    provider_request_id: str | None = None

    def __post_init__(self):
        """Validate streaming invariants."""
        if not self.done and (self.usage is not None or self.tool_calls):
            raise ValueError("Non-terminal chunks (done=False) must not carry usage or tool calls")
