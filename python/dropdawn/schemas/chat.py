"""Chat request schemas.

The wire format uses camelCase field names; Python code uses snake_case.
"""

from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

CHAT_ROLES = Literal["user", "assistant", "system"]


class ChatMessageIn(BaseModel):
    """One message of the conversation history sent by the client."""

    role: CHAT_ROLES
    content: str

    model_config = ConfigDict(extra="ignore")


class ChatRequest(BaseModel):
    """Request body for POST /api/chat.

    provider is kept as a plain string so that an unknown provider is
    reported as E_UNKNOWN_PROVIDER rather than a schema error.
    """

    messages: list[ChatMessageIn] = Field(..., min_length=1)
    provider: str
    model: str | None = Field(default=None, max_length=200)
    is_temporary: bool = Field(default=False, alias="isTemporary")
    conversation_id: UUID | None = Field(default=None, alias="conversationId")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")
