"""Conversation and Message Pydantic schemas."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class ConversationOut(BaseModel):
    """Response schema for a conversation owned by the viewer."""

    id: UUID
    title: str
    message_count: int
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class MessageOut(BaseModel):
    """Response schema for a message.

    Messages are ordered by seq within a conversation. tool_results is only
    set on assistant messages that invoked tools.
    """

    id: UUID
    seq: int
    role: str
    content: str
    tool_results: list[dict[str, Any]] | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
