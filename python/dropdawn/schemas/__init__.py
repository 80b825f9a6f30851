"""Pydantic schemas for request/response models.

All schemas are re-exported here for convenient imports.
"""

from dropdawn.schemas.chat import ChatMessageIn, ChatRequest
from dropdawn.schemas.conversation import ConversationOut, MessageOut

__all__ = [
    "ChatMessageIn",
    "ChatRequest",
    "ConversationOut",
    "MessageOut",
]
