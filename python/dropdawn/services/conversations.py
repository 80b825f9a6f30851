"""Conversation store service layer.

All operations:
- Enforce owner-only access
- Use E_CONVERSATION_NOT_FOUND for both missing and foreign conversations (prevent probing)

Functions are synchronous; async callers go through run_in_threadpool.
"""

from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from dropdawn.db.models import Conversation, Message, MessageRole
from dropdawn.db.session import transaction
from dropdawn.errors import ApiErrorCode, InvalidRequestError, NotFoundError
from dropdawn.logging import get_logger
from dropdawn.schemas.conversation import ConversationOut, MessageOut

logger = get_logger(__name__)

TITLE_MAX_CHARS = 80
DEFAULT_LIMIT = 50
MAX_LIMIT = 100


def make_title(text: str) -> str:
    """Derive a conversation title from the first user message."""
    title = " ".join(text.split())
    if not title:
        return "New chat"
    return title[:TITLE_MAX_CHARS]


def get_conversation_for_viewer_or_404(
    db: Session, viewer_id: UUID, conversation_id: UUID
) -> Conversation:
    """Load conversation and verify ownership.

    Raises:
        NotFoundError(E_CONVERSATION_NOT_FOUND): If conversation doesn't exist
            OR viewer is not the owner.
    """
    conversation = db.get(Conversation, conversation_id)
    if conversation is None or conversation.user_id != viewer_id:
        raise NotFoundError(ApiErrorCode.E_CONVERSATION_NOT_FOUND, "Conversation not found")
    return conversation


def create_conversation(db: Session, user_id: UUID, title: str) -> UUID:
    """Create an empty conversation and return its id."""
    conversation = Conversation(user_id=user_id, title=make_title(title), next_seq=1)
    with transaction(db):
        db.add(conversation)
        db.flush()
    logger.info("conversation.created", conversation_id=str(conversation.id))
    return conversation.id


def append_message(
    db: Session,
    conversation_id: UUID,
    role: str,
    content: str,
    tool_results: list[dict[str, Any]] | None = None,
) -> UUID:
    """Append a message to a conversation and bump its updated_at.

    Raises:
        InvalidRequestError: If role is not a persisted role.
        NotFoundError(E_CONVERSATION_NOT_FOUND): If the conversation is gone.
    """
    try:
        role = MessageRole(role).value
    except ValueError:
        raise InvalidRequestError(message=f"Invalid message role: {role}") from None

    with transaction(db):
        conversation = db.get(Conversation, conversation_id, with_for_update=True)
        if conversation is None:
            raise NotFoundError(ApiErrorCode.E_CONVERSATION_NOT_FOUND, "Conversation not found")

        message = Message(
            conversation_id=conversation_id,
            seq=conversation.next_seq,
            role=role,
            content=content,
            tool_results=tool_results or None,
        )
        conversation.next_seq += 1
        conversation.updated_at = datetime.now(UTC)
        db.add(message)
        db.flush()

    return message.id


def list_conversations(
    db: Session, user_id: UUID, limit: int = DEFAULT_LIMIT
) -> list[ConversationOut]:
    """List the user's conversations, most recently updated first."""
    limit = min(max(limit, 1), MAX_LIMIT)
    message_count = (
        select(func.count())
        .select_from(Message)
        .where(Message.conversation_id == Conversation.id)
        .scalar_subquery()
    )
    rows = db.execute(
        select(Conversation, message_count)
        .where(Conversation.user_id == user_id)
        .order_by(Conversation.updated_at.desc(), Conversation.id.desc())
        .limit(limit)
    ).all()

    return [
        ConversationOut(
            id=conversation.id,
            title=conversation.title,
            message_count=count,
            created_at=conversation.created_at,
            updated_at=conversation.updated_at,
        )
        for conversation, count in rows
    ]


def list_messages(db: Session, user_id: UUID, conversation_id: UUID) -> list[MessageOut]:
    """List messages of an owned conversation in creation order.

    Raises:
        NotFoundError(E_CONVERSATION_NOT_FOUND): If conversation doesn't exist
            or user is not the owner.
    """
    get_conversation_for_viewer_or_404(db, user_id, conversation_id)

    messages = db.scalars(
        select(Message).where(Message.conversation_id == conversation_id).order_by(Message.seq)
    ).all()
    return [MessageOut.model_validate(message) for message in messages]


def delete_conversation(db: Session, user_id: UUID, conversation_id: UUID) -> None:
    """Delete an owned conversation; its messages go with it.

    Raises:
        NotFoundError(E_CONVERSATION_NOT_FOUND): If conversation doesn't exist
            or user is not the owner.
    """
    get_conversation_for_viewer_or_404(db, user_id, conversation_id)

    with transaction(db):
        db.execute(delete(Message).where(Message.conversation_id == conversation_id))
        db.execute(delete(Conversation).where(Conversation.id == conversation_id))

    logger.info("conversation.deleted", conversation_id=str(conversation_id))


def record_exchange(
    db: Session,
    user_id: UUID,
    conversation_id: UUID | None,
    user_content: str,
    assistant_content: str,
    tool_results: list[dict[str, Any]] | None = None,
) -> UUID:
    """Persist one user turn and the assistant reply.

    Creates the conversation (titled from the user message) when
    conversation_id is None.

    Returns:
        The conversation id.

    Raises:
        NotFoundError(E_CONVERSATION_NOT_FOUND): If conversation_id is foreign or gone.
    """
    if conversation_id is None:
        conversation_id = create_conversation(db, user_id, user_content)
    else:
        get_conversation_for_viewer_or_404(db, user_id, conversation_id)

    append_message(db, conversation_id, MessageRole.user.value, user_content)
    append_message(
        db, conversation_id, MessageRole.assistant.value, assistant_content, tool_results
    )
    return conversation_id
