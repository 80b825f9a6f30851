"""Conversation history routes.

Routes are transport-only: each calls exactly one service function.
All routes require authentication.
"""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from dropdawn.api.deps import get_db
from dropdawn.auth.middleware import Viewer, get_viewer
from dropdawn.responses import success_response
from dropdawn.services import conversations as conversations_service

router = APIRouter(tags=["conversations"])


@router.get("/conversations")
def list_conversations(
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
    limit: int = Query(default=50, ge=1, le=100, description="Maximum results (1-100)"),
) -> dict:
    """List the viewer's conversations, most recently updated first."""
    conversations = conversations_service.list_conversations(db, viewer.user_id, limit=limit)
    return success_response([c.model_dump(mode="json") for c in conversations])


@router.get("/conversations/{conversation_id}/messages")
def list_messages(
    conversation_id: UUID,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """List messages of a conversation in the order they were written.

    Errors:
        E_CONVERSATION_NOT_FOUND (404): Missing, or owned by someone else.
    """
    messages = conversations_service.list_messages(db, viewer.user_id, conversation_id)
    return success_response([m.model_dump(mode="json") for m in messages])


@router.delete("/conversations/{conversation_id}", status_code=204)
def delete_conversation(
    conversation_id: UUID,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> Response:
    """Delete a conversation and all of its messages.

    Errors:
        E_CONVERSATION_NOT_FOUND (404): Missing, or owned by someone else.
    """
    conversations_service.delete_conversation(db, viewer.user_id, conversation_id)
    return Response(status_code=204)
