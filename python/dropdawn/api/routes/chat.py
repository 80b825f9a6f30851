"""Chat endpoint.

POST /api/chat streams the assistant reply as Server-Sent Events.

Request-level checks run before the stream starts and use the JSON error
envelope, in this order:
    1. E_UNAUTHENTICATED (401): not temporary and no signed-in viewer
    2. E_UNKNOWN_PROVIDER / E_PROVIDER_NOT_CONFIGURED (400)
    3. E_TEMPORARY_LIMIT_REACHED (429) for temporary chats,
       E_RATE_LIMITED (429) for signed-in users
Once streaming, provider failures arrive as an `error` event followed by `done`.
"""

from typing import Annotated
from uuid import UUID

import httpx
from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session, sessionmaker
from starlette.concurrency import run_in_threadpool

from dropdawn.api.deps import (
    get_http_client,
    get_llm_router,
    get_quota_limiter,
    get_session_factory,
    get_tool_registry,
)
from dropdawn.auth.middleware import Viewer, get_optional_viewer
from dropdawn.config import Settings, get_settings
from dropdawn.errors import ApiError, ApiErrorCode, InvalidRequestError
from dropdawn.logging import get_logger
from dropdawn.schemas.chat import ChatRequest
from dropdawn.services import conversations as conversations_service
from dropdawn.services.chat import SSE_HEADERS, SSE_MEDIA_TYPE, ChatPersistence, stream_chat
from dropdawn.services.llm import (
    LLMRouter,
    PromptTooLargeError,
    Turn,
    render_prompt,
    validate_prompt_size,
)
from dropdawn.services.quota import QuotaLimiter, check_temporary_cap
from dropdawn.tools import ToolContext, ToolRegistry

logger = get_logger(__name__)

router = APIRouter()


def _check_conversation_owner(
    session_factory: sessionmaker[Session], user_id: UUID, conversation_id: UUID
) -> None:
    db = session_factory()
    try:
        conversations_service.get_conversation_for_viewer_or_404(db, user_id, conversation_id)
    finally:
        db.close()


@router.post("/api/chat")
async def chat(
    body: ChatRequest,
    viewer: Annotated[Viewer | None, Depends(get_optional_viewer)],
    settings: Annotated[Settings, Depends(get_settings)],
    llm_router: Annotated[LLMRouter, Depends(get_llm_router)],
    quota: Annotated[QuotaLimiter, Depends(get_quota_limiter)],
    registry: Annotated[ToolRegistry, Depends(get_tool_registry)],
    http_client: Annotated[httpx.AsyncClient, Depends(get_http_client)],
    session_factory: Annotated[sessionmaker[Session], Depends(get_session_factory)],
) -> StreamingResponse:
    """Stream a chat completion with tool calling.

    Errors:
        E_UNAUTHENTICATED (401): Not temporary and not signed in.
        E_UNKNOWN_PROVIDER (400): Provider is not supported.
        E_PROVIDER_NOT_CONFIGURED (400): Provider API key missing or invalid.
        E_INVALID_REQUEST (400): Conversation too long.
        E_CONVERSATION_NOT_FOUND (404): conversationId is not the viewer's.
        E_TEMPORARY_LIMIT_REACHED (429): Temporary chat cap reached.
        E_RATE_LIMITED (429): Message quota for the window used up.
    """
    if not body.is_temporary and viewer is None:
        raise ApiError(ApiErrorCode.E_UNAUTHENTICATED, "Authentication required")

    binding = llm_router.bind(body.provider, body.model, settings)

    history = [Turn(role=m.role, content=m.content) for m in body.messages]
    turns = render_prompt(history)
    try:
        validate_prompt_size(turns)
    except PromptTooLargeError as e:
        raise InvalidRequestError(message="Conversation is too long") from e

    persistence = None
    if body.is_temporary:
        check_temporary_cap(body.messages, settings.temporary_session_message_cap)
    else:
        if body.conversation_id is not None:
            await run_in_threadpool(
                _check_conversation_owner, session_factory, viewer.user_id, body.conversation_id
            )
        await quota.check_and_record(viewer.user_id)

        last_user = next((m.content for m in reversed(body.messages) if m.role == "user"), "")
        persistence = ChatPersistence(
            session_factory=session_factory,
            user_id=viewer.user_id,
            user_message=last_user,
            conversation_id=body.conversation_id,
        )

    tool_ctx = ToolContext(http_client=http_client, settings=settings)

    return StreamingResponse(
        stream_chat(
            router=llm_router,
            binding=binding,
            turns=turns,
            registry=registry,
            tool_ctx=tool_ctx,
            max_steps=settings.chat_max_steps,
            persistence=persistence,
        ),
        media_type=SSE_MEDIA_TYPE,
        headers=SSE_HEADERS,
    )
