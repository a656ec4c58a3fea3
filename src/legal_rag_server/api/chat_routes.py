"""
Chat Routes: Retrieval-Augmented Legal Q&A

Thin HTTP wrapper around ``ChatService``. Failures of a chat turn are
``ChatTurnError`` subclasses and are rendered by the global
``chat_turn_error_handler`` with their ``kind`` discriminator.

Security Model
--------------
- Every route requires a verified bearer token (``verify_access_token``).
- Sessions and messages are only ever touched on behalf of their owner.
"""

import uuid

from fastapi import APIRouter, Depends, status
from typing import Annotated, List

from .models import ChatRequest, RegenerateRequest, ChatMessageResponse
from .dependencies import get_chat_service, get_session_store
from ..auth.models import UserContext
from ..auth.security import verify_access_token
from ..chat.service import ChatService
from ..core.errors import SessionNotFound
from ..sessions.store import SessionStore

router = APIRouter(prefix="/chat", tags=["chat"])


@router.post(
    "",
    response_model=ChatMessageResponse,
    status_code=status.HTTP_200_OK,
    summary="Ask the legal research assistant",
)
async def chat(
    req: ChatRequest,
    user: Annotated[UserContext, Depends(verify_access_token)],
    service: Annotated[ChatService, Depends(get_chat_service)],
) -> ChatMessageResponse:
    """
    Run one chat turn and return the persisted assistant message.
    """
    assistant = await service.send(
        user,
        req.session_id,
        req.message,
        filters=req.filters,
        web_search=req.web_search,
    )
    return ChatMessageResponse.from_row(assistant)


@router.post(
    "/regenerate",
    response_model=ChatMessageResponse,
    status_code=status.HTTP_200_OK,
    summary="Regenerate an assistant message",
)
async def regenerate(
    req: RegenerateRequest,
    user: Annotated[UserContext, Depends(verify_access_token)],
    service: Annotated[ChatService, Depends(get_chat_service)],
) -> ChatMessageResponse:
    assistant = await service.regenerate(
        user,
        req.session_id,
        req.message_id,
        filters=req.filters,
        web_search=req.web_search,
    )
    return ChatMessageResponse.from_row(assistant)


@router.get(
    "/sessions/{session_id}/messages",
    response_model=List[ChatMessageResponse],
    summary="List the messages of a chat session",
)
async def list_session_messages(
    session_id: uuid.UUID,
    user: Annotated[UserContext, Depends(verify_access_token)],
    sessions: Annotated[SessionStore, Depends(get_session_store)],
) -> List[ChatMessageResponse]:
    chat_session = await sessions.get_session(session_id)
    if chat_session is None or chat_session.user_id != user.user_id:
        raise SessionNotFound("Chat session not found.")

    messages = await sessions.list_messages(session_id)
    return [ChatMessageResponse.from_row(m) for m in messages]
