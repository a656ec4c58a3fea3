"""
Chat Turn Service

Runs one chat turn end to end:

    quota check -> persist user message -> retrieval (web | documents | none)
    -> context build -> generation (primary model, maybe baseline fallback)
    -> usage increment + persist assistant message

The user message is committed before retrieval starts, so a failed turn
still shows the question in history. Nothing is written for the assistant
until generation has succeeded.
"""

from __future__ import annotations

import logging
import uuid
from typing import Optional

from fastapi import status

from ..auth.models import UserContext
from ..core.errors import MessageNotFound, RegenerationNotAllowed, SessionNotFound
from ..db.models import ChatMessage, ChatRole, ChatSession
from ..db.usage import UsageTracker, CHAT_MESSAGE_FEATURE
from ..llm.client import LLMClient
from ..retrieval.models import SearchFilters
from ..retrieval.retriever import Retriever
from ..sessions.store import SessionStore
from .context import build_messages, format_sources, DEFAULT_HISTORY_LIMIT

logger = logging.getLogger("legal_rag.chat")


class ChatService:
    def __init__(
        self,
        sessions: SessionStore,
        usage: UsageTracker,
        retriever: Retriever,
        llm: LLMClient,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
    ) -> None:
        self._sessions = sessions
        self._usage = usage
        self._retriever = retriever
        self._llm = llm
        self.history_limit = history_limit

    async def send(
        self,
        user: UserContext,
        session_id: uuid.UUID,
        message: str,
        filters: Optional[SearchFilters] = None,
        web_search: bool = False,
    ) -> ChatMessage:
        """
        Answer a new user message and return the stored assistant message.
        """
        await self._usage.check_quota(user)

        chat_session = await self._sessions.ensure_session(session_id, user.user_id, message)
        user_message = await self._sessions.add_message(
            chat_session,
            user.user_id,
            ChatRole.USER,
            message,
        )
        await self._sessions.commit()

        return await self._respond(
            user,
            chat_session,
            message,
            exclude_message_id=user_message.id,
            filters=filters,
            web_search=web_search,
        )

    async def regenerate(
        self,
        user: UserContext,
        session_id: uuid.UUID,
        message_id: uuid.UUID,
        filters: Optional[SearchFilters] = None,
        web_search: bool = False,
    ) -> ChatMessage:
        """
        Replace an assistant message with a freshly generated answer to the
        user message that preceded it.
        """
        target = await self._sessions.get_message(message_id)
        if target is None or target.session_id != session_id:
            raise MessageNotFound("Message not found.")
        if target.user_id != user.user_id:
            raise RegenerationNotAllowed("Unauthorized", status_code=status.HTTP_403_FORBIDDEN)
        if target.role != ChatRole.ASSISTANT.value:
            raise RegenerationNotAllowed("Can only regenerate assistant messages")

        prompt = await self._sessions.find_preceding_user_message(session_id, target.created_at)
        if prompt is None:
            raise RegenerationNotAllowed("No preceding user message found")

        chat_session = await self._sessions.get_session(session_id)
        if chat_session is None:
            raise SessionNotFound("Chat session not found.")

        await self._usage.check_quota(user)

        await self._sessions.delete_message(target)
        await self._sessions.commit()
        logger.info("Regenerating assistant message %s in session %s", message_id, session_id)

        return await self._respond(
            user,
            chat_session,
            prompt.message,
            exclude_message_id=prompt.id,
            filters=filters,
            web_search=web_search,
        )

    async def _respond(
        self,
        user: UserContext,
        chat_session: ChatSession,
        message: str,
        exclude_message_id: uuid.UUID,
        filters: Optional[SearchFilters],
        web_search: bool,
    ) -> ChatMessage:
        retrieval = await self._retriever.retrieve(
            message,
            user,
            filters=filters,
            allow_web_search=web_search,
        )

        history = await self._sessions.get_history(
            chat_session.id,
            exclude_message_id=exclude_message_id,
            limit=self.history_limit,
        )
        messages = build_messages(
            retrieval.chunks,
            history,
            message,
            used_web_search=retrieval.used_web_search,
            history_limit=self.history_limit,
        )

        model_preference = user.plan.ai_model if user.plan else None
        generation = await self._llm.generate(messages, model_preference)

        if not user.is_admin:
            await self._usage.record(user.user_id, CHAT_MESSAGE_FEATURE)

        assistant = await self._sessions.add_message(
            chat_session,
            user.user_id,
            ChatRole.ASSISTANT,
            generation.text,
            sources=format_sources(retrieval.chunks),
            tokens_used=generation.tokens_used,
            model_used=generation.model_used,
            metadata={
                "rag_enabled": bool(retrieval.chunks),
                "chunks_retrieved": len(retrieval.chunks),
                "retrieval_source": retrieval.source,
                "model_fallback": generation.fell_back,
            },
        )
        await self._sessions.commit()
        return assistant
