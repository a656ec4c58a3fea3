"""
Session Store

Database-backed conversation storage for chat sessions.

This module tracks multi-turn conversations: it creates sessions on first
use, appends messages, keeps the per-session counters current and serves
the recent history fed back to the language model.

Design choices
--------------
- Messages are immutable once written; regeneration deletes and recreates.
- ``message_count`` / ``last_message_at`` updates are last-writer-wins.
- History reads are copy-on-read dicts, so callers cannot mutate ORM state.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Dict, List, Optional, Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.errors import SessionNotFound
from ..db.models import ChatMessage, ChatSession, ChatRole, DEFAULT_SESSION_TITLE

TITLE_LENGTH = 50


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def derive_title(message: str) -> str:
    """Session title taken from the first user message."""
    text = " ".join(message.split())
    if len(text) > TITLE_LENGTH:
        return text[:TITLE_LENGTH] + "..."
    return text or DEFAULT_SESSION_TITLE


class SessionStore:
    """
    Chat sessions and messages persisted through an ``AsyncSession``.
    """

    def __init__(self, session: AsyncSession) -> None:
        """
        Parameters
        ----------
        session : AsyncSession
            SQLAlchemy async session for database operations.
        """
        self._session = session

    async def commit(self) -> None:
        await self._session.commit()

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    async def get_session(self, session_id: uuid.UUID) -> Optional[ChatSession]:
        return await self._session.get(ChatSession, session_id)

    async def ensure_session(
        self,
        session_id: uuid.UUID,
        user_id: uuid.UUID,
        first_message: str,
    ) -> ChatSession:
        """
        Return the caller's session, creating it if it does not exist yet.

        Raises
        ------
        SessionNotFound
            If the session exists but belongs to another user.
        """
        chat_session = await self.get_session(session_id)

        if chat_session is None:
            chat_session = ChatSession(
                id=session_id,
                user_id=user_id,
                title=derive_title(first_message),
                message_count=0,
                is_archived=False,
            )
            self._session.add(chat_session)
            await self._session.flush()
            return chat_session

        if chat_session.user_id != user_id:
            raise SessionNotFound("Chat session not found.")

        return chat_session

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    async def add_message(
        self,
        chat_session: ChatSession,
        user_id: uuid.UUID,
        role: ChatRole,
        message: str,
        sources: Optional[List[Dict[str, Any]]] = None,
        tokens_used: int = 0,
        model_used: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> ChatMessage:
        """
        Append a message and update the session counters.

        A session still carrying the generic title is renamed after its
        first user message.
        """
        now = _utcnow()
        record = ChatMessage(
            id=uuid.uuid4(),
            session_id=chat_session.id,
            user_id=user_id,
            role=role.value,
            message=message,
            sources=sources if sources is not None else [],
            tokens_used=tokens_used,
            model_used=model_used,
            metadata_=metadata,
            created_at=now,
        )
        self._session.add(record)

        chat_session.message_count = (chat_session.message_count or 0) + 1
        chat_session.last_message_at = now
        if role == ChatRole.USER and chat_session.title in (None, "", DEFAULT_SESSION_TITLE):
            chat_session.title = derive_title(message)

        await self._session.flush()
        return record

    async def get_message(self, message_id: uuid.UUID) -> Optional[ChatMessage]:
        return await self._session.get(ChatMessage, message_id)

    async def delete_message(self, message: ChatMessage) -> None:
        await self._session.delete(message)
        await self._session.flush()

    async def find_preceding_user_message(
        self,
        session_id: uuid.UUID,
        before: datetime,
    ) -> Optional[ChatMessage]:
        result = await self._session.execute(
            select(ChatMessage)
            .where(
                ChatMessage.session_id == session_id,
                ChatMessage.role == ChatRole.USER.value,
                ChatMessage.created_at < before,
            )
            .order_by(ChatMessage.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_history(
        self,
        session_id: uuid.UUID,
        exclude_message_id: Optional[uuid.UUID] = None,
        limit: int = 10,
    ) -> List[Dict[str, str]]:
        """
        Return the most recent ``limit`` messages, oldest first, as
        ``{"role", "content"}`` dicts.
        """
        stmt = select(ChatMessage).where(ChatMessage.session_id == session_id)
        if exclude_message_id is not None:
            stmt = stmt.where(ChatMessage.id != exclude_message_id)
        stmt = stmt.order_by(ChatMessage.created_at.desc()).limit(limit)

        result = await self._session.execute(stmt)
        recent = list(result.scalars().all())
        recent.reverse()

        return [{"role": m.role, "content": m.message} for m in recent]

    async def list_messages(self, session_id: uuid.UUID) -> List[ChatMessage]:
        result = await self._session.execute(
            select(ChatMessage)
            .where(ChatMessage.session_id == session_id)
            .order_by(ChatMessage.created_at)
        )
        return list(result.scalars().all())
