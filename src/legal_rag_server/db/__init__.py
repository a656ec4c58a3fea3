"""
Database Package

Provides SQLAlchemy async session management and model definitions
for PostgreSQL with pgvector.
"""

from .session import get_async_session, create_session_factory
from .models import (
    Base,
    Document,
    DocumentChunk,
    ChatSession,
    ChatMessage,
    UsageTracking,
    IngestionJob,
)
from .vector_store import ChunkStore
from .usage import UsageTracker

__all__ = [
    "get_async_session",
    "create_session_factory",
    "Base",
    "Document",
    "DocumentChunk",
    "ChatSession",
    "ChatMessage",
    "UsageTracking",
    "IngestionJob",
    "ChunkStore",
    "UsageTracker",
]
