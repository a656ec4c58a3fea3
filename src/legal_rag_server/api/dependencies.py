"""
Request-scoped dependency providers.

Long-lived collaborators (HTTP clients, ingestion queue) are built once in
the application lifespan and stored on ``app.state``; the providers below
hand them out and wrap the per-request database session in the stores and
services that need it. Tests replace any of them through
``app.dependency_overrides``.
"""

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..db import get_async_session, ChunkStore, UsageTracker
from ..documents.service import DocumentService
from ..embeddings.embedder import Embedder
from ..ingestion.queue import IngestionQueue
from ..llm.client import LLMClient
from ..retrieval.retriever import Retriever
from ..retrieval.web_search import WebSearchClient
from ..sessions.store import SessionStore
from ..chat.service import ChatService


# ---------------------------------------------------------------------
# Process-wide collaborators
# ---------------------------------------------------------------------

def get_embedder(request: Request) -> Embedder:
    return request.app.state.embedder


def get_llm_client(request: Request) -> LLMClient:
    return request.app.state.llm_client


def get_web_search(request: Request) -> WebSearchClient:
    return request.app.state.web_search


def get_ingestion_queue(request: Request) -> IngestionQueue:
    return request.app.state.ingestion_queue


# ---------------------------------------------------------------------
# Per-request stores and services
# ---------------------------------------------------------------------

def get_chunk_store(session: AsyncSession = Depends(get_async_session)) -> ChunkStore:
    return ChunkStore(session)


def get_session_store(session: AsyncSession = Depends(get_async_session)) -> SessionStore:
    return SessionStore(session)


def get_usage_tracker(session: AsyncSession = Depends(get_async_session)) -> UsageTracker:
    return UsageTracker(session)


def get_document_service(session: AsyncSession = Depends(get_async_session)) -> DocumentService:
    return DocumentService(
        session,
        upload_dir=settings.upload_dir,
        default_max_documents=settings.default_max_documents,
    )


def get_retriever(
    store: ChunkStore = Depends(get_chunk_store),
    embedder: Embedder = Depends(get_embedder),
    web_search: WebSearchClient = Depends(get_web_search),
) -> Retriever:
    return Retriever(
        store,
        embedder,
        web_search,
        similarity_threshold=settings.similarity_threshold,
        top_k=settings.retrieval_top_k,
    )


def get_chat_service(
    sessions: SessionStore = Depends(get_session_store),
    usage: UsageTracker = Depends(get_usage_tracker),
    retriever: Retriever = Depends(get_retriever),
    llm: LLMClient = Depends(get_llm_client),
) -> ChatService:
    return ChatService(
        sessions,
        usage,
        retriever,
        llm,
        history_limit=settings.history_limit,
    )
