"""
Retriever

Turns a user query into a ranked list of ``RetrievedChunk``:

1. When web search is requested and the user's plan includes it, web
   results are authoritative as long as there is at least one.
2. Otherwise (or when the web yields nothing) the query is embedded and
   matched against chunks of ready documents that are public or owned by
   the user, with optional type/year filters.

Retrieval never fails a chat turn: an embedding or query failure degrades
to an empty result and the answer proceeds ungrounded.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from ..auth.models import UserContext
from ..core.errors import EmbeddingServiceError, RetrievalDegraded
from ..db.vector_store import ChunkStore
from ..embeddings.embedder import Embedder
from .models import RetrievalResult, RetrievedChunk, SearchFilters, normalize_hits
from .web_search import WebSearchClient

logger = logging.getLogger("legal_rag.retriever")

DEFAULT_SIMILARITY_THRESHOLD = 0.45
DEFAULT_TOP_K = 10


class Retriever:
    def __init__(
        self,
        store: ChunkStore,
        embedder: Embedder,
        web_search: WebSearchClient,
        similarity_threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
        top_k: int = DEFAULT_TOP_K,
    ) -> None:
        self._store = store
        self._embedder = embedder
        self._web_search = web_search
        self.similarity_threshold = similarity_threshold
        self.top_k = top_k

    async def retrieve(
        self,
        query: str,
        user: UserContext,
        filters: Optional[SearchFilters] = None,
        allow_web_search: bool = False,
    ) -> RetrievalResult:
        """
        Return ranked chunks for ``query``.

        Parameters
        ----------
        query : str
            The user's question.
        user : UserContext
            Requesting user; drives document visibility and web entitlement.
        filters : Optional[SearchFilters]
            Equality filters for document retrieval.
        allow_web_search : bool
            Whether the caller asked for web search on this turn.
        """
        if allow_web_search and user.can_search_web:
            web_chunks = await self._search_web(query)
            if web_chunks:
                return RetrievalResult(chunks=web_chunks, source="web_search")

        doc_chunks = await self._search_documents(query, user, filters)
        if doc_chunks:
            return RetrievalResult(chunks=doc_chunks, source="documents")
        return RetrievalResult(chunks=[], source="none")

    async def _search_web(self, query: str) -> List[RetrievedChunk]:
        logger.info("Performing web search for query (%d chars)", len(query))
        results = await self._web_search.search(query)
        return normalize_hits(results)

    async def _search_documents(
        self,
        query: str,
        user: UserContext,
        filters: Optional[SearchFilters],
    ) -> List[RetrievedChunk]:
        try:
            query_embedding = await self._embedder.embed(query)
            matches = await self._store.search(
                query_embedding,
                user_id=user.user_id,
                threshold=self.similarity_threshold,
                k=self.top_k,
                filters=filters,
            )
        except (EmbeddingServiceError, RetrievalDegraded) as exc:
            logger.warning("Document retrieval degraded, continuing without context: %s", exc)
            return []

        chunks = [
            chunk
            for chunk in normalize_hits(matches)
            if chunk.similarity > self.similarity_threshold
        ]
        chunks.sort(key=lambda chunk: chunk.similarity, reverse=True)
        chunks = chunks[: self.top_k]

        if chunks:
            logger.info("Found %d relevant document chunks", len(chunks))
        return chunks
