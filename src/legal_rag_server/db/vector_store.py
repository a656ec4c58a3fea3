"""
Chunk Store

PostgreSQL + pgvector based storage and similarity search for document
chunks. Vector search is a first-class, parameterized operation here so
that no SQL or pgvector syntax leaks into the retrieval layer.
"""

from __future__ import annotations

import logging
import uuid
from typing import List, Optional, Dict, Any

from sqlalchemy import Select, select, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from .models import Document, DocumentChunk, DocumentStatus
from ..core.errors import RetrievalDegraded
from ..retrieval.models import DocumentChunkResult, SearchFilters

logger = logging.getLogger("legal_rag.chunk_store")


class ChunkStore:
    """
    PostgreSQL-backed chunk store using pgvector for similarity search.
    """

    def __init__(self, session: AsyncSession) -> None:
        """
        Initialize with an async database session.

        Parameters
        ----------
        session : AsyncSession
            SQLAlchemy async session for database operations.
        """
        self._session = session

    async def commit(self) -> None:
        """
        Commit the current transaction.
        """
        await self._session.commit()

    async def add_chunk(
        self,
        document_id: uuid.UUID,
        content: str,
        embedding: List[float],
        chunk_index: int,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> DocumentChunk:
        """
        Persist a single embedded chunk.

        Parameters
        ----------
        document_id : uuid.UUID
            Owning document.
        content : str
            Chunk text.
        embedding : List[float]
            Vector produced by the embedding client in use.
        chunk_index : int
            0-based position among the document's stored chunks.
        metadata : Optional[Dict[str, Any]]
            Free-form chunk metadata.

        Returns
        -------
        DocumentChunk
            The flushed row.
        """
        chunk = DocumentChunk(
            document_id=document_id,
            content=content,
            embedding=embedding,
            chunk_index=chunk_index,
            metadata_=metadata or {},
        )
        self._session.add(chunk)
        await self._session.flush()
        return chunk

    @staticmethod
    def build_search_statement(
        query_embedding: List[float],
        user_id: uuid.UUID,
        threshold: float,
        k: int,
        filters: Optional[SearchFilters] = None,
    ) -> Select:
        """
        Build the cosine-similarity select for a query vector.

        Only chunks of ``ready`` documents that are public or owned by
        ``user_id`` are eligible; similarity must strictly exceed
        ``threshold``.
        """
        # pgvector's <=> operator; similarity = 1 - cosine distance
        cosine_distance = DocumentChunk.embedding.cosine_distance(query_embedding)
        similarity = (1 - cosine_distance).label("similarity")

        stmt = (
            select(
                DocumentChunk.id.label("chunk_id"),
                Document.id.label("document_id"),
                Document.title.label("document_title"),
                Document.type.label("document_type"),
                Document.citation.label("document_citation"),
                DocumentChunk.content.label("chunk_content"),
                similarity,
                DocumentChunk.metadata_.label("metadata"),
            )
            .join(Document, DocumentChunk.document_id == Document.id)
            .where(
                (1 - cosine_distance) > threshold,
                or_(Document.is_public.is_(True), Document.uploaded_by == user_id),
                Document.status == DocumentStatus.READY.value,
            )
            .order_by(cosine_distance)
            .limit(k)
        )

        if filters and filters.document_type:
            stmt = stmt.where(Document.type == filters.document_type)
        if filters and filters.year:
            stmt = stmt.where(Document.year == filters.year)

        return stmt

    async def search(
        self,
        query_embedding: List[float],
        user_id: uuid.UUID,
        threshold: float,
        k: int,
        filters: Optional[SearchFilters] = None,
    ) -> List[DocumentChunkResult]:
        """
        Search for chunks similar to the query vector.

        Parameters
        ----------
        query_embedding : List[float]
            Query vector.
        user_id : uuid.UUID
            Requesting user; restricts results to public or owned documents.
        threshold : float
            Exclusive lower bound on similarity.
        k : int
            Maximum number of results.
        filters : Optional[SearchFilters]
            Optional document type / year equality filters.

        Returns
        -------
        List[DocumentChunkResult]
            Matches ordered by descending similarity.

        Raises
        ------
        RetrievalDegraded
            If the database query fails.
        """
        stmt = self.build_search_statement(query_embedding, user_id, threshold, k, filters)

        # A failed query only rolls back the savepoint; the caller's
        # transaction stays usable for the rest of the chat turn.
        try:
            async with self._session.begin_nested():
                result = await self._session.execute(stmt)
                rows = result.all()
        except SQLAlchemyError as exc:
            logger.warning("Similarity query failed: %s", exc)
            raise RetrievalDegraded(f"Similarity query failed: {type(exc).__name__}") from exc

        return [
            DocumentChunkResult(
                chunk_id=row.chunk_id,
                document_id=row.document_id,
                document_title=row.document_title,
                document_type=row.document_type,
                document_citation=row.document_citation,
                chunk_content=row.chunk_content,
                similarity=float(row.similarity or 0.0),
                metadata=row.metadata,
            )
            for row in rows
        ]
