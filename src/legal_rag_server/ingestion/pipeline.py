"""
Document ingestion pipeline.

Takes one uploaded document from ``processing`` to ``ready`` (or ``error``):

    extract -> chunk -> embed each chunk -> persist each chunk -> ready

Extraction or persistence failures mark the whole document ``error``.
An embedding failure only loses that chunk: the rest are still stored and
the document still becomes ``ready``, possibly with gaps.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import List

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.errors import DocumentNotFound, EmbeddingServiceError
from ..db.models import Document, DocumentChunk, DocumentStatus
from ..db.vector_store import ChunkStore
from ..embeddings.embedder import Embedder
from .chunker import chunk_text, DEFAULT_CHUNK_SIZE, DEFAULT_OVERLAP
from .extractor import extract, PLAIN_TEXT, DEFAULT_MIN_PDF_TEXT_LENGTH

logger = logging.getLogger("legal_rag.ingestion")


@dataclass
class IngestionOutcome:
    document_id: uuid.UUID
    status: DocumentStatus
    chunks_total: int = 0
    chunks_stored: int = 0


class IngestionPipeline:
    """
    Runs the ingestion state machine for one document at a time.

    Chunks are embedded and stored sequentially so memory use and API burst
    rate stay bounded; independent documents are handled by independent
    pipeline runs.
    """

    def __init__(
        self,
        session: AsyncSession,
        store: ChunkStore,
        embedder: Embedder,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        overlap: int = DEFAULT_OVERLAP,
        min_pdf_text_length: int = DEFAULT_MIN_PDF_TEXT_LENGTH,
    ) -> None:
        self._session = session
        self._store = store
        self._embedder = embedder
        self.chunk_size = chunk_size
        self.overlap = overlap
        self.min_pdf_text_length = min_pdf_text_length

    async def process(self, document_id: uuid.UUID) -> IngestionOutcome:
        """
        Ingest the stored file behind ``document_id``.

        Raises
        ------
        DocumentNotFound
            If the document row no longer exists.
        Exception
            Whatever aborted extraction or persistence, after the document
            has been marked ``error``.
        """
        document = await self._session.get(Document, document_id)
        if document is None:
            raise DocumentNotFound(f"Document {document_id} not found")

        logger.info("Processing document %s", document_id)

        try:
            content = await self._extract(document)
            document.content = content
            await self._clear_partial_chunks(document_id)
            await self._session.commit()

            chunks = chunk_text(content, self.chunk_size, self.overlap)
            stored = await self._embed_and_store(document_id, chunks)

            document.status = DocumentStatus.READY.value
            await self._session.commit()
        except Exception:
            logger.exception("Error processing document %s", document_id)
            await self._session.rollback()
            document.status = DocumentStatus.ERROR.value
            await self._session.commit()
            raise

        if stored < len(chunks):
            logger.warning(
                "Document %s ready with %d of %d chunks embedded",
                document_id,
                stored,
                len(chunks),
            )
        else:
            logger.info("Document %s processed: %d chunks", document_id, stored)

        return IngestionOutcome(
            document_id=document_id,
            status=DocumentStatus.READY,
            chunks_total=len(chunks),
            chunks_stored=stored,
        )

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    async def _extract(self, document: Document) -> str:
        if not document.file_url:
            raise FileNotFoundError(f"Document {document.id} has no stored file")

        mime_type = (document.metadata_ or {}).get("mime_type", PLAIN_TEXT)
        data = await asyncio.to_thread(Path(document.file_url).read_bytes)
        return await extract(data, mime_type, self.min_pdf_text_length)

    async def _clear_partial_chunks(self, document_id: uuid.UUID) -> None:
        # Leftovers of an interrupted run; never retrievable since the
        # document has not reached ready.
        await self._session.execute(
            delete(DocumentChunk).where(DocumentChunk.document_id == document_id)
        )

    async def _embed_and_store(self, document_id: uuid.UUID, chunks: List[str]) -> int:
        stored = 0
        for position, chunk in enumerate(chunks):
            try:
                embedding = await self._embedder.embed(chunk)
            except EmbeddingServiceError as exc:
                logger.error(
                    "Embedding failed for chunk %d of document %s: %s",
                    position,
                    document_id,
                    exc,
                )
                continue

            # chunk_index stays contiguous even when earlier chunks were skipped
            await self._store.add_chunk(
                document_id=document_id,
                content=chunk,
                embedding=embedding,
                chunk_index=stored,
                metadata={"position": position},
            )
            await self._store.commit()
            stored += 1

        return stored
