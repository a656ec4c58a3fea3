"""
Retrieval Data Models

Retrieval produces results from two very different sources: rows from the
chunk store and hits from the web-search provider. Each source has its own
model, tagged by ``kind``, and both are normalized into ``RetrievedChunk``
at the retrieval boundary. Context assembly and source formatting only ever
see ``RetrievedChunk``.
"""

from __future__ import annotations

import uuid
from typing import Any, Dict, List, Literal, Optional, Sequence, Union

from pydantic import BaseModel, Field, ConfigDict


WEB_SEARCH_SOURCE = "web_search"
WEB_DOCUMENT_TYPE = "web_page"
DEFAULT_WEB_SCORE = 0.8


class RetrievedChunk(BaseModel):
    """
    The common shape consumed by the context assembler.

    This model is the authoritative schema for:
    - Prompt context blocks
    - Chat message sources
    - The direct search endpoint
    """

    chunk_id: str = Field(..., min_length=1)
    document_id: str = Field(..., min_length=1)
    document_title: str
    document_type: str
    document_citation: Optional[str] = None
    chunk_content: str
    similarity: float = Field(..., ge=0.0)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(extra="forbid", frozen=True)


class DocumentChunkResult(BaseModel):
    """A chunk-store row joined with its parent document."""

    kind: Literal["document"] = "document"
    chunk_id: uuid.UUID
    document_id: uuid.UUID
    document_title: str
    document_type: str
    document_citation: Optional[str] = None
    chunk_content: str
    similarity: float
    metadata: Optional[Dict[str, Any]] = None

    model_config = ConfigDict(extra="forbid", frozen=True)

    def to_retrieved(self) -> RetrievedChunk:
        return RetrievedChunk(
            chunk_id=str(self.chunk_id),
            document_id=str(self.document_id),
            document_title=self.document_title,
            document_type=self.document_type,
            document_citation=self.document_citation,
            chunk_content=self.chunk_content,
            similarity=max(0.0, float(self.similarity)),
            metadata=dict(self.metadata or {}),
        )


class WebResult(BaseModel):
    """A single hit returned by the web-search provider."""

    kind: Literal["web"] = "web"
    title: str = ""
    url: str
    content: str = ""
    score: Optional[float] = None

    model_config = ConfigDict(extra="ignore", frozen=True)

    def to_retrieved(self, position: int) -> RetrievedChunk:
        # A missing or zero provider score falls back to a high default
        return RetrievedChunk(
            chunk_id=f"web-{position}",
            document_id=f"web-doc-{position}",
            document_title=self.title,
            document_type=WEB_DOCUMENT_TYPE,
            document_citation=self.url,
            chunk_content=self.content,
            similarity=self.score or DEFAULT_WEB_SCORE,
            metadata={"url": self.url, "source": WEB_SEARCH_SOURCE},
        )


RetrievalHit = Union[DocumentChunkResult, WebResult]


def normalize_hits(hits: Sequence[RetrievalHit]) -> List[RetrievedChunk]:
    """Convert source-specific hits to ``RetrievedChunk``, keeping their order."""
    chunks: List[RetrievedChunk] = []
    for position, hit in enumerate(hits):
        if hit.kind == "web":
            chunks.append(hit.to_retrieved(position))
        else:
            chunks.append(hit.to_retrieved())
    return chunks


class SearchFilters(BaseModel):
    """Optional equality filters applied to document retrieval."""

    document_type: Optional[str] = None
    year: Optional[int] = None

    model_config = ConfigDict(extra="forbid")


RetrievalSource = Literal["web_search", "documents", "none"]


class RetrievalResult(BaseModel):
    """Ranked chunks plus where they came from."""

    chunks: List[RetrievedChunk] = Field(default_factory=list)
    source: RetrievalSource = "none"

    @property
    def used_web_search(self) -> bool:
        return self.source == WEB_SEARCH_SOURCE
