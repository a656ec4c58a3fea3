"""
API Models for the legal research server

Pydantic models used for request/response validation across the chat,
search, document and usage endpoints.

Design Goals
------------
- Strong typing
- Safe defaults (no shared mutable state)
- ORM rows are converted here, never returned directly
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import List, Optional, Dict, Any, Literal

from pydantic import BaseModel, Field, ConfigDict

from ..db.models import DocumentType
from ..retrieval.models import RetrievedChunk, RetrievalSource, SearchFilters


class OperationResult(BaseModel):
    """
    Standardized mutation operation result.
    Used for create/update/delete-style endpoints.
    """
    status: Literal["updated", "deleted", "created", "queued", "ok"]
    count: Optional[int] = Field(default=None, ge=0)
    details: Optional[Dict[str, Any]] = None

    model_config = ConfigDict(extra="forbid")


# ---------------------------------------------------------------------
# Chat Models
# ---------------------------------------------------------------------

class ChatRequest(BaseModel):
    """
    One chat turn. The session is created on first use.
    """
    message: str = Field(..., min_length=1)
    session_id: uuid.UUID
    filters: Optional[SearchFilters] = None
    web_search: bool = False

    model_config = ConfigDict(extra="forbid")


class RegenerateRequest(BaseModel):
    message_id: uuid.UUID
    session_id: uuid.UUID
    filters: Optional[SearchFilters] = None
    web_search: bool = False

    model_config = ConfigDict(extra="forbid")


class ChatMessageResponse(BaseModel):
    """
    A persisted chat message as returned to the client.
    """
    id: uuid.UUID
    session_id: uuid.UUID
    role: str
    message: str
    sources: List[Dict[str, Any]] = Field(default_factory=list)
    tokens_used: int = 0
    model_used: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def from_row(cls, row: Any) -> "ChatMessageResponse":
        return cls(
            id=row.id,
            session_id=row.session_id,
            role=row.role,
            message=row.message,
            sources=list(row.sources or []),
            tokens_used=row.tokens_used or 0,
            model_used=row.model_used,
            metadata=row.metadata_,
            created_at=row.created_at,
        )


# ---------------------------------------------------------------------
# Search Models
# ---------------------------------------------------------------------

class SearchRequest(BaseModel):
    """
    Direct retrieval request.
    """
    query: str = Field(..., min_length=1)
    filters: Optional[SearchFilters] = None
    web_search: bool = False

    model_config = ConfigDict(extra="forbid")


class SearchResponse(BaseModel):
    results: List[RetrievedChunk]
    source: RetrievalSource

    model_config = ConfigDict(extra="forbid")


# ---------------------------------------------------------------------
# Document Models
# ---------------------------------------------------------------------

class DocumentResponse(BaseModel):
    id: uuid.UUID
    title: str
    type: str
    jurisdiction: Optional[str] = None
    year: Optional[int] = None
    citation: Optional[str] = None
    status: str
    is_public: bool = False
    file_size: Optional[int] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(extra="forbid", from_attributes=True)


class DocumentContentResponse(DocumentResponse):
    content: Optional[str] = None


class DocumentUpdateRequest(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1)
    type: Optional[DocumentType] = None
    citation: Optional[str] = None
    jurisdiction: Optional[str] = None
    year: Optional[int] = Field(default=None, ge=1000, le=9999)

    model_config = ConfigDict(extra="forbid")


class DocumentUsageResponse(BaseModel):
    current: int
    max: int

    model_config = ConfigDict(extra="forbid")


class SummaryResponse(BaseModel):
    document_id: uuid.UUID
    summary: str

    model_config = ConfigDict(extra="forbid")


class BriefRequest(BaseModel):
    """
    Brief drafting input. Case material comes from ``document_id`` when it
    has content, otherwise from ``case_text``.
    """
    document_id: Optional[uuid.UUID] = None
    case_text: Optional[str] = None
    brief_type: str = "trial"
    jurisdiction: str = "nigeria"
    court: Optional[str] = None
    case_number: Optional[str] = None
    parties_plaintiff: Optional[str] = None
    parties_defendant: Optional[str] = None
    additional_instructions: Optional[str] = None

    model_config = ConfigDict(extra="forbid")


class BriefResponse(BaseModel):
    brief: Dict[str, Any]

    model_config = ConfigDict(extra="forbid")


# ---------------------------------------------------------------------
# Usage Models
# ---------------------------------------------------------------------

class UsageTodayResponse(BaseModel):
    used: int
    remaining: Optional[int] = None
    limit: int
    is_limited: bool
    reset_time: datetime
    plan_tier: Optional[str] = None

    model_config = ConfigDict(extra="forbid")


class UsageDay(BaseModel):
    date: str
    count: int

    model_config = ConfigDict(extra="forbid")
