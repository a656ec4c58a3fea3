"""
Document Service

Upload intake and per-user document management. An upload is stored,
recorded as a ``processing`` document and handed to the ingestion queue;
the caller gets the document back immediately.
"""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..auth.models import UserContext, UNLIMITED
from ..core.errors import (
    DocumentLimitReached,
    DocumentNotFound,
    InvalidUpstreamResponse,
    UnsupportedFileType,
)
from ..db.models import Document, DocumentStatus, DocumentType
from ..db.usage import UsageTracker, AI_DRAFTING_FEATURE, CASE_SUMMARIZER_FEATURE
from ..ingestion.extractor import is_supported
from ..ingestion.queue import IngestionQueue, submit_document
from ..llm.client import LLMClient
from ..prompts import BRIEF_PROMPT_TEMPLATE, BRIEF_SYSTEM_PROMPT, CASE_SUMMARY_PROMPT

logger = logging.getLogger("legal_rag.documents")

SUMMARY_INPUT_CHARS = 15000
BRIEF_INPUT_CHARS = 50000
DRAFTING_MODEL = "gpt-4o"


class DocumentService:
    def __init__(
        self,
        session: AsyncSession,
        upload_dir: str,
        default_max_documents: int = 10,
    ) -> None:
        self._session = session
        self.upload_dir = Path(upload_dir)
        self.default_max_documents = default_max_documents

    # ------------------------------------------------------------------
    # Limits
    # ------------------------------------------------------------------

    def max_documents_for(self, user: UserContext) -> int:
        if user.plan is not None and user.plan.max_documents is not None:
            return user.plan.max_documents
        return self.default_max_documents

    async def count_owned(self, user_id: uuid.UUID) -> int:
        result = await self._session.execute(
            select(func.count()).select_from(Document).where(Document.uploaded_by == user_id)
        )
        return result.scalar() or 0

    async def usage(self, user: UserContext) -> Dict[str, int]:
        return {
            "current": await self.count_owned(user.user_id),
            "max": self.max_documents_for(user),
        }

    # ------------------------------------------------------------------
    # Upload
    # ------------------------------------------------------------------

    async def upload(
        self,
        user: UserContext,
        queue: IngestionQueue,
        filename: str,
        mime_type: str,
        data: bytes,
        doc_type: DocumentType = DocumentType.CASE,
        title: Optional[str] = None,
        jurisdiction: Optional[str] = None,
        year: Optional[int] = None,
        citation: Optional[str] = None,
    ) -> Document:
        """
        Store an upload and queue it for ingestion.

        Raises
        ------
        UnsupportedFileType
            The MIME type has no extractor.
        DocumentLimitReached
            The user already owns the plan's maximum number of documents.
        """
        if not is_supported(mime_type):
            raise UnsupportedFileType(mime_type)

        limit = self.max_documents_for(user)
        current = await self.count_owned(user.user_id)
        if limit != UNLIMITED and current >= limit:
            raise DocumentLimitReached(current, limit)

        document_id = uuid.uuid4()
        path = self.upload_dir / f"{document_id}{Path(filename).suffix.lower()}"
        await asyncio.to_thread(self._write_file, path, data)

        document = Document(
            id=document_id,
            title=title or filename,
            type=doc_type.value,
            jurisdiction=jurisdiction,
            year=year,
            citation=citation,
            uploaded_by=user.user_id,
            is_public=False,
            file_url=str(path),
            file_size=len(data),
            status=DocumentStatus.PROCESSING.value,
            metadata_={"mime_type": mime_type, "original_name": filename},
        )
        self._session.add(document)

        # Commits the document together with its job before the worker sees it
        try:
            await submit_document(self._session, queue, document_id)
        except Exception:
            logger.error("Could not record upload %s; removing stored file", document_id)
            await asyncio.to_thread(path.unlink, True)
            raise
        await self._session.refresh(document)
        logger.info("Document %s uploaded by %s (%d bytes)", document_id, user.user_id, len(data))
        return document

    @staticmethod
    def _write_file(path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)

    # ------------------------------------------------------------------
    # Read / update / delete
    # ------------------------------------------------------------------

    async def list_owned(
        self,
        user: UserContext,
        doc_type: Optional[str] = None,
        limit: int = 50,
    ) -> List[Document]:
        stmt = select(Document).where(Document.uploaded_by == user.user_id)
        if doc_type:
            stmt = stmt.where(Document.type == doc_type)
        stmt = stmt.order_by(Document.created_at.desc()).limit(limit)

        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def get_readable(self, user: UserContext, document_id: uuid.UUID) -> Document:
        """Owner, public, or admin access."""
        document = await self._session.get(Document, document_id)
        if document is None:
            raise DocumentNotFound("Document not found")
        if document.uploaded_by != user.user_id and not document.is_public and not user.is_admin:
            raise DocumentNotFound("Document not found")
        return document

    async def get_writable(self, user: UserContext, document_id: uuid.UUID) -> Document:
        """Owner or admin access."""
        document = await self._session.get(Document, document_id)
        if document is None or (document.uploaded_by != user.user_id and not user.is_admin):
            raise DocumentNotFound("Document not found")
        return document

    async def update(
        self,
        user: UserContext,
        document_id: uuid.UUID,
        changes: Dict[str, Any],
    ) -> Document:
        document = await self.get_writable(user, document_id)
        for field in ("title", "type", "citation", "jurisdiction", "year"):
            if field in changes and changes[field] is not None:
                value = changes[field]
                setattr(document, field, value.value if isinstance(value, DocumentType) else value)
        await self._session.flush()
        return document

    async def delete(self, user: UserContext, document_id: uuid.UUID) -> None:
        """Delete a document; its chunks go with it through the cascade."""
        document = await self.get_writable(user, document_id)
        file_url = document.file_url

        await self._session.delete(document)
        await self._session.flush()

        if file_url:
            try:
                await asyncio.to_thread(Path(file_url).unlink, True)
            except OSError as exc:
                logger.error("Error deleting stored file %s: %s", file_url, exc)

    # ------------------------------------------------------------------
    # Reprocessing
    # ------------------------------------------------------------------

    async def list_by_status(self, statuses: List[DocumentStatus]) -> List[Document]:
        result = await self._session.execute(
            select(Document)
            .where(Document.status.in_([s.value for s in statuses]))
            .order_by(Document.created_at)
        )
        return list(result.scalars().all())

    async def reprocess(self, document_id: uuid.UUID, queue: IngestionQueue) -> Document:
        """Put a document back into ``processing`` and queue a new ingestion job."""
        document = await self._session.get(Document, document_id)
        if document is None:
            raise DocumentNotFound("Document not found")

        document.status = DocumentStatus.PROCESSING.value
        await submit_document(self._session, queue, document_id)
        logger.info("Document %s resubmitted for ingestion", document_id)
        return document

    # ------------------------------------------------------------------
    # Case summarizer
    # ------------------------------------------------------------------

    async def summarize(
        self,
        user: UserContext,
        document_id: uuid.UUID,
        llm: LLMClient,
        usage: UsageTracker,
    ) -> str:
        document = await self.get_readable(user, document_id)
        if not document.content:
            raise DocumentNotFound("Document content is empty")

        generation = await llm.generate(
            [
                {"role": "system", "content": CASE_SUMMARY_PROMPT},
                {"role": "user", "content": document.content[:SUMMARY_INPUT_CHARS]},
            ],
            DRAFTING_MODEL,
        )
        await usage.record(user.user_id, CASE_SUMMARIZER_FEATURE)
        return generation.text

    # ------------------------------------------------------------------
    # Brief generator
    # ------------------------------------------------------------------

    async def generate_brief(
        self,
        user: UserContext,
        llm: LLMClient,
        usage: UsageTracker,
        document_id: Optional[uuid.UUID] = None,
        case_text: Optional[str] = None,
        brief_type: str = "trial",
        jurisdiction: str = "nigeria",
        court: Optional[str] = None,
        case_number: Optional[str] = None,
        parties_plaintiff: Optional[str] = None,
        parties_defendant: Optional[str] = None,
        additional_instructions: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Draft a structured legal brief with the language model.

        The case material is the readable document's content when
        ``document_id`` is given and the document has content, otherwise
        ``case_text``. It is cut to the first 50,000 characters.

        Raises
        ------
        DocumentNotFound
            ``document_id`` is not readable by the user.
        InvalidUpstreamResponse
            The model did not answer with a JSON object.
        """
        material = case_text or ""
        if document_id is not None:
            document = await self.get_readable(user, document_id)
            if document.content:
                material = document.content

        prompt = BRIEF_PROMPT_TEMPLATE.format(
            brief_type=brief_type,
            jurisdiction=jurisdiction,
            court=court or "N/A",
            case_number=case_number or "N/A",
            parties_plaintiff=parties_plaintiff or "N/A",
            parties_defendant=parties_defendant or "N/A",
            additional_instructions=additional_instructions or "None",
            case_material=material[:BRIEF_INPUT_CHARS],
        )

        generation = await llm.generate(
            [
                {"role": "system", "content": BRIEF_SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            DRAFTING_MODEL,
            response_format={"type": "json_object"},
        )

        try:
            brief = json.loads(generation.text)
        except ValueError as exc:
            logger.error("Brief response was not JSON: %s", generation.text[:500])
            raise InvalidUpstreamResponse("Invalid response from AI service. Please try again.") from exc
        if not isinstance(brief, dict):
            raise InvalidUpstreamResponse("Invalid response from AI service. Please try again.")

        await usage.record(user.user_id, AI_DRAFTING_FEATURE)
        return brief
