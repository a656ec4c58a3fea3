"""
Document Routes

Upload, management, summarization and brief drafting for legal documents.

Uploads are accepted with ``202 Accepted``: the file is stored, a document
row is created in ``processing`` and ingestion continues in the background
worker. Clients poll ``GET /documents/{id}`` for the final status.

Security Model
--------------
- Every route requires a verified bearer token.
- Reads are allowed for the owner, for public documents, and for admins.
- Updates and deletes are allowed for the owner and for admins.
- Reprocessing is admin-only.
"""

import uuid
from typing import Annotated, List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile, status

from .models import (
    BriefRequest,
    BriefResponse,
    DocumentResponse,
    DocumentContentResponse,
    DocumentUpdateRequest,
    DocumentUsageResponse,
    OperationResult,
    SummaryResponse,
)
from .dependencies import (
    get_document_service,
    get_ingestion_queue,
    get_llm_client,
    get_usage_tracker,
)
from ..auth.models import UserContext, ADMIN_ROLES
from ..auth.security import verify_access_token, require_roles
from ..config import settings
from ..core.errors import DocumentLimitReached, DocumentNotFound, UnsupportedFileType
from ..db.models import DocumentType
from ..db.usage import UsageTracker
from ..documents.service import DocumentService
from ..ingestion.queue import IngestionQueue
from ..llm.client import LLMClient

router = APIRouter(prefix="/documents", tags=["documents"])


def _not_found(exc: DocumentNotFound) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))


# ---------------------------------------------------------------------
# Upload
# ---------------------------------------------------------------------

@router.post(
    "",
    response_model=DocumentResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Upload a document for ingestion",
)
async def upload_document(
    user: Annotated[UserContext, Depends(verify_access_token)],
    service: Annotated[DocumentService, Depends(get_document_service)],
    queue: Annotated[IngestionQueue, Depends(get_ingestion_queue)],
    file: UploadFile = File(...),
    type: DocumentType = Form(DocumentType.CASE),
    title: Optional[str] = Form(None),
    jurisdiction: Optional[str] = Form(None),
    year: Optional[int] = Form(None),
    citation: Optional[str] = Form(None),
) -> DocumentResponse:
    """
    Store an uploaded file and queue it for text extraction and indexing.

    Returns
    -------
    DocumentResponse
        The new document, still in ``processing``.
    """
    data = await file.read()
    if len(data) > settings.max_upload_bytes:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"File exceeds the {settings.max_upload_bytes} byte upload limit",
        )

    try:
        document = await service.upload(
            user,
            queue,
            filename=file.filename or "upload",
            mime_type=file.content_type or "application/octet-stream",
            data=data,
            doc_type=type,
            title=title,
            jurisdiction=jurisdiction,
            year=year,
            citation=citation,
        )
    except UnsupportedFileType as exc:
        raise HTTPException(
            status_code=status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
            detail=str(exc),
        )
    except DocumentLimitReached as exc:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "error": "document_limit_reached",
                "message": f"You have reached your limit of {exc.limit} documents.",
                "current": exc.current,
                "max": exc.limit,
            },
        )

    return DocumentResponse.model_validate(document)


# ---------------------------------------------------------------------
# Listing and usage
# ---------------------------------------------------------------------

@router.get("", response_model=List[DocumentResponse])
async def list_documents(
    user: Annotated[UserContext, Depends(verify_access_token)],
    service: Annotated[DocumentService, Depends(get_document_service)],
    type: Optional[DocumentType] = Query(None),
    limit: int = Query(50, ge=1, le=200),
) -> List[DocumentResponse]:
    documents = await service.list_owned(user, doc_type=type.value if type else None, limit=limit)
    return [DocumentResponse.model_validate(d) for d in documents]


@router.get("/usage", response_model=DocumentUsageResponse)
async def document_usage(
    user: Annotated[UserContext, Depends(verify_access_token)],
    service: Annotated[DocumentService, Depends(get_document_service)],
) -> DocumentUsageResponse:
    return DocumentUsageResponse(**await service.usage(user))


# ---------------------------------------------------------------------
# Single document
# ---------------------------------------------------------------------

@router.get("/{document_id}", response_model=DocumentContentResponse)
async def get_document(
    document_id: uuid.UUID,
    user: Annotated[UserContext, Depends(verify_access_token)],
    service: Annotated[DocumentService, Depends(get_document_service)],
) -> DocumentContentResponse:
    try:
        document = await service.get_readable(user, document_id)
    except DocumentNotFound as exc:
        raise _not_found(exc)
    return DocumentContentResponse.model_validate(document)


@router.patch("/{document_id}", response_model=DocumentResponse)
async def update_document(
    document_id: uuid.UUID,
    req: DocumentUpdateRequest,
    user: Annotated[UserContext, Depends(verify_access_token)],
    service: Annotated[DocumentService, Depends(get_document_service)],
) -> DocumentResponse:
    try:
        document = await service.update(user, document_id, req.model_dump(exclude_unset=True))
    except DocumentNotFound as exc:
        raise _not_found(exc)
    return DocumentResponse.model_validate(document)


@router.delete("/{document_id}", response_model=OperationResult)
async def delete_document(
    document_id: uuid.UUID,
    user: Annotated[UserContext, Depends(verify_access_token)],
    service: Annotated[DocumentService, Depends(get_document_service)],
) -> OperationResult:
    try:
        await service.delete(user, document_id)
    except DocumentNotFound as exc:
        raise _not_found(exc)
    return OperationResult(status="deleted", details={"document_id": str(document_id)})


@router.post("/{document_id}/summary", response_model=SummaryResponse)
async def summarize_document(
    document_id: uuid.UUID,
    user: Annotated[UserContext, Depends(verify_access_token)],
    service: Annotated[DocumentService, Depends(get_document_service)],
    llm: Annotated[LLMClient, Depends(get_llm_client)],
    usage: Annotated[UsageTracker, Depends(get_usage_tracker)],
) -> SummaryResponse:
    """
    Summarize a case with the language model.

    Generation failures are chat-turn errors and are rendered by the global
    handler with their ``kind``.
    """
    try:
        summary = await service.summarize(user, document_id, llm, usage)
    except DocumentNotFound as exc:
        raise _not_found(exc)
    return SummaryResponse(document_id=document_id, summary=summary)


@router.post("/brief", response_model=BriefResponse)
async def generate_brief(
    req: BriefRequest,
    user: Annotated[UserContext, Depends(verify_access_token)],
    service: Annotated[DocumentService, Depends(get_document_service)],
    llm: Annotated[LLMClient, Depends(get_llm_client)],
    usage: Annotated[UsageTracker, Depends(get_usage_tracker)],
) -> BriefResponse:
    """
    Draft a structured legal brief from a document or pasted case text.
    """
    try:
        brief = await service.generate_brief(user, llm, usage, **req.model_dump())
    except DocumentNotFound as exc:
        raise _not_found(exc)
    return BriefResponse(brief=brief)


@router.post(
    "/{document_id}/reprocess",
    response_model=OperationResult,
    status_code=status.HTTP_202_ACCEPTED,
)
async def reprocess_document(
    document_id: uuid.UUID,
    user: Annotated[UserContext, Depends(require_roles(*sorted(ADMIN_ROLES)))],
    service: Annotated[DocumentService, Depends(get_document_service)],
    queue: Annotated[IngestionQueue, Depends(get_ingestion_queue)],
) -> OperationResult:
    try:
        await service.reprocess(document_id, queue)
    except DocumentNotFound as exc:
        raise _not_found(exc)
    return OperationResult(status="queued", details={"document_id": str(document_id)})
