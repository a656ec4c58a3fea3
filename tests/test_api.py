import contextlib
import time
import uuid
from datetime import datetime, timezone

import jwt
import pytest
from fastapi.testclient import TestClient
from pydantic import SecretStr
from unittest.mock import AsyncMock, MagicMock

from legal_rag_server.main import app
from legal_rag_server.api.dependencies import (
    get_chat_service,
    get_document_service,
    get_ingestion_queue,
    get_llm_client,
    get_retriever,
    get_session_store,
    get_usage_tracker,
)
from legal_rag_server.chat.service import ChatService
from legal_rag_server.config import settings
from legal_rag_server.core.errors import (
    DocumentLimitReached,
    DocumentNotFound,
    QuotaExceeded,
    RateLimited,
    UnsupportedFileType,
)
from legal_rag_server.db.models import ChatMessage, ChatSession, Document
from legal_rag_server.db.usage import UsageStatus, UsageTracker
from legal_rag_server.documents.service import DocumentService
from legal_rag_server.ingestion.queue import IngestionQueue
from legal_rag_server.llm.client import LLMClient
from legal_rag_server.retrieval.models import RetrievalResult, RetrievedChunk
from legal_rag_server.retrieval.retriever import Retriever
from legal_rag_server.sessions.store import SessionStore

# Test secrets
TEST_SECRET = "test-secret-for-legal-rag-must-be-long-enough"
settings.jwt_secret = SecretStr(TEST_SECRET)
settings.jwt_algo = "HS256"

USER_ID = uuid.uuid4()


def create_valid_token(role="user", plan=None):
    now = int(time.time())
    payload = {
        "iss": settings.jwt_issuer,
        "aud": settings.jwt_audience,
        "iat": now,
        "exp": now + 3600,
        "sub": str(USER_ID),
        "role": role,
        "plan": plan or {"tier": "basic", "max_chats_per_day": 20, "max_documents": 5},
    }
    return jwt.encode(payload, TEST_SECRET, algorithm="HS256")


def auth(role="user"):
    return {"Authorization": f"Bearer {create_valid_token(role=role)}"}


def _document(**overrides) -> Document:
    fields = dict(
        id=uuid.uuid4(),
        title="Lagos Tenancy Law",
        type="statute",
        status="processing",
        is_public=False,
        uploaded_by=USER_ID,
        file_size=11,
        created_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
    )
    fields.update(overrides)
    return Document(**fields)


@pytest.fixture
def chat_service():
    return AsyncMock(spec=ChatService)


@pytest.fixture
def documents():
    return AsyncMock(spec=DocumentService)


@pytest.fixture
def usage():
    return AsyncMock(spec=UsageTracker)


@pytest.fixture
def retriever():
    return AsyncMock(spec=Retriever)


@pytest.fixture
def sessions():
    return AsyncMock(spec=SessionStore)


@pytest.fixture
def client(chat_service, documents, usage, retriever, sessions):
    app.dependency_overrides[get_chat_service] = lambda: chat_service
    app.dependency_overrides[get_document_service] = lambda: documents
    app.dependency_overrides[get_usage_tracker] = lambda: usage
    app.dependency_overrides[get_retriever] = lambda: retriever
    app.dependency_overrides[get_session_store] = lambda: sessions
    app.dependency_overrides[get_ingestion_queue] = lambda: MagicMock(spec=IngestionQueue)
    app.dependency_overrides[get_llm_client] = lambda: AsyncMock(spec=LLMClient)

    # Mock lifespan to avoid DB connection
    @contextlib.asynccontextmanager
    async def mock_lifespan(app):
        yield

    app.router.lifespan_context = mock_lifespan

    with TestClient(app) as c:
        yield c

    app.dependency_overrides = {}


# ---------------------------------------------------------------------
# Health / auth
# ---------------------------------------------------------------------

def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


def test_missing_token_rejected(client):
    resp = client.post("/chat", json={"message": "hi", "session_id": str(uuid.uuid4())})
    assert resp.status_code in (401, 403)


# ---------------------------------------------------------------------
# Chat
# ---------------------------------------------------------------------

def test_chat_returns_assistant_message(client, chat_service):
    session_id = uuid.uuid4()
    chat_service.send.return_value = ChatMessage(
        id=uuid.uuid4(),
        session_id=session_id,
        user_id=USER_ID,
        role="assistant",
        message="Under the Land Use Act...",
        sources=[],
        tokens_used=88,
        model_used="gpt-4o-mini",
        metadata_={"rag_enabled": False, "chunks_retrieved": 0, "retrieval_source": "none"},
        created_at=datetime(2026, 1, 1),
    )

    resp = client.post(
        "/chat",
        json={"message": "Who owns land in Lagos?", "session_id": str(session_id), "web_search": True},
        headers=auth(),
    )

    assert resp.status_code == 200
    body = resp.json()
    assert body["role"] == "assistant"
    assert body["sources"] == []
    assert body["metadata"]["retrieval_source"] == "none"

    args, kwargs = chat_service.send.await_args
    assert args[0].user_id == USER_ID
    assert args[1] == session_id
    assert args[2] == "Who owns land in Lagos?"
    assert kwargs["web_search"] is True


def test_chat_quota_exceeded_payload(client, chat_service):
    chat_service.send.side_effect = QuotaExceeded(20, 20, "basic")

    resp = client.post(
        "/chat",
        json={"message": "hi", "session_id": str(uuid.uuid4())},
        headers=auth(),
    )

    assert resp.status_code == 429
    assert resp.json() == {
        "error": "chat_limit_reached",
        "detail": "Daily chat limit reached.",
        "current_usage": 20,
        "max_limit": 20,
        "remaining": 0,
        "plan_tier": "basic",
        "upgrade_needed": True,
    }


def test_chat_upstream_rate_limit(client, chat_service):
    chat_service.send.side_effect = RateLimited("The AI service is currently experiencing high demand.")

    resp = client.post(
        "/chat",
        json={"message": "hi", "session_id": str(uuid.uuid4())},
        headers=auth(),
    )

    assert resp.status_code == 429
    assert resp.json()["error"] == "ai_rate_limit"


def test_chat_rejects_empty_message(client):
    resp = client.post(
        "/chat",
        json={"message": "", "session_id": str(uuid.uuid4())},
        headers=auth(),
    )
    assert resp.status_code == 422


def test_regenerate_passes_ids(client, chat_service):
    session_id, message_id = uuid.uuid4(), uuid.uuid4()
    chat_service.regenerate.return_value = ChatMessage(
        id=uuid.uuid4(),
        session_id=session_id,
        user_id=USER_ID,
        role="assistant",
        message="New answer",
        created_at=datetime(2026, 1, 1),
    )

    resp = client.post(
        "/chat/regenerate",
        json={"message_id": str(message_id), "session_id": str(session_id)},
        headers=auth(),
    )

    assert resp.status_code == 200
    assert resp.json()["message"] == "New answer"
    args, _ = chat_service.regenerate.await_args
    assert args[1:] == (session_id, message_id)


def test_session_messages_for_owner(client, sessions):
    session_id = uuid.uuid4()
    sessions.get_session.return_value = ChatSession(id=session_id, user_id=USER_ID, title="Land")
    sessions.list_messages.return_value = [
        ChatMessage(
            id=uuid.uuid4(),
            session_id=session_id,
            user_id=USER_ID,
            role="user",
            message="Who owns land in Lagos?",
            created_at=datetime(2026, 1, 1),
        )
    ]

    resp = client.get(f"/chat/sessions/{session_id}/messages", headers=auth())

    assert resp.status_code == 200
    body = resp.json()
    assert len(body) == 1
    assert body[0]["role"] == "user"
    sessions.list_messages.assert_awaited_once_with(session_id)


def test_session_messages_hidden_from_other_users(client, sessions):
    session_id = uuid.uuid4()
    sessions.get_session.return_value = ChatSession(id=session_id, user_id=uuid.uuid4(), title="Other")

    resp = client.get(f"/chat/sessions/{session_id}/messages", headers=auth())

    assert resp.status_code == 404
    assert resp.json()["error"] == "session_not_found"
    sessions.list_messages.assert_not_awaited()


# ---------------------------------------------------------------------
# Search / usage
# ---------------------------------------------------------------------

def test_search_returns_ranked_chunks(client, retriever):
    retriever.retrieve.return_value = RetrievalResult(
        chunks=[
            RetrievedChunk(
                chunk_id="c1",
                document_id="d1",
                document_title="Evidence Act",
                document_type="statute",
                chunk_content="Section 84",
                similarity=0.66,
            )
        ],
        source="documents",
    )

    resp = client.post("/search", json={"query": "computer evidence"}, headers=auth())

    assert resp.status_code == 200
    body = resp.json()
    assert body["source"] == "documents"
    assert body["results"][0]["document_title"] == "Evidence Act"


def test_usage_today(client, usage):
    usage.status.return_value = UsageStatus(
        used=3,
        remaining=17,
        limit=20,
        is_limited=False,
        reset_time=datetime(2026, 1, 2, tzinfo=timezone.utc),
    )

    resp = client.get("/usage/today", headers=auth())

    assert resp.status_code == 200
    body = resp.json()
    assert body["used"] == 3
    assert body["remaining"] == 17
    assert body["plan_tier"] == "basic"


def test_usage_history(client, usage):
    usage.history.return_value = [{"date": "2026-01-02", "count": 4}, {"date": "2026-01-01", "count": 1}]

    resp = client.get("/usage/history?days=3", headers=auth())

    assert resp.status_code == 200
    assert resp.json()[0] == {"date": "2026-01-02", "count": 4}
    args, _ = usage.history.await_args
    assert args[0] == USER_ID
    assert args[2] == 3


# ---------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------

def test_upload_accepted(client, documents):
    documents.upload.return_value = _document()

    resp = client.post(
        "/documents",
        files={"file": ("tenancy.txt", b"Section 1. ", "text/plain")},
        data={"type": "statute", "year": "2011"},
        headers=auth(),
    )

    assert resp.status_code == 202
    assert resp.json()["status"] == "processing"
    kwargs = documents.upload.await_args.kwargs
    assert kwargs["filename"] == "tenancy.txt"
    assert kwargs["mime_type"] == "text/plain"
    assert kwargs["data"] == b"Section 1. "
    assert kwargs["doc_type"].value == "statute"
    assert kwargs["year"] == 2011


def test_upload_unsupported_type(client, documents):
    documents.upload.side_effect = UnsupportedFileType("application/zip")

    resp = client.post(
        "/documents",
        files={"file": ("bundle.zip", b"PK", "application/zip")},
        headers=auth(),
    )

    assert resp.status_code == 415


def test_upload_over_document_limit(client, documents):
    documents.upload.side_effect = DocumentLimitReached(5, 5)

    resp = client.post(
        "/documents",
        files={"file": ("a.txt", b"text", "text/plain")},
        headers=auth(),
    )

    assert resp.status_code == 403
    detail = resp.json()["detail"]
    assert detail["error"] == "document_limit_reached"
    assert detail["max"] == 5


def test_document_usage(client, documents):
    documents.usage.return_value = {"current": 2, "max": 5}

    resp = client.get("/documents/usage", headers=auth())

    assert resp.status_code == 200
    assert resp.json() == {"current": 2, "max": 5}


def test_get_document_not_found(client, documents):
    documents.get_readable.side_effect = DocumentNotFound("Document not found")

    resp = client.get(f"/documents/{uuid.uuid4()}", headers=auth())

    assert resp.status_code == 404


def test_get_document_includes_content(client, documents):
    documents.get_readable.return_value = _document(status="ready", content="Full text")

    resp = client.get(f"/documents/{uuid.uuid4()}", headers=auth())

    assert resp.status_code == 200
    assert resp.json()["content"] == "Full text"


def test_update_document_sends_only_set_fields(client, documents):
    documents.update.return_value = _document(title="Renamed")
    doc_id = uuid.uuid4()

    resp = client.patch(f"/documents/{doc_id}", json={"title": "Renamed"}, headers=auth())

    assert resp.status_code == 200
    args, _ = documents.update.await_args
    assert args[1] == doc_id
    assert args[2] == {"title": "Renamed"}


def test_delete_document(client, documents):
    doc_id = uuid.uuid4()

    resp = client.delete(f"/documents/{doc_id}", headers=auth())

    assert resp.status_code == 200
    assert resp.json()["status"] == "deleted"
    documents.delete.assert_awaited_once()


def test_summary(client, documents):
    documents.summarize.return_value = "### Case Summary"
    doc_id = uuid.uuid4()

    resp = client.post(f"/documents/{doc_id}/summary", headers=auth())

    assert resp.status_code == 200
    assert resp.json() == {"document_id": str(doc_id), "summary": "### Case Summary"}


def test_reprocess_requires_admin(client, documents):
    resp = client.post(f"/documents/{uuid.uuid4()}/reprocess", headers=auth(role="user"))
    assert resp.status_code == 403
    documents.reprocess.assert_not_awaited()

    resp = client.post(f"/documents/{uuid.uuid4()}/reprocess", headers=auth(role="admin"))
    assert resp.status_code == 202
    assert resp.json()["status"] == "queued"


def test_brief_passes_request_fields(client, documents):
    documents.generate_brief.return_value = {"title": "Brief for the Claimant", "citations_used": []}
    doc_id = uuid.uuid4()

    resp = client.post(
        "/documents/brief",
        json={"document_id": str(doc_id), "brief_type": "appellate", "court": "Supreme Court"},
        headers=auth(),
    )

    assert resp.status_code == 200
    assert resp.json() == {"brief": {"title": "Brief for the Claimant", "citations_used": []}}
    kwargs = documents.generate_brief.await_args.kwargs
    assert kwargs["document_id"] == doc_id
    assert kwargs["brief_type"] == "appellate"
    assert kwargs["jurisdiction"] == "nigeria"
    assert kwargs["court"] == "Supreme Court"


def test_brief_hidden_document_not_found(client, documents):
    documents.generate_brief.side_effect = DocumentNotFound("Document not found")

    resp = client.post("/documents/brief", json={"document_id": str(uuid.uuid4())}, headers=auth())

    assert resp.status_code == 404
