import uuid
from unittest.mock import AsyncMock

import pytest

from legal_rag_server.core.errors import DocumentNotFound, EmbeddingServiceError
from legal_rag_server.db.models import Document, DocumentStatus
from legal_rag_server.db.vector_store import ChunkStore
from legal_rag_server.embeddings.embedder import Embedder
from legal_rag_server.ingestion.pipeline import IngestionPipeline


def _words(count: int) -> str:
    return "".join(f"t{i:03d} " for i in range(count))


@pytest.fixture
def document_factory(tmp_path):
    def make(text: str = _words(300), mime_type: str = "text/plain", write: bool = True) -> Document:
        doc_id = uuid.uuid4()
        path = tmp_path / f"{doc_id}.txt"
        if write:
            path.write_text(text, encoding="utf-8")
        return Document(
            id=doc_id,
            title="Upload",
            type="case",
            status=DocumentStatus.PROCESSING.value,
            file_url=str(path),
            metadata_={"mime_type": mime_type},
        )
    return make


@pytest.fixture
def store():
    return AsyncMock(spec=ChunkStore)


@pytest.fixture
def embedder():
    mock = AsyncMock(spec=Embedder)
    mock.embed.return_value = [0.1, 0.2, 0.3]
    return mock


def _pipeline(document, store, embedder):
    session = AsyncMock()
    session.get.return_value = document
    return IngestionPipeline(session, store, embedder), session


@pytest.mark.asyncio
async def test_text_document_becomes_ready_with_chunks(document_factory, store, embedder):
    document = document_factory()
    pipeline, session = _pipeline(document, store, embedder)

    outcome = await pipeline.process(document.id)

    assert outcome.status == DocumentStatus.READY
    assert outcome.chunks_total == 2
    assert outcome.chunks_stored == 2
    assert document.status == DocumentStatus.READY.value
    assert document.content == _words(300)
    assert embedder.embed.await_count == 2
    indexes = [call.kwargs["chunk_index"] for call in store.add_chunk.await_args_list]
    assert indexes == [0, 1]
    assert all(call.kwargs["document_id"] == document.id for call in store.add_chunk.await_args_list)


@pytest.mark.asyncio
async def test_failed_chunk_embedding_is_skipped(document_factory, store, embedder):
    embedder.embed.side_effect = [EmbeddingServiceError("rate limited"), [0.4, 0.5, 0.6]]
    document = document_factory()
    pipeline, session = _pipeline(document, store, embedder)

    outcome = await pipeline.process(document.id)

    assert outcome.status == DocumentStatus.READY
    assert outcome.chunks_total == 2
    assert outcome.chunks_stored == 1
    assert document.status == DocumentStatus.READY.value

    store.add_chunk.assert_awaited_once()
    kwargs = store.add_chunk.await_args.kwargs
    assert kwargs["chunk_index"] == 0
    assert kwargs["metadata"] == {"position": 1}
    assert kwargs["embedding"] == [0.4, 0.5, 0.6]


@pytest.mark.asyncio
async def test_missing_file_marks_document_error(document_factory, store, embedder):
    document = document_factory(write=False)
    pipeline, session = _pipeline(document, store, embedder)

    with pytest.raises(FileNotFoundError):
        await pipeline.process(document.id)

    assert document.status == DocumentStatus.ERROR.value
    session.rollback.assert_awaited_once()
    store.add_chunk.assert_not_awaited()


@pytest.mark.asyncio
async def test_unsupported_type_marks_document_error(document_factory, store, embedder):
    document = document_factory(mime_type="application/zip")
    pipeline, session = _pipeline(document, store, embedder)

    with pytest.raises(Exception):
        await pipeline.process(document.id)

    assert document.status == DocumentStatus.ERROR.value


@pytest.mark.asyncio
async def test_storage_failure_marks_document_error(document_factory, store, embedder):
    store.add_chunk.side_effect = RuntimeError("disk full")
    document = document_factory()
    pipeline, session = _pipeline(document, store, embedder)

    with pytest.raises(RuntimeError):
        await pipeline.process(document.id)

    assert document.status == DocumentStatus.ERROR.value


@pytest.mark.asyncio
async def test_missing_document_raises(store, embedder):
    pipeline, session = _pipeline(None, store, embedder)

    with pytest.raises(DocumentNotFound):
        await pipeline.process(uuid.uuid4())


@pytest.mark.asyncio
async def test_scanned_pdf_placeholder_is_stored_as_content(document_factory, store, embedder, monkeypatch):
    from legal_rag_server.ingestion import extractor

    monkeypatch.setattr(extractor, "_extract_pdf", lambda data, min_length: extractor.SCANNED_PDF_PLACEHOLDER)
    document = document_factory(text="%PDF-1.4", mime_type="application/pdf")
    pipeline, session = _pipeline(document, store, embedder)

    outcome = await pipeline.process(document.id)

    assert document.content == extractor.SCANNED_PDF_PLACEHOLDER
    assert outcome.chunks_total == 1
    assert document.status == DocumentStatus.READY.value
