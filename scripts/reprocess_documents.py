import argparse
import asyncio
import os
import sys

# Ensure src is in pythonpath
sys.path.append(os.path.join(os.path.dirname(__file__), "..", "src"))

from dotenv import load_dotenv
load_dotenv()

import httpx

from legal_rag_server.config import settings
from legal_rag_server.db import create_session_factory
from legal_rag_server.db.models import DocumentStatus
from legal_rag_server.documents.service import DocumentService
from legal_rag_server.embeddings.embedder import Embedder
from legal_rag_server.ingestion.queue import IngestionQueue, IngestionWorker


async def main(include_processing: bool):
    print("Initializing clients...")
    engine, session_factory = create_session_factory(settings.database_url)
    http_client = httpx.AsyncClient()
    embedder = Embedder(
        http_client,
        api_key=settings.openai_api_key.get_secret_value(),
        model=settings.embedding_model,
        dimensions=settings.embedding_dimensions,
        base_url=settings.openai_base_url,
        timeout=settings.embedding_timeout_seconds,
    )
    queue = IngestionQueue()
    worker = IngestionWorker(
        queue,
        session_factory,
        embedder,
        chunk_size=settings.chunk_size,
        overlap=settings.chunk_overlap,
        min_pdf_text_length=settings.min_pdf_text_length,
    )

    statuses = [DocumentStatus.ERROR]
    if include_processing:
        # Only safe while no server worker is running
        statuses.append(DocumentStatus.PROCESSING)

    try:
        # 1. Resubmit stuck documents
        async with session_factory() as session:
            service = DocumentService(session, upload_dir=settings.upload_dir)
            documents = await service.list_by_status(statuses)
            print(f"Found {len(documents)} documents to reprocess.")
            for document in documents:
                await service.reprocess(document.id, queue)

        # 2. Drain the queue in this process
        total = queue.qsize()
        done = 0
        while queue.qsize():
            job_id = await queue.get_next_job()
            done += 1
            print(f"Processing job ({done}/{total}): {job_id}")
            result = await worker.process_job(job_id)
            print(f"  -> {result.value if result else 'skipped'}")
            queue.task_done()
    finally:
        await http_client.aclose()
        await engine.dispose()

    print("Done!")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Re-run ingestion for failed documents.")
    parser.add_argument(
        "--include-processing",
        action="store_true",
        help="Also resubmit documents stuck in 'processing'.",
    )
    args = parser.parse_args()
    asyncio.run(main(args.include_processing))
