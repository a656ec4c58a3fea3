"""
Background ingestion jobs.

Uploads are answered immediately; the actual ingestion runs here, decoupled
from the request. Every submission is an ``IngestionJob`` row
(queued -> running -> done | failed) plus an entry in an in-process asyncio
queue drained by a single worker task. Rows left queued or running by a
previous process are picked up again at start-up.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Callable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..db.models import IngestionJob, JobStatus
from ..db.vector_store import ChunkStore
from ..embeddings.embedder import Embedder
from .pipeline import IngestionPipeline

logger = logging.getLogger("legal_rag.ingestion.queue")


class IngestionQueue:
    """In-process queue of ingestion job ids."""

    def __init__(self) -> None:
        self._queue: asyncio.Queue[uuid.UUID] = asyncio.Queue()

    async def enqueue(self, job_id: uuid.UUID) -> int:
        """Add a job to the queue. Returns current queue size."""
        await self._queue.put(job_id)
        qsize = self._queue.qsize()
        logger.info("Ingestion job enqueued: %s (queue size: %d)", job_id, qsize)
        return qsize

    async def get_next_job(self) -> uuid.UUID:
        return await self._queue.get()

    def task_done(self) -> None:
        self._queue.task_done()

    def qsize(self) -> int:
        return self._queue.qsize()


async def submit_document(
    session: AsyncSession,
    queue: IngestionQueue,
    document_id: uuid.UUID,
) -> IngestionJob:
    """
    Record an ingestion job for a document and hand it to the worker.

    The job row is committed before it is enqueued so the worker can always
    load it.
    """
    job = IngestionJob(id=uuid.uuid4(), document_id=document_id, status=JobStatus.QUEUED.value)
    session.add(job)
    await session.commit()
    await queue.enqueue(job.id)
    return job


PipelineFactory = Callable[[AsyncSession], IngestionPipeline]


class IngestionWorker:
    """
    Consumes job ids from an ``IngestionQueue`` and runs the pipeline for each
    inside its own database session.
    """

    def __init__(
        self,
        queue: IngestionQueue,
        session_factory: async_sessionmaker[AsyncSession],
        embedder: Embedder,
        chunk_size: int,
        overlap: int,
        min_pdf_text_length: int,
        pipeline_factory: Optional[PipelineFactory] = None,
    ) -> None:
        self._queue = queue
        self._session_factory = session_factory
        self._embedder = embedder
        self._chunk_size = chunk_size
        self._overlap = overlap
        self._min_pdf_text_length = min_pdf_text_length
        self._pipeline_factory = pipeline_factory or self._default_pipeline

    def _default_pipeline(self, session: AsyncSession) -> IngestionPipeline:
        return IngestionPipeline(
            session,
            ChunkStore(session),
            self._embedder,
            chunk_size=self._chunk_size,
            overlap=self._overlap,
            min_pdf_text_length=self._min_pdf_text_length,
        )

    async def recover_pending(self) -> int:
        """
        Re-enqueue jobs a previous process left queued or running.
        """
        async with self._session_factory() as session:
            result = await session.execute(
                select(IngestionJob.id)
                .where(IngestionJob.status.in_([JobStatus.QUEUED.value, JobStatus.RUNNING.value]))
                .order_by(IngestionJob.created_at)
            )
            job_ids = list(result.scalars().all())

        for job_id in job_ids:
            await self._queue.enqueue(job_id)

        if job_ids:
            logger.info("Recovered %d pending ingestion jobs", len(job_ids))
        return len(job_ids)

    async def run(self) -> None:
        """
        Worker loop; runs until cancelled.
        """
        logger.info("Ingestion worker started.")

        while True:
            try:
                job_id = await self._queue.get_next_job()
            except asyncio.CancelledError:
                logger.info("Ingestion worker cancelled.")
                break

            try:
                await self.process_job(job_id)
            except asyncio.CancelledError:
                logger.info("Ingestion worker cancelled during job %s.", job_id)
                raise
            except Exception:
                # Keep the loop alive; the job row already records the failure
                logger.exception("Unexpected error in ingestion worker (job %s)", job_id)
            finally:
                self._queue.task_done()

    async def process_job(self, job_id: uuid.UUID) -> Optional[JobStatus]:
        """
        Run one job to completion and record its outcome.
        """
        async with self._session_factory() as session:
            job = await session.get(IngestionJob, job_id)
            if job is None:
                logger.warning("Ingestion job %s vanished before processing", job_id)
                return None
            if job.status == JobStatus.DONE.value:
                return JobStatus.DONE

            job.status = JobStatus.RUNNING.value
            job.attempts = (job.attempts or 0) + 1
            await session.commit()

            pipeline = self._pipeline_factory(session)
            try:
                await pipeline.process(job.document_id)
            except Exception as exc:
                job.status = JobStatus.FAILED.value
                job.error = f"{type(exc).__name__}: {exc}"[:2000]
                await session.commit()
                logger.error("Ingestion job %s failed: %s", job_id, job.error)
                return JobStatus.FAILED

            job.status = JobStatus.DONE.value
            job.error = None
            await session.commit()
            logger.info("Finished ingestion job %s", job_id)
            return JobStatus.DONE
