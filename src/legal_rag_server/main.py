"""
Legal Research Server Application Entry Point

This module defines the FastAPI application instance, registers all routers,
configures global exception handling, and owns the process-wide resources
(database engine, HTTP client, ingestion worker) through the lifespan.

Design Goals
------------
- Explicit dependency initialization order
- No connections opened at import time
- Test-friendly via create_app() and a replaceable lifespan
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import AsyncIterator

import httpx
from fastapi import FastAPI

from .config import settings
from .core.errors import ChatTurnError, chat_turn_error_handler, unhandled_exception_handler
from .core.logging import configure_logging
from .db import create_session_factory
from .embeddings.embedder import Embedder
from .ingestion.queue import IngestionQueue, IngestionWorker
from .llm.client import LLMClient
from .retrieval.web_search import WebSearchClient

from .api import (
    chat_routes,
    document_routes,
    search_routes,
    health_routes,
    usage_routes,
)


logger = logging.getLogger("legal_rag.app")


# ---------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------

@contextlib.asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Build shared resources on startup and release them on shutdown.

    Everything is attached to ``app.state``; request dependencies read it
    from there.
    """
    configure_logging(settings.log_level)
    logger.info("Starting legal-rag-server")

    # Validate critical settings now, not at first use
    openai_key = settings.openai_api_key.get_secret_value()
    missing = [
        name
        for name, value in (
            ("OPENAI_API_KEY", openai_key),
            ("JWT_SECRET", settings.jwt_secret.get_secret_value()),
            ("DATABASE_URL", settings.database_url),
        )
        if not value
    ]
    if missing:
        raise RuntimeError(f"Missing required settings: {', '.join(missing)}")

    engine, session_factory = create_session_factory(settings.database_url)
    http_client = httpx.AsyncClient()

    embedder = Embedder(
        http_client,
        api_key=openai_key,
        model=settings.embedding_model,
        dimensions=settings.embedding_dimensions,
        base_url=settings.openai_base_url,
        timeout=settings.embedding_timeout_seconds,
    )
    tavily_key = settings.tavily_api_key.get_secret_value() if settings.tavily_api_key else None

    app.state.session_factory = session_factory
    app.state.embedder = embedder
    app.state.llm_client = LLMClient(
        http_client,
        api_key=openai_key,
        base_url=settings.openai_base_url,
        baseline_model=settings.default_chat_model,
        max_completion_tokens=settings.max_completion_tokens,
        timeout=settings.llm_timeout_seconds,
    )
    app.state.web_search = WebSearchClient(
        http_client,
        api_key=tavily_key,
        base_url=settings.tavily_base_url,
        max_results=settings.web_search_max_results,
        search_depth=settings.web_search_depth,
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
    app.state.ingestion_queue = queue

    await worker.recover_pending()
    worker_task = asyncio.create_task(worker.run())

    logger.info("Startup complete")
    try:
        yield
    finally:
        logger.info("Shutting down legal-rag-server")
        worker_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await worker_task
        await http_client.aclose()
        await engine.dispose()


# ---------------------------------------------------------------------
# Application Factory (Test-Friendly)
# ---------------------------------------------------------------------

def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns
    -------
    FastAPI
        Fully configured FastAPI application.
    """
    app = FastAPI(
        title="legal-rag-server",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # --------------------------------------------------------------
    # Global Exception Handling
    # --------------------------------------------------------------

    app.add_exception_handler(ChatTurnError, chat_turn_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # --------------------------------------------------------------
    # Router Registration
    # --------------------------------------------------------------

    app.include_router(health_routes.router)
    app.include_router(chat_routes.router)
    app.include_router(search_routes.router)
    app.include_router(document_routes.router)
    app.include_router(usage_routes.router)

    return app


# ---------------------------------------------------------------------
# Default Application Instance (for Uvicorn/Gunicorn)
# ---------------------------------------------------------------------

app = create_app()
