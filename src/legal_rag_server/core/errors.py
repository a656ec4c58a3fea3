"""
Error Taxonomy and Global Error Handling

This module defines the domain exceptions raised by the ingestion, retrieval
and chat pipelines, together with the FastAPI handlers that render them.

Design Goals
------------
- Never leak internal exception details to clients
- Chat-turn failures carry a discriminated ``kind`` the client can switch on
- Log full stack traces internally for debugging
- Ingestion errors never reach an HTTP caller (they become document status)
"""

from __future__ import annotations

import logging
from typing import Dict, Any, Optional

from fastapi import Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger("legal_rag.errors")


# ---------------------------------------------------------------------
# Domain Exceptions
# ---------------------------------------------------------------------

class LegalRagError(RuntimeError):
    """Base class for all domain errors raised by the server."""


class UnsupportedFileType(LegalRagError):
    """Raised when extraction is asked to handle a MIME type it has no handler for."""

    def __init__(self, mime_type: str) -> None:
        super().__init__(f"Unsupported file type: {mime_type}")
        self.mime_type = mime_type


class EmbeddingServiceError(LegalRagError):
    """Raised when the embedding API fails or returns a malformed payload."""


class RetrievalDegraded(LegalRagError):
    """Raised by the chunk store when the similarity query itself fails."""


class DocumentNotFound(LegalRagError):
    """Raised when a document does not exist or is not visible to the caller."""


class DocumentLimitReached(LegalRagError):
    """Raised when an upload would exceed the plan's document allowance."""

    def __init__(self, current: int, limit: int) -> None:
        super().__init__(f"Document limit reached ({current}/{limit})")
        self.current = current
        self.limit = limit


class ChatTurnError(LegalRagError):
    """
    Base class for errors that abort a live chat turn.

    Attributes
    ----------
    kind : str
        Stable machine-readable discriminator returned to the client.
    status_code : int
        HTTP status used when the error is rendered.
    payload : Dict[str, Any]
        Extra fields merged into the error response body.
    """

    kind: str = "chat_error"
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, payload: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.payload: Dict[str, Any] = payload or {}


class RateLimited(ChatTurnError):
    kind = "ai_rate_limit"
    status_code = status.HTTP_429_TOO_MANY_REQUESTS


class ServiceMisconfigured(ChatTurnError):
    kind = "ai_service_misconfigured"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class ServiceUnavailable(ChatTurnError):
    kind = "ai_service_unavailable"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


class InvalidUpstreamResponse(ChatTurnError):
    kind = "ai_invalid_response"
    status_code = status.HTTP_502_BAD_GATEWAY


class QuotaExceeded(ChatTurnError):
    kind = "chat_limit_reached"
    status_code = status.HTTP_429_TOO_MANY_REQUESTS

    def __init__(self, current_usage: int, max_limit: int, plan_tier: Optional[str]) -> None:
        super().__init__(
            "Daily chat limit reached.",
            payload={
                "current_usage": current_usage,
                "max_limit": max_limit,
                "remaining": 0,
                "plan_tier": plan_tier,
                "upgrade_needed": True,
            },
        )
        self.current_usage = current_usage
        self.max_limit = max_limit


class SessionNotFound(ChatTurnError):
    kind = "session_not_found"
    status_code = status.HTTP_404_NOT_FOUND


class MessageNotFound(ChatTurnError):
    kind = "message_not_found"
    status_code = status.HTTP_404_NOT_FOUND


class RegenerationNotAllowed(ChatTurnError):
    kind = "regeneration_not_allowed"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, status_code: int = status.HTTP_400_BAD_REQUEST) -> None:
        super().__init__(message)
        self.status_code = status_code


# ---------------------------------------------------------------------
# Public Exception Handlers
# ---------------------------------------------------------------------

async def chat_turn_error_handler(
    request: Request,
    exc: ChatTurnError,
) -> JSONResponse:
    """
    Render a chat-turn failure as a structured, discriminated error.

    The user is waiting synchronously on a chat turn, so every failure is
    reported with its ``kind`` and any extra payload (for example the usage
    counters attached to ``QuotaExceeded``).
    """
    logger.warning(
        "Chat turn failed (%s) on %s %s: %s",
        exc.kind,
        request.method,
        request.url.path,
        exc.message,
    )

    content: Dict[str, Any] = {"error": exc.kind, "detail": exc.message}
    content.update(exc.payload)

    return JSONResponse(status_code=exc.status_code, content=content)


async def unhandled_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """
    Catch-all handler for uncaught exceptions.

    Behavior
    --------
    - Logs the full exception stack trace for internal diagnostics.
    - Returns a generic 500 error to the client with no internal details.

    Parameters
    ----------
    request : Request
        The incoming HTTP request that triggered the exception.

    exc : Exception
        The uncaught exception instance.

    Returns
    -------
    JSONResponse
        A JSON 500 response with a minimal error payload.
    """

    # Log full traceback internally (never returned to client)
    logger.exception(
        "Unhandled exception during request: %s %s",
        request.method,
        request.url.path,
        exc_info=exc,
    )

    payload: Dict[str, Any] = {
        "error": "internal_server_error",
        "detail": "Internal server error",
    }

    return JSONResponse(
        status_code=500,
        content=payload,
    )
