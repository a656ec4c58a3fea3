"""
Context assembly.

Renders retrieved chunks into the prompt context block, builds the message
sequence sent to the language model, and formats the citation list stored
with each assistant message. Chunks are presented in the order the retriever
ranked them.
"""

from __future__ import annotations

import re
from typing import Any, Dict, List, Sequence

from ..prompts import CHAT_SYSTEM_PROMPT, DOCUMENT_CONTEXT_INTRO, WEB_CONTEXT_INTRO
from ..retrieval.models import RetrievedChunk

DEFAULT_HISTORY_LIMIT = 10

_FILE_EXTENSION = re.compile(r"\.[^/.]+$")


def build_context(chunks: Sequence[RetrievedChunk]) -> str:
    """
    Render ranked chunks as a markdown context block.

    Returns an empty string when there is nothing to show.
    """
    if not chunks:
        return ""

    parts: List[str] = ["\n\n## Relevant Legal Documents\n\n"]
    for index, chunk in enumerate(chunks, start=1):
        parts.append(f"### Source {index}: {chunk.document_title}\n")
        if chunk.document_citation:
            parts.append(f"**Citation:** {chunk.document_citation}\n")
        parts.append(f"**Type:** {chunk.document_type}\n")
        parts.append(f"**Relevance:** {chunk.similarity * 100:.1f}%\n\n")
        parts.append(f"{chunk.chunk_content}\n\n")
        parts.append("---\n\n")
    return "".join(parts)


def build_system_prompt(context: str, used_web_search: bool) -> str:
    if not context:
        return CHAT_SYSTEM_PROMPT

    intro = WEB_CONTEXT_INTRO if used_web_search else DOCUMENT_CONTEXT_INTRO
    return f"{CHAT_SYSTEM_PROMPT}\n\n{intro}\n\n{context}"


def build_messages(
    chunks: Sequence[RetrievedChunk],
    history: Sequence[Dict[str, str]],
    user_message: str,
    used_web_search: bool = False,
    history_limit: int = DEFAULT_HISTORY_LIMIT,
) -> List[Dict[str, str]]:
    """
    Compose the model-ready message sequence.

    Parameters
    ----------
    chunks : Sequence[RetrievedChunk]
        Ranked retrieval output (may be empty).
    history : Sequence[Dict[str, str]]
        Prior turns as ``{"role", "content"}`` dicts, oldest first, not
        including ``user_message``.
    user_message : str
        The message being answered; always appended last.
    used_web_search : bool
        Selects the context intro sentence.
    history_limit : int
        Only the most recent turns are kept.
    """
    system_prompt = build_system_prompt(build_context(chunks), used_web_search)
    recent = list(history)[-history_limit:] if history_limit > 0 else []

    return (
        [{"role": "system", "content": system_prompt}]
        + [{"role": m["role"], "content": m["content"]} for m in recent]
        + [{"role": "user", "content": user_message}]
    )


def format_sources(chunks: Sequence[RetrievedChunk]) -> List[Dict[str, Any]]:
    """Citation list persisted with the assistant message."""
    return [
        {
            "id": chunk.document_id,
            "title": _FILE_EXTENSION.sub("", chunk.document_title),
            "type": chunk.document_type,
            "citation": chunk.document_citation,
            "relevance": chunk.similarity,
            "relevance_score": chunk.similarity,
            "excerpt": chunk.chunk_content,
            "metadata": chunk.metadata,
        }
        for chunk in chunks
    ]
