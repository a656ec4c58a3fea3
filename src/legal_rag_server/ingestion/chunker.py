"""
Boundary-aware text chunker.

Splits extracted document text into overlapping windows sized for the
embedding model and the chat context. Each window ends on the most natural
boundary found in its last 20%: a paragraph break, then a sentence end, then
a space, and only then a hard cut. The next window starts ``overlap``
characters before that boundary, pulled back to a word start.
"""

from __future__ import annotations

from typing import List, Optional, Tuple

DEFAULT_CHUNK_SIZE = 1000
DEFAULT_OVERLAP = 200

LOOKBACK_RATIO = 0.2
MIN_PROGRESS_RATIO = 0.1

SENTENCE_ENDS = (". ", "! ", "? ")


def _find_break_point(text: str, search_start: int, window_end: int) -> int:
    """
    Return the index at which the window ``[.., window_end)`` should end.

    Candidates must lie strictly after ``search_start``.
    """
    paragraph = text.rfind("\n\n", 0, window_end + 2)
    if paragraph > search_start:
        return paragraph

    # Break just after the punctuation, keeping it in this chunk
    sentence = max(text.rfind(end, 0, window_end + 1) for end in SENTENCE_ENDS)
    if sentence > search_start:
        return sentence + 1

    space = text.rfind(" ", 0, window_end + 1)
    if space > search_start:
        return space

    return window_end


def normalize_line_endings(text: str) -> str:
    return text.replace("\r\n", "\n").replace("\r", "\n")


def _skip_whitespace(text: str, index: int) -> int:
    while index < len(text) and text[index].isspace():
        index += 1
    return index


def _trimmed_span(text: str, start: int, end: int) -> Optional[Tuple[int, int]]:
    piece = text[start:end]
    stripped = piece.strip()
    if not stripped:
        return None
    left = start + len(piece) - len(piece.lstrip())
    return left, left + len(stripped)


def chunk_spans(
    text: str,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    overlap: int = DEFAULT_OVERLAP,
) -> List[Tuple[int, int]]:
    """
    Compute chunk boundaries as ``(start, end)`` offsets into ``text``.

    ``text`` must already have normalized line endings. Every span is
    trimmed of surrounding whitespace, non-empty and at most ``chunk_size``
    long; span starts strictly increase.

    Raises
    ------
    ValueError
        If ``chunk_size`` is not positive or ``overlap`` is negative.
    """
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    if overlap < 0:
        raise ValueError("overlap must not be negative")

    length = len(text)
    if length <= chunk_size:
        single = _trimmed_span(text, 0, length)
        return [single] if single else []

    lookback = int(chunk_size * LOOKBACK_RATIO)
    min_progress = max(1, int(chunk_size * MIN_PROGRESS_RATIO))

    spans: List[Tuple[int, int]] = []
    # Windows never start on whitespace
    start = _skip_whitespace(text, 0)

    while start < length:
        window_end = start + chunk_size

        if window_end >= length:
            tail = _trimmed_span(text, start, length)
            if tail:
                spans.append(tail)
            break

        search_start = max(start, window_end - lookback)
        break_point = _find_break_point(text, search_start, window_end)

        span = _trimmed_span(text, start, break_point)
        if span:
            spans.append(span)

        next_start = break_point - overlap
        if next_start < start + min_progress:
            next_start = start + min_progress

        # Pull back to just after the nearest whitespace so we never start mid-word
        if 0 < next_start < length:
            align = max(
                text.rfind(" ", 0, next_start + 1),
                text.rfind("\n", 0, next_start + 1),
            )
            if start < align < break_point:
                next_start = align + 1

        start = _skip_whitespace(text, next_start)

    return spans


def chunk_text(
    text: str,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    overlap: int = DEFAULT_OVERLAP,
) -> List[str]:
    """
    Split ``text`` into ordered, overlapping, non-empty chunks.

    Parameters
    ----------
    text : str
        Raw extracted text.
    chunk_size : int
        Maximum window size in characters.
    overlap : int
        Characters repeated between consecutive chunks. Values at or above
        ``chunk_size`` are allowed; progress is still guaranteed.

    Returns
    -------
    List[str]
        Trimmed chunks in text order. Empty input gives an empty list.
    """
    normalized = normalize_line_endings(text)
    return [normalized[start:end] for start, end in chunk_spans(normalized, chunk_size, overlap)]
