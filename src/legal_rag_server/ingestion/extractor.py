"""
Text Extraction

Converts stored upload bytes into raw text:

- Plain text is decoded as UTF-8 and returned verbatim.
- PDFs go through structural extraction (pypdf). Too little text, or a parse
  failure, yields ``SCANNED_PDF_PLACEHOLDER`` instead of empty content.
- Word documents (.docx) are reduced to raw paragraph and table text.
- Images are run through Tesseract OCR; an empty result is accepted.

Extraction is a pure function over bytes. The parsers are CPU-bound, so the
async entry point runs them in a worker thread.
"""

from __future__ import annotations

import asyncio
import io
import logging
from typing import List

import docx
import pytesseract
from PIL import Image
from pypdf import PdfReader

from ..core.errors import UnsupportedFileType

logger = logging.getLogger("legal_rag.extractor")


PLAIN_TEXT = "text/plain"
PDF = "application/pdf"
DOCX = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
IMAGE_PREFIX = "image/"

SCANNED_PDF_PLACEHOLDER = (
    "[SCANNED PDF - TEXT EXTRACTION FAILED. "
    "PLEASE ENSURE FILE IS READABLE OR UPLOAD IMAGES DIRECTLY]"
)

DEFAULT_MIN_PDF_TEXT_LENGTH = 100


def _normalize_mime(mime_type: str) -> str:
    # Drop parameters such as "; charset=utf-8"
    return (mime_type or "").split(";", 1)[0].strip().lower()


def is_supported(mime_type: str) -> bool:
    mime = _normalize_mime(mime_type)
    return mime in (PLAIN_TEXT, PDF, DOCX) or mime.startswith(IMAGE_PREFIX)


# ---------------------------------------------------------------------
# Per-format extractors
# ---------------------------------------------------------------------

def _extract_pdf(data: bytes, min_length: int) -> str:
    try:
        reader = PdfReader(io.BytesIO(data))
        pages: List[str] = [page.extract_text() or "" for page in reader.pages]
        text = "\n".join(pages)
    except Exception as exc:
        logger.warning("PDF text extraction failed: %s", exc)
        return SCANNED_PDF_PLACEHOLDER

    if len(text.strip()) > min_length:
        return text

    logger.info(
        "PDF text extraction yielded %d characters; treating as scanned.",
        len(text.strip()),
    )
    return SCANNED_PDF_PLACEHOLDER


def _extract_docx(data: bytes) -> str:
    document = docx.Document(io.BytesIO(data))

    blocks: List[str] = [p.text for p in document.paragraphs if p.text.strip()]
    for table in document.tables:
        for row in table.rows:
            cells = [cell.text.strip() for cell in row.cells if cell.text.strip()]
            if cells:
                blocks.append(" | ".join(cells))

    return "\n\n".join(blocks)


def _extract_image(data: bytes) -> str:
    with Image.open(io.BytesIO(data)) as image:
        return pytesseract.image_to_string(image)


# ---------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------

def extract_text(
    data: bytes,
    mime_type: str,
    min_pdf_text_length: int = DEFAULT_MIN_PDF_TEXT_LENGTH,
) -> str:
    """
    Extract raw text from file bytes.

    Parameters
    ----------
    data : bytes
        Full file content.
    mime_type : str
        Declared MIME type of the upload.
    min_pdf_text_length : int
        A PDF must yield strictly more trimmed characters than this to be
        considered readable.

    Returns
    -------
    str
        Extracted text, or the scanned-PDF placeholder.

    Raises
    ------
    UnsupportedFileType
        If no extractor handles ``mime_type``.
    """
    mime = _normalize_mime(mime_type)

    if mime == PLAIN_TEXT:
        return data.decode("utf-8")
    if mime == PDF:
        return _extract_pdf(data, min_pdf_text_length)
    if mime == DOCX:
        return _extract_docx(data)
    if mime.startswith(IMAGE_PREFIX):
        logger.info("Performing OCR on %s upload", mime)
        return _extract_image(data)

    raise UnsupportedFileType(mime_type)


async def extract(
    data: bytes,
    mime_type: str,
    min_pdf_text_length: int = DEFAULT_MIN_PDF_TEXT_LENGTH,
) -> str:
    """
    Async wrapper around ``extract_text`` that keeps the event loop free.
    """
    if not is_supported(mime_type):
        raise UnsupportedFileType(mime_type)
    return await asyncio.to_thread(extract_text, data, mime_type, min_pdf_text_length)
