import io
from unittest.mock import MagicMock, patch

import docx
import pytest
from PIL import Image

from legal_rag_server.core.errors import UnsupportedFileType
from legal_rag_server.ingestion.extractor import (
    DOCX,
    PDF,
    SCANNED_PDF_PLACEHOLDER,
    extract,
    extract_text,
    is_supported,
)


def _fake_pdf_reader(*page_texts):
    reader = MagicMock()
    pages = []
    for text in page_texts:
        page = MagicMock()
        page.extract_text.return_value = text
        pages.append(page)
    reader.pages = pages
    return reader


def test_plain_text_is_returned_verbatim():
    raw = "Section 33.\n  Right to life.\n"
    assert extract_text(raw.encode("utf-8"), "text/plain") == raw


def test_mime_parameters_are_ignored():
    assert extract_text(b"hello", "text/plain; charset=utf-8") == "hello"


def test_pdf_with_enough_text_is_returned():
    body = "The Supreme Court of Nigeria held that " * 5
    with patch(
        "legal_rag_server.ingestion.extractor.PdfReader",
        return_value=_fake_pdf_reader(body, "Page two."),
    ):
        text = extract_text(b"%PDF-1.4", PDF)

    assert text == body + "\nPage two."


def test_pdf_with_too_little_text_gives_placeholder():
    with patch(
        "legal_rag_server.ingestion.extractor.PdfReader",
        return_value=_fake_pdf_reader("x" * 50),
    ):
        assert extract_text(b"%PDF-1.4", PDF) == SCANNED_PDF_PLACEHOLDER


def test_pdf_exactly_at_threshold_gives_placeholder():
    with patch(
        "legal_rag_server.ingestion.extractor.PdfReader",
        return_value=_fake_pdf_reader("x" * 100),
    ):
        assert extract_text(b"%PDF-1.4", PDF, min_pdf_text_length=100) == SCANNED_PDF_PLACEHOLDER


def test_pdf_parse_failure_gives_placeholder():
    with patch(
        "legal_rag_server.ingestion.extractor.PdfReader",
        side_effect=ValueError("EOF marker not found"),
    ):
        assert extract_text(b"not a pdf", PDF) == SCANNED_PDF_PLACEHOLDER


def test_docx_paragraphs_and_tables():
    document = docx.Document()
    document.add_paragraph("Tenancy Agreement")
    document.add_paragraph("")
    document.add_paragraph("The landlord agrees to let the premises.")
    table = document.add_table(rows=1, cols=2)
    table.rows[0].cells[0].text = "Rent"
    table.rows[0].cells[1].text = "N500,000"
    buf = io.BytesIO()
    document.save(buf)

    text = extract_text(buf.getvalue(), DOCX)

    assert text == (
        "Tenancy Agreement\n\n"
        "The landlord agrees to let the premises.\n\n"
        "Rent | N500,000"
    )


def test_image_goes_through_ocr():
    buf = io.BytesIO()
    Image.new("RGB", (20, 20), "white").save(buf, format="PNG")

    with patch(
        "legal_rag_server.ingestion.extractor.pytesseract.image_to_string",
        return_value="IN THE HIGH COURT OF LAGOS STATE",
    ) as ocr:
        text = extract_text(buf.getvalue(), "image/png")

    assert text == "IN THE HIGH COURT OF LAGOS STATE"
    ocr.assert_called_once()


def test_image_with_no_text_is_accepted():
    buf = io.BytesIO()
    Image.new("RGB", (20, 20), "white").save(buf, format="PNG")

    with patch(
        "legal_rag_server.ingestion.extractor.pytesseract.image_to_string",
        return_value="",
    ):
        assert extract_text(buf.getvalue(), "image/png") == ""


def test_unsupported_type_raises():
    with pytest.raises(UnsupportedFileType) as excinfo:
        extract_text(b"<html></html>", "text/html")
    assert excinfo.value.mime_type == "text/html"


def test_is_supported():
    assert is_supported("text/plain")
    assert is_supported(PDF)
    assert is_supported(DOCX)
    assert is_supported("image/jpeg")
    assert not is_supported("application/msword")
    assert not is_supported("")


@pytest.mark.asyncio
async def test_async_extract_runs_in_thread():
    assert await extract(b"Contract text", "text/plain") == "Contract text"


@pytest.mark.asyncio
async def test_async_extract_rejects_unsupported_type():
    with pytest.raises(UnsupportedFileType):
        await extract(b"{}", "application/json")
