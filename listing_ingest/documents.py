"""Text extraction for listings published as PDF or Word attachments."""

from __future__ import annotations

import logging
from io import BytesIO
from urllib.parse import urlsplit

import docx
from pypdf import PdfReader
from pypdf.errors import PyPdfError

from .errors import DocumentExtractionError

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = (".pdf", ".docx")


def document_extension(name: str) -> str:
    """Lower-cased extension of a file name or URL path ('' when unsupported)."""
    path = urlsplit(name).path.lower()
    for ext in SUPPORTED_EXTENSIONS:
        if path.endswith(ext):
            return ext
    return ""


def _extract_pdf_text(content: bytes) -> str:
    try:
        reader = PdfReader(BytesIO(content))
        pages = reader.pages
    except (PyPdfError, ValueError, OSError) as e:
        raise DocumentExtractionError(f"Failed to read PDF: {e}") from e

    text_parts = []
    for page_num, page in enumerate(pages):
        try:
            page_text = page.extract_text()
        except (PyPdfError, ValueError, KeyError) as e:
            logger.warning(f"Failed to extract text from PDF page {page_num + 1}: {e}")
            continue
        if page_text:
            text_parts.append(page_text)
    return "\n\n".join(text_parts)


def _extract_docx_text(content: bytes) -> str:
    try:
        document = docx.Document(BytesIO(content))
    except Exception as e:  # python-docx surfaces zip, xml and lookup errors alike
        raise DocumentExtractionError(f"Failed to read DOCX: {e}") from e
    return "\n".join(p.text for p in document.paragraphs if p.text.strip())


def extract_document_text(content: bytes, name: str) -> str:
    """Extract plain text from a PDF or DOCX attachment.

    Args:
        content: Raw file bytes.
        name: File name or URL, used to pick the parser by extension.

    Returns:
        The extracted text, stripped.

    Raises:
        DocumentExtractionError: Unsupported type, unreadable file, or no text.
    """
    ext = document_extension(name)
    if ext == ".pdf":
        text = _extract_pdf_text(content)
    elif ext == ".docx":
        text = _extract_docx_text(content)
    else:
        raise DocumentExtractionError(f"Unsupported document type: {name}")

    text = text.strip()
    if not text:
        raise DocumentExtractionError(f"No text could be extracted from {name}")
    return text
