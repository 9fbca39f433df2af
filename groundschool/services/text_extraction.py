"""
Source text extraction for uploaded study material
"""
import io
import logging

from pypdf import PdfReader

from groundschool.config import settings

logger = logging.getLogger(__name__)

TRIM_MARKER = "\n[Content trimmed for length...]\n"


def extract_text(content: bytes, mime_type: str = "", filename: str = "") -> str:
    """
    Extract plain text from a document payload

    PDFs are read page by page with pypdf; anything else is treated as
    UTF-8 text with undecodable bytes replaced.
    """
    is_pdf = (
        "pdf" in (mime_type or "").lower()
        or (filename or "").lower().endswith(".pdf")
        or content[:5] == b"%PDF-"
    )
    if not is_pdf:
        return content.decode("utf-8", errors="replace")

    reader = PdfReader(io.BytesIO(content))
    pages = []
    for page_number, page in enumerate(reader.pages, start=1):
        try:
            pages.append(page.extract_text() or "")
        except Exception as e:
            logger.warning(f"Failed to extract text from page {page_number}: {str(e)}")
    text = "\n".join(pages)
    logger.info(f"Extracted {len(text)} characters from {len(reader.pages)} PDF pages")
    return text


def trim_source_text(text: str, max_chars: int = None) -> str:
    """
    Keep the beginning and the end of long documents

    Both ends tend to carry the key material (introductions, summaries),
    so the middle is dropped when the text exceeds max_chars.
    """
    max_chars = max_chars or settings.MAX_SOURCE_CHARS
    if len(text) <= max_chars:
        return text

    half = max_chars // 2
    trimmed = text[:half] + TRIM_MARKER + text[-half:]
    logger.info(f"Trimmed source text from {len(text)} to {len(trimmed)} chars")
    return trimmed
