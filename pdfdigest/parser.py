"""Local PDF text extraction for backends that cannot read PDF attachments.

Works on in-memory bytes (the scheduler only hands out bytes, never paths).
``auto`` tries docling first and falls back to pypdf.
"""

import io
import logging
import threading

from docling.datamodel.base_models import DocumentStream
from docling.document_converter import DocumentConverter
from pypdf import PdfReader

from pdfdigest.models import ParseError

logger = logging.getLogger(__name__)

_DOCLING_LOCK = threading.Lock()


def extract_text(
    data: bytes,
    max_chars: int = 200_000,
    extractor: str = "auto",
    name: str = "document.pdf",
) -> str:
    """Extract the text of a PDF as markdown-ish text.

    Args:
        data:      Raw PDF bytes.
        max_chars: Maximum characters to return (truncates after this limit).
        extractor: ``auto`` (docling with pypdf fallback), ``docling`` or
                   ``pypdf``.
        name:      File name used in log and error messages.

    Raises:
        ParseError: if extraction fails or yields no text.
    """
    logger.info("Running %s extraction on: %s", extractor, name)
    if extractor == "docling":
        text = _run_docling(data, name)
    elif extractor == "pypdf":
        text = _extract_text_with_pypdf(data, name)
    else:
        text = _run_docling_with_fallback(data, name)
    logger.info("Extraction complete: %s chars", f"{len(text):,}")
    if len(text) > max_chars:
        logger.warning("Truncating %s to %s chars", name, f"{max_chars:,}")
    return text[:max_chars]


def _run_docling_with_fallback(data: bytes, name: str) -> str:
    """Run docling, then fall back to pypdf text extraction on failure."""
    try:
        return _run_docling(data, name)
    except ParseError as docling_exc:
        logger.warning(
            "Docling parse failed for %s; attempting pypdf fallback: %s",
            name,
            docling_exc,
        )
        try:
            text = _extract_text_with_pypdf(data, name)
        except ParseError as fallback_exc:
            root_cause = docling_exc.__cause__ or docling_exc
            raise ParseError(
                f"Failed to parse {name}: docling and pypdf fallback failed ({fallback_exc})"
            ) from root_cause

        logger.warning(
            "Using pypdf fallback text extraction for %s (%s chars)",
            name,
            f"{len(text):,}",
        )
        return text


def _run_docling(data: bytes, name: str) -> str:
    """Run docling on the PDF bytes and return the full markdown string.

    Raises:
        ParseError: wrapping any exception raised by docling.
    """
    try:
        with _DOCLING_LOCK:
            converter = DocumentConverter()
            result = converter.convert(DocumentStream(name=name, stream=io.BytesIO(data)))
        text = result.document.export_to_markdown().strip()
    except Exception as e:
        raise ParseError(f"Failed to parse {name}: {e}") from e
    if not text:
        raise ParseError(f"Failed to parse {name}: docling extracted empty text")
    return text


def _extract_text_with_pypdf(data: bytes, name: str) -> str:
    """Extract plain text page by page with pypdf."""
    try:
        reader = PdfReader(io.BytesIO(data))
        pages = [page.extract_text() or "" for page in reader.pages]
    except Exception as e:
        raise ParseError(f"Failed to parse {name}: pypdf error: {e}") from e
    text = "\n\n".join(pages).strip()
    if not text:
        raise ParseError(f"Failed to parse {name}: pypdf extracted empty text")
    return text
