"""Upload intake — turn user-supplied paths into tracked documents.

Only files whose MIME type is ``application/pdf`` reach the registry.
Directories are scanned recursively.  Everything else is reported back to the
caller as rejected.
"""

import logging
import mimetypes
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

from pdfdigest.registry import FileRegistry

logger = logging.getLogger(__name__)

PDF_MIME_TYPE = "application/pdf"


@dataclass(frozen=True)
class PdfFile:
    """File handle for a PDF on the local file system."""

    path: Path
    mime_type: str = PDF_MIME_TYPE

    @property
    def name(self) -> str:
        return self.path.name

    @property
    def size(self) -> int:
        return self.path.stat().st_size

    def read_bytes(self) -> bytes:
        return self.path.read_bytes()


def is_pdf(path: Path) -> bool:
    """True if ``path`` is a regular file whose guessed MIME type is PDF."""
    mime_type, _ = mimetypes.guess_type(path.name)
    return path.is_file() and mime_type == PDF_MIME_TYPE


def find_pdfs(source_dir: Path) -> list[Path]:
    """Return all PDF files found recursively under ``source_dir``, sorted."""
    return sorted(p for p in source_dir.rglob("*") if is_pdf(p))


def collect_pdfs(paths: Iterable[Path]) -> tuple[list[Path], list[Path]]:
    """Expand ``paths`` into PDFs to analyze and paths that were rejected.

    Directories contribute every PDF below them.  Order is preserved and a
    file named twice is only taken once.
    """
    accepted: list[Path] = []
    rejected: list[Path] = []
    seen: set[Path] = set()
    for path in paths:
        candidates = find_pdfs(path) if path.is_dir() else [path]
        for candidate in candidates:
            if not is_pdf(candidate):
                rejected.append(candidate)
                continue
            key = candidate.resolve()
            if key in seen:
                continue
            seen.add(key)
            accepted.append(candidate)
    return accepted, rejected


def intake_files(registry: FileRegistry, paths: Iterable[Path]) -> list[str]:
    """Add every PDF in ``paths`` to ``registry`` and return the new ids."""
    pdfs, rejected = collect_pdfs(paths)
    for path in rejected:
        logger.warning("Skipping non-PDF input: %s", path)
    ids: list[str] = []
    for path in pdfs:
        handle = PdfFile(path)
        ids.append(registry.intake(handle, display_name=handle.name, byte_size=handle.size))
    if ids:
        logger.info("Queued %d PDF(s) for analysis", len(ids))
    return ids
