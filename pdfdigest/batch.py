"""Batch analysis — queue a set of PDFs in a session and drain the queue.

The session's scheduler does the actual work; this module adds what a
command-line run needs around it: input collection, a progress bar driven by
registry notifications, an optional user-requested retry round, and the final
``BatchReport``.
"""

import logging
import sys
from pathlib import Path

from tqdm.auto import tqdm

from pdfdigest.intake import collect_pdfs
from pdfdigest.models import BatchReport, Completed, FailedDocument, Failed
from pdfdigest.registry import FileRegistry
from pdfdigest.session import DigestSession

logger = logging.getLogger(__name__)


class _Progress:
    """Advance a tqdm bar each time one of ``ids`` reaches a terminal state."""

    def __init__(self, registry: FileRegistry, ids: list[str], desc: str) -> None:
        self._ids = set(ids)
        self._done: set[str] = set()
        self._ok = 0
        self._bar = tqdm(
            total=len(ids),
            desc=desc,
            unit="pdf",
            disable=not sys.stderr.isatty(),
            leave=True,
        )
        self._unsubscribe = registry.subscribe(self._on_change)

    def _on_change(self, registry: FileRegistry) -> None:
        for doc_id in self._ids - self._done:
            doc = registry.get(doc_id)
            if doc is None or isinstance(doc.state, (Completed, Failed)):
                self._done.add(doc_id)
                if doc is not None and isinstance(doc.state, Completed):
                    self._ok += 1
                self._bar.update(1)
        self._bar.set_postfix(ok=self._ok, failed=len(self._done) - self._ok)

    def close(self) -> None:
        self._unsubscribe()
        self._bar.close()


async def _drain(session: DigestSession, ids: list[str], desc: str) -> None:
    progress = _Progress(session.registry, ids, desc)
    try:
        await session.run_until_idle()
    finally:
        progress.close()


async def run_batch(
    session: DigestSession,
    paths: list[Path],
    retry_failed: bool = False,
    dry_run: bool = False,
) -> BatchReport:
    """Queue every PDF under ``paths`` and analyze them one at a time.

    Steps:

    1. Expand ``paths`` (directories recursively); non-PDF inputs are skipped.
    2. Add each PDF to the session registry (IDLE) and drain the queue.
    3. With ``retry_failed``, queue every failed document once more and drain
       again.  Documents are never retried without this explicit request.
    4. Report how the documents added by this run ended.

    With ``dry_run`` nothing is added or analyzed; the PDFs that would be
    queued are only logged.
    """
    pdfs, rejected = collect_pdfs(paths)
    for path in rejected:
        logger.warning("Skipping non-PDF input: %s", path)
    logger.info("Discovered PDFs: %d", len(pdfs))

    if dry_run:
        for pdf in pdfs:
            logger.info("  Would analyze: %s", pdf)
        return BatchReport(completed=0, failed=0, skipped=len(pdfs) + len(rejected), failed_documents=[])

    ids = session.add_files(pdfs)
    await _drain(session, ids, "Analyze")

    if retry_failed:
        retried = [i for i in session.retry_failed() if i in ids]
        if retried:
            logger.info("Retrying %d failed document(s)", len(retried))
            await _drain(session, retried, "Retry")

    return _build_report(session.registry, ids, skipped=len(rejected))


def _build_report(registry: FileRegistry, ids: list[str], skipped: int) -> BatchReport:
    completed = 0
    failed: list[FailedDocument] = []
    for doc_id in ids:
        doc = registry.get(doc_id)
        if doc is None:
            continue
        if isinstance(doc.state, Completed):
            completed += 1
        elif isinstance(doc.state, Failed):
            failed.append(
                FailedDocument(
                    id=doc.id,
                    file_name=doc.display_name,
                    error=doc.state.message,
                    can_retry=doc.can_retry,
                )
            )
    return BatchReport(
        completed=completed,
        failed=len(failed),
        skipped=skipped,
        failed_documents=failed,
    )
