"""A digest session — registry, history, scheduler and global summary wired up.

``DigestSession`` is what the CLI talks to.  Construction restores history
and attaches the store, so from then on every registry change is persisted.
The global summary lives only on the session object and is never written to
history.
"""

import logging
from collections.abc import Iterable
from pathlib import Path

from pdfdigest.aggregator import MIN_SUMMARIES, GlobalAggregator, SynthesizeFn
from pdfdigest.intake import intake_files
from pdfdigest.models import TrackedDocument
from pdfdigest.registry import FileRegistry
from pdfdigest.renderer import export_report
from pdfdigest.scheduler import AnalysisScheduler, AnalyzeFn
from pdfdigest.store import HistoryStore

logger = logging.getLogger(__name__)


class DigestSession:
    """Owns the registry for one run and the transient global summary."""

    def __init__(
        self,
        history: HistoryStore,
        analyze: AnalyzeFn,
        synthesize: SynthesizeFn,
        registry: FileRegistry | None = None,
    ) -> None:
        self.history = history
        self.registry = registry if registry is not None else FileRegistry()
        self.registry.restore(history.load())
        self._detach = history.attach(self.registry)
        self.scheduler = AnalysisScheduler(self.registry, analyze)
        self.aggregator = GlobalAggregator(synthesize)
        self.global_summary: str | None = None

    def close(self) -> None:
        self.scheduler.close()
        self._detach()

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    def add_files(self, paths: Iterable[Path]) -> list[str]:
        return intake_files(self.registry, paths)

    def documents(self) -> list[TrackedDocument]:
        """Documents newest first."""
        return self.registry.for_display()

    def remove(self, doc_id: str) -> bool:
        if doc_id not in self.registry:
            return False
        self.registry.remove(doc_id)
        return True

    def retry(self, doc_id: str) -> bool:
        """Queue a failed document again.

        Refused for documents restored from history: their bytes are gone.
        """
        doc = self.registry.get(doc_id)
        if doc is not None and not doc.has_handle:
            logger.warning("Cannot retry %s: the original file is not available", doc.display_name)
            return False
        return self.registry.retry(doc_id)

    def retry_failed(self) -> list[str]:
        """Retry every failed document that still has its file."""
        return [d.id for d in self.registry if d.can_retry and self.registry.retry(d.id)]

    async def run_until_idle(self) -> None:
        await self.scheduler.run_until_idle()

    def clear_history(self) -> None:
        """Forget every document and the global summary."""
        self.registry.clear_all()
        self.global_summary = None

    # ------------------------------------------------------------------
    # Global summary
    # ------------------------------------------------------------------

    @property
    def can_synthesize(self) -> bool:
        return len(self.registry.completed()) >= MIN_SUMMARIES

    async def synthesize(self) -> str | None:
        """Synthesize a global summary from the current completed summaries.

        Returns ``None`` without calling the backend when fewer than two
        documents are completed.  ``AggregationError`` propagates and leaves
        any previous global summary untouched.
        """
        summaries = self.registry.completed_summaries()
        if len(summaries) < MIN_SUMMARIES:
            logger.info(
                "Global summary needs at least %d completed documents (have %d)",
                MIN_SUMMARIES,
                len(summaries),
            )
            return None
        self.global_summary = await self.aggregator.synthesize(summaries)
        return self.global_summary

    def dismiss_global_summary(self) -> None:
        self.global_summary = None

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    def export(self, path: Path) -> Path:
        return export_report(path, self.registry.for_display(), self.global_summary)
