"""Single-slot analysis scheduler.

The scheduler subscribes to the registry and re-evaluates after every change,
including the changes it makes itself:

1. If the slot is taken (a task is in flight, or some document is
   PROCESSING) do nothing.
2. Pick the first document in insertion order that is IDLE and still has a
   file handle.  None means there is nothing to do.
3. Mark it PROCESSING *before* awaiting anything.  The registry notifies
   subscribers synchronously, so the nested evaluation triggered by this very
   transition already sees the slot as taken.
4. Await the analysis operation and apply COMPLETED or ERROR.  Failures are
   recorded on the document and never re-raised, and never retried
   automatically.

Evaluation only happens while an event loop is running.  Notifications from
synchronous code (intake before the loop starts) are picked up by
``run_until_idle()``.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable

from pdfdigest.models import Completed, Failed, TrackedDocument
from pdfdigest.registry import FileRegistry

logger = logging.getLogger(__name__)

AnalyzeFn = Callable[[bytes, str], Awaitable[str]]

_FALLBACK_ERROR = "An error occurred while analyzing the PDF."


def error_message(exc: BaseException) -> str:
    """Human-readable message for a failed analysis."""
    return str(exc).strip() or _FALLBACK_ERROR


class AnalysisScheduler:
    """Drain IDLE documents from ``registry`` one at a time through ``analyze``."""

    def __init__(self, registry: FileRegistry, analyze: AnalyzeFn) -> None:
        self._registry = registry
        self._analyze = analyze
        self._in_flight: asyncio.Task | None = None
        self._unsubscribe = registry.subscribe(self._on_change)

    @property
    def busy(self) -> bool:
        return self._in_flight is not None

    def close(self) -> None:
        """Stop reacting to registry changes."""
        self._unsubscribe()

    def _on_change(self, _registry: FileRegistry) -> None:
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return
        self.evaluate()

    def evaluate(self) -> TrackedDocument | None:
        """Start the next eligible document if the slot is free.

        Must be called from inside a running event loop.  Returns the
        document that was started, if any.
        """
        if self._in_flight is not None or self._registry.processing():
            return None
        candidate = self._registry.next_eligible()
        if candidate is None:
            return None
        doc = self._registry.mark_processing(candidate.id)
        if doc is None:
            return None
        logger.info("Analyzing %s", doc.display_name)
        self._in_flight = asyncio.get_running_loop().create_task(
            self._run(doc), name=f"analyze-{doc.id}"
        )
        return doc

    async def run_until_idle(self) -> None:
        """Evaluate, then wait until nothing is left in flight."""
        self.evaluate()
        while self._in_flight is not None:
            await self._in_flight

    async def _run(self, doc: TrackedDocument) -> None:
        try:
            data = doc.handle.read_bytes()
            summary = await self._analyze(data, doc.handle.mime_type)
        except Exception as exc:
            message = error_message(exc)
            logger.error("Analysis failed for %s: %s", doc.display_name, message)
            outcome = Failed(message=message)
        else:
            logger.info("Analysis completed for %s (%s chars)", doc.display_name, f"{len(summary):,}")
            outcome = Completed(summary=summary)

        # The slot is released before the result lands so that the
        # notification from apply_result can start the next document.
        self._in_flight = None
        self._registry.apply_result(doc.id, outcome)
        self.evaluate()
