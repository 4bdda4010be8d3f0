"""In-memory registry of tracked documents.

The registry is the single owner of document state.  Every mutation builds a
new collection, swaps it in, and notifies subscribers synchronously; the
scheduler and the history store are both subscribers.  Listeners read the
registry when called, so a listener that mutates the registry re-entrantly
(the scheduler marking a document PROCESSING) leaves every later listener
looking at the newest state.

Iteration order is insertion order, which is also the scheduling order.
``for_display`` gives the newest-first order used for listings and reports.
"""

import logging
import time
import uuid
from collections.abc import Callable, Iterable, Iterator
from dataclasses import replace

from pdfdigest.models import (
    AnalysisStatus,
    Completed,
    Failed,
    FileHandle,
    Idle,
    Outcome,
    Processing,
    TrackedDocument,
)

logger = logging.getLogger(__name__)

Listener = Callable[["FileRegistry"], None]


def _now_ms() -> int:
    return int(time.time() * 1000)


class FileRegistry:
    """Authoritative id → ``TrackedDocument`` mapping with change notification."""

    def __init__(self, clock: Callable[[], int] = _now_ms) -> None:
        self._documents: dict[str, TrackedDocument] = {}
        self._listeners: list[Listener] = []
        self._clock = clock

    # ------------------------------------------------------------------
    # Subscription
    # ------------------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call ``listener(registry)`` after every mutation.

        Returns a function that removes the subscription.
        """
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _commit(self, documents: dict[str, TrackedDocument]) -> None:
        self._documents = documents
        for listener in list(self._listeners):
            listener(self)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._documents)

    def __iter__(self) -> Iterator[TrackedDocument]:
        return iter(list(self._documents.values()))

    def __contains__(self, doc_id: object) -> bool:
        return doc_id in self._documents

    def get(self, doc_id: str) -> TrackedDocument | None:
        return self._documents.get(doc_id)

    def for_display(self) -> list[TrackedDocument]:
        """Documents newest first; ties keep insertion order."""
        return sorted(self._documents.values(), key=lambda d: d.created_at, reverse=True)

    def next_eligible(self) -> TrackedDocument | None:
        """First document in insertion order that is IDLE and has a handle."""
        for doc in self._documents.values():
            if doc.is_eligible:
                return doc
        return None

    def processing(self) -> list[TrackedDocument]:
        return [d for d in self._documents.values() if d.status is AnalysisStatus.PROCESSING]

    def completed(self) -> list[TrackedDocument]:
        return [d for d in self._documents.values() if isinstance(d.state, Completed)]

    def completed_summaries(self) -> list[str]:
        return [d.state.summary for d in self.completed()]

    def can_retry(self, doc_id: str) -> bool:
        doc = self._documents.get(doc_id)
        return doc is not None and doc.can_retry

    # ------------------------------------------------------------------
    # User-facing mutations
    # ------------------------------------------------------------------

    def intake(self, handle: FileHandle, display_name: str, byte_size: int | None) -> str:
        """Add a new IDLE document for ``handle`` and return its id."""
        doc_id = str(uuid.uuid4())
        while doc_id in self._documents:
            doc_id = str(uuid.uuid4())
        doc = TrackedDocument(
            id=doc_id,
            display_name=display_name,
            byte_size=byte_size,
            created_at=self._clock(),
            state=Idle(),
            handle=handle,
        )
        logger.debug("Intake %s (%s)", display_name, doc_id)
        self._commit({**self._documents, doc_id: doc})
        return doc_id

    def restore(self, documents: Iterable[TrackedDocument]) -> None:
        """Replace the whole collection with ``documents`` (e.g. loaded history).

        Later duplicates of an id are dropped.
        """
        restored: dict[str, TrackedDocument] = {}
        for doc in documents:
            if doc.id in restored:
                logger.warning("Dropping duplicate history entry %s", doc.id)
                continue
            restored[doc.id] = doc
        self._commit(restored)

    def remove(self, doc_id: str) -> None:
        """Delete ``doc_id``; no-op if it does not exist."""
        if doc_id not in self._documents:
            return
        logger.debug("Removing %s", doc_id)
        self._commit({k: v for k, v in self._documents.items() if k != doc_id})

    def retry(self, doc_id: str) -> bool:
        """Move a failed document back to IDLE, clearing its error.

        Only documents in ERROR that still have a live handle can be retried;
        everything else is left untouched and ``False`` is returned.
        """
        doc = self._documents.get(doc_id)
        if doc is None or not doc.can_retry:
            return False
        logger.debug("Retrying %s", doc.display_name)
        self._replace(replace(doc, state=Idle()))
        return True

    def clear_all(self) -> None:
        self._commit({})

    # ------------------------------------------------------------------
    # Scheduler-facing mutations
    # ------------------------------------------------------------------

    def mark_processing(self, doc_id: str) -> TrackedDocument | None:
        """IDLE (with handle) → PROCESSING.  Returns the updated document."""
        doc = self._documents.get(doc_id)
        if doc is None or not doc.is_eligible:
            return None
        updated = replace(doc, state=Processing())
        self._replace(updated)
        return updated

    def apply_result(self, doc_id: str, outcome: Outcome) -> bool:
        """PROCESSING → COMPLETED/ERROR.

        A no-op (returning ``False``) if the document was removed while it was
        being analyzed, or is not PROCESSING anymore.
        """
        if not isinstance(outcome, (Completed, Failed)):
            raise TypeError(f"Unsupported outcome: {outcome!r}")
        doc = self._documents.get(doc_id)
        if doc is None or not isinstance(doc.state, Processing):
            logger.debug("Discarding result for %s (no longer processing)", doc_id)
            return False
        self._replace(replace(doc, state=outcome))
        return True

    def _replace(self, doc: TrackedDocument) -> None:
        self._commit({**self._documents, doc.id: doc})
