"""Persistent history — a JSON key-value file mirroring the registry.

``JsonFileStorage`` behaves like a browser's local storage: string values
under string keys, the whole file rewritten on every write, last write wins.
``HistoryStore`` keeps the registry projection under a single key.

Restore policy
--------------
A record saved while PROCESSING belongs to an analysis that died with the
previous session, together with its file handle.  It is restored as
``Interrupted``: it reports IDLE, carries an explanatory message, keeps any
summary it had, and is never scheduled again.  An IDLE record carrying an
error is restored the same way, so save → load → save is stable.
"""

import json
import logging
from collections.abc import Iterable
from pathlib import Path

from pydantic import TypeAdapter, ValidationError

from pdfdigest.models import (
    AnalysisStatus,
    Completed,
    Failed,
    Idle,
    Interrupted,
    INTERRUPTED_MESSAGE,
    RestoreError,
    StoredDocument,
    TrackedDocument,
)
from pdfdigest.registry import FileRegistry

logger = logging.getLogger(__name__)

HISTORY_KEY = "analyzedFiles"

_RECORDS = TypeAdapter(list[StoredDocument])


# ---------------------------------------------------------------------------
# Key-value file
# ---------------------------------------------------------------------------


class JsonFileStorage:
    """String key-value storage backed by one JSON object on disk."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def _read(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        data = json.loads(self.path.read_text(encoding="utf-8"))
        if not isinstance(data, dict):
            raise ValueError(f"{self.path} does not contain a JSON object")
        return data

    def _write(self, data: dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data, ensure_ascii=False), encoding="utf-8")

    def get_item(self, key: str) -> str | None:
        return self._read().get(key)

    def set_item(self, key: str, value: str) -> None:
        try:
            data = self._read()
        except (OSError, ValueError):
            logger.warning("Overwriting unreadable storage file %s", self.path)
            data = {}
        data[key] = value
        self._write(data)

    def remove_item(self, key: str) -> None:
        data = self._read()
        if data.pop(key, None) is not None:
            self._write(data)


# ---------------------------------------------------------------------------
# Projection
# ---------------------------------------------------------------------------


def to_record(doc: TrackedDocument) -> StoredDocument:
    """Project a document onto its persisted form (the handle is dropped)."""
    return StoredDocument(
        id=doc.id,
        file_name=doc.display_name,
        file_size=doc.byte_size,
        status=doc.status,
        summary=doc.summary_text,
        error=doc.error_message,
        upload_timestamp=doc.created_at,
    )


def from_record(record: StoredDocument) -> TrackedDocument:
    """Rebuild a handle-less document, applying the restore policy."""
    status = record.status
    if status is AnalysisStatus.PROCESSING:
        state = Interrupted(message=INTERRUPTED_MESSAGE, summary=record.summary)
    elif status is AnalysisStatus.IDLE and record.error is not None:
        state = Interrupted(message=record.error, summary=record.summary)
    elif status is AnalysisStatus.IDLE:
        state = Idle()
    elif status is AnalysisStatus.COMPLETED:
        state = Completed(summary=record.summary)
    else:
        state = Failed(message=record.error)
    return TrackedDocument(
        id=record.id,
        display_name=record.file_name,
        byte_size=record.file_size,
        created_at=record.upload_timestamp,
        state=state,
    )


def encode_history(documents: Iterable[TrackedDocument]) -> str:
    records = [to_record(d).model_dump(mode="json") for d in documents]
    return json.dumps(records, ensure_ascii=False)


def decode_history(raw: str) -> list[TrackedDocument]:
    """Parse a stored history string.

    Raises:
        RestoreError: if the string is not valid JSON or a record is malformed.
    """
    try:
        records = _RECORDS.validate_json(raw)
    except ValidationError as exc:
        raise RestoreError(f"Malformed history: {exc.error_count()} invalid field(s)") from exc
    return [from_record(r) for r in records]


# ---------------------------------------------------------------------------
# History store
# ---------------------------------------------------------------------------


class HistoryStore:
    """Load, save and clear the registry's persisted mirror."""

    def __init__(self, storage: JsonFileStorage, key: str = HISTORY_KEY) -> None:
        self.storage = storage
        self.key = key

    def load(self) -> list[TrackedDocument]:
        """Return the stored documents, or ``[]`` if none can be read."""
        try:
            raw = self.storage.get_item(self.key)
            if raw is None:
                return []
            if not isinstance(raw, str):
                raise RestoreError(f"Expected a JSON string under {self.key!r}")
            documents = decode_history(raw)
        except (OSError, ValueError, RestoreError) as exc:
            logger.error("Failed to load history from %s: %s", self.storage.path, exc)
            return []
        interrupted = sum(1 for d in documents if isinstance(d.state, Interrupted))
        logger.info("Restored %d document(s) from history", len(documents))
        if interrupted:
            logger.warning("%d document(s) were interrupted and cannot be resumed", interrupted)
        return documents

    def save(self, documents: Iterable[TrackedDocument]) -> None:
        try:
            self.storage.set_item(self.key, encode_history(documents))
        except OSError as exc:
            logger.error("Failed to save history to %s: %s", self.storage.path, exc)

    def clear(self) -> None:
        self.storage.remove_item(self.key)

    def attach(self, registry: FileRegistry):
        """Save ``registry`` after every change; returns the unsubscribe function."""
        return registry.subscribe(self.save)
