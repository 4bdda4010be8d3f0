"""Tests for pdfdigest/models.py — state variants, history records and Config."""

import pytest
from pydantic import TypeAdapter, ValidationError

from pdfdigest.models import (
    INTERRUPTED_MESSAGE,
    AnalysisStatus,
    Completed,
    Config,
    DocumentState,
    Failed,
    Idle,
    Interrupted,
    Processing,
    StoredDocument,
    TrackedDocument,
)


# ---------------------------------------------------------------------------
# State variants
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "state, status",
    [
        (Idle(), AnalysisStatus.IDLE),
        (Processing(), AnalysisStatus.PROCESSING),
        (Completed(summary="s"), AnalysisStatus.COMPLETED),
        (Failed(message="m"), AnalysisStatus.ERROR),
        (Interrupted(), AnalysisStatus.IDLE),
    ],
)
def test_state_reports_status(state, status):
    assert state.status is status


def test_state_union_discriminates_on_kind():
    adapter = TypeAdapter(DocumentState)
    assert isinstance(adapter.validate_python({"kind": "error", "message": "x"}), Failed)
    assert isinstance(adapter.validate_python({"kind": "interrupted"}), Interrupted)
    with pytest.raises(ValidationError):
        adapter.validate_python({"kind": "completed"})


def test_states_are_frozen():
    state = Completed(summary="s")
    with pytest.raises(ValidationError):
        state.summary = "changed"


def test_interrupted_defaults():
    state = Interrupted()
    assert state.message == INTERRUPTED_MESSAGE
    assert state.summary is None


# ---------------------------------------------------------------------------
# TrackedDocument
# ---------------------------------------------------------------------------


def test_handle_is_not_part_of_equality():
    a = TrackedDocument(id="x", display_name="x.pdf", byte_size=1, created_at=1, handle=object())
    b = TrackedDocument(id="x", display_name="x.pdf", byte_size=1, created_at=1)
    assert a == b
    assert a.is_eligible and not b.is_eligible


def test_can_retry_only_when_failed_with_handle():
    failed = TrackedDocument(
        id="x", display_name="x.pdf", byte_size=1, created_at=1, state=Failed(message="m"), handle=object()
    )
    assert failed.can_retry
    assert not TrackedDocument(
        id="x", display_name="x.pdf", byte_size=1, created_at=1, state=Failed(message="m")
    ).can_retry


# ---------------------------------------------------------------------------
# StoredDocument
# ---------------------------------------------------------------------------


def test_stored_document_requires_summary_when_completed():
    with pytest.raises(ValidationError, match="summary is required"):
        StoredDocument(id="a", file_name="a.pdf", status="COMPLETED", upload_timestamp=1)


def test_stored_document_requires_error_when_failed():
    with pytest.raises(ValidationError, match="error is required"):
        StoredDocument(id="a", file_name="a.pdf", status="ERROR", error="", upload_timestamp=1)


def test_stored_document_rejects_empty_id():
    with pytest.raises(ValidationError):
        StoredDocument(id="", file_name="a.pdf", status="IDLE", upload_timestamp=1)


def test_stored_document_allows_processing_with_summary():
    record = StoredDocument(
        id="a", file_name="a.pdf", status="PROCESSING", summary="old", upload_timestamp=1
    )
    assert record.status is AnalysisStatus.PROCESSING


# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------


def test_config_defaults():
    config = Config()
    assert config.base_url == "https://openrouter.ai/api/v1"
    assert config.extractor == "attach"
    assert config.max_chars == 200_000
    assert config.api_key is None
    assert config.dry_run is False


def test_failed_requires_a_message():
    with pytest.raises(ValidationError):
        Failed(message="")


def test_empty_failure_never_reaches_the_store(registry, make_handle, tmp_path):
    from pdfdigest.store import HistoryStore, JsonFileStorage

    store = HistoryStore(JsonFileStorage(tmp_path / "history.json"))
    store.attach(registry)
    doc_id = registry.intake(make_handle(), "a.pdf", 1)
    registry.mark_processing(doc_id)
    with pytest.raises(ValidationError):
        registry.apply_result(doc_id, Failed(message=""))
    assert registry.get(doc_id).status is AnalysisStatus.PROCESSING
    assert store.load()[0].error_message == INTERRUPTED_MESSAGE
