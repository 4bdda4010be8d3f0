"""Document state models, dataclass Config, and exceptions for pdfdigest.

A tracked document's lifecycle is modelled as a tagged variant rather than a
status enum plus loose optional fields: each state carries exactly the payload
it needs (``Completed`` a summary, ``Failed`` a message).  ``Interrupted`` is
the one state that can carry both a message and a prior summary; it is only
ever produced when restoring history (see ``store.py``).
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Annotated, ClassVar, Literal, Protocol, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

# ---------------------------------------------------------------------------
# Status
# ---------------------------------------------------------------------------


class AnalysisStatus(str, Enum):
    """Externally visible status of a tracked document."""

    IDLE = "IDLE"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    ERROR = "ERROR"


INTERRUPTED_MESSAGE = (
    "Analysis was interrupted by a reload. The original file is no longer "
    "available; add it again to analyze it."
)
"""Message attached to documents that were PROCESSING when history was saved."""

NO_CONTENT_NOTICE = "Analysis finished but the model returned no content."
"""Summary text recorded when the backend replies with an empty message."""

# ---------------------------------------------------------------------------
# Document state variants (discriminated union on ``kind``)
# ---------------------------------------------------------------------------


class _State(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: ClassVar[AnalysisStatus]


class Idle(_State):
    """Waiting for the scheduler."""

    kind: Literal["idle"] = "idle"
    status: ClassVar[AnalysisStatus] = AnalysisStatus.IDLE


class Processing(_State):
    """Holding the single analysis slot."""

    kind: Literal["processing"] = "processing"
    status: ClassVar[AnalysisStatus] = AnalysisStatus.PROCESSING


class Completed(_State):
    """Analysis succeeded; ``summary`` is Markdown with optional LaTeX."""

    kind: Literal["completed"] = "completed"
    status: ClassVar[AnalysisStatus] = AnalysisStatus.COMPLETED
    summary: str


class Failed(_State):
    """Analysis failed with a human-readable ``message``."""

    kind: Literal["error"] = "error"
    status: ClassVar[AnalysisStatus] = AnalysisStatus.ERROR
    message: str = Field(min_length=1)


class Interrupted(_State):
    """Restored from history after an analysis was cut short.

    Reports IDLE, keeps whatever summary the record already had, and explains
    why the document will not be analyzed again.
    """

    kind: Literal["interrupted"] = "interrupted"
    status: ClassVar[AnalysisStatus] = AnalysisStatus.IDLE
    message: str = INTERRUPTED_MESSAGE
    summary: str | None = None


DocumentState = Annotated[
    Union[Idle, Processing, Completed, Failed, Interrupted],
    Field(discriminator="kind"),
]

Outcome = Union[Completed, Failed]
"""What the scheduler may apply to a PROCESSING document."""

# ---------------------------------------------------------------------------
# Tracked document
# ---------------------------------------------------------------------------


class FileHandle(Protocol):
    """Live access to an uploaded file's bytes.  Never persisted."""

    name: str
    mime_type: str

    def read_bytes(self) -> bytes: ...


@dataclass(frozen=True)
class TrackedDocument:
    """One uploaded or restored document.

    ``handle`` is only present for documents added in the current session.
    Restored documents never get one back, so they can be listed and removed
    but never analyzed again.

    Attributes:
        id:           UUID assigned at intake; unique and never reused.
        display_name: File name shown to the user.
        byte_size:    File size in bytes (``None`` for old history records).
        created_at:   Intake time in epoch milliseconds; display order only.
        state:        Current lifecycle state.
        handle:       Live file handle, or ``None`` after a restore.
    """

    id: str
    display_name: str
    byte_size: int | None
    created_at: int
    state: DocumentState = field(default_factory=Idle)
    handle: FileHandle | None = field(default=None, repr=False, compare=False)

    @property
    def status(self) -> AnalysisStatus:
        return self.state.status

    @property
    def summary_text(self) -> str | None:
        if isinstance(self.state, (Completed, Interrupted)):
            return self.state.summary
        return None

    @property
    def error_message(self) -> str | None:
        if isinstance(self.state, (Failed, Interrupted)):
            return self.state.message
        return None

    @property
    def has_handle(self) -> bool:
        return self.handle is not None

    @property
    def is_eligible(self) -> bool:
        """True if the scheduler may pick this document up."""
        return isinstance(self.state, Idle) and self.has_handle

    @property
    def can_retry(self) -> bool:
        """True if a retry would succeed (failed and the bytes are still here)."""
        return isinstance(self.state, Failed) and self.has_handle


# ---------------------------------------------------------------------------
# Persisted projection
# ---------------------------------------------------------------------------


class StoredDocument(BaseModel):
    """One history record as written to the persistent store.

    The live file handle is never part of this projection.
    """

    id: str = Field(min_length=1)
    file_name: str
    file_size: int | None = None
    status: AnalysisStatus
    summary: str | None = None
    error: str | None = None
    upload_timestamp: int

    @model_validator(mode="after")
    def _validate_payload(self) -> "StoredDocument":
        if self.status is AnalysisStatus.COMPLETED and self.summary is None:
            raise ValueError("summary is required when status is COMPLETED")
        if self.status is AnalysisStatus.ERROR and not self.error:
            raise ValueError("error is required when status is ERROR")
        return self


# ---------------------------------------------------------------------------
# Batch reporting
# ---------------------------------------------------------------------------


class FailedDocument(BaseModel):
    """A document that ended a batch run in ERROR."""

    id: str
    file_name: str
    error: str
    can_retry: bool


class BatchReport(BaseModel):
    """Aggregate result of one ``analyze`` run."""

    completed: int
    failed: int
    skipped: int
    failed_documents: list[FailedDocument]


# ---------------------------------------------------------------------------
# Config (dataclass, not pydantic; holds runtime settings)
# ---------------------------------------------------------------------------

#: Only used by the text-extraction modes.  At ~4 characters per token this
#: keeps the inlined document text near 50k tokens.
_DEFAULT_MAX_CHARS = 200_000

Extractor = Literal["attach", "auto", "docling", "pypdf"]


@dataclass
class Config:
    """Runtime configuration for pdfdigest.

    All fields correspond to CLI flags.

    Attributes:
        base_url:          OpenAI-compatible API base URL (OpenRouter by
                           default; ``http://localhost:1234/v1`` for LM Studio).
        model:             Model identifier passed to the API.  Must accept
                           PDF file parts when ``extractor`` is ``attach``.
        api_key:           Backend API key.  ``None`` falls back to the
                           ``LLM_API_KEY`` environment variable, then to the
                           dummy ``"lm-studio"``.
        timeout_s:         Seconds before a single LLM request is abandoned.
        max_output_tokens: Generation cap per call; ``None`` means no cap.
        language:          Language the summaries are written in.
        extractor:         ``attach`` sends the PDF itself to the model.
                           ``auto`` (docling with pypdf fallback), ``docling``
                           and ``pypdf`` extract text locally and inline it,
                           for backends that cannot read PDFs.
        max_chars:         Character cap on inlined text (extraction modes).
        history_file:      JSON file holding the persisted history.
        dry_run:           List what would be analyzed without calling the LLM.
        verbose:           DEBUG-level logging.
    """

    base_url: str = "https://openrouter.ai/api/v1"
    model: str = "google/gemini-2.5-flash"
    api_key: str | None = None
    timeout_s: int = 120
    max_output_tokens: int | None = None
    language: str = "English"
    extractor: Extractor = "attach"
    max_chars: int = _DEFAULT_MAX_CHARS
    history_file: Path = Path(".pdfdigest/history.json")
    dry_run: bool = False
    verbose: bool = False


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ParseError(Exception):
    """Raised when local text extraction from a PDF fails."""


class LLMError(Exception):
    """Raised when an LLM call fails after transient retries."""


class AnalysisError(Exception):
    """Raised by the document analysis operation; recorded on the document."""


class AggregationError(Exception):
    """Raised when synthesizing a global summary fails."""


class RestoreError(Exception):
    """Raised when persisted history cannot be decoded.

    ``HistoryStore.load`` catches it and starts with an empty history.
    """
