"""The two LLM-backed operations the core consumes.

* document analysis: ``(bytes, mime_type) -> summary`` for one PDF
* summary synthesis: ``(summaries) -> global summary``

Both exist as blocking functions that wrap every failure into the error type
of their boundary, and as async factories (``build_document_analyzer``,
``build_summary_synthesizer``) that run the blocking call in a worker thread
so the event loop and the registry stay single-threaded.
"""

import asyncio
import logging
from collections.abc import Sequence

from pdfdigest.aggregator import SynthesizeFn
from pdfdigest.llm import Attachment, LMStudioClient, call_llm, create_client
from pdfdigest.models import (
    NO_CONTENT_NOTICE,
    AggregationError,
    AnalysisError,
    Config,
)
from pdfdigest.parser import extract_text
from pdfdigest.prompts import (
    build_analysis_prompt,
    build_synthesis_prompt,
    build_text_analysis_prompt,
)
from pdfdigest.scheduler import AnalyzeFn

logger = logging.getLogger(__name__)

_ATTACHMENT_NAME = "document.pdf"


def analyze_document(
    data: bytes,
    mime_type: str,
    config: Config,
    client: LMStudioClient | None = None,
) -> str:
    """Summarize one PDF and return Markdown (with LaTeX) text.

    With ``config.extractor == "attach"`` the PDF itself is attached to the
    request; otherwise its text is extracted locally and inlined.

    Raises:
        AnalysisError: wraps any ``ParseError``, ``LLMError`` or other
            exception that occurs.
    """
    try:
        return _run_analysis(data, mime_type, config, client or create_client(config))
    except AnalysisError:
        raise
    except Exception as e:
        raise AnalysisError(str(e) or "PDF analysis failed.") from e


def _run_analysis(data: bytes, mime_type: str, config: Config, client: LMStudioClient) -> str:
    if config.extractor == "attach":
        prompt = build_analysis_prompt(config.language)
        attachments = [Attachment(filename=_ATTACHMENT_NAME, mime_type=mime_type, data=data)]
        logger.info("Attaching PDF (%s bytes)", f"{len(data):,}")
    else:
        text = extract_text(
            data,
            max_chars=config.max_chars,
            extractor=config.extractor,
            name=_ATTACHMENT_NAME,
        )
        prompt = build_text_analysis_prompt(config.language, text)
        attachments = None
        logger.info(
            "Building prompt (%s chars, ~%s tokens)",
            f"{len(prompt):,}",
            f"{len(prompt) // 4:,}",
        )

    summary = call_llm(client, prompt, attachments)
    if not summary:
        logger.warning("Model returned an empty summary")
        return NO_CONTENT_NOTICE
    return summary


def synthesize_summaries(
    summaries: Sequence[str],
    config: Config,
    client: LMStudioClient | None = None,
) -> str:
    """Synthesize one global summary from several document summaries.

    Raises:
        AggregationError: wraps any failure of the LLM call.
    """
    try:
        client = client or create_client(config)
        text = call_llm(client, build_synthesis_prompt(summaries, config.language))
    except Exception as e:
        raise AggregationError(str(e) or "Global summary synthesis failed.") from e
    if not text:
        raise AggregationError("The model returned an empty global summary.")
    return text


def build_document_analyzer(config: Config, client: LMStudioClient | None = None) -> AnalyzeFn:
    """Return the async document analysis operation used by the scheduler."""
    client = client or create_client(config)

    async def analyze(data: bytes, mime_type: str) -> str:
        return await asyncio.to_thread(analyze_document, data, mime_type, config, client)

    return analyze


def build_summary_synthesizer(config: Config, client: LMStudioClient | None = None) -> SynthesizeFn:
    """Return the async summary synthesis operation used by the aggregator."""
    client = client or create_client(config)

    async def synthesize(summaries: Sequence[str]) -> str:
        return await asyncio.to_thread(synthesize_summaries, list(summaries), config, client)

    return synthesize
