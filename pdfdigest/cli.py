"""Command-line interface for pdfdigest.

Entry point: ``pdfdigest`` (configured in ``pyproject.toml``).

Usage:
    pdfdigest analyze PATH... [--retry-failed] [--synthesize] [--export FILE]
    pdfdigest history
    pdfdigest remove ID
    pdfdigest clear
    pdfdigest export FILE
    pdfdigest synthesize [--export FILE]

Common options (before the subcommand):
    --model, --base-url, --timeout, --max-output-tokens, --language,
    --extractor, --max-chars, --history-file, --verbose/--no-verbose,
    --log-file.

History is kept in ``--history-file`` between runs.  Documents restored from
history have lost their file handle: they can be listed, exported and
removed, but not analyzed again.

Before any LLM work the CLI performs a lightweight reachability check against
the root host of the configured ``--base-url``.
"""

import argparse
import asyncio
import logging
import os
import sys
import urllib.error
import urllib.parse
import urllib.request
from pathlib import Path

from dotenv import load_dotenv

from pdfdigest.batch import run_batch
from pdfdigest.llm import create_client
from pdfdigest.log import setup_logging
from pdfdigest.models import AggregationError, AnalysisStatus, Config, _DEFAULT_MAX_CHARS
from pdfdigest.pipeline import build_document_analyzer, build_summary_synthesizer
from pdfdigest.renderer import format_size, render_markdown_report
from pdfdigest.session import DigestSession
from pdfdigest.store import HistoryStore, JsonFileStorage

logger = logging.getLogger(__name__)

_DEFAULT_MODEL = Config.model


def _positive_int(value: str) -> int:
    parsed = int(value)
    if parsed < 1:
        raise argparse.ArgumentTypeError("must be >= 1")
    return parsed


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main(argv: list[str] | None = None) -> None:
    """Parse CLI arguments, configure logging, and run the subcommand."""
    load_dotenv()

    parser = _build_parser()
    args = parser.parse_args(argv)

    setup_logging(
        verbose=args.verbose,
        log_file=Path(args.log_file) if args.log_file else None,
    )

    config = Config(
        base_url=args.base_url,
        model=args.model,
        timeout_s=args.timeout,
        max_output_tokens=args.max_output_tokens,
        language=args.language,
        extractor=args.extractor,
        max_chars=args.max_chars,
        history_file=Path(args.history_file),
        dry_run=getattr(args, "dry_run", False),
        verbose=args.verbose,
    )

    session = _open_session(config)
    try:
        args.handler(args, config, session)
    finally:
        session.close()


def _open_session(config: Config) -> DigestSession:
    client = create_client(config)
    return DigestSession(
        history=HistoryStore(JsonFileStorage(config.history_file)),
        analyze=build_document_analyzer(config, client),
        synthesize=build_summary_synthesizer(config, client),
    )


# ---------------------------------------------------------------------------
# Subcommands
# ---------------------------------------------------------------------------


def _cmd_analyze(args: argparse.Namespace, config: Config, session: DigestSession) -> None:
    """Queue PDFs, drain the queue, then optionally synthesize and export."""
    paths = [Path(p) for p in args.paths]
    missing = [p for p in paths if not p.exists()]
    for path in missing:
        logger.error("Not found: %s", path)
    if missing:
        sys.exit(1)

    if not config.dry_run:
        _check_backend(config.base_url)

    report = asyncio.run(
        _analyze(session, paths, config, args.retry_failed, args.synthesize)
    )

    logger.info(
        "Done — completed: %d, failed: %d, skipped: %d",
        report.completed,
        report.failed,
        report.skipped,
    )

    if args.export and not config.dry_run:
        session.export(Path(args.export))

    if args.print_summaries:
        print(render_markdown_report(session.documents(), session.global_summary), end="")

    if report.failed_documents:
        logger.error("Failed documents:")
        for fd in report.failed_documents:
            hint = "" if fd.can_retry else " (file no longer available)"
            logger.error("  %s [%s]: %s%s", fd.file_name, fd.id[:8], fd.error, hint)
        logger.error("Run again with --retry-failed to retry them.")
        sys.exit(1)


async def _analyze(
    session: DigestSession,
    paths: list[Path],
    config: Config,
    retry_failed: bool,
    synthesize: bool,
):
    report = await run_batch(session, paths, retry_failed=retry_failed, dry_run=config.dry_run)
    if synthesize and not config.dry_run:
        await _synthesize(session)
    return report


async def _synthesize(session: DigestSession) -> str | None:
    """Synthesize the global summary; failures are logged, not raised."""
    if not session.can_synthesize:
        logger.warning("A global summary needs at least two completed documents")
        return None
    try:
        return await session.synthesize()
    except AggregationError as exc:
        logger.error("Global summary failed: %s", exc)
        return None


def _cmd_synthesize(args: argparse.Namespace, config: Config, session: DigestSession) -> None:
    if not session.can_synthesize:
        logger.error("A global summary needs at least two completed documents")
        sys.exit(1)
    _check_backend(config.base_url)
    summary = asyncio.run(_synthesize(session))
    if summary is None:
        sys.exit(1)
    if args.export:
        session.export(Path(args.export))
    print(summary)


def _cmd_history(args: argparse.Namespace, config: Config, session: DigestSession) -> None:
    documents = session.documents()
    if not documents:
        print("History is empty.")
        return
    for doc in documents:
        print(f"{doc.id[:8]}  {doc.status.value:<10}  {format_size(doc.byte_size):>9}  {doc.display_name}")
        if doc.error_message:
            print(f"          {doc.error_message}")
        if doc.status is AnalysisStatus.ERROR and not doc.can_retry:
            print("          retry unavailable: the original file is not loaded; run `analyze` on it again")


def _cmd_remove(args: argparse.Namespace, config: Config, session: DigestSession) -> None:
    doc_id = _resolve_id(session, args.id)
    name = session.registry.get(doc_id).display_name
    session.remove(doc_id)
    logger.info("Removed %s", name)


def _cmd_clear(args: argparse.Namespace, config: Config, session: DigestSession) -> None:
    count = len(session.registry)
    session.clear_history()
    session.history.clear()
    logger.info("Cleared %d document(s) from history", count)


def _cmd_export(args: argparse.Namespace, config: Config, session: DigestSession) -> None:
    if not session.registry.completed():
        logger.error("Nothing to export: no completed documents in history")
        sys.exit(1)
    session.export(Path(args.file))


def _resolve_id(session: DigestSession, prefix: str) -> str:
    """Resolve a full id or unique id prefix; exits on no/ambiguous match."""
    matches = [d.id for d in session.registry if d.id.startswith(prefix)]
    if len(matches) != 1:
        reason = "No document" if not matches else "Ambiguous id"
        logger.error("%s matching %r", reason, prefix)
        sys.exit(1)
    return matches[0]


# ---------------------------------------------------------------------------
# Backend health check
# ---------------------------------------------------------------------------


def _check_backend(base_url: str) -> None:
    """Verify that the LLM backend (OpenRouter or LM Studio) is reachable."""
    parsed = urllib.parse.urlparse(base_url)
    health_url = f"{parsed.scheme}://{parsed.netloc}"
    try:
        with urllib.request.urlopen(health_url, timeout=5):
            pass
    except urllib.error.HTTPError:
        # Any HTTP response (4xx/5xx) means the server is up.
        return
    except Exception as exc:
        logger.error("Cannot reach LLM backend at %s\n  Details: %s", health_url, exc)
        sys.exit(1)


# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pdfdigest",
        description=(
            "Summarize PDF documents with an LLM, one at a time, and keep a "
            "history of the results."
        ),
    )

    _default_model = os.environ.get("LLM_MODEL", _DEFAULT_MODEL)
    parser.add_argument(
        "--model",
        metavar="MODEL",
        default=_default_model,
        help=f"LLM model identifier (default: LLM_MODEL env var, currently {_default_model!r}).",
    )
    parser.add_argument(
        "--base-url",
        metavar="URL",
        default=Config.base_url,
        help=f"OpenAI-compatible API base URL (default: {Config.base_url}).",
    )
    parser.add_argument(
        "--timeout",
        metavar="S",
        type=_positive_int,
        default=Config.timeout_s,
        help=f"LLM call timeout in seconds (default: {Config.timeout_s}).",
    )
    parser.add_argument(
        "--max-output-tokens",
        metavar="N",
        type=_positive_int,
        default=None,
        help="Maximum tokens the LLM may generate per call (default: no limit).",
    )
    parser.add_argument(
        "--language",
        metavar="LANG",
        default=Config.language,
        help=f"Language the summaries are written in (default: {Config.language}).",
    )
    parser.add_argument(
        "--extractor",
        choices=["attach", "auto", "docling", "pypdf"],
        default=Config.extractor,
        help=(
            "How the PDF reaches the model: 'attach' sends the file itself "
            "(default); 'auto', 'docling' and 'pypdf' extract text locally for "
            "models that cannot read PDFs."
        ),
    )
    parser.add_argument(
        "--max-chars",
        metavar="N",
        type=_positive_int,
        default=_DEFAULT_MAX_CHARS,
        help=(
            f"Maximum characters of extracted text sent to the LLM "
            f"(default: {_DEFAULT_MAX_CHARS:,}; text extraction modes only)."
        ),
    )
    parser.add_argument(
        "--history-file",
        metavar="FILE",
        default=os.environ.get("PDFDIGEST_HISTORY", str(Config.history_file)),
        help=f"JSON file holding the analysis history (default: {Config.history_file}).",
    )
    parser.add_argument(
        "--verbose",
        action=argparse.BooleanOptionalAction,
        default=False,
        help="Enable DEBUG-level logging.",
    )
    parser.add_argument(
        "--log-file",
        metavar="FILE",
        default=None,
        help="Also write log output to FILE.",
    )

    commands = parser.add_subparsers(dest="command", required=True, metavar="COMMAND")

    analyze = commands.add_parser("analyze", help="Analyze PDF files or directories.")
    analyze.add_argument("paths", nargs="+", metavar="PATH", help="PDF files or directories to scan.")
    analyze.add_argument(
        "--retry-failed",
        action="store_true",
        default=False,
        help="Retry documents that failed in this run once more.",
    )
    analyze.add_argument(
        "--synthesize",
        action="store_true",
        default=False,
        help="Synthesize a global summary when two or more documents are completed.",
    )
    analyze.add_argument(
        "--export",
        metavar="FILE",
        default=None,
        help="Write a report to FILE (.md for Markdown, anything else for HTML).",
    )
    analyze.add_argument(
        "--print",
        dest="print_summaries",
        action="store_true",
        default=False,
        help="Print completed summaries to stdout as Markdown.",
    )
    analyze.add_argument(
        "--dry-run",
        action="store_true",
        default=False,
        help="List PDFs that would be analyzed without calling the LLM.",
    )
    analyze.set_defaults(handler=_cmd_analyze)

    history = commands.add_parser("history", help="List documents in the history, newest first.")
    history.set_defaults(handler=_cmd_history)

    remove = commands.add_parser("remove", help="Remove one document from the history.")
    remove.add_argument("id", metavar="ID", help="Document id or unique id prefix.")
    remove.set_defaults(handler=_cmd_remove)

    clear = commands.add_parser("clear", help="Clear the whole history.")
    clear.set_defaults(handler=_cmd_clear)

    export = commands.add_parser("export", help="Export completed summaries as a report.")
    export.add_argument("file", metavar="FILE", help="Output file (.md or .html).")
    export.set_defaults(handler=_cmd_export)

    synthesize = commands.add_parser(
        "synthesize", help="Synthesize a global summary from completed documents in the history."
    )
    synthesize.add_argument(
        "--export",
        metavar="FILE",
        default=None,
        help="Also write a report including the global summary to FILE.",
    )
    synthesize.set_defaults(handler=_cmd_synthesize)

    return parser


if __name__ == "__main__":
    main()
