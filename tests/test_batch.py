"""Tests for pdfdigest/batch.py — batch runs over a session (analysis mocked)."""

import asyncio
import logging

import pytest

from pdfdigest.batch import run_batch
from pdfdigest.models import AnalysisStatus
from pdfdigest.session import DigestSession
from pdfdigest.store import HistoryStore, JsonFileStorage


class ScriptedAnalyzer:
    """Fails the first call for any payload listed in ``fail_once``."""

    def __init__(self, fail_once=(), always_fail=()):
        self.fail_once = set(fail_once)
        self.always_fail = set(always_fail)
        self.calls = []

    async def __call__(self, data, mime_type):
        self.calls.append(data)
        if data in self.always_fail:
            raise RuntimeError(f"cannot read {data.decode()}")
        if data in self.fail_once:
            self.fail_once.discard(data)
            raise RuntimeError("quota exceeded")
        return f"## Overview\n{data.decode()}"


async def _no_synthesis(summaries):
    raise AssertionError("synthesis must not be called")


@pytest.fixture
def pdf_dir(tmp_path):
    src = tmp_path / "pdfs"
    src.mkdir()
    for name in ("a", "b", "c"):
        (src / f"{name}.pdf").write_bytes(name.encode())
    (src / "notes.txt").write_text("not a pdf")
    return src


def _session(tmp_path, analyzer):
    history = HistoryStore(JsonFileStorage(tmp_path / "history.json"))
    return DigestSession(history, analyzer, _no_synthesis)


def test_run_batch_completes_all(tmp_path, pdf_dir):
    analyzer = ScriptedAnalyzer()
    session = _session(tmp_path, analyzer)
    report = asyncio.run(run_batch(session, [pdf_dir]))

    assert report.completed == 3
    assert report.failed == 0
    assert analyzer.calls == [b"a", b"b", b"c"]
    assert all(d.status is AnalysisStatus.COMPLETED for d in session.documents())


def test_run_batch_reports_failures_without_retrying(tmp_path, pdf_dir):
    analyzer = ScriptedAnalyzer(fail_once={b"b"})
    session = _session(tmp_path, analyzer)
    report = asyncio.run(run_batch(session, [pdf_dir]))

    assert report.completed == 2
    assert report.failed == 1
    (failed,) = report.failed_documents
    assert failed.file_name == "b.pdf"
    assert failed.error == "quota exceeded"
    assert failed.can_retry is True
    assert analyzer.calls.count(b"b") == 1


def test_run_batch_retry_failed_round(tmp_path, pdf_dir, caplog):
    analyzer = ScriptedAnalyzer(fail_once={b"b"}, always_fail={b"c"})
    session = _session(tmp_path, analyzer)
    with caplog.at_level(logging.INFO, logger="pdfdigest"):
        report = asyncio.run(run_batch(session, [pdf_dir], retry_failed=True))

    assert "Retrying 2 failed document(s)" in caplog.text
    assert report.completed == 2
    assert [f.file_name for f in report.failed_documents] == ["c.pdf"]
    assert analyzer.calls.count(b"b") == 2
    assert analyzer.calls.count(b"c") == 2


def test_run_batch_counts_skipped_inputs(tmp_path, pdf_dir):
    session = _session(tmp_path, ScriptedAnalyzer())
    report = asyncio.run(run_batch(session, [pdf_dir / "a.pdf", pdf_dir / "notes.txt"]))
    assert report.completed == 1
    assert report.skipped == 1


def test_run_batch_dry_run_analyzes_nothing(tmp_path, pdf_dir, caplog):
    analyzer = ScriptedAnalyzer()
    session = _session(tmp_path, analyzer)
    with caplog.at_level(logging.INFO, logger="pdfdigest"):
        report = asyncio.run(run_batch(session, [pdf_dir], dry_run=True))

    assert analyzer.calls == []
    assert len(session.registry) == 0
    assert report.skipped == 3
    assert "Would analyze" in caplog.text


def test_run_batch_report_ignores_earlier_history(tmp_path, pdf_dir):
    first = _session(tmp_path, ScriptedAnalyzer())
    asyncio.run(run_batch(first, [pdf_dir / "a.pdf"]))
    first.close()

    second = _session(tmp_path, ScriptedAnalyzer())
    report = asyncio.run(run_batch(second, [pdf_dir / "b.pdf"]))
    assert report.completed == 1
    assert len(second.registry) == 2
