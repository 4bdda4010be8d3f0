"""Tests for pdfdigest/intake.py — PDF discovery and registry intake."""

import logging

from pdfdigest.intake import PdfFile, collect_pdfs, find_pdfs, intake_files, is_pdf
from pdfdigest.models import AnalysisStatus


def _write(path, data=b"%PDF-1.4"):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
    return path


def test_is_pdf(tmp_path):
    assert is_pdf(_write(tmp_path / "a.pdf"))
    assert is_pdf(_write(tmp_path / "UPPER.PDF"))
    assert not is_pdf(_write(tmp_path / "notes.txt"))
    assert not is_pdf(tmp_path / "missing.pdf")


def test_find_pdfs_recurses_and_sorts(tmp_path):
    _write(tmp_path / "b.pdf")
    _write(tmp_path / "sub" / "a.pdf")
    _write(tmp_path / "sub" / "readme.md")
    assert find_pdfs(tmp_path) == [tmp_path / "b.pdf", tmp_path / "sub" / "a.pdf"]


def test_collect_pdfs_dedupes_and_rejects(tmp_path):
    a = _write(tmp_path / "a.pdf")
    txt = _write(tmp_path / "notes.txt")
    accepted, rejected = collect_pdfs([a, tmp_path, txt])
    assert accepted == [a]
    assert rejected == [txt]


def test_pdf_file_handle(tmp_path):
    handle = PdfFile(_write(tmp_path / "lecture.pdf", b"%PDF-data"))
    assert handle.name == "lecture.pdf"
    assert handle.size == 9
    assert handle.mime_type == "application/pdf"
    assert handle.read_bytes() == b"%PDF-data"


def test_intake_files_adds_idle_documents(tmp_path, registry, caplog):
    pdf = _write(tmp_path / "lecture.pdf", b"x" * 409_600)
    image = _write(tmp_path / "photo.png")

    with caplog.at_level(logging.WARNING, logger="pdfdigest"):
        ids = intake_files(registry, [pdf, image])

    (doc_id,) = ids
    doc = registry.get(doc_id)
    assert doc.status is AnalysisStatus.IDLE
    assert doc.display_name == "lecture.pdf"
    assert doc.byte_size == 409_600
    assert doc.handle.read_bytes() == b"x" * 409_600
    assert "Skipping non-PDF input" in caplog.text
    assert len(registry) == 1


def test_intake_files_nothing_accepted(tmp_path, registry):
    assert intake_files(registry, [_write(tmp_path / "a.docx")]) == []
    assert len(registry) == 0
