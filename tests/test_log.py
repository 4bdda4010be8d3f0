"""Tests for pdfdigest/log.py — logging setup."""

import logging

from pdfdigest.log import setup_logging


# ---------------------------------------------------------------------------
# setup_logging  (logger state reset handled by conftest._reset_pdfdigest_logger)
# ---------------------------------------------------------------------------


def test_setup_logging_adds_stderr_handler():
    setup_logging()
    logger = logging.getLogger("pdfdigest")
    stream_handlers = [h for h in logger.handlers if type(h) is logging.StreamHandler]
    assert len(stream_handlers) == 1
    assert logger.propagate is False


def test_setup_logging_default_level_is_info():
    setup_logging()
    assert logging.getLogger("pdfdigest").level == logging.INFO


def test_setup_logging_verbose_sets_debug_level():
    setup_logging(verbose=True)
    assert logging.getLogger("pdfdigest").level == logging.DEBUG


def test_setup_logging_file_handler_created_with_parents(tmp_path):
    log_file = tmp_path / "deep" / "nested" / "run.log"
    setup_logging(log_file=log_file)
    logger = logging.getLogger("pdfdigest")
    file_handlers = [h for h in logger.handlers if isinstance(h, logging.FileHandler)]
    assert len(file_handlers) == 1
    assert log_file.exists()


def test_setup_logging_no_file_handler_by_default():
    setup_logging()
    logger = logging.getLogger("pdfdigest")
    assert not [h for h in logger.handlers if isinstance(h, logging.FileHandler)]


def test_setup_logging_is_idempotent():
    setup_logging()
    setup_logging()
    assert len(logging.getLogger("pdfdigest").handlers) == 1


def test_child_loggers_write_to_file(tmp_path):
    log_file = tmp_path / "run.log"
    setup_logging(log_file=log_file)
    logging.getLogger("pdfdigest.scheduler").info("Analyzing lecture.pdf")
    for h in logging.getLogger("pdfdigest").handlers:
        h.flush()
    text = log_file.read_text(encoding="utf-8")
    assert "INFO    pdfdigest.scheduler: Analyzing lecture.pdf" in text
