"""Shared pytest fixtures for the pdfdigest test suite."""

import asyncio
import itertools
import logging
from dataclasses import dataclass

import pytest

from pdfdigest.registry import FileRegistry


# ---------------------------------------------------------------------------
# Logger isolation
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_pdfdigest_logger():
    """Clear the pdfdigest logger between tests.

    Tests that call ``main()`` trigger ``setup_logging()``, which attaches
    handlers and sets ``propagate=False``.  Without this fixture the state
    leaks into subsequent tests and breaks ``caplog`` capture.
    """
    logger = logging.getLogger("pdfdigest")
    for h in logger.handlers[:]:
        try:
            h.close()
        except Exception:
            pass
        logger.removeHandler(h)
    logger.propagate = True
    yield
    for h in logger.handlers[:]:
        try:
            h.close()
        except Exception:
            pass
        logger.removeHandler(h)
    logger.propagate = True


# ---------------------------------------------------------------------------
# In-memory file handles and a deterministic registry
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FakeHandle:
    """In-memory stand-in for an uploaded PDF."""

    name: str
    data: bytes = b"%PDF-1.4 fake"
    mime_type: str = "application/pdf"

    def read_bytes(self) -> bytes:
        return self.data


@pytest.fixture
def make_handle():
    def _make(name: str = "notes.pdf", data: bytes = b"%PDF-1.4 fake") -> FakeHandle:
        return FakeHandle(name=name, data=data)

    return _make


@pytest.fixture
def registry() -> FileRegistry:
    """Registry whose clock ticks 1 ms per intake, starting at 1000."""
    ticks = itertools.count(1000)
    return FileRegistry(clock=lambda: next(ticks))


# ---------------------------------------------------------------------------
# Controllable analysis operation
# ---------------------------------------------------------------------------


class GatedAnalyzer:
    """Async analysis operation whose calls finish only when released.

    Each call is recorded in ``calls`` (payload bytes) and parks until the
    test calls ``succeed(text)`` or ``fail(message)``, which resolve the
    oldest pending call.  Must be created inside a running event loop.
    """

    def __init__(self) -> None:
        self.calls: list[bytes] = []
        self._pending: list[asyncio.Future] = []

    async def __call__(self, data: bytes, mime_type: str) -> str:
        assert mime_type == "application/pdf"
        self.calls.append(data)
        future = asyncio.get_running_loop().create_future()
        self._pending.append(future)
        return await future

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def succeed(self, text: str) -> None:
        self._pending.pop(0).set_result(text)
        await _settle()

    async def fail(self, message: str) -> None:
        self._pending.pop(0).set_exception(RuntimeError(message))
        await _settle()


async def _settle() -> None:
    """Let woken tasks run to their next suspension point."""
    for _ in range(5):
        await asyncio.sleep(0)


@pytest.fixture
def analyzer() -> GatedAnalyzer:
    return GatedAnalyzer()


@pytest.fixture
def settle():
    return _settle
