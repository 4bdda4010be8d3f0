"""Global summary synthesis over completed document summaries."""

import logging
from collections.abc import Awaitable, Callable, Sequence

from pdfdigest.models import AggregationError

logger = logging.getLogger(__name__)

SynthesizeFn = Callable[[Sequence[str]], Awaitable[str]]

MIN_SUMMARIES = 2


class GlobalAggregator:
    """Call the synthesis operation on a snapshot of summaries.

    Nothing is cached: every call goes to the backend, and the caller decides
    where the resulting string lives.
    """

    def __init__(self, synthesize: SynthesizeFn) -> None:
        self._synthesize = synthesize

    async def synthesize(self, summaries: Sequence[str]) -> str:
        """Return one summary synthesizing ``summaries``.

        Raises:
            ValueError:       if fewer than two summaries are given.
            AggregationError: if the synthesis operation fails.
        """
        snapshot = list(summaries)
        if len(snapshot) < MIN_SUMMARIES:
            raise ValueError(
                f"At least {MIN_SUMMARIES} summaries are required, got {len(snapshot)}"
            )
        logger.info("Synthesizing a global summary from %d summaries", len(snapshot))
        try:
            return await self._synthesize(snapshot)
        except AggregationError:
            raise
        except Exception as exc:
            raise AggregationError(str(exc) or "Global summary synthesis failed.") from exc
