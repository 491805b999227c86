"""
Best-effort extraction chain.

Each source format is read by an ordered list of strategies. A strategy
either returns an IntermediateDocument or raises ExtractionError; the chain
then moves on to the next one. The last strategy is the salvage step and
must always succeed, so extraction as a whole never fails.
"""

import logging
from typing import Callable

from app.models.document import IntermediateDocument

logger = logging.getLogger(__name__)

Strategy = Callable[[bytes], IntermediateDocument]


class ExtractionError(Exception):
    """Raised by a strategy when the source does not match its format."""

    def __init__(self, message: str, strategy: str = ""):
        super().__init__(message)
        self.message = message
        self.strategy = strategy


def extract_with_fallback(content: bytes, *strategies: Strategy) -> IntermediateDocument:
    """
    Run strategies in order and return the first document produced.

    Only ExtractionError moves the chain forward; any other exception is a
    bug in the strategy and propagates. The final strategy is called without
    a guard.
    """
    if not strategies:
        raise ValueError("extract_with_fallback needs at least one strategy")

    *primary, salvage = strategies
    for strategy in primary:
        try:
            return strategy(content)
        except ExtractionError as e:
            name = getattr(strategy, "__name__", repr(strategy))
            logger.warning(
                f"{name} failed ({e.message}); "
                "falling back to the next strategy"
            )
    return salvage(content)
