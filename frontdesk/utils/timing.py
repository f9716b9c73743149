"""Elapsed-time measurement for awaited collaborator calls."""

from __future__ import annotations

import time
from contextlib import contextmanager
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from collections.abc import Generator

logger = structlog.get_logger(__name__)


@contextmanager
def timed(label: str, warn_after: float | None = None) -> Generator[dict[str, float], None, None]:
    """Context manager that measures elapsed wall-clock time.

    Logs at debug, or at warning once ``warn_after`` seconds are exceeded.

    Usage::

        with timed("membership_load") as t:
            await fetch()
        print(t["elapsed"])  # seconds as float
    """
    result: dict[str, float] = {"elapsed": 0.0}
    start = time.monotonic()
    try:
        yield result
    finally:
        result["elapsed"] = time.monotonic() - start
        if warn_after is not None and result["elapsed"] > warn_after:
            logger.warning("slow_call", label=label, elapsed_seconds=result["elapsed"])
        else:
            logger.debug("timed", label=label, elapsed_seconds=result["elapsed"])
