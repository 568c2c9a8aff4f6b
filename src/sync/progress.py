"""Coarse-grained progress events.

The resolver and the downloader report to an optional sink; a sink is never
part of control flow, and an exception raised by one is logged and dropped.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional

logger = logging.getLogger(__name__)


@dataclass
class ProgressEvent:
    """One progress notification."""
    phase: str  # "refreshing" | "analyzing" | "downloading" | "completed"
    processed: int
    total: int
    package: Optional[str] = None
    depth: Optional[int] = None
    message: str = ""

    @property
    def percent(self) -> int:
        if self.total <= 0:
            return 100
        return min(100, round(self.processed * 100 / self.total))


ProgressSink = Callable[[ProgressEvent], None]


def emit(sink: Optional[ProgressSink], event: ProgressEvent) -> None:
    """Deliver ``event`` to ``sink`` if one is set."""
    if sink is None:
        return
    try:
        sink(event)
    except Exception:  # pylint: disable=broad-exception-caught
        logger.warning("Progress sink failed on %s event", event.phase, exc_info=True)


def logging_sink(event: ProgressEvent) -> None:
    """Sink that writes events to the log at INFO."""
    logger.info(
        "[%s] %d/%d (%d%%) %s",
        event.phase, event.processed, event.total, event.percent, event.message,
    )
