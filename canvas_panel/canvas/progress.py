"""
Macro Progress Reporting
========================

Progress events are delivered to a sink passed into each macro call.
"""

import logging
from typing import Callable, List, Optional
from pydantic import BaseModel

logger = logging.getLogger(__name__)


class ProgressEvent(BaseModel):
    """One step of a running macro."""
    operation: str
    stage: str
    current: int = 0
    total: int = 0
    widget_id: Optional[str] = None
    message: str = ""


ProgressSink = Callable[[ProgressEvent], None]


def log_progress(event: ProgressEvent) -> None:
    """Default sink: write the event to the log."""
    target = f" widget={event.widget_id}" if event.widget_id else ""
    logger.info(
        f"[PROGRESS] {event.operation}/{event.stage} "
        f"{event.current}/{event.total}{target} {event.message}".rstrip()
    )


class ProgressRecorder:
    """Sink that keeps every event it receives."""

    def __init__(self):
        self.events: List[ProgressEvent] = []

    def __call__(self, event: ProgressEvent) -> None:
        self.events.append(event)

    def stages(self) -> List[str]:
        return [e.stage for e in self.events]
