"""Progress reporting for a conversion run.

Sinks are injected into the client, analyzer and scheduler; nothing here
is global. Sinks are purely observational: they never slow down or fail
the run, so every implementation must be cheap and must not raise.
"""

import logging
import sys
import threading
from typing import Optional, Protocol, TextIO, runtime_checkable

from pdfbook.executor.schemas import ProgressEvent, ProgressPhase

logger = logging.getLogger(__name__)


@runtime_checkable
class ProgressSink(Protocol):
    def emit(self, event: ProgressEvent) -> None: ...


class NullProgressSink:
    def emit(self, event: ProgressEvent) -> None:
        return None


class LoggingProgressSink:
    """Mirror every event into the log (retries and failures as warnings)."""

    def emit(self, event: ProgressEvent) -> None:
        if event.phase == ProgressPhase.RETRYING:
            logger.warning(
                f"[{event.unit_id}] {event.label} - retrying (attempt {event.attempt}): "
                f"{event.detail}"
            )
        elif event.phase == ProgressPhase.FAILED:
            logger.error(f"[{event.unit_id}] {event.label} - failed: {event.detail}")
        else:
            logger.info(f"[{event.unit_id}] {event.label} - {event.phase.value}")


_CONSOLE_MARKS = {
    ProgressPhase.STARTED: "-",
    ProgressPhase.RETRYING: "~",
    ProgressPhase.SUCCEEDED: "+",
    ProgressPhase.FAILED: "x",
}


class ConsoleProgressSink:
    """Human-readable progress lines, one per event.

    Events arrive from worker threads, so writes are serialized.
    """

    def __init__(self, stream: Optional[TextIO] = None):
        self._stream = stream or sys.stderr
        self._lock = threading.Lock()

    def emit(self, event: ProgressEvent) -> None:
        line = f"{_CONSOLE_MARKS[event.phase]} {event.label}"
        if event.phase == ProgressPhase.RETRYING:
            line += f" - Error, retrying... (attempt {event.attempt})"
        elif event.phase == ProgressPhase.FAILED:
            line += " - failed"
        elif event.phase == ProgressPhase.SUCCEEDED:
            line += " - done"
        with self._lock:
            print(line, file=self._stream, flush=True)


class FanoutProgressSink:
    """Forward each event to several sinks."""

    def __init__(self, *sinks: ProgressSink):
        self._sinks = sinks

    def emit(self, event: ProgressEvent) -> None:
        for sink in self._sinks:
            sink.emit(event)
