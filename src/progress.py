"""
Per-target progress events, emitted from concurrent workers.
"""

import logging
import threading
from dataclasses import dataclass
from typing import List, Optional

logger = logging.getLogger(__name__)

PROBING = "probing"
SKIPPED = "skipped"
SUCCEEDED = "succeeded"
FAILED = "failed"

_LEVELS = {FAILED: logging.ERROR}
_MARKERS = {PROBING: "[?]", SKIPPED: "[-]", SUCCEEDED: "[+]", FAILED: "[!]"}


@dataclass(frozen=True)
class ProgressEvent:
    target: str
    action_label: str
    phase: str
    message: str = ""

    def format(self) -> str:
        marker = _MARKERS.get(self.phase, "[>]")
        line = f"{marker} {self.target}: {self.action_label} {self.phase}"
        return f"{line} - {self.message}" if self.message else line


class ProgressReporter:
    """
    Synchronized progress sink.

    Lines from different workers may interleave in any order, but each line
    is written whole and one worker's lines keep their emission order.
    Events are only retained when keep_events is set.
    """

    def __init__(self, log: Optional[logging.Logger] = None, keep_events: bool = False):
        self._log = log or logger
        self._lock = threading.Lock()
        self._keep_events = keep_events
        self._events: List[ProgressEvent] = []

    def emit(self, target: str, action_label: str, phase: str, message: str = "") -> None:
        event = ProgressEvent(target, action_label, phase, message)
        with self._lock:
            if self._keep_events:
                self._events.append(event)
            self._log.log(_LEVELS.get(phase, logging.INFO), event.format())

    @property
    def events(self) -> List[ProgressEvent]:
        with self._lock:
            return list(self._events)

    def events_for(self, target: str) -> List[ProgressEvent]:
        return [e for e in self.events if e.target == target]
