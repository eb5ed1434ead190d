"""Progress Events - Per-outcome notifications emitted by every pipeline stage"""

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ..proxy_core.models import Candidate

logger = logging.getLogger(__name__)


class Stage(Enum):
    """Pipeline stages that emit events"""
    ENUMERATE = "enumerate"
    SCAN = "scan"
    VALIDATE = "validate"
    ENRICH = "enrich"


class EventKind(Enum):
    """What happened to the candidate"""
    SKIPPED = "skipped"      # malformed or duplicate input entry
    OPEN = "open"
    CLOSED = "closed"
    UNREACHABLE = "unreachable"
    SUCCESS = "success"
    FAILURE = "failure"
    LOCATED = "located"
    DEGRADED = "degraded"


@dataclass(frozen=True)
class ProgressEvent:
    stage: Stage
    kind: EventKind
    candidate: Optional[Candidate] = None
    detail: str = ""

    @property
    def completes_candidate(self) -> bool:
        """True when the candidate leaves the pipeline with this event"""
        if self.stage is Stage.SCAN:
            return self.kind is not EventKind.OPEN
        if self.stage is Stage.VALIDATE:
            return self.kind is EventKind.FAILURE
        return self.stage in (Stage.ENRICH, Stage.ENUMERATE)


class ProgressReporter:
    """External sink for pipeline events.

    Events arrive from the scanner's driver thread and from the event loop
    thread, in no guaranteed order. Implementations must be thread-safe.
    """

    def start(self, total: Optional[int] = None) -> None:
        pass

    def on_event(self, event: ProgressEvent) -> None:
        pass

    def finish(self, message: str = "") -> None:
        pass


class NullProgressReporter(ProgressReporter):
    """Discards every event"""
    pass


class LoggingProgressReporter(ProgressReporter):
    """Writes every event to the log and keeps simple counters"""

    def __init__(self, log: Optional[logging.Logger] = None, level: int = logging.DEBUG):
        self.log = log or logger
        self.level = level
        self.counts = {}
        self._lock = threading.Lock()

    def on_event(self, event: ProgressEvent) -> None:
        key = (event.stage, event.kind)
        with self._lock:
            self.counts[key] = self.counts.get(key, 0) + 1
        self.log.log(self.level, f"[{event.stage.value}:{event.kind.value}] {event.candidate or ''} {event.detail}".rstrip())

    def count(self, stage: Stage, kind: EventKind) -> int:
        with self._lock:
            return self.counts.get((stage, kind), 0)
