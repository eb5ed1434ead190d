"""
Port Scanner
============

Multi-threaded TCP reachability probing. The number of outstanding
connection attempts never exceeds the worker pool size: candidates are
pulled from the (lazy) enumerator only as pool slots free up.
"""

import logging
import socket
import threading
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, Optional, Set

from ..proxy_core.config import ScanConfig
from ..proxy_core.models import Candidate, NetworkFailure, ScanOutcome, ScanState
from ..proxy_engine.progress import (
    EventKind, NullProgressReporter, ProgressEvent, ProgressReporter, Stage
)

logger = logging.getLogger(__name__)

Connector = Callable[..., socket.socket]

_EVENT_KINDS = {
    ScanState.OPEN: EventKind.OPEN,
    ScanState.CLOSED: EventKind.CLOSED,
    ScanState.UNREACHABLE: EventKind.UNREACHABLE,
}


@dataclass
class ScanStats:
    """Counters for every probe outcome"""
    scanned: int = 0
    open: int = 0
    closed: int = 0
    unreachable: Dict[NetworkFailure, int] = field(default_factory=dict)
    max_in_flight: int = 0
    duration: float = 0.0

    def record(self, outcome: ScanOutcome):
        self.scanned += 1
        if outcome.state is ScanState.OPEN:
            self.open += 1
        elif outcome.state is ScanState.CLOSED:
            self.closed += 1
        else:
            self.unreachable[outcome.reason] = self.unreachable.get(outcome.reason, 0) + 1

    @property
    def unreachable_total(self) -> int:
        return sum(self.unreachable.values())


class PortScanner:
    """Bounded-timeout TCP connect scanner"""

    def __init__(self, config: ScanConfig, connector: Optional[Connector] = None,
                 reporter: Optional[ProgressReporter] = None):
        self.config = config
        self.connector = connector or socket.create_connection
        self.reporter = reporter or NullProgressReporter()
        self.max_workers = config.effective_scan_workers

    def probe(self, candidate: Candidate) -> ScanOutcome:
        """Attempt one TCP connection and classify the result"""
        start = time.perf_counter()
        state, reason = ScanState.OPEN, None
        sock = None

        try:
            sock = self.connector((str(candidate.address), candidate.port), timeout=self.config.scan_timeout)
        except ConnectionRefusedError:
            state, reason = ScanState.CLOSED, NetworkFailure.CONNECTION_REFUSED
        except socket.timeout:
            state, reason = ScanState.UNREACHABLE, NetworkFailure.TIMEOUT
        except socket.gaierror:
            state, reason = ScanState.UNREACHABLE, NetworkFailure.DNS_FAILURE
        except OSError as e:
            logger.debug(f"Probe error {candidate}: {e}")
            state, reason = ScanState.UNREACHABLE, NetworkFailure.HOST_UNREACHABLE
        finally:
            if sock is not None:
                try:
                    sock.close()
                except OSError:
                    pass

        elapsed = (time.perf_counter() - start) * 1000
        return ScanOutcome(candidate=candidate, state=state, reason=reason, elapsed_ms=round(elapsed, 2))

    def run(self, candidates: Iterable[Candidate],
            on_open: Callable[[ScanOutcome], None],
            stop_event: Optional[threading.Event] = None) -> ScanStats:
        """Probe every candidate, handing open ones to ``on_open``.

        Blocks until all submitted probes complete. ``on_open`` is called from
        this (driver) thread, so it may block to apply backpressure without
        affecting probes already in flight.
        """
        stats = ScanStats()
        start = time.perf_counter()
        jobs = iter(candidates)
        pending: Set[Future] = set()

        def submit_next() -> bool:
            if stop_event is not None and stop_event.is_set():
                return False
            try:
                candidate = next(jobs)
            except StopIteration:
                return False
            pending.add(pool.submit(self.probe, candidate))
            return True

        logger.debug(f"Port scan starting with {self.max_workers} workers on port {self.config.port}")

        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="proxscan-scan") as pool:
            # Prime the pool
            while len(pending) < self.max_workers and submit_next():
                pass

            while pending:
                stats.max_in_flight = max(stats.max_in_flight, len(pending))
                done, pending = wait(pending, return_when=FIRST_COMPLETED)

                for future in done:
                    outcome = future.result()
                    stats.record(outcome)
                    self._emit(outcome)
                    if outcome.is_open:
                        on_open(outcome)

                # Refill freed slots
                while len(pending) < self.max_workers and submit_next():
                    pass

        stats.duration = time.perf_counter() - start
        if stop_event is not None and stop_event.is_set():
            logger.info(f"Port scan stopped early after {stats.scanned} probes")
        else:
            logger.debug(f"Port scan finished: {stats.scanned} probed, {stats.open} open in {stats.duration:.2f}s")
        return stats

    def _emit(self, outcome: ScanOutcome):
        detail = outcome.reason.value if outcome.reason else f"{outcome.elapsed_ms:.0f}ms"
        self.reporter.on_event(ProgressEvent(Stage.SCAN, _EVENT_KINDS[outcome.state], outcome.candidate, detail))
