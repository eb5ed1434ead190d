"""
Scan Pipeline
=============

Drives candidates through scan -> validate -> enrich -> aggregate.

The port scanner runs in worker threads; validation and enrichment run as
tasks on the event loop. Stages are connected by bounded queues and each
dispatcher takes a concurrency slot before it takes the next item, so a slow
stage throttles the ones feeding it.
"""

import asyncio
import concurrent.futures
import logging
import signal
import threading
import time
from contextlib import AsyncExitStack
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Iterator, List, Optional, Set

from ..discovery.port_scanner import PortScanner, ScanStats
from ..discovery.targets import EntryError, TargetEnumerator
from ..proxy_core.config import ScanConfig
from ..proxy_core.geo.geo_enricher import GeoEnricher
from ..proxy_core.geo.geo_manager import GeoBackend, create_geo_backend
from ..proxy_core.models import Candidate, ScanOutcome
from .aggregator import ResultAggregator, ResultSnapshot
from .progress import EventKind, NullProgressReporter, ProgressEvent, ProgressReporter, Stage
from .validation.async_validators import AiohttpProxyBackend, AsyncProxyValidator, ProxyBackend
from .validation.validation_results import ValidationStats

logger = logging.getLogger(__name__)

CANCELLED_REASON = "cancelled"

# End-of-stream marker on the hand-off queues
_DONE = None


@dataclass
class PipelineStats:
    """Counters collected across all stages of one run"""
    enumerated: int = 0
    skipped_entries: int = 0
    scan: Optional[ScanStats] = None
    validation: ValidationStats = field(default_factory=ValidationStats)
    not_validated: int = 0
    enriched: int = 0
    degraded: int = 0
    geo_cache_hits: int = 0
    geo_api_calls: int = 0
    aggregator_rejects: int = 0

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'enumerated': self.enumerated,
            'skipped_entries': self.skipped_entries,
            'validated': self.validation.total,
            'working': self.validation.successful,
            'failures': {reason.value: count for reason, count in self.validation.failures.items()},
            'not_validated': self.not_validated,
            'enriched': self.enriched,
            'degraded': self.degraded,
            'geo_cache_hits': self.geo_cache_hits,
            'geo_api_calls': self.geo_api_calls,
            'aggregator_rejects': self.aggregator_rejects,
        }
        if self.scan is not None:
            data['scan'] = {
                'scanned': self.scan.scanned,
                'open': self.scan.open,
                'closed': self.scan.closed,
                'unreachable': {reason.value: count for reason, count in self.scan.unreachable.items()},
            }
        return data


@dataclass(frozen=True)
class PipelineReport:
    """Everything a run produced, partial when cancelled"""
    snapshot: ResultSnapshot
    stats: PipelineStats
    entry_errors: List[EntryError]
    cancelled: bool
    duration: float


class ScanPipeline:
    """Wires the stages together for one run"""

    def __init__(self, config: ScanConfig, enumerator: TargetEnumerator,
                 scanner: Optional[PortScanner], validator: AsyncProxyValidator,
                 enricher: GeoEnricher, aggregator: Optional[ResultAggregator] = None,
                 reporter: Optional[ProgressReporter] = None):
        self.config = config
        self.enumerator = enumerator
        self.scanner = scanner
        self.validator = validator
        self.enricher = enricher
        self.aggregator = aggregator or ResultAggregator()
        self.reporter = reporter or NullProgressReporter()

        self.stats = PipelineStats()
        self._stop = threading.Event()

        if not enumerator.skip_scan and scanner is None:
            raise ValueError("A port scanner is required for subnet input")

    @classmethod
    def build(cls, config: ScanConfig, enumerator: TargetEnumerator,
              proxy_backend: ProxyBackend, geo_backend: Optional[GeoBackend],
              reporter: Optional[ProgressReporter] = None,
              connector=None) -> 'ScanPipeline':
        """Create every stage from the configuration and the two backends"""
        reporter = reporter or NullProgressReporter()
        scanner = None if enumerator.skip_scan else PortScanner(config, connector=connector, reporter=reporter)
        return cls(
            config=config,
            enumerator=enumerator,
            scanner=scanner,
            validator=AsyncProxyValidator(proxy_backend, config, reporter),
            enricher=GeoEnricher(geo_backend if config.enable_geolocation else None, config, reporter),
            reporter=reporter,
        )

    @property
    def cancelled(self) -> bool:
        return self._stop.is_set()

    def cancel(self):
        """Stop admitting new work; results already in flight are kept"""
        if not self._stop.is_set():
            logger.warning("Cancellation requested, finishing in-flight work")
            self._stop.set()

    async def run(self, install_signal_handlers: bool = False) -> PipelineReport:
        loop = asyncio.get_running_loop()
        start = time.perf_counter()
        to_validate: asyncio.Queue = asyncio.Queue(maxsize=self.config.queue_size)
        to_enrich: asyncio.Queue = asyncio.Queue(maxsize=self.config.queue_size)

        handlers_installed = install_signal_handlers and self._add_signal_handler(loop)
        self.reporter.start(self.enumerator.total)
        logger.info(f"Pipeline starting on {self.enumerator.description}, port {self.config.port}")

        tasks = [
            asyncio.create_task(self._produce(loop, to_validate), name="proxscan-produce"),
            asyncio.create_task(self._dispatch(to_validate, self.validator.semaphore,
                                               lambda c: self._validate(c, to_enrich),
                                               self._skip_validation, to_enrich),
                                name="proxscan-validate"),
            asyncio.create_task(self._dispatch(to_enrich, self.enricher.semaphore,
                                               self._enrich, self._degrade_cancelled),
                                name="proxscan-enrich"),
        ]

        try:
            await asyncio.gather(*tasks)
        except BaseException:
            self._stop.set()
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        finally:
            if handlers_installed:
                loop.remove_signal_handler(signal.SIGINT)
            await self.enricher.close()

        snapshot = self.aggregator.snapshot()
        self._collect_stats()
        duration = time.perf_counter() - start

        self.reporter.finish("Cancelled" if self.cancelled else "Done")
        logger.info(f"Pipeline finished in {duration:.2f}s: {len(snapshot)} working proxies"
                    f"{' (cancelled)' if self.cancelled else ''}")

        return PipelineReport(
            snapshot=snapshot,
            stats=self.stats,
            entry_errors=list(self.enumerator.errors),
            cancelled=self.cancelled,
            duration=duration,
        )

    def _add_signal_handler(self, loop: asyncio.AbstractEventLoop) -> bool:
        try:
            loop.add_signal_handler(signal.SIGINT, self.cancel)
        except (NotImplementedError, RuntimeError):
            # Windows event loops and non-main threads
            return False
        return True

    # --- producer ------------------------------------------------------------

    def _counted(self, candidates) -> Iterator[Candidate]:
        reported = 0
        for candidate in candidates:
            self.stats.enumerated += 1
            reported = self._report_entry_errors(reported)
            yield candidate
        self._report_entry_errors(reported)

    def _report_entry_errors(self, reported: int) -> int:
        errors = self.enumerator.errors
        for error in errors[reported:]:
            self.reporter.on_event(ProgressEvent(Stage.ENUMERATE, EventKind.SKIPPED, None, str(error)))
        return len(errors)

    async def _produce(self, loop: asyncio.AbstractEventLoop, outbox: asyncio.Queue):
        try:
            if self.enumerator.skip_scan:
                for candidate in self._counted(self.enumerator):
                    if self.cancelled:
                        break
                    await outbox.put(candidate)
            else:
                self.stats.scan = await loop.run_in_executor(
                    None, self.scanner.run, self._counted(self.enumerator),
                    lambda outcome: self._hand_off(loop, outbox, outcome), self._stop
                )
        finally:
            self.stats.skipped_entries = len(self.enumerator.errors)
        await outbox.put(_DONE)

    def _hand_off(self, loop: asyncio.AbstractEventLoop, outbox: asyncio.Queue, outcome: ScanOutcome):
        """Called on the scanner's driver thread for every open port.

        Pipeline counters are only touched on the loop thread.
        """
        if self.cancelled:
            loop.call_soon_threadsafe(self._skip_validation, outcome.candidate)
            return
        future = asyncio.run_coroutine_threadsafe(outbox.put(outcome.candidate), loop)
        while True:
            try:
                future.result(timeout=0.25)
                return
            except concurrent.futures.TimeoutError:
                if self.cancelled:
                    future.cancel()
                    return

    # --- dispatchers ---------------------------------------------------------

    async def _dispatch(self, inbox: asyncio.Queue, semaphore: asyncio.Semaphore,
                        handle: Callable[[Any], Awaitable[None]],
                        on_cancelled: Callable[[Any], None],
                        outbox: Optional[asyncio.Queue] = None):
        running: Set[asyncio.Task] = set()

        while True:
            admitted = not self.cancelled
            if admitted:
                await semaphore.acquire()
            try:
                item = await inbox.get()
            except asyncio.CancelledError:
                if admitted:
                    semaphore.release()
                raise

            if item is _DONE or self.cancelled:
                if admitted:
                    semaphore.release()
                if item is _DONE:
                    break
                on_cancelled(item)
                continue

            task = asyncio.create_task(self._run_admitted(semaphore, handle, item))
            running.add(task)
            task.add_done_callback(running.discard)

        if running:
            await asyncio.gather(*running)
        if outbox is not None:
            await outbox.put(_DONE)

    @staticmethod
    async def _run_admitted(semaphore: asyncio.Semaphore, handle, item):
        try:
            await handle(item)
        finally:
            semaphore.release()

    async def _validate(self, candidate: Candidate, outbox: asyncio.Queue):
        outcome = await self.validator.check(candidate)
        if outcome.success:
            await outbox.put((candidate, outcome.latency_ms))

    def _skip_validation(self, candidate: Candidate):
        self.stats.not_validated += 1

    async def _enrich(self, item):
        candidate, latency_ms = item
        self.aggregator.add(await self.enricher.resolve(candidate, latency_ms))

    def _degrade_cancelled(self, item):
        candidate, latency_ms = item
        self.aggregator.add(self.enricher.degraded(candidate, latency_ms, CANCELLED_REASON))

    def _collect_stats(self):
        geo = self.enricher.get_enrichment_stats()
        self.stats.validation = self.validator.stats
        self.stats.enriched = geo['successful_enrichments']
        self.stats.degraded = geo['failed_enrichments']
        self.stats.geo_cache_hits = geo['cache_hits']
        self.stats.geo_api_calls = geo['api_calls']
        self.stats.aggregator_rejects = self.aggregator.rejected


async def run_pipeline(config: ScanConfig, enumerator: TargetEnumerator,
                       reporter: Optional[ProgressReporter] = None,
                       proxy_backend: Optional[ProxyBackend] = None,
                       geo_backend: Optional[GeoBackend] = None,
                       install_signal_handlers: bool = False) -> PipelineReport:
    """Open the backends, run one pipeline and close them again"""
    proxy_backend = proxy_backend or AiohttpProxyBackend(config)
    if geo_backend is None and config.enable_geolocation:
        geo_backend = create_geo_backend(config)

    async with AsyncExitStack() as stack:
        await stack.enter_async_context(proxy_backend)
        if geo_backend is not None:
            await stack.enter_async_context(geo_backend)

        pipeline = ScanPipeline.build(config, enumerator, proxy_backend, geo_backend, reporter)
        return await pipeline.run(install_signal_handlers=install_signal_handlers)
