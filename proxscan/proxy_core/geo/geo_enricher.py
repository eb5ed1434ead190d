"""Geographical Enrichment for Validated Proxies

Looks up the location of every working proxy with bounded concurrency, a
shared per-run cache, rate limiting and retry with backoff. A failed lookup
degrades the result; it never drops the proxy.
"""

import asyncio
import logging
from typing import Any, Dict, Optional

from ..config import ScanConfig
from ..exceptions import GeoLookupError
from ..models import Candidate, GeoFailure, GeoLocation, GeoResult, IPAddress
from ..rate_limiter import AsyncTokenBucket, BackoffPolicy
from ...proxy_engine.progress import (
    EventKind, NullProgressReporter, ProgressEvent, ProgressReporter, Stage
)
from .geo_manager import GeoBackend

logger = logging.getLogger(__name__)

DISABLED_REASON = "geolocation disabled"


class GeoEnricher:
    """Enriches validated proxies with geographical data"""

    def __init__(self, backend: Optional[GeoBackend], config: Optional[ScanConfig] = None,
                 reporter: Optional[ProgressReporter] = None):
        self.backend = backend
        self.config = config or ScanConfig()
        self.reporter = reporter or NullProgressReporter()

        self.semaphore = asyncio.Semaphore(self.config.max_concurrent_lookups)
        self.rate_limiter = AsyncTokenBucket(self.config.geo_rate_limit, self.config.geo_burst)
        self.backoff = BackoffPolicy(
            max_retries=self.config.geo_max_retries,
            base_delay=self.config.geo_retry_delay,
            max_delay=self.config.geo_max_retry_delay,
        )

        # One lookup task per address for the whole run
        self._lookups: Dict[IPAddress, asyncio.Task] = {}
        self.enrichment_stats = {
            'total_processed': 0,
            'successful_enrichments': 0,
            'failed_enrichments': 0,
            'cache_hits': 0,
            'api_calls': 0,
            'retries': 0,
        }

    @property
    def enabled(self) -> bool:
        return self.backend is not None

    async def enrich(self, candidate: Candidate, latency_ms: float) -> GeoResult:
        """Enrich a single proxy, waiting for a lookup slot"""
        async with self.semaphore:
            return await self.resolve(candidate, latency_ms)

    async def resolve(self, candidate: Candidate, latency_ms: float) -> GeoResult:
        """Enrich a proxy whose lookup slot is held by the caller"""
        if not self.enabled:
            return self.degraded(candidate, latency_ms, DISABLED_REASON)

        try:
            location = await self._cached_lookup(candidate.address)
        except GeoLookupError as e:
            logger.debug(f"Geo lookup for {candidate.address} failed: {e.kind.value} {e}")
            return self.degraded(candidate, latency_ms, str(e))
        except Exception as e:
            logger.warning(f"Unexpected error locating {candidate.address}: {e!r}")
            return self.degraded(candidate, latency_ms, str(e) or e.__class__.__name__)

        self.enrichment_stats['total_processed'] += 1
        self.enrichment_stats['successful_enrichments'] += 1
        result = GeoResult(candidate=candidate, latency_ms=latency_ms, location=location, enrichment_ok=True)
        self.reporter.on_event(ProgressEvent(Stage.ENRICH, EventKind.LOCATED, candidate, location.display))
        return result

    def degraded(self, candidate: Candidate, latency_ms: float, reason: str) -> GeoResult:
        """Result for a proxy whose location could not be determined"""
        self.enrichment_stats['total_processed'] += 1
        self.enrichment_stats['failed_enrichments'] += 1
        self.reporter.on_event(ProgressEvent(Stage.ENRICH, EventKind.DEGRADED, candidate, reason))
        return GeoResult(candidate=candidate, latency_ms=latency_ms, location=None,
                         enrichment_ok=False, error=reason)

    async def _cached_lookup(self, address: IPAddress) -> GeoLocation:
        task = self._lookups.get(address)
        if task is None:
            task = asyncio.create_task(self._lookup_with_retry(address))
            self._lookups[address] = task
        else:
            self.enrichment_stats['cache_hits'] += 1
        # A cancelled waiter must not cancel the lookup other waiters share
        return await asyncio.shield(task)

    async def _lookup_with_retry(self, address: IPAddress) -> GeoLocation:
        attempt = 0
        while True:
            await self.rate_limiter.acquire()
            self.enrichment_stats['api_calls'] += 1

            try:
                return await asyncio.wait_for(self.backend.lookup(address), timeout=self.config.geo_timeout)
            except asyncio.TimeoutError:
                error = GeoLookupError(GeoFailure.TIMEOUT, "Lookup timeout")
            except GeoLookupError as e:
                error = e

            if not error.retryable or not self.backoff.should_retry(attempt):
                raise error

            delay = self.backoff.delay_for(attempt, error.retry_after)
            self.enrichment_stats['retries'] += 1
            logger.debug(f"Retrying geo lookup for {address} in {delay:.2f}s ({error.kind.value})")
            await asyncio.sleep(delay)
            attempt += 1

    def get_enrichment_stats(self) -> Dict[str, Any]:
        """Get enrichment statistics"""
        stats = self.enrichment_stats.copy()
        total = stats['total_processed']
        stats['success_rate'] = (stats['successful_enrichments'] / total * 100) if total else 0.0
        stats['cached_addresses'] = len(self._lookups)
        return stats

    async def close(self):
        """Cancel lookups nobody is waiting for any more"""
        pending = [task for task in self._lookups.values() if not task.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
