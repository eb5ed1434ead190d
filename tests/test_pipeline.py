#!/usr/bin/env python3
"""
Pipeline tests - end-to-end runs over scripted network fakes
"""

import asyncio
import ipaddress
import threading
import unittest

from proxscan.discovery.targets import TargetEnumerator
from proxscan.proxy_core.config import ScanConfig
from proxscan.proxy_core.exceptions import GeoLookupError
from proxscan.proxy_core.geo import GeoEnricher
from proxscan.proxy_core.models import Candidate, GeoFailure, GeoLocation, ScanOutcome, ScanState
from proxscan.proxy_engine.pipeline import ScanPipeline, run_pipeline
from proxscan.proxy_engine.progress import EventKind, LoggingProgressReporter, Stage
from proxscan.proxy_engine.validation import AsyncProxyValidator, FailureReason

from tests.fakes import BlockingProxyBackend, FakeConnector, FakeGeoBackend, FakeProxyBackend

TOKYO = GeoLocation(city="Tokyo", country="Japan", country_code="JP")


def make_config(**overrides) -> ScanConfig:
    values = dict(geo_rate_limit=0, geo_retry_delay=0.001, geo_max_retry_delay=0.01,
                  scan_workers=4, test_timeout=2.0)
    values.update(overrides)
    return ScanConfig(**values)


class TestScanPipeline(unittest.IsolatedAsyncioTestCase):
    """Test ScanPipeline runs"""

    async def test_address_list_skips_scan(self):
        config = make_config()
        enumerator = TargetEnumerator.from_addresses(["10.0.0.1", "10.0.0.2", "10.0.0.3:8080"], config.port)
        proxies = FakeProxyBackend({
            "10.0.0.1": (0.03, 200),
            "10.0.0.3": (0.01, 200),
        })
        geo = FakeGeoBackend({"10.0.0.3": TOKYO})
        reporter = LoggingProgressReporter()

        pipeline = ScanPipeline.build(config, enumerator, proxies, geo, reporter)
        report = await pipeline.run()

        self.assertIsNone(pipeline.scanner)
        self.assertFalse(report.cancelled)
        self.assertEqual([str(r.address) for r in report.snapshot], ["10.0.0.3", "10.0.0.1"])
        self.assertEqual(report.snapshot[0].port, 8080)
        self.assertEqual(report.snapshot[0].location, TOKYO)
        self.assertEqual(report.snapshot[1].location_display, "Springfield, Testland")

        stats = report.stats
        self.assertIsNone(stats.scan)
        self.assertEqual(stats.enumerated, 3)
        self.assertEqual(stats.validation.total, 3)
        self.assertEqual(stats.validation.successful, 2)
        self.assertEqual(stats.validation.failures, {FailureReason.CONNECTION_REFUSED: 1})
        self.assertEqual(stats.enriched, 2)
        self.assertEqual(reporter.count(Stage.SCAN, EventKind.OPEN), 0)
        self.assertEqual(reporter.count(Stage.ENRICH, EventKind.LOCATED), 2)

    async def test_subnet_scan_ranks_by_latency(self):
        """Two open ports in a /29, the faster proxy ranks first"""
        config = make_config()
        enumerator = TargetEnumerator.from_subnet("10.0.0.0/29", config.port)
        connector = FakeConnector(open_addresses={"10.0.0.2", "10.0.0.5"})
        proxies = FakeProxyBackend({
            "10.0.0.2": (0.058, 200),
            "10.0.0.5": (0.045, 200),
        })

        pipeline = ScanPipeline.build(config, enumerator, proxies, FakeGeoBackend(), connector=connector)
        report = await pipeline.run()

        self.assertEqual(sorted(connector.attempts), [f"10.0.0.{i}" for i in range(1, 7)])
        self.assertEqual([str(r.address) for r in report.snapshot], ["10.0.0.5", "10.0.0.2"])
        self.assertLess(report.snapshot[0].latency_ms, report.snapshot[1].latency_ms)
        self.assertEqual(report.stats.scan.scanned, 6)
        self.assertEqual(report.stats.scan.open, 2)
        self.assertEqual(report.stats.scan.closed, 4)
        self.assertEqual(sum(proxies.calls.values()), 2)

    async def test_geo_failure_keeps_proxy(self):
        config = make_config()
        enumerator = TargetEnumerator.from_addresses(["10.0.0.1", "10.0.0.2"], config.port)
        proxies = FakeProxyBackend({"10.0.0.1": (0, 200), "10.0.0.2": (0, 200)})
        geo = FakeGeoBackend({"10.0.0.2": GeoLookupError(GeoFailure.SERVICE_ERROR, "private range")})

        report = await ScanPipeline.build(config, enumerator, proxies, geo).run()

        self.assertEqual(len(report.snapshot), 2)
        located = {str(r.address): r.location for r in report.snapshot}
        self.assertIsNotNone(located["10.0.0.1"])
        self.assertIsNone(located["10.0.0.2"])
        self.assertEqual(report.stats.enriched, 1)
        self.assertEqual(report.stats.degraded, 1)

    async def test_geolocation_disabled(self):
        config = make_config(enable_geolocation=False)
        enumerator = TargetEnumerator.from_addresses(["10.0.0.1"], config.port)
        geo = FakeGeoBackend()

        report = await ScanPipeline.build(config, enumerator, FakeProxyBackend({"10.0.0.1": (0, 200)}), geo).run()

        self.assertEqual(len(report.snapshot), 1)
        self.assertIsNone(report.snapshot[0].location)
        self.assertEqual(sum(geo.calls.values()), 0)

    async def test_cancellation_flushes_partial_results(self):
        config = make_config(max_concurrent_validations=2)
        addresses = [f"10.2.0.{i}" for i in range(1, 21)]
        enumerator = TargetEnumerator.from_addresses(addresses, config.port)
        proxies = FakeProxyBackend({a: (0.05, 200) for a in addresses})

        pipeline = ScanPipeline.build(config, enumerator, proxies, FakeGeoBackend())
        asyncio.get_running_loop().call_later(0.06, pipeline.cancel)
        report = await pipeline.run()

        self.assertTrue(report.cancelled)
        self.assertGreater(len(report.snapshot), 0)
        self.assertLess(len(report.snapshot), 20)
        self.assertGreater(report.stats.not_validated, 0)
        self.assertEqual(report.stats.validation.total + report.stats.not_validated, 20)
        self.assertLessEqual(proxies.peak_active, 2)

    async def test_cancelled_enrichment_is_degraded(self):
        config = make_config()
        enumerator = TargetEnumerator.from_addresses(["10.0.0.1"], config.port)
        proxies = FakeProxyBackend({"10.0.0.1": (0.05, 200)})
        geo = FakeGeoBackend()

        pipeline = ScanPipeline.build(config, enumerator, proxies, geo)
        asyncio.get_running_loop().call_later(0.02, pipeline.cancel)
        report = await pipeline.run()

        self.assertEqual(len(report.snapshot), 1)
        self.assertIsNone(report.snapshot[0].location)
        self.assertEqual(sum(geo.calls.values()), 0)
        self.assertEqual(pipeline.enricher.get_enrichment_stats()["failed_enrichments"], 1)

    async def test_validation_limit_holds_while_requests_are_blocked(self):
        """Five candidates against a limit of two, with every request held open"""
        config = make_config(max_concurrent_validations=2, test_timeout=5.0)
        addresses = [f"10.3.0.{i}" for i in range(1, 6)]
        enumerator = TargetEnumerator.from_addresses(addresses, config.port)
        proxies = BlockingProxyBackend()

        pipeline = ScanPipeline.build(config, enumerator, proxies, FakeGeoBackend())
        run = asyncio.create_task(pipeline.run())

        for _ in range(200):
            if proxies.active == 2:
                break
            await asyncio.sleep(0.005)

        samples = []
        for _ in range(10):
            samples.append((proxies.active, pipeline.validator.active))
            await asyncio.sleep(0.005)
        self.assertEqual(samples, [(2, 2)] * 10)

        proxies.release.set()
        report = await asyncio.wait_for(run, timeout=5.0)

        self.assertEqual(proxies.peak_active, 2)
        self.assertEqual(pipeline.validator.peak_active, 2)
        self.assertEqual(sorted(proxies.calls), addresses)
        self.assertEqual(len(report.snapshot), 5)

    async def test_cancelled_hand_off_is_counted_on_loop_thread(self):
        config = make_config()
        enumerator = TargetEnumerator.from_subnet("10.0.0.0/30", config.port)
        pipeline = ScanPipeline.build(config, enumerator, FakeProxyBackend(), FakeGeoBackend(),
                                      connector=FakeConnector())
        pipeline.cancel()

        loop = asyncio.get_running_loop()
        counted_on = []
        skip_validation = pipeline._skip_validation

        def record_thread(candidate):
            counted_on.append(threading.get_ident())
            skip_validation(candidate)

        pipeline._skip_validation = record_thread
        outbox = asyncio.Queue()
        outcome = ScanOutcome(Candidate(ipaddress.ip_address("10.0.0.1"), config.port), ScanState.OPEN)

        await loop.run_in_executor(None, pipeline._hand_off, loop, outbox, outcome)
        await asyncio.sleep(0)

        self.assertEqual(counted_on, [threading.get_ident()])
        self.assertEqual(pipeline.stats.not_validated, 1)
        self.assertTrue(outbox.empty())
    async def test_entry_errors_reported(self):
        config = make_config()
        enumerator = TargetEnumerator.from_addresses(["10.0.0.1", "not-an-ip", "10.0.0.1:3128"], config.port)
        reporter = LoggingProgressReporter()

        report = await ScanPipeline.build(
            config, enumerator, FakeProxyBackend({"10.0.0.1": (0, 200)}), FakeGeoBackend(), reporter
        ).run()

        self.assertEqual(len(report.snapshot), 1)
        self.assertEqual([e.index for e in report.entry_errors], [2, 3])
        self.assertEqual(report.entry_errors[1].reason, "duplicate address")
        self.assertEqual(report.stats.skipped_entries, 2)
        self.assertEqual(reporter.count(Stage.ENUMERATE, EventKind.SKIPPED), 2)

    async def test_subnet_requires_scanner(self):
        config = make_config()
        backend = FakeProxyBackend()
        with self.assertRaises(ValueError):
            ScanPipeline(
                config,
                TargetEnumerator.from_subnet("10.0.0.0/30", config.port),
                None,
                AsyncProxyValidator(backend, config),
                GeoEnricher(None, config),
            )

    async def test_run_pipeline_manages_backends(self):
        config = make_config()
        enumerator = TargetEnumerator.from_addresses(["10.0.0.1", "10.0.0.2"], config.port)
        proxies = FakeProxyBackend({"10.0.0.2": (0, 200)})

        report = await run_pipeline(config, enumerator, proxy_backend=proxies, geo_backend=FakeGeoBackend())

        self.assertTrue(proxies.entered)
        self.assertTrue(proxies.closed)
        self.assertEqual([str(r.address) for r in report.snapshot], ["10.0.0.2"])
        self.assertEqual(report.stats.to_dict()['working'], 1)


if __name__ == '__main__':
    unittest.main()
