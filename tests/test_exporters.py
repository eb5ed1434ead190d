#!/usr/bin/env python3
"""
Exporter tests - CSV/JSON report layout and write failures
"""

import csv
import ipaddress
import json
import tempfile
import unittest
from pathlib import Path

from proxscan.proxy_core.exceptions import OutputError
from proxscan.proxy_core.models import FinalRecord, GeoLocation
from proxscan.proxy_engine.aggregator import ResultSnapshot
from proxscan.proxy_engine.exporters import (
    CSVExporter, ExportFormat, ExportManager, JSONExporter, report_row
)


class TestExporters(unittest.TestCase):
    """Test report exporters"""

    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.addCleanup(self.temp_dir.cleanup)
        self.dir = Path(self.temp_dir.name)

        tokyo = GeoLocation(city="Tokyo", country="Japan", country_code="JP")
        self.snapshot = ResultSnapshot([
            FinalRecord(ipaddress.ip_address("10.0.0.2"), 7890, 58.4),
            FinalRecord(ipaddress.ip_address("10.0.0.5"), 8080, 45.26, tokyo),
        ])

    def test_report_row(self):
        record = self.snapshot[0]
        self.assertEqual(report_row(1, record), {
            'Rank': 1,
            'IP Address': '10.0.0.5',
            'Response Time (ms)': 45,
            'Location': 'Tokyo, Japan',
        })

    def test_csv_export(self):
        path = self.dir / "proxies.csv"
        result = CSVExporter().export(self.snapshot, path)

        with open(path, newline='', encoding='utf-8') as f:
            rows = list(csv.reader(f))

        self.assertEqual(rows, [
            ['Rank', 'IP Address', 'Response Time (ms)', 'Location'],
            ['1', '10.0.0.5', '45', 'Tokyo, Japan'],
            ['2', '10.0.0.2', '58', ''],
        ])
        self.assertEqual(result.format_type, ExportFormat.CSV)
        self.assertEqual(result.proxy_count, 2)
        self.assertGreater(result.file_size_bytes, 0)

    def test_json_export(self):
        path = self.dir / "proxies.json"
        JSONExporter().export(self.snapshot, path)

        data = json.loads(path.read_text(encoding='utf-8'))

        self.assertEqual([entry['rank'] for entry in data], [1, 2])
        self.assertEqual(data[0]['ip_address'], '10.0.0.5')
        self.assertEqual(data[0]['port'], 8080)
        self.assertEqual(data[0]['response_time_ms'], 45.26)
        self.assertEqual(data[0]['country_code'], 'JP')
        self.assertIsNone(data[1]['city'])
        self.assertEqual(data[1]['location'], '')

    def test_unwritable_path_raises_output_error(self):
        path = self.dir / "missing" / "proxies.csv"
        with self.assertRaises(OutputError) as ctx:
            CSVExporter().export(self.snapshot, path)
        self.assertEqual(ctx.exception.path, str(path))

    def test_manager_detects_format(self):
        manager = ExportManager()
        cases = [
            ("out.json", ExportFormat.JSON),
            ("OUT.JSON", ExportFormat.JSON),
            ("out.csv", ExportFormat.CSV),
            ("out.txt", ExportFormat.CSV),
            ("out", ExportFormat.CSV),
        ]
        for name, expected in cases:
            with self.subTest(name=name):
                self.assertEqual(manager.detect_format(name), expected)
        self.assertEqual(sorted(manager.get_supported_formats()), ['csv', 'json'])

    def test_manager_writes_json(self):
        path = self.dir / "report.json"
        result = ExportManager().export(self.snapshot, path)
        self.assertEqual(result.format_type, ExportFormat.JSON)
        self.assertEqual(len(json.loads(path.read_text(encoding='utf-8'))), 2)


if __name__ == '__main__':
    unittest.main()
