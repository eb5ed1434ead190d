"""Proxy Engine Exporters - CSV and JSON report export"""

import csv
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from ..proxy_core.constants import DEFAULT_JSON_INDENT, REPORT_COLUMNS
from ..proxy_core.exceptions import OutputError
from .aggregator import ResultSnapshot


class ExportFormat(Enum):
    """Supported export formats"""
    JSON = "json"
    CSV = "csv"


@dataclass
class ExportResult:
    """Result of export operation"""
    format_type: ExportFormat
    file_path: str
    proxy_count: int
    file_size_bytes: int = 0


def report_row(rank: int, record) -> Dict[str, Any]:
    """One report row keyed by the report column names"""
    return dict(zip(REPORT_COLUMNS, [
        rank,
        str(record.address),
        round(record.latency_ms),
        record.location_display,
    ]))


class BaseExporter(ABC):
    """Abstract base class for report exporters"""

    format_type: ExportFormat

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def export(self, snapshot: ResultSnapshot, file_path: Union[str, Path]) -> ExportResult:
        """Write the snapshot to ``file_path``; raises OutputError on failure"""
        path = Path(file_path)
        try:
            self._write(snapshot, path)
            size = path.stat().st_size
        except OSError as e:
            self.logger.error(f"{self.format_type.value.upper()} export failed: {e}")
            raise OutputError(f"Cannot write {path}: {e.strerror or e}", path=str(path)) from e

        return ExportResult(
            format_type=self.format_type,
            file_path=str(path),
            proxy_count=len(snapshot),
            file_size_bytes=size,
        )

    @abstractmethod
    def _write(self, snapshot: ResultSnapshot, path: Path):
        pass


class CSVExporter(BaseExporter):
    """CSV format exporter"""

    format_type = ExportFormat.CSV

    def _write(self, snapshot: ResultSnapshot, path: Path):
        with open(path, 'w', newline='', encoding='utf-8') as csvfile:
            writer = csv.DictWriter(csvfile, fieldnames=REPORT_COLUMNS)
            writer.writeheader()
            for rank, record in snapshot.rows():
                writer.writerow(report_row(rank, record))


class JSONExporter(BaseExporter):
    """JSON format exporter"""

    format_type = ExportFormat.JSON

    def __init__(self, indent: Optional[int] = DEFAULT_JSON_INDENT):
        super().__init__()
        self.indent = indent

    def _write(self, snapshot: ResultSnapshot, path: Path):
        data = []
        for rank, record in snapshot.rows():
            data.append({
                'rank': rank,
                'ip_address': str(record.address),
                'port': record.port,
                'response_time_ms': round(record.latency_ms, 2),
                'location': record.location_display,
                'city': record.location.city if record.location else None,
                'country': record.location.country if record.location else None,
                'country_code': record.location.country_code if record.location else None,
            })

        with open(path, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=self.indent, ensure_ascii=False)


class ExportManager:
    """Chooses an exporter from the output path"""

    def __init__(self):
        self.logger = logging.getLogger(__name__)
        self.exporters = {
            ExportFormat.JSON: JSONExporter(),
            ExportFormat.CSV: CSVExporter(),
        }

    def detect_format(self, file_path: Union[str, Path]) -> ExportFormat:
        """``.json`` exports JSON, anything else CSV"""
        if Path(file_path).suffix.lower() == '.json':
            return ExportFormat.JSON
        return ExportFormat.CSV

    def export(self, snapshot: ResultSnapshot, file_path: Union[str, Path],
               format_type: Optional[ExportFormat] = None) -> ExportResult:
        format_type = format_type or self.detect_format(file_path)
        self.logger.info(f"Exporting {len(snapshot)} proxies to {format_type.value} format")
        result = self.exporters[format_type].export(snapshot, file_path)
        self.logger.info(f"Export completed: {result.file_path} ({result.file_size_bytes} bytes)")
        return result

    def get_supported_formats(self) -> List[str]:
        return [fmt.value for fmt in self.exporters]
