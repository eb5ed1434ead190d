"""Proxy Engine - Validation, aggregation, export and pipeline orchestration

The pipeline module pulls in every stage; import it directly as
``proxscan.proxy_engine.pipeline``.
"""

from .progress import (
    Stage, EventKind, ProgressEvent, ProgressReporter,
    NullProgressReporter, LoggingProgressReporter
)
from .aggregator import ResultAggregator, ResultSnapshot
from .exporters import ExportManager, ExportFormat, CSVExporter, JSONExporter

__all__ = [
    'Stage', 'EventKind', 'ProgressEvent', 'ProgressReporter',
    'NullProgressReporter', 'LoggingProgressReporter',
    'ResultAggregator', 'ResultSnapshot',
    'ExportManager', 'ExportFormat', 'CSVExporter', 'JSONExporter'
]
