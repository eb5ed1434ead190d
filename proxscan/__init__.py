__version__ = "1.0.0"

from .proxy_core.models import Candidate, GeoLocation, GeoResult, FinalRecord
from .proxy_core.config import ScanConfig, ConfigManager
from .proxy_core.exceptions import ProxScanError, InputError, OutputError
from .discovery.targets import TargetEnumerator
from .proxy_engine.aggregator import ResultAggregator, ResultSnapshot
from .proxy_engine.exporters import ExportManager

__all__ = [
    "Candidate", "GeoLocation", "GeoResult", "FinalRecord",
    "ScanConfig", "ConfigManager",
    "ProxScanError", "InputError", "OutputError",
    "TargetEnumerator", "ResultAggregator", "ResultSnapshot", "ExportManager"
]
