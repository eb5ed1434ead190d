"""Core data model, configuration and error types shared by every stage"""

from .models import (
    Candidate, ScanOutcome, ScanState, NetworkFailure, GeoFailure,
    GeoLocation, GeoResult, FinalRecord
)
from .exceptions import (
    ProxScanError, InputError, ConfigurationError, NetworkError,
    ProxyProtocolError, GeoLookupError, OutputError
)
from .config import ScanConfig, ConfigManager

__all__ = [
    "Candidate", "ScanOutcome", "ScanState", "NetworkFailure", "GeoFailure",
    "GeoLocation", "GeoResult", "FinalRecord",
    "ProxScanError", "InputError", "ConfigurationError", "NetworkError",
    "ProxyProtocolError", "GeoLookupError", "OutputError",
    "ScanConfig", "ConfigManager"
]
