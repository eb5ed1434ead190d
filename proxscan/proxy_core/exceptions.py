"""
ProxScan Custom Exceptions
Standardized exception hierarchy for better error handling
"""

from typing import Optional

from .models import GeoFailure, NetworkFailure


class ProxScanError(Exception):
    """Base exception for all ProxScan errors"""
    pass


class InputError(ProxScanError):
    """Fatal input errors (bad CIDR, unreadable source, conflicting flags)"""
    pass


class ConfigurationError(InputError):
    """Configuration-related errors"""
    pass


class NetworkError(ProxScanError):
    """Per-candidate network connectivity errors"""

    def __init__(self, kind: NetworkFailure, message: Optional[str] = None):
        super().__init__(message or kind.value)
        self.kind = kind


class ProxyProtocolError(ProxScanError):
    """Proxy answered, but not with a usable HTTP response"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class GeoLookupError(ProxScanError):
    """Geolocation lookup failures"""

    def __init__(self, kind: GeoFailure, message: Optional[str] = None,
                 retry_after: Optional[float] = None):
        super().__init__(message or kind.value)
        self.kind = kind
        self.retry_after = retry_after

    @property
    def retryable(self) -> bool:
        return self.kind in (GeoFailure.RATE_LIMITED, GeoFailure.TIMEOUT)


class OutputError(ProxScanError):
    """Report export errors"""

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message)
        self.path = path
