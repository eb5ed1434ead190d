"""Proxy Core Models - Data Models Shared by Every Pipeline Stage"""

from dataclasses import dataclass, field
from enum import Enum
from ipaddress import IPv4Address, IPv6Address
from typing import Optional, Tuple, Union

IPAddress = Union[IPv4Address, IPv6Address]


# ===============================================================================
# CORE ENUMERATIONS
# ===============================================================================

class ScanState(Enum):
    """TCP reachability of a candidate"""
    OPEN = "open"
    CLOSED = "closed"
    UNREACHABLE = "unreachable"


class NetworkFailure(Enum):
    """Network-level failure kinds"""
    TIMEOUT = "timeout"
    CONNECTION_REFUSED = "connection_refused"
    HOST_UNREACHABLE = "host_unreachable"
    DNS_FAILURE = "dns_failure"


class GeoFailure(Enum):
    """Geolocation lookup failure kinds"""
    RATE_LIMITED = "rate_limited"
    TIMEOUT = "timeout"
    SERVICE_ERROR = "service_error"


def address_sort_key(address: IPAddress) -> Tuple[int, int]:
    """Total order on addresses: IPv4 before IPv6, then numeric value"""
    return address.version, int(address)


# ===============================================================================
# PIPELINE VALUE OBJECTS
# ===============================================================================

@dataclass(frozen=True)
class Candidate:
    """One address/port pair under consideration"""
    address: IPAddress
    port: int

    @property
    def host(self) -> str:
        if self.address.version == 6:
            return f"[{self.address}]"
        return str(self.address)

    @property
    def endpoint(self) -> str:
        return f"{self.host}:{self.port}"

    @property
    def proxy_url(self) -> str:
        return f"http://{self.endpoint}"

    def __str__(self) -> str:
        return self.endpoint


@dataclass(frozen=True)
class ScanOutcome:
    """Result of a single TCP probe"""
    candidate: Candidate
    state: ScanState
    reason: Optional[NetworkFailure] = None
    elapsed_ms: float = 0.0

    @property
    def is_open(self) -> bool:
        return self.state is ScanState.OPEN


@dataclass(frozen=True)
class GeoLocation:
    """City and country of an address"""
    city: Optional[str] = None
    country: Optional[str] = None
    country_code: Optional[str] = None

    @property
    def display(self) -> str:
        return f"{self.city or 'Unknown'}, {self.country or 'Unknown'}"


@dataclass(frozen=True)
class GeoResult:
    """A validated proxy together with its (possibly missing) location"""
    candidate: Candidate
    latency_ms: float
    location: Optional[GeoLocation] = None
    enrichment_ok: bool = False
    error: Optional[str] = None


@dataclass(frozen=True)
class FinalRecord:
    """One row of the final report"""
    address: IPAddress
    port: int
    latency_ms: float
    location: Optional[GeoLocation] = field(default=None, compare=False)

    @classmethod
    def from_geo_result(cls, result: GeoResult) -> "FinalRecord":
        return cls(
            address=result.candidate.address,
            port=result.candidate.port,
            latency_ms=result.latency_ms,
            location=result.location,
        )

    @property
    def location_display(self) -> str:
        return self.location.display if self.location else ""

    @property
    def sort_key(self) -> Tuple[float, int, int]:
        return (self.latency_ms,) + address_sort_key(self.address)
