"""Discovery - Candidate enumeration and TCP port scanning"""

from .targets import TargetEnumerator, EntryError, parse_network, read_address_list
from .port_scanner import PortScanner, ScanStats

__all__ = [
    "TargetEnumerator", "EntryError", "parse_network", "read_address_list",
    "PortScanner", "ScanStats"
]
