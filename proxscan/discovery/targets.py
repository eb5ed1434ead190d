"""
Target Enumeration
==================

Turns a subnet specification or an address list into a lazy sequence of
candidates for the scanning pipeline.
"""

import csv
import ipaddress
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, List, Optional, Sequence, Set, Tuple, Union

from ..proxy_core.constants import INPUT_ADDRESS_COLUMN
from ..proxy_core.exceptions import InputError
from ..proxy_core.models import Candidate, IPAddress

logger = logging.getLogger(__name__)

Network = Union[ipaddress.IPv4Network, ipaddress.IPv6Network]


@dataclass(frozen=True)
class EntryError:
    """A skipped input entry"""
    index: int
    value: str
    reason: str

    def __str__(self) -> str:
        return f"entry {self.index} ({self.value!r}): {self.reason}"


def parse_network(cidr: str) -> Network:
    """Parse CIDR notation, allowing host bits to be set"""
    try:
        return ipaddress.ip_network(cidr.strip(), strict=False)
    except (ValueError, TypeError) as e:
        raise InputError(f"Invalid subnet '{cidr}': {e}") from e


def iter_network_hosts(network: Network) -> Iterator[IPAddress]:
    """Usable host addresses of a network, produced lazily.

    Point-to-point (/31, /127) and single-host (/32, /128) networks have no
    network/broadcast reservation, so every address is yielded.
    """
    if network.prefixlen >= network.max_prefixlen - 1:
        return iter(network)
    return network.hosts()


def count_network_hosts(network: Network) -> int:
    if network.prefixlen >= network.max_prefixlen - 1:
        return network.num_addresses
    if network.version == 4:
        return network.num_addresses - 2
    # IPv6 hosts() only drops the Subnet-Router anycast address
    return network.num_addresses - 1


def parse_address_entry(entry: str, default_port: int) -> Tuple[IPAddress, int]:
    """Parse 'IP', 'IP:PORT' or '[IPv6]:PORT'"""
    value = entry.strip()
    if not value:
        raise ValueError("empty entry")

    try:
        return ipaddress.ip_address(value), default_port
    except ValueError:
        pass

    if value.startswith('['):
        host, sep, port_str = value[1:].partition(']:')
        if not sep:
            raise ValueError("malformed bracketed address")
    else:
        host, sep, port_str = value.rpartition(':')
        if not sep:
            raise ValueError("not an IP address")

    address = ipaddress.ip_address(host)
    if not port_str.isdigit() or not 1 <= int(port_str) <= 65535:
        raise ValueError(f"invalid port '{port_str}'")
    return address, int(port_str)


def read_address_list(path: Union[str, Path]) -> Tuple[List[Tuple[int, str]], List[EntryError]]:
    """Read the single-column CSV input file.

    Returns ``(entries, row_errors)``: (line_number, value) pairs for every
    non-blank data row, and an EntryError for every row the CSV parser
    rejected. Line numbers are physical lines of the file, the header being
    line 1. Undecodable bytes are replaced so the row fails address parsing
    on its own instead of failing the whole file.
    """
    entries: List[Tuple[int, str]] = []
    row_errors: List[EntryError] = []
    try:
        with open(path, 'r', newline='', encoding='utf-8-sig', errors='replace') as f:
            reader = csv.DictReader(f)
            try:
                fieldnames = reader.fieldnames
            except csv.Error as e:
                raise InputError(f"Malformed input file {path}: {e}") from e
            if not fieldnames or INPUT_ADDRESS_COLUMN not in [n.strip() for n in fieldnames]:
                raise InputError(f"Input file {path} has no '{INPUT_ADDRESS_COLUMN}' header")
            column = next(n for n in fieldnames if n.strip() == INPUT_ADDRESS_COLUMN)

            while True:
                try:
                    row = next(reader)
                except StopIteration:
                    break
                except csv.Error as e:
                    error = EntryError(reader.line_num, "", f"unreadable row: {e}")
                    logger.debug(f"Skipping {error}")
                    row_errors.append(error)
                    continue
                value = (row.get(column) or '').strip()
                if value:
                    entries.append((reader.line_num, value))
    except OSError as e:
        raise InputError(f"Cannot read input file {path}: {e}") from e

    if not entries and not row_errors:
        raise InputError(f"Input file {path} contains no addresses")

    logger.debug(f"Read {len(entries)} entries from {path} ({len(row_errors)} unreadable rows)")
    return entries, row_errors


class TargetEnumerator:
    """Produces each candidate address once, lazily.

    Use the ``from_subnet``, ``from_addresses`` or ``from_file`` constructors.
    Entries skipped from an address list are collected in ``errors``.
    """

    def __init__(self, port: int, network: Optional[Network] = None,
                 entries: Optional[Sequence[Tuple[int, str]]] = None,
                 read_errors: Optional[Sequence[EntryError]] = None):
        self.port = port
        self.network = network
        self.entries = entries
        self.read_errors: List[EntryError] = list(read_errors or ())
        self.errors: List[EntryError] = []

    @classmethod
    def from_subnet(cls, cidr: str, port: int) -> 'TargetEnumerator':
        return cls(port, network=parse_network(cidr))

    @classmethod
    def from_addresses(cls, addresses: Sequence[str], port: int) -> 'TargetEnumerator':
        return cls(port, entries=[(i, value) for i, value in enumerate(addresses, start=1)])

    @classmethod
    def from_file(cls, path: Union[str, Path], port: int) -> 'TargetEnumerator':
        entries, row_errors = read_address_list(path)
        return cls(port, entries=entries, read_errors=row_errors)

    @property
    def skip_scan(self) -> bool:
        """Address lists go straight to validation"""
        return self.network is None

    @property
    def total(self) -> Optional[int]:
        if self.network is not None:
            return count_network_hosts(self.network)
        if self.entries is None:
            return None
        return len(self.entries) + len(self.read_errors)

    @property
    def description(self) -> str:
        if self.network is not None:
            return f"subnet {self.network}"
        return f"{len(self.entries)} listed addresses"

    def __iter__(self) -> Iterator[Candidate]:
        if self.network is not None:
            return (Candidate(address, self.port) for address in iter_network_hosts(self.network))
        return self._iter_entries()

    def _iter_entries(self) -> Iterator[Candidate]:
        self.errors = list(self.read_errors)
        seen: Set[IPAddress] = set()

        for index, value in self.entries:
            try:
                address, port = parse_address_entry(value, self.port)
            except ValueError as e:
                self._record_error(index, value, str(e))
                continue

            if address in seen:
                self._record_error(index, value, "duplicate address")
                continue

            seen.add(address)
            yield Candidate(address, port)

    def _record_error(self, index: int, value: str, reason: str):
        error = EntryError(index, value, reason)
        self.errors.append(error)
        logger.debug(f"Skipping {error}")
