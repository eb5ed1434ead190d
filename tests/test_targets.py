#!/usr/bin/env python3
"""
Target enumeration tests

Covers subnet host counting and iteration, address-list parsing, and the
CSV input reader.
"""

import ipaddress
import os
import tempfile
import unittest
from itertools import islice

from proxscan.discovery.targets import (
    TargetEnumerator, count_network_hosts, parse_address_entry, parse_network, read_address_list
)
from proxscan.proxy_core.exceptions import InputError
from proxscan.proxy_core.models import Candidate


class TestSubnetEnumeration(unittest.TestCase):
    """Test host enumeration for CIDR input"""

    def test_slash_24_excludes_network_and_broadcast(self):
        enumerator = TargetEnumerator.from_subnet("192.168.1.0/24", 7890)
        candidates = list(enumerator)

        self.assertEqual(enumerator.total, 254)
        self.assertEqual(len(candidates), 254)
        self.assertEqual(str(candidates[0].address), "192.168.1.1")
        self.assertEqual(str(candidates[-1].address), "192.168.1.254")
        self.assertTrue(all(c.port == 7890 for c in candidates))

    def test_point_to_point_and_single_host(self):
        """/31 and /32 have no reserved addresses"""
        cases = [
            ("10.0.0.0/31", ["10.0.0.0", "10.0.0.1"]),
            ("10.0.0.7/32", ["10.0.0.7"]),
        ]
        for cidr, expected in cases:
            with self.subTest(cidr=cidr):
                enumerator = TargetEnumerator.from_subnet(cidr, 80)
                self.assertEqual([str(c.address) for c in enumerator], expected)
                self.assertEqual(enumerator.total, len(expected))

    def test_host_bits_are_allowed(self):
        enumerator = TargetEnumerator.from_subnet("10.0.0.5/30", 80)
        self.assertEqual([str(c.address) for c in enumerator], ["10.0.0.5", "10.0.0.6"])

    def test_total_matches_formula(self):
        for prefix in range(20, 31):
            with self.subTest(prefix=prefix):
                network = parse_network(f"172.16.0.0/{prefix}")
                self.assertEqual(count_network_hosts(network), 2 ** (32 - prefix) - 2)

    def test_ipv6_uses_standard_host_iteration(self):
        enumerator = TargetEnumerator.from_subnet("2001:db8::/126", 8080)
        addresses = [c.address for c in enumerator]
        self.assertEqual(len(addresses), enumerator.total)
        self.assertEqual(addresses, list(ipaddress.ip_network("2001:db8::/126").hosts()))

    def test_large_network_is_lazy(self):
        """A /8 yields its first hosts without materialising 16M candidates"""
        enumerator = TargetEnumerator.from_subnet("10.0.0.0/8", 3128)
        first = list(islice(iter(enumerator), 3))

        self.assertEqual([str(c.address) for c in first], ["10.0.0.1", "10.0.0.2", "10.0.0.3"])
        self.assertEqual(enumerator.total, 16777214)

    def test_malformed_cidr_raises_input_error(self):
        for cidr in ["192.168.1.0/33", "not-a-subnet", "300.1.1.0/24", ""]:
            with self.subTest(cidr=cidr):
                with self.assertRaises(InputError):
                    TargetEnumerator.from_subnet(cidr, 7890)

    def test_subnet_requires_scan(self):
        self.assertFalse(TargetEnumerator.from_subnet("10.0.0.0/30", 80).skip_scan)


class TestAddressEntries(unittest.TestCase):
    """Test IP / IP:PORT entry parsing"""

    def test_parse_address_entry(self):
        cases = [
            ("1.2.3.4", ("1.2.3.4", 7890)),
            (" 1.2.3.4 ", ("1.2.3.4", 7890)),
            ("1.2.3.4:3128", ("1.2.3.4", 3128)),
            ("2001:db8::1", ("2001:db8::1", 7890)),
            ("[2001:db8::1]:8080", ("2001:db8::1", 8080)),
        ]
        for entry, (address, port) in cases:
            with self.subTest(entry=entry):
                self.assertEqual(parse_address_entry(entry, 7890), (ipaddress.ip_address(address), port))

    def test_parse_address_entry_rejects_malformed(self):
        for entry in ["", "host.example", "1.2.3.4:0", "1.2.3.4:99999", "1.2.3.4:abc", "[2001:db8::1]"]:
            with self.subTest(entry=entry):
                with self.assertRaises(ValueError):
                    parse_address_entry(entry, 7890)

    def test_list_keeps_order_and_records_errors(self):
        enumerator = TargetEnumerator.from_addresses(
            ["1.2.3.4", "5.6.7.8:3128", "bogus", "1.2.3.4:8080", "[2001:db8::1]:8080"], 7890
        )
        candidates = list(enumerator)

        self.assertEqual(candidates, [
            Candidate(ipaddress.ip_address("1.2.3.4"), 7890),
            Candidate(ipaddress.ip_address("5.6.7.8"), 3128),
            Candidate(ipaddress.ip_address("2001:db8::1"), 8080),
        ])
        self.assertEqual([(e.index, e.value) for e in enumerator.errors], [(3, "bogus"), (4, "1.2.3.4:8080")])
        self.assertEqual(enumerator.errors[1].reason, "duplicate address")
        self.assertTrue(enumerator.skip_scan)
        self.assertEqual(enumerator.total, 5)

    def test_errors_reset_on_each_iteration(self):
        enumerator = TargetEnumerator.from_addresses(["bad", "1.1.1.1"], 80)
        list(enumerator)
        list(enumerator)
        self.assertEqual(len(enumerator.errors), 1)


class TestAddressFile(unittest.TestCase):
    """Test the single-column CSV reader"""

    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.addCleanup(self.temp_dir.cleanup)

    def _write(self, content: str) -> str:
        path = os.path.join(self.temp_dir.name, "proxies.csv")
        with open(path, "w", encoding="utf-8", newline="") as f:
            f.write(content)
        return path

    def test_reads_addresses_and_skips_blank_rows(self):
        path = self._write("IP Address,Note\n1.1.1.1,a\n\n8.8.8.8:3128,b\n,\nnope,c\n")
        entries, row_errors = read_address_list(path)
        self.assertEqual(row_errors, [])
        self.assertEqual(entries, [(2, "1.1.1.1"), (4, "8.8.8.8:3128"), (6, "nope")])

        enumerator = TargetEnumerator.from_file(path, 7890)
        self.assertEqual([c.endpoint for c in enumerator], ["1.1.1.1:7890", "8.8.8.8:3128"])
        self.assertEqual(enumerator.errors[0].index, 6)

    def test_utf8_bom_header(self):
        path = self._write("\ufeffIP Address\n9.9.9.9\n")
        self.assertEqual(read_address_list(path), ([(2, "9.9.9.9")], []))

    def test_undecodable_row_is_skipped(self):
        path = os.path.join(self.temp_dir.name, "proxies.csv")
        with open(path, "wb") as f:
            f.write(b"IP Address\n1.1.1.1\n\xff\xfe\xfa\n8.8.8.8\n")

        enumerator = TargetEnumerator.from_file(path, 7890)

        self.assertEqual([c.endpoint for c in enumerator], ["1.1.1.1:7890", "8.8.8.8:7890"])
        self.assertEqual(len(enumerator.errors), 1)
        self.assertEqual(enumerator.errors[0].index, 3)
        self.assertEqual(enumerator.errors[0].reason, "not an IP address")

    def test_oversized_row_is_skipped(self):
        path = self._write("IP Address\n1.1.1.1\n" + "x" * 200_000 + "\n8.8.8.8\n")

        entries, row_errors = read_address_list(path)

        self.assertEqual(entries, [(2, "1.1.1.1"), (4, "8.8.8.8")])
        self.assertEqual([e.index for e in row_errors], [3])
        self.assertIn("field larger than field limit", row_errors[0].reason)

        enumerator = TargetEnumerator.from_file(path, 7890)
        self.assertEqual(enumerator.total, 3)
        self.assertEqual([c.endpoint for c in enumerator], ["1.1.1.1:7890", "8.8.8.8:7890"])
        self.assertEqual([e.index for e in enumerator.errors], [3])

    def test_missing_header_raises(self):
        path = self._write("address\n1.1.1.1\n")
        with self.assertRaises(InputError):
            read_address_list(path)

    def test_empty_file_raises(self):
        path = self._write("IP Address\n\n")
        with self.assertRaises(InputError):
            read_address_list(path)

    def test_missing_file_raises(self):
        with self.assertRaises(InputError):
            TargetEnumerator.from_file(os.path.join(self.temp_dir.name, "missing.csv"), 7890)


if __name__ == '__main__':
    unittest.main()
