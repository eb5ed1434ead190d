"""Result Aggregation - Collects enriched proxies into a latency-ranked report"""

import logging
import threading
from collections.abc import Sequence
from typing import Dict, Iterator, List, Optional, Tuple

from ..proxy_core.models import FinalRecord, GeoResult, IPAddress

logger = logging.getLogger(__name__)


class ResultSnapshot(Sequence):
    """Immutable, latency-ordered view of the final records"""

    def __init__(self, records: List[FinalRecord]):
        self._records: Tuple[FinalRecord, ...] = tuple(sorted(records, key=lambda r: r.sort_key))

    def __getitem__(self, index):
        return self._records[index]

    def __len__(self) -> int:
        return len(self._records)

    def __repr__(self) -> str:
        return f"ResultSnapshot({len(self._records)} records)"

    def rows(self) -> Iterator[Tuple[int, FinalRecord]]:
        """(rank, record) pairs, rank starting at 1"""
        return enumerate(self._records, start=1)

    @property
    def fastest(self) -> Optional[FinalRecord]:
        return self._records[0] if self._records else None

    @property
    def average_latency(self) -> float:
        if not self._records:
            return 0.0
        return sum(r.latency_ms for r in self._records) / len(self._records)


class ResultAggregator:
    """Thread-safe, append-once collection of enrichment results.

    Results may arrive in any order and from any thread. Each address is
    recorded at most once; once ``snapshot()`` has been taken the aggregator
    is closed and later additions are rejected.
    """

    def __init__(self):
        self._records: Dict[IPAddress, FinalRecord] = {}
        self._lock = threading.Lock()
        self._snapshot: Optional[ResultSnapshot] = None
        self.rejected = 0

    def add(self, result: GeoResult) -> bool:
        record = FinalRecord.from_geo_result(result)
        with self._lock:
            if self._snapshot is not None:
                self.rejected += 1
                logger.warning(f"Result for {record.address} arrived after the report was finalised")
                return False
            if record.address in self._records:
                self.rejected += 1
                logger.debug(f"Duplicate result for {record.address} ignored")
                return False
            self._records[record.address] = record
            return True

    def snapshot(self) -> ResultSnapshot:
        with self._lock:
            if self._snapshot is None:
                self._snapshot = ResultSnapshot(list(self._records.values()))
                logger.debug(f"Aggregated {len(self._snapshot)} results ({self.rejected} rejected)")
            return self._snapshot

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
