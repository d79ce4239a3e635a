"""Storage for finished scans, used by the HTTP layer only."""

import threading
from collections import OrderedDict
from typing import Protocol

from .models import ScanResult


class ScanStore(Protocol):
    def get(self, scan_id: str) -> ScanResult | None: ...

    def put(self, result: ScanResult) -> None: ...

    def recent(self, limit: int = 50, requested_by: str | None = None) -> list[ScanResult]: ...


class InMemoryScanStore:
    """Process-local store that keeps the most recent ``capacity`` scans."""

    def __init__(self, capacity: int = 200):
        self.capacity = capacity
        self._results: OrderedDict[str, ScanResult] = OrderedDict()
        self._lock = threading.Lock()

    def get(self, scan_id: str) -> ScanResult | None:
        with self._lock:
            return self._results.get(scan_id)

    def put(self, result: ScanResult) -> None:
        with self._lock:
            self._results[result.scan_id] = result
            self._results.move_to_end(result.scan_id)
            while len(self._results) > self.capacity:
                self._results.popitem(last=False)

    def recent(self, limit: int = 50, requested_by: str | None = None) -> list[ScanResult]:
        """Most recent first, optionally only scans attributed to ``requested_by``."""
        with self._lock:
            results = list(reversed(self._results.values()))
        if requested_by is not None:
            results = [r for r in results if r.requested_by == requested_by]
        return results[:limit]
