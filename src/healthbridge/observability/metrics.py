"""In-process counters shared by ingestion and processing."""

import threading
from collections import Counter
from types import MappingProxyType
from typing import Mapping


class MetricsRegistry:
    """Monotonic named counters.

    Each pipeline owns its own registry, so independent pipelines (and tests)
    never share counts. Increments are atomic across threads; snapshots are
    copies and never change after they are taken.
    """

    def __init__(self):
        self._counters: Counter = Counter()
        self._lock = threading.Lock()

    def increment(self, key: str) -> None:
        with self._lock:
            self._counters[key] += 1

    def get(self, key: str) -> int:
        with self._lock:
            return self._counters.get(key, 0)

    def snapshot(self) -> Mapping[str, int]:
        """Return a read-only copy of the current counts."""
        with self._lock:
            return MappingProxyType(dict(self._counters))

    def __repr__(self) -> str:
        return f"MetricsRegistry({dict(self.snapshot())!r})"
