"""Running statistics about cache hits, misses, additions and evictions."""

from __future__ import annotations

import enum
import threading
from typing import Dict

_MASK64 = (1 << 64) - 1


class MetricType(enum.IntEnum):
    """The kinds of events the cache counts."""

    HIT = 0
    MISS = 1
    KEY_ADD = 2
    KEY_UPDATE = 3
    KEY_EVICT = 4
    COST_ADD = 5
    COST_EVICT = 6
    DROP_SETS = 7
    REJECT_SETS = 8
    DROP_GETS = 9
    KEEP_GETS = 10

    @property
    def label(self) -> str:
        """The name used for this metric in reports."""
        return _LABELS[self]


_LABELS: Dict[MetricType, str] = {
    MetricType.HIT: "hit",
    MetricType.MISS: "miss",
    MetricType.KEY_ADD: "keys-added",
    MetricType.KEY_UPDATE: "keys-updated",
    MetricType.KEY_EVICT: "keys-evicted",
    MetricType.COST_ADD: "cost-added",
    MetricType.COST_EVICT: "cost-evicted",
    MetricType.DROP_SETS: "sets-dropped",
    MetricType.REJECT_SETS: "sets-rejected",
    MetricType.DROP_GETS: "gets-dropped",
    MetricType.KEEP_GETS: "gets-kept",
}


class Metrics:
    """Thread-safe counters for the lifetime of a cache.

    Counters are unsigned 64-bit values: adding a negative delta subtracts,
    wrapping around like an unsigned integer would.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._counters: Dict[MetricType, int] = {t: 0 for t in MetricType}

    def add(self, metric_type: MetricType, hashed: int, delta: int) -> None:
        """Add ``delta`` to the counter for ``metric_type``.

        ``hashed`` is the key the event concerns; it does not affect totals.
        """
        metric_type = MetricType(metric_type)
        with self._lock:
            self._counters[metric_type] = (self._counters[metric_type] + delta) & _MASK64

    def get(self, metric_type: MetricType) -> int:
        """Return the current value of the counter for ``metric_type``."""
        with self._lock:
            return self._counters[MetricType(metric_type)]

    def hits(self) -> int:
        """Number of lookups that found a value."""
        return self.get(MetricType.HIT)

    def misses(self) -> int:
        """Number of lookups that found nothing."""
        return self.get(MetricType.MISS)

    def keys_added(self) -> int:
        """Number of new keys admitted."""
        return self.get(MetricType.KEY_ADD)

    def keys_updated(self) -> int:
        """Number of updates to existing keys."""
        return self.get(MetricType.KEY_UPDATE)

    def keys_evicted(self) -> int:
        """Number of keys evicted."""
        return self.get(MetricType.KEY_EVICT)

    def cost_added(self) -> int:
        """Sum of the costs of admitted items."""
        return self.get(MetricType.COST_ADD)

    def cost_evicted(self) -> int:
        """Sum of the costs of evicted items."""
        return self.get(MetricType.COST_EVICT)

    def sets_dropped(self) -> int:
        """Number of sets that never reached the internal buffers."""
        return self.get(MetricType.DROP_SETS)

    def sets_rejected(self) -> int:
        """Number of sets rejected by the admission policy."""
        return self.get(MetricType.REJECT_SETS)

    def gets_dropped(self) -> int:
        """Number of access-counter batches dropped."""
        return self.get(MetricType.DROP_GETS)

    def gets_kept(self) -> int:
        """Number of access-counter increments kept."""
        return self.get(MetricType.KEEP_GETS)

    def ratio(self) -> float:
        """Hits over all lookups, or 0.0 when there were none."""
        with self._lock:
            hits = self._counters[MetricType.HIT]
            misses = self._counters[MetricType.MISS]
        if hits == 0 and misses == 0:
            return 0.0
        return hits / (hits + misses)

    def clear(self) -> None:
        """Reset every counter to zero."""
        with self._lock:
            for metric_type in self._counters:
                self._counters[metric_type] = 0

    def __str__(self) -> str:
        parts = [f"{t.label}: {self.get(t)} " for t in MetricType]
        total = (self.hits() + self.misses()) & _MASK64
        parts.append(f"gets-total: {total} ")
        parts.append(f"hit-ratio: {self.ratio():.2f}")
        return "".join(parts)