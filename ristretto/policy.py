"""Admission (TinyLFU) and eviction (sampled LFU) policies."""

from __future__ import annotations

import itertools
import sys
import threading
from collections import deque
from typing import Deque, Dict, List, Optional, Sequence, Tuple

from .bloom import BloomFilter
from .metrics import Metrics, MetricType
from .sketch import CountMinSketch
from .store import Item

LFU_SAMPLE = 5
_QUEUE_SIZE = 3


def _record(metrics: Optional[Metrics], metric_type: MetricType, key: int, delta: int) -> None:
    if metrics is not None:
        metrics.add(metric_type, key, delta)


class TinyLFU:
    """Access-frequency tracker: a doorkeeper bloom filter over a sketch.

    Not safe for concurrent use.
    """

    def __init__(self, num_counters: int) -> None:
        self.freq = CountMinSketch(num_counters)
        self.door = BloomFilter(float(num_counters), 0.01)
        self.incrs = 0
        self.reset_at = num_counters

    def push(self, keys: Sequence[int]) -> None:
        """Record one access for each of ``keys``."""
        for key in keys:
            self.increment(key)

    def estimate(self, key: int) -> int:
        """Return the estimated access count of ``key``."""
        hits = self.freq.estimate(key)
        if self.door.has(key):
            hits += 1
        return hits

    def increment(self, key: int) -> None:
        """Record one access of ``key``, ageing the counters periodically."""
        if not self.door.add_if_not_has(key):
            self.freq.increment(key)
        self.incrs += 1
        if self.incrs >= self.reset_at:
            self.reset()

    def reset(self) -> None:
        """Clear the doorkeeper and halve the frequency counters."""
        self.incrs = 0
        self.door.clear()
        self.freq.reset()

    def clear(self) -> None:
        """Forget all access history."""
        self.incrs = 0
        self.door.clear()
        self.freq.clear()


class SampledLFU:
    """Eviction bookkeeping: the cost of every admitted key."""

    def __init__(self, max_cost: int) -> None:
        self.max_cost = max_cost
        self.used = 0
        self.metrics: Optional[Metrics] = None
        self.key_costs: Dict[int, int] = {}

    def room_left(self, cost: int) -> int:
        """Return the room remaining after adding ``cost``; negative if over."""
        return self.max_cost - (self.used + cost)

    def fill_sample(self, sample: List[Tuple[int, int]]) -> List[Tuple[int, int]]:
        """Top ``sample`` up to ``LFU_SAMPLE`` ``(key, cost)`` pairs."""
        missing = LFU_SAMPLE - len(sample)
        if missing <= 0:
            return sample
        sample.extend(itertools.islice(self.key_costs.items(), missing))
        return sample

    def delete(self, key: int) -> None:
        """Forget ``key`` and release its cost."""
        cost = self.key_costs.pop(key, None)
        if cost is None:
            return
        self.used -= cost
        _record(self.metrics, MetricType.COST_EVICT, key, cost)
        _record(self.metrics, MetricType.KEY_EVICT, key, 1)

    def add(self, key: int, cost: int) -> None:
        """Record ``key`` with ``cost``."""
        self.key_costs[key] = cost
        self.used += cost

    def update_if_has(self, key: int, cost: int) -> bool:
        """Change the cost of ``key`` if it is known; return whether it was."""
        prev = self.key_costs.get(key)
        if prev is None:
            return False
        _record(self.metrics, MetricType.KEY_UPDATE, key, 1)
        if cost != prev:
            _record(self.metrics, MetricType.COST_ADD, key, cost - prev)
        self.used += cost - prev
        self.key_costs[key] = cost
        return True

    def clear(self) -> None:
        """Forget every key."""
        self.used = 0
        self.key_costs = {}


class Policy:
    """Decides which items are admitted and which are evicted.

    Access batches passed to :meth:`push` are applied by a background
    thread; batches that arrive while its small queue is full are dropped.
    """

    def __init__(self, num_counters: int, max_cost: int) -> None:
        self._lock = threading.Lock()
        self.admit = TinyLFU(num_counters)
        self.evict = SampledLFU(max_cost)
        self.metrics: Optional[Metrics] = None
        self.is_closed = False
        self._queue: Deque[List[int]] = deque()
        self._cond = threading.Condition()
        self._stopping = False
        self._worker = threading.Thread(target=self._process_items, daemon=True)
        self._worker.start()

    def collect_metrics(self, metrics: Metrics) -> None:
        """Start reporting events to ``metrics``."""
        self.metrics = metrics
        self.evict.metrics = metrics

    def _process_items(self) -> None:
        while True:
            with self._cond:
                while not self._queue and not self._stopping:
                    self._cond.wait()
                if self._stopping:
                    return
                keys = self._queue.popleft()
            with self._lock:
                self.admit.push(keys)

    def push(self, keys: Sequence[int]) -> bool:
        """Queue a batch of accessed keys; return False if it was dropped."""
        if self.is_closed:
            return False
        if not keys:
            return True
        keys = list(keys)
        with self._cond:
            if self._stopping:
                return False
            kept = len(self._queue) < _QUEUE_SIZE
            if kept:
                self._queue.append(keys)
                self._cond.notify()
        metric = MetricType.KEEP_GETS if kept else MetricType.DROP_GETS
        _record(self.metrics, metric, keys[0], len(keys))
        return kept

    def add(self, key: int, cost: int) -> Tuple[List[Item], bool]:
        """Decide whether to admit ``key``; return ``(victims, admitted)``."""
        with self._lock:
            evict = self.evict
            if cost > evict.max_cost:
                return [], False
            if evict.update_if_has(key, cost):
                return [], False

            room = evict.room_left(cost)
            if room >= 0:
                evict.add(key, cost)
                _record(self.metrics, MetricType.COST_ADD, key, cost)
                return [], True

            inc_hits = self.admit.estimate(key)
            sample: List[Tuple[int, int]] = []
            victims: List[Item] = []
            while room < 0:
                sample = evict.fill_sample(sample)
                min_key, min_hits, min_id, min_cost = 0, sys.maxsize, 0, 0
                for i, (sample_key, sample_cost) in enumerate(sample):
                    hits = self.admit.estimate(sample_key)
                    if hits < min_hits:
                        min_key, min_hits, min_id, min_cost = (
                            sample_key,
                            hits,
                            i,
                            sample_cost,
                        )
                if inc_hits < min_hits:
                    _record(self.metrics, MetricType.REJECT_SETS, key, 1)
                    return victims, False
                evict.delete(min_key)
                sample[min_id] = sample[-1]
                sample.pop()
                victims.append(Item(key=min_key, conflict=0, cost=min_cost))
                room = evict.room_left(cost)

            evict.add(key, cost)
            _record(self.metrics, MetricType.COST_ADD, key, cost)
            return victims, True

    def has(self, key: int) -> bool:
        """Return whether ``key`` is admitted."""
        with self._lock:
            return key in self.evict.key_costs

    def delete(self, key: int) -> None:
        """Forget ``key``."""
        with self._lock:
            self.evict.delete(key)

    def capacity(self) -> int:
        """Return the cost still available."""
        with self._lock:
            return self.evict.max_cost - self.evict.used

    def update(self, key: int, cost: int) -> None:
        """Change the cost of an admitted key."""
        with self._lock:
            self.evict.update_if_has(key, cost)

    def cost(self, key: int) -> int:
        """Return the cost of ``key``, or -1 if it is not admitted."""
        with self._lock:
            return self.evict.key_costs.get(key, -1)

    def clear(self) -> None:
        """Forget all admitted keys and access history."""
        with self._lock:
            self.admit.clear()
            self.evict.clear()

    def close(self) -> None:
        """Stop the background thread; later pushes are refused."""
        if self.is_closed:
            return
        with self._cond:
            self._stopping = True
            self._queue.clear()
            self._cond.notify_all()
        self._worker.join()
        self.is_closed = True

    def max_cost(self) -> int:
        """Return the total cost the policy allows."""
        return self.evict.max_cost

    def update_max_cost(self, max_cost: int) -> None:
        """Change the total cost the policy allows."""
        self.evict.max_cost = max_cost