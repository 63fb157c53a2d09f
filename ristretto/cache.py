"""A thread-safe, cost-bounded in-memory cache with TinyLFU admission."""

from __future__ import annotations

import datetime
import hashlib
import queue
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Hashable, Optional, Tuple, Union

from .metrics import Metrics, MetricType
from .policy import Policy
from .ring import RingBuffer
from .store import DEFAULT_BUCKET_SECS, Item, ItemFlag, ShardedMap

ITEM_SIZE = 56
"""Cost charged for storing an item internally, unless that is ignored."""

SET_BUFFER_SIZE = 32 * 1024

_MASK64 = (1 << 64) - 1
_WAKE = object()

Duration = Union[int, float, datetime.timedelta]


def key_to_hash(key: Hashable) -> Tuple[int, int]:
    """Return the ``(key_hash, conflict_hash)`` pair for ``key``.

    Integers map to themselves as unsigned 64-bit values with no conflict
    hash; strings and bytes are hashed to two independent 64-bit values.
    """
    if isinstance(key, int):
        return key & _MASK64, 0
    if isinstance(key, str):
        key = key.encode("utf-8")
    if isinstance(key, (bytes, bytearray, memoryview)):
        digest = hashlib.blake2b(bytes(key), digest_size=16).digest()
        return int.from_bytes(digest[:8], "little"), int.from_bytes(digest[8:], "little")
    raise TypeError(f"key type not supported: {type(key).__name__}")


def _seconds(duration: Duration) -> float:
    if isinstance(duration, datetime.timedelta):
        return duration.total_seconds()
    return float(duration)


@dataclass
class Config:
    """Settings for a :class:`Cache`.

    ``num_counters`` is the number of access-frequency counters, ``max_cost``
    the capacity in caller-chosen units and ``buffer_items`` the size of the
    batches of accessed keys handed to the policy.
    """

    num_counters: int = 0
    max_cost: int = 0
    buffer_items: int = 0
    metrics: bool = False
    on_evict: Optional[Callable[[Item], None]] = None
    on_reject: Optional[Callable[[Item], None]] = None
    on_exit: Optional[Callable[[Any], None]] = None
    key_to_hash: Optional[Callable[[Any], Tuple[int, int]]] = None
    cost: Optional[Callable[[Any], int]] = None
    ignore_internal_cost: bool = False
    ttl_ticker_duration_secs: float = 0
    bucket_duration_secs: int = DEFAULT_BUCKET_SECS
    set_buffer_size: int = SET_BUFFER_SIZE


class Cache:
    """A concurrent cache with TinyLFU admission and sampled-LFU eviction.

    Writes are buffered and applied by a background thread; call
    :meth:`wait` to make earlier writes visible to :meth:`get`.
    """

    def __init__(self, config: Config) -> None:
        if config.num_counters == 0:
            raise ValueError("NumCounters can't be zero")
        if config.num_counters < 0:
            raise ValueError("NumCounters can't be negative number")
        if config.max_cost == 0:
            raise ValueError("MaxCost can't be zero")
        if config.max_cost < 0:
            raise ValueError("MaxCost can't be be negative number")
        if config.buffer_items == 0:
            raise ValueError("BufferItems can't be zero")
        if config.buffer_items < 0:
            raise ValueError("BufferItems can't be be negative number")

        self._config = config
        ticker_secs = config.ttl_ticker_duration_secs or config.bucket_duration_secs
        self._cleanup_interval = ticker_secs / 2

        self.policy = Policy(config.num_counters, config.max_cost)
        self.store = ShardedMap(config.bucket_duration_secs)
        self._get_buf = RingBuffer(self.policy, config.buffer_items)
        self._set_buf: "queue.Queue[Any]" = queue.Queue(maxsize=config.set_buffer_size)
        self._key_to_hash = config.key_to_hash or key_to_hash
        self._cost = config.cost
        self._ignore_internal_cost = config.ignore_internal_cost
        self._closed = False
        self._admin_lock = threading.RLock()

        self.metrics: Optional[Metrics] = None
        if config.metrics:
            self.metrics = Metrics()
            self.policy.collect_metrics(self.metrics)

        self._start_worker()

    def _record(self, metric_type: MetricType, key: int, delta: int) -> None:
        if self.metrics is not None:
            self.metrics.add(metric_type, key, delta)

    def _on_exit(self, value: Any) -> None:
        if value is not None and self._config.on_exit is not None:
            self._config.on_exit(value)

    def _on_evict(self, item: Item) -> None:
        if self._config.on_evict is not None:
            self._config.on_evict(item)
        self._on_exit(item.value)

    def _on_reject(self, item: Item) -> None:
        if self._config.on_reject is not None:
            self._config.on_reject(item)
        self._on_exit(item.value)

    def wait(self) -> None:
        """Block until every buffered write has been applied."""
        if self._closed:
            return
        done = threading.Event()
        self._set_buf.put(Item(waiter=done))
        done.wait()

    def get(self, key: Hashable) -> Tuple[Any, bool]:
        """Return ``(value, found)``; expired items are not found."""
        if self._closed:
            return None, False
        key_hash, conflict = self._key_to_hash(key)
        self._get_buf.push(key_hash)
        value, found = self.store.get(key_hash, conflict)
        self._record(MetricType.HIT if found else MetricType.MISS, key_hash, 1)
        return value, found

    def set(self, key: Hashable, value: Any, cost: int) -> bool:
        """Queue ``value`` under ``key``; False means the write was dropped.

        A cost of 0 asks the configured cost function for the real cost.
        """
        return self.set_with_ttl(key, value, cost, 0)

    def set_with_ttl(self, key: Hashable, value: Any, cost: int, ttl: Duration) -> bool:
        """Like :meth:`set`, expiring after ``ttl`` seconds.

        A ttl of zero never expires; a negative ttl discards the value.
        """
        if self._closed:
            return False
        ttl_secs = _seconds(ttl)
        if ttl_secs < 0:
            return False
        expiration = time.time() + ttl_secs if ttl_secs > 0 else None

        key_hash, conflict = self._key_to_hash(key)
        item = Item(
            key=key_hash,
            conflict=conflict,
            value=value,
            cost=cost,
            expiration=expiration,
            flag=ItemFlag.NEW,
        )
        previous, updated = self.store.update(item)
        if updated:
            self._on_exit(previous)
            item.flag = ItemFlag.UPDATE
        try:
            self._set_buf.put_nowait(item)
        except queue.Full:
            if item.flag is ItemFlag.UPDATE:
                return True
            self._record(MetricType.DROP_SETS, key_hash, 1)
            return False
        return True

    def delete(self, key: Hashable) -> None:
        """Remove ``key`` from the cache if present."""
        if self._closed:
            return
        key_hash, conflict = self._key_to_hash(key)
        _, previous = self.store.delete(key_hash, conflict)
        self._on_exit(previous)
        self._set_buf.put(Item(key=key_hash, conflict=conflict, flag=ItemFlag.DELETE))

    def get_ttl(self, key: Hashable) -> Tuple[float, bool]:
        """Return ``(seconds_left, found)``; zero seconds means no expiry."""
        key_hash, conflict = self._key_to_hash(key)
        _, found = self.store.get(key_hash, conflict)
        if not found:
            return 0.0, False
        expiration = self.store.expiration(key_hash)
        if expiration is None:
            return 0.0, True
        now = time.time()
        if now > expiration:
            return 0.0, False
        return expiration - now, True

    def close(self) -> None:
        """Empty the cache and stop its background threads."""
        with self._admin_lock:
            if self._closed:
                return
            self.clear()
            self._stop_worker()
            self.policy.close()
            self._closed = True
            self._drain()

    def clear(self) -> None:
        """Remove every item and reset policy counters and metrics."""
        with self._admin_lock:
            if self._closed:
                return
            self._stop_worker()
            self._drain()
            self.policy.clear()
            self.store.clear(self._on_evict)
            if self.metrics is not None:
                self.metrics.clear()
            self._start_worker()

    def max_cost(self) -> int:
        """Return the capacity of the cache."""
        return self.policy.max_cost()

    def update_max_cost(self, max_cost: int) -> None:
        """Change the capacity of the cache."""
        self.policy.update_max_cost(max_cost)

    def __enter__(self) -> "Cache":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _drain(self) -> None:
        while True:
            try:
                item = self._set_buf.get_nowait()
            except queue.Empty:
                return
            if item is _WAKE:
                continue
            if item.waiter is not None:
                item.waiter.set()
                continue
            if item.flag is ItemFlag.NEW:
                self._on_evict(item)

    def _start_worker(self) -> None:
        self._stop = threading.Event()
        self._worker = threading.Thread(
            target=self._process_items, args=(self._stop,), daemon=True
        )
        self._worker.start()

    def _stop_worker(self) -> None:
        self._stop.set()
        try:
            self._set_buf.put_nowait(_WAKE)
        except queue.Full:
            pass
        self._worker.join()

    def _process_items(self, stop: threading.Event) -> None:
        next_tick = time.monotonic() + self._cleanup_interval
        while not stop.is_set():
            timeout = max(0.0, next_tick - time.monotonic())
            try:
                item = self._set_buf.get(timeout=timeout)
            except queue.Empty:
                item = None
            if item is not None and item is not _WAKE:
                self._apply(item)
            if time.monotonic() >= next_tick:
                self.store.cleanup(self.policy, self._on_evict)
                next_tick = time.monotonic() + self._cleanup_interval

    def _apply(self, item: Item) -> None:
        if item.waiter is not None:
            item.waiter.set()
            return
        if item.cost == 0 and self._cost is not None and item.flag is not ItemFlag.DELETE:
            item.cost = self._cost(item.value)
        if not self._ignore_internal_cost:
            item.cost += ITEM_SIZE

        if item.flag is ItemFlag.NEW:
            victims, added = self.policy.add(item.key, item.cost)
            if added:
                self.store.set(item)
                self._record(MetricType.KEY_ADD, item.key, 1)
            else:
                self._on_reject(item)
            for victim in victims:
                victim.conflict, victim.value = self.store.delete(victim.key, 0)
                self._on_evict(victim)
        elif item.flag is ItemFlag.UPDATE:
            self.policy.update(item.key, item.cost)
        else:
            self.policy.delete(item.key)
            _, value = self.store.delete(item.key, item.conflict)
            self._on_exit(value)