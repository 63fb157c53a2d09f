"""Lossy striped buffers that batch keys before handing them to a consumer."""

from __future__ import annotations

import threading
from typing import List, Protocol


class _Consumer(Protocol):
    def push(self, items: List[int]) -> bool: ...


class RingStripe:
    """A single buffer, not safe for concurrent use."""

    def __init__(self, consumer: _Consumer, capacity: int) -> None:
        self.consumer = consumer
        self.capacity = int(capacity)
        self.data: List[int] = []

    def push(self, item: int) -> None:
        """Append ``item``; drain to the consumer once the stripe is full."""
        self.data.append(item)
        if len(self.data) >= self.capacity:
            if self.consumer.push(self.data):
                self.data = []
            else:
                self.data.clear()


class RingBuffer:
    """A pool of stripes shared between threads to lower contention."""

    def __init__(self, consumer: _Consumer, capacity: int) -> None:
        self._consumer = consumer
        self._capacity = capacity
        self._pool: List[RingStripe] = []
        self._lock = threading.Lock()

    def push(self, item: int) -> None:
        """Add ``item`` to a stripe, draining that stripe if it fills up."""
        with self._lock:
            stripe = self._pool.pop() if self._pool else None
        if stripe is None:
            stripe = RingStripe(self._consumer, self._capacity)
        stripe.push(item)
        with self._lock:
            self._pool.append(stripe)