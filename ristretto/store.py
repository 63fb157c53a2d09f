"""Sharded key/value storage with time-bucketed expiration tracking."""

from __future__ import annotations

import enum
import math
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple

NUM_SHARDS = 256
DEFAULT_BUCKET_SECS = 5


class ItemFlag(enum.Enum):
    """What a buffered item asks the cache to do."""

    NEW = 0
    DELETE = 1
    UPDATE = 2


@dataclass
class Item:
    """A key/value pair as it travels through the cache.

    ``expiration`` is an epoch timestamp in seconds, or None for no expiry.
    ``waiter`` is set on marker items used to wait for the buffer to drain.
    """

    key: int = 0
    conflict: int = 0
    value: Any = None
    cost: int = 0
    expiration: Optional[float] = None
    flag: ItemFlag = ItemFlag.NEW
    waiter: Optional[threading.Event] = None


EvictCallback = Callable[[Item], None]


class _CostPolicy(Protocol):
    def cost(self, key: int) -> int: ...

    def delete(self, key: int) -> None: ...


def storage_bucket(timestamp: float, bucket_secs: int = DEFAULT_BUCKET_SECS) -> int:
    """Return the bucket number an item expiring at ``timestamp`` is kept in."""
    return math.floor(timestamp) // bucket_secs + 1


def cleanup_bucket(timestamp: float, bucket_secs: int = DEFAULT_BUCKET_SECS) -> int:
    """Return the newest bucket that may be cleaned at ``timestamp``.

    It trails the storage bucket by one so that nothing that might not have
    expired yet is removed.
    """
    return storage_bucket(timestamp, bucket_secs) - 1


class ExpirationMap:
    """Maps bucket numbers to the keys (and conflicts) expiring in them."""

    def __init__(self, bucket_secs: int = DEFAULT_BUCKET_SECS) -> None:
        self.bucket_secs = bucket_secs
        self._lock = threading.Lock()
        self._buckets: Dict[int, Dict[int, int]] = {}
        self.last_cleaned_bucket = cleanup_bucket(time.time(), bucket_secs)

    def _bucket_of(self, expiration: float) -> int:
        return storage_bucket(expiration, self.bucket_secs)

    def add(self, key: int, conflict: int, expiration: Optional[float]) -> None:
        """Track ``key`` as expiring at ``expiration``; no-op without expiry."""
        if expiration is None:
            return
        with self._lock:
            self._buckets.setdefault(self._bucket_of(expiration), {})[key] = conflict

    def update(
        self,
        key: int,
        conflict: int,
        old_expiration: Optional[float],
        new_expiration: Optional[float],
    ) -> None:
        """Move ``key`` from its old expiration bucket to the new one."""
        with self._lock:
            if old_expiration is not None:
                old_bucket = self._buckets.get(self._bucket_of(old_expiration))
                if old_bucket is not None:
                    old_bucket.pop(key, None)
            if new_expiration is None:
                return
            self._buckets.setdefault(self._bucket_of(new_expiration), {})[key] = conflict

    def delete(self, key: int, expiration: Optional[float]) -> None:
        """Stop tracking ``key`` in the bucket for ``expiration``."""
        if expiration is None:
            return
        with self._lock:
            bucket = self._buckets.get(self._bucket_of(expiration))
            if bucket is not None:
                bucket.pop(key, None)

    def bucket(self, number: int) -> Dict[int, int]:
        """Return a copy of the keys and conflicts held in bucket ``number``."""
        with self._lock:
            return dict(self._buckets.get(number, {}))

    def cleanup(
        self,
        store: "ShardedMap",
        policy: _CostPolicy,
        on_evict: Optional[EvictCallback],
    ) -> None:
        """Remove expired items of every completed bucket from the store."""
        with self._lock:
            now = time.time()
            current = cleanup_bucket(now, self.bucket_secs)
            due: List[Dict[int, int]] = [
                self._buckets.pop(number, {})
                for number in range(self.last_cleaned_bucket + 1, current + 1)
            ]
            self.last_cleaned_bucket = current

        for keys in due:
            for key, conflict in keys.items():
                expiration = store.expiration(key)
                if expiration is not None and expiration > now:
                    continue
                cost = policy.cost(key)
                policy.delete(key)
                _, value = store.delete(key, conflict)
                if on_evict is not None:
                    on_evict(
                        Item(
                            key=key,
                            conflict=conflict,
                            value=value,
                            cost=cost,
                            expiration=expiration,
                        )
                    )

    def clear(self) -> None:
        """Forget every bucket; evicting the items is up to the caller."""
        with self._lock:
            self._buckets = {}
            self.last_cleaned_bucket = cleanup_bucket(time.time(), self.bucket_secs)


@dataclass
class _StoredItem:
    key: int
    conflict: int
    value: Any
    expiration: Optional[float]


def _conflicts(requested: int, stored: int) -> bool:
    return requested != 0 and requested != stored


class _LockedMap:
    """One shard of the store, guarded by its own lock."""

    def __init__(self, expirations: ExpirationMap) -> None:
        self._lock = threading.Lock()
        self.data: Dict[int, _StoredItem] = {}
        self._expirations = expirations

    def get(self, key: int, conflict: int) -> Tuple[Any, bool]:
        with self._lock:
            item = self.data.get(key)
        if item is None or _conflicts(conflict, item.conflict):
            return None, False
        if item.expiration is not None and time.time() > item.expiration:
            return None, False
        return item.value, True

    def expiration(self, key: int) -> Optional[float]:
        with self._lock:
            item = self.data.get(key)
            return item.expiration if item is not None else None

    def set(self, new: Item) -> None:
        with self._lock:
            existing = self.data.get(new.key)
            if existing is not None:
                if _conflicts(new.conflict, existing.conflict):
                    return
                self._expirations.update(
                    new.key, new.conflict, existing.expiration, new.expiration
                )
            else:
                self._expirations.add(new.key, new.conflict, new.expiration)
            self.data[new.key] = _StoredItem(
                new.key, new.conflict, new.value, new.expiration
            )

    def delete(self, key: int, conflict: int) -> Tuple[int, Any]:
        with self._lock:
            item = self.data.get(key)
            if item is None or _conflicts(conflict, item.conflict):
                return 0, None
            if item.expiration is not None:
                self._expirations.delete(key, item.expiration)
            del self.data[key]
            return item.conflict, item.value

    def update(self, new: Item) -> Tuple[Any, bool]:
        with self._lock:
            existing = self.data.get(new.key)
            if existing is None or _conflicts(new.conflict, existing.conflict):
                return None, False
            self._expirations.update(
                new.key, new.conflict, existing.expiration, new.expiration
            )
            self.data[new.key] = _StoredItem(
                new.key, new.conflict, new.value, new.expiration
            )
            return existing.value, True

    def clear(self, on_evict: Optional[EvictCallback]) -> None:
        with self._lock:
            if on_evict is not None:
                for stored in self.data.values():
                    on_evict(
                        Item(key=stored.key, conflict=stored.conflict, value=stored.value)
                    )
            self.data = {}


class ShardedMap:
    """A thread-safe map from hashed keys to values, split into shards."""

    def __init__(self, bucket_secs: int = DEFAULT_BUCKET_SECS) -> None:
        self.expirations = ExpirationMap(bucket_secs)
        self.shards = [_LockedMap(self.expirations) for _ in range(NUM_SHARDS)]

    def _shard(self, key: int) -> _LockedMap:
        return self.shards[key % NUM_SHARDS]

    def get(self, key: int, conflict: int) -> Tuple[Any, bool]:
        """Return ``(value, found)``; expired or conflicting items are not found."""
        return self._shard(key).get(key, conflict)

    def expiration(self, key: int) -> Optional[float]:
        """Return the expiration timestamp of ``key``, or None."""
        return self._shard(key).expiration(key)

    def set(self, item: Optional[Item]) -> None:
        """Store ``item``, unless it collides with a different conflict hash."""
        if item is None:
            return
        self._shard(item.key).set(item)

    def delete(self, key: int, conflict: int) -> Tuple[int, Any]:
        """Remove ``key``; return its ``(conflict, value)`` or ``(0, None)``."""
        return self._shard(key).delete(key, conflict)

    def update(self, item: Item) -> Tuple[Any, bool]:
        """Replace an existing entry; return ``(previous_value, updated)``."""
        return self._shard(item.key).update(item)

    def cleanup(self, policy: _CostPolicy, on_evict: Optional[EvictCallback]) -> None:
        """Evict items whose expiration bucket has passed."""
        self.expirations.cleanup(self, policy, on_evict)

    def clear(self, on_evict: Optional[EvictCallback]) -> None:
        """Remove every item, passing each to ``on_evict`` if given."""
        for shard in self.shards:
            shard.clear(on_evict)
        self.expirations.clear()