# ristretto

A thread-safe, cost-bounded, in-memory cache for Python. New items are
admitted by a TinyLFU policy (a count-min sketch of access frequency behind a
bloom-filter doorkeeper); room is made by evicting, from a small sample of
cached keys, the one with the lowest estimated frequency. Items may carry a
time to live. The package has no dependencies outside the standard library.

## Installation

```
pip install .
```

To run the test suite:

```
pip install ".[test]"
pytest
```

## Usage

```python
from ristretto.cache import Cache, Config

config = Config(
    num_counters=10_000,   # access-frequency counters, about 10x the items held
    max_cost=1_000,        # capacity, in whatever units you give as cost
    buffer_items=64,       # size of the batches of read keys given to the policy
    metrics=True,
)

with Cache(config) as cache:
    cache.set("answer", 42, 1)
    cache.wait()                        # apply buffered writes
    value, found = cache.get("answer")  # (42, True)

    cache.set_with_ttl("session", "data", 1, 5.0)   # expires after 5 seconds
    cache.wait()
    remaining, found = cache.get_ttl("session")     # seconds left, True

    cache.delete("answer")
    print(cache.metrics)
```

`Cache.__init__` raises `ValueError` when `num_counters`, `max_cost` or
`buffer_items` is zero or negative. Leaving the `with` block calls `close()`,
which empties the cache and stops its background thread; after that, `get`
finds nothing and `set` returns `False`.

### Writes are buffered

`set`, `set_with_ttl` and `delete` place items on a queue that a background
thread applies. A `set` followed at once by a `get` may therefore miss; call
`wait()` when the write must be visible. `set` returns `False` when the write
was dropped because the queue was full (updates to a key already present are
applied to the store at once and still return `True`). Even an accepted write
may later be refused by the admission policy.

### Cost

Every item has a cost, and the total is kept under `max_cost`. Unless
`ignore_internal_cost=True`, each item is charged an extra
`ristretto.cache.ITEM_SIZE` (56) for its storage, so a small `max_cost` may
admit nothing. A cost of `0`, together with a `cost` function in `Config`,
makes the cache compute the cost from the value when the write is applied.
`max_cost()` and `update_max_cost()` read and change the capacity.

### Time to live

`set_with_ttl` takes seconds (a number or a `datetime.timedelta`). A ttl of
zero never expires, and a negative ttl discards the value and returns
`False`. Expired items are not returned by `get`; they are removed by a
periodic cleanup, which runs every `ttl_ticker_duration_secs / 2` seconds
(by default `bucket_duration_secs / 2`, with buckets of 5 seconds).

### Keys and callbacks

By default `ristretto.cache.key_to_hash` turns integers into themselves (as
unsigned 64-bit values) and hashes `str` and `bytes` keys into a key hash and
a conflict hash; other key types raise `TypeError`. Pass `key_to_hash` in
`Config` to supply your own `(hash, conflict)` function.

`on_evict(item)` is called for evicted items, `on_reject(item)` for items the
policy refused, and `on_exit(value)` whenever a value that is not `None`
leaves the cache, including on eviction, rejection, replacement, deletion and
`clear()`.

### Metrics

With `metrics=True`, `cache.metrics` is a `ristretto.metrics.Metrics` with
`hits()`, `misses()`, `ratio()`, `keys_added()`, `keys_updated()`,
`keys_evicted()`, `cost_added()`, `cost_evicted()`, `sets_dropped()`,
`sets_rejected()`, `gets_dropped()` and `gets_kept()`. `clear()` on the cache
resets them.

## Building blocks

The parts the cache is made of can be used on their own:

- `ristretto.sketch.CountMinSketch` — count-min sketch of four rows of
  saturating 4-bit counters, with `increment`, `estimate`, `reset` (halve)
  and `clear`; `next_power_of_two` rounds sizes up.
- `ristretto.bloom.BloomFilter` — bloom filter over 64-bit hashes, sized by a
  number of hash locations or, when the second argument is below 1, by a
  false-positive rate; `to_json()` and `BloomFilter.from_json()` export and
  import it.
- `ristretto.ring.RingBuffer` — lossy buffer that hands batches of keys to a
  consumer with a `push(items) -> bool` method.
- `ristretto.policy.Policy` — the admission (`TinyLFU`) and eviction
  (`SampledLFU`) policy.
- `ristretto.store.ShardedMap` — the sharded store with its
  `ExpirationMap` of time buckets.
- `ristretto.sim` — key-access simulators for measuring hit ratios:
  `new_zipfian(s, v, n)` (needs `s > 1`, `v >= 1`), `new_uniform(maximum)`,
  and `new_reader(parser, file)` with the `parse_lirs` and `parse_arc` trace
  parsers. Readers raise `SimulatorDone` at the end of the file; `parse_arc`
  raises `BadLine` for lines without four columns. `collection` and
  `string_collection` gather a number of keys, putting 0 for failed calls.

## What it does not do

The cache lives only in the memory of one process: nothing is written to
disk and nothing is shared between processes. The package provides no
command-line tool and no server; it is a library to import.