"""A bloom filter keyed by pre-computed 64-bit hashes."""

from __future__ import annotations

import base64
import json
import math

_MASK64 = (1 << 64) - 1
_LN2 = 0.69314718056


def _get_size(entries: int) -> tuple[int, int]:
    entries = max(entries, 512)
    size, exponent = 1, 0
    while size < entries:
        size <<= 1
        exponent += 1
    return size, exponent


def _size_by_false_positives(num_entries: float, rate: float) -> tuple[int, int]:
    size = -1 * num_entries * math.log(rate) / math.pow(_LN2, 2)
    locs = math.ceil(_LN2 * size / num_entries)
    return int(size), int(locs)


class BloomFilter:
    """Bloom filter sized either by hash locations or by a false-positive rate.

    When ``locs_or_rate`` is below 1 it is taken as the wanted false-positive
    rate; otherwise it is the number of bit locations set per entry.
    """

    def __init__(self, num_entries: float, locs_or_rate: float) -> None:
        if locs_or_rate < 1:
            entries, locs = _size_by_false_positives(num_entries, locs_or_rate)
        else:
            entries, locs = int(num_entries), int(locs_or_rate)
        size, exponent = _get_size(entries)
        self.elem_num = 0
        self._size_exp = exponent
        self._size = size - 1
        self._set_locs = locs
        self._shift = 64 - exponent
        self._bits = bytearray((size >> 6) * 8)

    @property
    def set_locs(self) -> int:
        """Number of bit locations set per entry."""
        return self._set_locs

    def _locations(self, hashed: int):
        hashed &= _MASK64
        high = hashed >> self._shift
        low = ((hashed << self._shift) & _MASK64) >> self._shift
        for i in range(self._set_locs):
            yield (high + i * low) & self._size

    def add(self, hashed: int) -> None:
        """Record ``hashed`` in the filter."""
        for idx in self._locations(hashed):
            self.set_bit(idx)
            self.elem_num += 1

    def has(self, hashed: int) -> bool:
        """Return True if every bit for ``hashed`` is set."""
        return all(self.is_set(idx) for idx in self._locations(hashed))

    def add_if_not_has(self, hashed: int) -> bool:
        """Add ``hashed`` unless present; return True if it was added."""
        if self.has(hashed):
            return False
        self.add(hashed)
        return True

    def total_size(self) -> int:
        """Size in bytes of the bitset plus five 8-byte fields."""
        return len(self._bits) + 5 * 8

    def clear(self) -> None:
        """Unset every bit."""
        self._bits[:] = bytes(len(self._bits))

    def set_bit(self, idx: int) -> None:
        """Set bit ``idx`` of the bitset."""
        self._bits[idx >> 3] |= 1 << (idx % 8)

    def is_set(self, idx: int) -> bool:
        """Return whether bit ``idx`` of the bitset is set."""
        return (self._bits[idx >> 3] >> (idx % 8)) & 1 == 1

    def to_json(self) -> bytes:
        """Serialise the bitset and location count as JSON."""
        document = {
            "FilterSet": base64.b64encode(bytes(self._bits)).decode("ascii"),
            "SetLocs": self._set_locs,
        }
        return json.dumps(document, separators=(",", ":")).encode("utf-8")

    @classmethod
    def from_json(cls, data: bytes | str) -> "BloomFilter":
        """Rebuild a filter from the output of :meth:`to_json`."""
        document = json.loads(data)
        if not isinstance(document, dict):
            raise ValueError("bloom filter JSON must be an object")
        encoded = document.get("FilterSet") or ""
        bitset = base64.b64decode(encoded, validate=True)
        locs = document.get("SetLocs", 0)
        bloom = cls(float(len(bitset) << 3), float(locs))
        bloom._bits[: len(bitset)] = bitset
        return bloom