"""Count-min sketch with 4-bit counters, used to estimate access frequency."""

from __future__ import annotations

import random

_HALVE_TABLE = bytes(((b >> 1) & 0x77) for b in range(256))


def next_power_of_two(x: int) -> int:
    """Round ``x`` up to the next power of two, if it is not one already.

    Values of zero or below give zero.
    """
    if x <= 0:
        return 0
    return 1 << (x - 1).bit_length()


class CountMinSketch:
    """A count-min sketch of ``DEPTH`` rows of saturating 4-bit counters."""

    DEPTH = 4

    def __init__(self, num_counters: int) -> None:
        if num_counters == 0:
            raise ValueError("cmSketch: bad numCounters")
        num_counters = next_power_of_two(num_counters)
        self.mask = num_counters - 1
        rng = random.Random()
        self.seeds = tuple(rng.getrandbits(64) for _ in range(self.DEPTH))
        self._rows = [bytearray(num_counters // 2) for _ in range(self.DEPTH)]

    def _positions(self, hashed: int):
        for row, seed in zip(self._rows, self.seeds):
            yield row, (hashed ^ seed) & self.mask

    def increment(self, hashed: int) -> None:
        """Increment the counters for ``hashed``, saturating at 15."""
        for row, n in self._positions(hashed):
            index = n >> 1
            shift = (n & 1) * 4
            if (row[index] >> shift) & 0x0F < 15:
                row[index] += 1 << shift

    def estimate(self, hashed: int) -> int:
        """Return the smallest counter value for ``hashed``."""
        return min(
            (row[n >> 1] >> ((n & 1) * 4)) & 0x0F
            for row, n in self._positions(hashed)
        )

    def reset(self) -> None:
        """Halve every counter."""
        for row in self._rows:
            row[:] = row.translate(_HALVE_TABLE)

    def clear(self) -> None:
        """Set every counter to zero."""
        for row in self._rows:
            row[:] = bytes(len(row))

    def row_string(self, index: int) -> str:
        """Render the counters of one row as two-digit numbers."""
        row = self._rows[index]
        return " ".join(
            f"{(row[i >> 1] >> ((i & 1) * 4)) & 0x0F:02d}" for i in range(len(row) * 2)
        )