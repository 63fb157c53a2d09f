"""Key generators and trace-file readers for simulating cache workloads.

A simulator is a callable taking no arguments that returns the next key.
Generated simulators never run out; readers raise :class:`SimulatorDone`
once the underlying file has no more lines.
"""

from __future__ import annotations

import math
import random
from collections import deque
from typing import IO, Callable, Deque, List, Union

Simulator = Callable[[], int]
Parser = Callable[[str], List[int]]

_MAX_UINT64 = (1 << 64) - 1


class SimulatorDone(Exception):
    """Raised when the underlying file has run out of lines."""

    def __init__(self, message: str = "no more values in the Simulator") -> None:
        super().__init__(message)


class BadLine(ValueError):
    """Raised when a trace line is not in the expected format."""

    def __init__(self, message: str = "bad line for trace format") -> None:
        super().__init__(message)


def _parse_uint(text: str) -> int:
    if not text or not text.isascii() or not text.isdigit():
        raise ValueError(f"invalid unsigned integer: {text!r}")
    value = int(text)
    if value > _MAX_UINT64:
        raise ValueError(f"value out of range: {text!r}")
    return value


class _Zipf:
    """Zipf-distributed integers in ``[0, imax]`` with P(k) ~ (v + k) ** -s.

    Uses rejection-inversion sampling.
    """

    def __init__(self, rng: random.Random, s: float, v: float, imax: int) -> None:
        if s <= 1.0 or v < 1:
            raise ValueError("zipfian requires s > 1 and v >= 1")
        self._rng = rng
        self._imax = float(imax)
        self._v = v
        self._q = s
        self._one_minus_q = 1.0 - s
        self._one_minus_q_inv = 1.0 / self._one_minus_q
        self._hxm = self._h(self._imax + 0.5)
        self._hx0_minus_hxm = (
            self._h(0.5) - math.exp(math.log(v) * (-s)) - self._hxm
        )
        self._s = 1 - self._hinv(self._h(1.5) - math.exp(-s * math.log(v + 1.0)))

    def _h(self, x: float) -> float:
        return math.exp(self._one_minus_q * math.log(self._v + x)) * self._one_minus_q_inv

    def _hinv(self, x: float) -> float:
        return math.exp(self._one_minus_q_inv * math.log(self._one_minus_q * x)) - self._v

    def __call__(self) -> int:
        while True:
            ur = self._hxm + self._rng.random() * self._hx0_minus_hxm
            x = self._hinv(ur)
            k = math.floor(x + 0.5)
            if k - x <= self._s:
                break
            if ur >= self._h(k + 0.5) - math.exp(-math.log(k + self._v) * self._q):
                break
        return int(k)


def new_zipfian(s: float, v: float, n: int) -> Simulator:
    """Return a simulator of Zipf-distributed keys in ``[0, n]``.

    ``s`` must be greater than 1 and ``v`` at least 1.
    """
    return _Zipf(random.Random(), s, v, n)


def new_uniform(maximum: int) -> Simulator:
    """Return a simulator of uniformly distributed keys in ``[0, maximum)``."""
    if maximum <= 0:
        raise ValueError("maximum must be positive")
    rng = random.Random()

    def simulator() -> int:
        return rng.randrange(maximum)

    return simulator


def new_reader(parser: Parser, file: IO[Union[str, bytes]]) -> Simulator:
    """Return a simulator yielding the keys ``parser`` finds in ``file``.

    Lines are read only when the keys of the previous line are used up.
    Parse errors are raised from the call that reads the bad line; the
    next call moves on to the following line.
    """
    pending: Deque[int] = deque()

    def simulator() -> int:
        while not pending:
            line = file.readline()
            if isinstance(line, (bytes, bytearray)):
                line = line.decode("utf-8")
            pending.extend(parser(line))
        return pending.popleft()

    return simulator


def parse_lirs(line: str) -> List[int]:
    """Parse one LIRS trace line, which holds a single key."""
    line = line.strip()
    if not line:
        raise SimulatorDone()
    return [_parse_uint(line)]


def parse_arc(line: str) -> List[int]:
    """Parse one ARC trace line into the run of keys it describes.

    A line has four columns: the first key, the number of keys, and two
    columns that are ignored.
    """
    if not line:
        raise SimulatorDone()
    cols = line.split()
    if len(cols) != 4:
        raise BadLine()
    start = _parse_uint(cols[0])
    count = _parse_uint(cols[1])
    return [(start + i) & _MAX_UINT64 for i in range(count)]


def _next_or_zero(simulator: Simulator) -> int:
    try:
        return simulator()
    except (SimulatorDone, ValueError):
        return 0


def collection(simulator: Simulator, size: int) -> List[int]:
    """Call ``simulator`` ``size`` times; failed calls give 0."""
    return [_next_or_zero(simulator) for _ in range(size)]


def string_collection(simulator: Simulator, size: int) -> List[str]:
    """Like :func:`collection`, with each key as a decimal string."""
    return [str(key) for key in collection(simulator, size)]