import gzip
import io
from collections import Counter

import pytest

from ristretto.sim import (
    BadLine,
    SimulatorDone,
    collection,
    new_reader,
    new_uniform,
    new_zipfian,
    parse_arc,
    parse_lirs,
    string_collection,
)


def test_zipfian_is_skewed():
    s = new_zipfian(1.5, 1, 100)
    counts = Counter(s() for _ in range(100))
    assert 0 < len(counts) < 100
    assert all(0 <= k <= 100 for k in counts)


def test_zipfian_small_keys_most_common():
    s = new_zipfian(2.0, 1, 1000)
    counts = Counter(s() for _ in range(2000))
    assert counts[0] > counts[10]


def test_zipfian_rejects_bad_parameters():
    with pytest.raises(ValueError):
        new_zipfian(1.0, 1, 100)
    with pytest.raises(ValueError):
        new_zipfian(1.5, 0.5, 100)


def test_uniform_in_range():
    s = new_uniform(100)
    values = [s() for _ in range(100)]
    assert all(0 <= v < 100 for v in values)


def test_uniform_rejects_non_positive():
    with pytest.raises(ValueError):
        new_uniform(0)


def test_parse_lirs_reader():
    s = new_reader(parse_lirs, io.BytesIO(b"0\n1\r\n2\r\n"))
    assert [s() for _ in range(3)] == [0, 1, 2]


def test_lirs_reader_done_at_end():
    s = new_reader(parse_lirs, io.StringIO("7\n"))
    assert s() == 7
    with pytest.raises(SimulatorDone):
        s()


def test_read_lirs_gzip():
    data = gzip.compress("".join(f"{i}\n" for i in range(200)).encode())
    s = new_reader(parse_lirs, gzip.open(io.BytesIO(data)))
    assert [s() for _ in range(100)] == list(range(100))


def test_parse_lirs_values():
    assert parse_lirs("1\r\n") == [1]
    with pytest.raises(SimulatorDone):
        parse_lirs("  \n")
    with pytest.raises(ValueError):
        parse_lirs("-1\n")
    with pytest.raises(ValueError):
        parse_lirs("abc")


def test_parse_arc_reader():
    s = new_reader(parse_arc, io.BytesIO(b"127 64 0 0\r\n191 36 0 0\r\n"))
    assert [s() for _ in range(100)] == [127 + i for i in range(100)]
    with pytest.raises(SimulatorDone):
        s()


def test_parse_arc_values():
    assert parse_arc("0 5 0 0\n") == [0, 1, 2, 3, 4]
    with pytest.raises(BadLine):
        parse_arc("1 2 3\n")
    with pytest.raises(SimulatorDone):
        parse_arc("")
    with pytest.raises(ValueError):
        parse_arc("x 2 0 0\n")


def test_reader_continues_after_bad_line():
    s = new_reader(parse_arc, io.StringIO("bad\n5 2 0 0\n"))
    with pytest.raises(BadLine):
        s()
    assert [s(), s()] == [5, 6]


def test_collection_full():
    c = collection(new_uniform(100), 100)
    assert len(c) == 100
    assert all(0 <= v < 100 for v in c)


def test_collection_zero_after_done():
    s = new_reader(parse_lirs, io.StringIO("3\n4\n"))
    assert collection(s, 4) == [3, 4, 0, 0]


def test_string_collection_full():
    c = string_collection(new_uniform(100), 100)
    assert len(c) == 100
    assert all(v.isdigit() and 0 <= int(v) < 100 for v in c)


def test_string_collection_values():
    s = new_reader(parse_arc, io.StringIO("10 3 0 0\n"))
    assert string_collection(s, 3) == ["10", "11", "12"]