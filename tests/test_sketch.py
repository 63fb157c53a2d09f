import pytest

from ristretto.sketch import CountMinSketch, next_power_of_two


def test_mask_rounded_to_power_of_two():
    s = CountMinSketch(5)
    assert s.mask == 7


def test_zero_counters_rejected():
    with pytest.raises(ValueError):
        CountMinSketch(0)


def test_increment_rows_differ():
    s = CountMinSketch(16)
    s.increment(1)
    s.increment(5)
    s.increment(9)
    first = s.row_string(0)
    assert any(s.row_string(i) != first for i in range(1, CountMinSketch.DEPTH))


def test_estimate():
    s = CountMinSketch(16)
    s.increment(1)
    s.increment(1)
    assert s.estimate(1) == 2
    assert s.estimate(0) == 0


def test_reset_halves():
    s = CountMinSketch(16)
    for _ in range(4):
        s.increment(1)
    s.reset()
    assert s.estimate(1) == 2


def test_clear():
    s = CountMinSketch(16)
    for i in range(16):
        s.increment(i)
    s.clear()
    assert all(s.estimate(i) == 0 for i in range(16))


def test_counters_saturate_at_fifteen():
    s = CountMinSketch(16)
    for _ in range(40):
        s.increment(3)
    assert s.estimate(3) == 15


def test_row_string_format():
    s = CountMinSketch(4)
    assert s.row_string(0) == "00 00 00 00"
    s.increment(2)
    assert sum(int(part) for part in s.row_string(0).split()) == 1


@pytest.mark.parametrize(
    "value, expected",
    [
        (1, 1),
        (5, 8),
        (8, 8),
        (9, 16),
        (0, 0),
        (-3, 0),
        (int((12 << 30) * 0.01), 134217728),
    ],
)
def test_next_power_of_two(value, expected):
    assert next_power_of_two(value) == expected