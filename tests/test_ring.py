from ristretto.ring import RingBuffer, RingStripe


class _Consumer:
    def __init__(self, save, on_push):
        self.save = save
        self.on_push = on_push

    def push(self, items):
        if self.save:
            self.on_push(items)
            return True
        return False


def test_ring_drain():
    drains = []
    r = RingBuffer(_Consumer(True, lambda items: drains.append(1)), 1)
    for i in range(100):
        r.push(i)
    assert len(drains) == 100


def test_ring_reset():
    drains = []
    r = RingBuffer(_Consumer(False, lambda items: drains.append(1)), 4)
    for i in range(100):
        r.push(i)
    assert len(drains) == 0


def test_ring_consumer():
    batches = []
    r = RingBuffer(_Consumer(True, batches.append), 4)
    for i in range(100):
        r.push(i)
    drained = [item for batch in batches for item in batch]
    assert len(batches) == 25
    assert all(len(batch) == 4 for batch in batches)
    assert sorted(drained) == list(range(100))


def test_batches_have_capacity_length():
    batches = []
    r = RingBuffer(_Consumer(True, batches.append), 4)
    for i in range(12):
        r.push(i)
    assert batches == [[0, 1, 2, 3], [4, 5, 6, 7], [8, 9, 10, 11]]


def test_stripe_keeps_handed_over_batch():
    batches = []
    s = RingStripe(_Consumer(True, batches.append), 2)
    s.push(1)
    s.push(2)
    s.push(3)
    assert batches == [[1, 2]]
    assert s.data == [3]


def test_stripe_discards_on_refusal():
    s = RingStripe(_Consumer(False, lambda items: None), 2)
    s.push(1)
    s.push(2)
    assert s.data == []