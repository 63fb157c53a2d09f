import threading

from ristretto.metrics import Metrics, MetricType


def test_add_get():
    m = Metrics()
    m.add(MetricType.HIT, 1, 1)
    m.add(MetricType.HIT, 2, 2)
    m.add(MetricType.HIT, 3, 3)
    assert m.hits() == 6


def test_new_metrics_start_at_zero():
    m = Metrics()
    getters = [
        m.hits,
        m.misses,
        m.keys_added,
        m.keys_updated,
        m.keys_evicted,
        m.cost_added,
        m.cost_evicted,
        m.sets_dropped,
        m.sets_rejected,
        m.gets_dropped,
        m.gets_kept,
    ]
    assert [f() for f in getters] == [0] * len(getters)


def test_ratio():
    m = Metrics()
    assert m.ratio() == 0.0
    m.add(MetricType.HIT, 1, 1)
    m.add(MetricType.HIT, 2, 2)
    m.add(MetricType.MISS, 1, 1)
    m.add(MetricType.MISS, 2, 2)
    assert m.ratio() == 0.5


def test_string_and_all_getters():
    m = Metrics()
    for t in MetricType:
        m.add(t, 1, 1)
    assert m.hits() == 1
    assert m.misses() == 1
    assert m.ratio() == 0.5
    assert m.keys_added() == 1
    assert m.keys_updated() == 1
    assert m.keys_evicted() == 1
    assert m.cost_added() == 1
    assert m.cost_evicted() == 1
    assert m.sets_dropped() == 1
    assert m.sets_rejected() == 1
    assert m.gets_dropped() == 1
    assert m.gets_kept() == 1
    assert str(m) == (
        "hit: 1 miss: 1 keys-added: 1 keys-updated: 1 keys-evicted: 1 "
        "cost-added: 1 cost-evicted: 1 sets-dropped: 1 sets-rejected: 1 "
        "gets-dropped: 1 gets-kept: 1 gets-total: 2 hit-ratio: 0.50"
    )


def test_labels_appear_in_string():
    m = Metrics()
    m.add(MetricType.KEY_ADD, 1, 3)
    m.add(MetricType.REJECT_SETS, 1, 2)
    text = str(m)
    assert "keys-added: 3 " in text
    assert "sets-rejected: 2 " in text
    assert MetricType.KEY_ADD.label == "keys-added"
    assert MetricType.REJECT_SETS.label == "sets-rejected"


def test_negative_delta_subtracts():
    m = Metrics()
    m.add(MetricType.COST_ADD, 1, 10)
    m.add(MetricType.COST_ADD, 1, -3)
    assert m.cost_added() == 7


def test_clear():
    m = Metrics()
    m.add(MetricType.KEY_ADD, 1, 10)
    m.add(MetricType.HIT, 1, 4)
    m.clear()
    assert m.keys_added() == 0
    assert m.hits() == 0
    assert m.ratio() == 0.0


def test_concurrent_adds():
    m = Metrics()

    def work():
        for i in range(1000):
            m.add(MetricType.MISS, i, 1)

    threads = [threading.Thread(target=work) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert m.misses() == 8000