import threading

import pytest

from k2_storefront.engine.debug_store import DebugLogStore
from k2_storefront.engine.models import K2DebugLog


def make_log(correlation_id, scenario="s1"):
    return K2DebugLog(correlation_id=correlation_id, timestamp="2026-03-01T09:00:00Z",
                      detected_scenario=scenario)


def test_put_and_get():
    store = DebugLogStore()
    store.put(make_log("corr-1"))
    assert store.get("corr-1").detected_scenario == "s1"
    assert store.get("corr-missing") is None


def test_evicts_oldest_first():
    store = DebugLogStore(max_entries=3)
    for n in range(5):
        store.put(make_log(f"corr-{n}"))

    assert len(store) == 3
    assert store.ids() == ["corr-2", "corr-3", "corr-4"]
    assert store.get("corr-0") is None
    assert store.get("corr-1") is None


def test_reads_do_not_refresh_position():
    store = DebugLogStore(max_entries=2)
    store.put(make_log("a"))
    store.put(make_log("b"))
    store.get("a")
    store.put(make_log("c"))

    assert "a" not in store
    assert store.ids() == ["b", "c"]


def test_overwrite_keeps_slot_and_does_not_evict():
    store = DebugLogStore(max_entries=2)
    store.put(make_log("a", scenario="first"))
    store.put(make_log("b"))
    store.put(make_log("a", scenario="second"))

    assert len(store) == 2
    assert store.get("a").detected_scenario == "second"
    assert store.ids() == ["a", "b"]


def test_clear():
    store = DebugLogStore()
    store.put(make_log("a"))
    store.clear()
    assert len(store) == 0


def test_rejects_zero_capacity():
    with pytest.raises(ValueError):
        DebugLogStore(max_entries=0)


def test_concurrent_puts_respect_capacity():
    store = DebugLogStore(max_entries=50)

    def writer(prefix):
        for n in range(100):
            store.put(make_log(f"{prefix}-{n}"))

    threads = [threading.Thread(target=writer, args=(f"t{i}",)) for i in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(store) == 50
