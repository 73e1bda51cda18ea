import threading

import pytest

from k2_storefront.demo.log_bus import DemoLogBus, with_correlation_id
from k2_storefront.demo.merchant_mode import DemoState, MerchantMode, parse_flag


@pytest.mark.parametrize("raw, expected", [
    ("true", True), ("1", True), ("TRUE", True),
    ("false", False), ("0", False),
    ("yes", None), ("", None), (None, None),
])
def test_parse_flag(raw, expected):
    assert parse_flag(raw) is expected


def test_header_overrides_runtime_mode():
    state = DemoState(default_mode="baseline")
    assert state.is_k2_enabled() is False
    assert state.is_k2_enabled("1") is True

    state.set_mode(MerchantMode.K2)
    assert state.is_k2_enabled() is True
    assert state.is_k2_enabled("false") is False
    assert state.is_k2_enabled("garbage") is True


def test_default_mode_from_settings_value():
    assert DemoState(default_mode="k2").mode == MerchantMode.K2
    assert DemoState(default_mode="bogus").mode == MerchantMode.BASELINE


def test_identity_toggle_and_header():
    state = DemoState()
    assert state.resolve_identity() is False
    state.set_identity(True)
    assert state.resolve_identity() is True
    assert state.resolve_identity("0") is False

    state.reset()
    assert state.has_identity is False


def test_correlation_id_merged_into_payload():
    assert with_correlation_id({"a": 1}, "c1") == {"a": 1, "correlation_id": "c1"}
    assert with_correlation_id([1, 2], "c1") == {"correlation_id": "c1", "data": [1, 2]}
    assert with_correlation_id(None, "c1") == {"correlation_id": "c1"}
    assert with_correlation_id({"a": 1}, None) == {"a": 1}


def test_log_bus_ring_buffer():
    bus = DemoLogBus(buffer_size=3)
    for n in range(5):
        bus.emit("system", "tick", f"tick {n}")

    messages = [e.message for e in bus.snapshot()]
    assert messages == ["tick 2", "tick 3", "tick 4"]


def test_log_bus_session_id_resets_on_clear():
    bus = DemoLogBus()
    first = bus.emit("system", "a", "a").session_id
    assert first.startswith("MSESS-")
    assert bus.emit("system", "b", "b").session_id == first

    bus.clear()
    assert len(bus) == 0


def test_failing_listener_does_not_block_others():
    bus = DemoLogBus()
    received = []

    def broken(event):
        raise RuntimeError("boom")

    bus.subscribe(broken)
    unsubscribe = bus.subscribe(received.append)

    bus.emit("k2", "k2.test", "hello", level="warn")
    assert [e.event for e in received] == ["k2.test"]

    unsubscribe()
    bus.emit("k2", "k2.test", "again")
    assert len(received) == 1


def test_unknown_category_rejected():
    with pytest.raises(ValueError):
        DemoLogBus().emit("billing", "x", "y")


def test_events_mirrored_to_logger(caplog):
    bus = DemoLogBus()
    with caplog.at_level("WARNING", logger="k2_storefront.demo"):
        bus.emit("checkout", "checkout.warn", "watch out", level="warn")
    assert "watch out" in caplog.text


def test_snapshot_and_subscribe_splits_events_exactly_once():
    bus = DemoLogBus()
    bus.emit("system", "before", "before")

    received = []
    buffered, unsubscribe = bus.snapshot_and_subscribe(received.append)
    bus.emit("system", "after", "after")
    unsubscribe()

    assert [e.event for e in buffered] == ["before"]
    assert [e.event for e in received] == ["after"]


def test_snapshot_and_subscribe_under_concurrent_emits():
    bus = DemoLogBus(buffer_size=1000)
    received = []
    started = threading.Event()

    def emitter():
        for n in range(300):
            if n == 10:
                started.set()
            bus.emit("k2", "k2.tick", f"tick {n}")

    thread = threading.Thread(target=emitter)
    thread.start()
    started.wait()
    buffered, unsubscribe = bus.snapshot_and_subscribe(received.append)
    thread.join()
    unsubscribe()

    buffered_ids = [e.id for e in buffered]
    received_ids = [e.id for e in received]
    assert not set(buffered_ids) & set(received_ids), "an event was delivered twice"
    assert sorted(buffered_ids + received_ids) == sorted(e.id for e in bus.snapshot())
