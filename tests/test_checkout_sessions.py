import threading
from datetime import timedelta

import pytest

from k2_storefront.catalog.product_catalog import ProductCatalog
from k2_storefront.checkout.models import SessionStatus, round_money
from k2_storefront.checkout.session_service import CheckoutService, compute_totals, reconcile
from k2_storefront.checkout.session_store import SessionStore
from k2_storefront.demo.log_bus import DemoLogBus

from conftest import make_product

EMAIL = "shopper@example.com"
RIYADH = {"country": "SA", "city": "Riyadh", "address_line1": "King Fahd Road 123", "district": "Al Olaya"}
JEDDAH = {"country": "SA", "city": "Jeddah", "address_line1": "Tahlia Street 9"}


@pytest.fixture
def shop_catalog():
    return ProductCatalog([
        make_product("A", price=100.0),
        make_product("B", price=49.99),
        make_product("C", price=10.0, in_stock=False),
    ])


@pytest.fixture
def bus():
    return DemoLogBus()


@pytest.fixture
def service(shop_catalog, settings, clock, bus):
    return CheckoutService(SessionStore(), shop_catalog, settings, log_bus=bus, clock=clock)


def create_session(service, items=None):
    result = service.create(items or [{"product_id": "A", "quantity": 1}])
    assert result.status_code == 201, result.body
    return result.body["session"]["id"]


def ready_session(service):
    session_id = create_session(service)
    result = service.update(session_id, {"customer": {"email": EMAIL}, "shipping": {"address": RIYADH}})
    assert result.body["session"]["status"] == "ready_for_complete"
    return session_id


# ── create ───────────────────────────────────────────────────────────

def test_create_computes_totals(service):
    result = service.create([
        {"product_id": "A", "quantity": 2},
        {"product_id": "B", "quantity": 1},
    ])
    session = result.body["session"]

    assert result.status_code == 201
    assert session["status"] == "incomplete"
    assert session["currency"] == "SAR"
    assert session["totals"] == {"subtotal": 249.99, "vat": 37.5, "vat_rate": 0.15, "total": 287.49}
    assert session["line_items"][0] == {
        "product_id": "A", "title": "A", "quantity": 2, "unit_price": 100.0, "total": 200.0,
    }
    assert result.body["missing_fields"] == ["customer.email", "shipping.address"]
    assert "warnings" not in result.body


def test_create_sets_six_hour_expiry(service, clock):
    session = service.create([{"product_id": "A", "quantity": 1}]).body["session"]
    assert session["created_at"] == "2026-03-01T09:00:00.000Z"
    assert session["expires_at"] == "2026-03-01T15:00:00.000Z"


def test_create_aggregates_duplicate_products(service):
    result = service.create([
        {"product_id": "B", "quantity": 1},
        {"product_id": "A", "quantity": 1},
        {"product_id": "B", "quantity": 2},
    ])
    lines = result.body["session"]["line_items"]
    assert [(li["product_id"], li["quantity"]) for li in lines] == [("B", 3), ("A", 1)]
    assert lines[0]["total"] == 149.97


@pytest.mark.parametrize("items", [None, [], {"product_id": "A"}, "A"])
def test_create_requires_items(service, items):
    result = service.create(items)
    assert result.status_code == 400
    assert result.body["error"] == "items array is required and must not be empty"


def test_create_rejects_too_many_items(service):
    result = service.create([{"product_id": "A", "quantity": 1}] * 51)
    assert result.status_code == 400
    assert result.body["error"] == "items must not exceed 50"


def test_create_skips_bad_items_with_warnings(service):
    result = service.create([
        {"product_id": "A", "quantity": 1},
        {"product_id": "A", "quantity": 0},
        {"product_id": "B", "quantity": True},
        {"quantity": 1},
        {"product_id": "ZZZ", "quantity": 1},
        {"product_id": "C", "quantity": 1},
    ])
    warnings = result.body["warnings"]

    assert result.status_code == 201
    assert len(result.body["session"]["line_items"]) == 1
    assert sum(w.startswith("Invalid item:") for w in warnings) == 3
    assert "Product not found: ZZZ" in warnings
    assert "Out of stock: C" in warnings


def test_create_with_no_valid_items(service):
    result = service.create([{"product_id": "C", "quantity": 1}, {"product_id": "nope", "quantity": 1}])
    assert result.status_code == 400
    assert result.body["error"] == "No valid items"
    assert result.body["details"] == ["Out of stock: C", "Product not found: nope"]


# ── update ───────────────────────────────────────────────────────────

def test_update_riyadh_shipping(service):
    session_id = create_session(service, [{"product_id": "A", "quantity": 2}, {"product_id": "B", "quantity": 1}])
    result = service.update(session_id, {"customer": {"email": "  shopper@example.com "}, "shipping": {"address": RIYADH}})
    session = result.body["session"]

    assert result.status_code == 200
    assert session["status"] == "ready_for_complete"
    assert session["customer"]["email"] == EMAIL
    assert session["shipping"]["fee"] == 10.0
    assert session["shipping"]["address"]["district"] == "Al Olaya"
    assert "tomorrow" in session["delivery"]["promise"].lower()
    assert session["totals"] == {"subtotal": 249.99, "vat": 39.0, "vat_rate": 0.15, "total": 298.99}
    assert "missing_fields" not in result.body


@pytest.mark.parametrize("city", ["riyadh", " RIYADH ", "Riyadh, Olaya"])
def test_capital_city_matching_is_loose(service, city):
    fee, _ = service.shipping_for_city(city)
    assert fee == 10.0


def test_update_other_city_shipping(service):
    session_id = create_session(service)
    session = service.update(session_id, {"shipping": {"address": JEDDAH}}).body["session"]
    assert session["shipping"]["fee"] == 20.0
    assert session["delivery"]["promise"] == "Deliver in 2-3 days"
    assert session["totals"]["total"] == 138.0


def test_partial_update_reports_missing_fields(service):
    session_id = create_session(service)
    result = service.update(session_id, {"customer": {"email": EMAIL}})
    assert result.body["session"]["status"] == "incomplete"
    assert result.body["missing_fields"] == ["shipping.address"]


@pytest.mark.parametrize("address, error", [
    ({"country": "AE", "city": "Dubai", "address_line1": "x"}, "Only shipping to Saudi Arabia (SA) is supported"),
    ({"country": "SA", "city": "Riyadh"}, "Shipping address requires country, city, and address_line1"),
    ({"country": "SA", "city": "  ", "address_line1": "x"}, "Shipping address requires country, city, and address_line1"),
    ("Riyadh", "Shipping address requires country, city, and address_line1"),
])
def test_update_rejects_bad_address(service, address, error):
    session_id = create_session(service)
    result = service.update(session_id, {"shipping": {"address": address}})
    assert result.status_code == 400
    assert result.body["error"] == error


@pytest.mark.parametrize("email", ["not-an-email", "", 42, None])
def test_update_rejects_bad_email(service, email):
    session_id = create_session(service)
    result = service.update(session_id, {"customer": {"email": email}})
    assert result.status_code == 400
    assert result.body["error"] == "Invalid email format"


def test_failed_update_leaves_session_untouched(service):
    session_id = create_session(service)
    service.update(session_id, {"customer": {"email": EMAIL}, "shipping": {"address": {"country": "US"}}})
    session = service.get(session_id).body["session"]
    assert session["customer"]["email"] is None


def test_update_unknown_session(service):
    result = service.update("missing", {"customer": {"email": EMAIL}})
    assert result.status_code == 404
    assert result.body["error"] == "Checkout session not found"


def test_update_non_object_body(service):
    session_id = create_session(service)
    result = service.update(session_id, None)
    assert result.status_code == 400
    assert result.body["error"] == "Invalid JSON body"


def test_update_locked_after_completion_starts(service):
    session_id = ready_session(service)
    service.complete(session_id)

    result = service.update(session_id, {"customer": {"email": "other@example.com"}})
    assert result.status_code == 409
    assert result.body["error"] == "Cannot update session with status: complete_in_progress"


# ── complete / get ───────────────────────────────────────────────────

def test_complete_then_poll_until_completed(service, clock):
    session_id = ready_session(service)

    result = service.complete(session_id, "mada")
    assert result.status_code == 202
    assert result.headers["Cache-Control"] == "no-store"
    assert result.body["poll_url"] == f"/api/checkout-sessions/{session_id}"
    assert result.body["message"] == "Checkout completion in progress"
    session = result.body["session"]
    order_id = session["order"]["id"]
    assert session["status"] == "complete_in_progress"
    assert order_id.startswith("ORD-") and len(order_id) == 12
    assert session["completion"]["ready_at"] == "2026-03-01T09:00:05.000Z"
    assert session["payment"] == {"method": "mada"}

    clock.advance(seconds=4)
    assert service.get(session_id).body["session"]["status"] == "complete_in_progress"

    clock.advance(seconds=1)
    polled = service.get(session_id)
    assert polled.status_code == 200
    assert polled.headers["Cache-Control"] == "no-store"
    assert polled.body["session"]["status"] == "completed"
    assert polled.body["session"]["order"]["id"] == order_id
    assert polled.body["session"]["completion"]["ready_at"] is None


def test_payment_method_defaults_to_mada(service):
    session_id = ready_session(service)
    assert service.complete(session_id).status_code == 202


def test_duplicate_complete_keeps_single_order(service):
    session_id = ready_session(service)
    first = service.complete(session_id)
    second = service.complete(session_id)

    assert second.status_code == 202
    assert second.body["message"] == "Completion already in progress"
    assert second.body["session"]["order"]["id"] == first.body["session"]["order"]["id"]


def test_concurrent_complete_mints_one_order(service):
    session_id = ready_session(service)
    barrier = threading.Barrier(8)
    results = []
    results_lock = threading.Lock()

    def attempt():
        barrier.wait()
        result = service.complete(session_id)
        with results_lock:
            results.append(result)

    threads = [threading.Thread(target=attempt) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert [r.status_code for r in results] == [202] * 8
    started = [r for r in results if r.body["message"] == "Checkout completion in progress"]
    assert len(started) == 1, "exactly one request starts completion"
    order_ids = {r.body["session"]["order"]["id"] for r in results}
    assert len(order_ids) == 1


def test_complete_after_completed(service, clock):
    session_id = ready_session(service)
    service.complete(session_id)
    clock.advance(seconds=10)

    # complete observes the lazy transition even without a prior get
    result = service.complete(session_id)
    assert result.status_code == 409
    assert result.body["error"] == "Session already completed"
    assert result.body["session"]["status"] == "completed"


def test_complete_incomplete_session(service):
    session_id = create_session(service)
    result = service.complete(session_id)
    assert result.status_code == 409
    assert result.body["error"] == "Cannot complete session with status: incomplete"


def test_complete_rejects_other_payment(service):
    session_id = ready_session(service)
    result = service.complete(session_id, "visa")
    assert result.status_code == 400
    assert result.body["error"] == "Only mada is supported in this demo"
    assert service.get(session_id).body["session"]["status"] == "ready_for_complete"


@pytest.mark.parametrize("payment_method", ["", "  ", "MADA"])
def test_complete_rejects_blank_or_unknown_payment(service, payment_method):
    session_id = ready_session(service)
    result = service.complete(session_id, payment_method)
    assert result.status_code == 400
    assert result.body["error"] == "Only mada is supported in this demo"
    assert service.get(session_id).body["session"]["status"] == "ready_for_complete"


def test_complete_unknown_session(service):
    assert service.complete("missing").status_code == 404


def test_session_expires_after_ttl(service, clock):
    session_id = create_session(service)
    clock.advance(hours=6)
    assert service.get(session_id).status_code == 200

    clock.advance(seconds=1)
    result = service.get(session_id)
    assert result.status_code == 404
    assert result.body == {"error": "Checkout session not found"}
    assert len(service.store) == 0


def test_purge_expired(service, clock):
    create_session(service)
    create_session(service)
    clock.advance(hours=7)
    assert service.store.purge_expired(clock()) == 2


def test_lifecycle_events_logged(service, bus, clock):
    session_id = ready_session(service)
    service.complete(session_id, correlation_id="corr-x")
    clock.advance(seconds=5)
    service.get(session_id, correlation_id="corr-x")

    events = [e.event for e in bus.snapshot()]
    assert "merchant.checkout_sessions.create.response" in events
    assert "payment.complete.accepted" in events
    assert events[-1] == "checkout.session.completed"
    assert bus.snapshot()[-1].payload["correlation_id"] == "corr-x"


def test_errors_logged_as_warnings(service, bus):
    service.create([])
    event = bus.snapshot()[-1]
    assert event.event == "merchant.checkout_sessions.create.error"
    assert event.level == "warn"


# ── pure helpers ─────────────────────────────────────────────────────

def test_reconcile_does_not_mutate(service, clock):
    session_id = ready_session(service)
    service.complete(session_id)
    stored = service.store.get(session_id, clock())

    later = clock() + timedelta(seconds=5)
    observed = reconcile(stored, later)

    assert observed is not stored
    assert observed.status == SessionStatus.COMPLETED
    assert stored.status == SessionStatus.COMPLETE_IN_PROGRESS
    assert reconcile(stored, clock()) is stored


@pytest.mark.parametrize("value, expected", [
    (0.005, 0.01),
    (1.005, 1.01),
    (2.675, 2.68),
    (10, 10.0),
])
def test_round_money_half_up(value, expected):
    assert round_money(value) == expected


def test_vat_on_subtotal_plus_shipping():
    totals = compute_totals(100, 20, 0.15)
    assert (totals.subtotal, totals.vat, totals.total) == (100.0, 18.0, 138.0)
