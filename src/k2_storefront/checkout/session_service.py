"""
Checkout Service - Session lifecycle for the mock merchant checkout.

Lifecycle:
1. create: validate items against the catalog, compute totals (status incomplete)
2. update: set email and/or shipping address; becomes ready_for_complete
   once both are present
3. complete: mint an order and start a simulated async completion
4. get: lazily flip complete_in_progress to completed once ready_at passes

Every operation returns a ServiceResult; nothing is raised to the caller.
"""
import json
import logging
import uuid
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Callable, Optional

from ..catalog.product_catalog import ProductCatalog
from ..config.settings import Settings, get_settings
from .models import (
    LOCKED_STATUSES,
    CheckoutSession,
    Completion,
    LineItem,
    Order,
    ServiceResult,
    SessionStatus,
    ShippingAddress,
    Totals,
    round_money,
)
from .session_store import SessionStore

logger = logging.getLogger(__name__)

NOT_FOUND = "Checkout session not found"
NO_STORE = {"Cache-Control": "no-store"}


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def reconcile(session: CheckoutSession, now: datetime) -> CheckoutSession:
    """
    Return the session as it should be observed at `now`.

    A complete_in_progress session whose ready_at has passed is completed.
    Returns the same object when nothing changes.
    """
    if session.status != SessionStatus.COMPLETE_IN_PROGRESS:
        return session
    completion = session.completion
    if completion is None or completion.ready_at is None or completion.ready_at > now:
        return session

    return replace(
        session,
        status=SessionStatus.COMPLETED,
        completion=Completion(started_at=completion.started_at, ready_at=None),
        updated_at=now,
    )


def compute_totals(subtotal: float, shipping_fee: float, vat_rate: float) -> Totals:
    """VAT applies to subtotal plus shipping."""
    base = Decimal(str(subtotal)) + Decimal(str(shipping_fee))
    vat = round_money(base * Decimal(str(vat_rate)))
    total = round_money(base + Decimal(str(vat)))
    return Totals(subtotal=round_money(subtotal), vat=vat, vat_rate=vat_rate, total=total)


def validate_email(raw) -> tuple[Optional[str], Optional[str]]:
    """Returns (email, error)."""
    if not isinstance(raw, str):
        return None, "Invalid email format"
    email = raw.strip()
    if "@" not in email or "." not in email:
        return None, "Invalid email format"
    return email, None


def _clean(value) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


class CheckoutService:
    """Checkout operations over an injected store, catalog and clock."""

    def __init__(
        self,
        store: SessionStore,
        catalog: ProductCatalog,
        settings: Optional[Settings] = None,
        log_bus=None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.catalog = catalog
        self.settings = settings or get_settings()
        self.log_bus = log_bus
        self.clock = clock

    # ── create ──────────────────────────────────────────────────────

    def create(self, items: Any, correlation_id: Optional[str] = None) -> ServiceResult:
        max_items = self.settings.max_checkout_items

        if not isinstance(items, list) or not items:
            return self._fail(400, "items array is required and must not be empty", correlation_id, "create")
        if len(items) > max_items:
            return self._fail(400, f"items must not exceed {max_items}", correlation_id, "create")

        # Aggregate duplicates, preserving first-seen order
        quantities: dict[str, int] = {}
        warnings: list[str] = []
        for item in items:
            product_id = item.get('product_id') if isinstance(item, dict) else None
            quantity = item.get('quantity') if isinstance(item, dict) else None
            if (
                not isinstance(product_id, str) or not product_id
                or isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1
            ):
                warnings.append(f"Invalid item: {json.dumps(item, ensure_ascii=False, default=str)}")
                continue
            quantities[product_id] = quantities.get(product_id, 0) + quantity

        line_items = []
        for product_id, quantity in quantities.items():
            product = self.catalog.get(product_id)
            if product is None:
                warnings.append(f"Product not found: {product_id}")
                continue
            if not product.in_stock:
                warnings.append(f"Out of stock: {product_id}")
                continue
            line_items.append(LineItem(
                product_id=product.id,
                title=product.title,
                quantity=quantity,
                unit_price=product.price,
                total=round_money(Decimal(str(product.price)) * quantity),
            ))

        if not line_items:
            return self._fail(400, "No valid items", correlation_id, "create", details=warnings)

        subtotal = round_money(sum(Decimal(str(li.total)) for li in line_items))
        now = self.clock()
        session = CheckoutSession(
            id=str(uuid.uuid4()),
            status=SessionStatus.INCOMPLETE,
            currency=self.settings.currency,
            line_items=line_items,
            totals=compute_totals(subtotal, 0, self.settings.vat_rate),
            created_at=now,
            expires_at=now + timedelta(hours=self.settings.session_ttl_hours),
            updated_at=now,
        )
        self.store.save(session)

        body = {"session": session.to_dict()}
        if warnings:
            body["warnings"] = warnings
        body["missing_fields"] = session.missing_fields()

        self._emit(
            "merchant", "merchant.checkout_sessions.create.response",
            f"201 Created - session {session.id[:8]}... status: {session.status.value}",
            correlation_id,
            {
                "status": 201,
                "session_id": session.id,
                "line_items": len(line_items),
                "subtotal": session.totals.subtotal,
                "total": session.totals.total,
                "currency": session.currency,
            },
        )
        return ServiceResult(201, body)

    # ── update ──────────────────────────────────────────────────────

    def update(self, session_id: str, patch: Any, correlation_id: Optional[str] = None) -> ServiceResult:
        """
        Apply an email and/or shipping address patch.

        `patch` is the decoded JSON body; anything other than a dict is
        reported as an invalid body after the session checks.
        """
        with self.store.lock:
            now = self.clock()
            session = self._load(session_id, now)
            if session is None:
                return self._fail(404, NOT_FOUND, correlation_id, "update")

            if session.status in LOCKED_STATUSES:
                return self._fail(
                    409, f"Cannot update session with status: {session.status.value}", correlation_id, "update"
                )

            if not isinstance(patch, dict):
                return self._fail(400, "Invalid JSON body", correlation_id, "update")

            changes: dict[str, Any] = {}

            customer = patch.get('customer')
            if isinstance(customer, dict) and 'email' in customer:
                email, error = validate_email(customer['email'])
                if error:
                    return self._fail(400, error, correlation_id, "update")
                changes['email'] = email

            shipping = patch.get('shipping')
            if isinstance(shipping, dict) and 'address' in shipping:
                address, error = self._validate_address(shipping['address'])
                if error:
                    return self._fail(400, error, correlation_id, "update")
                fee, promise = self.shipping_for_city(address.city)
                changes.update(
                    address=address,
                    shipping_fee=fee,
                    delivery_promise=promise,
                    eta_minutes=None,
                    totals=compute_totals(session.totals.subtotal, fee, session.totals.vat_rate),
                )

            updated = replace(session, updated_at=now, **changes)

            # One-directional; never regresses
            if (
                updated.status == SessionStatus.INCOMPLETE
                and updated.email
                and updated.address is not None
            ):
                updated.status = SessionStatus.READY_FOR_COMPLETE

            self.store.save(updated)

        body = {"session": updated.to_dict()}
        missing = updated.missing_fields()
        if missing:
            body["missing_fields"] = missing

        self._emit(
            "checkout", "checkout.session.updated",
            f"200 OK - session {updated.id[:8]}... status: {updated.status.value}",
            correlation_id,
            {"session_id": updated.id, "session_status": updated.status.value, "missing_fields": missing},
        )
        return ServiceResult(200, body)

    def _validate_address(self, raw) -> tuple[Optional[ShippingAddress], Optional[str]]:
        if not isinstance(raw, dict):
            return None, "Shipping address requires country, city, and address_line1"

        country = _clean(raw.get('country'))
        city = _clean(raw.get('city'))
        line1 = _clean(raw.get('address_line1'))
        if not country or not city or not line1:
            return None, "Shipping address requires country, city, and address_line1"
        if country != self.settings.supported_country:
            return None, "Only shipping to Saudi Arabia (SA) is supported"

        return ShippingAddress(
            country=country,
            city=city,
            address_line1=line1,
            district=_clean(raw.get('district')),
            address_line2=_clean(raw.get('address_line2')),
            postcode=_clean(raw.get('postcode')),
            phone=_clean(raw.get('phone')),
        ), None

    def shipping_for_city(self, city: str) -> tuple[float, str]:
        """Capital city gets the cheaper next-day rate."""
        normalized = city.strip().lower().split(",")[0].strip()
        if normalized == self.settings.capital_city:
            return self.settings.capital_shipping_fee, self.settings.capital_delivery_promise
        return self.settings.default_shipping_fee, self.settings.default_delivery_promise

    # ── complete ────────────────────────────────────────────────────

    def complete(
        self,
        session_id: str,
        payment_method: Optional[str] = None,
        correlation_id: Optional[str] = None,
    ) -> ServiceResult:
        """
        Start order completion. The status check and transition happen under
        the store lock so concurrent requests mint at most one order id.
        """
        if payment_method is None:
            payment_method = self.settings.supported_payment_method

        with self.store.lock:
            now = self.clock()
            session = self._load(session_id, now)
            if session is None:
                return self._fail(404, NOT_FOUND, correlation_id, "complete")

            if session.status == SessionStatus.COMPLETED:
                return self._fail(
                    409, "Session already completed", correlation_id, "complete",
                    session=session.to_dict(), headers=NO_STORE,
                )

            if session.status == SessionStatus.COMPLETE_IN_PROGRESS:
                self._emit(
                    "payment", "payment.complete.duplicate",
                    "202 Accepted - completion already in progress", correlation_id,
                    {"session_id": session.id},
                )
                return ServiceResult(
                    202,
                    {"message": "Completion already in progress", "session": session.to_dict()},
                    dict(NO_STORE),
                )

            if session.status != SessionStatus.READY_FOR_COMPLETE:
                return self._fail(
                    409, f"Cannot complete session with status: {session.status.value}",
                    correlation_id, "complete", headers=NO_STORE,
                )

            if not session.email or session.address is None:
                return self._fail(400, "Missing customer email or shipping address", correlation_id, "complete")

            if payment_method != self.settings.supported_payment_method:
                return self._fail(400, "Only mada is supported in this demo", correlation_id, "complete")

            updated = replace(
                session,
                status=SessionStatus.COMPLETE_IN_PROGRESS,
                payment_method=payment_method,
                completion=Completion(
                    started_at=now,
                    ready_at=now + timedelta(seconds=self.settings.completion_delay_seconds),
                ),
                order=Order(id=f"ORD-{uuid.uuid4().hex[:8].upper()}", created_at=now),
                updated_at=now,
            )
            self.store.save(updated)

        self._emit(
            "payment", "payment.complete.accepted",
            f"202 Accepted - order {updated.order.id} processing", correlation_id,
            {
                "session_id": updated.id,
                "order_id": updated.order.id,
                "payment_method": payment_method,
                "total": updated.totals.total,
            },
        )
        return ServiceResult(
            202,
            {
                "session": updated.to_dict(),
                "poll_url": f"/api/checkout-sessions/{updated.id}",
                "message": "Checkout completion in progress",
            },
            dict(NO_STORE),
        )

    # ── get ─────────────────────────────────────────────────────────

    def get(self, session_id: str, correlation_id: Optional[str] = None) -> ServiceResult:
        now = self.clock()
        with self.store.lock:
            before = self.store.get(session_id, now)
            session = self._load(session_id, now)

        if session is None:
            return ServiceResult.error(404, NOT_FOUND)

        if before is not None and before.status != session.status:
            self._emit(
                "checkout", "checkout.session.completed",
                f"Order {session.order.id if session.order else '?'} completed", correlation_id,
                {"session_id": session.id, "session_status": session.status.value},
            )
        return ServiceResult(200, {"session": session.to_dict()}, dict(NO_STORE))

    # ── helpers ─────────────────────────────────────────────────────

    def _load(self, session_id: str, now: datetime) -> Optional[CheckoutSession]:
        """Fetch a live session and persist any lazy completion."""
        session = self.store.get(session_id, now)
        if session is None:
            return None
        current = reconcile(session, now)
        if current is not session:
            self.store.save(current)
            logger.info("Session %s completed (order %s)", current.id, current.order.id if current.order else None)
        return current

    def _fail(
        self,
        status_code: int,
        message: str,
        correlation_id: Optional[str],
        operation: str,
        headers: Optional[dict] = None,
        **extra,
    ) -> ServiceResult:
        result = ServiceResult.error(status_code, message, **extra)
        if headers:
            result.headers.update(headers)
        self._emit(
            "merchant", f"merchant.checkout_sessions.{operation}.error",
            f"{status_code} - {message}", correlation_id,
            {"status": status_code, "error": message},
            level="warn" if status_code < 500 else "error",
        )
        return result

    def _emit(self, category, event, message, correlation_id=None, payload=None, level="info"):
        if self.log_bus is not None:
            self.log_bus.emit(category, event, message, correlation_id=correlation_id, payload=payload, level=level)
