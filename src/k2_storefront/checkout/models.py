"""
Data models for checkout sessions.

Money is computed with Decimal and rounded half-up to 2dp at every step;
the dataclasses hold the rounded values as floats for the wire.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Any, Optional

CENTS = Decimal("0.01")


def round_money(value) -> float:
    """Round a money amount half-up to 2 decimal places."""
    return float(Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP))


def to_iso(dt: Optional[datetime]) -> Optional[str]:
    """ISO 8601 UTC with millisecond precision and a Z suffix."""
    if dt is None:
        return None
    dt = dt.astimezone(timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


class SessionStatus(str, Enum):
    INCOMPLETE = "incomplete"
    REQUIRES_ESCALATION = "requires_escalation"
    READY_FOR_COMPLETE = "ready_for_complete"
    COMPLETE_IN_PROGRESS = "complete_in_progress"
    COMPLETED = "completed"
    CANCELED = "canceled"


# States in which a session must not be mutated by update
LOCKED_STATUSES = (
    SessionStatus.COMPLETED,
    SessionStatus.CANCELED,
    SessionStatus.COMPLETE_IN_PROGRESS,
    SessionStatus.REQUIRES_ESCALATION,
)


@dataclass
class LineItem:
    product_id: str
    title: str
    quantity: int
    unit_price: float
    total: float


@dataclass
class ShippingAddress:
    country: str
    city: str
    address_line1: str
    district: Optional[str] = None
    address_line2: Optional[str] = None
    postcode: Optional[str] = None
    phone: Optional[str] = None

    def to_dict(self) -> dict:
        body = {"country": self.country, "city": self.city, "address_line1": self.address_line1}
        for key in ("district", "address_line2", "postcode", "phone"):
            value = getattr(self, key)
            if value:
                body[key] = value
        return body


@dataclass
class Totals:
    subtotal: float
    vat: float
    vat_rate: float
    total: float


@dataclass
class Completion:
    started_at: datetime
    ready_at: Optional[datetime]


@dataclass
class Order:
    id: str
    created_at: datetime


@dataclass
class CheckoutSession:
    id: str
    status: SessionStatus
    line_items: list[LineItem]
    totals: Totals
    created_at: datetime
    expires_at: datetime
    updated_at: datetime
    currency: str = "SAR"
    email: Optional[str] = None
    address: Optional[ShippingAddress] = None
    shipping_fee: float = 0.0
    delivery_promise: Optional[str] = None
    eta_minutes: Optional[int] = None
    completion: Optional[Completion] = None
    order: Optional[Order] = None
    payment_method: Optional[str] = None

    def missing_fields(self) -> list[str]:
        missing = []
        if not self.email:
            missing.append("customer.email")
        if self.address is None:
            missing.append("shipping.address")
        return missing

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at

    def to_dict(self) -> dict:
        body: dict[str, Any] = {
            "id": self.id,
            "status": self.status.value,
            "currency": self.currency,
            "line_items": [
                {
                    "product_id": li.product_id,
                    "title": li.title,
                    "quantity": li.quantity,
                    "unit_price": li.unit_price,
                    "total": li.total,
                }
                for li in self.line_items
            ],
            "customer": {"email": self.email},
            "shipping": {
                "address": self.address.to_dict() if self.address else None,
                "fee": self.shipping_fee,
            },
            "totals": {
                "subtotal": self.totals.subtotal,
                "vat": self.totals.vat,
                "vat_rate": self.totals.vat_rate,
                "total": self.totals.total,
            },
            "delivery": {"promise": self.delivery_promise, "eta_minutes": self.eta_minutes},
            "created_at": to_iso(self.created_at),
            "expires_at": to_iso(self.expires_at),
            "updated_at": to_iso(self.updated_at),
        }
        if self.completion is not None:
            body["completion"] = {
                "started_at": to_iso(self.completion.started_at),
                "ready_at": to_iso(self.completion.ready_at),
            }
        if self.order is not None:
            body["order"] = {"id": self.order.id, "created_at": to_iso(self.order.created_at)}
        if self.payment_method is not None:
            body["payment"] = {"method": self.payment_method}
        return body


@dataclass
class ServiceResult:
    """Outcome of a checkout operation: an HTTP-style status and a JSON body."""
    status_code: int
    body: dict = field(default_factory=dict)
    headers: dict = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    @classmethod
    def error(cls, status_code: int, message: str, **extra) -> 'ServiceResult':
        return cls(status_code=status_code, body={"error": message, **extra})
