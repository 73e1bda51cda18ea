"""
Checkout Client - The shopping agent's side of the merchant checkout API.

Wraps create / update / complete / poll over HTTP. Failures never raise to
the caller: the agent keeps its demo flow going and falls back to a locally
synthesized order id if the merchant never confirms.
"""
import logging
import time
import uuid
from dataclasses import dataclass
from typing import Callable, Optional

import httpx

logger = logging.getLogger(__name__)

POLL_INTERVAL_SECONDS = 1.5
POLL_TIMEOUT_SECONDS = 30.0


@dataclass
class PollResult:
    order_id: str
    status: str  # "completed"


def local_order_id() -> str:
    return f"LOCAL-{uuid.uuid4().hex[:8].upper()}"


class CheckoutClient:
    """
    Synchronous client for the checkout-session endpoints.

    Pass `client` to reuse a configured httpx.Client (tests use a
    MockTransport); `sleep` and `clock` drive the polling loop.
    """

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        client: Optional[httpx.Client] = None,
        poll_interval: float = POLL_INTERVAL_SECONDS,
        poll_timeout: float = POLL_TIMEOUT_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.client = client or httpx.Client(base_url=base_url, timeout=10.0)
        self.poll_interval = poll_interval
        self.poll_timeout = poll_timeout
        self.sleep = sleep
        self.clock = clock

    def close(self):
        self.client.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def create_session(
        self,
        product_id: str,
        quantity: int = 1,
        offer_id: Optional[str] = None,
        correlation_id: Optional[str] = None,
    ) -> Optional[str]:
        """POST /api/checkout-sessions; returns the new session id or None."""
        headers = {}
        if correlation_id:
            headers["x-k2-correlation-id"] = correlation_id
        if offer_id:
            headers["x-k2-offer-id"] = offer_id

        data = self._request(
            "POST", "/api/checkout-sessions",
            json={"items": [{"product_id": product_id, "quantity": quantity}]},
            headers=headers,
        )
        if not data:
            return None
        return (data.get("session") or {}).get("id")

    def update_session(self, session_id: str, email: str, address: dict) -> bool:
        """PATCH email and shipping address onto a session."""
        data = self._request(
            "PATCH", f"/api/checkout-sessions/{session_id}",
            json={"customer": {"email": email}, "shipping": {"address": address}},
        )
        return data is not None

    def complete_session(self, session_id: str, payment_method: str = "mada") -> Optional[str]:
        """POST .../complete; returns the minted order id or None."""
        data = self._request(
            "POST", f"/api/checkout-sessions/{session_id}/complete",
            json={"payment_method": payment_method},
        )
        if not data:
            return None
        return ((data.get("session") or {}).get("order") or {}).get("id")

    def poll_for_completion(self, session_id: str) -> Optional[PollResult]:
        """
        GET the session until it reports completed.

        Returns None on timeout or on a non-2xx response; transport errors
        are retried until the deadline.
        """
        deadline = self.clock() + self.poll_timeout

        while self.clock() < deadline:
            try:
                response = self.client.get(f"/api/checkout-sessions/{session_id}")
            except httpx.HTTPError as e:
                logger.warning("Poll for %s failed: %s", session_id, e)
            else:
                if not response.is_success:
                    logger.warning("Poll for %s returned %d", session_id, response.status_code)
                    return None
                session = response.json().get("session") or {}
                order_id = (session.get("order") or {}).get("id")
                if session.get("status") == "completed" and order_id:
                    return PollResult(order_id=order_id, status="completed")

            self.sleep(self.poll_interval)

        logger.warning("Timed out waiting for session %s to complete", session_id)
        return None

    def checkout(
        self,
        product_id: str,
        email: str,
        address: dict,
        quantity: int = 1,
        offer_id: Optional[str] = None,
        correlation_id: Optional[str] = None,
    ) -> str:
        """
        Run the full create, update, complete, poll sequence.

        Always returns an order id: the merchant's when confirmed, otherwise a
        LOCAL- placeholder.
        """
        session_id = self.create_session(product_id, quantity, offer_id, correlation_id)
        if session_id is None:
            return local_order_id()

        if not self.update_session(session_id, email, address):
            return local_order_id()

        if self.complete_session(session_id) is None:
            return local_order_id()

        result = self.poll_for_completion(session_id)
        return result.order_id if result else local_order_id()

    def _request(self, method: str, url: str, **kwargs) -> Optional[dict]:
        try:
            response = self.client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            logger.warning("%s %s failed: %s", method, url, e)
            return None
        if not response.is_success:
            logger.warning("%s %s returned %d", method, url, response.status_code)
            return None
        return response.json()
