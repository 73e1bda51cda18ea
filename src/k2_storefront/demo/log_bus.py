"""
Demo Log Bus - Structured event sink narrating the demo in the terminal panel.

Every event is kept in a bounded ring buffer (for snapshots), pushed to live
subscribers (the SSE stream) and mirrored to the standard logger
`k2_storefront.demo`.
"""
import itertools
import logging
import threading
import time
import uuid
from collections import deque
from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from typing import Any, Callable, Optional

logger = logging.getLogger("k2_storefront.demo")

CATEGORIES = ("ui", "agent", "k2", "merchant", "checkout", "payment", "system")
LEVELS = ("debug", "info", "warn", "error")

_PY_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}


@dataclass
class DemoLogEvent:
    id: str
    timestamp: str
    category: str
    event: str
    message: str
    session_id: Optional[str] = None
    payload: Any = None
    level: str = "info"

    def to_dict(self) -> dict:
        return asdict(self)


Listener = Callable[[DemoLogEvent], None]


def new_correlation_id() -> str:
    """Id linking the log events, response and debug log of one request."""
    return f"corr-{uuid.uuid4()}"


def with_correlation_id(payload: Any, correlation_id: Optional[str]) -> Any:
    """Merge a correlation id into an event payload so request/response pairs link up."""
    if not correlation_id:
        return payload
    if isinstance(payload, dict):
        return {**payload, "correlation_id": correlation_id}
    if payload is not None:
        return {"correlation_id": correlation_id, "data": payload}
    return {"correlation_id": correlation_id}


class DemoLogBus:
    """Thread-safe ring buffer of demo events with live subscribers."""

    def __init__(self, buffer_size: int = 250):
        self.buffer_size = buffer_size
        self._buffer: deque[DemoLogEvent] = deque(maxlen=buffer_size)
        self._listeners: list[Listener] = []
        self._lock = threading.Lock()
        self._counter = itertools.count(1)
        self._session_id: Optional[str] = None

    @property
    def session_id(self) -> str:
        """One merchant session id per demo run; reset by clear()."""
        with self._lock:
            if self._session_id is None:
                self._session_id = f"MSESS-{int(time.time() * 1000)}"
            return self._session_id

    def emit(
        self,
        category: str,
        event: str,
        message: str,
        correlation_id: Optional[str] = None,
        payload: Any = None,
        level: str = "info",
    ) -> DemoLogEvent:
        if category not in CATEGORIES:
            raise ValueError(f"Unknown log category: {category}")
        if level not in LEVELS:
            level = "info"

        log_event = DemoLogEvent(
            id=f"mlog-{int(time.time() * 1000)}-{next(self._counter)}",
            timestamp=datetime.now(timezone.utc).isoformat(),
            category=category,
            event=event,
            message=message,
            session_id=self.session_id,
            payload=with_correlation_id(payload, correlation_id),
            level=level,
        )

        with self._lock:
            self._buffer.append(log_event)
            listeners = list(self._listeners)

        logger.log(_PY_LEVELS[level], "[%s] %s: %s", category, event, message)

        for listener in listeners:
            try:
                listener(log_event)
            except Exception:
                # One broken subscriber must not starve the others
                logger.exception("Log listener failed for event %s", event)

        return log_event

    def snapshot(self) -> list[DemoLogEvent]:
        with self._lock:
            return list(self._buffer)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a function that unsubscribes it."""
        _, unsubscribe = self.snapshot_and_subscribe(listener)
        return unsubscribe

    def snapshot_and_subscribe(self, listener: Listener) -> tuple[list[DemoLogEvent], Callable[[], None]]:
        """
        Buffered events plus a live subscription, taken atomically: every
        event is either in the returned snapshot or delivered to the
        listener, never both.
        """
        with self._lock:
            events = list(self._buffer)
            self._listeners.append(listener)

        def unsubscribe():
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return events, unsubscribe

    def clear(self):
        """Drop buffered events and start a new merchant session."""
        with self._lock:
            self._buffer.clear()
            self._session_id = None

    def __len__(self) -> int:
        with self._lock:
            return len(self._buffer)
