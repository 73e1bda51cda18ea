"""
Debug Log Store - Bounded in-memory store of K2 debug logs by correlation id.
"""
import threading
from collections import OrderedDict
from typing import Optional

from .models import K2DebugLog

DEFAULT_MAX_ENTRIES = 50


class DebugLogStore:
    """
    Keeps the most recent debug logs, oldest evicted first.

    Reads do not refresh an entry's position; eviction is strictly by
    insertion order. Overwriting an existing id keeps its original slot.
    """

    def __init__(self, max_entries: int = DEFAULT_MAX_ENTRIES):
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.max_entries = max_entries
        self._logs: "OrderedDict[str, K2DebugLog]" = OrderedDict()
        self._lock = threading.Lock()

    def put(self, log: K2DebugLog):
        with self._lock:
            self._logs[log.correlation_id] = log
            while len(self._logs) > self.max_entries:
                self._logs.popitem(last=False)

    def get(self, correlation_id: str) -> Optional[K2DebugLog]:
        with self._lock:
            return self._logs.get(correlation_id)

    def clear(self):
        with self._lock:
            self._logs.clear()

    def ids(self) -> list[str]:
        """Stored correlation ids, oldest first."""
        with self._lock:
            return list(self._logs.keys())

    def __len__(self) -> int:
        with self._lock:
            return len(self._logs)

    def __contains__(self, correlation_id: str) -> bool:
        with self._lock:
            return correlation_id in self._logs
