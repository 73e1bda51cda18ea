"""
Session Store - Process-memory map of checkout sessions keyed by id.
"""
import threading
from datetime import datetime
from typing import Optional

from .models import CheckoutSession


class SessionStore:
    """
    Thread-safe in-memory session map.

    Expired sessions are deleted on read. `lock` is exposed so the service can
    make a read-check-write sequence atomic (completion check-and-set).
    """

    def __init__(self):
        self._sessions: dict[str, CheckoutSession] = {}
        self.lock = threading.RLock()

    def get(self, session_id: str, now: datetime) -> Optional[CheckoutSession]:
        with self.lock:
            session = self._sessions.get(session_id)
            if session is None:
                return None
            if session.is_expired(now):
                del self._sessions[session_id]
                return None
            return session

    def save(self, session: CheckoutSession):
        with self.lock:
            self._sessions[session.id] = session

    def delete(self, session_id: str) -> bool:
        with self.lock:
            return self._sessions.pop(session_id, None) is not None

    def purge_expired(self, now: datetime) -> int:
        """Drop every expired session; returns how many were removed."""
        with self.lock:
            expired = [sid for sid, s in self._sessions.items() if s.is_expired(now)]
            for sid in expired:
                del self._sessions[sid]
            return len(expired)

    def clear(self):
        with self.lock:
            self._sessions.clear()

    def __len__(self) -> int:
        with self.lock:
            return len(self._sessions)
