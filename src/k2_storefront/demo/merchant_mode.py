"""
Merchant mode and shopper identity toggles for the demo.

Resolution order for K2 mode:
1. `x-k2-mode` request header (true/1 or false/0)
2. Runtime mode set via PUT /api/demo/mode
3. Startup default from settings (K2_MODE, then legacy MERCHANT_MODE)
"""
import threading
from enum import Enum
from typing import Optional


class MerchantMode(str, Enum):
    BASELINE = "baseline"
    K2 = "k2"


TRUE_VALUES = ("true", "1")
FALSE_VALUES = ("false", "0")


def parse_flag(raw: Optional[str]) -> Optional[bool]:
    """Parse a true/1/false/0 flag; anything else is None."""
    if raw is None:
        return None
    lowered = raw.strip().lower()
    if lowered in TRUE_VALUES:
        return True
    if lowered in FALSE_VALUES:
        return False
    return None


def parse_mode(raw) -> Optional[MerchantMode]:
    if not isinstance(raw, str):
        return None
    try:
        return MerchantMode(raw)
    except ValueError:
        return None


class DemoState:
    """Process-wide demo toggles. Thread-safe."""

    def __init__(self, default_mode: str = MerchantMode.BASELINE.value, has_identity: bool = False):
        self._default_mode = parse_mode(default_mode) or MerchantMode.BASELINE
        self._mode: Optional[MerchantMode] = None
        self._has_identity = has_identity
        self._lock = threading.Lock()

    @property
    def mode(self) -> MerchantMode:
        with self._lock:
            return self._mode or self._default_mode

    def set_mode(self, mode: MerchantMode):
        with self._lock:
            self._mode = MerchantMode(mode)

    @property
    def has_identity(self) -> bool:
        with self._lock:
            return self._has_identity

    def set_identity(self, has_identity: bool):
        with self._lock:
            self._has_identity = bool(has_identity)

    def is_k2_enabled(self, header_value: Optional[str] = None) -> bool:
        override = parse_flag(header_value)
        if override is not None:
            return override
        return self.mode == MerchantMode.K2

    def resolve_identity(self, header_value: Optional[str] = None) -> bool:
        override = parse_flag(header_value)
        if override is not None:
            return override
        return self.has_identity

    def reset(self):
        """Forget runtime toggles; back to the startup default."""
        with self._lock:
            self._mode = None
            self._has_identity = False
