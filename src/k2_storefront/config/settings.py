"""
Centralized settings and path configuration for the storefront demo.
"""
import os
from pathlib import Path
from dataclasses import dataclass
from typing import Optional


def get_package_root() -> Path:
    """Get the k2_storefront package directory (where data/ lives)."""
    return Path(__file__).resolve().parent.parent


def _env_merchant_mode() -> str:
    """Resolve the startup merchant mode from K2_MODE, then legacy MERCHANT_MODE."""
    k2_mode = os.getenv("K2_MODE", "").strip().lower()
    if k2_mode in ("true", "1"):
        return "k2"
    if k2_mode in ("false", "0"):
        return "baseline"

    # Legacy switch
    if os.getenv("MERCHANT_MODE", "").strip().lower() == "k2":
        return "k2"
    return "baseline"


@dataclass
class Settings:
    """Application settings with sensible defaults."""

    # Data files
    package_root: Path
    catalog_path: Path
    scenarios_path: Path

    # Checkout
    vat_rate: float = 0.15
    currency: str = "SAR"
    session_ttl_hours: int = 6
    completion_delay_seconds: int = 5
    max_checkout_items: int = 50
    supported_country: str = "SA"
    supported_payment_method: str = "mada"
    capital_city: str = "riyadh"
    capital_shipping_fee: float = 10.0
    default_shipping_fee: float = 20.0
    capital_delivery_promise: str = "Deliver tomorrow in Riyadh"
    default_delivery_promise: str = "Deliver in 2-3 days"

    # Search
    default_search_limit: int = 20
    max_search_limit: int = 50

    # Demo runtime
    default_merchant_mode: str = "baseline"
    debug_log_capacity: int = 50
    log_buffer_size: int = 250
    log_level: str = "INFO"

    @classmethod
    def load(cls, package_root: Optional[Path] = None) -> 'Settings':
        """Load settings from the package layout and environment."""
        root = package_root or get_package_root()
        data_dir = root / 'data'

        catalog_override = os.getenv("K2_CATALOG_PATH")
        scenarios_override = os.getenv("K2_SCENARIOS_PATH")

        return cls(
            package_root=root,
            catalog_path=Path(catalog_override) if catalog_override else data_dir / 'catalog.json',
            scenarios_path=Path(scenarios_override) if scenarios_override else data_dir / 'scenarios.json',
            session_ttl_hours=int(os.getenv("SESSION_TTL_HOURS", "6")),
            completion_delay_seconds=int(os.getenv("COMPLETION_DELAY_SECONDS", "5")),
            debug_log_capacity=int(os.getenv("K2_DEBUG_LOG_CAPACITY", "50")),
            default_merchant_mode=_env_merchant_mode(),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )


# Default settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings.load()
    return _settings
