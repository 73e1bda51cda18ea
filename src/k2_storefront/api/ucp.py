"""
UCP discovery profile served at /.well-known/ucp.
"""
from ..config.settings import Settings

UCP_PROFILE_VERSION = "2025-04-01"


def build_ucp_profile(base_url: str, settings: Settings) -> dict:
    """Describe this merchant's catalog and checkout capabilities."""
    base_url = base_url.rstrip("/")
    return {
        "ucp": {"version": UCP_PROFILE_VERSION},
        "merchant": {"id": "jarir", "name": "Jarir"},
        "services": {"rest": {"endpoint": base_url}},
        "capabilities": [
            {
                "name": "ucp.shopping.product_catalog",
                "version": UCP_PROFILE_VERSION,
                "config": {
                    "endpoint": f"{base_url}/api/products",
                    "search_param": "q",
                    "max_results": settings.default_search_limit,
                },
            },
            {
                "name": "ucp.shopping.checkout",
                "version": UCP_PROFILE_VERSION,
                "config": {
                    "endpoint": f"{base_url}/api/checkout-sessions",
                    "supported_currencies": [settings.currency],
                    "vat_rate": settings.vat_rate,
                },
            },
        ],
    }


def base_url_from_headers(headers, default_host: str = "localhost:8000") -> str:
    """Rebuild the public base URL, honouring reverse-proxy forwarding headers."""
    protocol = headers.get("x-forwarded-proto") or "http"
    host = headers.get("x-forwarded-host") or headers.get("host") or default_host
    return f"{protocol}://{host}"
