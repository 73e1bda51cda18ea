"""
Products API - Product search, either baseline relevance or K2 scenarios.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Header
from fastapi.responses import JSONResponse

from ..engine.baseline_search import clamp_limit, search_products
from ..engine.models import ucp_envelope
from ..demo.log_bus import new_correlation_id
from .state import AppState, get_state

router = APIRouter(prefix="/api/products", tags=["products"])


@router.get("")
async def list_products(
    q: str = "",
    limit: Optional[str] = None,
    include_oos: Optional[str] = None,
    x_k2_mode: Optional[str] = Header(None),
    x_k2_identity: Optional[str] = Header(None),
    state: AppState = Depends(get_state),
):
    """
    Search the catalog.

    With K2 enabled and a scenario trigger in the query the response is the
    compiled scenario; otherwise plain relevance search.
    """
    correlation_id = new_correlation_id()
    settings = state.settings
    limit_value = clamp_limit(limit, settings.default_search_limit, settings.max_search_limit)
    query = q.strip()

    state.log_bus.emit(
        "agent", "agent.products.search.request",
        f"GET /api/products?q={query}",
        correlation_id,
        {"query": query, "limit": limit_value},
    )

    if state.demo.is_k2_enabled(x_k2_mode):
        has_identity = state.demo.resolve_identity(x_k2_identity)
        response = state.engine.search(
            query, correlation_id, has_identity=has_identity, max_items=limit_value
        )
        if response is not None:
            state.log_bus.emit(
                "merchant", "merchant.products.search.response",
                f"200 OK - K2 scenario {response.scenario_id}, {len(response.items)} item(s)",
                correlation_id,
                {"mode": "k2", "count": len(response.items), "recommended": response.recommended},
            )
            return JSONResponse(response.to_dict(), headers={"x-correlation-id": correlation_id})

    products = search_products(
        state.catalog, query, limit=limit_value, include_oos=include_oos == "1"
    )
    body = {
        "ucp": ucp_envelope(),
        "mode": "baseline",
        "query": query or None,
        "count": len(products),
        "items": [p.to_public() for p in products],
        "recommended_item_id": products[0].id if products else None,
        "correlation_id": correlation_id,
    }
    state.log_bus.emit(
        "merchant", "merchant.products.search.response",
        f"200 OK - {len(products)} item(s)",
        correlation_id,
        {"mode": "baseline", "count": len(products)},
    )
    return JSONResponse(body, headers={"x-correlation-id": correlation_id})
