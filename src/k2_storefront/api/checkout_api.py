"""
Checkout API - FastAPI router over the checkout session service.

Routes translate ServiceResult into JSON responses; validation lives in the
service so the same messages reach the agent and the log panel.
"""
import json
import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError

from ..checkout.models import ServiceResult
from ..demo.log_bus import new_correlation_id
from .state import AppState, get_state

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/checkout-sessions", tags=["checkout"])

_INVALID = object()


class CompleteRequest(BaseModel):
    """Request model for completing a session."""
    payment_method: Optional[str] = None


async def read_json(request: Request) -> Any:
    """Decoded JSON body, or the _INVALID sentinel when it does not parse."""
    raw = await request.body()
    try:
        return json.loads(raw)
    except (ValueError, UnicodeDecodeError):
        return _INVALID


def to_response(result: ServiceResult) -> JSONResponse:
    return JSONResponse(result.body, status_code=result.status_code, headers=result.headers or None)


@router.post("")
async def create_session(
    request: Request,
    x_k2_correlation_id: Optional[str] = Header(None),
    x_k2_offer_id: Optional[str] = Header(None),
    state: AppState = Depends(get_state),
):
    """Create a checkout session from {items: [{product_id, quantity}]}."""
    correlation_id = x_k2_correlation_id or new_correlation_id()
    body = await read_json(request)

    if body is _INVALID:
        state.log_bus.emit(
            "merchant", "merchant.checkout_sessions.create.error",
            "400 Bad Request - Invalid JSON body", correlation_id,
            {"status": 400, "error": "Invalid JSON body"}, level="error",
        )
        return JSONResponse({"error": "Invalid JSON body"}, status_code=400)

    items = body.get('items') if isinstance(body, dict) else None
    state.log_bus.emit(
        "agent", "agent.checkout_sessions.create.request",
        f"POST /api/checkout-sessions - {len(items) if isinstance(items, list) else 0} item(s)",
        correlation_id,
        {"method": "POST", "offer_id": x_k2_offer_id, "items": items if isinstance(items, list) else []},
    )

    try:
        result = state.checkout.create(items, correlation_id=correlation_id)
    except Exception as e:
        logger.exception("Checkout create failed")
        raise HTTPException(status_code=500, detail=str(e))
    return to_response(result)


@router.get("/{session_id}")
async def get_session(session_id: str, state: AppState = Depends(get_state)):
    """Read a session; completion is observed lazily here."""
    try:
        result = state.checkout.get(session_id)
    except Exception as e:
        logger.exception("Checkout read failed")
        raise HTTPException(status_code=500, detail=str(e))
    return to_response(result)


@router.patch("/{session_id}")
async def update_session(session_id: str, request: Request, state: AppState = Depends(get_state)):
    """Set customer email and/or shipping address."""
    correlation_id = new_correlation_id()
    body = await read_json(request)

    state.log_bus.emit(
        "agent", "agent.checkout_sessions.update.request",
        f"PATCH /api/checkout-sessions/{session_id[:8]}...", correlation_id,
        {"method": "PATCH", "session_id": session_id},
    )

    try:
        result = state.checkout.update(
            session_id, None if body is _INVALID else body, correlation_id=correlation_id
        )
    except Exception as e:
        logger.exception("Checkout update failed")
        raise HTTPException(status_code=500, detail=str(e))
    return to_response(result)


@router.post("/{session_id}/complete")
async def complete_session(session_id: str, request: Request, state: AppState = Depends(get_state)):
    """Start order completion. Body is optional; payment_method defaults to mada."""
    correlation_id = new_correlation_id()
    body = await read_json(request)

    payment_method = None
    if isinstance(body, dict):
        try:
            payment_method = CompleteRequest.model_validate(body).payment_method
        except ValidationError:
            payment_method = None

    state.log_bus.emit(
        "payment", "payment.complete.request",
        f"POST /api/checkout-sessions/{session_id[:8]}.../complete", correlation_id,
        {"method": "POST", "session_id": session_id, "payment_method": payment_method or "mada"},
    )

    try:
        result = state.checkout.complete(session_id, payment_method, correlation_id=correlation_id)
    except Exception as e:
        logger.exception("Checkout complete failed")
        raise HTTPException(status_code=500, detail=str(e))
    return to_response(result)
