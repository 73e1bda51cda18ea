"""
Demo API - Mode/identity toggles, K2 debug lookup, and the log stream.
"""
import asyncio
import json
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse, Response, StreamingResponse
from pydantic import BaseModel, ValidationError

from ..demo.log_bus import DemoLogEvent
from ..demo.merchant_mode import MerchantMode
from .state import AppState, get_state
from .ucp import base_url_from_headers, build_ucp_profile

router = APIRouter(prefix="/api", tags=["demo"])
well_known_router = APIRouter(tags=["discovery"])

KEEP_ALIVE_SECONDS = 30.0


class ModeUpdate(BaseModel):
    mode: MerchantMode


class IdentityUpdate(BaseModel):
    has_identity: bool


async def _parse(request: Request, model: type[BaseModel], error: str) -> Any:
    try:
        body = await request.json()
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON body")
    try:
        return model.model_validate(body)
    except ValidationError:
        raise HTTPException(status_code=400, detail=error)


# ── Mode / identity ──────────────────────────────────────────────────

@router.get("/demo/mode")
async def get_mode(state: AppState = Depends(get_state)):
    return {"mode": state.demo.mode.value}


@router.put("/demo/mode")
async def set_mode(request: Request, state: AppState = Depends(get_state)):
    update = await _parse(request, ModeUpdate, 'Invalid mode. Must be "baseline" or "k2".')
    state.demo.set_mode(update.mode)
    state.log_bus.emit("system", "demo.mode.changed", f"Merchant mode set to {update.mode.value}")
    return {"mode": state.demo.mode.value}


@router.get("/demo/identity")
async def get_identity(state: AppState = Depends(get_state)):
    return {"has_identity": state.demo.has_identity}


@router.put("/demo/identity")
async def set_identity(request: Request, state: AppState = Depends(get_state)):
    update = await _parse(request, IdentityUpdate, "Invalid has_identity. Must be true or false.")
    state.demo.set_identity(update.has_identity)
    state.log_bus.emit(
        "system", "demo.identity.changed",
        "Shopper identity " + ("linked" if update.has_identity else "cleared"),
    )
    return {"has_identity": state.demo.has_identity}


# ── K2 debug ─────────────────────────────────────────────────────────

@router.get("/k2-debug/{correlation_id}")
async def get_debug_log(correlation_id: str, state: AppState = Depends(get_state)):
    """Internal compiler trace for one K2 search."""
    log = state.debug_store.get(correlation_id)
    if log is None:
        return JSONResponse({"error": "Not found"}, status_code=404)
    return jsonable_encoder(log.to_dict())


# ── Logs ─────────────────────────────────────────────────────────────

def sse_format(event: DemoLogEvent) -> str:
    return f"data: {json.dumps(event.to_dict(), default=str, ensure_ascii=False)}\n\n"


@router.get("/logs")
async def get_logs(state: AppState = Depends(get_state)):
    events = state.log_bus.snapshot()
    return {"count": len(events), "events": jsonable_encoder([e.to_dict() for e in events])}


@router.post("/logs/clear", status_code=204)
async def clear_logs(state: AppState = Depends(get_state)):
    state.log_bus.clear()
    return Response(status_code=204)


@router.get("/logs/stream")
async def stream_logs(request: Request, state: AppState = Depends(get_state)):
    """Server-sent events: buffered events first, then live ones."""
    loop = asyncio.get_running_loop()
    queue: asyncio.Queue = asyncio.Queue()

    def on_event(event: DemoLogEvent):
        loop.call_soon_threadsafe(queue.put_nowait, event)

    async def events():
        buffered, unsubscribe = state.log_bus.snapshot_and_subscribe(on_event)
        try:
            for event in buffered:
                yield sse_format(event)
            while not await request.is_disconnected():
                try:
                    event = await asyncio.wait_for(queue.get(), timeout=KEEP_ALIVE_SECONDS)
                except asyncio.TimeoutError:
                    yield ": ping\n\n"
                    continue
                yield sse_format(event)
        finally:
            unsubscribe()

    return StreamingResponse(
        events(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache, no-transform", "Connection": "keep-alive"},
    )


# ── Discovery ────────────────────────────────────────────────────────

@well_known_router.get("/.well-known/ucp")
async def ucp_profile(request: Request, state: AppState = Depends(get_state)):
    return build_ucp_profile(base_url_from_headers(request.headers), state.settings)
