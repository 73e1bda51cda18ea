from typing import Optional
import sys
from pathlib import Path

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# Add src to path for internal imports
src_path = Path(__file__).parent.parent.parent
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))

from k2_storefront import __version__
from k2_storefront.api.checkout_api import router as checkout_router
from k2_storefront.api.demo_api import router as demo_router, well_known_router
from k2_storefront.api.products_api import router as products_router
from k2_storefront.api.state import AppState, build_state
from k2_storefront.logging_setup import setup_logging


def create_app(state: Optional[AppState] = None) -> FastAPI:
    """Build the storefront API around the given (or default) state."""
    app = FastAPI(
        title="K2 Storefront API",
        description="Mock merchant endpoints and K2 merchandising for the shopping-agent demo",
        version=__version__,
    )
    app.state.k2 = state or build_state()

    # Enable CORS for the demo console
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["x-correlation-id"],
    )

    @app.exception_handler(HTTPException)
    async def http_error(request: Request, exc: HTTPException):
        return JSONResponse({"error": exc.detail}, status_code=exc.status_code, headers=exc.headers)

    app.include_router(products_router)
    app.include_router(checkout_router)
    app.include_router(demo_router)
    app.include_router(well_known_router)

    @app.get("/")
    async def root():
        return {"status": "online", "message": "K2 Storefront API Active"}

    @app.get("/system/status")
    async def get_status():
        current = app.state.k2
        return {
            "mode": current.demo.mode.value,
            "has_identity": current.demo.has_identity,
            "products": len(current.catalog),
            "scenarios_loaded": current.engine.matcher.loaded,
            "scenarios_count": len(current.engine.matcher.scenarios),
            "debug_logs": len(current.debug_store),
            "log_events": len(current.log_bus),
        }

    current = app.state.k2
    current.log_bus.emit(
        "system", "system.startup",
        f"Storefront API ready - {len(current.catalog)} products, "
        f"{len(current.engine.matcher.scenarios)} scenarios, mode {current.demo.mode.value}",
    )
    return app


def get_app() -> FastAPI:
    """Factory used by uvicorn (--factory)."""
    setup_logging()
    return create_app()
