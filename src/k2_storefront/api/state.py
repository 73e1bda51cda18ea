"""
Shared application state for the API: catalog, engines, stores and toggles.

Built once per app by build_state(); tests build their own isolated state.
"""
from dataclasses import dataclass
from typing import Optional

from fastapi import Request

from ..catalog.product_catalog import ProductCatalog
from ..checkout.session_service import CheckoutService
from ..checkout.session_store import SessionStore
from ..config.settings import Settings, get_settings
from ..demo.log_bus import DemoLogBus
from ..demo.merchant_mode import DemoState
from ..engine.debug_store import DebugLogStore
from ..engine.scenario_catalog import lint_scenarios, load_scenarios
from ..engine.scenario_engine import ScenarioEngine
from ..engine.scenario_matcher import ScenarioMatcher


@dataclass
class AppState:
    settings: Settings
    catalog: ProductCatalog
    engine: ScenarioEngine
    debug_store: DebugLogStore
    checkout: CheckoutService
    demo: DemoState
    log_bus: DemoLogBus


def build_state(
    settings: Optional[Settings] = None,
    catalog: Optional[ProductCatalog] = None,
    scenarios=None,
    clock=None,
) -> AppState:
    """Wire up every component from settings; any piece can be supplied directly."""
    settings = settings or get_settings()
    catalog = catalog or ProductCatalog.from_json(settings.catalog_path)
    if scenarios is None:
        scenarios = load_scenarios(settings.scenarios_path)

    log_bus = DemoLogBus(buffer_size=settings.log_buffer_size)
    for finding in lint_scenarios(scenarios, catalog):
        log_bus.emit(
            "system", "k2.scenarios.lint", str(finding),
            level="error" if finding.severity == "error" else "warn",
        )

    debug_store = DebugLogStore(max_entries=settings.debug_log_capacity)
    engine = ScenarioEngine(catalog, ScenarioMatcher(scenarios), debug_store, log_bus)

    checkout_kwargs = {"clock": clock} if clock is not None else {}
    checkout = CheckoutService(SessionStore(), catalog, settings, log_bus, **checkout_kwargs)

    return AppState(
        settings=settings,
        catalog=catalog,
        engine=engine,
        debug_store=debug_store,
        checkout=checkout,
        demo=DemoState(default_mode=settings.default_merchant_mode),
        log_bus=log_bus,
    )


def get_state(request: Request) -> AppState:
    """FastAPI dependency returning the state attached to the running app."""
    return request.app.state.k2
