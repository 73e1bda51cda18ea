import sys
import os
from datetime import datetime, timedelta, timezone

import pytest

# Add src to path for internal imports
src_path = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), 'src')
if src_path not in sys.path:
    sys.path.insert(0, src_path)

from k2_storefront.catalog.product_catalog import Availability, Product, ProductCatalog
from k2_storefront.config.settings import Settings
from k2_storefront.engine.debug_store import DebugLogStore
from k2_storefront.engine.scenario_catalog import load_scenarios
from k2_storefront.engine.scenario_engine import ScenarioEngine
from k2_storefront.engine.scenario_matcher import ScenarioMatcher


class FakeClock:
    """Settable clock for time-dependent checkout tests."""

    def __init__(self, start=None):
        self.now = start or datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


def make_product(sku_id, price=100.0, in_stock=True, brand="Jarir", category="general", title=None):
    return Product(
        id=sku_id,
        title=title or sku_id.replace('_', ' ').title(),
        brand=brand,
        category=category,
        price=price,
        availability=Availability(in_stock=in_stock, stock_level=10 if in_stock else 0),
        default_promise="Deliver in 2-3 days",
        image_url=f"https://cdn.example.com/jarir/{sku_id}.jpg",
    )


@pytest.fixture(scope="session")
def settings():
    return Settings.load()


@pytest.fixture(scope="session")
def catalog(settings):
    return ProductCatalog.from_json(settings.catalog_path)


@pytest.fixture(scope="session")
def scenarios(settings):
    return load_scenarios(settings.scenarios_path)


@pytest.fixture(scope="function")
def engine(catalog, scenarios):
    return ScenarioEngine(catalog, ScenarioMatcher(scenarios), DebugLogStore())


@pytest.fixture
def clock():
    return FakeClock()
