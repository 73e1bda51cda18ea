import json

import pytest

from k2_storefront.catalog.product_catalog import ProductCatalog
from k2_storefront.engine.models import InternalPerk, OfferUI, RankedOfferDef, Scenario, ScenarioItem
from k2_storefront.engine.scenario_catalog import lint_scenarios, load_scenarios

from conftest import make_product


def test_shipped_scenarios_load_in_order(scenarios):
    assert [s.id for s in scenarios] == [
        "childrens_art_supplies",
        "back_to_school_backpacks",
        "office_chairs",
        "gaming_console_ps5",
        "arabic_novel",
        "iphone_17_pro_competitive",
    ]


def test_shipped_scenarios_have_no_lint_errors(scenarios, catalog):
    findings = lint_scenarios(scenarios, catalog)
    errors = [str(f) for f in findings if f.severity == "error"]
    assert errors == [], f"Scenario authoring errors: {errors}"


def test_every_scenario_sku_is_in_catalog(scenarios, catalog):
    findings = lint_scenarios(scenarios, catalog)
    assert not [f for f in findings if "not in catalog" in f.message]


def test_lint_flags_authoring_defects():
    catalog = ProductCatalog([make_product("A")])
    gated = RankedOfferDef(
        rank=1,
        ui=OfferUI(title="Personalized"),
        included_items=["GHOST"],
        perks=[InternalPerk(type="cashback", title="Cash")],
        identity_gated=True,
    )
    scenarios = [
        Scenario(id="dup", name="One", triggers=["x"], items=[ScenarioItem("A", 1, [gated])]),
        Scenario(id="dup", name="Two", triggers=[], items=[ScenarioItem("MISSING", 1)]),
    ]

    findings = lint_scenarios(scenarios, catalog)
    errors = [f.message for f in findings if f.severity == "error"]
    warnings = [f.message for f in findings if f.severity == "warning"]

    assert "duplicate scenario id" in errors
    assert any("identity_absent_ui" in m for m in errors)
    assert any("cashback" in m for m in errors)
    assert any("MISSING" in m for m in warnings)
    assert any("GHOST" in m for m in warnings)
    assert any("no triggers" in m for m in warnings)


def test_load_scenarios_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_scenarios(tmp_path / "nope.json")


def test_load_scenarios_parses_defaults(tmp_path):
    path = tmp_path / "scenarios.json"
    path.write_text(json.dumps({"scenarios": [{
        "id": "min",
        "triggers": ["thing"],
        "items": [{"sku_id": "A", "rank": 1, "ranked_offers": [{"rank": 1, "ui": {"title": "T"}}]}],
    }]}), encoding="utf-8")

    scenario = load_scenarios(path)[0]
    offer = scenario.items[0].ranked_offers[0]
    assert scenario.name == "min"
    assert offer.identity_gated is False
    assert offer.identity_absent_ui is None
    assert offer.included_items == []
    assert offer.internal.confidence == 0.0


def test_lint_flags_repeated_offer_rank():
    catalog = ProductCatalog([make_product("A")])
    item = ScenarioItem("A", 1, [
        RankedOfferDef(rank=1, ui=OfferUI(title="One")),
        RankedOfferDef(rank=1, ui=OfferUI(title="Also one")),
        RankedOfferDef(rank=2, ui=OfferUI(title="Two")),
    ])
    findings = lint_scenarios([Scenario(id="s", name="S", triggers=["x"], items=[item])], catalog)

    errors = [f.message for f in findings if f.severity == "error"]
    assert errors == ["A has more than one offer at rank 1"]
