import json
import sys
from pathlib import Path

# Add src to path
src_path = Path(__file__).parent.parent / 'src'
sys.path.insert(0, str(src_path))

from k2_storefront.catalog.product_catalog import ProductCatalog
from k2_storefront.engine.scenario_catalog import load_scenarios
from k2_storefront.engine.scenario_engine import ScenarioEngine
from k2_storefront.engine.scenario_matcher import ScenarioMatcher


def debug(query: str, has_identity: bool):
    catalog = ProductCatalog.from_json()
    scenarios = load_scenarios()
    engine = ScenarioEngine(catalog, ScenarioMatcher(scenarios))

    print(f"Loaded {len(catalog)} products, {len(scenarios)} scenarios")

    scenario, trigger = engine.matcher.match_with_trigger(query)
    if scenario is None:
        print(f"No scenario matched '{query}'")
        return

    print(f"Matched scenario: {scenario.id} (trigger '{trigger}')")
    response, log = engine.build_response(
        scenario, catalog, query, "corr-debug", has_identity=has_identity
    )

    print("\n--- Items ---")
    for item in response.items:
        print(f"#{item.rank} {item.item_id} ({item.product.price} SAR)")
        for offer in item.ranked_offers:
            included = ", ".join(i.sku_id for i in offer.included_items) or "-"
            print(f"    {offer.offer_id}: {offer.ui.title} | included: {included}")
    print(f"\nRecommended: {response.recommended}")

    print("\n--- Removals ---")
    for removal in log.item_removals:
        print(f"{removal.type} {removal.sku_id}: {removal.reason_type} ({removal.reason})")

    print("\n--- Guardrails ---")
    for check in log.guardrail_checks:
        print(f"[{'PASS' if check.passed else 'FAIL'}] {check.rule}: {check.detail}")

    print("\n--- KPI deltas ---")
    print(json.dumps(log.to_dict()['kpi_deltas'], indent=2))


if __name__ == "__main__":
    args = [a for a in sys.argv[1:] if a != "--identity"]
    debug(" ".join(args) or "iphone 17 pro", "--identity" in sys.argv)
