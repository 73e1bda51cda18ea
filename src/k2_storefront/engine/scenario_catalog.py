"""
Scenario Catalog - Loads and lints hand-authored merchandising scenarios.

Scenarios are authored in data/scenarios.json and loaded once, in authoring
order. Matching is first-match-wins, so the order in the file matters.
"""
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from ..catalog.product_catalog import ProductCatalog
from ..config.settings import get_settings
from .models import (
    DataSource,
    INTERNAL_PERK_TYPES,
    InternalPerk,
    OfferInternal,
    OfferUI,
    RankedOfferDef,
    Scenario,
    ScenarioItem,
)

logger = logging.getLogger(__name__)


@dataclass
class LintFinding:
    """An authoring problem found in the scenario data."""
    severity: str  # "error" or "warning"
    scenario_id: str
    message: str

    def __str__(self) -> str:
        return f"[{self.severity}] {self.scenario_id}: {self.message}"


def parse_ui(data: Optional[dict]) -> Optional[OfferUI]:
    """Parse an optional offer UI block."""
    if not data:
        return None
    return OfferUI(
        title=data.get('title', ''),
        subtitle=data.get('subtitle', ''),
        badges=list(data.get('badges', [])),
    )


def parse_offer(data: dict) -> RankedOfferDef:
    """Parse an authored offer definition."""
    internal = data.get('internal') or {}
    return RankedOfferDef(
        rank=int(data.get('rank', 1)),
        ui=parse_ui(data.get('ui')) or OfferUI(title=''),
        included_items=[str(s) for s in data.get('included_items', [])],
        perks=[
            InternalPerk(type=p['type'], title=p.get('title', ''), details=dict(p.get('details') or {}))
            for p in data.get('perks', [])
        ],
        identity_gated=bool(data.get('identity_gated', False)),
        identity_absent_ui=parse_ui(data.get('identity_absent_ui')),
        internal=OfferInternal(
            reasoning=internal.get('reasoning', ''),
            confidence=float(internal.get('confidence', 0.0)),
            confidence_explanation=internal.get('confidence_explanation', ''),
            kpi_numbers=dict(internal.get('kpi_numbers') or {}),
            data_sources=[
                DataSource(name=s['name'], freshness_minutes=int(s.get('freshness_minutes', 0)))
                for s in internal.get('data_sources', [])
            ],
        ),
    )


def parse_scenario(data: dict) -> Scenario:
    """Parse one scenario record."""
    return Scenario(
        id=data['id'],
        name=data.get('name', data['id']),
        triggers=[str(t) for t in data.get('triggers', [])],
        items=[
            ScenarioItem(
                sku_id=str(item['sku_id']),
                rank=int(item['rank']),
                ranked_offers=[parse_offer(o) for o in item.get('ranked_offers', [])],
            )
            for item in data.get('items', [])
        ],
        narrative=data.get('narrative', ''),
    )


def load_scenarios(path: Optional[Path] = None) -> list[Scenario]:
    """Load scenarios from JSON, preserving authoring order."""
    path = path or get_settings().scenarios_path
    if not path.exists():
        raise FileNotFoundError(f"Scenario file not found at {path}.")

    with open(path, 'r', encoding='utf-8') as f:
        data = json.load(f)

    scenarios = [parse_scenario(s) for s in data.get('scenarios', [])]
    logger.info("Loaded %d scenarios from %s", len(scenarios), path.name)
    return scenarios


def lint_scenarios(
    scenarios: list[Scenario],
    catalog: Optional[ProductCatalog] = None,
) -> list[LintFinding]:
    """
    Check authored scenarios for defects the engine would otherwise only
    degrade around at request time.

    Errors: duplicate scenario ids, unknown perk types, repeated offer ranks
    on one item, identity-gated offers without an explicit identity_absent_ui.
    Warnings: SKUs missing from the catalog, scenarios without triggers.
    """
    findings = []
    seen_ids = set()

    for scenario in scenarios:
        if scenario.id in seen_ids:
            findings.append(LintFinding("error", scenario.id, "duplicate scenario id"))
        seen_ids.add(scenario.id)

        if not scenario.triggers:
            findings.append(LintFinding("warning", scenario.id, "scenario has no triggers and can never match"))

        for item in scenario.items:
            if catalog is not None and item.sku_id not in catalog:
                findings.append(LintFinding("warning", scenario.id, f"item SKU {item.sku_id} not in catalog"))

            offer_ranks = [o.rank for o in item.ranked_offers]
            for rank in sorted({r for r in offer_ranks if offer_ranks.count(r) > 1}):
                findings.append(LintFinding(
                    "error", scenario.id,
                    f"{item.sku_id} has more than one offer at rank {rank}"
                ))

            for offer in item.ranked_offers:
                where = f"{item.sku_id} offer rank {offer.rank}"

                if offer.identity_gated and offer.identity_absent_ui is None:
                    findings.append(LintFinding(
                        "error", scenario.id,
                        f"{where} is identity-gated but has no identity_absent_ui"
                    ))

                for perk in offer.perks:
                    if perk.type not in INTERNAL_PERK_TYPES:
                        findings.append(LintFinding(
                            "error", scenario.id,
                            f"{where} has unknown perk type '{perk.type}'"
                        ))

                if catalog is not None:
                    for sku_id in offer.included_items:
                        if sku_id not in catalog:
                            findings.append(LintFinding(
                                "warning", scenario.id,
                                f"{where} includes SKU {sku_id} not in catalog"
                            ))

    return findings
