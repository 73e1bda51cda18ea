"""
Data models for the K2 scenario engine.

Authoring-time records (Scenario, RankedOfferDef, InternalPerk) and public
wire records (ResponseItem, RankedOffer, Perk) are separate classes. Only the
public records have to_dict(); internal reasoning and KPI metadata can only
reach the debug log.
"""
from dataclasses import dataclass, field, asdict
from typing import Any, Optional

from ..catalog.product_catalog import Product

# API-facing perk types
PUBLIC_PERK_TYPES = (
    "pickup",
    "delivery",
    "assembly",
    "loyalty",
    "raffle",
    "event_invite",
    "variant_option",
)

# Valid in scenario definitions, never exposed in the API
PICKUP_OPTIONAL_PAID = "pickup_optional_paid"
INTERNAL_PERK_TYPES = PUBLIC_PERK_TYPES + (PICKUP_OPTIONAL_PAID,)

UCP_VERSION = "2025-04-25"
UCP_CAPABILITIES = ("com.jarir.shopping.discovery",)


def ucp_envelope() -> dict:
    return {"version": UCP_VERSION, "capabilities": list(UCP_CAPABILITIES)}


# ── Authoring-time scenario records ──────────────────────────────────

@dataclass
class OfferUI:
    title: str
    subtitle: str = ""
    badges: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"title": self.title, "subtitle": self.subtitle, "badges": list(self.badges)}


@dataclass
class InternalPerk:
    type: str
    title: str
    details: dict = field(default_factory=dict)


@dataclass
class DataSource:
    name: str
    freshness_minutes: int


@dataclass
class OfferInternal:
    """Merchant reasoning behind an offer. Debug/audit use only."""
    reasoning: str = ""
    confidence: float = 0.0
    confidence_explanation: str = ""
    kpi_numbers: dict[str, float] = field(default_factory=dict)
    data_sources: list[DataSource] = field(default_factory=list)


@dataclass
class RankedOfferDef:
    rank: int
    ui: OfferUI
    included_items: list[str] = field(default_factory=list)
    perks: list[InternalPerk] = field(default_factory=list)
    identity_gated: bool = False
    identity_absent_ui: Optional[OfferUI] = None
    internal: OfferInternal = field(default_factory=OfferInternal)


@dataclass
class ScenarioItem:
    sku_id: str
    rank: int
    ranked_offers: list[RankedOfferDef] = field(default_factory=list)


@dataclass
class Scenario:
    id: str
    name: str
    triggers: list[str]
    items: list[ScenarioItem]
    narrative: str = ""


# ── Public wire records ──────────────────────────────────────────────

@dataclass
class Perk:
    type: str  # one of PUBLIC_PERK_TYPES
    title: str
    details: dict = field(default_factory=dict)


@dataclass
class IncludedItemMeta:
    sku_id: str
    title: str
    brand: str
    retail_value: float
    image_url: str = ""
    currency: str = "SAR"


@dataclass
class PriceBreakdown:
    items_subtotal: float
    included_value: float
    total_price: float
    discount_total: float = 0
    currency: str = "SAR"


@dataclass
class RankedOffer:
    """
    A ranked offer attached to a single item.

    Part of the response contract sent to the shopping agent; it must never
    carry reasoning, confidence or KPI metadata.
    """
    offer_id: str
    rank: int
    ui: OfferUI
    included_items: list[IncludedItemMeta]
    perks: list[Perk]
    price_breakdown: PriceBreakdown

    def recompute_included_value(self):
        self.price_breakdown.included_value = round(
            sum(i.retail_value for i in self.included_items), 2
        )

    def to_dict(self) -> dict:
        return {
            "offer_id": self.offer_id,
            "rank": self.rank,
            "ui": self.ui.to_dict(),
            "included_items": [asdict(i) for i in self.included_items],
            "perks": [asdict(p) for p in self.perks],
            "price_breakdown": asdict(self.price_breakdown),
        }


@dataclass
class ResponseItem:
    product: Product
    item_id: str
    rank: int
    ranked_offers: list[RankedOffer] = field(default_factory=list)

    def to_dict(self) -> dict:
        body = self.product.to_public()
        body.update({
            "item_id": self.item_id,
            "rank": self.rank,
            "ranked_offers": [o.to_dict() for o in self.ranked_offers],
        })
        return body


@dataclass
class K2Response:
    query: str
    items: list[ResponseItem]
    recommended: Optional[dict]
    correlation_id: str
    scenario_id: str

    def to_dict(self) -> dict:
        return {
            "ucp": ucp_envelope(),
            "mode": "k2",
            "query": self.query,
            "scenario_id": self.scenario_id,
            "items": [i.to_dict() for i in self.items],
            "recommended": dict(self.recommended) if self.recommended else None,
            "correlation_id": self.correlation_id,
        }


# ── Debug / audit records ────────────────────────────────────────────

@dataclass
class ItemRemoval:
    sku_id: str
    type: str  # "item" | "included_item"
    reason_type: str  # "oos" | "missing" | "policy"
    reason: str


@dataclass
class PerkRemoval:
    sku_id: str
    offer_id: str
    perk_type: str
    reason: str


@dataclass
class GuardrailCheck:
    rule: str
    passed: bool
    detail: str


@dataclass
class AppliedOffer:
    sku_id: str
    offer_id: str
    item_rank: int
    offer_rank: int
    offer_summary: str
    reasoning: str
    confidence: float
    confidence_explanation: str
    kpi_numbers: dict[str, float]
    data_sources: list[DataSource]
    gated_without_identity: bool


@dataclass
class KpiDeltas:
    inventory_risk_delta: float = 0.0
    attach_rate: float = 0.0
    bundle_value_added: float = 0.0


@dataclass
class CandidateEntry:
    sku_id: str
    title: str
    in_stock: bool
    rank: int


@dataclass
class K2DebugLog:
    """Full internal compiler trace for one K2 search, keyed by correlation id."""
    correlation_id: str
    timestamp: str
    detected_scenario: Optional[str]
    query: str = ""
    has_identity: bool = False
    candidate_pool: list[CandidateEntry] = field(default_factory=list)
    ranking_rationale: str = ""
    applied_offers: list[AppliedOffer] = field(default_factory=list)
    item_removals: list[ItemRemoval] = field(default_factory=list)
    perk_removals: list[PerkRemoval] = field(default_factory=list)
    kpi_deltas: KpiDeltas = field(default_factory=KpiDeltas)
    guardrail_checks: list[GuardrailCheck] = field(default_factory=list)
    narrative: str = ""
    response_payload_sent: Any = None

    def add_removal(self, sku_id: str, type: str, reason_type: str, reason: str):
        """Record an item or included item dropped from the response."""
        self.item_removals.append(
            ItemRemoval(sku_id=sku_id, type=type, reason_type=reason_type, reason=reason)
        )

    def add_guardrail(self, rule: str, passed: bool, detail: str):
        """Record a guardrail check or a violation found during compilation."""
        self.guardrail_checks.append(GuardrailCheck(rule=rule, passed=passed, detail=detail))

    def to_dict(self) -> dict:
        return asdict(self)
