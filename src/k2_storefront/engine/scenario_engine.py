"""
K2 Scenario Engine - Compiles a matched scenario into a shopper-facing response.

Resolution order:
1. Per-item compilation in ascending rank (catalog lookup, stock check,
   identity gating, included items, perk mapping, price breakdown)
2. Sort by rank and truncate to max_items
3. Bundle exclusion against the final top-level item set
4. Recommendation (first item, its lowest-rank offer)
5. Debug/audit log with KPIs and guardrail checks

The engine never raises for bad scenario data: every anomaly becomes an item
removal, perk removal or guardrail entry on the debug log.
"""
import logging
from datetime import datetime, timezone
from typing import Optional

from ..catalog.product_catalog import ProductCatalog
from .debug_store import DebugLogStore
from .models import (
    AppliedOffer,
    CandidateEntry,
    IncludedItemMeta,
    InternalPerk,
    K2DebugLog,
    K2Response,
    KpiDeltas,
    OfferUI,
    PICKUP_OPTIONAL_PAID,
    PUBLIC_PERK_TYPES,
    Perk,
    PerkRemoval,
    PriceBreakdown,
    RankedOffer,
    RankedOfferDef,
    ResponseItem,
    Scenario,
)
from .sanitize import sanitize_offer_ui
from .scenario_matcher import ScenarioMatcher

logger = logging.getLogger(__name__)

INVENTORY_RISK_DELTA = -0.15

BUNDLE_EXCLUSION_REASON = "Bundle exclusion: removed included item that appeared as top-level item"


def make_offer_id(sku_id: str, rank: int) -> str:
    return f"{sku_id}:offer_{rank}"


def map_perk(
    perk: InternalPerk,
    sku_id: str,
    offer_id: str,
    debug: K2DebugLog,
) -> Optional[Perk]:
    """
    Map an authored perk to its public form.

    pickup_optional_paid becomes pickup with paid=True. A plain pickup perk is
    always free. Unknown types are dropped and recorded.
    """
    details = dict(perk.details)

    if perk.type == PICKUP_OPTIONAL_PAID:
        details['paid'] = True
        return Perk(type="pickup", title=perk.title, details=details)

    if perk.type == "pickup":
        conflicting = (
            bool(details.get('paid'))
            or details.get('price_sar') not in (None, 0)
            or details.get('price') not in (None, 0)
        )
        details.pop('price', None)
        details['paid'] = False
        details['price_sar'] = 0
        if conflicting:
            debug.add_guardrail(
                "pickup_perk_normalized",
                False,
                f"Pickup perk on {offer_id} was authored with a price; forced to free",
            )
            logger.warning("Pickup perk on %s authored as paid; normalized to free", offer_id)
        return Perk(type="pickup", title=perk.title, details=details)

    if perk.type not in PUBLIC_PERK_TYPES:
        debug.perk_removals.append(PerkRemoval(
            sku_id=sku_id,
            offer_id=offer_id,
            perk_type=perk.type,
            reason="Unknown perk type",
        ))
        debug.add_guardrail(
            "perk_type_allowed", False, f"Dropped unknown perk type '{perk.type}' on {offer_id}"
        )
        logger.warning("Dropped unknown perk type %r on %s", perk.type, offer_id)
        return None

    return Perk(type=perk.type, title=perk.title, details=details)


class ScenarioEngine:
    """
    Builds K2 responses for matched scenarios and keeps their debug logs.

    The catalog given at construction is used by search(); build_response()
    takes the catalog explicitly so a scenario can be compiled against any
    snapshot.
    """

    def __init__(
        self,
        catalog: ProductCatalog,
        matcher: ScenarioMatcher,
        debug_store: Optional[DebugLogStore] = None,
        log_bus=None,
    ):
        self.catalog = catalog
        self.matcher = matcher
        self.debug_store = debug_store if debug_store is not None else DebugLogStore()
        self.log_bus = log_bus

    def search(
        self,
        query: str,
        correlation_id: str,
        has_identity: bool = False,
        max_items: Optional[int] = None,
    ) -> Optional[K2Response]:
        """
        Match the query and compile the scenario it triggers.

        Returns None when no scenario matches (caller falls back to baseline).
        The debug log is stored under the correlation id.
        """
        scenario, trigger = self.matcher.match_with_trigger(query)
        if scenario is None:
            self._emit("k2.scenario.no_match", f"No K2 scenario for '{query}'", correlation_id)
            return None

        self._emit(
            "k2.scenario.matched",
            f"Matched scenario {scenario.id}",
            correlation_id,
            {"scenario_id": scenario.id, "trigger": trigger, "has_identity": has_identity},
        )

        response, debug = self.build_response(
            scenario, self.catalog, query, correlation_id,
            has_identity=has_identity, max_items=max_items,
        )
        self.debug_store.put(debug)

        self._emit(
            "k2.response.compiled",
            f"Compiled {len(response.items)} item(s) for {scenario.id}",
            correlation_id,
            {
                "items": [i.item_id for i in response.items],
                "recommended": response.recommended,
                "removals": len(debug.item_removals),
                "kpi_deltas": {
                    "attach_rate": debug.kpi_deltas.attach_rate,
                    "bundle_value_added": debug.kpi_deltas.bundle_value_added,
                },
            },
        )
        return response

    def build_response(
        self,
        scenario: Scenario,
        catalog: ProductCatalog,
        query: str,
        correlation_id: str,
        has_identity: bool = False,
        max_items: Optional[int] = None,
    ) -> tuple[K2Response, K2DebugLog]:
        debug = K2DebugLog(
            correlation_id=correlation_id,
            timestamp=datetime.now(timezone.utc).isoformat(),
            detected_scenario=scenario.id,
            query=query,
            has_identity=has_identity,
            narrative=scenario.narrative,
        )
        # offer_id -> (authored definition, shown without identity)
        sources: dict[str, tuple[RankedOfferDef, bool]] = {}

        # Phase 1: per-item compilation
        items: list[ResponseItem] = []
        by_sku: dict[str, ResponseItem] = {}

        for scenario_item in sorted(scenario.items, key=lambda i: i.rank):
            sku_id = scenario_item.sku_id
            product = catalog.get(sku_id)
            if product is None:
                debug.add_removal(sku_id, "item", "missing", "SKU not found in catalog")
                continue
            if not product.in_stock:
                debug.add_removal(sku_id, "item", "oos", "Out of stock")
                continue

            item = by_sku.get(sku_id)
            collapsing = item is not None
            if item is None:
                item = ResponseItem(product=product, item_id=sku_id, rank=scenario_item.rank)
                by_sku[sku_id] = item
                items.append(item)

            used_ranks = {o.rank for o in item.ranked_offers}
            next_rank = max(used_ranks, default=0) + 1
            for offer_def in sorted(scenario_item.ranked_offers, key=lambda o: o.rank):
                offer_rank = offer_def.rank
                if collapsing or offer_rank in used_ranks:
                    # Later duplicate or repeated rank: follow the existing offers
                    if not collapsing:
                        logger.warning("Repeated offer rank %d on %s; re-ranked to %d",
                                       offer_rank, sku_id, next_rank)
                    offer_rank = next_rank
                used_ranks.add(offer_rank)
                next_rank = max(next_rank, offer_rank + 1)
                offer, gated = self.compile_offer(
                    catalog, product, offer_def, offer_rank, has_identity, debug
                )
                item.ranked_offers.append(offer)
                sources[offer.offer_id] = (offer_def, gated)

            if collapsing:
                logger.debug("Collapsed duplicate SKU %s at rank %d", sku_id, scenario_item.rank)

        # Phase 2: order and truncate
        items.sort(key=lambda i: i.rank)
        if max_items is not None and len(items) > max_items:
            items = items[:max(max_items, 0)]

        # Phase 3: bundle exclusion against the final top-level set
        top_level_ids = {item.item_id for item in items}
        exclusion_removals = 0
        for item in items:
            for offer in item.ranked_offers:
                kept = []
                for included in offer.included_items:
                    if included.sku_id in top_level_ids:
                        debug.add_removal(included.sku_id, "included_item", "policy", BUNDLE_EXCLUSION_REASON)
                        exclusion_removals += 1
                    else:
                        kept.append(included)
                if len(kept) != len(offer.included_items):
                    offer.included_items = kept
                    offer.recompute_included_value()

        # Phase 4: recommendation
        recommended = None
        if items:
            first = items[0]
            best = min(first.ranked_offers, key=lambda o: o.rank, default=None)
            recommended = {
                "item_id": first.item_id,
                "offer_id": best.offer_id if best else None,
            }

        response = K2Response(
            query=query,
            items=items,
            recommended=recommended,
            correlation_id=correlation_id,
            scenario_id=scenario.id,
        )

        # Phase 5: debug log
        self._fill_debug(debug, scenario, catalog, items, sources, exclusion_removals)
        debug.response_payload_sent = response.to_dict()

        return response, debug

    def compile_offer(
        self,
        catalog: ProductCatalog,
        product,
        offer_def: RankedOfferDef,
        offer_rank: int,
        has_identity: bool,
        debug: K2DebugLog,
    ) -> tuple[RankedOffer, bool]:
        """
        Map an authored offer to its public form.

        Returns (offer, gated) where gated is True when the offer is
        identity-gated and the shopper has no identity.
        """
        offer_id = make_offer_id(product.id, offer_rank)
        gated = offer_def.identity_gated and not has_identity

        if gated:
            included_skus: list[str] = []
            if offer_def.identity_absent_ui is not None:
                ui = _copy_ui(offer_def.identity_absent_ui)
            else:
                ui = sanitize_offer_ui(offer_def.ui)
                debug.add_guardrail(
                    "identity_absent_ui_authored",
                    False,
                    f"{offer_id} is identity-gated without identity_absent_ui; UI auto-sanitized",
                )
                logger.warning("Offer %s has no identity_absent_ui; sanitized authored UI", offer_id)
        else:
            included_skus = offer_def.included_items
            ui = _copy_ui(offer_def.ui)

        included_items = []
        for sku_id in included_skus:
            included = catalog.get(sku_id)
            if included is None:
                debug.add_removal(sku_id, "included_item", "missing", "Included item SKU not found in catalog")
                continue
            if not included.in_stock:
                debug.add_removal(sku_id, "included_item", "oos", "Included item out of stock")
                continue
            included_items.append(IncludedItemMeta(
                sku_id=included.id,
                title=included.title,
                brand=included.brand,
                retail_value=included.price,
                image_url=included.image_url,
                currency=included.currency,
            ))

        perks = []
        for perk in offer_def.perks:
            public = map_perk(perk, product.id, offer_id, debug)
            if public is not None:
                perks.append(public)

        offer = RankedOffer(
            offer_id=offer_id,
            rank=offer_rank,
            ui=ui,
            included_items=included_items,
            perks=perks,
            price_breakdown=PriceBreakdown(
                items_subtotal=product.price,
                included_value=0,
                total_price=product.price,
                discount_total=0,
                currency=product.currency,
            ),
        )
        offer.recompute_included_value()
        return offer, gated

    def _fill_debug(self, debug, scenario, catalog, items, sources, exclusion_removals):
        for scenario_item in scenario.items:
            product = catalog.get(scenario_item.sku_id)
            debug.candidate_pool.append(CandidateEntry(
                sku_id=scenario_item.sku_id,
                title=product.title if product else "Unknown",
                in_stock=product.in_stock if product else False,
                rank=scenario_item.rank,
            ))

        debug.ranking_rationale = (
            f"Hand-curated scenario: {scenario.name}. Items ranked by merchant-defined priority."
        )

        for item in items:
            for offer in item.ranked_offers:
                offer_def, gated = sources[offer.offer_id]
                debug.applied_offers.append(AppliedOffer(
                    sku_id=item.item_id,
                    offer_id=offer.offer_id,
                    item_rank=item.rank,
                    offer_rank=offer.rank,
                    offer_summary=_summarize(offer),
                    reasoning=offer_def.internal.reasoning,
                    confidence=offer_def.internal.confidence,
                    confidence_explanation=offer_def.internal.confidence_explanation,
                    kpi_numbers=dict(offer_def.internal.kpi_numbers),
                    data_sources=list(offer_def.internal.data_sources),
                    gated_without_identity=gated,
                ))

        all_offers = [o for item in items for o in item.ranked_offers]
        bundle_value = round(sum(o.price_breakdown.included_value for o in all_offers), 2)
        with_included = sum(
            1 for item in items if any(o.included_items for o in item.ranked_offers)
        )
        any_bundling = any(o.included_items for o in all_offers)
        debug.kpi_deltas = KpiDeltas(
            inventory_risk_delta=INVENTORY_RISK_DELTA if any_bundling else 0.0,
            attach_rate=round(with_included / len(items), 4) if items else 0.0,
            bundle_value_added=bundle_value,
        )

        # Standard checks computed from the final response, then violations
        # recorded while compiling
        top_level_ids = {item.item_id for item in items}
        included_ids = {i.sku_id for o in all_offers for i in o.included_items}
        discount_ok = all(o.price_breakdown.discount_total == 0 for o in all_offers)
        total_ok = all(
            o.price_breakdown.total_price == item.product.price
            for item in items for o in item.ranked_offers
        )
        exclusion_ok = not (top_level_ids & included_ids)

        recorded = list(debug.guardrail_checks)
        debug.guardrail_checks = []
        debug.add_guardrail(
            "discount_total_zero", discount_ok,
            "All offers have discount_total = 0" if discount_ok else "An offer carries a discount",
        )
        debug.add_guardrail(
            "total_price_equals_item_price", total_ok,
            "total_price equals item retail price in all offers" if total_ok
            else "An offer total differs from its item price",
        )
        debug.add_guardrail(
            "bundle_exclusion", exclusion_ok,
            f"Enforced: removed {exclusion_removals} included item(s) that appeared as top-level"
            if exclusion_removals else "No included items appear as top-level items",
        )
        debug.guardrail_checks.extend(recorded)

        for check in debug.guardrail_checks:
            if not check.passed:
                logger.warning("Guardrail %s failed for %s: %s", check.rule, debug.correlation_id, check.detail)

    def _emit(self, event: str, message: str, correlation_id: str, payload=None):
        if self.log_bus is not None:
            self.log_bus.emit("k2", event, message, correlation_id=correlation_id, payload=payload)


def _copy_ui(ui: OfferUI) -> OfferUI:
    return OfferUI(title=ui.title, subtitle=ui.subtitle, badges=list(ui.badges))


def _summarize(offer: RankedOffer) -> str:
    parts = []
    if offer.included_items:
        parts.append("includes: " + ", ".join(i.title for i in offer.included_items))
    if offer.perks:
        parts.append("perks: " + ", ".join(p.type for p in offer.perks))
    return "; ".join(parts) or "offer with UI only"
