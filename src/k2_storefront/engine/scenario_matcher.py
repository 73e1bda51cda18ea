"""
Scenario Matcher - Finds the merchandising scenario a free-text query triggers.
"""
from typing import Optional

from .models import Scenario
from .normalize import normalize_text


class ScenarioMatcher:
    """
    Matches queries against scenario triggers.

    Triggers are normalized once at construction. Scenarios are tried in
    authoring order and the first one with any trigger contained in the
    normalized query wins (first match, not best match).
    """

    def __init__(self, scenarios: list[Scenario]):
        self.scenarios = list(scenarios)
        self._triggers: list[tuple[Scenario, list[str]]] = []

        for scenario in self.scenarios:
            normalized = [normalize_text(t) for t in scenario.triggers]
            self._triggers.append((scenario, [t for t in normalized if t]))

    @property
    def loaded(self) -> bool:
        return bool(self.scenarios)

    def match(self, query: str) -> Optional[Scenario]:
        """Return the first scenario triggered by the query, or None."""
        scenario, _ = self.match_with_trigger(query)
        return scenario

    def match_with_trigger(self, query: str) -> tuple[Optional[Scenario], Optional[str]]:
        """Like match(), also returning which trigger fired (for logging)."""
        normalized = normalize_text(query)
        if not normalized:
            return None, None

        for scenario, triggers in self._triggers:
            for trigger in triggers:
                if trigger in normalized:
                    return scenario, trigger
        return None, None

    def get(self, scenario_id: str) -> Optional[Scenario]:
        for scenario in self.scenarios:
            if scenario.id == scenario_id:
                return scenario
        return None
