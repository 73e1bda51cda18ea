"""Engine subpackage - scenario matching, response compilation and search."""
from .scenario_engine import ScenarioEngine
from .scenario_matcher import ScenarioMatcher
from .debug_store import DebugLogStore
from .models import K2Response, K2DebugLog, Scenario

__all__ = ['ScenarioEngine', 'ScenarioMatcher', 'DebugLogStore', 'K2Response', 'K2DebugLog', 'Scenario']
