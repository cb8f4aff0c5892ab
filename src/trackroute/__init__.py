"""trackroute: analytics event routing decisions.

Decides, for each analytics event, which trackers should receive it, based on
an immutable set of routing rules, the end user's consent, sampling policy and
the trackers currently available. Dispatching to trackers is left to the
caller.
"""

from .builder import RoutingBuilder
from .consent import ConsentEvaluator
from .engine import RoutingEngine, RoutingResult, SkippedRule
from .exceptions import ConfigurationError, TrackerError, TrackRouteError
from .explain import ExplainabilityReporter, RoutingDebugInfo, RuleDebugInfo
from .matching import RuleMatcher
from .routing_config import RoutingConfiguration
from .rules import RoutingRule
from .sampling import AdaptiveSampler, SamplingEngine
from .schemas import ConsentState, EventCategory, EventDescriptor, TrackerGroup

__all__ = [
    "RoutingBuilder",
    "RoutingConfiguration",
    "RoutingRule",
    "RoutingEngine",
    "RoutingResult",
    "SkippedRule",
    "RuleMatcher",
    "SamplingEngine",
    "AdaptiveSampler",
    "ConsentEvaluator",
    "ExplainabilityReporter",
    "RoutingDebugInfo",
    "RuleDebugInfo",
    "EventDescriptor",
    "EventCategory",
    "ConsentState",
    "TrackerGroup",
    "TrackRouteError",
    "ConfigurationError",
    "TrackerError",
]
