"""Fluent builder for routing configurations.

The builder is a convenience layer only. Each chain ends in ``and_()``, which
turns the accumulated settings into an immutable RoutingRule, and ``build()``
assembles a RoutingConfiguration from copies of the builder's state::

    config = (
        RoutingBuilder()
        .define_group("analytics", ["amplitude", "mixpanel"])
        .route_category("business").to_group("analytics").high_priority().and_()
        .route_high_volume().to_all().heavy_sampling().and_()
        .route_default().to_group("analytics").and_()
        .build()
    )
"""

from __future__ import annotations

import logging
import re
from typing import Dict, Iterable, List, Optional, Sequence, Union

from .config import Settings, get_settings
from .exceptions import ConfigurationError
from .routing_config import (
    RoutingConfiguration,
    ensure_default_rule,
    predefined_groups,
    validate_model,
)
from .rules import (
    AdaptiveSampling,
    BucketedSampling,
    CategoryPredicate,
    DeterministicSampling,
    EventTypePredicate,
    FlagPredicate,
    KeySource,
    NameContainsPredicate,
    NameRegexPredicate,
    PropertyPredicate,
    RoutingRule,
    UniformSampling,
)
from .sampling import check_sample_rate, rate_to_percentage
from .schemas import PREDEFINED_CATEGORIES, EventCategory, PropertyValue, TrackerGroup
from .validation import require_name, require_tracker_ids

logger = logging.getLogger(__name__)

HEAVY_SAMPLING_RATE = 0.01
LIGHT_SAMPLING_RATE = 0.1
MEDIUM_SAMPLING_RATE = 0.5
HIGH_PRIORITY = 10
LOW_PRIORITY = -10


class RoutingBuilder:
    """Collects groups, categories and rules, then builds a configuration."""

    def __init__(self):
        self._rules: List[RoutingRule] = []
        self._custom_groups: Dict[str, TrackerGroup] = {}
        self._custom_categories: Dict[str, EventCategory] = {}
        self._default_group: Optional[TrackerGroup] = None
        self._enable_sampling = True
        self._enable_consent_checking = True
        self._is_debug_mode = False
        self.sampling_defaults = get_settings().sampling

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "RoutingBuilder":
        """Start a builder with global toggles taken from environment settings."""
        settings = settings or get_settings()
        builder = cls()
        builder.sampling_defaults = settings.sampling
        return (
            builder.set_debug_mode(settings.routing.debug_mode)
            .set_sampling(settings.routing.enable_sampling)
            .set_consent_checking(settings.routing.enable_consent_checking)
        )

    # -- groups and categories ---------------------------------------------

    def define_group(
        self, name: str, tracker_ids: Sequence[str], description: Optional[str] = None
    ) -> "RoutingBuilder":
        require_name(name, "name", "group")
        require_tracker_ids(list(tracker_ids), name)
        self._custom_groups[name] = validate_model(
            TrackerGroup,
            {"name": name, "tracker_ids": tuple(tracker_ids), "description": description},
            "group",
            name,
        )
        return self

    def define_category(self, name: str, description: Optional[str] = None) -> "RoutingBuilder":
        require_name(name, "name", "category")
        self._custom_categories[name] = EventCategory(name=name, description=description)
        return self

    def get_group(self, name: str) -> Optional[TrackerGroup]:
        return self._custom_groups.get(name) or predefined_groups().get(name)

    def get_category(self, name: str) -> Optional[EventCategory]:
        return self._custom_categories.get(name) or PREDEFINED_CATEGORIES.get(name)

    def resolve_group(self, group: Union[TrackerGroup, str]) -> TrackerGroup:
        if isinstance(group, TrackerGroup):
            return group
        resolved = self.get_group(group)
        if resolved is None:
            raise ConfigurationError(
                f"Unknown group: {group}", field_name="target_group", config_type="group"
            )
        return resolved

    # -- global toggles ----------------------------------------------------

    def set_default_group(self, group: Union[TrackerGroup, str]) -> "RoutingBuilder":
        self._default_group = self.resolve_group(group)
        return self

    def set_sampling(self, enabled: bool) -> "RoutingBuilder":
        self._enable_sampling = enabled
        return self

    def set_consent_checking(self, enabled: bool) -> "RoutingBuilder":
        self._enable_consent_checking = enabled
        return self

    def set_debug_mode(self, is_debug: bool) -> "RoutingBuilder":
        self._is_debug_mode = is_debug
        return self

    # -- route entry points ------------------------------------------------

    def route_event_type(self, event_type: str) -> "RouteBuilder":
        require_name(event_type, "event_type", "rule")
        return RouteBuilder(self, [EventTypePredicate(event_type=event_type)], f"{event_type} events")

    def route_named(self, pattern: str) -> "RouteBuilder":
        """Events whose name contains ``pattern``."""
        if not pattern:
            raise ConfigurationError(
                "Event name pattern cannot be empty", field_name="pattern", config_type="rule"
            )
        return RouteBuilder(self, [NameContainsPredicate(pattern=pattern)], f'events containing "{pattern}"')

    def route_matching(self, pattern: Union[str, re.Pattern]) -> "RouteBuilder":
        """Events whose name matches a regular expression anywhere."""
        source = pattern.pattern if isinstance(pattern, re.Pattern) else pattern
        predicate = validate_model(NameRegexPredicate, {"pattern": source}, "rule", f"/{source}/")
        return RouteBuilder(self, [predicate], f"events matching /{source}/")

    def route_exact(self, event_name: str) -> "RouteBuilder":
        if not event_name:
            raise ConfigurationError(
                "Event name cannot be empty", field_name="event_name", config_type="rule"
            )
        predicate = NameRegexPredicate(pattern=f"^{re.escape(event_name)}$")
        return RouteBuilder(self, [predicate], f'"{event_name}" events')

    def route_category(self, category: Union[EventCategory, str]) -> "RouteBuilder":
        if isinstance(category, str):
            resolved = self.get_category(category)
            if resolved is None:
                raise ConfigurationError(
                    f"Unknown category: {category}", field_name="category", config_type="category"
                )
            category = resolved
        return RouteBuilder(self, [CategoryPredicate(category=category.name)], f"{category.name} events")

    def route_with_property(self, key: str, value: PropertyValue = None) -> "RouteBuilder":
        if not key:
            raise ConfigurationError(
                "Property name cannot be empty", field_name="key", config_type="rule"
            )
        subject = f"events with {key}" if value is None else f"events with {key}={value!r}"
        return RouteBuilder(self, [PropertyPredicate(key=key, value=value)], subject)

    def route_pii(self) -> "RouteBuilder":
        return RouteBuilder(self, [FlagPredicate(flag="contains_pii")], "PII events")

    def route_high_volume(self) -> "RouteBuilder":
        return RouteBuilder(self, [FlagPredicate(flag="is_high_volume")], "high volume events")

    def route_essential(self) -> "RouteBuilder":
        return RouteBuilder(self, [FlagPredicate(flag="is_essential")], "essential events")

    def route_default(self) -> "RouteBuilder":
        return RouteBuilder(self, [], "default routing", is_default=True)

    # -- rule list ---------------------------------------------------------

    def add_rule(self, rule: RoutingRule) -> "RoutingBuilder":
        self._rules.append(rule)
        return self

    def add_rules(self, rules: Iterable[RoutingRule]) -> "RoutingBuilder":
        self._rules.extend(rules)
        return self

    def clear_rules(self) -> "RoutingBuilder":
        self._rules.clear()
        return self

    @property
    def rules(self) -> List[RoutingRule]:
        return list(self._rules)

    def build(self) -> RoutingConfiguration:
        """Assemble an immutable configuration.

        The builder's own rule list is not modified, so calling ``build()``
        repeatedly yields configurations with identical rule ordering.
        """
        config = RoutingConfiguration(
            rules=ensure_default_rule(self._rules, self._default_group),
            custom_groups=dict(self._custom_groups),
            custom_categories=dict(self._custom_categories),
            default_group=self._default_group,
            enable_sampling=self._enable_sampling,
            enable_consent_checking=self._enable_consent_checking,
            is_debug_mode=self._is_debug_mode,
        )
        logger.debug(f"Built {config}")
        return config


class RouteBuilder:
    """Holds the predicates of a route until a target group is chosen."""

    def __init__(
        self,
        parent: RoutingBuilder,
        predicates: List,
        subject: str,
        is_default: bool = False,
    ):
        self._parent = parent
        self._predicates = list(predicates)
        self._subject = subject
        self._is_default = is_default

    def where(self, *predicates) -> "RouteBuilder":
        """Add further predicates; all of them must hold for the rule to match."""
        self._predicates.extend(predicates)
        return self

    def to_all(self) -> "RuleBuilder":
        return self.to_group(TrackerGroup.all())

    def to(self, tracker_ids: Sequence[str]) -> "RuleBuilder":
        if not tracker_ids:
            raise ConfigurationError(
                "Tracker IDs list cannot be empty", field_name="tracker_ids", config_type="rule"
            )
        name = f"custom_{'_'.join(tracker_ids)}"
        require_tracker_ids(list(tracker_ids), name)
        return self.to_group(TrackerGroup(name=name, tracker_ids=tuple(tracker_ids)))

    def to_tracker(self, tracker_id: str) -> "RuleBuilder":
        if not tracker_id:
            raise ConfigurationError(
                "Tracker ID cannot be empty", field_name="tracker_id", config_type="rule"
            )
        return self.to([tracker_id])

    def to_group(self, group: Union[TrackerGroup, str]) -> "RuleBuilder":
        return RuleBuilder(self._parent, self, self._parent.resolve_group(group))

    def to_development(self) -> "RuleBuilder":
        return self.to_group(TrackerGroup.development())


class RuleBuilder:
    """Modifiers for a single rule; ``and_()`` commits it to the parent builder."""

    def __init__(self, parent: RoutingBuilder, route: RouteBuilder, target_group: TrackerGroup):
        self._parent = parent
        self._route = route
        self._target_group = target_group
        self._id: Optional[str] = None
        self._sample_rate = 1.0
        self._sampling = UniformSampling()
        self._require_consent = True
        self._require_pii_consent = False
        self._debug_only = False
        self._production_only = False
        self._priority = 0
        self._description: Optional[str] = None

    # -- sampling ----------------------------------------------------------

    def sample(self, rate: float) -> "RuleBuilder":
        self._sample_rate = check_sample_rate(rate)
        return self

    def no_sampling(self) -> "RuleBuilder":
        self._sampling = UniformSampling()
        return self.sample(1.0)

    def light_sampling(self) -> "RuleBuilder":
        return self.sample(LIGHT_SAMPLING_RATE)

    def medium_sampling(self) -> "RuleBuilder":
        return self.sample(MEDIUM_SAMPLING_RATE)

    def heavy_sampling(self) -> "RuleBuilder":
        return self.sample(HEAVY_SAMPLING_RATE)

    def deterministic_sampling(self, rate: float, key_source: KeySource = "user_id") -> "RuleBuilder":
        """Sample by hashing an event key, keeping each key consistently in or out."""
        self._sampling = DeterministicSampling(key_source=key_source)
        return self.sample(rate)

    def bucketed_sampling(
        self, bucket_count: int, target_buckets: Iterable[int], key_source: KeySource = "user_id"
    ) -> "RuleBuilder":
        self._sampling = validate_model(
            BucketedSampling,
            {"bucket_count": bucket_count, "target_buckets": tuple(target_buckets), "key_source": key_source},
            "sampling",
            "bucketed",
        )
        self._sample_rate = 1.0
        return self

    def adaptive_sampling(
        self, target_events_per_window: Optional[int] = None, window_seconds: Optional[float] = None
    ) -> "RuleBuilder":
        """Windowed adaptive sampling; omitted parameters come from sampling settings."""
        defaults = self._parent.sampling_defaults
        self._sampling = validate_model(
            AdaptiveSampling,
            {
                "target_events_per_window": target_events_per_window or defaults.adaptive_target_events,
                "window_seconds": window_seconds or defaults.adaptive_window_seconds,
            },
            "sampling",
            "adaptive",
        )
        self._sample_rate = 1.0
        return self

    # -- consent -----------------------------------------------------------

    def require_consent(self) -> "RuleBuilder":
        self._require_consent = True
        return self

    def skip_consent(self) -> "RuleBuilder":
        self._require_consent = False
        self._require_pii_consent = False
        return self

    def require_pii_consent(self) -> "RuleBuilder":
        self._require_pii_consent = True
        return self

    # -- environment -------------------------------------------------------

    def only_in_debug(self) -> "RuleBuilder":
        self._debug_only = True
        self._production_only = False
        return self

    def only_in_production(self) -> "RuleBuilder":
        self._production_only = True
        self._debug_only = False
        return self

    # -- priority and metadata ---------------------------------------------

    def with_priority(self, priority: int) -> "RuleBuilder":
        self._priority = priority
        return self

    def high_priority(self) -> "RuleBuilder":
        return self.with_priority(HIGH_PRIORITY)

    def low_priority(self) -> "RuleBuilder":
        return self.with_priority(LOW_PRIORITY)

    def essential(self) -> "RuleBuilder":
        """Skip consent, disable sampling and raise priority."""
        return self.skip_consent().no_sampling().high_priority()

    def with_id(self, rule_id: str) -> "RuleBuilder":
        self._id = require_name(rule_id, "id", "rule")
        return self

    def with_description(self, description: str) -> "RuleBuilder":
        self._description = require_name(description, "description", "rule")
        return self

    # -- finalization ------------------------------------------------------

    def describe(self) -> str:
        parts = [self._route._subject, f"to {self._target_group.name}"]
        if self._sample_rate < 1.0:
            parts.append(f"({rate_to_percentage(self._sample_rate):.1f}% sampled)")
        elif not isinstance(self._sampling, UniformSampling):
            parts.append(f"({self._sampling.kind} sampling)")
        if self._debug_only:
            parts.append("(debug only)")
        elif self._production_only:
            parts.append("(production only)")
        return " ".join(parts)

    def to_rule(self) -> RoutingRule:
        label = self._id or self.describe()
        return validate_model(
            RoutingRule,
            {
                "id": self._id,
                "predicates": tuple(self._route._predicates),
                "is_default": self._route._is_default,
                "target_group": self._target_group,
                "sample_rate": self._sample_rate,
                "sampling": self._sampling,
                "require_consent": self._require_consent,
                "require_pii_consent": self._require_pii_consent,
                "debug_only": self._debug_only,
                "production_only": self._production_only,
                "priority": self._priority,
                "description": self._description or self.describe(),
            },
            "rule",
            label,
        )

    def and_(self) -> RoutingBuilder:
        """Commit this rule and return to the routing builder."""
        self._parent.add_rule(self.to_rule())
        return self._parent

    def build(self) -> RoutingConfiguration:
        """Commit this rule and build the configuration."""
        return self.and_().build()
