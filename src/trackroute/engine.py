"""Routing engine: decide which trackers receive an event.

The engine is a synchronous function over an immutable RoutingConfiguration.
Rules the user has not consented to are set aside before the highest-priority
rules are chosen. The engine never performs I/O and never raises while
routing: anything unexpected degrades to "not tracked" plus a warning on the
result. The only mutable state it owns is the window counters of adaptive
sampling rules.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, Iterable, List, Optional, TYPE_CHECKING

import numpy as np
from pydantic import BaseModel, Field

from .config import Settings, get_settings
from .consent import ConsentEvaluator
from .matching import RuleMatcher, environment_mismatch
from .routing_config import AUTO_DEFAULT_PRIORITY, RoutingConfiguration
from .rules import (
    AdaptiveSampling,
    BucketedSampling,
    DeterministicSampling,
    RoutingRule,
    sample_key,
)
from .sampling import AdaptiveSampler, SamplingEngine, rate_to_percentage
from .schemas import ConsentState, EventDescriptor

if TYPE_CHECKING:
    from .explain import RoutingDebugInfo

logger = logging.getLogger(__name__)

NO_MATCH_WARNING = "No routing rules matched the event"
LOWER_PRIORITY_REASON = "lower priority than applied rule(s)"
NO_TRACKERS_REASON = "No available trackers in group"
FALLBACK_DESCRIPTION = "Fallback default rule"


class SkippedRule(BaseModel):
    rule: RoutingRule
    reason: str


class RoutingResult(BaseModel):
    """Outcome of routing one event.

    ``target_trackers`` holds each tracker id once, in the order the applied
    rules contributed them.
    """

    event: EventDescriptor
    target_trackers: List[str] = Field(default_factory=list)
    applied_rules: List[RoutingRule] = Field(default_factory=list)
    skipped_rules: List[SkippedRule] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)

    @property
    def will_be_tracked(self) -> bool:
        return bool(self.target_trackers)

    @property
    def has_issues(self) -> bool:
        return bool(self.warnings)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": self.event.summary(),
            "target_trackers": list(self.target_trackers),
            "will_be_tracked": self.will_be_tracked,
            "applied_rules": [rule.label for rule in self.applied_rules],
            "skipped_rules": [
                {"rule": skipped.rule.label, "reason": skipped.reason} for skipped in self.skipped_rules
            ],
            "warnings": list(self.warnings),
        }

    def __str__(self) -> str:
        return (
            f"RoutingResult(trackers: {len(self.target_trackers)}, "
            f"applied: {len(self.applied_rules)}, skipped: {len(self.skipped_rules)}, "
            f"warnings: {len(self.warnings)})"
        )


class RoutingEngine:
    """Route events through a RoutingConfiguration.

    Collaborators are injected so tests can control them: pass a seeded
    ``numpy.random.Generator`` (or a seed) for reproducible uniform sampling,
    and a fake clock for adaptive sampling windows.

    Args:
        configuration: The immutable configuration to route through.
        sampling_engine: Sampling decisions; built from rng/seed if omitted.
        matcher: Predicate evaluator.
        consent_evaluator: Consent checks; defaults to the configuration's
            consent toggle.
        rng: Random generator for uniform sampling.
        seed: Seed for a fresh generator when neither sampling_engine nor rng
            is given.
        clock: Monotonic clock used by adaptive sampling windows.
    """

    def __init__(
        self,
        configuration: RoutingConfiguration,
        sampling_engine: Optional[SamplingEngine] = None,
        matcher: Optional[RuleMatcher] = None,
        consent_evaluator: Optional[ConsentEvaluator] = None,
        rng: Optional[np.random.Generator] = None,
        seed: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.configuration = configuration
        self.sampling_engine = sampling_engine or SamplingEngine(rng=rng, seed=seed)
        # previews draw from their own generator so routing state is left untouched
        self._preview_sampling = SamplingEngine(seed=seed)
        self.matcher = matcher or RuleMatcher()
        self.consent_evaluator = consent_evaluator or ConsentEvaluator(
            enabled=configuration.enable_consent_checking
        )
        self._adaptive: Dict[int, AdaptiveSampler] = {}
        for rule in configuration.rules:
            if isinstance(rule.sampling, AdaptiveSampling):
                self._adaptive[id(rule)] = AdaptiveSampler(
                    rule.sampling.target_events_per_window,
                    rule.sampling.window_seconds,
                    engine=self.sampling_engine,
                    clock=clock,
                )
        self._fallback_rule: Optional[RoutingRule] = None
        if configuration.default_group is not None:
            self._fallback_rule = RoutingRule(
                is_default=True,
                target_group=configuration.default_group,
                priority=AUTO_DEFAULT_PRIORITY,
                description=FALLBACK_DESCRIPTION,
            )

    @property
    def fallback_rule(self) -> Optional[RoutingRule]:
        """Transient default rule used when nothing matches and a default group is set."""
        return self._fallback_rule

    @classmethod
    def from_settings(
        cls, configuration: RoutingConfiguration, settings: Optional[Settings] = None
    ) -> "RoutingEngine":
        """Engine with seed and consent options taken from environment settings."""
        settings = settings or get_settings()
        return cls(
            configuration,
            seed=settings.seed,
            consent_evaluator=ConsentEvaluator(
                enabled=configuration.enable_consent_checking,
                honor_event_consent_flag=settings.routing.honor_event_consent_flag,
            ),
        )

    # ------------------------------------------------------------------

    def route_event(
        self,
        event: EventDescriptor,
        consent: Optional[ConsentState] = None,
        available_trackers: Optional[Iterable[str]] = None,
    ) -> RoutingResult:
        """Decide which trackers should receive ``event``.

        Args:
            event: The event to route.
            consent: End-user consent. None means the caller has no consent
                store, which is treated as full consent.
            available_trackers: Tracker ids currently registered and enabled.
                None means unknown: named groups resolve unfiltered and the
                wildcard resolves to nothing.

        Returns:
            RoutingResult; never raises.
        """
        return self._safe_route(event, consent, available_trackers, preview=False)

    def preview_event(
        self,
        event: EventDescriptor,
        consent: Optional[ConsentState] = None,
        available_trackers: Optional[Iterable[str]] = None,
    ) -> RoutingResult:
        """Route without side effects.

        Adaptive rules are sampled at their current effective rate without
        being counted, and uniform draws come from a separate generator.
        """
        return self._safe_route(event, consent, available_trackers, preview=True)

    def _safe_route(
        self,
        event: EventDescriptor,
        consent: Optional[ConsentState],
        available_trackers: Optional[Iterable[str]],
        preview: bool,
    ) -> RoutingResult:
        try:
            result = self._route(event, consent, available_trackers, preview)
        except Exception as exc:
            logger.exception(f"Routing failed for event '{event.name}'")
            return RoutingResult(event=event, warnings=[f"Routing failed: {exc}"])
        logger.debug(f"Routed '{event.name}' to {result.target_trackers}: {result}")
        return result

    def _route(
        self,
        event: EventDescriptor,
        consent: Optional[ConsentState],
        available_trackers: Optional[Iterable[str]],
        preview: bool,
    ) -> RoutingResult:
        consent = consent if consent is not None else ConsentState.granted()
        available = None if available_trackers is None else set(available_trackers)
        result = RoutingResult(event=event)

        matched = [
            rule
            for rule in self.configuration.rules
            if environment_mismatch(rule, self.configuration.is_debug_mode) is None
            and self.matcher.matches(event, rule).matched
        ]
        if not matched:
            if self._fallback_rule is None:
                result.warnings.append(NO_MATCH_WARNING)
                return result
            matched = [self._fallback_rule]

        # a rule the user has not consented to cannot claim the event
        eligible = []
        for rule in matched:
            decision = self.consent_evaluator.is_allowed(event, rule, consent)
            if decision.allowed:
                eligible.append(rule)
            else:
                result.skipped_rules.append(
                    SkippedRule(rule=rule, reason=f"Consent requirements not met: {decision.reason}")
                )
        if not eligible:
            return result

        specific = [rule for rule in eligible if not rule.is_default]
        if specific:
            eligible = specific

        top_priority = max(rule.priority for rule in eligible)
        targets: Dict[str, None] = {}
        for rule in eligible:
            if rule.priority < top_priority:
                result.skipped_rules.append(SkippedRule(rule=rule, reason=LOWER_PRIORITY_REASON))
                continue

            if self.configuration.enable_sampling and not self._sample(event, rule, preview):
                result.skipped_rules.append(SkippedRule(rule=rule, reason=self._sampled_out_reason(rule)))
                continue

            resolved = rule.target_group.resolve(available)
            if not resolved:
                result.skipped_rules.append(SkippedRule(rule=rule, reason=NO_TRACKERS_REASON))
                result.warnings.append(
                    f"No available trackers in group '{rule.target_group.name}' for rule '{rule.label}'"
                )
                continue

            result.applied_rules.append(rule)
            targets.update(dict.fromkeys(resolved))

        result.target_trackers = list(targets)
        return result

    def _sample(self, event: EventDescriptor, rule: RoutingRule, preview: bool) -> bool:
        strategy = rule.sampling
        engine = self._preview_sampling if preview else self.sampling_engine
        if isinstance(strategy, AdaptiveSampling):
            sampler = self._adaptive[id(rule)]
            if preview:
                return engine.should_sample_uniform(sampler.effective_rate)
            return sampler.should_sample()
        if isinstance(strategy, (DeterministicSampling, BucketedSampling)):
            key = sample_key(event, strategy.key_source)
            if key is None:
                return engine.should_sample_uniform(rule.sample_rate)
            if isinstance(strategy, BucketedSampling):
                return engine.should_sample_bucketed(key, strategy.bucket_count, strategy.target_buckets)
            return engine.should_sample_deterministic(key, rule.sample_rate)
        return engine.should_sample_uniform(rule.sample_rate)

    def _sampled_out_reason(self, rule: RoutingRule) -> str:
        strategy = rule.sampling
        if isinstance(strategy, AdaptiveSampling):
            rate = self._adaptive[id(rule)].effective_rate
            return f"Event was sampled out (adaptive, {rate_to_percentage(rate):.1f}% effective rate)"
        if isinstance(strategy, BucketedSampling):
            return f"Event was sampled out (bucket not in {list(strategy.target_buckets)})"
        return f"Event was sampled out ({rate_to_percentage(rule.sample_rate):.1f}% sample rate)"

    # ------------------------------------------------------------------

    def validate_configuration(self) -> List[str]:
        """Non-throwing lint pass over the engine's configuration."""
        return self.configuration.validate_rules()

    def debug_event(
        self,
        event: EventDescriptor,
        consent: Optional[ConsentState] = None,
        available_trackers: Optional[Iterable[str]] = None,
    ) -> "RoutingDebugInfo":
        from .explain import ExplainabilityReporter

        return ExplainabilityReporter(self).debug_event(event, consent, available_trackers)

    def reset_sampling(self) -> None:
        """Start fresh adaptive sampling windows for every adaptive rule."""
        for sampler in self._adaptive.values():
            sampler.reset()
