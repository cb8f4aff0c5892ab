"""Explain why an event was or was not tracked."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, TYPE_CHECKING

from .matching import environment_mismatch
from .rules import RoutingRule
from .schemas import ConsentState, EventDescriptor

if TYPE_CHECKING:
    from .engine import RoutingEngine, RoutingResult

FALLBACK_REASON = "No configured rule matched; routed through the default group"


@dataclass(frozen=True)
class RuleDebugInfo:
    rule: RoutingRule
    matched: bool
    reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rule": self.rule.label,
            "priority": self.rule.priority,
            "target_group": self.rule.target_group.name,
            "matched": self.matched,
            "reason": self.reason,
        }


@dataclass
class RoutingDebugInfo:
    """Matching outcome for every configured rule plus the routing result."""

    event: EventDescriptor
    all_rules: List[RoutingRule]
    matching_rules: List[RuleDebugInfo] = field(default_factory=list)
    non_matching_rules: List[RuleDebugInfo] = field(default_factory=list)
    routing_result: Optional["RoutingResult"] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": self.event.summary(),
            "total_rules": len(self.all_rules),
            "matching_rules": [info.to_dict() for info in self.matching_rules],
            "non_matching_rules": [info.to_dict() for info in self.non_matching_rules],
            "routing_result": self.routing_result.to_dict() if self.routing_result else None,
        }


class ExplainabilityReporter:
    """Evaluate every rule against an event for "why wasn't this tracked" tooling.

    Uses the engine's preview routing, so explaining an event never consumes
    random draws or adaptive sampling budget from live routing.
    """

    def __init__(self, engine: "RoutingEngine"):
        self.engine = engine

    def debug_event(
        self,
        event: EventDescriptor,
        consent: Optional[ConsentState] = None,
        available_trackers: Optional[Iterable[str]] = None,
    ) -> RoutingDebugInfo:
        configuration = self.engine.configuration
        info = RoutingDebugInfo(event=event, all_rules=list(configuration.rules))

        for rule in configuration.rules:
            excluded = environment_mismatch(rule, configuration.is_debug_mode)
            if excluded:
                info.non_matching_rules.append(RuleDebugInfo(rule, False, excluded))
                continue
            match = self.engine.matcher.matches(event, rule)
            target = info.matching_rules if match.matched else info.non_matching_rules
            target.append(RuleDebugInfo(rule, match.matched, match.reason))

        if not info.matching_rules and self.engine.fallback_rule is not None:
            info.matching_rules.append(
                RuleDebugInfo(self.engine.fallback_rule, True, FALLBACK_REASON)
            )

        if available_trackers is not None:
            available_trackers = list(available_trackers)
        info.routing_result = self.engine.preview_event(event, consent, available_trackers)
        return info


def format_report(info: RoutingDebugInfo) -> str:
    """Render a RoutingDebugInfo as a plain-text report."""
    result = info.routing_result
    lines = [f"Event: {info.event.name}"]
    if info.event.category:
        lines[0] += f" [{info.event.category}]"
    lines.append(f"Rules evaluated: {len(info.all_rules)}")

    lines.append("")
    lines.append(f"Matching rules ({len(info.matching_rules)}):")
    for rule_info in info.matching_rules:
        lines.append(f"  + {rule_info.rule.label} (priority {rule_info.rule.priority})")

    lines.append(f"Non-matching rules ({len(info.non_matching_rules)}):")
    for rule_info in info.non_matching_rules:
        lines.append(f"  - {rule_info.rule.label}: {rule_info.reason}")

    if result is not None:
        lines.append("")
        if result.will_be_tracked:
            lines.append(f"Tracked by: {', '.join(result.target_trackers)}")
        else:
            lines.append("Not tracked")
        for skipped in result.skipped_rules:
            lines.append(f"  skipped {skipped.rule.label}: {skipped.reason}")
        for warning in result.warnings:
            lines.append(f"  warning: {warning}")

    return "\n".join(lines)
