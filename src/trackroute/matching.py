"""Rule matching: does a rule's predicate set hold for an event?"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .rules import Environment, RoutingRule
from .schemas import EventDescriptor


@dataclass(frozen=True)
class MatchResult:
    matched: bool
    reason: Optional[str] = None


def environment_mismatch(rule: RoutingRule, is_debug_mode: bool) -> Optional[str]:
    """Return why a rule is excluded in the current environment, if it is."""
    if rule.environment == Environment.DEBUG and not is_debug_mode:
        return "Rule is debug-only but not in debug mode"
    if rule.environment == Environment.PRODUCTION and is_debug_mode:
        return "Rule is production-only but in debug mode"
    return None


class RuleMatcher:
    """Pure predicate evaluator.

    Every predicate is evaluated, even after the first failure, so the reason
    lists all mismatches for explainability tooling.
    """

    def matches(self, event: EventDescriptor, rule: RoutingRule) -> MatchResult:
        if rule.is_default:
            return MatchResult(True, "Default rule")
        if not rule.predicates:
            return MatchResult(True, "Rule has no predicates and matches every event")

        reasons = [r for r in (p.mismatch(event) for p in rule.predicates) if r]
        if reasons:
            return MatchResult(False, "; ".join(reasons))
        return MatchResult(True, f"All {len(rule.predicates)} predicate(s) matched")
