"""Metrics dataclasses for routing simulations."""

from __future__ import annotations

from collections import Counter
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, TYPE_CHECKING

from trackroute.engine import LOWER_PRIORITY_REASON, NO_TRACKERS_REASON

if TYPE_CHECKING:
    from trackroute.engine import RoutingResult


def skip_reason_kind(reason: str) -> str:
    """Bucket a skip reason into consent / sampled / priority / unavailable / other."""
    if reason.startswith("Consent requirements not met"):
        return "consent"
    if "sampled out" in reason:
        return "sampled"
    if reason == LOWER_PRIORITY_REASON:
        return "priority"
    if reason == NO_TRACKERS_REASON:
        return "unavailable"
    return "other"


@dataclass
class RoutingMetrics:
    """Aggregated routing outcomes.

    Attributes:
        total_events: Number of routed events.
        tracked_rate: Fraction of events delivered to at least one tracker.
        warning_rate: Fraction of results carrying a warning.
        tracker_counts: Deliveries per tracker id.
        skip_reasons: Skipped rules per reason kind.
    """

    total_events: int
    tracked_rate: float
    warning_rate: float
    tracker_counts: Dict[str, int] = field(default_factory=dict)
    skip_reasons: Dict[str, int] = field(default_factory=dict)

    @classmethod
    def from_results(cls, results: List["RoutingResult"]) -> "RoutingMetrics":
        n = len(results)
        if n == 0:
            return cls(0, 0.0, 0.0)
        trackers: Counter = Counter()
        reasons: Counter = Counter()
        for result in results:
            trackers.update(result.target_trackers)
            reasons.update(skip_reason_kind(s.reason) for s in result.skipped_rules)
        return cls(
            total_events=n,
            tracked_rate=sum(1 for r in results if r.will_be_tracked) / n,
            warning_rate=sum(1 for r in results if r.has_issues) / n,
            tracker_counts=dict(sorted(trackers.items())),
            skip_reasons=dict(sorted(reasons.items())),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class SamplingStats:
    """Summary of a series of sampling decisions."""

    total_events: int
    sampled_events: int
    dropped_events: int
    actual_rate: float

    @property
    def drop_rate(self) -> float:
        return 1.0 - self.actual_rate if self.total_events else 0.0

    @classmethod
    def from_results(cls, decisions: List[bool]) -> "SamplingStats":
        n = len(decisions)
        sampled = sum(1 for d in decisions if d)
        return cls(
            total_events=n,
            sampled_events=sampled,
            dropped_events=n - sampled,
            actual_rate=sampled / n if n else 0.0,
        )
