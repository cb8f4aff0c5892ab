import pytest

from trackroute.engine import LOWER_PRIORITY_REASON, RoutingResult, SkippedRule
from trackroute.evaluation.metrics import RoutingMetrics, SamplingStats, skip_reason_kind
from trackroute.rules import RoutingRule
from trackroute.schemas import EventDescriptor, TrackerGroup

RULE = RoutingRule(target_group=TrackerGroup(name="g", tracker_ids=("a",)))


def result(trackers=(), skipped=(), warnings=()):
    return RoutingResult(
        event=EventDescriptor(name="e"),
        target_trackers=list(trackers),
        skipped_rules=[SkippedRule(rule=RULE, reason=reason) for reason in skipped],
        warnings=list(warnings),
    )


@pytest.mark.parametrize(
    "reason, kind",
    [
        ("Consent requirements not met: PII consent not granted", "consent"),
        ("Event was sampled out (10.0% sample rate)", "sampled"),
        ("Event was sampled out (adaptive, 5.0% effective rate)", "sampled"),
        (LOWER_PRIORITY_REASON, "priority"),
        ("No available trackers in group", "unavailable"),
        ("something else", "other"),
    ],
)
def test_skip_reason_kind(reason, kind):
    assert skip_reason_kind(reason) == kind


def test_routing_metrics_computes_rates():
    results = [
        result(trackers=["a", "b"]),
        result(trackers=["a"], skipped=[LOWER_PRIORITY_REASON]),
        result(skipped=["Event was sampled out (50.0% sample rate)"]),
        result(warnings=["No routing rules matched the event"]),
    ]
    metrics = RoutingMetrics.from_results(results)
    assert metrics.total_events == 4
    assert metrics.tracked_rate == pytest.approx(0.5)
    assert metrics.warning_rate == pytest.approx(0.25)
    assert metrics.tracker_counts == {"a": 2, "b": 1}
    assert metrics.skip_reasons == {"priority": 1, "sampled": 1}


def test_routing_metrics_empty_results():
    metrics = RoutingMetrics.from_results([])
    assert metrics.total_events == 0
    assert metrics.tracked_rate == 0.0
    assert metrics.warning_rate == 0.0
    assert metrics.to_dict()["tracker_counts"] == {}


def test_sampling_stats():
    stats = SamplingStats.from_results([True, False, True, True])
    assert stats.total_events == 4
    assert stats.sampled_events == 3
    assert stats.dropped_events == 1
    assert stats.actual_rate == pytest.approx(0.75)
    assert stats.drop_rate == pytest.approx(0.25)


def test_sampling_stats_empty():
    stats = SamplingStats.from_results([])
    assert stats.actual_rate == 0.0
    assert stats.drop_rate == 0.0
