import pytest

from trackroute.builder import RoutingBuilder
from trackroute.engine import RoutingEngine
from trackroute.evaluation.scenarios import ScenarioType
from trackroute.evaluation.simulation import SimulationConfig, SimulationRunner


@pytest.fixture
def engine():
    config = (
        RoutingBuilder()
        .define_group("analytics", ["amplitude", "mixpanel"])
        .define_group("vault", ["secure_store"])
        .route_essential().to_all().essential().and_()
        .route_pii().to_group("vault").require_pii_consent().high_priority().and_()
        .route_high_volume().to_group("analytics").heavy_sampling().and_()
        .route_default().to_group("analytics").and_()
        .build()
    )
    return RoutingEngine(config, seed=0)


def test_run_all_covers_every_scenario_type(engine):
    runner = SimulationRunner(engine, SimulationConfig(n_events=100, seed=1))
    results = runner.run_all()
    assert set(results) == set(ScenarioType)
    assert sum(r.metrics.total_events for r in results.values()) == 100
    for stype, r in results.items():
        assert r.scenario_type == stype
        assert r.mean_latency_ms >= 0.0


def test_profiles_behave_as_configured(engine):
    available = ["amplitude", "mixpanel", "secure_store", "console"]
    runner = SimulationRunner(engine, SimulationConfig(n_events=400, seed=3, available_trackers=available))
    results = runner.run_all()

    essential = results[ScenarioType.ESSENTIAL].metrics
    assert essential.tracked_rate == 1.0
    assert essential.tracker_counts["console"] == essential.total_events

    high_volume = results[ScenarioType.HIGH_VOLUME].metrics
    assert high_volume.tracked_rate < 0.5
    assert high_volume.skip_reasons["sampled"] > 0

    pii = results[ScenarioType.PII].metrics
    assert pii.tracker_counts["secure_store"] > 0
    # users without PII consent fall through to the general default
    assert pii.tracker_counts["amplitude"] > 0
    assert pii.skip_reasons.get("consent", 0) > 0


def test_custom_mix():
    engine = RoutingEngine(RoutingBuilder().set_consent_checking(False).build(), seed=0)
    config = SimulationConfig(n_events=20, scenario_mix={ScenarioType.NORMAL: 1.0})
    results = SimulationRunner(engine, config).run_all()
    assert list(results) == [ScenarioType.NORMAL]
    # the wildcard default resolves to nothing without availability information
    assert results[ScenarioType.NORMAL].metrics.warning_rate == 1.0
