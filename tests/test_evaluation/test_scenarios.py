from trackroute.evaluation.scenarios import EventScenarioGenerator, Scenario, ScenarioType
from trackroute.schemas import ConsentState, EventDescriptor


def test_scenario_generator_produces_valid_events():
    gen = EventScenarioGenerator(seed=42)
    scenarios = gen.generate(n=10, scenario_type=ScenarioType.NORMAL)
    assert len(scenarios) == 10
    for s in scenarios:
        assert isinstance(s, Scenario)
        assert isinstance(s.event, EventDescriptor)
        assert isinstance(s.consent, ConsentState)
        assert s.event.category in {"business", "user", "marketing"}
        assert s.scenario_type == ScenarioType.NORMAL


def test_high_volume_scenarios_are_flagged():
    gen = EventScenarioGenerator(seed=42)
    for s in gen.generate(n=10, scenario_type=ScenarioType.HIGH_VOLUME):
        assert s.event.is_high_volume
        assert s.event.category == "technical"


def test_pii_scenarios_carry_pii():
    gen = EventScenarioGenerator(seed=42)
    scenarios = gen.generate(n=20, scenario_type=ScenarioType.PII)
    assert all(s.event.contains_pii for s in scenarios)
    # PII consent is granted only to some users
    assert len({s.consent.has_pii_consent for s in scenarios}) == 2


def test_essential_scenarios_bypass_consent_flag():
    gen = EventScenarioGenerator(seed=42)
    for s in gen.generate(n=10, scenario_type=ScenarioType.ESSENTIAL):
        assert s.event.is_essential
        assert not s.event.requires_consent


def test_user_ids_come_from_population():
    gen = EventScenarioGenerator(seed=7, n_users=3)
    users = {s.event.user_id for s in gen.generate(n=50, scenario_type=ScenarioType.NORMAL)}
    assert users <= {"user_0", "user_1", "user_2"}


def test_scenario_generator_deterministic_with_seed():
    gen1 = EventScenarioGenerator(seed=123)
    gen2 = EventScenarioGenerator(seed=123)
    scenarios1 = gen1.generate(n=5, scenario_type=ScenarioType.NORMAL)
    scenarios2 = gen2.generate(n=5, scenario_type=ScenarioType.NORMAL)
    for s1, s2 in zip(scenarios1, scenarios2):
        assert s1.event.name == s2.event.name
        assert s1.event.user_id == s2.event.user_id
        assert s1.consent == s2.consent
