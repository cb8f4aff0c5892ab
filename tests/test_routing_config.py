import json

import pytest

from trackroute.builder import RoutingBuilder
from trackroute.exceptions import ConfigurationError
from trackroute.routing_config import RoutingConfiguration, ensure_default_rule, load_configuration
from trackroute.rules import CategoryPredicate, RoutingRule
from trackroute.schemas import TrackerGroup

ANALYTICS = TrackerGroup(name="analytics", tracker_ids=("amplitude", "mixpanel"))


def declarative():
    return {
        "custom_groups": {
            "analytics": {"tracker_ids": ["amplitude", "mixpanel"]},
            "ops": ["sentry"],
        },
        "custom_categories": {"checkout": "Checkout funnel"},
        "default_group": "analytics",
        "rules": [
            {
                "id": "checkout",
                "predicates": [{"kind": "category", "category": "checkout"}],
                "target_group": "analytics",
                "priority": 10,
            },
            {
                "id": "errors",
                "predicates": [{"kind": "name_regex", "pattern": "error|crash"}],
                "target_group": "ops",
                "require_consent": False,
                "sample_rate": 0.5,
                "sampling": {"kind": "deterministic", "key_source": "session_id"},
            },
        ],
    }


def test_from_dict_resolves_group_names():
    config = RoutingConfiguration.from_dict(declarative())
    assert [r.id for r in config.rules] == ["checkout", "errors"]
    assert config.rules[1].target_group.tracker_ids == ("sentry",)
    assert config.default_group == ANALYTICS
    assert config.get_category("checkout").description == "Checkout funnel"
    # default_group present, so no rule is synthesized
    assert not config.default_rules


def test_round_trip_preserves_rules_groups_and_default():
    config = RoutingConfiguration.from_dict(declarative())
    restored = RoutingConfiguration.from_dict(json.loads(json.dumps(config.to_dict())))

    assert len(restored.rules) == len(config.rules)
    assert restored.custom_groups == config.custom_groups
    assert restored.default_group == config.default_group
    assert restored == config


def test_round_trip_of_built_configuration():
    config = (
        RoutingBuilder()
        .define_group("analytics", ["amplitude"])
        .route_pii().to_tracker("vault").require_pii_consent().with_id("pii").and_()
        .route_high_volume().to_group("analytics").adaptive_sampling(100, 10).and_()
        .build()
    )
    restored = RoutingConfiguration.from_dict(config.to_dict())
    assert restored == config
    assert restored.custom_groups["analytics"].tracker_ids == ("amplitude",)


def test_from_dict_synthesizes_default_rule():
    config = RoutingConfiguration.from_dict(
        {"rules": [{"target_group": {"name": "g", "tracker_ids": ["a"]}, "predicates": [{"kind": "flag", "flag": "is_essential"}]}]}
    )
    assert config.rules[-1].is_default
    assert config.rules[-1].description == "Auto-generated default rule"


@pytest.mark.parametrize(
    "data",
    [
        {"rules": [{"target_group": "nope"}]},
        {"rules": [{"predicates": [{"kind": "category", "category": "unknown"}], "target_group": "all"}]},
        {"rules": [{"target_group": "all", "sample_rate": 1.2}]},
        {"rules": [{"target_group": "all", "sample_rate": float("nan")}]},
        {"rules": [{"predicates": [{"kind": "name_contains", "pattern": ""}], "target_group": "all"}]},
        {"rules": [{"predicates": [{"kind": "bogus"}], "target_group": "all"}]},
        {"rules": [{"target_group": "all", "debug_only": True, "production_only": True}]},
        {"rules": [{"id": "no_target"}]},
        {"custom_groups": {"empty": {"tracker_ids": []}}},
        {"custom_groups": {"": ["a"]}},
        {"default_group": "missing"},
        ["not", "a", "mapping"],
        {"rules": ["oops"]},
        {"rules": [42]},
        {"rules": "oops"},
        {"rules": {"id": "not_a_list"}},
        {"custom_groups": ["analytics"]},
        {"custom_groups": {"analytics": "amplitude"}},
        {"custom_categories": ["checkout"]},
        {"custom_categories": {"checkout": 3}},
        {"rules": [{"target_group": 5}]},
        {"enable_sampling": "sometimes"},
    ],
)
def test_from_dict_rejects_invalid_configuration(data):
    with pytest.raises(ConfigurationError):
        RoutingConfiguration.from_dict(data)


def test_invalid_sample_rate_error_names_field():
    with pytest.raises(ConfigurationError) as exc_info:
        RoutingConfiguration.from_dict({"rules": [{"target_group": "all", "sample_rate": -1}]})
    assert exc_info.value.field_name == "sample_rate"


def test_lookups_prefer_custom_definitions():
    custom_all = TrackerGroup(name="all", tracker_ids=("only_this",))
    config = RoutingConfiguration(custom_groups={"all": custom_all})
    assert config.get_group("all") == custom_all
    assert config.get_group("development").tracker_ids == ("console",)
    assert config.get_group("missing") is None
    assert config.get_category("security") is not None
    assert len(config.all_categories()) == 7
    assert [g.name for g in config.all_groups()][:2] == ["all", "development"]


def test_lint_clean_configuration():
    config = RoutingBuilder().define_group("analytics", ["amplitude"]).route_default().to_group("analytics").and_().build()
    assert config.validate_rules() == []


def test_lint_reports_soft_issues():
    config = RoutingConfiguration(
        rules=(
            RoutingRule(id="dup", predicates=(CategoryPredicate(category="user"),), target_group=ANALYTICS),
            RoutingRule(id="dup", predicates=(CategoryPredicate(category="user"),), target_group=ANALYTICS),
            RoutingRule(id="debug", target_group=TrackerGroup.development(), debug_only=True),
        ),
        custom_groups={"analytics": ANALYTICS, "unused": TrackerGroup(name="unused", tracker_ids=("x",))},
    )
    issues = config.validate_rules()
    assert "Duplicate rule IDs found: dup" in issues
    assert "No default rule or default group specified" in issues
    assert "Unreferenced custom groups: unused" in issues
    assert "Rules that never apply in production mode: debug" in issues
    assert "Non-default rules without predicates match every event: debug" in issues


def test_lint_reports_invalid_sample_rates_that_bypassed_validation():
    bad = RoutingRule.model_construct(
        id="bad", predicates=(), is_default=True, target_group=ANALYTICS, sample_rate=3.0, priority=0
    )
    config = RoutingConfiguration.model_construct(
        rules=(bad,), custom_groups={}, custom_categories={}, default_group=None, is_debug_mode=False
    )
    assert "Invalid sample rates in rules: bad" in config.validate_rules()


def test_ensure_default_rule():
    rule = RoutingRule(target_group=ANALYTICS)
    assert len(ensure_default_rule([rule], ANALYTICS)) == 1
    assert len(ensure_default_rule([rule], None)) == 2
    default = RoutingRule(is_default=True, target_group=ANALYTICS)
    assert ensure_default_rule([default], None) == (default,)


def test_rules_are_kept_in_priority_order():
    low = RoutingRule(id="low", target_group=ANALYTICS, priority=-5)
    high = RoutingRule(id="high", target_group=ANALYTICS, priority=5)
    mid_a = RoutingRule(id="mid_a", target_group=ANALYTICS)
    mid_b = RoutingRule(id="mid_b", target_group=ANALYTICS)
    config = RoutingConfiguration(rules=(low, mid_a, high, mid_b))
    assert [r.id for r in config.rules] == ["high", "mid_a", "mid_b", "low"]


def test_load_configuration(tmp_path):
    path = tmp_path / "routing.json"
    path.write_text(json.dumps(declarative()))
    config = load_configuration(path)
    assert len(config.rules) == 2

    broken = tmp_path / "broken.json"
    broken.write_text("{not json")
    with pytest.raises(ConfigurationError):
        load_configuration(broken)
