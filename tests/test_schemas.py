import pytest
from pydantic import ValidationError

from trackroute.schemas import (
    BUSINESS,
    PREDEFINED_CATEGORIES,
    ConsentState,
    EventCategory,
    EventDescriptor,
    TrackerGroup,
)


def test_wildcard_id_sets_include_all():
    group = TrackerGroup(name="everyone", tracker_ids=["*", "console"])
    assert group.include_all
    assert group.tracker_ids == ("console",)
    assert group.contains_tracker("anything")


def test_tracker_ids_are_deduplicated_in_order():
    group = TrackerGroup(name="g", tracker_ids=["b", "a", "b", "c", "a"])
    assert group.tracker_ids == ("b", "a", "c")


@pytest.mark.parametrize("kwargs", [{"name": "g"}, {"name": "g", "tracker_ids": []}, {"name": " ", "tracker_ids": ["a"]}])
def test_invalid_groups(kwargs):
    with pytest.raises(ValidationError):
        TrackerGroup(**kwargs)


def test_resolve_named_group():
    group = TrackerGroup(name="g", tracker_ids=("c", "a", "b"))
    assert group.resolve({"a", "b", "c"}) == ["c", "a", "b"]
    assert group.resolve(["a"]) == ["a"]
    assert group.resolve([]) == []
    assert group.resolve(None) == ["c", "a", "b"]


def test_resolve_wildcard():
    everyone = TrackerGroup.all()
    assert everyone.resolve(["z", "a", "m"]) == ["a", "m", "z"]
    assert everyone.resolve([]) == []
    assert everyone.resolve(None) == []


def test_predefined_groups():
    assert TrackerGroup.all().include_all
    assert TrackerGroup.development().tracker_ids == ("console",)


def test_combine_and_exclude():
    a = TrackerGroup(name="a", tracker_ids=("x", "y"))
    b = TrackerGroup(name="b", tracker_ids=("y", "z"))
    combined = a.combine_with(b)
    assert combined.name == "a_b"
    assert combined.tracker_ids == ("x", "y", "z")
    assert not combined.include_all

    filtered = combined.excluding(["y"])
    assert filtered.tracker_ids == ("x", "z")
    assert filtered.name == "a_b_filtered"

    with pytest.raises(ValidationError):
        a.excluding(["x", "y"])

    assert TrackerGroup.all().excluding(["x"]).include_all


def test_categories():
    assert set(PREDEFINED_CATEGORIES) == {
        "business", "user", "technical", "sensitive", "marketing", "system", "security"
    }
    checkout = BUSINESS.create_subcategory("checkout")
    assert checkout.name == "business_checkout"
    assert checkout.description == "Subcategory of business: checkout"
    assert checkout.is_subcategory_of(BUSINESS)
    assert not BUSINESS.is_subcategory_of(checkout)
    assert checkout.parent_category.name == "business"
    assert BUSINESS.parent_category is None

    with pytest.raises(ValidationError):
        EventCategory(name="  ")


def test_event_descriptor_defaults_and_category_coercion():
    event = EventDescriptor(name="purchase", category=BUSINESS, properties={"amount": 9.99})
    assert event.category == "business"
    assert event.requires_consent
    assert not (event.contains_pii or event.is_high_volume or event.is_essential)
    assert event.timestamp.tzinfo is not None
    assert "timestamp" not in event.summary()


def test_event_descriptor_rejects_nested_properties():
    with pytest.raises(ValidationError):
        EventDescriptor(name="bad", properties={"nested": {"a": 1}})


def test_consent_presets():
    assert ConsentState() == ConsentState.denied()
    granted = ConsentState.granted()
    assert granted.has_general_consent and granted.has_pii_consent
