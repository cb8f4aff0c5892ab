"""Routing rules and their predicates.

A rule is a list of predicates, a target group and a handful of modifiers
(priority, sampling, consent, environment). Predicates are a discriminated
union on ``kind`` so every predicate a rule carries is explicit and
serializable; a rule matches an event when every predicate holds.
"""

from __future__ import annotations

import math
import re
from enum import Enum
from functools import lru_cache
from typing import Annotated, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .schemas import EventCategory, EventDescriptor, PropertyValue, TrackerGroup


@lru_cache(maxsize=256)
def compile_pattern(pattern: str) -> re.Pattern:
    return re.compile(pattern)


def same_value(actual: PropertyValue, expected: PropertyValue) -> bool:
    """Primitive equality that also requires matching types (True != 1 != 1.0)."""
    return type(actual) is type(expected) and actual == expected


# ---------------------------------------------------------------------------
# Predicates
# ---------------------------------------------------------------------------


class _Predicate(BaseModel):
    model_config = ConfigDict(frozen=True)

    def mismatch(self, event: EventDescriptor) -> Optional[str]:
        """Return why the event fails this predicate, or None when it holds."""
        raise NotImplementedError


class EventTypePredicate(_Predicate):
    """Exact equality on the event's runtime type tag."""

    kind: Literal["event_type"] = "event_type"
    event_type: str

    def mismatch(self, event: EventDescriptor) -> Optional[str]:
        if event.event_type != self.event_type:
            return f"Event type mismatch: expected {self.event_type}, got {event.event_type}"
        return None


class NameContainsPredicate(_Predicate):
    """Case-sensitive substring match on the event name."""

    kind: Literal["name_contains"] = "name_contains"
    pattern: str

    @field_validator("pattern")
    @classmethod
    def validate_pattern(cls, v: str) -> str:
        if not v:
            raise ValueError("event name pattern cannot be empty")
        return v

    def mismatch(self, event: EventDescriptor) -> Optional[str]:
        if self.pattern not in event.name:
            return f'Event name pattern mismatch: "{event.name}" does not contain "{self.pattern}"'
        return None


class NameRegexPredicate(_Predicate):
    """Regular expression searched anywhere in the event name (not anchored)."""

    kind: Literal["name_regex"] = "name_regex"
    pattern: str

    @field_validator("pattern")
    @classmethod
    def validate_pattern(cls, v: str) -> str:
        try:
            compile_pattern(v)
        except re.error as exc:
            raise ValueError(f"invalid regular expression /{v}/: {exc}") from exc
        return v

    def mismatch(self, event: EventDescriptor) -> Optional[str]:
        if compile_pattern(self.pattern).search(event.name) is None:
            return f'Event name regex mismatch: "{event.name}" does not match /{self.pattern}/'
        return None


class CategoryPredicate(_Predicate):
    """Exact category name equality; subcategories do not match their parent."""

    kind: Literal["category"] = "category"
    category: str

    @field_validator("category", mode="before")
    @classmethod
    def coerce_category(cls, v):
        if isinstance(v, EventCategory):
            return v.name
        return v

    def mismatch(self, event: EventDescriptor) -> Optional[str]:
        if event.category != self.category:
            return f"Category mismatch: expected {self.category}, got {event.category}"
        return None


class PropertyPredicate(_Predicate):
    """Property key must exist; when a value is given it must also be equal."""

    kind: Literal["property"] = "property"
    key: str
    value: PropertyValue = None

    def mismatch(self, event: EventDescriptor) -> Optional[str]:
        if self.key not in event.properties:
            return f"Missing property: {self.key}"
        if self.value is not None and not same_value(event.properties[self.key], self.value):
            return (
                f"Property value mismatch for {self.key}: "
                f"expected {self.value!r}, got {event.properties[self.key]!r}"
            )
        return None


class FlagPredicate(_Predicate):
    """Exact equality on one of the event's policy flags."""

    kind: Literal["flag"] = "flag"
    flag: Literal["contains_pii", "is_high_volume", "is_essential"]
    expected: bool = True

    def mismatch(self, event: EventDescriptor) -> Optional[str]:
        actual = getattr(event, self.flag)
        if actual != self.expected:
            return f"Flag mismatch: {self.flag} expected {self.expected}, got {actual}"
        return None


Predicate = Annotated[
    Union[
        EventTypePredicate,
        NameContainsPredicate,
        NameRegexPredicate,
        CategoryPredicate,
        PropertyPredicate,
        FlagPredicate,
    ],
    Field(discriminator="kind"),
]


# ---------------------------------------------------------------------------
# Sampling strategies
# ---------------------------------------------------------------------------

KeySource = Literal["user_id", "session_id", "name"]


class _Strategy(BaseModel):
    model_config = ConfigDict(frozen=True)


class UniformSampling(_Strategy):
    """Independent random draw per event at the rule's sample rate."""

    kind: Literal["uniform"] = "uniform"


class DeterministicSampling(_Strategy):
    """Hash of an event key decides, so a user stays consistently in or out."""

    kind: Literal["deterministic"] = "deterministic"
    key_source: KeySource = "user_id"


class BucketedSampling(_Strategy):
    """Hash of an event key picks a bucket; selected buckets pass."""

    kind: Literal["bucketed"] = "bucketed"
    bucket_count: int = Field(gt=0)
    target_buckets: Tuple[int, ...]
    key_source: KeySource = "user_id"

    @model_validator(mode="after")
    def check_buckets(self) -> "BucketedSampling":
        bad = [b for b in self.target_buckets if not 0 <= b < self.bucket_count]
        if bad:
            raise ValueError(f"target buckets {bad} outside [0, {self.bucket_count})")
        return self


class AdaptiveSampling(_Strategy):
    """Rate recomputed each window from observed volume."""

    kind: Literal["adaptive"] = "adaptive"
    target_events_per_window: int = Field(gt=0)
    window_seconds: float = Field(default=60.0, gt=0)


SamplingStrategy = Annotated[
    Union[UniformSampling, DeterministicSampling, BucketedSampling, AdaptiveSampling],
    Field(discriminator="kind"),
]


def sample_key(event: EventDescriptor, key_source: KeySource) -> Optional[str]:
    """Read the sampling key for an event; None when the event lacks it."""
    value = getattr(event, key_source)
    return value or None


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------


class Environment(str, Enum):
    ANY = "any"
    DEBUG = "debug"
    PRODUCTION = "production"


class RoutingRule(BaseModel):
    """A predicate set plus target group and modifiers.

    A rule with no predicates and ``is_default=False`` matches every event.
    Default rules match unconditionally but are only considered when no
    non-default rule matches.
    """

    model_config = ConfigDict(frozen=True)

    id: Optional[str] = None
    predicates: Tuple[Predicate, ...] = ()
    is_default: bool = False
    target_group: TrackerGroup
    sample_rate: float = 1.0
    sampling: SamplingStrategy = Field(default_factory=UniformSampling)
    require_consent: bool = True
    require_pii_consent: bool = False
    debug_only: bool = False
    production_only: bool = False
    priority: int = 0
    description: Optional[str] = None

    @field_validator("sample_rate")
    @classmethod
    def validate_sample_rate(cls, v: float) -> float:
        if math.isnan(v) or math.isinf(v) or not 0.0 <= v <= 1.0:
            raise ValueError(f"Sample rate must be between 0.0 and 1.0, got {v}")
        return v

    @model_validator(mode="after")
    def check_modifiers(self) -> "RoutingRule":
        if self.debug_only and self.production_only:
            raise ValueError("a rule cannot be both debug-only and production-only")
        if isinstance(self.sampling, (BucketedSampling, AdaptiveSampling)) and self.sample_rate != 1.0:
            raise ValueError(
                f"{self.sampling.kind} sampling derives its own rate; sample_rate must stay 1.0"
            )
        return self

    @property
    def environment(self) -> Environment:
        if self.debug_only:
            return Environment.DEBUG
        if self.production_only:
            return Environment.PRODUCTION
        return Environment.ANY

    @property
    def label(self) -> str:
        return self.description or self.id or str(self)

    def predicates_of(self, kind: str) -> List[_Predicate]:
        return [p for p in self.predicates if p.kind == kind]

    def to_dict(self) -> dict:
        return self.model_dump(mode="json")

    def __str__(self) -> str:
        conditions = []
        for p in self.predicates:
            if isinstance(p, EventTypePredicate):
                conditions.append(f"type: {p.event_type}")
            elif isinstance(p, NameContainsPredicate):
                conditions.append(f"pattern: {p.pattern}")
            elif isinstance(p, NameRegexPredicate):
                conditions.append(f"regex: {p.pattern}")
            elif isinstance(p, CategoryPredicate):
                conditions.append(f"category: {p.category}")
            elif isinstance(p, PropertyPredicate):
                conditions.append(f"property: {p.key}")
            elif isinstance(p, FlagPredicate):
                conditions.append(f"{p.flag}={p.expected}")
        if self.is_default:
            conditions.append("default")
        return f"RoutingRule({', '.join(conditions)} -> {self.target_group.name})"
