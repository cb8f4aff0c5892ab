"""Typed schemas for trackroute.

These models describe what the routing core consumes: the event being routed,
the consent the end user has granted, and the named groups of trackers a rule
can target. They are frozen so a configuration built once can be shared by
concurrent callers.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

# Primitive property values an event may carry.
PropertyValue = Union[bool, int, float, str, None]

WILDCARD = "*"


class EventCategory(BaseModel):
    """A category of events.

    Subcategories are named ``<parent>_<child>``. The hierarchy is
    informational only: category predicates compare names exactly.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    description: Optional[str] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("category name cannot be empty")
        return v

    def create_subcategory(self, name: str, description: Optional[str] = None) -> "EventCategory":
        return EventCategory(
            name=f"{self.name}_{name}",
            description=description or f"Subcategory of {self.name}: {name}",
        )

    def is_subcategory_of(self, parent: "EventCategory") -> bool:
        return self.name.startswith(f"{parent.name}_")

    @property
    def parent_category(self) -> Optional["EventCategory"]:
        parts = self.name.split("_")
        if len(parts) > 1:
            return EventCategory(name=parts[0])
        return None


BUSINESS = EventCategory(name="business", description="Revenue, conversions, and key business metrics")
USER = EventCategory(name="user", description="User behavior, preferences, and actions")
TECHNICAL = EventCategory(name="technical", description="Errors, debugging, and performance metrics")
SENSITIVE = EventCategory(name="sensitive", description="Events containing personally identifiable information")
MARKETING = EventCategory(name="marketing", description="Marketing campaigns, attribution, and advertising")
SYSTEM = EventCategory(name="system", description="Internal system events and health checks")
SECURITY = EventCategory(name="security", description="Security events, authentication, and access control")

PREDEFINED_CATEGORIES: Dict[str, EventCategory] = {
    c.name: c for c in (BUSINESS, USER, TECHNICAL, SENSITIVE, MARKETING, SYSTEM, SECURITY)
}


class EventDescriptor(BaseModel):
    """An analytics event submitted for routing.

    ``requires_consent`` is informational: consent requirements are decided by
    the matching rule unless the consent evaluator is told otherwise.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    category: Optional[str] = None
    properties: Dict[str, PropertyValue] = Field(default_factory=dict)
    contains_pii: bool = False
    is_high_volume: bool = False
    is_essential: bool = False
    requires_consent: bool = True
    event_type: Optional[str] = None  # runtime type tag for event_type predicates
    user_id: Optional[str] = None
    session_id: Optional[str] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_validator("category", mode="before")
    @classmethod
    def coerce_category(cls, v):
        """Accept an EventCategory where a category name is expected."""
        if isinstance(v, EventCategory):
            return v.name
        return v

    def summary(self) -> Dict[str, object]:
        return self.model_dump(mode="json", exclude={"timestamp"})


class ConsentState(BaseModel):
    """End-user data collection permissions, supplied per call."""

    model_config = ConfigDict(frozen=True)

    has_general_consent: bool = False
    has_pii_consent: bool = False

    @classmethod
    def granted(cls) -> "ConsentState":
        return cls(has_general_consent=True, has_pii_consent=True)

    @classmethod
    def denied(cls) -> "ConsentState":
        return cls(has_general_consent=False, has_pii_consent=False)


class TrackerGroup(BaseModel):
    """A named set of tracker ids, or the wildcard for every available tracker."""

    model_config = ConfigDict(frozen=True)

    name: str
    tracker_ids: Tuple[str, ...] = ()
    include_all: bool = False
    description: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def normalize_ids(cls, data):
        if not isinstance(data, dict):
            return data
        data = dict(data)
        ids = list(data.get("tracker_ids") or ())
        if WILDCARD in ids:
            data["include_all"] = True
            ids = [i for i in ids if i != WILDCARD]
        # de-duplicate, keeping first occurrence order
        data["tracker_ids"] = tuple(dict.fromkeys(ids))
        return data

    @model_validator(mode="after")
    def check_members(self) -> "TrackerGroup":
        if not self.name.strip():
            raise ValueError("group name cannot be empty")
        if not self.include_all and not self.tracker_ids:
            raise ValueError(f"group '{self.name}' must contain at least one tracker ID")
        return self

    @classmethod
    def all(cls) -> "TrackerGroup":
        return cls(name="all", include_all=True, description="All registered trackers")

    @classmethod
    def development(cls) -> "TrackerGroup":
        return cls(
            name="development",
            tracker_ids=("console",),
            description="Development and debugging trackers",
        )

    def contains_tracker(self, tracker_id: str) -> bool:
        return self.include_all or tracker_id in self.tracker_ids

    def combine_with(self, other: "TrackerGroup") -> "TrackerGroup":
        return TrackerGroup(
            name=f"{self.name}_{other.name}",
            tracker_ids=self.tracker_ids + other.tracker_ids,
            include_all=self.include_all or other.include_all,
            description=f"Combined group of {self.name} and {other.name}",
        )

    def excluding(self, tracker_ids: Iterable[str]) -> "TrackerGroup":
        """Return a copy without the given ids.

        Raises:
            ValueError: If nothing would remain in a non-wildcard group.
        """
        excluded = set(tracker_ids)
        return TrackerGroup(
            name=f"{self.name}_filtered",
            tracker_ids=tuple(i for i in self.tracker_ids if i not in excluded),
            include_all=self.include_all,
            description=f"{self.description or self.name} (excluding {', '.join(sorted(excluded))})",
        )

    def resolve(self, available: Optional[Iterable[str]]) -> List[str]:
        """Resolve the group against the trackers currently available.

        The wildcard resolves to every available tracker (sorted for stable
        output). Named groups keep their configured order and silently drop
        unavailable ids. With no availability information, the wildcard
        resolves to nothing and named groups resolve to their configured ids.
        """
        if available is None:
            return [] if self.include_all else list(self.tracker_ids)
        available_set = set(available)
        if self.include_all:
            return sorted(available_set)
        return [i for i in self.tracker_ids if i in available_set]
