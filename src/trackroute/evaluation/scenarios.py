"""Synthetic event scenarios for routing simulations.

Generates events across four profiles:
- NORMAL: Everyday user and business events with general consent
- HIGH_VOLUME: Frequent technical events (scrolls, renders, heartbeats)
- PII: Events carrying personal data, with PII consent granted only sometimes
- ESSENTIAL: Events that must be tracked regardless of consent
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import List
import random

from trackroute.schemas import ConsentState, EventDescriptor


class ScenarioType(str, Enum):
    """Event profile of a scenario."""

    NORMAL = "normal"
    HIGH_VOLUME = "high_volume"
    PII = "pii"
    ESSENTIAL = "essential"


@dataclass
class Scenario:
    """An event paired with the consent of the user who produced it.

    Attributes:
        event: The event to route.
        consent: Consent state supplied alongside the event.
        scenario_type: Event profile.
    """

    event: EventDescriptor
    consent: ConsentState
    scenario_type: ScenarioType


class EventScenarioGenerator:
    """Generate deterministic synthetic events given a seed."""

    NORMAL_EVENTS = [
        ("purchase_completed", "business"),
        ("subscription_started", "business"),
        ("button_clicked", "user"),
        ("page_viewed", "user"),
        ("campaign_opened", "marketing"),
    ]
    HIGH_VOLUME_EVENTS = ["scroll_depth", "frame_rendered", "heartbeat", "mouse_moved"]
    PII_EVENTS = ["profile_updated", "email_changed", "address_saved"]
    ESSENTIAL_EVENTS = ["app_crashed", "login_failed", "payment_error"]

    def __init__(self, seed: int = 42, n_users: int = 50):
        """Initialize with a random seed for reproducibility.

        Args:
            seed: Random seed for deterministic generation.
            n_users: Size of the synthetic user population.
        """
        self.rng = random.Random(seed)
        self.n_users = n_users

    def generate(self, n: int, scenario_type: ScenarioType) -> List[Scenario]:
        """Generate n scenarios of the specified type."""
        if scenario_type == ScenarioType.NORMAL:
            make = self._normal
        elif scenario_type == ScenarioType.HIGH_VOLUME:
            make = self._high_volume
        elif scenario_type == ScenarioType.PII:
            make = self._pii
        else:
            make = self._essential
        return [make() for _ in range(n)]

    def _user(self) -> str:
        return f"user_{self.rng.randrange(self.n_users)}"

    def _consent(self, p_general: float, p_pii: float) -> ConsentState:
        return ConsentState(
            has_general_consent=self.rng.random() < p_general,
            has_pii_consent=self.rng.random() < p_pii,
        )

    def _normal(self) -> Scenario:
        name, category = self.rng.choice(self.NORMAL_EVENTS)
        event = EventDescriptor(
            name=name,
            category=category,
            properties={"value": round(self.rng.uniform(1, 200), 2)} if category == "business" else {},
            user_id=self._user(),
        )
        return Scenario(event, self._consent(0.8, 0.3), ScenarioType.NORMAL)

    def _high_volume(self) -> Scenario:
        event = EventDescriptor(
            name=self.rng.choice(self.HIGH_VOLUME_EVENTS),
            category="technical",
            is_high_volume=True,
            user_id=self._user(),
        )
        return Scenario(event, self._consent(0.8, 0.3), ScenarioType.HIGH_VOLUME)

    def _pii(self) -> Scenario:
        event = EventDescriptor(
            name=self.rng.choice(self.PII_EVENTS),
            category="sensitive",
            contains_pii=True,
            user_id=self._user(),
        )
        return Scenario(event, self._consent(0.9, 0.5), ScenarioType.PII)

    def _essential(self) -> Scenario:
        event = EventDescriptor(
            name=self.rng.choice(self.ESSENTIAL_EVENTS),
            category="system",
            is_essential=True,
            requires_consent=False,
            user_id=self._user(),
        )
        # essential events are tracked even for users who declined everything
        return Scenario(event, self._consent(0.5, 0.2), ScenarioType.ESSENTIAL)
