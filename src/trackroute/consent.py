"""Consent evaluation for routing rules."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .rules import RoutingRule
from .schemas import ConsentState, EventDescriptor


@dataclass(frozen=True)
class ConsentDecision:
    allowed: bool
    reason: Optional[str] = None


@dataclass
class ConsentEvaluator:
    """Decide whether a rule may deliver an event under the given consent.

    Order of evaluation: global toggle, essential-event bypass, event-level
    flag (only when honored), PII consent, general consent. The rule's flags
    are authoritative; set ``honor_event_consent_flag`` to also block events
    whose own ``requires_consent`` flag is set when general consent is
    missing, whatever the rule requires.

    Attributes:
        enabled: Global consent checking toggle from the configuration.
        honor_event_consent_flag: Also apply the event-level consent flag.
    """

    enabled: bool = True
    honor_event_consent_flag: bool = False

    def is_allowed(
        self,
        event: EventDescriptor,
        rule: RoutingRule,
        consent: ConsentState,
    ) -> ConsentDecision:
        if not self.enabled:
            return ConsentDecision(True, "Consent checking disabled")

        if event.is_essential:
            return ConsentDecision(True, "Essential event bypasses consent")

        if self.honor_event_consent_flag and event.requires_consent and not consent.has_general_consent:
            return ConsentDecision(False, "Event requires consent but general consent not granted")

        if rule.require_pii_consent:
            if not consent.has_pii_consent:
                return ConsentDecision(False, "PII consent not granted")
            return ConsentDecision(True, "PII consent granted")

        if rule.require_consent:
            if not consent.has_general_consent:
                return ConsentDecision(False, "General consent not granted")
            return ConsentDecision(True, "General consent granted")

        return ConsentDecision(True, "No consent required")
