"""API request/response schemas for the routing service."""

from typing import Dict, List, Optional, Union

from pydantic import BaseModel, Field


class EventRequest(BaseModel):
    """Event to route."""

    name: str = Field(min_length=1)
    category: Optional[str] = None
    properties: Dict[str, Union[bool, int, float, str, None]] = Field(default_factory=dict)
    contains_pii: bool = False
    is_high_volume: bool = False
    is_essential: bool = False
    requires_consent: bool = True
    event_type: Optional[str] = None
    user_id: Optional[str] = None
    session_id: Optional[str] = None


class ConsentRequest(BaseModel):
    """End-user consent for the request."""

    has_general_consent: bool = False
    has_pii_consent: bool = False


class RouteRequest(BaseModel):
    """Request to route an event.

    Omitting consent means no consent store is involved (treated as granted);
    omitting available_trackers means the wildcard group resolves to nothing.
    """

    event: EventRequest
    consent: Optional[ConsentRequest] = None
    available_trackers: Optional[List[str]] = None


class SkippedRuleResponse(BaseModel):
    """Rule that matched but did not contribute trackers."""

    rule: str
    reason: str


class RouteResponse(BaseModel):
    """Routing decision."""

    target_trackers: List[str]
    will_be_tracked: bool
    applied_rules: List[str]
    skipped_rules: List[SkippedRuleResponse]
    warnings: List[str]


class RuleDebugResponse(BaseModel):
    """Matching outcome for one rule."""

    rule: str
    priority: int
    target_group: str
    matched: bool
    reason: str | None = None


class DebugResponse(BaseModel):
    """Matching outcome for every rule plus the routing decision."""

    total_rules: int
    matching_rules: List[RuleDebugResponse]
    non_matching_rules: List[RuleDebugResponse]
    result: RouteResponse


class ValidateResponse(BaseModel):
    """Lint findings for the loaded configuration."""

    valid: bool
    rule_count: int
    issues: List[str] = Field(default_factory=list)


class ErrorResponse(BaseModel):
    """Error payload."""

    detail: str


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    service: str
