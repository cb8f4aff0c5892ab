"""Identifier validation for routing configurations."""

from __future__ import annotations

import re
from typing import Optional

from .exceptions import ConfigurationError

_TRACKER_ID_RE = re.compile(r"^[a-zA-Z0-9_-]+$")
_NAME_RE = re.compile(r"^[a-zA-Z0-9_.-]+$")

RESERVED_TRACKER_IDS = {"all", "none", "default", "system"}
MAX_TRACKER_ID_LENGTH = 50
MAX_EVENT_NAME_LENGTH = 100


def tracker_id_error(tracker_id: Optional[str]) -> Optional[str]:
    """Return why a tracker id is invalid, or None if it is fine."""
    if not tracker_id:
        return "Tracker ID cannot be empty"
    if len(tracker_id) > MAX_TRACKER_ID_LENGTH:
        return f"Tracker ID cannot exceed {MAX_TRACKER_ID_LENGTH} characters"
    if not _TRACKER_ID_RE.match(tracker_id):
        return "Tracker ID can only contain letters, numbers, underscores, and hyphens"
    if tracker_id.lower() in RESERVED_TRACKER_IDS:
        return f"Tracker ID '{tracker_id}' is reserved"
    return None


def event_name_error(name: Optional[str]) -> Optional[str]:
    """Return why an event name is invalid, or None if it is fine."""
    if not name:
        return "Event name cannot be empty"
    if len(name) > MAX_EVENT_NAME_LENGTH:
        return f"Event name cannot exceed {MAX_EVENT_NAME_LENGTH} characters"
    if not _NAME_RE.match(name):
        return "Event name can only contain letters, numbers, underscores, dots, and hyphens"
    if not name[0].isalpha():
        return "Event name must start with a letter"
    return None


def require_name(value: Optional[str], field_name: str, config_type: str) -> str:
    """Reject empty or whitespace-only identifiers."""
    if value is None or not value.strip():
        raise ConfigurationError(
            f"{config_type.capitalize()} {field_name} cannot be empty",
            field_name=field_name,
            config_type=config_type,
        )
    return value


def require_tracker_ids(tracker_ids: list[str], group_name: str) -> list[str]:
    """Validate the tracker ids of a named group."""
    if not tracker_ids:
        raise ConfigurationError(
            f"Group '{group_name}' must contain at least one tracker ID",
            field_name="tracker_ids",
            config_type="group",
        )
    for tracker_id in tracker_ids:
        error = tracker_id_error(tracker_id)
        if error:
            raise ConfigurationError(
                f"Invalid tracker ID in group '{group_name}': {error}",
                field_name="tracker_ids",
                config_type="group",
            )
    return tracker_ids
