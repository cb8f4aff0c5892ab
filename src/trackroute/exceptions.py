"""Error taxonomy for trackroute.

Configuration problems are raised synchronously while a routing
configuration is being assembled. Routing itself never raises: run-time
problems surface as warnings on the RoutingResult instead.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional


class TrackRouteError(Exception):
    """Base class for all trackroute errors."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.cause = cause

    def _details(self) -> list[str]:
        return []

    def __str__(self) -> str:
        head = type(self).__name__
        if self.code:
            head += f"({self.code})"
        lines = [f"{head}: {self.message}", *self._details()]
        if self.cause is not None:
            lines.append(f"Caused by: {self.cause}")
        return "\n".join(lines)


class ConfigurationError(TrackRouteError, ValueError):
    """Invalid routing configuration, raised at build time only.

    Attributes:
        field_name: The offending field (e.g. ``sample_rate``), if known.
        config_type: The kind of object being configured (``rule``, ``group``...).
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        cause: Optional[BaseException] = None,
        field_name: Optional[str] = None,
        config_type: Optional[str] = None,
    ):
        super().__init__(message, code=code, cause=cause)
        self.field_name = field_name
        self.config_type = config_type

    def _details(self) -> list[str]:
        details = []
        if self.config_type:
            details.append(f"Configuration Type: {self.config_type}")
        if self.field_name:
            details.append(f"Field: {self.field_name}")
        return details


class TrackerErrorKind(str, Enum):
    """Failure stage of a tracker dispatch."""

    INIT = "init"
    SEND = "send"
    BATCH = "batch"


class TrackerError(TrackRouteError):
    """Failure inside a tracker adapter.

    Dispatch collaborators raise and handle these themselves; the routing core
    only decides where events go and never propagates tracker failures.
    """

    def __init__(
        self,
        message: str,
        tracker_id: str,
        kind: TrackerErrorKind = TrackerErrorKind.SEND,
        event_name: Optional[str] = None,
        code: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message, code=code, cause=cause)
        self.tracker_id = tracker_id
        self.kind = kind
        self.event_name = event_name

    def _details(self) -> list[str]:
        details = [f"Tracker ID: {self.tracker_id}", f"Stage: {self.kind.value}"]
        if self.event_name:
            details.append(f"Event: {self.event_name}")
        return details
