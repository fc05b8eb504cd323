"""Per-route tracking timeline.

The timeline is independent of status values: it records where the
truck was and what the driver did, so a route's execution can be
reconstructed later. Each entry carries the id of the audit entry that
caused it. Recorder failures are logged and swallowed; they never block
the operation that produced them.
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Callable, Mapping
from datetime import datetime
from typing import Any, Protocol

from pydantic import Field

from routesync.models import EntityId, GeoPoint, Ref, RouteSyncBaseModel, utcnow

_logger = logging.getLogger(__name__)


class TrackingStatus(enum.StrEnum):
    ACTIVE = "active"
    COMPLETED = "completed"


class LocationEntry(RouteSyncBaseModel):
    timestamp: datetime
    location: GeoPoint
    origin_event_id: Ref = None


class ActionEntry(RouteSyncBaseModel):
    timestamp: datetime
    action: str
    location: GeoPoint | None = None
    origin_event_id: Ref = None
    details: dict[str, Any] = Field(default_factory=dict)


class RouteTracking(RouteSyncBaseModel):
    route_id: EntityId
    driver_id: Ref = None
    truck_id: Ref = None
    status: TrackingStatus = TrackingStatus.ACTIVE
    started_at: datetime
    completed_at: datetime | None = None
    origin_event_id: Ref = None
    completion_event_id: Ref = None
    location_history: list[LocationEntry] = Field(default_factory=list)
    action_history: list[ActionEntry] = Field(default_factory=list)


class TrackingRecorder(Protocol):
    """Append-only route timeline. Implementations must never raise."""

    async def initialize(
        self,
        route_id: str,
        driver_id: str | None,
        truck_id: str | None,
        origin_event_id: str | None,
    ) -> RouteTracking | None: ...

    async def append_location(
        self,
        route_id: str,
        latitude: float,
        longitude: float,
        accuracy: float | None = None,
        origin_event_id: str | None = None,
    ) -> LocationEntry | None: ...

    async def append_action(
        self,
        route_id: str,
        action: str,
        location: GeoPoint | None = None,
        origin_event_id: str | None = None,
        details: Mapping[str, Any] | None = None,
    ) -> ActionEntry | None: ...

    async def complete(self, route_id: str, origin_event_id: str | None = None) -> RouteTracking | None: ...


class InMemoryTrackingRecorder:
    """Dictionary-backed :class:`TrackingRecorder` keyed by route id."""

    def __init__(self, *, clock: Callable[[], datetime] = utcnow) -> None:
        self._clock = clock
        self._trackings: dict[str, RouteTracking] = {}

    def get(self, route_id: str) -> RouteTracking | None:
        return self._trackings.get(route_id)

    def _active(self, route_id: str) -> RouteTracking | None:
        tracking = self._trackings.get(route_id)
        if tracking is None or tracking.status != TrackingStatus.ACTIVE:
            _logger.warning("No active tracking for route %s", route_id)
            return None
        return tracking

    async def initialize(
        self,
        route_id: str,
        driver_id: str | None,
        truck_id: str | None,
        origin_event_id: str | None,
    ) -> RouteTracking | None:
        try:
            existing = self._trackings.get(route_id)
            if existing is not None and existing.status == TrackingStatus.ACTIVE:
                _logger.debug("Tracking already active for route %s", route_id)
                return existing
            tracking = RouteTracking(
                route_id=route_id,
                driver_id=driver_id,
                truck_id=truck_id,
                started_at=self._clock(),
                origin_event_id=origin_event_id,
            )
            self._trackings[route_id] = tracking
            _logger.debug("Tracking initialized for route %s driver=%s", route_id, driver_id)
            return tracking
        except Exception:
            _logger.warning("Failed to initialize tracking for route %s", route_id, exc_info=True)
            return None

    async def append_location(
        self,
        route_id: str,
        latitude: float,
        longitude: float,
        accuracy: float | None = None,
        origin_event_id: str | None = None,
    ) -> LocationEntry | None:
        try:
            tracking = self._active(route_id)
            if tracking is None:
                return None
            entry = LocationEntry(
                timestamp=self._clock(),
                location=GeoPoint(latitude=latitude, longitude=longitude, accuracy=accuracy),
                origin_event_id=origin_event_id,
            )
            self._trackings[route_id] = tracking.model_copy(
                update={"location_history": [*tracking.location_history, entry]},
            )
            return entry
        except Exception:
            _logger.warning("Failed to append location for route %s", route_id, exc_info=True)
            return None

    async def append_action(
        self,
        route_id: str,
        action: str,
        location: GeoPoint | None = None,
        origin_event_id: str | None = None,
        details: Mapping[str, Any] | None = None,
    ) -> ActionEntry | None:
        try:
            tracking = self._active(route_id)
            if tracking is None:
                return None
            entry = ActionEntry(
                timestamp=self._clock(),
                action=action,
                location=location,
                origin_event_id=origin_event_id,
                details=dict(details or {}),
            )
            self._trackings[route_id] = tracking.model_copy(
                update={"action_history": [*tracking.action_history, entry]},
            )
            return entry
        except Exception:
            _logger.warning("Failed to append action %s for route %s", action, route_id, exc_info=True)
            return None

    async def complete(self, route_id: str, origin_event_id: str | None = None) -> RouteTracking | None:
        try:
            tracking = self._active(route_id)
            if tracking is None:
                return None
            completed = tracking.model_copy(
                update={
                    "status": TrackingStatus.COMPLETED,
                    "completed_at": self._clock(),
                    "completion_event_id": origin_event_id,
                },
            )
            self._trackings[route_id] = completed
            return completed
        except Exception:
            _logger.warning("Failed to complete tracking for route %s", route_id, exc_info=True)
            return None
