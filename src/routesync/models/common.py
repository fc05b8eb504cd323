"""Small value types shared across operations."""

from __future__ import annotations

import enum

from pydantic import Field

from routesync.models._base import EntityId, RouteSyncBaseModel


class GeoPoint(RouteSyncBaseModel):
    """A client-reported coordinate."""

    latitude: float = Field(..., ge=-90.0, le=90.0)
    longitude: float = Field(..., ge=-180.0, le=180.0)
    accuracy: float | None = Field(default=None, ge=0.0)
    """Reported accuracy radius in meters."""


class ActorRole(enum.StrEnum):
    DRIVER = "driver"
    DISPATCHER = "dispatcher"


class Actor(RouteSyncBaseModel):
    """Caller identity handed in by the request layer (already authenticated)."""

    id: EntityId
    role: ActorRole = ActorRole.DISPATCHER

    @property
    def is_driver(self) -> bool:
        return self.role == ActorRole.DRIVER
