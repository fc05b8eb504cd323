"""Route and stop models."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import Field, field_validator

from routesync.models._base import EntityId, Ref, RouteSyncBaseModel, coerce_ref, utcnow
from routesync.models.status import RouteState, RouteStatus, StopStatus, StopType


class ChecklistItem(RouteSyncBaseModel):
    item: str
    checked: bool = False


class StopPhoto(RouteSyncBaseModel):
    """A photo attached to a stop; ``photo_type`` is ``vehicle``, ``document``, ``damage``..."""

    url: str
    photo_type: str = "vehicle"
    uploaded_at: datetime = Field(default_factory=utcnow)


class Stop(RouteSyncBaseModel):
    """One scheduled waypoint of a route. Owned by its route."""

    id: EntityId
    sequence: int = Field(..., ge=1)
    stop_type: StopType
    status: StopStatus = StopStatus.PENDING
    transport_job_id: Ref = None
    checklist: list[ChecklistItem] = Field(default_factory=list)
    photos: list[StopPhoto] = Field(default_factory=list)
    notes: str = ""
    completed_at: datetime | None = None

    @field_validator("status", mode="before")
    @classmethod
    def _unset_is_pending(cls, value: Any) -> Any:
        if value is None or value == "":
            return StopStatus.PENDING
        return value

    @property
    def is_job_stop(self) -> bool:
        return self.stop_type.requires_job


class Route(RouteSyncBaseModel):
    """A driver's multi-stop trip with one truck.

    ``status`` drives the cascades; ``state`` records the finer
    start/stop/resume/complete transitions within ``In Progress``.
    """

    id: EntityId
    route_number: str = ""
    status: RouteStatus = RouteStatus.PLANNED
    state: RouteState | None = None
    driver_id: Ref = None
    truck_id: Ref = None
    stops: list[Stop] = Field(default_factory=list)
    selected_transport_jobs: list[str] = Field(default_factory=list)
    actual_start_at: datetime | None = None
    actual_end_at: datetime | None = None
    actual_distance_traveled: float | None = Field(default=None, ge=0.0)
    """Miles driven as reported by the driver app."""
    total_distance: float | None = Field(default=None, ge=0.0)
    """Planned distance in miles."""
    last_updated_by: Ref = None

    @field_validator("selected_transport_jobs", mode="before")
    @classmethod
    def _normalize_job_refs(cls, value: Any) -> Any:
        if not isinstance(value, list):
            return value
        return [ref for ref in (coerce_ref(item) for item in value) if ref]

    @property
    def is_active(self) -> bool:
        return self.status == RouteStatus.IN_PROGRESS

    @property
    def is_closed(self) -> bool:
        return self.status in (RouteStatus.COMPLETED, RouteStatus.CANCELLED)

    def sorted_stops(self) -> list[Stop]:
        return sorted(self.stops, key=lambda stop: stop.sequence)

    def stop(self, stop_id: str) -> Stop | None:
        for candidate in self.stops:
            if candidate.id == stop_id:
                return candidate
        return None

    def stops_for_job(self, job_id: str) -> list[Stop]:
        return [stop for stop in self.stops if stop.transport_job_id == job_id]

    def job_ids(self) -> list[str]:
        """Jobs referenced by stops or by ``selected_transport_jobs``, in first-seen order."""
        seen: dict[str, None] = {}
        for stop in self.sorted_stops():
            if stop.transport_job_id:
                seen.setdefault(stop.transport_job_id, None)
        for job_id in self.selected_transport_jobs:
            seen.setdefault(job_id, None)
        return list(seen)
