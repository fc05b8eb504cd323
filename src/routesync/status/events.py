"""Route events and the cascade plans computed for them.

Both stop update paths (bulk route update and single-stop update) turn
their input into :class:`StopTransition` values through the same diff,
then into :class:`RouteEvent` values. The status policy maps each event
plus a :class:`CascadeContext` snapshot to a :class:`CascadePlan`; only
the lifecycle writes plans to the stores.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from routesync.models import (
    Driver,
    Route,
    RouteState,
    RouteStatus,
    Stop,
    StopStatus,
    StopType,
    TransportJob,
    TransportJobStatus,
    Truck,
    TruckStatus,
    Vehicle,
    VehicleStatus,
)


class RouteEvent(StrEnum):
    ROUTE_CREATED = "route_created"
    STOPS_ATTACHED = "stops_attached"
    ROUTE_STARTED = "route_started"
    PICKUP_COMPLETED = "pickup_completed"
    DROP_COMPLETED = "drop_completed"
    ROUTE_COMPLETED = "route_completed"
    ROUTE_CANCELLED = "route_cancelled"
    JOB_REMOVED = "job_removed"
    STOP_SKIPPED = "stop_skipped"


class StopTransition(BaseModel):
    """Status change of one stop between two snapshots of a route.

    ``old_status`` is ``None`` for a stop that was added and
    ``new_status`` is ``None`` for a stop that was removed.
    """

    model_config = ConfigDict(frozen=True)

    stop_id: str
    stop_type: StopType
    transport_job_id: str | None = None
    old_status: StopStatus | None = None
    new_status: StopStatus | None = None

    @property
    def added(self) -> bool:
        return self.old_status is None and self.new_status is not None

    @property
    def removed(self) -> bool:
        return self.new_status is None and self.old_status is not None

    @property
    def became_completed(self) -> bool:
        return self.new_status == StopStatus.COMPLETED and self.old_status != StopStatus.COMPLETED

    @property
    def became_skipped(self) -> bool:
        return self.new_status == StopStatus.SKIPPED and self.old_status != StopStatus.SKIPPED


class CascadeContext(BaseModel):
    """Snapshot handed to :func:`routesync.status.policy.compute_cascade`.

    ``route`` is the route as it will be written. ``job_stops`` maps each
    job to its stops on every route, with this route's stops taken from
    ``route``.
    """

    model_config = ConfigDict(frozen=True)

    route: Route
    transitions: list[StopTransition] = Field(default_factory=list)
    job_ids: list[str] = Field(default_factory=list)
    jobs: dict[str, TransportJob] = Field(default_factory=dict)
    job_stops: dict[str, list[Stop]] = Field(default_factory=dict)
    vehicles: dict[str, Vehicle] = Field(default_factory=dict)
    truck: Truck | None = None
    driver: Driver | None = None


class JobChange(BaseModel):
    model_config = ConfigDict(frozen=True)

    job_id: str
    status: TransportJobStatus | None = None
    fields: dict[str, Any] = Field(default_factory=dict)

    def as_update(self) -> dict[str, Any]:
        update = dict(self.fields)
        if self.status is not None:
            update["status"] = self.status
        return update


class VehicleChange(BaseModel):
    """Vehicle touched by a cascade.

    ``expected_status`` is derived from the jobs in the context; the
    writer derives it again from the jobs as stored at write time.
    """

    model_config = ConfigDict(frozen=True)

    vehicle_id: str
    job_id: str
    route_id: str | None = None
    expected_status: VehicleStatus | None = None
    record_history: bool = False
    set_current_job: bool = False


class TruckChange(BaseModel):
    model_config = ConfigDict(frozen=True)

    truck_id: str
    status: TruckStatus
    current_driver: str | None = None


class DriverChange(BaseModel):
    model_config = ConfigDict(frozen=True)

    driver_id: str
    current_route_id: str | None = None


class CascadePlan(BaseModel):
    """Target state for every entity an event touches."""

    model_config = ConfigDict(frozen=True)

    event: RouteEvent
    route_status: RouteStatus | None = None
    route_state: RouteState | None = None
    jobs: list[JobChange] = Field(default_factory=list)
    vehicles: list[VehicleChange] = Field(default_factory=list)
    truck: TruckChange | None = None
    driver: DriverChange | None = None
    trigger_expense: bool = False

    @property
    def job_targets(self) -> dict[str, TransportJobStatus]:
        return {change.job_id: change.status for change in self.jobs if change.status is not None}
