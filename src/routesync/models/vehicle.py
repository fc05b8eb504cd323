"""Vehicle model."""

from __future__ import annotations

from datetime import datetime

from pydantic import Field

from routesync.models._base import EntityId, Ref, RouteSyncBaseModel
from routesync.models.status import HistoryStatus, VehicleStatus


class TransportHistoryEntry(RouteSyncBaseModel):
    """One transport job the vehicle has been part of."""

    job_id: Ref = Field(default=None)
    route_id: Ref = None
    status: HistoryStatus = HistoryStatus.PENDING


class Vehicle(RouteSyncBaseModel):
    """A shipper's vehicle moving through intake, dispatch and delivery.

    ``status`` is derived from the statuses of the vehicle's transport
    jobs (see :func:`routesync.status.policy.compute_vehicle_status`);
    only the engine or a manual override changes it.
    """

    id: EntityId
    vin: str = ""
    make: str = ""
    model: str = ""
    year: int | None = None
    status: VehicleStatus = VehicleStatus.INTAKE_NEEDED
    current_transport_job_id: Ref = None
    transport_history: list[TransportHistoryEntry] = Field(default_factory=list)
    """Append-only list of jobs; entries only ever change ``status``."""
    delivered_at: datetime | None = None
    is_deleted: bool = False

    def history_entry(self, job_id: str) -> TransportHistoryEntry | None:
        for entry in self.transport_history:
            if entry.job_id == job_id:
                return entry
        return None
