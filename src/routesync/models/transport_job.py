"""Transport job model."""

from __future__ import annotations

from pydantic import Field

from routesync.models._base import EntityId, Ref, RouteSyncBaseModel
from routesync.models.route import ChecklistItem
from routesync.models.status import TransportJobStatus

# Statuses a job may hold while it is not attached to any route.
UNROUTED_STATUSES: frozenset[TransportJobStatus] = frozenset(
    {
        TransportJobStatus.NEEDS_DISPATCH,
        TransportJobStatus.PUBLISHED_TO_MARKETPLACE,
        TransportJobStatus.CANCELLED,
    }
)


class TransportJob(RouteSyncBaseModel):
    """A unit of work moving one vehicle from a pickup to a drop location.

    ``pickup_route_id`` and ``drop_route_id`` allow the pickup and the
    drop of one job to be carried by two different routes; ``route_id``
    is the route the job was last attached to.
    """

    id: EntityId
    job_number: str = ""
    vehicle_id: Ref = None
    route_id: Ref = None
    pickup_route_id: Ref = None
    drop_route_id: Ref = None
    status: TransportJobStatus = TransportJobStatus.NEEDS_DISPATCH
    assigned_driver: Ref = None
    pickup_checklist: list[ChecklistItem] = Field(default_factory=list)
    delivery_checklist: list[ChecklistItem] = Field(default_factory=list)
    pickup_photos: list[str] = Field(default_factory=list)
    delivery_photos: list[str] = Field(default_factory=list)
    is_deleted: bool = False

    @property
    def is_routed(self) -> bool:
        return bool(self.route_id or self.pickup_route_id or self.drop_route_id)
