"""Status enums, one per entity.

Values are the display strings persisted by the dispatch back office, so
documents round-trip unchanged.
"""

from __future__ import annotations

from routesync.models._base import StatusEnum


class VehicleStatus(StatusEnum):
    INTAKE_NEEDED = "Purchased – Intake Needed"
    INTAKE_COMPLETE = "Intake Completed"
    READY_FOR_TRANSPORT = "Ready for Transport"
    PUBLISHED_TO_MARKETPLACE = "Published to Central Dispatch"
    IN_TRANSPORT = "In Transport"
    DELIVERED = "Delivered"
    CANCELLED = "Cancelled"


class TransportJobStatus(StatusEnum):
    NEEDS_DISPATCH = "Needs Dispatch"
    PUBLISHED_TO_MARKETPLACE = "Published to Central Dispatch"
    DISPATCHED = "Dispatched"
    IN_TRANSIT = "In Transit"
    DELIVERED = "Delivered"
    CANCELLED = "Cancelled"
    EXCEPTION = "Exception"


class RouteStatus(StatusEnum):
    PLANNED = "Planned"
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"


class RouteState(StatusEnum):
    """Operational state within ``RouteStatus.IN_PROGRESS`` (display and audit only)."""

    STARTED = "Started"
    STOPPED = "Stopped"
    RESUMED = "Resumed"
    COMPLETED = "Completed"


class StopStatus(StatusEnum):
    PENDING = "Pending"
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"
    SKIPPED = "Skipped"


class StopType(StatusEnum):
    START = "start"
    PICKUP = "pickup"
    DROP = "drop"
    BREAK = "break"
    REST = "rest"
    FUEL = "fuel"
    END = "end"

    @property
    def requires_job(self) -> bool:
        """Pickup and drop stops must reference a transport job."""
        return self in (StopType.PICKUP, StopType.DROP)


class TruckStatus(StatusEnum):
    AVAILABLE = "Available"
    IN_USE = "In Use"
    MAINTENANCE = "Maintenance"
    OUT_OF_SERVICE = "Out of Service"


class HistoryStatus(StatusEnum):
    """Status of one entry in ``Vehicle.transport_history``."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
