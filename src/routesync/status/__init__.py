"""Pure status decision logic: events, cascade policy and stop diffs."""

from routesync.status.diff import (
    advance_next_stop,
    diff_stops,
    new_photos,
    newly_checked_items,
    resequence,
    validate_stops,
)
from routesync.status.events import (
    CascadeContext,
    CascadePlan,
    DriverChange,
    JobChange,
    RouteEvent,
    StopTransition,
    TruckChange,
    VehicleChange,
)
from routesync.status.policy import (
    compute_cascade,
    compute_vehicle_status,
    history_status_for,
    is_job_fully_completed,
    resolve_vehicle_status,
    stop_events,
)

__all__ = [
    "CascadeContext",
    "CascadePlan",
    "DriverChange",
    "JobChange",
    "RouteEvent",
    "StopTransition",
    "TruckChange",
    "VehicleChange",
    "advance_next_stop",
    "compute_cascade",
    "compute_vehicle_status",
    "diff_stops",
    "history_status_for",
    "is_job_fully_completed",
    "new_photos",
    "newly_checked_items",
    "resequence",
    "resolve_vehicle_status",
    "stop_events",
    "validate_stops",
]
