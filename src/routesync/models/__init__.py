"""Entity models for the status synchronization engine."""

from routesync.models._base import EntityId, Ref, RouteSyncBaseModel, StatusEnum, coerce_ref, utcnow
from routesync.models.common import Actor, ActorRole, GeoPoint
from routesync.models.fleet import Driver, Expense, Truck
from routesync.models.route import ChecklistItem, Route, Stop, StopPhoto
from routesync.models.status import (
    HistoryStatus,
    RouteState,
    RouteStatus,
    StopStatus,
    StopType,
    TransportJobStatus,
    TruckStatus,
    VehicleStatus,
)
from routesync.models.transport_job import UNROUTED_STATUSES, TransportJob
from routesync.models.vehicle import TransportHistoryEntry, Vehicle

__all__ = [
    "Actor",
    "ActorRole",
    "ChecklistItem",
    "Driver",
    "EntityId",
    "Expense",
    "GeoPoint",
    "HistoryStatus",
    "Ref",
    "Route",
    "RouteState",
    "RouteStatus",
    "RouteSyncBaseModel",
    "StatusEnum",
    "Stop",
    "StopPhoto",
    "StopStatus",
    "StopType",
    "TransportHistoryEntry",
    "TransportJob",
    "TransportJobStatus",
    "Truck",
    "TruckStatus",
    "UNROUTED_STATUSES",
    "Vehicle",
    "VehicleStatus",
    "coerce_ref",
    "utcnow",
]
