"""routesync - Status synchronization engine for vehicle-transport routes."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("routesync")
except PackageNotFoundError:
    __version__ = "0+local"
from routesync.audit import AuditEntry, AuditSink, InMemoryAuditSink
from routesync.config import EngineConfig
from routesync.exceptions import (
    CascadeFailureError,
    ConflictingAssignmentError,
    InvalidTransitionError,
    NotFoundError,
    RouteSyncConfigError,
    RouteSyncError,
)
from routesync.expenses import ExpenseSideEffect, MaintenanceExpenseService
from routesync.guard import DriverAssignmentGuard
from routesync.lifecycle import CascadeFailure, OperationResult, RouteAction, RouteLifecycle, StopUpdate
from routesync.models import (
    Actor,
    ActorRole,
    ChecklistItem,
    Driver,
    Expense,
    GeoPoint,
    Route,
    RouteState,
    RouteStatus,
    Stop,
    StopPhoto,
    StopStatus,
    StopType,
    TransportJob,
    TransportJobStatus,
    Truck,
    TruckStatus,
    Vehicle,
    VehicleStatus,
)
from routesync.reconcile import ReconcileEntity, Reconciler, ReconcileResult
from routesync.stores import EntityStore, EntityStores, InMemoryEntityStore
from routesync.tracking import InMemoryTrackingRecorder, TrackingRecorder

__all__ = [
    "__version__",
    "Actor",
    "ActorRole",
    "AuditEntry",
    "AuditSink",
    "CascadeFailure",
    "CascadeFailureError",
    "ChecklistItem",
    "ConflictingAssignmentError",
    "Driver",
    "DriverAssignmentGuard",
    "EngineConfig",
    "EntityStore",
    "EntityStores",
    "Expense",
    "ExpenseSideEffect",
    "GeoPoint",
    "InMemoryAuditSink",
    "InMemoryEntityStore",
    "InMemoryTrackingRecorder",
    "InvalidTransitionError",
    "MaintenanceExpenseService",
    "NotFoundError",
    "OperationResult",
    "ReconcileEntity",
    "ReconcileResult",
    "Reconciler",
    "Route",
    "RouteAction",
    "RouteLifecycle",
    "RouteState",
    "RouteStatus",
    "RouteSyncConfigError",
    "RouteSyncError",
    "Stop",
    "StopPhoto",
    "StopStatus",
    "StopType",
    "StopUpdate",
    "TrackingRecorder",
    "TransportJob",
    "TransportJobStatus",
    "Truck",
    "TruckStatus",
    "Vehicle",
    "VehicleStatus",
]
