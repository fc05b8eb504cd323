"""Truck, driver and expense models."""

from __future__ import annotations

from datetime import datetime

from pydantic import Field

from routesync.models._base import EntityId, Ref, RouteSyncBaseModel, utcnow
from routesync.models.status import TruckStatus


class Truck(RouteSyncBaseModel):
    """A carrier truck. ``In Use`` exactly while bound to an in-progress route."""

    id: EntityId
    truck_number: str = ""
    status: TruckStatus = TruckStatus.AVAILABLE
    current_driver: Ref = None
    maintenance_rate: float | None = Field(default=None, ge=0.0)
    """Maintenance cost per mile."""


class Driver(RouteSyncBaseModel):
    """The driver subset of a user account.

    ``current_route_id`` is the single-active-route pointer.
    """

    id: EntityId
    name: str = ""
    email: str = ""
    current_route_id: Ref = None


class Expense(RouteSyncBaseModel):
    id: EntityId
    expense_type: str = "maintenance"
    category: str = "service"
    route_id: Ref = None
    truck_id: Ref = None
    driver_id: Ref = None
    miles: float = 0.0
    maintenance_rate: float = 0.0
    total_cost: float = 0.0
    description: str = ""
    created_by: Ref = None
    created_at: datetime = Field(default_factory=utcnow)
