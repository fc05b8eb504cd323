"""Driver and truck assignment checks.

A driver holds at most one active route through ``current_route_id`` and
a truck is ``In Use`` only while bound to an in-progress route. The
checks run before any write; they are not atomic with the writes that
follow, so two concurrent starts can both pass. Reconciliation repairs
what slips through.
"""

from __future__ import annotations

import logging

from routesync.exceptions import ConflictingAssignmentError
from routesync.models import Actor, Driver, Route, Truck, TruckStatus

_logger = logging.getLogger(__name__)

_UNAVAILABLE_TRUCK = frozenset({TruckStatus.MAINTENANCE, TruckStatus.OUT_OF_SERVICE})


class DriverAssignmentGuard:
    def authorize(self, route: Route, actor: Actor) -> None:
        """A driver may only act on a route assigned to them; dispatchers may act on any route."""
        if actor.is_driver and route.driver_id != actor.id:
            _logger.debug("Driver %s rejected on route %s (assigned %s)", actor.id, route.id, route.driver_id)
            raise ConflictingAssignmentError(f"Driver {actor.id} is not assigned to route {route.id}")

    def check_start(self, route: Route, driver: Driver | None, truck: Truck | None) -> None:
        """Raise :class:`ConflictingAssignmentError` when *route* may not start now."""
        if driver is not None and driver.current_route_id not in (None, route.id):
            raise ConflictingAssignmentError(
                f"Driver {driver.id} is already on route {driver.current_route_id}",
            )
        if truck is None:
            return
        if truck.status in _UNAVAILABLE_TRUCK:
            raise ConflictingAssignmentError(f"Truck {truck.id} is {truck.status}")
        if truck.status == TruckStatus.IN_USE and truck.current_driver not in (None, route.driver_id):
            raise ConflictingAssignmentError(
                f"Truck {truck.id} is in use by driver {truck.current_driver}",
            )
