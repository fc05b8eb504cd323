"""Maintenance expense side effect triggered by route completion."""

from __future__ import annotations

import logging
from typing import Protocol

from routesync.audit import new_entry_id
from routesync.models import Expense, Route, Truck
from routesync.stores import EntityStores

_logger = logging.getLogger(__name__)

MAINTENANCE = "maintenance"


class ExpenseSideEffect(Protocol):
    async def create_maintenance_expense(self, route_id: str) -> Expense | None: ...


def route_miles(route: Route) -> float:
    """Driven miles when reported, otherwise the planned distance."""
    if route.actual_distance_traveled:
        return float(route.actual_distance_traveled)
    return float(route.total_distance or 0.0)


def maintenance_description(route: Route, miles: float, rate: float) -> str:
    label = route.route_number or route.id
    return f"Automatic maintenance expense for route {label} - {miles:g} miles at ${rate:.2f}/mile"


class MaintenanceExpenseService:
    """Creates one maintenance expense per completed route.

    The cost is the truck's per-mile maintenance rate times the route's
    miles. Nothing is created when the route has no truck or driver, or
    when rate or miles is not positive. A second call for the same route,
    rate and miles finds the existing expense and returns it.
    """

    def __init__(self, stores: EntityStores) -> None:
        self._stores = stores

    async def create_maintenance_expense(self, route_id: str) -> Expense | None:
        route = await self._stores.routes.find_by_id(route_id)
        if route is None:
            _logger.debug("Maintenance expense skipped: route %s not found", route_id)
            return None
        if not route.truck_id or not route.driver_id:
            _logger.debug("Maintenance expense skipped: route %s has no truck or driver", route_id)
            return None

        truck: Truck | None = await self._stores.trucks.find_by_id(route.truck_id)
        rate = float(truck.maintenance_rate or 0.0) if truck is not None else 0.0
        miles = route_miles(route)
        if rate <= 0 or miles <= 0:
            _logger.debug("Maintenance expense skipped: route %s rate=%s miles=%s", route_id, rate, miles)
            return None

        existing = await self._stores.expenses.find(
            {
                "route_id": route_id,
                "expense_type": MAINTENANCE,
                "maintenance_rate": rate,
                "miles": miles,
            }
        )
        if existing:
            _logger.debug("Maintenance expense already recorded for route %s", route_id)
            return existing[0]

        expense = Expense(
            id=new_entry_id(),
            expense_type=MAINTENANCE,
            category="service",
            route_id=route_id,
            truck_id=route.truck_id,
            driver_id=route.driver_id,
            miles=miles,
            maintenance_rate=rate,
            total_cost=round(rate * miles, 2),
            description=maintenance_description(route, miles, rate),
            created_by=route.driver_id,
        )
        await self._stores.expenses.insert(expense)
        _logger.info("Maintenance expense %.2f created for route %s", expense.total_cost, route_id)
        return expense
