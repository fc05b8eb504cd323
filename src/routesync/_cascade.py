"""Best-effort application of cascade plans.

Each downstream write is attempted exactly once. A failure is logged,
recorded in the audit log and collected as a :class:`CascadeFailure`;
the remaining steps still run. The route write that precedes a cascade
is never rolled back.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any, TypeVar

from pydantic import BaseModel, ConfigDict

from routesync.audit import AuditSink
from routesync.config import EngineConfig
from routesync.exceptions import CascadeFailureError
from routesync.expenses import ExpenseSideEffect
from routesync.models import HistoryStatus, TransportHistoryEntry, VehicleStatus, utcnow
from routesync.status import CascadePlan, RouteEvent, VehicleChange, history_status_for, resolve_vehicle_status
from routesync.stores import EntityStores

_logger = logging.getLogger(__name__)

T = TypeVar("T")


class CascadeFailure(BaseModel):
    """Warning attached to an operation result for one failed downstream write."""

    model_config = ConfigDict(frozen=True)

    step: str
    entity_type: str
    entity_id: str
    message: str


class CascadeWriter:
    """Writes plans in the fixed order jobs → vehicles → truck → driver."""

    def __init__(
        self,
        stores: EntityStores,
        audit: AuditSink,
        expenses: ExpenseSideEffect,
        config: EngineConfig,
        *,
        route_id: str,
        actor_id: str | None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._stores = stores
        self._audit = audit
        self._expenses = expenses
        self._config = config
        self._route_id = route_id
        self._actor_id = actor_id
        self._clock = clock
        self.failures: list[CascadeFailure] = []

    async def attempt(
        self,
        step: str,
        entity_type: str,
        entity_id: str,
        action: Callable[[], Awaitable[T]],
    ) -> T | None:
        try:
            return await action()
        except Exception as exc:
            error = exc if isinstance(exc, CascadeFailureError) else None
            failure = CascadeFailure(
                step=error.step if error is not None and error.step else step,
                entity_type=entity_type,
                entity_id=entity_id,
                message=str(exc) or type(exc).__name__,
            )
            self.failures.append(failure)
            _logger.warning(
                "Cascade step %s failed for %s %s on route %s: %s",
                failure.step,
                entity_type,
                entity_id,
                self._route_id,
                failure.message,
                exc_info=True,
            )
            if self._config.audit_cascade_failures:
                await self._audit.record(
                    "cascade_failure",
                    entity_type,
                    entity_id,
                    self._actor_id,
                    details={"step": failure.step, "route_id": self._route_id, "error": failure.message},
                )
            return None

    async def apply(self, plan: CascadePlan) -> None:
        for job_change in plan.jobs:
            fields = job_change.as_update()
            if not fields:
                continue
            await self.attempt(
                "transport_job",
                "transport_job",
                job_change.job_id,
                lambda job_id=job_change.job_id, fields=fields: self._stores.transport_jobs.update(job_id, fields),
            )

        for vehicle_change in plan.vehicles:
            await self.attempt(
                "vehicle",
                "vehicle",
                vehicle_change.vehicle_id,
                lambda change=vehicle_change: self._write_vehicle(change, plan.event),
            )

        if plan.truck is not None:
            truck = plan.truck
            await self.attempt(
                "truck",
                "truck",
                truck.truck_id,
                lambda: self._stores.trucks.update(
                    truck.truck_id,
                    {"status": truck.status, "current_driver": truck.current_driver},
                ),
            )

        if plan.driver is not None:
            driver = plan.driver
            await self.attempt(
                "driver",
                "driver",
                driver.driver_id,
                lambda: self._stores.drivers.update(driver.driver_id, {"current_route_id": driver.current_route_id}),
            )

    async def trigger_expense(self) -> None:
        await self.attempt(
            "maintenance_expense",
            "route",
            self._route_id,
            lambda: self._expenses.create_maintenance_expense(self._route_id),
        )

    async def _write_vehicle(self, change: VehicleChange, event: RouteEvent | None) -> Any:
        """Derive the vehicle from its jobs as they are stored now and write what differs."""
        vehicle = await self._stores.vehicles.find_by_id(change.vehicle_id)
        if vehicle is None:
            raise CascadeFailureError(
                f"vehicle {change.vehicle_id} not found",
                step="vehicle",
                entity_type="vehicle",
                entity_id=change.vehicle_id,
            )
        jobs = await self._stores.transport_jobs.find({"vehicle_id": vehicle.id, "is_deleted": False})
        by_id = {job.id: job for job in jobs}

        history: list[TransportHistoryEntry] = []
        for entry in vehicle.transport_history:
            job = by_id.get(entry.job_id) if entry.job_id else None
            if job is not None and entry.status != history_status_for(job.status):
                entry = entry.model_copy(update={"status": history_status_for(job.status)})
            history.append(entry)
        if change.record_history and vehicle.history_entry(change.job_id) is None:
            job = by_id.get(change.job_id)
            history.append(
                TransportHistoryEntry(
                    job_id=change.job_id,
                    route_id=change.route_id,
                    status=history_status_for(job.status) if job is not None else HistoryStatus.PENDING,
                )
            )

        update: dict[str, Any] = {}
        status = resolve_vehicle_status(vehicle.status, [job.status for job in jobs], event) if jobs else vehicle.status
        if change.expected_status is not None and status != change.expected_status:
            _logger.debug(
                "Vehicle %s on route %s: planned %s, stored jobs give %s",
                vehicle.id,
                self._route_id,
                change.expected_status,
                status,
            )
        if status != vehicle.status:
            update["status"] = status
            if status == VehicleStatus.DELIVERED:
                update["delivered_at"] = self._clock()
        if history != vehicle.transport_history:
            update["transport_history"] = history
        if change.set_current_job and vehicle.current_transport_job_id != change.job_id:
            update["current_transport_job_id"] = change.job_id
        if not update:
            return vehicle
        return await self._stores.vehicles.update(vehicle.id, update)
