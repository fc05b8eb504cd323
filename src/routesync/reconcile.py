"""Out-of-band recomputation of derived statuses.

Cascades are best effort, so a failed write can leave a job, vehicle,
truck or driver pointer behind the route it belongs to. The reconciler
recomputes one entity from its current relations and writes the
correction; running it on a consistent entity changes nothing.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel, ConfigDict

from routesync.exceptions import NotFoundError
from routesync.models import (
    RouteStatus,
    StatusEnum,
    StopStatus,
    StopType,
    TransportHistoryEntry,
    TransportJobStatus,
    TruckStatus,
    VehicleStatus,
    utcnow,
)
from routesync.status import compute_vehicle_status, history_status_for, is_job_fully_completed
from routesync.stores import EntityStores, stops_reference

_logger = logging.getLogger(__name__)

# Job statuses set by hand or by the marketplace integration; never derived.
_MANUAL_JOB_STATUSES = frozenset(
    {
        TransportJobStatus.CANCELLED,
        TransportJobStatus.EXCEPTION,
        TransportJobStatus.PUBLISHED_TO_MARKETPLACE,
    }
)


def _text(value: object) -> str | None:
    return None if value is None else str(value)


class ReconcileEntity(StatusEnum):
    TRANSPORT_JOB = "transport_job"
    VEHICLE = "vehicle"
    TRUCK = "truck"
    DRIVER = "driver"


class ReconcileResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    entity_type: ReconcileEntity
    entity_id: str
    before: str | None = None
    after: str | None = None
    changed: bool = False


class Reconciler:
    def __init__(self, stores: EntityStores) -> None:
        self._stores = stores

    async def recompute(self, entity_type: ReconcileEntity | str, entity_id: str) -> ReconcileResult:
        kind = ReconcileEntity(entity_type)
        if kind == ReconcileEntity.TRANSPORT_JOB:
            return await self._transport_job(entity_id)
        if kind == ReconcileEntity.VEHICLE:
            return await self._vehicle(entity_id)
        if kind == ReconcileEntity.TRUCK:
            return await self._truck(entity_id)
        return await self._driver(entity_id)

    async def recompute_all(self) -> list[ReconcileResult]:
        """Reconcile every job, then every vehicle, truck and driver; return the corrections."""
        results: list[ReconcileResult] = []
        passes: list[tuple[ReconcileEntity, Any]] = [
            (ReconcileEntity.TRANSPORT_JOB, self._stores.transport_jobs),
            (ReconcileEntity.VEHICLE, self._stores.vehicles),
            (ReconcileEntity.TRUCK, self._stores.trucks),
            (ReconcileEntity.DRIVER, self._stores.drivers),
        ]
        for kind, store in passes:
            for entity in await store.find({}):
                result = await self.recompute(kind, entity.id)
                if result.changed:
                    results.append(result)
        return results

    def _missing(self, kind: ReconcileEntity, entity_id: str) -> NotFoundError:
        return NotFoundError(f"{kind} {entity_id} not found", entity_type=str(kind), entity_id=entity_id)

    async def _transport_job(self, job_id: str) -> ReconcileResult:
        job = await self._stores.transport_jobs.find_by_id(job_id)
        if job is None:
            raise self._missing(ReconcileEntity.TRANSPORT_JOB, job_id)
        before = job.status
        result = ReconcileResult(
            entity_type=ReconcileEntity.TRANSPORT_JOB,
            entity_id=job_id,
            before=_text(before),
            after=_text(before),
        )
        if job.is_deleted or before in _MANUAL_JOB_STATUSES:
            return result

        routes = [
            route
            for route in await self._stores.routes.find({"stops": stops_reference(job_id)})
            if route.status != RouteStatus.CANCELLED
        ]
        stops = [stop for route in routes for stop in route.stops_for_job(job_id)]

        update: dict[str, Any] = {}
        if not stops:
            if before in (TransportJobStatus.DISPATCHED, TransportJobStatus.IN_TRANSIT):
                update = {
                    "status": TransportJobStatus.NEEDS_DISPATCH,
                    "route_id": None,
                    "pickup_route_id": None,
                    "drop_route_id": None,
                    "assigned_driver": None,
                }
        elif is_job_fully_completed(stops):
            target = TransportJobStatus.DELIVERED
            if before != target:
                update = {"status": target}
        elif any(stop.stop_type == StopType.PICKUP and stop.status == StopStatus.COMPLETED for stop in stops):
            if before in (TransportJobStatus.NEEDS_DISPATCH, TransportJobStatus.DISPATCHED):
                update = {"status": TransportJobStatus.IN_TRANSIT}
        elif before == TransportJobStatus.NEEDS_DISPATCH:
            update = {"status": TransportJobStatus.DISPATCHED}

        if not update:
            return result
        updated = await self._stores.transport_jobs.update(job_id, update)
        _logger.info("Reconciled transport job %s: %s -> %s", job_id, before, updated.status)
        return result.model_copy(update={"after": _text(updated.status), "changed": True})

    async def _vehicle(self, vehicle_id: str) -> ReconcileResult:
        vehicle = await self._stores.vehicles.find_by_id(vehicle_id)
        if vehicle is None:
            raise self._missing(ReconcileEntity.VEHICLE, vehicle_id)
        before = vehicle.status
        result = ReconcileResult(
            entity_type=ReconcileEntity.VEHICLE,
            entity_id=vehicle_id,
            before=_text(before),
            after=_text(before),
        )
        jobs = await self._stores.transport_jobs.find({"vehicle_id": vehicle_id, "is_deleted": False})
        if not jobs:
            return result

        by_id = {job.id: job for job in jobs}
        history: list[TransportHistoryEntry] = []
        for entry in vehicle.transport_history:
            job = by_id.get(entry.job_id) if entry.job_id else None
            if job is not None and entry.status != history_status_for(job.status):
                entry = entry.model_copy(update={"status": history_status_for(job.status)})
            history.append(entry)

        update: dict[str, Any] = {}
        status = compute_vehicle_status(job.status for job in jobs)
        if status != before:
            update["status"] = status
            if status == VehicleStatus.DELIVERED:
                update["delivered_at"] = utcnow()
        if history != vehicle.transport_history:
            update["transport_history"] = history
        if not update:
            return result
        updated = await self._stores.vehicles.update(vehicle_id, update)
        _logger.info("Reconciled vehicle %s: %s -> %s", vehicle_id, before, updated.status)
        return result.model_copy(update={"after": _text(updated.status), "changed": True})

    async def _truck(self, truck_id: str) -> ReconcileResult:
        truck = await self._stores.trucks.find_by_id(truck_id)
        if truck is None:
            raise self._missing(ReconcileEntity.TRUCK, truck_id)
        before = truck.status
        result = ReconcileResult(
            entity_type=ReconcileEntity.TRUCK,
            entity_id=truck_id,
            before=_text(before),
            after=_text(before),
        )
        if before in (TruckStatus.MAINTENANCE, TruckStatus.OUT_OF_SERVICE):
            return result

        active = await self._stores.routes.find({"truck_id": truck_id, "status": RouteStatus.IN_PROGRESS})
        if active:
            update = {"status": TruckStatus.IN_USE, "current_driver": active[0].driver_id}
        else:
            update = {"status": TruckStatus.AVAILABLE, "current_driver": None}
        if truck.status == update["status"] and truck.current_driver == update["current_driver"]:
            return result
        updated = await self._stores.trucks.update(truck_id, update)
        _logger.info("Reconciled truck %s: %s -> %s", truck_id, before, updated.status)
        return result.model_copy(update={"after": _text(updated.status), "changed": True})

    async def _driver(self, driver_id: str) -> ReconcileResult:
        driver = await self._stores.drivers.find_by_id(driver_id)
        if driver is None:
            raise self._missing(ReconcileEntity.DRIVER, driver_id)
        before = driver.current_route_id
        result = ReconcileResult(
            entity_type=ReconcileEntity.DRIVER,
            entity_id=driver_id,
            before=_text(before),
            after=_text(before),
        )
        if before is None:
            return result

        route = await self._stores.routes.find_by_id(before)
        if route is not None and route.is_active and route.driver_id == driver_id:
            return result
        await self._stores.drivers.update(driver_id, {"current_route_id": None})
        _logger.info("Cleared stale route pointer %s on driver %s", before, driver_id)
        return result.model_copy(update={"after": None, "changed": True})
