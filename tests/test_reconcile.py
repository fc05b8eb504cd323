from __future__ import annotations

import pytest

from routesync.exceptions import NotFoundError
from routesync.models import (
    Driver,
    HistoryStatus,
    Route,
    RouteStatus,
    Stop,
    StopStatus,
    StopType,
    TransportHistoryEntry,
    TransportJob,
    TransportJobStatus,
    Truck,
    TruckStatus,
    Vehicle,
    VehicleStatus,
)
from routesync.reconcile import ReconcileEntity, Reconciler
from routesync.stores import EntityStores


def _route(status: RouteStatus, *stops: Stop, route_id: str = "route-1") -> Route:
    return Route(id=route_id, status=status, driver_id="drv-1", truck_id="truck-1", stops=list(stops))


def _pickup(status: StopStatus = StopStatus.PENDING, job_id: str = "job-1") -> Stop:
    return Stop(id=f"p-{job_id}", sequence=1, stop_type=StopType.PICKUP, transport_job_id=job_id, status=status)


def _drop(status: StopStatus = StopStatus.PENDING, job_id: str = "job-1") -> Stop:
    return Stop(id=f"d-{job_id}", sequence=2, stop_type=StopType.DROP, transport_job_id=job_id, status=status)


@pytest.mark.asyncio
async def test_vehicle_drift_is_corrected_with_history() -> None:
    stores = EntityStores.in_memory(
        vehicles=[
            Vehicle(
                id="veh-1",
                status=VehicleStatus.IN_TRANSPORT,
                transport_history=[TransportHistoryEntry(job_id="job-1", route_id="route-1")],
            )
        ],
        transport_jobs=[TransportJob(id="job-1", vehicle_id="veh-1", status=TransportJobStatus.DELIVERED)],
    )

    result = await Reconciler(stores).recompute("vehicle", "veh-1")

    assert result.changed
    assert (result.before, result.after) == ("In Transport", "Delivered")
    vehicle = stores.vehicles.get("veh-1")
    assert vehicle.status == VehicleStatus.DELIVERED
    assert vehicle.delivered_at is not None
    assert vehicle.transport_history[0].status == HistoryStatus.COMPLETED


@pytest.mark.asyncio
async def test_consistent_vehicle_is_left_alone() -> None:
    stores = EntityStores.in_memory(
        vehicles=[Vehicle(id="veh-1", status=VehicleStatus.READY_FOR_TRANSPORT)],
        transport_jobs=[TransportJob(id="job-1", vehicle_id="veh-1", status=TransportJobStatus.DISPATCHED)],
    )

    result = await Reconciler(stores).recompute(ReconcileEntity.VEHICLE, "veh-1")

    assert not result.changed
    assert result.after == result.before == "Ready for Transport"


@pytest.mark.asyncio
async def test_vehicle_without_jobs_keeps_its_status() -> None:
    stores = EntityStores.in_memory(vehicles=[Vehicle(id="veh-1", status=VehicleStatus.INTAKE_NEEDED)])

    result = await Reconciler(stores).recompute("vehicle", "veh-1")

    assert not result.changed
    assert stores.vehicles.get("veh-1").status == VehicleStatus.INTAKE_NEEDED


@pytest.mark.asyncio
async def test_truck_in_use_without_active_route_is_released() -> None:
    stores = EntityStores.in_memory(
        trucks=[Truck(id="truck-1", status=TruckStatus.IN_USE, current_driver="drv-1")],
        routes=[_route(RouteStatus.COMPLETED)],
    )

    result = await Reconciler(stores).recompute("truck", "truck-1")

    assert result.changed
    truck = stores.trucks.get("truck-1")
    assert (truck.status, truck.current_driver) == (TruckStatus.AVAILABLE, None)


@pytest.mark.asyncio
async def test_truck_bound_to_active_route_is_marked_in_use() -> None:
    stores = EntityStores.in_memory(
        trucks=[Truck(id="truck-1")],
        routes=[_route(RouteStatus.IN_PROGRESS)],
    )

    await Reconciler(stores).recompute("truck", "truck-1")

    truck = stores.trucks.get("truck-1")
    assert (truck.status, truck.current_driver) == (TruckStatus.IN_USE, "drv-1")


@pytest.mark.asyncio
async def test_truck_in_maintenance_is_never_touched() -> None:
    stores = EntityStores.in_memory(
        trucks=[Truck(id="truck-1", status=TruckStatus.MAINTENANCE)],
        routes=[_route(RouteStatus.IN_PROGRESS)],
    )

    result = await Reconciler(stores).recompute("truck", "truck-1")

    assert not result.changed
    assert stores.trucks.get("truck-1").status == TruckStatus.MAINTENANCE


@pytest.mark.asyncio
async def test_stale_driver_pointer_is_cleared() -> None:
    stores = EntityStores.in_memory(
        drivers=[Driver(id="drv-1", current_route_id="route-1")],
        routes=[_route(RouteStatus.CANCELLED)],
    )

    result = await Reconciler(stores).recompute("driver", "drv-1")

    assert result.changed
    assert (result.before, result.after) == ("route-1", None)
    assert stores.drivers.get("drv-1").current_route_id is None


@pytest.mark.asyncio
async def test_driver_pointer_to_own_active_route_is_kept() -> None:
    stores = EntityStores.in_memory(
        drivers=[Driver(id="drv-1", current_route_id="route-1")],
        routes=[_route(RouteStatus.IN_PROGRESS)],
    )

    result = await Reconciler(stores).recompute("driver", "drv-1")

    assert not result.changed
    assert stores.drivers.get("drv-1").current_route_id == "route-1"


@pytest.mark.asyncio
async def test_dispatched_job_without_stops_returns_to_dispatch() -> None:
    stores = EntityStores.in_memory(
        transport_jobs=[
            TransportJob(
                id="job-1",
                status=TransportJobStatus.DISPATCHED,
                route_id="route-1",
                assigned_driver="drv-1",
            )
        ],
        routes=[_route(RouteStatus.CANCELLED, _pickup(), _drop())],
    )

    result = await Reconciler(stores).recompute("transportJob", "job-1")

    assert result.entity_type == ReconcileEntity.TRANSPORT_JOB
    assert result.after == "Needs Dispatch"
    job = stores.transport_jobs.get("job-1")
    assert (job.route_id, job.assigned_driver) == (None, None)


@pytest.mark.parametrize(
    ("before", "stops", "after"),
    [
        (TransportJobStatus.IN_TRANSIT, (_pickup(StopStatus.COMPLETED), _drop(StopStatus.COMPLETED)), "Delivered"),
        (TransportJobStatus.DISPATCHED, (_pickup(StopStatus.COMPLETED), _drop()), "In Transit"),
        (TransportJobStatus.NEEDS_DISPATCH, (_pickup(), _drop()), "Dispatched"),
        (TransportJobStatus.DELIVERED, (_pickup(StopStatus.COMPLETED), _drop()), "Delivered"),
        (TransportJobStatus.CANCELLED, (_pickup(StopStatus.COMPLETED), _drop(StopStatus.COMPLETED)), "Cancelled"),
    ],
    ids=["fully-completed", "picked-up", "routed", "never-regresses-delivered", "manual-status"],
)
@pytest.mark.asyncio
async def test_job_status_follows_its_stops(
    before: TransportJobStatus, stops: tuple[Stop, ...], after: str
) -> None:
    stores = EntityStores.in_memory(
        transport_jobs=[TransportJob(id="job-1", status=before)],
        routes=[_route(RouteStatus.IN_PROGRESS, *stops)],
    )

    result = await Reconciler(stores).recompute("transport_job", "job-1")

    assert result.after == after
    assert stores.transport_jobs.get("job-1").status == after


@pytest.mark.asyncio
async def test_missing_entity_raises_not_found() -> None:
    with pytest.raises(NotFoundError) as excinfo:
        await Reconciler(EntityStores.in_memory()).recompute("truck", "truck-404")

    assert excinfo.value.entity_type == "truck"


@pytest.mark.asyncio
async def test_recompute_all_returns_only_corrections() -> None:
    stores = EntityStores.in_memory(
        vehicles=[Vehicle(id="veh-1", status=VehicleStatus.READY_FOR_TRANSPORT)],
        transport_jobs=[TransportJob(id="job-1", vehicle_id="veh-1", status=TransportJobStatus.DISPATCHED)],
        routes=[_route(RouteStatus.IN_PROGRESS, _pickup(StopStatus.COMPLETED), _drop(StopStatus.IN_PROGRESS))],
        trucks=[Truck(id="truck-1", status=TruckStatus.IN_USE, current_driver="drv-1")],
        drivers=[Driver(id="drv-1", current_route_id="route-1"), Driver(id="drv-2")],
    )

    results = await Reconciler(stores).recompute_all()

    assert [(r.entity_type, r.entity_id, r.after) for r in results] == [
        (ReconcileEntity.TRANSPORT_JOB, "job-1", "In Transit"),
        (ReconcileEntity.VEHICLE, "veh-1", "In Transport"),
    ]
    assert await Reconciler(stores).recompute_all() == []
