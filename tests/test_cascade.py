from __future__ import annotations

import logging

import pytest

from routesync._cascade import CascadeWriter
from routesync.audit import InMemoryAuditSink
from routesync.config import EngineConfig
from routesync.expenses import MaintenanceExpenseService
from routesync.models import TransportJob, TransportJobStatus, Vehicle, VehicleStatus
from routesync.status import CascadePlan, RouteEvent, VehicleChange
from routesync.stores import EntityStores


def _writer(stores: EntityStores) -> CascadeWriter:
    return CascadeWriter(
        stores,
        InMemoryAuditSink(),
        MaintenanceExpenseService(stores),
        EngineConfig(),
        route_id="route-1",
        actor_id="disp-1",
    )


@pytest.mark.asyncio
async def test_vehicle_follows_stored_jobs_and_logs_plan_drift(caplog: pytest.LogCaptureFixture) -> None:
    stores = EntityStores.in_memory(
        vehicles=[Vehicle(id="veh-1", status=VehicleStatus.READY_FOR_TRANSPORT)],
        transport_jobs=[TransportJob(id="job-1", vehicle_id="veh-1", status=TransportJobStatus.DELIVERED)],
    )
    plan = CascadePlan(
        event=RouteEvent.DROP_COMPLETED,
        vehicles=[
            VehicleChange(vehicle_id="veh-1", job_id="job-1", expected_status=VehicleStatus.IN_TRANSPORT),
        ],
    )
    writer = _writer(stores)

    with caplog.at_level(logging.DEBUG, logger="routesync._cascade"):
        await writer.apply(plan)

    assert writer.failures == []
    assert stores.vehicles.get("veh-1").status == VehicleStatus.DELIVERED
    assert "planned In Transport, stored jobs give Delivered" in caplog.text


@pytest.mark.asyncio
async def test_matching_plan_logs_no_drift(caplog: pytest.LogCaptureFixture) -> None:
    stores = EntityStores.in_memory(
        vehicles=[Vehicle(id="veh-1", status=VehicleStatus.INTAKE_COMPLETE)],
        transport_jobs=[TransportJob(id="job-1", vehicle_id="veh-1", status=TransportJobStatus.DISPATCHED)],
    )
    plan = CascadePlan(
        event=RouteEvent.STOPS_ATTACHED,
        vehicles=[
            VehicleChange(
                vehicle_id="veh-1",
                job_id="job-1",
                route_id="route-1",
                expected_status=VehicleStatus.READY_FOR_TRANSPORT,
                record_history=True,
                set_current_job=True,
            ),
        ],
    )

    with caplog.at_level(logging.DEBUG, logger="routesync._cascade"):
        await _writer(stores).apply(plan)

    vehicle = stores.vehicles.get("veh-1")
    assert vehicle.status == VehicleStatus.READY_FOR_TRANSPORT
    assert vehicle.current_transport_job_id == "job-1"
    assert "stored jobs give" not in caplog.text


@pytest.mark.asyncio
async def test_missing_vehicle_becomes_a_failure() -> None:
    stores = EntityStores.in_memory(transport_jobs=[TransportJob(id="job-1", vehicle_id="veh-9")])
    writer = _writer(stores)

    await writer.apply(
        CascadePlan(event=RouteEvent.PICKUP_COMPLETED, vehicles=[VehicleChange(vehicle_id="veh-9", job_id="job-1")])
    )

    assert [(f.step, f.entity_id) for f in writer.failures] == [("vehicle", "veh-9")]
