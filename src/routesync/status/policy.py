"""Deterministic status derivation and the event → cascade table.

Nothing here performs I/O. Vehicle statuses are always recomputed from
job statuses rather than stepped forward, so applying the same cascade
twice, or two cascades out of order, converges on the same result.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence

from routesync.models import (
    HistoryStatus,
    RouteState,
    RouteStatus,
    Stop,
    StopStatus,
    StopType,
    TransportJob,
    TransportJobStatus,
    TruckStatus,
    VehicleStatus,
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

_AWAITING_PICKUP = frozenset({TransportJobStatus.NEEDS_DISPATCH, TransportJobStatus.DISPATCHED})
_CLOSED_JOB = frozenset({TransportJobStatus.DELIVERED, TransportJobStatus.CANCELLED})

# Events that may never move a Delivered vehicle anywhere else.
_KEEPS_DELIVERED = frozenset({RouteEvent.STOPS_ATTACHED, RouteEvent.ROUTE_STARTED, RouteEvent.PICKUP_COMPLETED})


def compute_vehicle_status(job_statuses: Iterable[TransportJobStatus]) -> VehicleStatus:
    """Vehicle status implied by the statuses of its transport jobs (highest priority wins)."""
    statuses = list(job_statuses)
    if not statuses:
        return VehicleStatus.INTAKE_COMPLETE
    if TransportJobStatus.IN_TRANSIT in statuses:
        return VehicleStatus.IN_TRANSPORT
    if any(status in _AWAITING_PICKUP for status in statuses):
        return VehicleStatus.READY_FOR_TRANSPORT
    if all(status == TransportJobStatus.DELIVERED for status in statuses):
        return VehicleStatus.DELIVERED
    if all(status == TransportJobStatus.CANCELLED for status in statuses):
        return VehicleStatus.CANCELLED
    if all(status in _CLOSED_JOB for status in statuses):
        return VehicleStatus.DELIVERED
    return VehicleStatus.READY_FOR_TRANSPORT


def resolve_vehicle_status(
    current: VehicleStatus | None,
    job_statuses: Iterable[TransportJobStatus],
    event: RouteEvent | None = None,
) -> VehicleStatus:
    """Derived vehicle status with the no-regression rules applied.

    A ``Delivered`` vehicle is kept by setup, start and pickup events; a
    ``Cancelled`` vehicle is not revived by stops setup. Reconciliation
    (``event=None``) always takes the derived status.
    """
    derived = compute_vehicle_status(job_statuses)
    if event is None or current is None:
        return derived
    if current == VehicleStatus.DELIVERED and event in _KEEPS_DELIVERED:
        return current
    if current == VehicleStatus.CANCELLED and event == RouteEvent.STOPS_ATTACHED:
        return current
    return derived


def history_status_for(job_status: TransportJobStatus) -> HistoryStatus:
    mapping: dict[TransportJobStatus, HistoryStatus] = {
        TransportJobStatus.NEEDS_DISPATCH: HistoryStatus.PENDING,
        TransportJobStatus.DISPATCHED: HistoryStatus.PENDING,
        TransportJobStatus.IN_TRANSIT: HistoryStatus.IN_PROGRESS,
        TransportJobStatus.DELIVERED: HistoryStatus.COMPLETED,
        TransportJobStatus.CANCELLED: HistoryStatus.CANCELLED,
    }
    return mapping.get(job_status, HistoryStatus.PENDING)


def is_job_fully_completed(stops: Iterable[Stop]) -> bool:
    """True when the job has pickup and drop stops and every one of them is completed.

    A job carrying only one of the two stop types never qualifies.
    """
    pickups: list[Stop] = []
    drops: list[Stop] = []
    for stop in stops:
        if stop.stop_type == StopType.PICKUP:
            pickups.append(stop)
        elif stop.stop_type == StopType.DROP:
            drops.append(stop)
    if not pickups or not drops:
        return False
    return all(stop.status == StopStatus.COMPLETED for stop in (*pickups, *drops))


def stop_events(transitions: Sequence[StopTransition]) -> list[tuple[RouteEvent, list[StopTransition]]]:
    """Group job-stop transitions into events: pickups first, then drops, then skips."""
    pickups = [t for t in transitions if t.became_completed and t.stop_type == StopType.PICKUP and t.transport_job_id]
    drops = [t for t in transitions if t.became_completed and t.stop_type == StopType.DROP and t.transport_job_id]
    skips = [t for t in transitions if t.became_skipped and t.stop_type.requires_job and t.transport_job_id]
    events: list[tuple[RouteEvent, list[StopTransition]]] = []
    if pickups:
        events.append((RouteEvent.PICKUP_COMPLETED, pickups))
    if drops:
        events.append((RouteEvent.DROP_COMPLETED, drops))
    if skips:
        events.append((RouteEvent.STOP_SKIPPED, skips))
    return events


def _transition_job_ids(context: CascadeContext) -> list[str]:
    seen: dict[str, None] = {}
    for transition in context.transitions:
        if transition.transport_job_id:
            seen.setdefault(transition.transport_job_id, None)
    return list(seen)


def _vehicle_changes(
    context: CascadeContext,
    event: RouteEvent,
    job_changes: Sequence[JobChange],
    job_ids: Sequence[str],
    *,
    record_history: bool = False,
) -> list[VehicleChange]:
    targets = {change.job_id: change.status for change in job_changes if change.status is not None}

    def projected(job: TransportJob) -> TransportJobStatus:
        return targets.get(job.id, job.status)

    changes: list[VehicleChange] = []
    for job_id in job_ids:
        job = context.jobs.get(job_id)
        if job is None or not job.vehicle_id:
            continue
        siblings = [other for other in context.jobs.values() if other.vehicle_id == job.vehicle_id and not other.is_deleted]
        vehicle = context.vehicles.get(job.vehicle_id)
        changes.append(
            VehicleChange(
                vehicle_id=job.vehicle_id,
                job_id=job_id,
                route_id=context.route.id,
                expected_status=resolve_vehicle_status(
                    vehicle.status if vehicle is not None else None,
                    [projected(other) for other in siblings],
                    event,
                ),
                record_history=record_history,
                set_current_job=record_history,
            )
        )
    return changes


def _release_truck(context: CascadeContext) -> TruckChange | None:
    """Truck back to ``Available`` unless it is out of service or held by another driver."""
    route = context.route
    if not route.truck_id:
        return None
    truck = context.truck
    if truck is not None:
        if truck.status in (TruckStatus.MAINTENANCE, TruckStatus.OUT_OF_SERVICE):
            return None
        if truck.status == TruckStatus.IN_USE and truck.current_driver not in (None, route.driver_id):
            return None
    return TruckChange(truck_id=route.truck_id, status=TruckStatus.AVAILABLE, current_driver=None)


def _route_created(context: CascadeContext) -> CascadePlan:
    return CascadePlan(event=RouteEvent.ROUTE_CREATED, route_status=RouteStatus.PLANNED)


def _stops_attached(context: CascadeContext) -> CascadePlan:
    route = context.route
    changes: list[JobChange] = []
    for job_id in context.job_ids:
        job = context.jobs.get(job_id)
        if job is None:
            continue
        route_stops = route.stops_for_job(job_id)
        fields: dict[str, object] = {"route_id": route.id}
        if any(stop.stop_type == StopType.PICKUP for stop in route_stops):
            fields["pickup_route_id"] = route.id
        if any(stop.stop_type == StopType.DROP for stop in route_stops):
            fields["drop_route_id"] = route.id
        if route.driver_id:
            fields["assigned_driver"] = route.driver_id
        status = TransportJobStatus.DISPATCHED if job.status == TransportJobStatus.NEEDS_DISPATCH else None
        changes.append(JobChange(job_id=job_id, status=status, fields=fields))
    return CascadePlan(
        event=RouteEvent.STOPS_ATTACHED,
        jobs=changes,
        vehicles=_vehicle_changes(
            context,
            RouteEvent.STOPS_ATTACHED,
            changes,
            [change.job_id for change in changes],
            record_history=True,
        ),
    )


def _route_started(context: CascadeContext) -> CascadePlan:
    route = context.route
    truck = None
    if route.truck_id:
        truck = TruckChange(truck_id=route.truck_id, status=TruckStatus.IN_USE, current_driver=route.driver_id)
    driver = DriverChange(driver_id=route.driver_id, current_route_id=route.id) if route.driver_id else None
    return CascadePlan(
        event=RouteEvent.ROUTE_STARTED,
        route_status=RouteStatus.IN_PROGRESS,
        route_state=RouteState.STARTED,
        truck=truck,
        driver=driver,
    )


def _pickup_completed(context: CascadeContext) -> CascadePlan:
    job_ids = _transition_job_ids(context)
    changes: list[JobChange] = []
    for job_id in job_ids:
        job = context.jobs.get(job_id)
        if job is None or job.status in _CLOSED_JOB:
            continue
        if is_job_fully_completed(context.job_stops.get(job_id, [])):
            target = TransportJobStatus.DELIVERED
        else:
            target = TransportJobStatus.IN_TRANSIT
        if job.status != target:
            changes.append(JobChange(job_id=job_id, status=target))
    return CascadePlan(
        event=RouteEvent.PICKUP_COMPLETED,
        jobs=changes,
        vehicles=_vehicle_changes(context, RouteEvent.PICKUP_COMPLETED, changes, job_ids),
    )


def _drop_completed(context: CascadeContext) -> CascadePlan:
    job_ids = _transition_job_ids(context)
    changes: list[JobChange] = []
    for job_id in job_ids:
        job = context.jobs.get(job_id)
        if job is None or job.status in _CLOSED_JOB:
            continue
        if is_job_fully_completed(context.job_stops.get(job_id, [])):
            changes.append(JobChange(job_id=job_id, status=TransportJobStatus.DELIVERED))
    return CascadePlan(
        event=RouteEvent.DROP_COMPLETED,
        jobs=changes,
        vehicles=_vehicle_changes(context, RouteEvent.DROP_COMPLETED, changes, job_ids),
    )


def _route_completed(context: CascadeContext) -> CascadePlan:
    route = context.route
    driver = DriverChange(driver_id=route.driver_id, current_route_id=None) if route.driver_id else None
    return CascadePlan(
        event=RouteEvent.ROUTE_COMPLETED,
        route_status=RouteStatus.COMPLETED,
        route_state=RouteState.COMPLETED,
        truck=_release_truck(context),
        driver=driver,
        trigger_expense=True,
    )


def _route_cancelled(context: CascadeContext) -> CascadePlan:
    changes: list[JobChange] = []
    for job_id in context.job_ids:
        job = context.jobs.get(job_id)
        if job is None or job.status in _CLOSED_JOB:
            continue
        changes.append(
            JobChange(job_id=job_id, status=TransportJobStatus.NEEDS_DISPATCH, fields={"assigned_driver": None})
        )
    return CascadePlan(
        event=RouteEvent.ROUTE_CANCELLED,
        route_status=RouteStatus.CANCELLED,
        jobs=changes,
        vehicles=_vehicle_changes(context, RouteEvent.ROUTE_CANCELLED, changes, list(context.job_ids)),
        truck=_release_truck(context),
    )


def _job_removed(context: CascadeContext) -> CascadePlan:
    route_id = context.route.id
    changes: list[JobChange] = []
    for job_id in context.job_ids:
        job = context.jobs.get(job_id)
        if job is None:
            continue
        fields: dict[str, object] = {}
        remaining = []
        for ref_field in ("route_id", "pickup_route_id", "drop_route_id"):
            value = getattr(job, ref_field)
            if value == route_id:
                fields[ref_field] = None
            elif value:
                remaining.append(value)
        status = None
        if not remaining:
            fields["assigned_driver"] = None
            if job.status not in _CLOSED_JOB:
                status = TransportJobStatus.NEEDS_DISPATCH
        changes.append(JobChange(job_id=job_id, status=status, fields=fields))
    return CascadePlan(
        event=RouteEvent.JOB_REMOVED,
        jobs=changes,
        vehicles=_vehicle_changes(context, RouteEvent.JOB_REMOVED, changes, list(context.job_ids)),
    )


def _stop_skipped(context: CascadeContext) -> CascadePlan:
    job_ids = _transition_job_ids(context)
    changes: list[JobChange] = []
    for job_id in job_ids:
        job = context.jobs.get(job_id)
        if job is None or job.status in _CLOSED_JOB:
            continue
        changes.append(JobChange(job_id=job_id, status=TransportJobStatus.CANCELLED))
    return CascadePlan(
        event=RouteEvent.STOP_SKIPPED,
        jobs=changes,
        vehicles=_vehicle_changes(context, RouteEvent.STOP_SKIPPED, changes, job_ids),
    )


_RULES: dict[RouteEvent, Callable[[CascadeContext], CascadePlan]] = {
    RouteEvent.ROUTE_CREATED: _route_created,
    RouteEvent.STOPS_ATTACHED: _stops_attached,
    RouteEvent.ROUTE_STARTED: _route_started,
    RouteEvent.PICKUP_COMPLETED: _pickup_completed,
    RouteEvent.DROP_COMPLETED: _drop_completed,
    RouteEvent.ROUTE_COMPLETED: _route_completed,
    RouteEvent.ROUTE_CANCELLED: _route_cancelled,
    RouteEvent.JOB_REMOVED: _job_removed,
    RouteEvent.STOP_SKIPPED: _stop_skipped,
}


def compute_cascade(event: RouteEvent, context: CascadeContext) -> CascadePlan:
    """Target statuses for every entity *event* touches, given *context*."""
    return _RULES[event](context)
