"""Route lifecycle orchestration.

:class:`RouteLifecycle` is the only component that writes. Every
operation follows the same shape:

1. load the route snapshot and reject the request (``NotFoundError``,
   ``ConflictingAssignmentError``, ``InvalidTransitionError``) before
   anything is written;
2. build the proposed stop list and diff it against the snapshot;
3. write the route (the primary write, never rolled back);
4. run the cascades of every detected event, in order, through
   :class:`routesync._cascade.CascadeWriter`;
5. record audit entries and the tracking timeline.

The bulk path (:meth:`RouteLifecycle.update_route`) and the single-stop
path (:meth:`RouteLifecycle.update_stop`) both end in
``_apply_stop_changes`` so the same stop change produces the same state
whichever way it arrives.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Sequence
from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from routesync._cascade import CascadeFailure, CascadeWriter
from routesync.audit import AuditSink, InMemoryAuditSink
from routesync.checklists import with_default_checklists
from routesync.config import EngineConfig
from routesync.exceptions import InvalidTransitionError, NotFoundError
from routesync.expenses import ExpenseSideEffect, MaintenanceExpenseService
from routesync.guard import DriverAssignmentGuard
from routesync.models import (
    Actor,
    ChecklistItem,
    Driver,
    GeoPoint,
    Route,
    RouteState,
    RouteStatus,
    Stop,
    StopPhoto,
    StopStatus,
    StopType,
    Truck,
    utcnow,
)
from routesync.reconcile import ReconcileEntity, Reconciler, ReconcileResult
from routesync.status import (
    CascadeContext,
    CascadePlan,
    RouteEvent,
    StopTransition,
    advance_next_stop,
    compute_cascade,
    diff_stops,
    new_photos,
    newly_checked_items,
    resequence,
    stop_events,
    validate_stops,
)
from routesync.stores import EntityStores, stops_reference
from routesync.tracking import InMemoryTrackingRecorder, TrackingRecorder

_logger = logging.getLogger(__name__)

__all__ = [
    "CascadeFailure",
    "OperationResult",
    "RouteAction",
    "RouteLifecycle",
    "StopUpdate",
]


class RouteAction(StrEnum):
    START = "start"
    STOP = "stop"
    RESUME = "resume"
    COMPLETE = "complete"


class StopUpdate(BaseModel):
    """Fields a caller may change on one stop; ``None`` leaves a field as it is."""

    model_config = ConfigDict(frozen=True)

    status: StopStatus | None = None
    checklist: list[ChecklistItem] | None = None
    notes: str | None = None
    photos: list[StopPhoto] | None = None


class OperationResult(BaseModel):
    """Outcome of a lifecycle operation.

    ``warnings`` lists the downstream writes that failed; the route state
    in ``route`` is committed either way.
    """

    model_config = ConfigDict(frozen=True)

    route: Route
    events: list[RouteEvent] = Field(default_factory=list)
    audit_id: str | None = None
    warnings: list[CascadeFailure] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.warnings

    def merged(self, other: OperationResult) -> OperationResult:
        return OperationResult(
            route=other.route,
            events=[*self.events, *other.events],
            audit_id=self.audit_id or other.audit_id,
            warnings=[*self.warnings, *other.warnings],
        )


_JOB_STOP_FIELDS: dict[StopType, tuple[str, str]] = {
    StopType.PICKUP: ("pickup_checklist", "pickup_photos"),
    StopType.DROP: ("delivery_checklist", "delivery_photos"),
}


class RouteLifecycle:
    """Applies route and stop mutations and keeps dependent entities in step."""

    def __init__(
        self,
        stores: EntityStores,
        *,
        audit: AuditSink | None = None,
        tracking: TrackingRecorder | None = None,
        expenses: ExpenseSideEffect | None = None,
        guard: DriverAssignmentGuard | None = None,
        config: EngineConfig | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._stores = stores
        self._audit: AuditSink = audit if audit is not None else InMemoryAuditSink()
        self._tracking: TrackingRecorder = tracking if tracking is not None else InMemoryTrackingRecorder()
        self._expenses: ExpenseSideEffect = expenses if expenses is not None else MaintenanceExpenseService(stores)
        self._guard = guard or DriverAssignmentGuard()
        self._config = config or EngineConfig()
        self._clock = clock
        self._reconciler = Reconciler(stores)

    @property
    def config(self) -> EngineConfig:
        return self._config

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def _load_route(self, route_id: str) -> Route:
        route = await self._stores.routes.find_by_id(route_id)
        if route is None:
            raise NotFoundError(f"Route {route_id} not found", entity_type="route", entity_id=route_id)
        return route

    async def _load_driver(self, driver_id: str | None) -> Driver | None:
        if not driver_id:
            return None
        driver = await self._stores.drivers.find_by_id(driver_id)
        if driver is None:
            raise NotFoundError(f"Driver {driver_id} not found", entity_type="driver", entity_id=driver_id)
        return driver

    async def _load_truck(self, truck_id: str | None) -> Truck | None:
        if not truck_id:
            return None
        truck = await self._stores.trucks.find_by_id(truck_id)
        if truck is None:
            raise NotFoundError(f"Truck {truck_id} not found", entity_type="truck", entity_id=truck_id)
        return truck

    async def _require_jobs(self, job_ids: Iterable[str]) -> None:
        for job_id in job_ids:
            job = await self._stores.transport_jobs.find_by_id(job_id)
            if job is None or job.is_deleted:
                raise NotFoundError(
                    f"Transport job {job_id} not found",
                    entity_type="transport_job",
                    entity_id=job_id,
                )

    async def _context(
        self,
        route: Route,
        *,
        job_ids: Sequence[str] = (),
        transitions: Sequence[StopTransition] = (),
    ) -> CascadeContext:
        ids = list(
            dict.fromkeys(
                [*job_ids, *(t.transport_job_id for t in transitions if t.transport_job_id)],
            )
        )
        jobs = {}
        for job_id in ids:
            job = await self._stores.transport_jobs.find_by_id(job_id)
            if job is not None:
                jobs[job_id] = job

        vehicles = {}
        for vehicle_id in {job.vehicle_id for job in list(jobs.values()) if job.vehicle_id}:
            try:
                vehicle = await self._stores.vehicles.find_by_id(vehicle_id)
                siblings = await self._stores.transport_jobs.find({"vehicle_id": vehicle_id, "is_deleted": False})
            except Exception:
                _logger.warning("Vehicle %s snapshot unavailable for route %s", vehicle_id, route.id, exc_info=True)
                continue
            if vehicle is not None:
                vehicles[vehicle_id] = vehicle
            for sibling in siblings:
                jobs.setdefault(sibling.id, sibling)

        job_stops: dict[str, list[Stop]] = {}
        for job_id in ids:
            stops = list(route.stops_for_job(job_id))
            for other in await self._stores.routes.find({"stops": stops_reference(job_id)}):
                if other.id != route.id and other.status != RouteStatus.CANCELLED:
                    stops.extend(other.stops_for_job(job_id))
            job_stops[job_id] = stops

        truck = await self._stores.trucks.find_by_id(route.truck_id) if route.truck_id else None
        driver = await self._stores.drivers.find_by_id(route.driver_id) if route.driver_id else None
        return CascadeContext(
            route=route,
            transitions=list(transitions),
            job_ids=ids,
            jobs=jobs,
            job_stops=job_stops,
            vehicles=vehicles,
            truck=truck,
            driver=driver,
        )

    # ------------------------------------------------------------------
    # Cascades, audit and tracking
    # ------------------------------------------------------------------

    def _writer(self, route_id: str, actor: Actor) -> CascadeWriter:
        return CascadeWriter(
            self._stores,
            self._audit,
            self._expenses,
            self._config,
            route_id=route_id,
            actor_id=actor.id,
            clock=self._clock,
        )

    async def _cascade(
        self,
        writer: CascadeWriter,
        event: RouteEvent,
        route: Route,
        *,
        job_ids: Sequence[str] = (),
        transitions: Sequence[StopTransition] = (),
    ) -> CascadePlan | None:
        context = await writer.attempt(
            "load_context",
            "route",
            route.id,
            lambda: self._context(route, job_ids=job_ids, transitions=transitions),
        )
        if context is None:
            return None
        plan = compute_cascade(event, context)
        _logger.debug(
            "Cascade %s on route %s: jobs=%s vehicles=%s truck=%s driver=%s",
            event,
            route.id,
            plan.job_targets,
            [change.vehicle_id for change in plan.vehicles],
            plan.truck.status if plan.truck else None,
            plan.driver.current_route_id if plan.driver else "-",
        )
        await writer.apply(plan)
        if plan.trigger_expense and self._config.create_maintenance_expense:
            await writer.trigger_expense()
        return plan

    async def _record_location(
        self,
        route_id: str,
        location: GeoPoint | None,
        origin_event_id: str | None,
        *,
        was_active: bool,
        becomes_active: bool,
    ) -> None:
        """Append *location* when the route was, or is becoming, in progress."""
        if location is None or not self._config.track_locations:
            return
        if not (was_active or becomes_active):
            _logger.debug("Location for route %s ignored: route not in progress", route_id)
            return
        await self._tracking.append_location(
            route_id,
            location.latitude,
            location.longitude,
            location.accuracy,
            origin_event_id,
        )

    async def _record_action(
        self,
        action: str,
        route: Route,
        actor: Actor,
        *,
        details: dict[str, Any],
        location: GeoPoint | None,
        notes: str = "",
        track: bool,
    ) -> str | None:
        audit_id = await self._audit.record(action, "route", route.id, actor.id, details, notes, location)
        if track:
            await self._tracking.append_action(route.id, action, location, audit_id, details)
        return audit_id

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def create_route(
        self,
        route: Route,
        *,
        actor: Actor,
        location: GeoPoint | None = None,
    ) -> OperationResult:
        """Insert a new ``Planned`` route and dispatch the jobs its stops reference."""
        if await self._stores.routes.find_by_id(route.id) is not None:
            raise InvalidTransitionError(f"Route {route.id} already exists")
        await self._load_driver(route.driver_id)
        await self._load_truck(route.truck_id)

        stops = [stop.model_copy(update={"status": StopStatus.PENDING, "completed_at": None}) for stop in route.stops]
        if self._config.apply_default_checklists:
            stops = with_default_checklists(stops)
        stops = [self._clip_notes(stop) for stop in stops]
        validate_stops(stops)

        created = route.model_copy(
            update={
                "status": RouteStatus.PLANNED,
                "state": None,
                "stops": sorted(stops, key=lambda stop: stop.sequence),
                "actual_start_at": None,
                "actual_end_at": None,
                "last_updated_by": actor.id,
            }
        )
        stop_job_ids = [job_id for job_id in dict.fromkeys(s.transport_job_id for s in created.sorted_stops()) if job_id]
        await self._require_jobs(stop_job_ids)
        if stop_job_ids:
            created = created.model_copy(
                update={"selected_transport_jobs": list(dict.fromkeys([*created.selected_transport_jobs, *stop_job_ids]))},
            )

        await self._stores.routes.insert(created)
        _logger.info("Route %s created with %d stops", created.id, len(created.stops))

        writer = self._writer(created.id, actor)
        events = [RouteEvent.ROUTE_CREATED]
        await self._cascade(writer, RouteEvent.ROUTE_CREATED, created)
        if stop_job_ids:
            events.append(RouteEvent.STOPS_ATTACHED)
            await self._cascade(writer, RouteEvent.STOPS_ATTACHED, created, job_ids=stop_job_ids)

        audit_id = await self._audit.record(
            "create_route",
            "route",
            created.id,
            actor.id,
            {"route_number": created.route_number, "stops": len(created.stops), "transport_jobs": stop_job_ids},
            "",
            location,
        )
        return OperationResult(route=created, events=events, audit_id=audit_id, warnings=writer.failures)

    async def attach_stops_and_jobs(
        self,
        route_id: str,
        stops: Sequence[Stop],
        *,
        actor: Actor,
        location: GeoPoint | None = None,
    ) -> OperationResult:
        """Append *stops* after the existing ones and dispatch the jobs they reference."""
        route = await self._load_route(route_id)
        self._guard.authorize(route, actor)
        if route.is_closed:
            raise InvalidTransitionError(f"Cannot attach stops to {route.status} route {route.id}")

        next_sequence = max((stop.sequence for stop in route.stops), default=0) + 1
        added = [
            stop.model_copy(
                update={"sequence": next_sequence + offset, "status": StopStatus.PENDING, "completed_at": None},
            )
            for offset, stop in enumerate(sorted(stops, key=lambda stop: stop.sequence))
        ]
        if self._config.apply_default_checklists:
            added = with_default_checklists(added)
        job_ids = [job_id for job_id in dict.fromkeys(stop.transport_job_id for stop in added) if job_id]
        await self._require_jobs(job_ids)

        return await self._apply_stop_changes(
            route,
            [*route.stops, *added],
            actor=actor,
            location=location,
            action="attach_transport_jobs",
            details={"stops": [stop.id for stop in added], "transport_jobs": job_ids},
            extra_fields={"selected_transport_jobs": list(dict.fromkeys([*route.selected_transport_jobs, *job_ids]))},
        )

    async def apply_route_action(
        self,
        route_id: str,
        action: RouteAction | str,
        *,
        actor: Actor,
        location: GeoPoint | None = None,
    ) -> OperationResult:
        route = await self._load_route(route_id)
        self._guard.authorize(route, actor)
        action = RouteAction(action)
        if action == RouteAction.START:
            return await self._start(route, actor=actor, location=location)
        if action == RouteAction.STOP:
            return await self._pause(route, actor=actor, location=location)
        if action == RouteAction.RESUME:
            return await self._resume(route, actor=actor, location=location)
        return await self._complete(route, actor=actor, location=location)

    async def _check_start(self, route: Route) -> None:
        if route.status == RouteStatus.IN_PROGRESS:
            raise InvalidTransitionError(f"Route {route.id} is already in progress")
        if route.is_closed:
            raise InvalidTransitionError(f"Cannot start {route.status} route {route.id}")
        if not route.driver_id:
            raise InvalidTransitionError(f"Route {route.id} has no driver assigned")
        driver = await self._load_driver(route.driver_id)
        truck = await self._load_truck(route.truck_id)
        self._guard.check_start(route, driver, truck)

    async def _start(self, route: Route, *, actor: Actor, location: GeoPoint | None) -> OperationResult:
        await self._check_start(route)

        stops = route.sorted_stops()
        if self._config.auto_advance_stops:
            stops = advance_next_stop(stops)
        validate_stops(stops)
        started = await self._stores.routes.update(
            route.id,
            {
                "status": RouteStatus.IN_PROGRESS,
                "state": RouteState.STARTED,
                "actual_start_at": self._clock(),
                "stops": stops,
                "last_updated_by": actor.id,
            },
        )
        _logger.info("Route %s started by %s", route.id, actor.id)

        writer = self._writer(route.id, actor)
        await self._cascade(writer, RouteEvent.ROUTE_STARTED, started)

        audit_id = await self._audit.record(
            "start_route",
            "route",
            route.id,
            actor.id,
            {"driver_id": started.driver_id, "truck_id": started.truck_id},
            "",
            location,
        )
        await self._tracking.initialize(route.id, started.driver_id, started.truck_id, audit_id)
        await self._record_location(route.id, location, audit_id, was_active=False, becomes_active=True)
        return OperationResult(
            route=started,
            events=[RouteEvent.ROUTE_STARTED],
            audit_id=audit_id,
            warnings=writer.failures,
        )

    async def _pause(self, route: Route, *, actor: Actor, location: GeoPoint | None) -> OperationResult:
        if route.status != RouteStatus.IN_PROGRESS:
            raise InvalidTransitionError(f"Route {route.id} is not in progress")
        updated = await self._stores.routes.update(
            route.id,
            {"state": RouteState.STOPPED, "last_updated_by": actor.id},
        )
        audit_id = await self._record_action(
            "stop_route", updated, actor, details={"state": RouteState.STOPPED}, location=location, track=True
        )
        await self._record_location(route.id, location, audit_id, was_active=True, becomes_active=True)
        return OperationResult(route=updated, audit_id=audit_id)

    async def _resume(self, route: Route, *, actor: Actor, location: GeoPoint | None) -> OperationResult:
        if route.status != RouteStatus.IN_PROGRESS or route.state != RouteState.STOPPED:
            raise InvalidTransitionError(f"Route {route.id} is not stopped")
        updated = await self._stores.routes.update(
            route.id,
            {"state": RouteState.RESUMED, "last_updated_by": actor.id},
        )
        audit_id = await self._record_action(
            "resume_route", updated, actor, details={"state": RouteState.RESUMED}, location=location, track=True
        )
        await self._record_location(route.id, location, audit_id, was_active=True, becomes_active=True)
        return OperationResult(route=updated, audit_id=audit_id)

    async def _complete(self, route: Route, *, actor: Actor, location: GeoPoint | None) -> OperationResult:
        if route.is_closed:
            raise InvalidTransitionError(f"Route {route.id} is already {route.status}")
        completed = await self._stores.routes.update(
            route.id,
            {
                "status": RouteStatus.COMPLETED,
                "state": RouteState.COMPLETED,
                "actual_end_at": self._clock(),
                "last_updated_by": actor.id,
            },
        )
        _logger.info("Route %s completed by %s", route.id, actor.id)

        writer = self._writer(route.id, actor)
        await self._cascade(writer, RouteEvent.ROUTE_COMPLETED, completed)

        audit_id = await self._audit.record(
            "complete_route",
            "route",
            route.id,
            actor.id,
            {"stops_completed": sum(1 for stop in completed.stops if stop.status == StopStatus.COMPLETED)},
            "",
            location,
        )
        await self._record_location(route.id, location, audit_id, was_active=route.is_active, becomes_active=False)
        await self._tracking.complete(route.id, audit_id)
        return OperationResult(
            route=completed,
            events=[RouteEvent.ROUTE_COMPLETED],
            audit_id=audit_id,
            warnings=writer.failures,
        )

    async def cancel_route(
        self,
        route_id: str,
        reason: str | None = None,
        *,
        actor: Actor,
        location: GeoPoint | None = None,
    ) -> OperationResult:
        """Cancel the route, return its jobs to dispatch and release the truck.

        The driver's ``current_route_id`` is left as it is;
        reconciliation clears it.
        """
        route = await self._load_route(route_id)
        self._guard.authorize(route, actor)
        if route.is_closed:
            raise InvalidTransitionError(f"Route {route.id} is already {route.status}")

        cancelled = await self._stores.routes.update(
            route.id,
            {"status": RouteStatus.CANCELLED, "last_updated_by": actor.id},
        )
        _logger.info("Route %s cancelled by %s", route.id, actor.id)

        writer = self._writer(route.id, actor)
        await self._cascade(writer, RouteEvent.ROUTE_CANCELLED, cancelled, job_ids=cancelled.job_ids())

        audit_id = await self._audit.record(
            "cancel_route",
            "route",
            route.id,
            actor.id,
            {"reason": reason or "", "transport_jobs": cancelled.job_ids()},
            self._clip(reason or ""),
            location,
        )
        await self._record_location(route.id, location, audit_id, was_active=route.is_active, becomes_active=False)
        return OperationResult(
            route=cancelled,
            events=[RouteEvent.ROUTE_CANCELLED],
            audit_id=audit_id,
            warnings=writer.failures,
        )

    async def update_route(
        self,
        route_id: str,
        *,
        actor: Actor,
        stops: Sequence[Stop] | None = None,
        status: RouteStatus | str | None = None,
        location: GeoPoint | None = None,
    ) -> OperationResult:
        """Bulk update: replace the stop list and/or change the route status.

        Stops are matched by id against the stored ones. A status change
        to ``In Progress``, ``Completed`` or ``Cancelled`` runs the start,
        complete or cancel operation after the stop changes.
        """
        route = await self._load_route(route_id)
        self._guard.authorize(route, actor)
        target = RouteStatus(status) if status is not None else None
        if target == RouteStatus.PLANNED and route.status != RouteStatus.PLANNED:
            raise InvalidTransitionError(f"Route {route.id} cannot return to {RouteStatus.PLANNED}")
        if target == RouteStatus.IN_PROGRESS and not route.is_active:
            await self._check_start(route)

        result: OperationResult | None = None
        if stops is not None:
            existing = {stop.id for stop in route.stops}
            proposed = list(stops)
            if self._config.apply_default_checklists:
                proposed = [
                    stop if stop.id in existing else with_default_checklists([stop])[0]
                    for stop in proposed
                ]
            result = await self._apply_stop_changes(
                route,
                proposed,
                actor=actor,
                location=location,
                action="update_route",
                details={"stops": len(proposed)},
            )
            route = result.route

        if target is not None and target != route.status:
            if target == RouteStatus.IN_PROGRESS:
                follow_up = await self._start(route, actor=actor, location=location)
            elif target == RouteStatus.COMPLETED:
                follow_up = await self._complete(route, actor=actor, location=location)
            else:
                follow_up = await self.cancel_route(route.id, actor=actor, location=location)
            result = result.merged(follow_up) if result is not None else follow_up

        if result is None:
            audit_id = await self._audit.record("update_route", "route", route.id, actor.id, {}, "", location)
            result = OperationResult(route=route, audit_id=audit_id)
        return result

    async def update_stop(
        self,
        route_id: str,
        stop_id: str,
        update: StopUpdate,
        *,
        actor: Actor,
        location: GeoPoint | None = None,
    ) -> OperationResult:
        """Single-stop update; converges on the same diff as :meth:`update_route`."""
        route = await self._load_route(route_id)
        self._guard.authorize(route, actor)
        current = route.stop(stop_id)
        if current is None:
            raise NotFoundError(f"Stop {stop_id} not found on route {route_id}", entity_type="stop", entity_id=stop_id)

        changes = {
            name: value
            for name, value in (
                ("status", update.status),
                ("checklist", update.checklist),
                ("notes", update.notes),
                ("photos", update.photos),
            )
            if value is not None
        }
        proposed = [stop.model_copy(update=changes) if stop.id == stop_id else stop for stop in route.stops]
        return await self._apply_stop_changes(
            route,
            proposed,
            actor=actor,
            location=location,
            action="update_stop",
            details={"stop_id": stop_id, "fields": sorted(changes)},
        )

    async def complete_stop(
        self,
        route_id: str,
        stop_id: str,
        *,
        actor: Actor,
        location: GeoPoint | None = None,
        notes: str | None = None,
        photos: list[StopPhoto] | None = None,
        checklist: list[ChecklistItem] | None = None,
    ) -> OperationResult:
        return await self.update_stop(
            route_id,
            stop_id,
            StopUpdate(status=StopStatus.COMPLETED, notes=notes, photos=photos, checklist=checklist),
            actor=actor,
            location=location,
        )

    async def skip_stop(
        self,
        route_id: str,
        stop_id: str,
        reason: str,
        *,
        actor: Actor,
        location: GeoPoint | None = None,
    ) -> OperationResult:
        """Mark a pickup or drop stop as not done; its transport job is cancelled."""
        reason = (reason or "").strip()
        if not reason:
            raise InvalidTransitionError("A reason is required to skip a stop")
        route = await self._load_route(route_id)
        self._guard.authorize(route, actor)
        current = route.stop(stop_id)
        if current is None:
            raise NotFoundError(f"Stop {stop_id} not found on route {route_id}", entity_type="stop", entity_id=stop_id)
        if not current.is_job_stop:
            raise InvalidTransitionError(f"Only pickup and drop stops can be skipped, got {current.stop_type}")
        if current.status in (StopStatus.COMPLETED, StopStatus.SKIPPED):
            raise InvalidTransitionError(f"Stop {stop_id} is already {current.status}")

        notes = "\n".join(part for part in (current.notes, f"Skipped Reason: {reason}") if part)
        return await self.update_stop(
            route_id,
            stop_id,
            StopUpdate(status=StopStatus.SKIPPED, notes=notes),
            actor=actor,
            location=location,
        )

    async def remove_transport_job(
        self,
        route_id: str,
        job_id: str,
        *,
        actor: Actor,
        location: GeoPoint | None = None,
    ) -> OperationResult:
        """Drop *job_id* and its stops from the route and return the job to dispatch."""
        route = await self._load_route(route_id)
        self._guard.authorize(route, actor)
        if job_id not in route.job_ids():
            raise NotFoundError(
                f"Transport job {job_id} is not on route {route_id}",
                entity_type="transport_job",
                entity_id=job_id,
            )
        if route.is_closed:
            raise InvalidTransitionError(f"Cannot remove jobs from {route.status} route {route.id}")

        remaining = resequence([stop for stop in route.stops if stop.transport_job_id != job_id])
        return await self._apply_stop_changes(
            route,
            remaining,
            actor=actor,
            location=location,
            action="remove_transport_job_from_route",
            details={"transport_job_id": job_id, "stops_removed": len(route.stops) - len(remaining)},
            extra_fields={"selected_transport_jobs": [ref for ref in route.selected_transport_jobs if ref != job_id]},
            removed_jobs=[job_id],
        )

    async def recompute_entity_status(
        self,
        entity_type: ReconcileEntity | str,
        entity_id: str,
        *,
        actor: Actor | None = None,
    ) -> ReconcileResult:
        """Recompute one entity's status from its relations and correct any drift."""
        result = await self._reconciler.recompute(entity_type, entity_id)
        if result.changed:
            await self._audit.record(
                "recompute_status",
                str(result.entity_type),
                entity_id,
                actor.id if actor is not None else None,
                {"before": result.before, "after": result.after},
            )
        return result

    # ------------------------------------------------------------------
    # Shared stop-change path
    # ------------------------------------------------------------------

    def _clip(self, text: str) -> str:
        return text[: self._config.max_note_length]

    def _clip_notes(self, stop: Stop) -> Stop:
        if len(stop.notes) <= self._config.max_note_length:
            return stop
        return stop.model_copy(update={"notes": self._clip(stop.notes)})

    async def _apply_stop_changes(
        self,
        route: Route,
        proposed: Sequence[Stop],
        *,
        actor: Actor,
        location: GeoPoint | None,
        action: str,
        details: dict[str, Any],
        extra_fields: dict[str, Any] | None = None,
        removed_jobs: Sequence[str] = (),
    ) -> OperationResult:
        now = self._clock()
        old_by_id = {stop.id: stop for stop in route.stops}
        stops = [self._clip_notes(stop) for stop in proposed]

        stops = [
            stop.model_copy(update={"completed_at": now})
            if stop.status == StopStatus.COMPLETED and stop.completed_at is None
            else stop
            for stop in stops
        ]
        first_pass = diff_stops(route.stops, stops)
        if route.is_closed and any(t.new_status is not None and t.old_status is not None for t in first_pass):
            raise InvalidTransitionError(f"Cannot change stop status on {route.status} route {route.id}")

        progressed = any(t.became_completed or t.became_skipped for t in first_pass)
        if self._config.auto_advance_stops and not route.is_closed and (progressed or route.is_active):
            stops = advance_next_stop(stops)
        else:
            stops = sorted(stops, key=lambda stop: stop.sequence)
        validate_stops(stops)
        transitions = diff_stops(route.stops, stops)

        old_jobs = {stop.transport_job_id for stop in route.stops if stop.transport_job_id}
        new_jobs = {stop.transport_job_id for stop in stops if stop.transport_job_id}
        detached = list(dict.fromkeys([*removed_jobs, *sorted(old_jobs - new_jobs)]))
        attached = [job_id for job_id in dict.fromkeys(s.transport_job_id for s in stops) if job_id and job_id not in old_jobs]
        if attached:
            await self._require_jobs(attached)

        completes_route = (
            not route.is_closed
            and bool(stops)
            and all(stop.status == StopStatus.COMPLETED for stop in stops)
        )

        fields: dict[str, Any] = {"stops": stops, "last_updated_by": actor.id}
        fields.update(extra_fields or {})
        if detached:
            selected = fields.get("selected_transport_jobs", route.selected_transport_jobs)
            fields["selected_transport_jobs"] = [job_id for job_id in selected if job_id not in detached]
        if completes_route:
            fields.update(
                {
                    "status": RouteStatus.COMPLETED,
                    "state": RouteState.COMPLETED,
                    "actual_end_at": now,
                }
            )
        updated = await self._stores.routes.update(route.id, fields)

        writer = self._writer(route.id, actor)
        await self._sync_job_documents(writer, old_by_id, stops)

        events: list[RouteEvent] = []
        if detached:
            events.append(RouteEvent.JOB_REMOVED)
            await self._cascade(writer, RouteEvent.JOB_REMOVED, updated, job_ids=detached)
        if attached:
            events.append(RouteEvent.STOPS_ATTACHED)
            await self._cascade(writer, RouteEvent.STOPS_ATTACHED, updated, job_ids=attached)
        for event, grouped in stop_events(transitions):
            events.append(event)
            await self._cascade(writer, event, updated, transitions=grouped)
        if completes_route:
            events.append(RouteEvent.ROUTE_COMPLETED)
            await self._cascade(writer, RouteEvent.ROUTE_COMPLETED, updated)

        was_active = route.is_active
        track = was_active or updated.is_active
        audit_id = await self._audit.record(action, "route", route.id, actor.id, details, "", location)
        await self._record_location(route.id, location, audit_id, was_active=was_active, becomes_active=updated.is_active)
        await self._record_stop_activity(updated, old_by_id, transitions, actor=actor, location=location, track=track)

        if completes_route:
            complete_id = await self._audit.record(
                "complete_route",
                "route",
                route.id,
                actor.id,
                {"stops_completed": len(stops), "derived": True},
                "",
                location,
            )
            await self._tracking.complete(route.id, complete_id)

        _logger.debug("Route %s %s: events=%s warnings=%d", route.id, action, events, len(writer.failures))
        return OperationResult(route=updated, events=events, audit_id=audit_id, warnings=writer.failures)

    async def _sync_job_documents(
        self,
        writer: CascadeWriter,
        old_by_id: dict[str, Stop],
        stops: Sequence[Stop],
    ) -> None:
        """Copy pickup/drop checklists and vehicle photos onto their transport jobs."""
        updates: dict[str, dict[str, Any]] = {}
        for stop in stops:
            if stop.stop_type not in _JOB_STOP_FIELDS or not stop.transport_job_id:
                continue
            checklist_field, photos_field = _JOB_STOP_FIELDS[stop.stop_type]
            old = old_by_id.get(stop.id)
            job_update = updates.setdefault(stop.transport_job_id, {})
            if old is not None and old.checklist != stop.checklist:
                job_update[checklist_field] = stop.checklist
            if stop.status == StopStatus.COMPLETED and (old is None or old.status != StopStatus.COMPLETED):
                job_update[photos_field] = [photo.url for photo in stop.photos if photo.photo_type == "vehicle"]

        for job_id, job_update in updates.items():
            if not job_update:
                continue
            await writer.attempt(
                "transport_job_documents",
                "transport_job",
                job_id,
                lambda job_id=job_id, job_update=job_update: self._stores.transport_jobs.update(job_id, job_update),
            )

    async def _record_stop_activity(
        self,
        route: Route,
        old_by_id: dict[str, Stop],
        transitions: Sequence[StopTransition],
        *,
        actor: Actor,
        location: GeoPoint | None,
        track: bool,
    ) -> None:
        for transition in transitions:
            stop_details = {
                "stop_id": transition.stop_id,
                "stop_type": transition.stop_type,
                "transport_job_id": transition.transport_job_id,
            }
            if transition.became_completed:
                await self._record_action(
                    "mark_stop_completed", route, actor, details=stop_details, location=location, track=track
                )
            elif transition.became_skipped:
                stop = route.stop(transition.stop_id)
                await self._record_action(
                    "skip_stop",
                    route,
                    actor,
                    details=stop_details,
                    location=location,
                    notes=stop.notes if stop is not None else "",
                    track=track,
                )

        for stop in route.sorted_stops():
            old = old_by_id.get(stop.id)
            for photo in new_photos(old, stop):
                await self._record_action(
                    "upload_stop_photo",
                    route,
                    actor,
                    details={"stop_id": stop.id, "photo_type": photo.photo_type, "url": photo.url},
                    location=location,
                    track=track,
                )
            if old is None:
                continue
            for item in newly_checked_items(old, stop):
                await self._record_action(
                    "complete_checklist_item",
                    route,
                    actor,
                    details={"stop_id": stop.id, "item": item},
                    location=location,
                    track=track,
                )
