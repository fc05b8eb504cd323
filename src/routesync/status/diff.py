"""Stop list diffing and the stop-level invariants.

Stops are matched by their mandatory ``id``; sequence numbers may change
between snapshots without producing a transition.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Sequence

from routesync.exceptions import InvalidTransitionError
from routesync.models import Stop, StopPhoto, StopStatus
from routesync.status.events import StopTransition


def _ordered(stops: Sequence[Stop]) -> list[Stop]:
    return sorted(stops, key=lambda stop: stop.sequence)


def diff_stops(old: Sequence[Stop], new: Sequence[Stop]) -> list[StopTransition]:
    """Status transitions from *old* to *new*.

    Returned in the new sequence order, followed by removed stops in
    their old order. Stops whose status did not change are omitted.
    """
    old_by_id = {stop.id: stop for stop in old}
    new_ids = {stop.id for stop in new}
    transitions: list[StopTransition] = []

    for stop in _ordered(new):
        previous = old_by_id.get(stop.id)
        old_status = previous.status if previous is not None else None
        if old_status == stop.status:
            continue
        transitions.append(
            StopTransition(
                stop_id=stop.id,
                stop_type=stop.stop_type,
                transport_job_id=stop.transport_job_id,
                old_status=old_status,
                new_status=stop.status,
            )
        )

    for stop in _ordered(old):
        if stop.id not in new_ids:
            transitions.append(
                StopTransition(
                    stop_id=stop.id,
                    stop_type=stop.stop_type,
                    transport_job_id=stop.transport_job_id,
                    old_status=stop.status,
                    new_status=None,
                )
            )
    return transitions


def newly_checked_items(old: Stop | None, new: Stop) -> list[str]:
    """Checklist items checked in *new* that were not checked in *old*."""
    already = {item.item for item in old.checklist if item.checked} if old is not None else set()
    return [item.item for item in new.checklist if item.checked and item.item not in already]


def new_photos(old: Stop | None, new: Stop) -> list[StopPhoto]:
    known = {photo.url for photo in old.photos} if old is not None else set()
    return [photo for photo in new.photos if photo.url not in known]


def advance_next_stop(stops: Sequence[Stop]) -> list[Stop]:
    """Move the first pending stop to ``In Progress`` when no stop is active.

    Returns the stops in sequence order; unchanged stops are the same
    instances.
    """
    ordered = _ordered(stops)
    if any(stop.status == StopStatus.IN_PROGRESS for stop in ordered):
        return ordered
    for index, stop in enumerate(ordered):
        if stop.status == StopStatus.PENDING:
            ordered[index] = stop.model_copy(update={"status": StopStatus.IN_PROGRESS})
            break
    return ordered


def resequence(stops: Sequence[Stop]) -> list[Stop]:
    """Renumber *stops* 1..n keeping their relative order."""
    result: list[Stop] = []
    for position, stop in enumerate(_ordered(stops), start=1):
        result.append(stop if stop.sequence == position else stop.model_copy(update={"sequence": position}))
    return result


def validate_stops(stops: Sequence[Stop]) -> None:
    """Raise :class:`InvalidTransitionError` when *stops* break a route invariant."""
    duplicate_ids = [stop_id for stop_id, count in Counter(stop.id for stop in stops).items() if count > 1]
    if duplicate_ids:
        raise InvalidTransitionError(f"Duplicate stop ids: {sorted(duplicate_ids)}")

    duplicate_sequences = [seq for seq, count in Counter(stop.sequence for stop in stops).items() if count > 1]
    if duplicate_sequences:
        raise InvalidTransitionError(f"Duplicate stop sequence numbers: {sorted(duplicate_sequences)}")

    active = [stop.id for stop in stops if stop.status == StopStatus.IN_PROGRESS]
    if len(active) > 1:
        raise InvalidTransitionError(f"Only one stop may be in progress, got {active}")

    for stop in stops:
        if stop.is_job_stop and not stop.transport_job_id:
            raise InvalidTransitionError(f"{stop.stop_type} stop {stop.id} requires a transport job")
