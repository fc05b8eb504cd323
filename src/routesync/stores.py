"""Entity store boundary and the deterministic in-memory implementation.

The engine talks to persistence only through :class:`EntityStore`. Every
method is a coroutine because real backends block on I/O; the in-memory
store never suspends but keeps the same contract, including deep copies
so callers can never mutate stored state through a returned snapshot.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any, Generic, Protocol, TypeVar

from routesync.exceptions import NotFoundError
from routesync.models import Driver, Expense, Route, RouteSyncBaseModel, TransportJob, Truck, Vehicle

_logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=RouteSyncBaseModel)


class EntityStore(Protocol[ModelT]):
    """Persistent collection of one entity type."""

    entity_type: str

    async def find_by_id(self, entity_id: str) -> ModelT | None: ...

    async def update(self, entity_id: str, fields: Mapping[str, Any]) -> ModelT: ...

    async def find(self, filter: Mapping[str, Any] | None = None) -> list[ModelT]: ...

    async def insert(self, entity: ModelT) -> ModelT: ...


def _matches(entity: RouteSyncBaseModel, filter: Mapping[str, Any]) -> bool:
    """Filter semantics: a callable value is a predicate, anything else must compare equal."""
    for key, expected in filter.items():
        actual = getattr(entity, key, None)
        if callable(expected):
            if not expected(actual):
                return False
        elif actual != expected:
            return False
    return True


class InMemoryEntityStore(Generic[ModelT]):
    """Dictionary-backed :class:`EntityStore`.

    ``update`` re-validates the merged document through the model, so a
    partial update can never leave an entity in a shape its model rejects.
    """

    def __init__(self, model: type[ModelT], entity_type: str, items: Iterable[ModelT] = ()) -> None:
        self._model = model
        self.entity_type = entity_type
        self._items: dict[str, ModelT] = {}
        for item in items:
            self._items[item.id] = item.model_copy(deep=True)  # type: ignore[attr-defined]

    def get(self, entity_id: str) -> ModelT | None:
        """Synchronous snapshot accessor for scripts and tests."""
        item = self._items.get(entity_id)
        return item.model_copy(deep=True) if item is not None else None

    def all(self) -> list[ModelT]:
        return [item.model_copy(deep=True) for item in self._items.values()]

    async def find_by_id(self, entity_id: str) -> ModelT | None:
        return self.get(entity_id)

    async def update(self, entity_id: str, fields: Mapping[str, Any]) -> ModelT:
        current = self._items.get(entity_id)
        if current is None:
            raise NotFoundError(
                f"{self.entity_type} {entity_id} not found",
                entity_type=self.entity_type,
                entity_id=entity_id,
            )
        unknown = set(fields) - set(self._model.model_fields)
        if unknown:
            raise ValueError(f"Unknown {self.entity_type} fields: {sorted(unknown)}")

        merged = current.model_dump()
        merged.update(fields)
        updated = self._model.model_validate(merged)
        self._items[entity_id] = updated.model_copy(deep=True)
        _logger.debug("%s %s updated fields=%s", self.entity_type, entity_id, sorted(fields))
        return updated

    async def find(self, filter: Mapping[str, Any] | None = None) -> list[ModelT]:
        criteria = filter or {}
        return [item.model_copy(deep=True) for item in self._items.values() if _matches(item, criteria)]

    async def insert(self, entity: ModelT) -> ModelT:
        entity_id: str = entity.id  # type: ignore[attr-defined]
        if entity_id in self._items:
            raise ValueError(f"{self.entity_type} {entity_id} already exists")
        self._items[entity_id] = entity.model_copy(deep=True)
        return entity


@dataclass
class EntityStores:
    """The stores the engine reads and writes."""

    vehicles: EntityStore[Vehicle]
    transport_jobs: EntityStore[TransportJob]
    routes: EntityStore[Route]
    trucks: EntityStore[Truck]
    drivers: EntityStore[Driver]
    expenses: EntityStore[Expense] = field(
        default_factory=lambda: InMemoryEntityStore(Expense, "expense"),
    )

    @classmethod
    def in_memory(
        cls,
        *,
        vehicles: Iterable[Vehicle] = (),
        transport_jobs: Iterable[TransportJob] = (),
        routes: Iterable[Route] = (),
        trucks: Iterable[Truck] = (),
        drivers: Iterable[Driver] = (),
        expenses: Iterable[Expense] = (),
    ) -> EntityStores:
        return cls(
            vehicles=InMemoryEntityStore(Vehicle, "vehicle", vehicles),
            transport_jobs=InMemoryEntityStore(TransportJob, "transport_job", transport_jobs),
            routes=InMemoryEntityStore(Route, "route", routes),
            trucks=InMemoryEntityStore(Truck, "truck", trucks),
            drivers=InMemoryEntityStore(Driver, "driver", drivers),
            expenses=InMemoryEntityStore(Expense, "expense", expenses),
        )


def stops_reference(job_id: str) -> Callable[[Any], bool]:
    """Predicate for ``routes.find({"stops": ...})``: any stop carries *job_id*."""

    def _predicate(stops: Any) -> bool:
        return any(getattr(stop, "transport_job_id", None) == job_id for stop in stops or ())

    return _predicate
