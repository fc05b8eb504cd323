"""Base model, status enum and reference type shared by all entities.

Every entity model inherits from :class:`RouteSyncBaseModel` which
provides:

* ``alias_generator=to_camel`` so camelCase document keys map
  automatically to snake_case fields.
* A ``model_validator(mode="before")`` that maps the document-store
  ``_id`` key onto ``id``.
* ``frozen=True``: stores hand out snapshots, changes go through
  ``EntityStore.update``.

Relation fields use :data:`Ref`, which collapses an embedded document or
model into its identifier exactly once, at load time.

Status enums inherit from :class:`StatusEnum`, a ``StrEnum`` whose
``_missing_`` hook accepts case, space, hyphen and underscore variants of
a member value or name.
"""

from __future__ import annotations

import enum
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict, model_validator
from pydantic.alias_generators import to_camel

_FOLD_DROP = str.maketrans("", "", " _-–")


def utcnow() -> datetime:
    return datetime.now(UTC)


def _fold(value: str) -> str:
    return value.translate(_FOLD_DROP).lower()


def coerce_ref(value: Any) -> str | None:
    """Normalize a relation field to a plain identifier.

    Accepts a raw identifier, an embedded document (``{"_id": ...}`` or
    ``{"id": ...}``) or a model instance carrying an ``id`` attribute.
    """
    if value is None:
        return None
    if isinstance(value, BaseModel):
        value = getattr(value, "id", None)
    elif isinstance(value, Mapping):
        value = value.get("_id") or value.get("id")
    if value is None:
        return None
    ref = str(value).strip()
    return ref or None


def _coerce_id(value: Any) -> Any:
    if value is None or isinstance(value, str):
        return value
    return str(value)


Ref = Annotated[str | None, BeforeValidator(coerce_ref)]
"""Annotated type for relation fields: always an identifier or ``None``."""

EntityId = Annotated[str, BeforeValidator(_coerce_id)]
"""Annotated type for an entity's own identifier (ObjectId-like values become strings)."""


class StatusEnum(enum.StrEnum):
    """Base for entity status enums.

    Member values are the display strings stored in documents. Lookups
    that miss an exact value fall back to a folded comparison against
    every member value and name, so ``"in_progress"`` resolves to
    ``"In Progress"``.
    """

    @classmethod
    def _missing_(cls, value: object) -> StatusEnum | None:
        if not isinstance(value, str):
            return None
        key = _fold(value)
        for member in cls:
            if _fold(member.value) == key or _fold(member.name) == key:
                return member
        return None


class RouteSyncBaseModel(BaseModel):
    """Base for routesync entity models."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    @model_validator(mode="before")
    @classmethod
    def _map_document_id(cls, values: Any) -> Any:
        if not isinstance(values, dict):
            return values
        if "_id" in values and "id" not in values:
            working = dict(values)
            working["id"] = working.pop("_id")
            return working
        return values
