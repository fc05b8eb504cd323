"""Audit sink boundary.

Every mutating action is written to an append-only audit log with its
actor, time and free-form details. The engine only ever writes to it; the
identifier returned by :meth:`AuditSink.record` becomes the
``origin_event_id`` of the tracking entries the action produces.
"""

from __future__ import annotations

import logging
import secrets
from collections.abc import Callable, Mapping
from datetime import datetime
from typing import Any, Protocol

from pydantic import Field

from routesync._redact import redact_for_log
from routesync.models import EntityId, GeoPoint, Ref, RouteSyncBaseModel, utcnow

_logger = logging.getLogger(__name__)


def new_entry_id() -> str:
    """24-hex identifier, the same shape as document-store object ids."""
    return secrets.token_hex(12)


class AuditEntry(RouteSyncBaseModel):
    id: EntityId
    action: str
    entity_type: str
    entity_id: str
    actor_id: Ref = None
    details: dict[str, Any] = Field(default_factory=dict)
    notes: str = ""
    location: GeoPoint | None = None
    created_at: datetime = Field(default_factory=utcnow)


class AuditSink(Protocol):
    """Append-only audit log. Implementations must never raise."""

    async def record(
        self,
        action: str,
        entity_type: str,
        entity_id: str,
        actor_id: str | None,
        details: Mapping[str, Any] | None = None,
        notes: str = "",
        location: GeoPoint | None = None,
    ) -> str | None: ...


class InMemoryAuditSink:
    """List-backed :class:`AuditSink`; returns ``None`` when an entry cannot be stored."""

    def __init__(self, *, clock: Callable[[], datetime] = utcnow) -> None:
        self._clock = clock
        self.entries: list[AuditEntry] = []

    async def record(
        self,
        action: str,
        entity_type: str,
        entity_id: str,
        actor_id: str | None,
        details: Mapping[str, Any] | None = None,
        notes: str = "",
        location: GeoPoint | None = None,
    ) -> str | None:
        try:
            entry = AuditEntry(
                id=new_entry_id(),
                action=action,
                entity_type=entity_type,
                entity_id=entity_id,
                actor_id=actor_id,
                details=dict(details or {}),
                notes=notes,
                location=location,
                created_at=self._clock(),
            )
        except Exception:
            _logger.warning("Dropping invalid audit entry action=%s entity=%s", action, entity_id, exc_info=True)
            return None
        self.entries.append(entry)
        _logger.debug(
            "Audit %s %s=%s actor=%s details=%s",
            action,
            entity_type,
            entity_id,
            actor_id,
            redact_for_log(entry.details),
        )
        return entry.id

    def actions(self, entity_id: str | None = None) -> list[str]:
        return [entry.action for entry in self.entries if entity_id is None or entry.entity_id == entity_id]
