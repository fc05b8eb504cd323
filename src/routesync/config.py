"""Engine configuration for routesync."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from routesync.exceptions import RouteSyncConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


@dataclasses.dataclass(frozen=True)
class EngineConfig:
    """Behaviour switches for :class:`routesync.lifecycle.RouteLifecycle`.

    Parameters
    ----------
    auto_advance_stops : bool
        Move the next pending stop to ``In Progress`` when a route starts
        or a stop completes and no other stop is active.
    track_locations : bool
        Append client-reported coordinates to the route timeline.
    create_maintenance_expense : bool
        Trigger the maintenance-expense side effect on route completion.
    apply_default_checklists : bool
        Fill stops that arrive without a checklist with the defaults for
        their stop type.
    audit_cascade_failures : bool
        Record a ``cascade_failure`` audit entry for every failed
        downstream write (failures are always logged).
    max_note_length : int
        Stop notes are truncated to this many characters.
    """

    auto_advance_stops: bool = True
    track_locations: bool = True
    create_maintenance_expense: bool = True
    apply_default_checklists: bool = True
    audit_cascade_failures: bool = True
    max_note_length: int = 2000

    def __post_init__(self) -> None:
        if self.max_note_length <= 0:
            raise RouteSyncConfigError("max_note_length must be positive")

    @classmethod
    def from_env(cls, **overrides: Any) -> EngineConfig:
        """Create configuration from ``ROUTESYNC_*`` environment variables.

        Explicit keyword arguments override environment values.
        """
        env = os.environ

        _ENV_BOOL_MAP = {
            "ROUTESYNC_AUTO_ADVANCE_STOPS": ("auto_advance_stops", True),
            "ROUTESYNC_TRACK_LOCATIONS": ("track_locations", True),
            "ROUTESYNC_CREATE_MAINTENANCE_EXPENSE": ("create_maintenance_expense", True),
            "ROUTESYNC_APPLY_DEFAULT_CHECKLISTS": ("apply_default_checklists", True),
            "ROUTESYNC_AUDIT_CASCADE_FAILURES": ("audit_cascade_failures", True),
        }
        config_kwargs: dict[str, Any] = {}
        for env_key, (field_name, default) in _ENV_BOOL_MAP.items():
            if field_name not in overrides:
                config_kwargs[field_name] = _env_bool(env.get(env_key), default)

        note_env = env.get("ROUTESYNC_MAX_NOTE_LENGTH")
        if note_env is not None and "max_note_length" not in overrides:
            try:
                config_kwargs["max_note_length"] = int(note_env)
            except ValueError as exc:
                raise RouteSyncConfigError(f"ROUTESYNC_MAX_NOTE_LENGTH must be an integer, got {note_env!r}") from exc

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
