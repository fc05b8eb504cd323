from __future__ import annotations

import pytest

from routesync.config import EngineConfig
from routesync.exceptions import RouteSyncConfigError


def test_defaults_enable_every_side_effect() -> None:
    config = EngineConfig()
    assert config.auto_advance_stops
    assert config.track_locations
    assert config.create_maintenance_expense
    assert config.apply_default_checklists
    assert config.audit_cascade_failures
    assert config.max_note_length == 2000


def test_from_env_reads_bool_and_int_values(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ROUTESYNC_TRACK_LOCATIONS", "off")
    monkeypatch.setenv("ROUTESYNC_CREATE_MAINTENANCE_EXPENSE", "0")
    monkeypatch.setenv("ROUTESYNC_AUTO_ADVANCE_STOPS", "yes")
    monkeypatch.setenv("ROUTESYNC_MAX_NOTE_LENGTH", "500")

    config = EngineConfig.from_env()

    assert not config.track_locations
    assert not config.create_maintenance_expense
    assert config.auto_advance_stops
    assert config.max_note_length == 500


def test_unrecognised_bool_keeps_default(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ROUTESYNC_APPLY_DEFAULT_CHECKLISTS", "maybe")
    assert EngineConfig.from_env().apply_default_checklists


def test_overrides_win_over_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ROUTESYNC_TRACK_LOCATIONS", "false")
    monkeypatch.setenv("ROUTESYNC_MAX_NOTE_LENGTH", "not-a-number")

    config = EngineConfig.from_env(track_locations=True, max_note_length=10)

    assert config.track_locations
    assert config.max_note_length == 10


def test_invalid_note_length(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ROUTESYNC_MAX_NOTE_LENGTH", "lots")
    with pytest.raises(RouteSyncConfigError):
        EngineConfig.from_env()

    with pytest.raises(RouteSyncConfigError):
        EngineConfig(max_note_length=0)
