from __future__ import annotations

import sys
from datetime import timedelta
from pathlib import Path

import pytest
from pydantic import ValidationError

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from automod.config import AutoModeratorSettings, PunishmentType, get_settings
from fakes import tracker_config


def test_defaults():
    settings = AutoModeratorSettings(_env_file=None)

    assert settings.is_enabled
    assert settings.first_idle_seconds == 180
    assert settings.interval_seconds == 5
    assert settings.max_profiled_entities == 20
    assert settings.punishment_type is PunishmentType.NONE
    assert settings.exempt_part_types == []


def test_environment_lists_and_enums(monkeypatch):
    monkeypatch.setenv("AUTOMOD_EXEMPT_OWNER_IDS", "1, 2")
    monkeypatch.setenv("AUTOMOD_EXEMPT_GROUP_TAGS", "ADM STAFF")
    monkeypatch.setenv("AUTOMOD_EXEMPT_PART_TYPES", "Drill/Small,Reactor")
    monkeypatch.setenv("AUTOMOD_PUNISHMENT_TYPE", "damage")
    monkeypatch.setenv("AUTOMOD_LOG_LEVEL", "debug")

    settings = AutoModeratorSettings(_env_file=None)

    assert settings.exempt_owner_ids == [1, 2]
    assert settings.exempt_group_tags == ["ADM", "STAFF"]
    assert settings.exempt_part_types == ["Drill/Small", "Reactor"]
    assert settings.punishment_type is PunishmentType.DAMAGE
    assert settings.log_level == "DEBUG"


def test_invalid_values_are_rejected():
    with pytest.raises(ValidationError):
        AutoModeratorSettings(_env_file=None, log_level="loud")
    with pytest.raises(ValidationError):
        AutoModeratorSettings(_env_file=None, interval_seconds=0)


def test_tracker_config_per_kind():
    settings = AutoModeratorSettings(
        _env_file=None,
        max_grid_mspf=0.4,
        max_player_mspf=0.8,
        tracking_seconds=60,
        pin_seconds=120,
    )

    grid = settings.tracker_config("grid")
    player = settings.tracker_config("player")

    assert grid.budget_mspf == 0.4
    assert player.budget_mspf == 0.8
    assert grid.tracking_window == timedelta(seconds=60)
    assert grid.pin_duration == timedelta(seconds=120)
    assert grid.min_data_span == timedelta(seconds=55)

    with pytest.raises(ValueError):
        settings.tracker_config("faction")


def test_min_data_span_never_negative():
    assert tracker_config(window=3).min_data_span == timedelta(0)


def test_get_settings_is_cached():
    get_settings.cache_clear()
    try:
        assert get_settings() is get_settings()
    finally:
        get_settings.cache_clear()


def test_interval_longer_than_span_slack_is_rejected(monkeypatch):
    assert AutoModeratorSettings(_env_file=None, interval_seconds=5).interval_seconds == 5

    with pytest.raises(ValidationError, match="interval_seconds must be at most 5"):
        AutoModeratorSettings(_env_file=None, interval_seconds=6)

    monkeypatch.setenv("AUTOMOD_INTERVAL_SECONDS", "7.5")
    with pytest.raises(ValidationError):
        AutoModeratorSettings(_env_file=None)
