from __future__ import annotations

import re
import sys
from datetime import timedelta
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from automod.commands import InspectionCommands, new_error_id, oneliner_graph, warning_label
from automod.interfaces import WarningState
from fakes import build_moderator, grid_sample, iterate


def tracked_commands():
    h = build_moderator()
    h.world.add_grid(10)
    h.profiler.push(grids=[grid_sample(10, 0.8, owner_id=1)])
    iterate(h.moderator, 1)
    responses = []
    return InspectionCommands(h.moderator, responses.append), responses, h


def test_oneliner_graph():
    assert oneliner_graph(10, 1.0, 0.5) == "¦¦¦¦¦''''' 050%"
    assert oneliner_graph(4, 1.0, 2.0, show_label=False) == "¦¦¦¦"
    assert oneliner_graph(4, 1.0, float("nan")) == "'''' 000%"


def test_error_id_is_six_digits():
    assert re.fullmatch(r"\d{6}", new_error_id())


def test_overview_lists_tracked_entities_and_warns_when_idle():
    commands, responses, _ = tracked_commands()

    message = commands.inspect()

    assert responses[0].startswith("WARNING: idle mode")
    assert "No players" in message
    assert "Grids:" in message
    assert "<warn> grid-10" in message


def test_inspect_single_entity():
    commands, _, _ = tracked_commands()

    message = commands.inspect(entity_id=10, show_outliers=True)

    assert "grid-10 (10)" in message
    assert "Owner: player-1 (1)" in message
    assert "Lag (evaluated): 80%" in message
    assert "Warning: needs_self_check (Normal: 80%)" in message
    assert "000 ¦" in message


def test_inspect_unknown_name():
    commands, _, _ = tracked_commands()

    assert commands.inspect(name="ghost") == "Entity not tracked by name: ghost"
    assert commands.inspect(entity_id=99) == "Entity not tracked: 99"


def test_laggiest_by_owner_name():
    commands, _, _ = tracked_commands()

    assert commands.laggiest(owner_name="player-1") == "\"grid-10\" (10) 80%"
    assert commands.laggiest(owner_id=5) == "No laggy grids found"
    assert commands.laggiest(owner_name="nobody") == "Player not found by name: nobody"


def test_self_check_and_clear_warning_drive_warning_state():
    commands, _, h = tracked_commands()

    commands.self_check(1)
    assert h.notifier.states[1] is WarningState.NEEDS_REDUCTION

    commands.clear_warning(1)
    assert h.notifier.states[1] is WarningState.CLEARED


def test_unexpected_failure_is_reported_with_error_id(caplog, monkeypatch):
    commands, responses, h = tracked_commands()

    def broken():
        raise RuntimeError("internal detail")

    monkeypatch.setattr(h.moderator, "clear_cache", broken)
    message = commands.clear()

    assert re.fullmatch(r"Oops, something broke\. #\d{6}\.", message)
    assert responses[-1] == message
    assert "internal detail" not in message
    assert "command clear failed" in caplog.text


def test_warning_label():
    commands, _, h = tracked_commands()
    grid = h.moderator.get_entity(10)

    assert warning_label(grid, None) == "<ok>"
    assert warning_label(grid, WarningState.NEEDS_REDUCTION) == "<warn>"
    assert grid.pin_remaining == timedelta(0)
    assert warning_label(grid, WarningState.MUST_WAIT_OUT_PIN) == "<punish:0sec>"
