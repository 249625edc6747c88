"""Interactive inspection commands served from the host's command surface.

Every command runs behind :func:`catch_and_report`: unexpected failures are
logged with a short random error id and the caller only sees that id, never
the traceback.
"""
from __future__ import annotations

import functools
import logging
import math
import random
from typing import Callable, List, Optional, TypeVar

from .entity import EntitySnapshot
from .interfaces import WarningState
from .moderator import AutoModerator
from .timeseries import outlier_scores

logger = logging.getLogger(__name__)

Respond = Callable[[str], None]
F = TypeVar("F", bound=Callable[..., Optional[str]])

GRAPH_WIDTH = 30
_FILLED = "¦"
_EMPTY = "'"


def new_error_id() -> str:
    return f"{random.randint(0, 999999):06d}"


def catch_and_report(func: F) -> F:
    """Turn an unexpected exception into an error id sent back to the caller."""

    @functools.wraps(func)
    def wrapper(self: "InspectionCommands", *args, **kwargs):
        try:
            return func(self, *args, **kwargs)
        except Exception:
            error_id = new_error_id()
            logger.exception("command %s failed: #%s", func.__name__, error_id)
            message = f"Oops, something broke. #{error_id}."
            self.respond(message)
            return message

    return wrapper  # type: ignore[return-value]


def oneliner_graph(max_width: int, max_normal: float, normal: float, *, show_label: bool = True) -> str:
    normal = normal if math.isfinite(normal) else 0.0
    graph_normal = min(1.0, max(0.0, normal / max_normal))
    size = min(max_width, int(graph_normal * max_width))
    graph = _FILLED * size + _EMPTY * (max_width - size)
    label = f" {normal * 100:03.0f}%" if show_label else ""
    return f"{graph}{label}"


def warning_label(entity: EntitySnapshot, state: Optional[WarningState]) -> str:
    if state in (WarningState.NEEDS_SELF_CHECK, WarningState.NEEDS_REDUCTION):
        return "<warn>"
    if state is WarningState.MUST_WAIT_OUT_PIN:
        return f"<punish:{entity.pin_remaining.total_seconds():.0f}sec>"
    return "<ok>"


class InspectionCommands:
    """Read-mostly commands over a running :class:`AutoModerator`."""

    def __init__(self, moderator: AutoModerator, respond: Respond) -> None:
        self.moderator = moderator
        self.respond = respond

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------
    @catch_and_report
    def inspect(
        self,
        *,
        entity_id: Optional[int] = None,
        name: Optional[str] = None,
        top: int = 5,
        show_outliers: bool = False,
    ) -> str:
        """Overview of the laggiest entities, or the series of one entity."""

        self._warn_if_idle()

        if name is not None:
            entity = self.moderator.find_entity_by_name(name)
            if entity is None:
                return self._reply(f"Entity not tracked by name: {name}")
            entity_id = entity.entity_id

        if entity_id is not None:
            return self._reply(self._describe_entity(entity_id, show_outliers))

        lines: List[str] = [""]
        players = self.moderator.players.laggiest()
        if players:
            lines.append("Players:")
            lines.extend(self._entity_line(entity) for entity in players)
        else:
            lines.append("No players")

        grids = self.moderator.grids.laggiest()[:top]
        if grids:
            lines.append("Grids:")
            lines.extend(self._entity_line(entity) for entity in grids)
        else:
            lines.append("No grids")

        return self._reply("\n".join(lines))

    @catch_and_report
    def laggiest(self, *, owner_id: Optional[int] = None, owner_name: Optional[str] = None) -> str:
        if owner_name is not None:
            owner_id = self.moderator.find_owner_by_name(owner_name)
            if owner_id is None:
                return self._reply(f"Player not found by name: {owner_name}")
        if owner_id is None:
            return self._reply("Player not specified")

        grid = self.moderator.laggiest_grid_of(owner_id)
        if grid is None:
            return self._reply("No laggy grids found")
        return self._reply(f"\"{grid.name}\" ({grid.entity_id}) {grid.score * 100:.0f}%")

    @catch_and_report
    def self_check(self, owner_id: int) -> str:
        self.moderator.on_self_checked(owner_id)
        return self._reply("Thanks for checking; please reduce the lag of your grids")

    @catch_and_report
    def clear_warning(self, owner_id: int) -> str:
        self.moderator.clear_warning(owner_id)
        return self._reply("Warning cleared")

    @catch_and_report
    def clear(self) -> str:
        self.moderator.clear_cache()
        return self._reply("Cleared all internal state")

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _reply(self, message: str) -> str:
        self.respond(message)
        return message

    def _warn_if_idle(self) -> None:
        if self.moderator.is_idle:
            self.respond("WARNING: idle mode; data may not be accurate")

    def _entity_line(self, entity: EntitySnapshot) -> str:
        record = self.moderator.find_warning_for_entity(entity.entity_id)
        state = self.moderator.warnings.state_of(record.owner_id) if record else None
        graph = oneliner_graph(GRAPH_WIDTH, 1.0, entity.score)
        return f"{graph} {warning_label(entity, state)} {entity.name}"

    def _describe_entity(self, entity_id: int, show_outliers: bool) -> str:
        series = self.moderator.series_of(entity_id)
        entity = self.moderator.get_entity(entity_id)
        if series is None or entity is None:
            return f"Entity not tracked: {entity_id}"
        if not series:
            return "Time series found but empty"

        lines = [
            "",
            f"{entity.name} ({entity.entity_id})",
            f"Owner: {entity.owner_name} ({entity.owner_id})",
        ]
        if entity.is_blessed:
            lines.append("Blessed (just spawned)")
        lines.append(f"Lag (evaluated): {entity.score * 100:.0f}%")
        if entity.is_pinned:
            lines.append(f"Pinned for next {entity.pin_remaining.total_seconds():.0f} seconds")
        else:
            lines.append("Not pinned")

        record = self.moderator.find_warning_for_entity(entity_id)
        if record is not None:
            state = self.moderator.warnings.state_of(record.owner_id)
            lines.append(f"Warning: {state.value if state else None} (Normal: {record.score * 100:.0f}%)")

        values = [point.value for point in series]
        scores = outlier_scores(values)
        for index, (value, score) in enumerate(zip(values, scores)):
            line = f"{index:03d} {oneliner_graph(GRAPH_WIDTH, 1.0, value)}"
            if show_outliers:
                line += " " + oneliner_graph(GRAPH_WIDTH, 3.0, score)
            lines.append(line)

        return "\n".join(lines)


__all__ = ["InspectionCommands", "catch_and_report", "new_error_id", "oneliner_graph", "warning_label"]
