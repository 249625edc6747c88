"""Per-owner warning lifecycle."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from threading import RLock
from typing import Dict, Iterable, Optional

from .entity import EntitySnapshot
from .interfaces import WarningNotifier, WarningState

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WarningRecord:
    """Composite of an owner's player entity and worst grid.

    The dominant side (longer pin, else higher score) supplies the entity id,
    score and pin time shown to the owner.
    """

    owner_id: int
    owner_name: str
    entity_id: int
    score: float
    pin_remaining: timedelta

    @classmethod
    def from_entities(
        cls,
        owner_id: int,
        player: Optional[EntitySnapshot],
        grid: Optional[EntitySnapshot],
        *,
        include_pins: bool = True,
    ) -> "WarningRecord":
        owner_name = (player.name if player else None) or (grid.owner_name if grid else None) or f"<{owner_id}>"
        player_score = player.score if player else 0.0
        player_pin = player.pin_remaining if player and include_pins else timedelta(0)
        grid_score = grid.score if grid else 0.0
        grid_pin = grid.pin_remaining if grid and include_pins else timedelta(0)

        if player_pin > grid_pin or player_score > grid_score:
            return cls(owner_id, owner_name, owner_id, player_score, player_pin)
        return cls(owner_id, owner_name, grid.entity_id if grid else 0, grid_score, grid_pin)

    @property
    def is_pinned(self) -> bool:
        return self.pin_remaining > timedelta(0)

    def __str__(self) -> str:
        return (
            f"\"{self.owner_name}\" ({self.owner_id}, {self.entity_id}) {self.score * 100:.0f}%, "
            f"pin({self.pin_remaining.total_seconds():.0f}secs)"
        )


@dataclass
class OwnerWarning:
    owner_id: int
    record: WarningRecord
    state: Optional[WarningState] = None
    self_checked: bool = False

    def next_state(self) -> WarningState:
        if self.record.is_pinned:
            return WarningState.MUST_WAIT_OUT_PIN
        if self.self_checked:
            return WarningState.NEEDS_REDUCTION
        return WarningState.NEEDS_SELF_CHECK


class WarningTracker:
    """Keeps one warning per flagged owner and reports state changes.

    Readable from command threads while the loop updates it.
    """

    def __init__(self, notifier: WarningNotifier) -> None:
        self._notifier = notifier
        self._warnings: Dict[int, OwnerWarning] = {}
        self._lock = RLock()

    @property
    def warnings(self) -> Dict[int, OwnerWarning]:
        with self._lock:
            return dict(self._warnings)

    def state_of(self, owner_id: int) -> Optional[WarningState]:
        with self._lock:
            warning = self._warnings.get(owner_id)
            return warning.state if warning else None

    def find_for_entity(self, entity_id: int) -> Optional[WarningRecord]:
        with self._lock:
            warnings = list(self._warnings.values())
        for warning in warnings:
            if warning.record.entity_id == entity_id:
                return warning.record
        return None

    def update(self, records: Iterable[WarningRecord]) -> None:
        current: Dict[int, WarningRecord] = {record.owner_id: record for record in records}

        with self._lock:
            for owner_id, record in current.items():
                warning = self._warnings.get(owner_id)
                if warning is None:
                    logger.info("new warning: %s", record)
                    warning = OwnerWarning(owner_id, record)
                    self._warnings[owner_id] = warning
                else:
                    warning.record = record
                self._transition(warning, warning.next_state())

            for owner_id in [owner_id for owner_id in self._warnings if owner_id not in current]:
                self.remove(owner_id)

    def on_self_checked(self, owner_id: int) -> None:
        with self._lock:
            warning = self._warnings.get(owner_id)
            if warning is None:
                return
            warning.self_checked = True
            self._transition(warning, warning.next_state())

    def remove(self, owner_id: int) -> None:
        with self._lock:
            warning = self._warnings.pop(owner_id, None)
            if warning is None:
                return
            self._transition(warning, WarningState.CLEARED)
        logger.info("warning ended: %s", warning.record)

    def clear(self) -> None:
        with self._lock:
            owner_ids = list(self._warnings)
            for owner_id in owner_ids:
                self.remove(owner_id)

    def _transition(self, warning: OwnerWarning, state: WarningState) -> None:
        if warning.state is state:
            return
        warning.state = state
        self._notifier.set_warning_state(warning.owner_id, state, warning.record)


__all__ = ["OwnerWarning", "WarningRecord", "WarningTracker"]
