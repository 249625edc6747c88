"""Records exchanged with host collaborators and the protocols they implement."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from typing import Optional, Protocol, Sequence


@dataclass(frozen=True)
class Sample:
    """CPU cost attributed to one entity over one profiling window.

    Player samples own themselves: ``owner_id`` is the player id.
    """

    entity_id: int
    metric: float
    owner_id: int = 0
    owner_name: Optional[str] = None
    group_tag: Optional[str] = None
    name: Optional[str] = None

    def __str__(self) -> str:
        return f"[{self.group_tag or '<single>'}] \"{self.name}\" {self.metric:.2f}ms/f"


@dataclass(frozen=True)
class Part:
    """Constituent part of a grid that punishment acts on."""

    part_id: int
    type_id: str
    subtype_id: str = ""
    integrity: float = 1.0
    max_integrity: float = 1.0
    functional: bool = True

    @property
    def integrity_normal(self) -> float:
        if self.max_integrity <= 0:
            return 0.0
        return self.integrity / self.max_integrity


@dataclass(frozen=True)
class MarkerRecord:
    """Visible marker placed on a pinned entity."""

    entity_id: int
    score: float
    remaining: timedelta
    rank: int


class WarningState(str, Enum):
    NEEDS_SELF_CHECK = "needs_self_check"
    NEEDS_REDUCTION = "needs_reduction"
    MUST_WAIT_OUT_PIN = "must_wait_out_pin"
    CLEARED = "cleared"


class EntityProfiler(Protocol):
    """Attributes CPU time to grids and players over a sampling window."""

    async def sample_grids(self, duration: float) -> Sequence[Sample]:
        ...

    async def sample_players(self, duration: float) -> Sequence[Sample]:
        ...


class World(Protocol):
    """Live view of simulated objects. Only call on the host context."""

    def entity_exists(self, entity_id: int) -> bool:
        ...

    def get_parts(self, entity_id: int) -> Optional[Sequence[Part]]:
        ...


class PunishmentActions(Protocol):
    def apply_damage(self, part: Part, normalized_amount: float) -> None:
        ...

    def disable(self, part: Part) -> None:
        ...

    def is_exempt(self, part: Part) -> bool:
        ...


class MarkerBroadcaster(Protocol):
    def set_active_markers(self, markers: Sequence[MarkerRecord]) -> None:
        ...

    def clear_markers(self) -> None:
        ...


class WarningNotifier(Protocol):
    def set_warning_state(self, owner_id: int, state: WarningState, record: object) -> None:
        ...


class ChatFeed(Protocol):
    def announce(self, message: str) -> None:
        ...


__all__ = [
    "ChatFeed",
    "EntityProfiler",
    "MarkerBroadcaster",
    "MarkerRecord",
    "Part",
    "PunishmentActions",
    "Sample",
    "WarningNotifier",
    "WarningState",
    "World",
]
