"""Remedial actions applied to the parts of pinned grids."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Mapping, Optional, Sequence, Set

from .config import AutoModeratorSettings, PunishmentType
from .dispatch import Dispatcher
from .exemptions import ExemptionPolicy
from .interfaces import Part, PunishmentActions, World

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PunishmentRecord:
    """Punishment target derived for one owner's worst grid."""

    entity_id: int
    entity_name: str
    owner_id: int
    owner_name: str
    group_tag: Optional[str]
    score: float
    is_pinned: bool

    def as_dict(self) -> dict[str, object]:
        return {
            "entity_id": self.entity_id,
            "entity_name": self.entity_name,
            "owner_id": self.owner_id,
            "owner_name": self.owner_name,
            "group_tag": self.group_tag,
            "score": round(self.score, 3),
            "is_pinned": self.is_pinned,
        }

    def __str__(self) -> str:
        return (
            f"player: [{self.group_tag}] \"{self.owner_name}\" <{self.owner_id}>, "
            f"grid: \"{self.entity_name}\" <{self.entity_id}>, {self.score * 100:.1f}%, "
            f"pinned: {self.is_pinned}"
        )


class PunishmentExecutor:
    """Applies the configured punishment to every part of pinned grids.

    Work happens on the host context and is cut into slices of
    ``parts_per_slice`` parts with a host tick between slices, so a large
    grid never stalls a single frame.
    """

    def __init__(
        self,
        settings: AutoModeratorSettings,
        *,
        world: World,
        actions: PunishmentActions,
        dispatcher: Dispatcher,
        exemptions: ExemptionPolicy,
    ) -> None:
        self._settings = settings
        self._world = world
        self._actions = actions
        self._dispatcher = dispatcher
        self._exemptions = exemptions
        self._punished_ids: Set[int] = set()

    @property
    def punished_ids(self) -> Set[int]:
        return set(self._punished_ids)

    def clear(self) -> None:
        self._punished_ids.clear()

    async def update(self, targets: Mapping[int, PunishmentRecord]) -> Dict[int, int]:
        """Punish pinned targets; returns the number of parts acted on per grid."""

        punishment_type = self._settings.punishment_type
        affected: Dict[int, int] = {}
        pinned_ids = {entity_id for entity_id, record in targets.items() if record.is_pinned}

        for index, entity_id in enumerate(sorted(pinned_ids)):
            if index:
                # one grid per host tick
                await self._dispatcher.next_tick()
            record = targets[entity_id]
            parts = await self._dispatcher.submit(self._world.get_parts, entity_id)
            if parts is None:
                logger.warning("grid not found for grid id: %s", entity_id)
                continue

            if entity_id not in self._punished_ids:
                self._punished_ids.add(entity_id)
                logger.info("Punishment started: \"%s\" type: %s", record.entity_name, punishment_type.value)

            affected[entity_id] = await self._punish_parts(parts, punishment_type)
            logger.debug("punished: %s (%s parts)", record, affected[entity_id])

        for entity_id in sorted(self._punished_ids - pinned_ids):
            record = targets.get(entity_id)
            name = f"\"{record.entity_name}\"" if record is not None else f"<{entity_id}>"
            logger.info("Punishment done: %s", name)

        self._punished_ids &= pinned_ids
        return affected

    async def _punish_parts(self, parts: Sequence[Part], punishment_type: PunishmentType) -> int:
        slice_size = self._settings.parts_per_slice
        count = 0
        for start in range(0, len(parts), slice_size):
            if start:
                await self._dispatcher.next_tick()
            batch = parts[start:start + slice_size]
            count += await self._dispatcher.submit(self._apply_slice, batch, punishment_type)
        return count

    def _apply_slice(self, parts: Sequence[Part], punishment_type: PunishmentType) -> int:
        count = 0
        for part in parts:
            if part is None or self._is_exempt(part):
                continue
            if punishment_type is PunishmentType.DISABLE:
                if part.functional:
                    self._actions.disable(part)
                    count += 1
            elif punishment_type is PunishmentType.DAMAGE:
                if part.integrity_normal > self._settings.min_integrity_normal:
                    self._actions.apply_damage(part, self._settings.damage_normal)
                    count += 1
        return count

    def _is_exempt(self, part: Part) -> bool:
        return self._exemptions.is_part_exempt(part) or self._actions.is_exempt(part)


__all__ = ["PunishmentExecutor", "PunishmentRecord"]
