"""Owner to worst-entity index derived from a registry snapshot."""
from __future__ import annotations

from typing import Dict, Mapping, Optional

from .entity import EntitySnapshot
from .registry import sorted_by_score


class OwnerIndex:
    """Maps every owner to the single worst-scoring entity they own.

    Rebuilt from scratch each interval; holds copies only, never live
    entities. Rebuild and clear swap in new dicts and never mutate the old
    ones, so readers on other threads iterate safely.
    """

    def __init__(self) -> None:
        self._worst_ids: Dict[int, int] = {}
        self._snapshots: Dict[int, EntitySnapshot] = {}

    def rebuild(self, snapshots: Mapping[int, EntitySnapshot]) -> None:
        worst_ids: Dict[int, int] = {}
        # ascending so the last write per owner is its worst entity
        for snapshot in sorted_by_score(snapshots.values()):
            worst_ids[snapshot.owner_id] = snapshot.entity_id

        self._worst_ids = worst_ids
        self._snapshots = dict(snapshots)

    def clear(self) -> None:
        self._worst_ids = {}
        self._snapshots = {}

    def worst_entity(self, owner_id: int) -> Optional[EntitySnapshot]:
        entity_id = self._worst_ids.get(owner_id)
        if entity_id is None:
            return None
        return self._snapshots.get(entity_id)

    def worst_by_owner(self) -> Dict[int, EntitySnapshot]:
        worst_ids, snapshots = self._worst_ids, self._snapshots
        return {
            owner_id: snapshots[entity_id]
            for owner_id, entity_id in worst_ids.items()
            if entity_id in snapshots
        }

    def pinned_by_owner(self) -> Dict[int, EntitySnapshot]:
        return {
            owner_id: snapshot
            for owner_id, snapshot in self.worst_by_owner().items()
            if snapshot.is_pinned
        }

    def find_owner_by_name(self, owner_name: str) -> Optional[int]:
        for snapshot in self._snapshots.values():
            if snapshot.owner_name == owner_name:
                return snapshot.owner_id
        return None

    def as_dict(self) -> Dict[int, int]:
        return dict(self._worst_ids)


__all__ = ["OwnerIndex"]
