"""Exemption predicate shared by sample intake and punishment."""
from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional, Set, Tuple

from .interfaces import Part, Sample

logger = logging.getLogger(__name__)

WILDCARD = "*"


def parse_part_type(text: str) -> Optional[Tuple[str, str]]:
    """Parse ``"Type"``, ``"Type/*"`` or ``"Type/Subtype"``.

    An empty subtype means every subtype of the type. Returns ``None`` when
    the type is missing.
    """

    type_id, _, subtype_id = text.strip().partition("/")
    type_id = type_id.strip()
    subtype_id = subtype_id.strip()
    if not type_id or type_id == WILDCARD:
        return None
    if subtype_id == WILDCARD:
        subtype_id = ""
    return type_id, subtype_id


class PartTypeSet:
    """Set of ``(type, subtype)`` pairs with whole-type wildcards."""

    def __init__(self) -> None:
        self._types: Dict[str, Set[str]] = {}

    def __len__(self) -> int:
        return sum(len(subtypes) for subtypes in self._types.values())

    def clear(self) -> None:
        self._types.clear()

    def try_add(self, text: str) -> bool:
        parsed = parse_part_type(text)
        if parsed is None:
            return False
        type_id, subtype_id = parsed
        self._types.setdefault(type_id, set()).add(subtype_id)
        return True

    def contains(self, type_id: str, subtype_id: str) -> bool:
        subtypes = self._types.get(type_id)
        if subtypes is None:
            return False
        return "" in subtypes or subtype_id in subtypes


class ExemptionPolicy:
    """Single place deciding what is never tracked or punished."""

    def __init__(
        self,
        *,
        owner_ids: Iterable[int] = (),
        group_tags: Iterable[str] = (),
        part_types: Iterable[str] = (),
    ) -> None:
        self._owner_ids: Set[int] = set()
        self._group_tags: Set[str] = set()
        self._part_types = PartTypeSet()
        self.reload(owner_ids=owner_ids, group_tags=group_tags, part_types=part_types)

    def reload(
        self,
        *,
        owner_ids: Iterable[int] = (),
        group_tags: Iterable[str] = (),
        part_types: Iterable[str] = (),
    ) -> List[str]:
        """Replace every list; returns the part-type entries that failed to parse."""

        self._owner_ids = {int(owner_id) for owner_id in owner_ids}
        self._group_tags = {tag.strip().lower() for tag in group_tags if tag.strip()}

        invalid: List[str] = []
        self._part_types.clear()
        for text in part_types:
            if not self._part_types.try_add(text):
                invalid.append(text)
                logger.warning("Removed invalid part type pair: %s", text)
        return invalid

    def is_owner_exempt(self, owner_id: int) -> bool:
        return owner_id in self._owner_ids

    def is_group_exempt(self, group_tag: Optional[str]) -> bool:
        return group_tag is not None and group_tag.strip().lower() in self._group_tags

    def is_sample_exempt(self, sample: Sample) -> bool:
        return self.is_owner_exempt(sample.owner_id) or self.is_group_exempt(sample.group_tag)

    def is_part_exempt(self, part: Part) -> bool:
        return self._part_types.contains(part.type_id, part.subtype_id)


__all__ = ["ExemptionPolicy", "PartTypeSet", "parse_part_type"]
