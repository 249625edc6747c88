"""Public chat announcements about punishments and deleted laggy grids."""
from __future__ import annotations

import logging
from typing import Iterable, List, Set

from .config import AutoModeratorSettings
from .entity import EntitySnapshot
from .interfaces import ChatFeed
from .punishment import PunishmentRecord

logger = logging.getLogger(__name__)


def render_template(template: str, **tokens: object) -> str:
    """Substitute ``{name}`` tokens; unknown braces are left untouched."""

    message = template
    for key, value in tokens.items():
        message = message.replace("{" + key + "}", str(value))
    return message


def format_level(score: float) -> str:
    return f"{score * 100:.0f}%"


class PunishmentChatFeed:
    """Announces each owner once per pin episode."""

    def __init__(self, settings: AutoModeratorSettings, chat: ChatFeed) -> None:
        self._settings = settings
        self._chat = chat
        self._pinned_owner_ids: Set[int] = set()

    def clear(self) -> None:
        self._pinned_owner_ids.clear()

    def update(self, records: Iterable[PunishmentRecord]) -> List[str]:
        pinned = [record for record in records if record.is_pinned]
        sent: List[str] = []
        announced = set(self._pinned_owner_ids)

        for record in pinned:
            # unowned grids have nobody to name
            if record.owner_id == 0 or record.owner_id in announced:
                continue
            announced.add(record.owner_id)

            message = render_template(
                self._settings.punish_chat_format,
                player=record.owner_name,
                faction=record.group_tag or "<none>",
                grid=record.entity_name,
                level=format_level(record.score),
            )
            self._chat.announce(message)
            sent.append(message)
            logger.debug("punishment chat sent: %s", record)

        self._pinned_owner_ids = {record.owner_id for record in pinned}
        return sent

    def announce_deleted(self, grid: EntitySnapshot) -> str:
        message = render_template(
            self._settings.deleted_chat_format,
            grid=grid.name,
            player=grid.owner_name,
            level=format_level(grid.score),
        )
        logger.warning("Laggy grid deleted by player: %s: %s", grid.name, grid.owner_name)
        if self._settings.enable_punish_chat_feed:
            self._chat.announce(message)
        return message


__all__ = ["PunishmentChatFeed", "format_level", "render_template"]
