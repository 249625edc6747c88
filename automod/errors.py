"""Exception types raised by automod."""
from __future__ import annotations


class AutoModeratorError(Exception):
    """Base class for automod errors."""


class EntityMismatchError(AutoModeratorError, ValueError):
    """A sample was routed to an entity with a different id."""

    def __init__(self, expected_id: int, actual_id: int) -> None:
        super().__init__(f"wrong entity: expected {expected_id}, got {actual_id}")
        self.expected_id = expected_id
        self.actual_id = actual_id


__all__ = ["AutoModeratorError", "EntityMismatchError"]
