"""Configuration utilities for automod."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from functools import lru_cache
from typing import Annotated, List

from dotenv import load_dotenv
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


load_dotenv()

# history must cover the tracking window minus this slack before an entity can be pinned
DATA_SPAN_SLACK = timedelta(seconds=5)


class PunishmentType(str, Enum):
    """Remedial action applied to pinned grids."""

    NONE = "none"
    BROADCAST = "broadcast"
    DISABLE = "disable"
    DAMAGE = "damage"


@dataclass(frozen=True)
class TrackerConfig:
    """Per-class scoring parameters consumed by :class:`EntityRegistry`."""

    budget_mspf: float
    tracking_window: timedelta
    pin_duration: timedelta
    grace_period: timedelta
    outlier_fence: float

    @property
    def min_data_span(self) -> timedelta:
        return max(timedelta(0), self.tracking_window - DATA_SPAN_SLACK)


class AutoModeratorSettings(BaseSettings):
    """Environment-backed settings for the enforcement loop."""

    model_config = SettingsConfigDict(
        env_prefix="AUTOMOD_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    is_enabled: bool = True
    first_idle_seconds: float = Field(default=180.0, ge=0)
    interval_seconds: float = Field(default=5.0, gt=0)
    max_profiled_entities: int = Field(default=20, ge=1)

    max_grid_mspf: float = Field(default=0.5, gt=0)
    max_player_mspf: float = Field(default=0.5, gt=0)
    tracking_seconds: float = Field(default=300.0, gt=0)
    pin_seconds: float = Field(default=600.0, ge=0)
    grace_period_seconds: float = Field(default=20.0, ge=0)
    outlier_fence: float = 2.0
    warning_normal: float = Field(default=0.7, ge=0)

    exempt_owner_ids: Annotated[List[int], NoDecode] = Field(default_factory=list)
    exempt_group_tags: Annotated[List[str], NoDecode] = Field(default_factory=list)
    exempt_part_types: Annotated[List[str], NoDecode] = Field(default_factory=list)

    punishment_type: PunishmentType = PunishmentType.NONE
    damage_normal: float = Field(default=0.5, ge=0, le=1)
    min_integrity_normal: float = Field(default=0.5, ge=0, le=1)
    parts_per_slice: int = Field(default=100, ge=1)

    enable_warning: bool = True
    enable_punish_chat_feed: bool = True
    punish_chat_format: str = "{player} [{faction}] \"{grid}\" {level} is being punished"
    deleted_chat_format: str = "Laggy grid deleted by player: {grid}: {player}"

    log_level: str = "INFO"

    @field_validator("exempt_owner_ids", "exempt_group_tags", "exempt_part_types", mode="before")
    @classmethod
    def _split_list(cls, value):
        if isinstance(value, str):
            for sep in (",", " ", "\n"):
                if sep in value:
                    parts = [part.strip() for part in value.replace("\n", sep).split(sep)]
                    return [part for part in parts if part]
            return [value.strip()] if value.strip() else []
        return value

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, value: str) -> str:
        level = value.strip().upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"unknown log level: {value}")
        return level

    @model_validator(mode="after")
    def _interval_within_slack(self) -> "AutoModeratorSettings":
        # longer gaps leave the retained span short of min_data_span forever
        if self.interval_seconds > DATA_SPAN_SLACK.total_seconds():
            raise ValueError(
                f"interval_seconds must be at most {DATA_SPAN_SLACK.total_seconds():g}, "
                f"got {self.interval_seconds:g}"
            )
        return self

    def tracker_config(self, kind: str) -> TrackerConfig:
        if kind == "grid":
            budget = self.max_grid_mspf
        elif kind == "player":
            budget = self.max_player_mspf
        else:
            raise ValueError(f"unknown tracker kind: {kind}")

        return TrackerConfig(
            budget_mspf=budget,
            tracking_window=timedelta(seconds=self.tracking_seconds),
            pin_duration=timedelta(seconds=self.pin_seconds),
            grace_period=timedelta(seconds=self.grace_period_seconds),
            outlier_fence=self.outlier_fence,
        )


@lru_cache()
def get_settings() -> AutoModeratorSettings:
    """Return cached settings instance."""

    return AutoModeratorSettings()


def configure_logging(settings: AutoModeratorSettings) -> None:
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


__all__ = [
    "AutoModeratorSettings",
    "DATA_SPAN_SLACK",
    "PunishmentType",
    "TrackerConfig",
    "configure_logging",
    "get_settings",
]
