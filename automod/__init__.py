"""Lag auto-moderation exports."""

from .alerts import WarningRecord, WarningTracker
from .commands import InspectionCommands, catch_and_report
from .config import (
    AutoModeratorSettings,
    PunishmentType,
    TrackerConfig,
    configure_logging,
    get_settings,
)
from .dispatch import Dispatcher, ExecutorDispatcher, InlineDispatcher
from .entity import EntityScore, EntitySnapshot
from .errors import AutoModeratorError, EntityMismatchError
from .exemptions import ExemptionPolicy
from .interfaces import MarkerRecord, Part, Sample, WarningState
from .moderator import AutoModerator, IterationReport
from .owners import OwnerIndex
from .punishment import PunishmentExecutor, PunishmentRecord
from .registry import EntityRegistry
from .timeseries import TimeSeries, outlier_scores

__all__ = [
    "AutoModerator",
    "AutoModeratorError",
    "AutoModeratorSettings",
    "Dispatcher",
    "EntityMismatchError",
    "EntityRegistry",
    "EntityScore",
    "EntitySnapshot",
    "ExecutorDispatcher",
    "ExemptionPolicy",
    "InlineDispatcher",
    "InspectionCommands",
    "IterationReport",
    "MarkerRecord",
    "OwnerIndex",
    "Part",
    "PunishmentExecutor",
    "PunishmentRecord",
    "PunishmentType",
    "Sample",
    "TimeSeries",
    "TrackerConfig",
    "WarningRecord",
    "WarningState",
    "WarningTracker",
    "catch_and_report",
    "configure_logging",
    "get_settings",
    "outlier_scores",
]
