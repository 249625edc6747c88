"""Periodic enforcement loop tying profiling, scoring and punishment together."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from .alerts import WarningRecord, WarningTracker
from .announcements import PunishmentChatFeed
from .config import AutoModeratorSettings, PunishmentType
from .dispatch import Dispatcher, InlineDispatcher
from .entity import Clock, EntitySnapshot, utc_now
from .exemptions import ExemptionPolicy
from .interfaces import (
    ChatFeed,
    EntityProfiler,
    MarkerBroadcaster,
    MarkerRecord,
    PunishmentActions,
    Sample,
    WarningNotifier,
    World,
)
from .owners import OwnerIndex
from .punishment import PunishmentExecutor, PunishmentRecord
from .registry import EntityRegistry, is_valid_metric
from .timeseries import Timestamped

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]

UNOWNED = 0


@dataclass
class IterationReport:
    """Everything one pass of :class:`AutoModerator` derived."""

    grid_count: int
    player_count: int
    warnings: Sequence[WarningRecord] = field(default_factory=tuple)
    punishments: Mapping[int, PunishmentRecord] = field(default_factory=dict)
    markers: Sequence[MarkerRecord] = field(default_factory=tuple)
    deleted: Sequence[EntitySnapshot] = field(default_factory=tuple)

    def as_dict(self) -> dict[str, object]:
        return {
            "grid_count": self.grid_count,
            "player_count": self.player_count,
            "warnings": [str(record) for record in self.warnings],
            "punishments": {entity_id: record.as_dict() for entity_id, record in self.punishments.items()},
            "markers": [
                {
                    "entity_id": marker.entity_id,
                    "score": round(marker.score, 3),
                    "remaining": marker.remaining.total_seconds(),
                    "rank": marker.rank,
                }
                for marker in self.markers
            ],
            "deleted": [snapshot.entity_id for snapshot in self.deleted],
        }


def punishment_record(grid: Optional[EntitySnapshot], player: Optional[EntitySnapshot]) -> PunishmentRecord:
    """Combine an owner's grid and player entity into one punishment target."""

    owner_id = player.owner_id if player else (grid.owner_id if grid else UNOWNED)
    return PunishmentRecord(
        entity_id=grid.entity_id if grid else 0,
        entity_name=grid.name if grid else "<none>",
        owner_id=owner_id,
        owner_name=(player.name if player else None) or (grid.owner_name if grid else f"<{owner_id}>"),
        group_tag=(player.group_tag if player else None) or (grid.group_tag if grid else None),
        score=max(grid.score if grid else 0.0, player.score if player else 0.0),
        is_pinned=bool((grid and grid.is_pinned) or (player and player.is_pinned)),
    )


class AutoModerator:
    """Long-lived enforcement loop.

    One iteration profiles grids and players for ``interval_seconds``, feeds
    both registries, then derives warnings, punishments and markers and hands
    them to the host collaborators. Iterations never overlap.
    """

    def __init__(
        self,
        settings: AutoModeratorSettings,
        *,
        profiler: EntityProfiler,
        world: World,
        actions: PunishmentActions,
        broadcaster: MarkerBroadcaster,
        notifier: WarningNotifier,
        chat: ChatFeed,
        dispatcher: Optional[Dispatcher] = None,
        clock: Clock = utc_now,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._settings = settings
        self._profiler = profiler
        self._world = world
        self._broadcaster = broadcaster
        self._dispatcher = dispatcher or InlineDispatcher()
        self._sleep = sleep
        self._task: Optional[asyncio.Task] = None
        self._exemption_inputs: Optional[Tuple[tuple, tuple, tuple]] = None
        self._disabled_cleared = False

        self.exemptions = ExemptionPolicy()
        self._reload_exemptions()
        self.grids = EntityRegistry("grid", settings.tracker_config("grid"), exemptions=self.exemptions, clock=clock)
        self.players = EntityRegistry("player", settings.tracker_config("player"), exemptions=self.exemptions, clock=clock)
        self.grid_owners = OwnerIndex()
        self.player_owners = OwnerIndex()
        self.warnings = WarningTracker(notifier)
        self.chat_feed = PunishmentChatFeed(settings, chat)
        self.executor = PunishmentExecutor(
            settings,
            world=world,
            actions=actions,
            dispatcher=self._dispatcher,
            exemptions=self.exemptions,
        )
        self.is_idle = True

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run())
        return self._task

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def run(self) -> None:
        logger.info("started main")
        await self.close()
        try:
            # the first minutes of a session are laggy for everyone
            await self._sleep(self._settings.first_idle_seconds)
            self.is_idle = False
            logger.info("started enforcement loop")

            while True:
                if not self._settings.is_enabled:
                    await self._idle_disabled()
                    await self._sleep(1.0)
                    continue

                self._disabled_cleared = False
                try:
                    await self.run_once()
                except asyncio.CancelledError:
                    raise
                except Exception:
                    logger.exception("enforcement iteration failed")
                    await self._sleep(self._settings.interval_seconds)
        finally:
            self.is_idle = True
            await self.close()
            logger.info("stopped enforcement loop")

    async def close(self) -> None:
        """Best-effort removal of everything shown to players."""

        try:
            await self._dispatcher.submit(self._broadcaster.clear_markers)
        except Exception:
            logger.exception("failed to clear markers")
        try:
            self.warnings.clear()
        except Exception:
            logger.exception("failed to clear warnings")

    async def _idle_disabled(self) -> None:
        if self._disabled_cleared:
            return
        logger.info("disabled; clearing derived state")
        self.clear_cache()
        await self.close()
        self.executor.clear()
        self.chat_feed.clear()
        self._disabled_cleared = True

    # ------------------------------------------------------------------
    # One iteration
    # ------------------------------------------------------------------
    async def run_once(self) -> IterationReport:
        grid_samples, player_samples = await self._profile()

        self._reload_exemptions()
        self.grids.configure(self._settings.tracker_config("grid"))
        self.players.configure(self._settings.tracker_config("player"))

        self.grids.update(grid_samples)
        self.players.update(player_samples)
        grids = self.grids.snapshot()
        players = self.players.snapshot()
        self.grid_owners.rebuild(grids)
        self.player_owners.rebuild(players)

        warnings = self._warn()
        punish_records = self._punishment_records(grids, players)
        self._announce_punishments(punish_records)
        punishments = await self._punish(punish_records)
        markers = await self._broadcast(grids, players)
        deleted = await self._reconcile()

        logger.debug("interval done")
        return IterationReport(
            grid_count=len(grids),
            player_count=len(players),
            warnings=tuple(warnings),
            punishments=punishments,
            markers=tuple(markers),
            deleted=tuple(deleted),
        )

    async def _profile(self) -> Tuple[List[Sample], List[Sample]]:
        duration = self._settings.interval_seconds
        logger.debug("auto-profile started")
        grid_samples, player_samples = await asyncio.gather(
            self._profiler.sample_grids(duration),
            self._profiler.sample_players(duration),
        )
        logger.debug("auto-profile done")
        limit = self._settings.max_profiled_entities
        return _top_samples(grid_samples, limit), _top_samples(player_samples, limit)

    def _reload_exemptions(self) -> None:
        inputs = (
            tuple(self._settings.exempt_owner_ids),
            tuple(self._settings.exempt_group_tags),
            tuple(self._settings.exempt_part_types),
        )
        if inputs == self._exemption_inputs:
            return
        self._exemption_inputs = inputs
        self.exemptions.reload(owner_ids=inputs[0], group_tags=inputs[1], part_types=inputs[2])

    def _warn(self) -> List[WarningRecord]:
        if not self._settings.enable_warning:
            self.warnings.clear()
            return []

        include_pins = self._settings.punishment_type is not PunishmentType.NONE
        owner_ids = set(self.player_owners.as_dict()) | set(self.grid_owners.as_dict())

        records: List[WarningRecord] = []
        for owner_id in sorted(owner_ids):
            if owner_id == UNOWNED:
                continue
            record = WarningRecord.from_entities(
                owner_id,
                self.player_owners.worst_entity(owner_id),
                self.grid_owners.worst_entity(owner_id),
                include_pins=include_pins,
            )
            if record.score >= self._settings.warning_normal or record.is_pinned:
                records.append(record)

        self.warnings.update(records)
        logger.debug("warnings done: %s", len(records))
        return records

    def _punishment_records(
        self,
        grids: Mapping[int, EntitySnapshot],
        players: Mapping[int, EntitySnapshot],
    ) -> Dict[int, PunishmentRecord]:
        """Pick one grid per owner: their worst pinned grid, else the worst grid of a pinned player."""

        pinned_grids = {entity_id: grid for entity_id, grid in grids.items() if grid.is_pinned}
        pinned_owners = OwnerIndex()
        pinned_owners.rebuild(pinned_grids)

        records: Dict[int, PunishmentRecord] = {}
        for owner_id, grid in pinned_owners.worst_by_owner().items():
            if owner_id == UNOWNED:
                continue
            records[grid.entity_id] = punishment_record(grid, self.player_owners.worst_entity(owner_id))

        # unowned grids have nobody to dedupe against
        for grid in pinned_grids.values():
            if grid.owner_id == UNOWNED:
                records[grid.entity_id] = punishment_record(grid, None)

        for player in players.values():
            if not player.is_pinned or pinned_owners.worst_entity(player.owner_id) is not None:
                continue
            grid = self.grid_owners.worst_entity(player.owner_id)
            if grid is not None:
                records[grid.entity_id] = punishment_record(grid, player)

        return records

    def _announce_punishments(self, records: Mapping[int, PunishmentRecord]) -> None:
        if not self._settings.enable_punish_chat_feed or self._settings.punishment_type is PunishmentType.NONE:
            self.chat_feed.clear()
            return
        self.chat_feed.update(records.values())

    async def _punish(self, records: Mapping[int, PunishmentRecord]) -> Dict[int, PunishmentRecord]:
        if self._settings.punishment_type not in (PunishmentType.DAMAGE, PunishmentType.DISABLE):
            self.executor.clear()
            return {}

        await self.executor.update(records)
        logger.debug("punishment done")
        return dict(records)

    async def _broadcast(
        self,
        grids: Mapping[int, EntitySnapshot],
        players: Mapping[int, EntitySnapshot],
    ) -> List[MarkerRecord]:
        if self._settings.punishment_type is not PunishmentType.BROADCAST:
            await self._dispatcher.submit(self._broadcaster.clear_markers)
            return []

        markers: Dict[int, MarkerRecord] = {}
        pinned_players = sorted(
            (p for p in players.values() if p.is_pinned),
            key=lambda p: (p.score, p.entity_id),
            reverse=True,
        )
        for rank, player in enumerate(pinned_players):
            grid = self.grid_owners.worst_entity(player.owner_id)
            if grid is None:
                continue
            markers[grid.entity_id] = MarkerRecord(grid.entity_id, player.score, player.pin_remaining, rank)

        pinned_grids = sorted(
            (g for g in grids.values() if g.is_pinned),
            key=lambda g: (g.score, g.entity_id),
            reverse=True,
        )
        for rank, grid in enumerate(pinned_grids):
            markers[grid.entity_id] = MarkerRecord(grid.entity_id, grid.score, grid.pin_remaining, rank)

        ordered = sorted(markers.values(), key=lambda m: (m.rank, -m.score, m.entity_id))
        await self._dispatcher.submit(self._broadcaster.set_active_markers, ordered)
        logger.debug("broadcast done: %s markers", len(ordered))
        return ordered

    async def _reconcile(self) -> List[EntitySnapshot]:
        """Stop tracking grids that no longer exist and report flagged ones."""

        tracked = self.grids.snapshot()
        missing = await self._dispatcher.submit(self._find_missing, list(tracked))

        deleted: List[EntitySnapshot] = []
        for entity_id in missing:
            grid = tracked[entity_id]
            self.grids.stop_tracking(entity_id)
            if grid.score >= self._settings.warning_normal:
                self.chat_feed.announce_deleted(grid)
                deleted.append(grid)
            else:
                logger.debug("grid gone: \"%s\" <%s>", grid.name, entity_id)

        logger.debug("announcing deleted entities done")
        return deleted

    def _find_missing(self, entity_ids: Sequence[int]) -> List[int]:
        return [entity_id for entity_id in entity_ids if not self._world.entity_exists(entity_id)]

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------
    def clear_cache(self) -> None:
        self.grids.clear()
        self.players.clear()
        self.grid_owners.clear()
        self.player_owners.clear()

    def get_entity(self, entity_id: int) -> Optional[EntitySnapshot]:
        return self.grids.get(entity_id) or self.players.get(entity_id)

    def find_entity_by_name(self, name: str) -> Optional[EntitySnapshot]:
        return self.grids.find_by_name(name) or self.players.find_by_name(name)

    def series_of(self, entity_id: int) -> Optional[List[Timestamped]]:
        series = self.grids.series(entity_id)
        if series is None:
            series = self.players.series(entity_id)
        return series

    def laggiest_grid_of(self, owner_id: int) -> Optional[EntitySnapshot]:
        return self.grid_owners.worst_entity(owner_id)

    def find_owner_by_name(self, owner_name: str) -> Optional[int]:
        owner_id = self.grid_owners.find_owner_by_name(owner_name)
        if owner_id is None:
            player = self.players.find_by_name(owner_name)
            owner_id = player.entity_id if player else None
        return owner_id

    def find_warning_for_entity(self, entity_id: int) -> Optional[WarningRecord]:
        return self.warnings.find_for_entity(entity_id)

    def on_self_checked(self, owner_id: int) -> None:
        self.warnings.on_self_checked(owner_id)

    def clear_warning(self, owner_id: int) -> None:
        self.warnings.remove(owner_id)


def _top_samples(samples: Sequence[Sample], limit: int) -> List[Sample]:
    """Keep the ``limit`` costliest valid samples; malformed ones pass through to be logged."""

    valid = [sample for sample in samples if is_valid_metric(sample.metric)]
    invalid = [sample for sample in samples if not is_valid_metric(sample.metric)]
    valid.sort(key=lambda sample: sample.metric, reverse=True)
    return valid[:limit] + invalid


__all__ = ["AutoModerator", "IterationReport", "punishment_record"]
