"""Registry of tracked entities for one entity class (grids or players)."""
from __future__ import annotations

import logging
import math
from datetime import datetime, timedelta
from threading import RLock
from typing import Dict, Iterable, List, Optional, Sequence

from .config import TrackerConfig
from .entity import Clock, EntityScore, EntitySnapshot, utc_now
from .exemptions import ExemptionPolicy
from .interfaces import Sample
from .timeseries import Timestamped

logger = logging.getLogger(__name__)

# smallest step between batch stamps when the clock stalls or steps back
MIN_STEP = timedelta(microseconds=1)


def is_valid_metric(value: float) -> bool:
    return isinstance(value, (int, float)) and math.isfinite(value) and value >= 0


class EntityRegistry:
    """Owns the :class:`EntityScore` of every tracked entity of one class.

    The enforcement loop is the single writer. Readers (inspection commands)
    may call in from other threads; every method takes the registry lock and
    reads hand out :class:`EntitySnapshot` copies.
    """

    def __init__(
        self,
        kind: str,
        config: TrackerConfig,
        *,
        exemptions: Optional[ExemptionPolicy] = None,
        clock: Clock = utc_now,
    ) -> None:
        self.kind = kind
        self._config = config
        self._exemptions = exemptions or ExemptionPolicy()
        self._clock = clock
        self._lock = RLock()
        self._entities: Dict[int, EntityScore] = {}
        self._last_now: Optional[datetime] = None

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------
    def configure(self, config: TrackerConfig) -> None:
        """Swap scoring parameters; applies to new and existing entities."""

        with self._lock:
            self._config = config
            for entity in self._entities.values():
                entity.reconfigure(config)

    def update(self, samples: Sequence[Sample]) -> None:
        valid: Dict[int, Sample] = {}
        invalid_count = 0
        for sample in samples:
            if not is_valid_metric(sample.metric):
                invalid_count += 1
                continue
            if self._exemptions.is_sample_exempt(sample):
                continue
            valid[sample.entity_id] = sample

        if invalid_count:
            logger.warning(
                "dropped %s invalid %s sample(s); maybe: server freezing", invalid_count, self.kind
            )

        with self._lock:
            now = self._stamp()
            for entity_id, entity in self._entities.items():
                entity.update(valid.get(entity_id), now=now)

            for entity_id, sample in valid.items():
                if entity_id not in self._entities:
                    entity = EntityScore(self._config, entity_id, clock=self._clock, spawn_time=now)
                    entity.update(sample, now=now)
                    self._entities[entity_id] = entity

            decayed = [entity_id for entity_id, entity in self._entities.items() if entity.is_decayed]
            for entity_id in decayed:
                del self._entities[entity_id]
            if decayed:
                logger.debug("%s: stopped tracking %s decayed entities", self.kind, len(decayed))

            if logger.isEnabledFor(logging.DEBUG):
                if not self._entities:
                    logger.debug("%s: tracking 0 entities", self.kind)
                for entity in self._entities.values():
                    logger.debug("%s: %s", self.kind, entity)

    def _stamp(self) -> datetime:
        """Clock reading for one batch, strictly after the previous batch."""

        now = self._clock()
        if self._last_now is not None and now <= self._last_now:
            if now < self._last_now:
                logger.warning("%s: clock went back from %s to %s", self.kind, self._last_now, now)
            now = self._last_now + MIN_STEP
        self._last_now = now
        return now

    def stop_tracking(self, entity_id: int) -> None:
        with self._lock:
            self._entities.pop(entity_id, None)

    def clear(self) -> None:
        with self._lock:
            self._entities.clear()

    # ------------------------------------------------------------------
    # Read views
    # ------------------------------------------------------------------
    def __len__(self) -> int:
        with self._lock:
            return len(self._entities)

    def __contains__(self, entity_id: object) -> bool:
        with self._lock:
            return entity_id in self._entities

    def snapshot(self) -> Dict[int, EntitySnapshot]:
        with self._lock:
            return {entity_id: entity.snapshot() for entity_id, entity in self._entities.items()}

    def get(self, entity_id: int) -> Optional[EntitySnapshot]:
        with self._lock:
            entity = self._entities.get(entity_id)
            return entity.snapshot() if entity is not None else None

    def series(self, entity_id: int) -> Optional[List[Timestamped]]:
        with self._lock:
            entity = self._entities.get(entity_id)
            return entity.series() if entity is not None else None

    def find_by_name(self, name: str) -> Optional[EntitySnapshot]:
        with self._lock:
            for entity in self._entities.values():
                if entity.name == name:
                    return entity.snapshot()
        return None

    def laggiest(self, *, pinned_only: bool = False) -> List[EntitySnapshot]:
        return sorted_by_score(
            (s for s in self.snapshot().values() if s.is_pinned or not pinned_only),
            descending=True,
        )


def sorted_by_score(snapshots: Iterable[EntitySnapshot], *, descending: bool = False) -> List[EntitySnapshot]:
    """Order by score, breaking ties by entity id so the order is stable across calls."""

    return sorted(snapshots, key=lambda s: (s.score, s.entity_id), reverse=descending)


__all__ = ["EntityRegistry", "is_valid_metric", "sorted_by_score"]
