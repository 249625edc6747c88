"""Per-entity lag scoring with grace period and pin hysteresis."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional

from .config import TrackerConfig
from .errors import EntityMismatchError
from .interfaces import Sample
from .timeseries import TimeSeries, Timestamped, outlier_scores

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)


@dataclass(frozen=True)
class EntitySnapshot:
    """Read-only copy of an :class:`EntityScore` handed out to readers."""

    entity_id: int
    name: str
    owner_id: int
    owner_name: str
    group_tag: Optional[str]
    score: float
    latest_metric: float
    is_pinned: bool
    is_blessed: bool
    pin_remaining: timedelta
    point_count: int

    def as_dict(self) -> dict[str, object]:
        return {
            "entity_id": self.entity_id,
            "name": self.name,
            "owner_id": self.owner_id,
            "owner_name": self.owner_name,
            "group_tag": self.group_tag,
            "score": round(self.score, 3),
            "latest_metric": self.latest_metric,
            "is_pinned": self.is_pinned,
            "is_blessed": self.is_blessed,
            "pin_remaining": self.pin_remaining.total_seconds(),
            "point_count": self.point_count,
        }


class EntityScore:
    """Rolling lag score of one tracked entity.

    Every call to :meth:`update` appends one normalized point (``metric /
    budget``, or zero when the entity was not sampled), then evaluates three
    latched conditions in order:

    * grace: for ``grace_period`` after the entity was first seen the score is
      forced to zero and the entity cannot be pinned, since spawning and
      loading are expensive;
    * insufficient data: until the retained history spans the tracking window
      (minus a small slack) the score is published but the entity cannot be
      pinned;
    * evaluated: a score of 1.0 or more pins the entity for ``pin_duration``.

    A pin is only ever extended, never cleared early, so an entity has to stay
    under budget for a full ``pin_duration`` after its last breach to be
    released.
    """

    def __init__(
        self,
        config: TrackerConfig,
        entity_id: int,
        *,
        clock: Clock = utc_now,
        spawn_time: Optional[datetime] = None,
    ) -> None:
        self._config = config
        self._clock = clock
        self._series = TimeSeries()
        self._spawn_time = spawn_time or clock()
        self._pin_expiration: Optional[datetime] = None

        self.entity_id = entity_id
        self.name = f"<{entity_id}>"
        self.owner_id = 0
        self.owner_name = "<0>"
        self.group_tag: Optional[str] = None
        self.latest_metric = 0.0
        self.score = 0.0
        self.is_blessed = True

    def reconfigure(self, config: TrackerConfig) -> None:
        self._config = config

    @property
    def is_pinned(self) -> bool:
        return self._pin_expiration is not None and self._pin_expiration > self._clock()

    @property
    def pin_remaining(self) -> timedelta:
        if self._pin_expiration is None:
            return timedelta(0)
        return max(timedelta(0), self._pin_expiration - self._clock())

    @property
    def is_decayed(self) -> bool:
        """Whole tracking window was zero; safe to stop tracking."""

        if self.is_pinned or not len(self._series):
            return False
        if self._series.span() < self._config.min_data_span:
            return False
        return all(value == 0 for value in self._series.values)

    def update(self, sample: Optional[Sample], *, now: Optional[datetime] = None) -> None:
        now = now or self._clock()
        self._series.retain(now - self._config.tracking_window)

        if sample is not None:
            if sample.entity_id != self.entity_id:
                raise EntityMismatchError(self.entity_id, sample.entity_id)

            self.name = sample.name or f"<{self.entity_id}>"
            self.owner_id = sample.owner_id
            self.owner_name = sample.owner_name or f"<{sample.owner_id}>"
            self.group_tag = sample.group_tag
            self.latest_metric = sample.metric

            normal = sample.metric / self._config.budget_mspf
            self._series.add(now, normal)
            logger.debug("input: %s -> %.0f%%", sample, normal * 100)
        else:
            self.latest_metric = 0.0
            self._series.add(now, 0.0)

        if now < self._spawn_time + self._config.grace_period:
            self.score = 0.0
            self.is_blessed = True
            return

        self.score = self._compute_score()

        # warnings may still go out, but nothing gets pinned on partial data
        if self._series.span() < self._config.min_data_span:
            self.is_blessed = True
            return

        self.is_blessed = False
        if self.score >= 1.0:
            self._pin_expiration = now + self._config.pin_duration

    def _compute_score(self) -> float:
        values = self._series.values
        if len(values) == 1:
            return values[0]

        fence = self._config.outlier_fence
        if fence <= 0:
            return sum(values) / len(values)

        tests = outlier_scores(values)
        total = 0.0
        for index, (value, test) in enumerate(zip(values, tests)):
            if index == 0 or test > fence:
                total += min(1.0, value)
            else:
                total += value
        return total / len(values)

    def series(self) -> List[Timestamped]:
        return self._series.points()

    def snapshot(self) -> EntitySnapshot:
        return EntitySnapshot(
            entity_id=self.entity_id,
            name=self.name,
            owner_id=self.owner_id,
            owner_name=self.owner_name,
            group_tag=self.group_tag,
            score=self.score,
            latest_metric=self.latest_metric,
            is_pinned=self.is_pinned,
            is_blessed=self.is_blessed,
            pin_remaining=self.pin_remaining,
            point_count=len(self._series),
        )

    def __str__(self) -> str:
        pin = f"pin: {self.pin_remaining.total_seconds():.0f}secs" if self.is_pinned else "no-pin"
        return (
            f"tracking: \"{self.name}\" ({self.entity_id}) -> {self.latest_metric:.2f}ms/f "
            f"{self.score * 100:.0f}% ({len(self._series)}) {pin}"
        )


__all__ = ["Clock", "EntityScore", "EntitySnapshot", "utc_now"]
