"""Timestamped series with windowed retention and outlier scoring."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from statistics import mean, stdev
from typing import Iterator, List, Sequence


@dataclass(frozen=True)
class Timestamped:
    """Single point of a :class:`TimeSeries`."""

    timestamp: datetime
    value: float

    def __iter__(self) -> Iterator[object]:
        yield self.timestamp
        yield self.value


class TimeSeries:
    """Append-only sequence of points ordered by timestamp.

    Timestamps must be strictly increasing. The series is not thread-safe;
    owners are expected to serialize access.
    """

    def __init__(self) -> None:
        self._timestamps: List[datetime] = []
        self._values: List[float] = []

    def __len__(self) -> int:
        return len(self._timestamps)

    def __getitem__(self, index: int) -> Timestamped:
        return Timestamped(self._timestamps[index], self._values[index])

    def __iter__(self) -> Iterator[Timestamped]:
        for timestamp, value in zip(self._timestamps, self._values):
            yield Timestamped(timestamp, value)

    @property
    def values(self) -> Sequence[float]:
        return tuple(self._values)

    def add(self, timestamp: datetime, value: float) -> None:
        if self._timestamps and timestamp <= self._timestamps[-1]:
            raise ValueError(
                f"timestamp {timestamp.isoformat()} is not newer than "
                f"{self._timestamps[-1].isoformat()}"
            )
        self._timestamps.append(timestamp)
        self._values.append(value)

    def retain(self, min_timestamp: datetime) -> None:
        """Drop every point at or before ``min_timestamp``."""

        cut = 0
        while cut < len(self._timestamps) and self._timestamps[cut] <= min_timestamp:
            cut += 1
        if cut:
            del self._timestamps[:cut]
            del self._values[:cut]

    def span(self) -> timedelta:
        if len(self._timestamps) < 2:
            return timedelta(0)
        return self._timestamps[-1] - self._timestamps[0]

    def clear(self) -> None:
        self._timestamps.clear()
        self._values.clear()

    def points(self) -> List[Timestamped]:
        return list(self)


def outlier_scores(values: Sequence[float]) -> List[float]:
    """Return ``|value - mean| / stdev`` for every value.

    Uses the sample standard deviation. Series shorter than two points, or
    with no spread at all, score zero everywhere.
    """

    if len(values) < 2:
        return [0.0] * len(values)

    center = mean(values)
    spread = stdev(values)
    if spread == 0:
        return [0.0] * len(values)

    return [abs(value - center) / spread for value in values]


__all__ = ["TimeSeries", "Timestamped", "outlier_scores"]
