from __future__ import annotations

import sys
import threading
from datetime import timedelta
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from automod.alerts import WarningRecord, WarningTracker
from automod.entity import EntitySnapshot
from automod.interfaces import WarningState
from fakes import FakeNotifier


def snapshot(entity_id: int, score: float, *, owner_id: int = 1, pin: float = 0, name=None) -> EntitySnapshot:
    return EntitySnapshot(
        entity_id=entity_id,
        name=name or f"entity-{entity_id}",
        owner_id=owner_id,
        owner_name=f"player-{owner_id}",
        group_tag=None,
        score=score,
        latest_metric=score,
        is_pinned=pin > 0,
        is_blessed=False,
        pin_remaining=timedelta(seconds=pin),
        point_count=1,
    )


def test_record_prefers_longer_pin_over_higher_score():
    player = snapshot(1, 0.8, pin=30, name="Alice")
    grid = snapshot(10, 1.4, pin=5)

    record = WarningRecord.from_entities(1, player, grid)

    assert record.entity_id == 1
    assert record.owner_name == "Alice"
    assert record.pin_remaining == timedelta(seconds=30)
    assert record.is_pinned


def test_record_falls_back_to_grid_when_it_dominates():
    grid = snapshot(10, 0.9)

    record = WarningRecord.from_entities(1, None, grid)

    assert record.entity_id == 10
    assert record.owner_name == "player-1"
    assert record.score == 0.9


def test_record_ignores_pins_when_asked():
    grid = snapshot(10, 1.2, pin=60)

    record = WarningRecord.from_entities(1, None, grid, include_pins=False)

    assert not record.is_pinned
    assert record.score == 1.2


def test_warning_lifecycle_notifies_on_each_change():
    notifier = FakeNotifier()
    tracker = WarningTracker(notifier)

    tracker.update([WarningRecord.from_entities(1, None, snapshot(10, 0.8))])
    tracker.update([WarningRecord.from_entities(1, None, snapshot(10, 0.85))])
    tracker.on_self_checked(1)
    tracker.update([WarningRecord.from_entities(1, None, snapshot(10, 1.1, pin=20))])
    tracker.update([])

    assert notifier.events == [
        (1, WarningState.NEEDS_SELF_CHECK),
        (1, WarningState.NEEDS_REDUCTION),
        (1, WarningState.MUST_WAIT_OUT_PIN),
        (1, WarningState.CLEARED),
    ]
    assert tracker.warnings == {}
    assert tracker.state_of(1) is None


def test_find_for_entity_and_clear():
    notifier = FakeNotifier()
    tracker = WarningTracker(notifier)
    tracker.update([
        WarningRecord.from_entities(1, None, snapshot(10, 0.8)),
        WarningRecord.from_entities(2, None, snapshot(20, 0.9, owner_id=2)),
    ])

    assert tracker.find_for_entity(20).owner_id == 2
    assert tracker.find_for_entity(99) is None

    tracker.clear()

    assert notifier.states == {1: WarningState.CLEARED, 2: WarningState.CLEARED}


def test_self_check_for_unknown_owner_is_ignored():
    notifier = FakeNotifier()
    tracker = WarningTracker(notifier)

    tracker.on_self_checked(5)
    tracker.remove(5)

    assert notifier.events == []


def snapshot_record(owner_id: int, entity_id: int) -> WarningRecord:
    return WarningRecord(owner_id, f"player-{owner_id}", entity_id, 0.9, timedelta(0))


def test_concurrent_readers_see_consistent_warnings():
    tracker = WarningTracker(FakeNotifier())
    records = [snapshot_record(owner_id, owner_id * 10) for owner_id in range(1, 200)]
    errors = []
    done = threading.Event()

    def read():
        try:
            while not done.is_set():
                tracker.find_for_entity(1990)
                tracker.state_of(7)
                len(tracker.warnings)
        except Exception as exc:
            errors.append(exc)

    reader = threading.Thread(target=read)
    reader.start()
    try:
        for _ in range(200):
            tracker.update(records)
            tracker.remove(7)
            tracker.update(records[::2])
            tracker.clear()
    finally:
        done.set()
        reader.join()

    assert errors == []
    assert tracker.warnings == {}


def test_notifier_may_read_tracker_while_it_changes():
    seen = []

    class ReadingNotifier(FakeNotifier):
        def set_warning_state(self, owner_id, state, record) -> None:
            super().set_warning_state(owner_id, state, record)
            seen.append(tracker.find_for_entity(record.entity_id))

    tracker = WarningTracker(ReadingNotifier())
    tracker.update([snapshot_record(1, 10), snapshot_record(2, 20)])
    tracker.clear()

    assert [record.entity_id if record else None for record in seen] == [10, 20, None, None]