from __future__ import annotations

import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from automod.exemptions import ExemptionPolicy
from automod.registry import EntityRegistry, is_valid_metric, sorted_by_score
from fakes import FakeClock, grid_sample, tracker_config


def build_registry(clock, **kwargs):
    return EntityRegistry("grid", tracker_config(window=10, pin=3), clock=clock, **kwargs)


def test_invalid_metrics_are_dropped_with_warning(caplog):
    clock = FakeClock()
    registry = build_registry(clock)

    with caplog.at_level(logging.WARNING, logger="automod.registry"):
        registry.update([
            grid_sample(1, 0.5),
            grid_sample(2, float("nan")),
            grid_sample(3, -1.0),
            grid_sample(4, float("inf")),
        ])

    assert set(registry.snapshot()) == {1}
    assert "dropped 3 invalid grid sample(s)" in caplog.text


def test_is_valid_metric():
    assert is_valid_metric(0)
    assert is_valid_metric(2.5)
    assert not is_valid_metric(float("nan"))
    assert not is_valid_metric(-0.1)


def test_exempt_owners_and_groups_are_never_tracked():
    clock = FakeClock()
    policy = ExemptionPolicy(owner_ids=[7], group_tags=["ADM"])
    registry = build_registry(clock, exemptions=policy)

    registry.update([
        grid_sample(1, 0.5, owner_id=7),
        grid_sample(2, 0.5, owner_id=8, group_tag="adm"),
        grid_sample(3, 0.5, owner_id=9),
    ])

    assert set(registry.snapshot()) == {3}
    assert 1 not in registry


def test_unsampled_entities_decay_and_are_evicted():
    clock = FakeClock()
    registry = build_registry(clock)

    for _ in range(6):
        registry.update([grid_sample(1, 0.5), grid_sample(2, 0.5)])
        clock.advance(1)

    for _ in range(10):
        registry.update([grid_sample(2, 0.5)])
        clock.advance(1)

    assert 1 not in registry
    assert 2 in registry
    assert len(registry) == 1


def test_stop_tracking_and_clear():
    clock = FakeClock()
    registry = build_registry(clock)
    registry.update([grid_sample(1, 0.5), grid_sample(2, 0.7)])

    registry.stop_tracking(1)
    registry.stop_tracking(99)
    assert set(registry.snapshot()) == {2}

    registry.clear()
    assert len(registry) == 0


def test_laggiest_orders_by_score_then_id():
    clock = FakeClock()
    registry = build_registry(clock)
    registry.update([grid_sample(1, 0.3), grid_sample(2, 0.9), grid_sample(3, 0.9)])

    laggiest = registry.laggiest()

    assert [s.entity_id for s in laggiest] == [3, 2, 1]
    assert [s.entity_id for s in sorted_by_score(laggiest)] == [1, 2, 3]
    assert registry.laggiest(pinned_only=True) == []


def test_lookup_by_id_and_name():
    clock = FakeClock()
    registry = build_registry(clock)
    registry.update([grid_sample(1, 0.3, name="Hauler")])

    assert registry.get(1).name == "Hauler"
    assert registry.get(2) is None
    assert registry.find_by_name("Hauler").entity_id == 1
    assert registry.find_by_name("Nope") is None
    assert [point.value for point in registry.series(1)] == [0.3]
    assert registry.series(2) is None


def test_configure_applies_to_existing_entities():
    clock = FakeClock()
    registry = build_registry(clock)
    registry.update([grid_sample(1, 1.0)])

    registry.configure(tracker_config(budget=2.0, window=10))
    clock.advance(1)
    registry.update([grid_sample(1, 1.0)])

    assert [point.value for point in registry.series(1)] == [1.0, 0.5]


def test_clock_stepping_back_keeps_feeding_every_entity(caplog):
    clock = FakeClock()
    registry = build_registry(clock)
    registry.update([grid_sample(1, 0.5)])

    clock.advance(-1)
    with caplog.at_level(logging.WARNING, logger="automod.registry"):
        registry.update([grid_sample(1, 0.5), grid_sample(2, 0.7)])

    snapshots = registry.snapshot()
    assert snapshots[1].point_count == 2
    assert snapshots[2].point_count == 1
    assert snapshots[2].score == 0.7
    assert "clock went back" in caplog.text

    registry.update([grid_sample(1, 0.5), grid_sample(2, 0.7)])
    assert registry.get(2).point_count == 2
