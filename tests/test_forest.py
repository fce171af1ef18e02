import logging
import random
from pathlib import Path

import pytest

from rabbit.sim.forest import Forest, ForestConfig, Track, TrackDirection
from rabbit.sim.rabbit import Rabbit, RabbitState
from rabbit.sim.terrain import DirectoryTerrain

START = 1_000_000.0


class FakeClock:
    def __init__(self, now: float = START) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class FixedRandom(random.Random):
    """Every draw returns the same value."""

    def __init__(self, value: float) -> None:
        super().__init__(0)
        self.value = value

    def random(self) -> float:
        return self.value


def _build_tree(tmp_path: Path) -> Path:
    root = tmp_path.resolve() / "home"
    for relative in ("a/a1", "a/a2", "b/b1"):
        (root / relative).mkdir(parents=True)
    return root


def _build_wide_tree(tmp_path: Path) -> Path:
    root = tmp_path.resolve() / "wide"
    for top in range(6):
        for sub in range(4):
            (root / f"d{top}" / f"s{sub}").mkdir(parents=True)
    return root


def _build_forest(
    root: Path,
    clock: FakeClock | None = None,
    *,
    rng: random.Random | None = None,
    **config: object,
) -> Forest:
    return Forest(
        DirectoryTerrain(root),
        ForestConfig(**config),
        rng=rng if rng is not None else random.Random(21),
        clock=clock if clock is not None else FakeClock(),
    )


@pytest.mark.parametrize("relative", ["", "a", "a/a1", "b", "b/b1"])
def test_nearby_location_always_moves_when_it_can(tmp_path: Path, relative: str) -> None:
    root = _build_tree(tmp_path)
    forest = _build_forest(root)
    start = str(root / relative) if relative else str(root)

    for _ in range(200):
        destination = forest.nearby_location(start)
        assert destination != start
        assert forest.location_exists(destination)
        assert DirectoryTerrain(root).root in destination


def test_nearby_location_stays_put_when_boxed_in(tmp_path: Path) -> None:
    root = tmp_path.resolve() / "empty"
    root.mkdir()
    forest = _build_forest(root)

    assert forest.nearby_location(str(root)) == str(root)
    assert forest.tracks == {}


def test_nearby_location_leaves_tracks_where_it_departed(tmp_path: Path) -> None:
    root = _build_tree(tmp_path)
    clock = FakeClock()
    forest = _build_forest(root, clock, rng=FixedRandom(0.5))
    leaf = str(root / "a" / "a1")

    destination = forest.nearby_location(leaf)

    assert destination == str(root / "a")
    assert forest.tracks == {leaf: Track(direction=TrackDirection.ASCENDING, timestamp=START)}


def test_nearby_location_descends_when_ascent_is_unlikely(tmp_path: Path) -> None:
    root = _build_tree(tmp_path)
    forest = _build_forest(root, rng=FixedRandom(0.5))

    destination = forest.nearby_location(str(root))

    assert destination == str(root / "a")
    assert forest.tracks[str(root)].direction is TrackDirection.DESCENDING


def test_tracks_can_be_switched_off(tmp_path: Path) -> None:
    root = _build_tree(tmp_path)
    forest = _build_forest(root, leave_tracks=False)

    for _ in range(20):
        forest.nearby_location(str(root / "a"))

    assert forest.tracks == {}


def test_tracks_fade_after_a_fifth_of_idle_time(tmp_path: Path) -> None:
    root = _build_tree(tmp_path)
    clock = FakeClock()
    forest = _build_forest(root, clock, min_rabbits=0, spawn_chance=0.0)
    forest.tracks[str(root / "b")] = Track(direction=TrackDirection.DESCENDING, timestamp=START)

    assert forest.config.track_fade_time == pytest.approx(60.0)
    clock.now += 59
    forest.perform_check(here=str(root))
    assert forest.tracks_at(str(root / "b")) is not None

    clock.now += 1
    forest.perform_check(here=str(root))
    assert forest.tracks_at(str(root / "b")) is None


def test_faraway_location_only_descends_from_root(tmp_path: Path) -> None:
    root = _build_tree(tmp_path)
    forest = _build_forest(root)
    expected = {str(root / name) for name in ("a", "b", "a/a1", "a/a2", "b/b1")}

    picks = {forest.faraway_location() for _ in range(200)}

    assert picks <= expected
    assert str(root / "a") in picks
    assert forest.tracks == {}


def test_faraway_location_avoids_where_rabbit_fled_from(tmp_path: Path) -> None:
    root = _build_tree(tmp_path)
    forest = _build_forest(root)

    for _ in range(200):
        assert forest.faraway_location(str(root / "a")) != str(root / "a")


def test_faraway_location_accepts_only_option(tmp_path: Path) -> None:
    root = tmp_path.resolve() / "narrow"
    (root / "only").mkdir(parents=True)
    forest = _build_forest(root)

    assert forest.faraway_location(str(root / "only")) == str(root / "only")


def test_first_check_populates_fresh_forest(tmp_path: Path) -> None:
    root = _build_tree(tmp_path)
    forest = _build_forest(root)

    spotted = forest.perform_check(here=str(root / "a"))

    assert len(forest.rabbits) >= forest.config.min_rabbits
    assert forest.spotted_count == 0
    assert spotted is None
    assert forest.caught_count == 0
    assert forest.killed_count == 0
    for location, rabbit in forest.rabbits.items():
        assert rabbit.location == location
        assert rabbit.state is RabbitState.WANDERING


def test_repopulate_fills_up_to_minimum(tmp_path: Path) -> None:
    root = _build_wide_tree(tmp_path)
    forest = _build_forest(root, min_rabbits=3, spawn_chance=0.0)

    forest.perform_check(here=str(root))

    assert len(forest.rabbits) == 3


def test_spawn_chance_respects_maximum(tmp_path: Path) -> None:
    root = _build_wide_tree(tmp_path)
    forest = _build_forest(root, min_rabbits=0, max_rabbits=2, spawn_chance=1.0)

    for _ in range(10):
        forest.perform_check(here=str(root))
        assert len(forest.rabbits) <= 2

    assert len(forest.rabbits) >= 1


def test_no_spawns_without_chance_or_minimum(tmp_path: Path) -> None:
    root = _build_tree(tmp_path)
    forest = _build_forest(root, min_rabbits=0, spawn_chance=0.0)

    forest.perform_check(here=str(root))

    assert forest.rabbits == {}


def test_collision_keeps_latest_rabbit_and_is_logged(tmp_path: Path, caplog) -> None:
    root = tmp_path.resolve() / "tiny"
    root.mkdir()
    forest = _build_forest(root, min_rabbits=2, spawn_chance=0.0)

    with caplog.at_level(logging.WARNING, logger="rabbit.sim.forest"):
        forest.perform_check(here=str(tmp_path))

    assert list(forest.rabbits) == [str(root)]
    assert "ran into each other" in caplog.text


def test_is_rabbit_here_uses_actor_location(tmp_path: Path) -> None:
    root = _build_tree(tmp_path)
    here = str(root / "b")
    forest = Forest(
        DirectoryTerrain(root),
        ForestConfig(spawn_chance=0.0),
        rng=random.Random(2),
        clock=FakeClock(),
        locate=lambda: here,
    )
    rabbit = Rabbit(forest, location=here, last_moved=START)
    forest.rabbits[here] = rabbit

    assert forest.is_rabbit_here() is True
    assert forest.is_rabbit_here(str(root / "a")) is False
    assert forest.perform_check() is rabbit
    assert forest.spotted_count == 1
    assert forest.rabbits == {here: rabbit}


def test_counters_never_decrease(tmp_path: Path) -> None:
    root = _build_wide_tree(tmp_path)
    clock = FakeClock()
    forest = _build_forest(root, clock, min_rabbits=4, spawn_chance=0.5)
    previous = (0, 0, 0)

    for step in range(40):
        clock.now += 37.0
        here = str(root / f"d{step % 6}")
        forest.perform_check(here=here)
        if forest.is_rabbit_here(here):
            forest.perform_catch(here=here)
        counters = (forest.spotted_count, forest.caught_count, forest.killed_count)
        assert all(after >= before for after, before in zip(counters, previous))
        previous = counters
        for location, rabbit in forest.rabbits.items():
            assert rabbit.location == location
            assert rabbit.is_playing


@pytest.mark.parametrize(
    ("field", "value", "message"),
    [
        ("min_rabbits", -1, "min_rabbits"),
        ("max_rabbits", 0, "max_rabbits"),
        ("spawn_chance", 1.5, "spawn_chance"),
        ("ascend_chance", -0.1, "ascend_chance"),
        ("two_step_chance", "often", "two_step_chance"),
        ("spawn_chance", True, "spawn_chance"),
        ("idle_duration", None, "idle_duration"),
        ("flee_duration", -5.0, "flee_duration"),
    ],
)
def test_config_rejects_invalid_values(field: str, value: object, message: str) -> None:
    with pytest.raises(ValueError, match=message):
        ForestConfig(**{field: value})


def test_register_refuses_rabbit_without_location(tmp_path: Path) -> None:
    root = _build_tree(tmp_path)
    forest = _build_forest(root)
    rabbit = Rabbit(forest, location=str(root / "a"), last_moved=START)
    rabbit.location = None

    with pytest.raises(RuntimeError, match="left play"):
        forest._register(forest.rabbits, rabbit)
    assert forest.rabbits == {}
