from __future__ import annotations

import logging
import os
import random
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from rabbit.sim.rabbit import (
    DEFAULT_FLEE_DURATION,
    DEFAULT_IDLE_DURATION,
    Rabbit,
    RabbitAction,
    RabbitState,
    rabbit_machine,
)
from rabbit.sim.rng import chance, system_rng
from rabbit.sim.state import Machine
from rabbit.sim.terrain import DirectoryTerrain

logger = logging.getLogger(__name__)

DEFAULT_MIN_RABBITS = 1
DEFAULT_MAX_RABBITS = 15
DEFAULT_SPAWN_CHANCE = 0.20
# Ascending only ever has one option, so it is kept rare.
DEFAULT_ASCEND_CHANCE = 0.30
DEFAULT_TWO_STEP_CHANCE = 0.50
TRACK_FADE_DIVISOR = 5
MAX_SPAWN_ATTEMPTS_PER_RABBIT = 4


def _is_number(value: object) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class TrackDirection(Enum):
    ASCENDING = "ascending"
    DESCENDING = "descending"


@dataclass(frozen=True)
class Track:
    """Where a rabbit went from the location the track is filed under."""

    direction: TrackDirection
    timestamp: float

    def to_dict(self) -> dict[str, Any]:
        return {"direction": self.direction.value, "timestamp": self.timestamp}

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "Track":
        return cls(direction=TrackDirection(payload["direction"]), timestamp=float(payload["timestamp"]))


@dataclass(frozen=True)
class ForestConfig:
    min_rabbits: int = DEFAULT_MIN_RABBITS
    max_rabbits: int = DEFAULT_MAX_RABBITS
    spawn_chance: float = DEFAULT_SPAWN_CHANCE
    ascend_chance: float = DEFAULT_ASCEND_CHANCE
    two_step_chance: float = DEFAULT_TWO_STEP_CHANCE
    idle_duration: float = DEFAULT_IDLE_DURATION
    flee_duration: float = DEFAULT_FLEE_DURATION
    leave_tracks: bool = True

    def __post_init__(self) -> None:
        if isinstance(self.min_rabbits, bool) or not isinstance(self.min_rabbits, int) or self.min_rabbits < 0:
            raise ValueError("min_rabbits must be a non-negative integer")
        if isinstance(self.max_rabbits, bool) or not isinstance(self.max_rabbits, int):
            raise ValueError("max_rabbits must be an integer")
        if self.max_rabbits < self.min_rabbits:
            raise ValueError("max_rabbits must be >= min_rabbits")
        for name in ("spawn_chance", "ascend_chance", "two_step_chance"):
            value = getattr(self, name)
            if not _is_number(value) or not 0.0 <= value <= 1.0:
                raise ValueError(f"{name} must be a number within [0, 1]")
        for name in ("idle_duration", "flee_duration"):
            value = getattr(self, name)
            if not _is_number(value) or value < 0:
                raise ValueError(f"{name} must be a number >= 0")

    @property
    def track_fade_time(self) -> float:
        return self.idle_duration / TRACK_FADE_DIVISOR


class Forest:
    """A place that can be traversed: the directory tree below the terrain root.

    Holds the rabbit registry (one rabbit per location), the tracks left
    behind by nearby moves and the lifetime counters. The location of the
    actor defaults to the current working directory.
    """

    def __init__(
        self,
        terrain: DirectoryTerrain,
        config: ForestConfig | None = None,
        *,
        rng: random.Random | None = None,
        clock: Callable[[], float] = time.time,
        locate: Callable[[], str] = os.getcwd,
    ) -> None:
        self.terrain = terrain
        self.config = config if config is not None else ForestConfig()
        self.rng = rng if rng is not None else system_rng()
        self.clock = clock
        self.locate = locate
        self.machine: Machine[RabbitState, RabbitAction] = rabbit_machine()
        self.rabbits: dict[str, Rabbit] = {}
        self.tracks: dict[str, Track] = {}
        self.spotted_count = 0
        self.caught_count = 0
        self.killed_count = 0

    def now(self) -> float:
        return self.clock()

    def _here(self, here: str | None) -> str:
        return here if here is not None else self.locate()

    def location_exists(self, location: str | None) -> bool:
        return self.terrain.exists(location)

    def nearby_location(self, location: str) -> str:
        """A location one or two random directory changes away from ``location``.

        The result only equals ``location`` when the rabbit can neither ascend
        nor descend from it.
        """
        steps = 2 if chance(self.rng, self.config.two_step_chance) else 1
        # A single step can never lead back to the start.
        for attempt_steps in (steps, 1):
            walk = self._walk(location, attempt_steps)
            if not walk:
                return location
            if walk[-1][0] != location:
                break
        else:
            raise RuntimeError(f"rabbit did not move away from {location}")

        if self.config.leave_tracks:
            stamp = self.now()
            departed = location
            for arrived, direction in walk:
                self.tracks[departed] = Track(direction=direction, timestamp=stamp)
                departed = arrived
        return walk[-1][0]

    def _walk(self, start: str, steps: int) -> list[tuple[str, TrackDirection]]:
        terrain = self.terrain
        current = start
        walk: list[tuple[str, TrackDirection]] = []
        for _ in range(steps):
            can_ascend = terrain.can_ascend(current)
            can_descend = terrain.can_descend(current)
            if not can_ascend and not can_descend:
                break
            prefer_ascend = chance(self.rng, self.config.ascend_chance)
            if (prefer_ascend and can_ascend) or not can_descend:
                current = terrain.ascend(current)
                walk.append((current, TrackDirection.ASCENDING))
            else:
                current = terrain.random_descent(self.rng, current)
                walk.append((current, TrackDirection.DESCENDING))
        return walk

    def faraway_location(self, location: str | None = None) -> str:
        """A random location a step or two below the root. Leaves no tracks.

        Tries once more with the other step count when the first draw lands
        back on ``location``; after that the same location is accepted.
        """
        steps = 2 if chance(self.rng, self.config.two_step_chance) else 1
        destination = self._descend_from_root(steps)
        if destination == location:
            destination = self._descend_from_root(1 if steps == 2 else 2)
        return destination

    def _descend_from_root(self, steps: int) -> str:
        current = self.terrain.root
        for _ in range(steps):
            if self.terrain.can_descend(current):
                current = self.terrain.random_descent(self.rng, current)
        return current

    def spawn_rabbit(self) -> Rabbit:
        rabbit = Rabbit(
            self,
            location=self.faraway_location(),
            last_moved=self.now(),
            idle_duration=self.config.idle_duration,
            flee_duration=self.config.flee_duration,
        )
        logger.debug(f"rabbit spawned at {rabbit.location}")
        return rabbit

    def is_rabbit_here(self, here: str | None = None) -> bool:
        return self._here(here) in self.rabbits

    def tracks_at(self, here: str | None = None) -> Track | None:
        return self.tracks.get(self._here(here))

    def perform_check(self, here: str | None = None) -> Rabbit | None:
        """Update every rabbit for a look around ``here``. Returns a rabbit spotted there."""
        location = self._here(here)
        spotted: Rabbit | None = None
        registry: dict[str, Rabbit] = {}

        for rabbit in list(self.rabbits.values()):
            rabbit.disturbance_at(location)
            if rabbit.is_playing:
                if rabbit.just_spotted:
                    spotted = rabbit
                    self.spotted_count += 1
                self._register(registry, rabbit)
            else:
                self._retire(rabbit)

        self.rabbits = registry
        self._repopulate()
        self._fade_tracks()
        return spotted

    def perform_catch(self, here: str | None = None) -> bool:
        location = self._here(here)
        self._fade_tracks()
        rabbit = self.rabbits.pop(location, None)
        if rabbit is None:
            return False
        caught = rabbit.try_catch(location)
        self._settle(rabbit)
        return caught

    def perform_tag(self, tag: str, here: str | None = None) -> bool:
        location = self._here(here)
        self._fade_tracks()
        rabbit = self.rabbits.pop(location, None)
        if rabbit is None:
            return False
        tagged = rabbit.try_tag(location, tag)
        self._settle(rabbit)
        return tagged

    def _settle(self, rabbit: Rabbit) -> None:
        if rabbit.is_playing:
            self._register(self.rabbits, rabbit)
        else:
            self._retire(rabbit)

    def _register(self, registry: dict[str, Rabbit], rabbit: Rabbit) -> None:
        if rabbit.location is None:
            raise RuntimeError(f"cannot register a rabbit that left play: {rabbit!r}")
        # TODO: reroll the destination instead of dropping a rabbit on collision.
        displaced = registry.get(rabbit.location)
        if displaced is not None and displaced is not rabbit:
            logger.warning(f"two rabbits ran into each other at {rabbit.location}; dropping {displaced!r}")
        registry[rabbit.location] = rabbit

    def _retire(self, rabbit: Rabbit) -> None:
        if rabbit.state is RabbitState.DEAD:
            self.killed_count += 1
            logger.debug(f"rabbit died at {rabbit.last_location}")
        elif rabbit.state is RabbitState.CAUGHT:
            self.caught_count += 1
            logger.debug(f"rabbit caught at {rabbit.last_location}")

    def _repopulate(self) -> None:
        """Fill the forest up to the minimum, then maybe spawn one more."""
        attempts = self.config.min_rabbits * MAX_SPAWN_ATTEMPTS_PER_RABBIT
        while len(self.rabbits) < self.config.min_rabbits and attempts > 0:
            attempts -= 1
            self._register(self.rabbits, self.spawn_rabbit())

        if len(self.rabbits) < self.config.max_rabbits and chance(self.rng, self.config.spawn_chance):
            self._register(self.rabbits, self.spawn_rabbit())

    def _fade_tracks(self) -> None:
        now = self.now()
        fade_time = self.config.track_fade_time
        for location in [loc for loc, track in self.tracks.items() if now - track.timestamp >= fade_time]:
            del self.tracks[location]

    def to_dict(self) -> dict[str, Any]:
        return {
            "rabbits": {location: rabbit.to_dict() for location, rabbit in sorted(self.rabbits.items())},
            "tracks": {location: track.to_dict() for location, track in sorted(self.tracks.items())},
            "spotted_count": self.spotted_count,
            "caught_count": self.caught_count,
            "killed_count": self.killed_count,
        }

    @classmethod
    def from_dict(
        cls,
        payload: dict[str, Any],
        terrain: DirectoryTerrain,
        config: ForestConfig | None = None,
        *,
        rng: random.Random | None = None,
        clock: Callable[[], float] = time.time,
        locate: Callable[[], str] = os.getcwd,
    ) -> "Forest":
        forest = cls(terrain, config, rng=rng, clock=clock, locate=locate)
        # The home reference is never saved; Rabbit.from_dict re-attaches it.
        forest.rabbits = {
            str(location): Rabbit.from_dict(record, forest)
            for location, record in payload.get("rabbits", {}).items()
        }
        forest.tracks = {
            str(location): Track.from_dict(record) for location, record in payload.get("tracks", {}).items()
        }
        forest.spotted_count = int(payload.get("spotted_count", 0))
        forest.caught_count = int(payload.get("caught_count", 0))
        forest.killed_count = int(payload.get("killed_count", 0))
        return forest
