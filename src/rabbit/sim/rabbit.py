from __future__ import annotations

import logging
import weakref
from enum import Enum
from typing import TYPE_CHECKING, Any

from rabbit.sim.rng import chance
from rabbit.sim.state import Machine

if TYPE_CHECKING:
    from rabbit.sim.forest import Forest

logger = logging.getLogger(__name__)

DEFAULT_IDLE_DURATION = 5 * 60.0
DEFAULT_FLEE_DURATION = 5.0


class RabbitState(Enum):
    WANDERING = "wandering"
    # Lasts for exactly one wakeup so the caller that disturbed the rabbit can see it.
    SPOTTED = "spotted"
    FLEEING = "fleeing"
    CAUGHT = "caught"
    # Only happens when the directory the rabbit was in disappears.
    DEAD = "dead"


class RabbitAction(Enum):
    WAIT = "wait"
    SPOT = "spot"
    FLEE = "flee"
    CATCH = "catch"
    KILL = "kill"


PLAYING_STATES = frozenset({RabbitState.WANDERING, RabbitState.SPOTTED, RabbitState.FLEEING})


def rabbit_machine() -> Machine[RabbitState, RabbitAction]:
    """Build the frozen transition table shared by every rabbit of a forest."""
    machine: Machine[RabbitState, RabbitAction] = Machine()
    machine.add_transition(RabbitState.WANDERING, RabbitAction.WAIT, RabbitState.WANDERING)
    machine.add_transition(RabbitState.WANDERING, RabbitAction.SPOT, RabbitState.SPOTTED)
    machine.add_transition(RabbitState.SPOTTED, RabbitAction.WAIT, RabbitState.FLEEING)
    machine.add_transition(RabbitState.FLEEING, RabbitAction.WAIT, RabbitState.WANDERING)
    for state in (RabbitState.WANDERING, RabbitState.SPOTTED, RabbitState.FLEEING):
        machine.add_transition(state, RabbitAction.KILL, RabbitState.DEAD)
        machine.add_transition(state, RabbitAction.CATCH, RabbitState.CAUGHT)
        machine.add_transition(state, RabbitAction.FLEE, RabbitState.FLEEING)
    return machine.freeze()


def catch_probability(elapsed: float, flee_duration: float) -> float:
    """Chance of a catch ``elapsed`` seconds after the rabbit was spotted.

    Falls linearly from 1 at the moment of spotting to 0 once the flee
    duration has passed. A rabbit with no flee duration gets no head start.
    """
    if flee_duration <= 0:
        return 1.0
    probability = 1.0 - max(0.0, elapsed) / flee_duration
    return min(1.0, max(0.0, probability))


class Rabbit:
    """A simple creature that likes to move around a forest.

    You can spot it, try to catch it, tag it, or accidentally kill it. Every
    state change goes through the forest's shared machine.
    """

    def __init__(
        self,
        home: Forest,
        *,
        location: str | None,
        last_moved: float,
        tag: str | None = None,
        last_location: str | None = None,
        last_spotted: float | None = None,
        state: RabbitState = RabbitState.WANDERING,
        idle_duration: float = DEFAULT_IDLE_DURATION,
        flee_duration: float = DEFAULT_FLEE_DURATION,
    ) -> None:
        if idle_duration < 0:
            raise ValueError("idle_duration must be >= 0")
        if flee_duration < 0:
            raise ValueError("flee_duration must be >= 0")
        self._home: weakref.ReferenceType[Forest] | None = None
        self.machine: Machine[RabbitState, RabbitAction] | None = None
        self.location = location
        self.tag = tag
        self.last_location = last_location
        self.last_moved = float(last_moved)
        self.last_spotted = None if last_spotted is None else float(last_spotted)
        self.state = state
        self.idle_duration = float(idle_duration)
        self.flee_duration = float(flee_duration)
        self.attach(home)

    def __repr__(self) -> str:
        return f"Rabbit(state={self.state.value}, location={self.location!r}, tag={self.tag!r})"

    def attach(self, home: Forest) -> None:
        """Point the rabbit at its forest. Called on creation and after loading."""
        self._home = weakref.ref(home)
        self.machine = home.machine

    @property
    def home(self) -> Forest:
        home = self._home() if self._home is not None else None
        if home is None:
            raise RuntimeError("rabbit has no home forest attached")
        return home

    @property
    def is_playing(self) -> bool:
        return self.state in PLAYING_STATES

    @property
    def just_spotted(self) -> bool:
        return self.state is RabbitState.SPOTTED

    @property
    def was_spotted(self) -> bool:
        return self.last_spotted is not None

    def _perform(self, action: RabbitAction) -> bool:
        if self.machine is None:
            raise RuntimeError("rabbit has no state machine attached")
        before = self.state
        performed = self.machine.perform(self, action)
        if performed:
            logger.debug(f"rabbit {before.value} -{action.value}-> {self.state.value} at {self.location}")
        return performed

    def wakeup(self) -> None:
        """Catch up on whatever the rabbit did since it was last looked at."""
        if not self.is_playing:
            return
        if not self.home.location_exists(self.location):
            self._perform(RabbitAction.KILL)
            return
        self._perform(RabbitAction.WAIT)

    def disturbance_at(self, location: str) -> None:
        self.wakeup()
        if self.is_playing and self.location == location:
            self._perform(RabbitAction.SPOT)

    def try_catch(self, location: str) -> bool:
        self.wakeup()
        if not self.is_playing or self.location != location:
            return False
        if self._perform(RabbitAction.CATCH):
            return True
        self._perform(RabbitAction.FLEE)
        return False

    def try_tag(self, location: str, tag: str) -> bool:
        self.wakeup()
        if not self.is_playing or self.location != location:
            return False
        self.tag = tag
        self._perform(RabbitAction.FLEE)
        return True

    def catch_probability(self, now: float | None = None) -> float:
        if self.last_spotted is None:
            return 0.0
        if now is None:
            now = self.home.now()
        return catch_probability(now - self.last_spotted, self.flee_duration)

    def attempt_transition(self, action: RabbitAction, target: RabbitState) -> bool:
        home = self.home
        now = home.now()

        if action is RabbitAction.WAIT:
            if self.state is RabbitState.WANDERING:
                if now - self.last_moved < self.idle_duration:
                    return False
                self._move_to(home.nearby_location(self.location), now)
            elif self.state is RabbitState.FLEEING:
                if self.last_spotted is not None and now - self.last_spotted < self.flee_duration:
                    return False
                self._move_to(home.faraway_location(self.location), now)
            return True

        if action is RabbitAction.SPOT:
            self.last_spotted = now
            return True

        if action is RabbitAction.FLEE:
            self._move_to(home.faraway_location(self.location), now)
            return True

        if action is RabbitAction.CATCH:
            if not chance(home.rng, self.catch_probability(now)):
                return False
            self._leave_play()
            return True

        if action is RabbitAction.KILL:
            if home.location_exists(self.location):
                return False
            self._leave_play()
            return True

        return False

    def _move_to(self, location: str, now: float) -> None:
        self.last_location = self.location
        self.location = location
        self.last_moved = now

    def _leave_play(self) -> None:
        self.last_location = self.location
        self.location = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "location": self.location,
            "tag": self.tag,
            "last_location": self.last_location,
            "last_moved": self.last_moved,
            "last_spotted": self.last_spotted,
            "state": self.state.value,
            "idle_duration": self.idle_duration,
            "flee_duration": self.flee_duration,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any], home: Forest) -> "Rabbit":
        last_spotted = payload.get("last_spotted")
        return cls(
            home,
            location=payload.get("location"),
            tag=payload.get("tag"),
            last_location=payload.get("last_location"),
            last_moved=float(payload["last_moved"]),
            last_spotted=None if last_spotted is None else float(last_spotted),
            state=RabbitState(payload["state"]),
            idle_duration=float(payload.get("idle_duration", DEFAULT_IDLE_DURATION)),
            flee_duration=float(payload.get("flee_duration", DEFAULT_FLEE_DURATION)),
        )
