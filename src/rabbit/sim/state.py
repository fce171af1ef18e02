from __future__ import annotations

from collections.abc import Hashable
from enum import Enum
from typing import Generic, Protocol, TypeVar

S = TypeVar("S", bound=Hashable)
A = TypeVar("A", bound=Hashable)


class Wildcard(Enum):
    ANY = "*"


ANY = Wildcard.ANY


class Stateful(Protocol[S, A]):
    """Something that has a state and decides, per edge, whether it can take it.

    ``attempt_transition`` evaluates the edge guard and, only when it passes,
    applies the edge effect to the entity. The machine assigns the new state.
    """

    state: S

    def attempt_transition(self, action: A, target: S) -> bool:
        ...


class Machine(Generic[S, A]):
    """Transition table over opaque state/action tokens.

    Lookups try the exact ``(state, action)`` edge first, then the edge
    registered for any action from ``state``, then the edge registered for
    ``action`` from any state.
    """

    def __init__(self) -> None:
        self.transitions: dict[tuple[S, A], S] = {}
        self.any_action: dict[S, S] = {}
        self.any_state: dict[A, S] = {}
        self._frozen = False

    @property
    def frozen(self) -> bool:
        return self._frozen

    def freeze(self) -> "Machine[S, A]":
        self._frozen = True
        return self

    def _require_mutable(self) -> None:
        if self._frozen:
            raise RuntimeError("transition table is frozen")

    def add_transition(self, from_state: S | Wildcard, action: A | Wildcard, to_state: S) -> None:
        self._require_mutable()
        if from_state is ANY and action is ANY:
            raise ValueError("a transition needs a concrete state or a concrete action")
        if from_state is ANY:
            self.any_state[action] = to_state
        elif action is ANY:
            self.any_action[from_state] = to_state
        else:
            self.transitions[(from_state, action)] = to_state

    def remove_transition(self, from_state: S | Wildcard, action: A | Wildcard) -> None:
        """Remove one edge. ``ANY`` only removes the wildcard entry itself."""
        self._require_mutable()
        if from_state is ANY:
            self.any_state.pop(action, None)
        elif action is ANY:
            self.any_action.pop(from_state, None)
        else:
            self.transitions.pop((from_state, action), None)

    def target_for(self, state: S, action: A) -> S | None:
        target = self.transitions.get((state, action))
        if target is not None:
            return target
        target = self.any_action.get(state)
        if target is not None:
            return target
        return self.any_state.get(action)

    def perform(self, entity: Stateful[S, A], action: A) -> bool:
        """Run ``action`` against ``entity``. A missing edge is a quiet no-op."""
        target = self.target_for(entity.state, action)
        if target is None:
            return False
        if not entity.attempt_transition(action, target):
            return False
        entity.state = target
        return True
