from __future__ import annotations

import random


def system_rng() -> random.Random:
    """OS entropy source. Nothing about it is saved, so there is no stream state to restore."""
    return random.SystemRandom()


def rand_float(rng: random.Random) -> float:
    return rng.random()


def rand_range(rng: random.Random, low: int, high: int) -> int:
    """Uniform integer in [low, high], both ends inclusive."""
    if high < low:
        raise ValueError(f"rand_range requires low <= high (got {low}, {high})")
    return rng.randint(low, high)


def chance(rng: random.Random, probability: float) -> bool:
    """True when a uniform draw lands under ``probability``."""
    return rand_float(rng) < probability
