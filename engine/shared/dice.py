"""Random rolls for combat, loot and progression.

Every roll takes an explicit ``random.Random`` so a turn can be replayed
from its seed. ``create_turn_rng`` derives one stream per turn from the
run's world seed.
"""

import random
from typing import Protocol


class RandomSource(Protocol):
    """Anything that yields uniform floats in [0, 1)."""

    def random(self) -> float:
        """Return the next uniform draw."""
        ...


def create_turn_rng(world_seed: str, turn_no: int) -> random.Random:
    """Create a deterministic RNG for a single turn.

    Args:
        world_seed: Seed fixed for the lifetime of a run
        turn_no: Turn number being processed

    Returns:
        Seeded Random instance
    """
    return random.Random(f"{world_seed}-turn-{turn_no}")


def chance(rng: RandomSource, probability: float) -> bool:
    """Check whether an event with the given probability happens.

    Args:
        rng: Random source
        probability: Chance in [0, 1]

    Returns:
        True if the draw falls under the probability
    """
    return rng.random() < probability


def random_int(rng: RandomSource, low: int, high: int) -> int:
    """Roll an integer between low and high, both inclusive.

    Uses a single uniform draw so scripted sources stay easy to reason about.

    Args:
        rng: Random source
        low: Minimum value
        high: Maximum value

    Returns:
        Integer in [low, high]

    Raises:
        ValueError: If high is below low
    """
    if high < low:
        raise ValueError(f"Invalid range: {low}..{high}")
    return low + int(rng.random() * (high - low + 1))


def choose(rng: RandomSource, options: list):
    """Pick one element uniformly.

    Args:
        rng: Random source
        options: Non-empty list of options

    Returns:
        The chosen element

    Raises:
        ValueError: If options is empty
    """
    if not options:
        raise ValueError("Cannot choose from an empty list")
    return options[random_int(rng, 0, len(options) - 1)]
