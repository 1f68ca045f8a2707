import random
from dataclasses import dataclass
from typing import Dict, Hashable, Optional, Sequence, Tuple

MAX_TRIALS = 200


class NoDerangement(ValueError):
    pass


@dataclass(frozen=True)
class Derangement:
    order: Tuple[Hashable, ...]
    trials: int
    fallback: bool = False


def rotate(items: Sequence[Hashable]) -> Tuple[Hashable, ...]:
    return tuple(items[1:]) + tuple(items[:1])


def derange(items: Sequence[Hashable], *, max_trials: int = MAX_TRIALS,
            rng: Optional[random.Random] = None) -> Derangement:
    """Shuffle ``items`` so that no element stays at its own index.

    Tries up to ``max_trials`` uniform shuffles and keeps the first one
    without fixed points; if none qualifies, falls back to a rotation by
    one, which is always a derangement for two or more items.
    """
    n = len(items)
    if n < 2:
        raise NoDerangement(f"Need >=2 items, got {n}")
    if len(set(items)) != n:
        raise ValueError("Items must be distinct")

    rng = rng or random.Random()
    candidate = list(items)
    for trial in range(1, max_trials + 1):
        rng.shuffle(candidate)
        if all(a != b for a, b in zip(items, candidate)):
            return Derangement(order=tuple(candidate), trials=trial)

    return Derangement(order=rotate(items), trials=max_trials, fallback=True)


def pairs(items: Sequence[Hashable], result: Derangement) -> Dict[Hashable, Hashable]:
    return dict(zip(items, result.order))
