import random
from typing import Sequence

import pytest

from santa.derangement import Derangement, NoDerangement, derange, pairs, rotate


def assert_derangement(items: Sequence, result: Derangement) -> None:
    assert sorted(result.order) == sorted(items), "Not a permutation"
    for original, moved in zip(items, result.order):
        assert original != moved, "Fixed point detected"


class IdentityShuffle(random.Random):
    """Never moves anything, so every random trial has fixed points."""

    def shuffle(self, x) -> None:
        return None


@pytest.mark.parametrize("n", [2, 3, 4, 5, 10, 50])
def test_derange_has_no_fixed_points(n: int) -> None:
    rng = random.Random(n)
    items = [f"user{i}" for i in range(n)]
    for _ in range(100):
        assert_derangement(items, derange(items, rng=rng))


def test_derange_random_id_sets() -> None:
    rng = random.Random(2024)
    for _ in range(200):
        n = rng.randint(2, 30)
        items = [str(x) for x in rng.sample(range(10**9), n)]
        result = derange(items, rng=rng)
        assert_derangement(items, result)
        assert not result.fallback


@pytest.mark.parametrize("n", [0, 1])
def test_derange_rejects_too_few(n: int) -> None:
    with pytest.raises(NoDerangement):
        derange(["a"] * n)


def test_no_derangement_is_value_error() -> None:
    assert issubclass(NoDerangement, ValueError)


def test_derange_rejects_duplicates() -> None:
    with pytest.raises(ValueError):
        derange(["a", "b", "a"])


def test_two_items_swap() -> None:
    assert derange(["a", "b"]).order == ("b", "a")


def test_fallback_rotation_when_trials_exhausted() -> None:
    items = ["a", "b", "c", "d"]
    result = derange(items, rng=IdentityShuffle())
    assert result.fallback
    assert result.trials == 200
    assert result.order == ("b", "c", "d", "a")
    assert_derangement(items, result)


@pytest.mark.parametrize("n", [2, 3, 7])
def test_fallback_with_zero_trials(n: int) -> None:
    items = list(range(n))
    result = derange(items, max_trials=0)
    assert result.fallback
    assert result.trials == 0
    assert_derangement(items, result)


def test_derange_does_not_mutate_input() -> None:
    items = ["a", "b", "c", "d", "e"]
    snapshot = list(items)
    derange(items, rng=random.Random(1))
    derange(items, rng=IdentityShuffle())
    assert items == snapshot


def test_derange_accepts_tuples() -> None:
    items = ("x", "y", "z")
    assert_derangement(items, derange(items, rng=random.Random(3)))


def test_rotate() -> None:
    assert rotate([1, 2, 3]) == (2, 3, 1)


def test_pairs_maps_giver_to_recipient() -> None:
    items = ["a", "b", "c"]
    result = Derangement(order=("c", "a", "b"), trials=1)
    assert pairs(items, result) == {"a": "c", "b": "a", "c": "b"}
