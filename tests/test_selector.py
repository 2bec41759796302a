import random
from collections import Counter

import pytest

from rustytablet.pulse.selector import pick_uniform, pick_weighted


def test_pick_weighted_matches_relative_weights():
    weights = {"A": 50, "B": 30, "C": 20}
    rng = random.Random(42)
    draws = 10_000
    counts = Counter(pick_weighted(weights, rng) for _ in range(draws))

    total = sum(weights.values())
    chi_square = 0.0
    for key, weight in weights.items():
        expected = draws * weight / total
        chi_square += (counts[key] - expected) ** 2 / expected
    # df=2, p=0.001
    assert chi_square < 13.82


def test_pick_weighted_accepts_unnormalized_weights():
    rng = random.Random(7)
    counts = Counter(pick_weighted({"x": 0.3, "y": 0.1}, rng) for _ in range(4000))
    assert 0.7 < counts["x"] / 4000 < 0.8


def test_pick_weighted_degenerate_map_always_returns_positive_key():
    rng = random.Random(3)
    assert {pick_weighted({"A": 1, "B": 0}, rng) for _ in range(500)} == {"A"}


def test_pick_weighted_all_zero_returns_first_key():
    rng = random.Random(3)
    assert pick_weighted({"first": 0, "second": 0}, rng) == "first"


def test_pick_weighted_rejects_empty_map():
    with pytest.raises(ValueError):
        pick_weighted({})


def test_pick_uniform():
    rng = random.Random(5)
    options = ["a", "b", "c"]
    assert {pick_uniform(options, rng) for _ in range(200)} == set(options)
    with pytest.raises(ValueError):
        pick_uniform([])
