from __future__ import annotations

import random
from typing import Mapping


def pick_weighted(weights: Mapping[str, float], rng: random.Random | None = None) -> str:
    """Return one key of ``weights`` with probability proportional to its weight.

    Keys are walked in insertion order. When every weight is zero the first key
    is returned, which makes the all-zero map a deterministic fallback rather
    than an error.
    """
    if not weights:
        raise ValueError("weights must contain at least one entry")
    source = rng or random
    total = sum(weights.values())
    r = source.random() * total
    for key, weight in weights.items():
        if r < weight:
            return key
        r -= weight
    return next(iter(weights))


def pick_uniform(options: list[str], rng: random.Random | None = None) -> str:
    if not options:
        raise ValueError("options must not be empty")
    source = rng or random
    return source.choice(options)
