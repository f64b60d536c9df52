"""Seeded random sources used by the trend policies.

Trend policies only ever ask for ``randint(bound)``: a uniform integer in
``[0, bound)``. Two algorithms are available:

``lcg48``
    The 48-bit linear congruential generator specified for
    ``java.util.Random`` (multiplier ``0x5DEECE66D``, addend ``0xB``, seed
    scrambled with the multiplier, rejection sampling for non power-of-two
    bounds). With seed 0 it reproduces the reference values the scenario
    assertions were captured from.

``mt19937``
    Python's ``random.Random``. Reproducible across Python runs, but yields a
    different sequence than ``lcg48``.
"""

from __future__ import annotations

import random
from typing import Protocol


_MULTIPLIER = 0x5DEECE66D
_ADDEND = 0xB
_MASK = (1 << 48) - 1
_INT_MAX = (1 << 31) - 1


class RandomSource(Protocol):
    def randint(self, bound: int) -> int:
        """Return a uniform integer in ``[0, bound)``; ``bound`` must be positive."""
        ...


class Lcg48Random:
    def __init__(self, seed: int = 0) -> None:
        self._seed = (seed ^ _MULTIPLIER) & _MASK

    def _next(self, bits: int) -> int:
        self._seed = (self._seed * _MULTIPLIER + _ADDEND) & _MASK
        value = self._seed >> (48 - bits)
        # Reinterpret as a signed 32-bit int.
        if value & (1 << 31):
            value -= 1 << 32
        return value

    def randint(self, bound: int) -> int:
        if bound <= 0:
            raise ValueError(f"bound must be positive, got {bound}")

        if bound & -bound == bound:
            return (bound * self._next(31)) >> 31

        while True:
            bits = self._next(31)
            value = bits % bound
            # Reject the incomplete bucket at the top of the 31-bit range.
            if bits - value + (bound - 1) <= _INT_MAX:
                return value


class MersenneRandom:
    def __init__(self, seed: int = 0) -> None:
        self._rng = random.Random(seed)

    def randint(self, bound: int) -> int:
        if bound <= 0:
            raise ValueError(f"bound must be positive, got {bound}")
        return self._rng.randrange(bound)


_ALGORITHMS = {
    "lcg48": Lcg48Random,
    "mt19937": MersenneRandom,
}


def make_random_source(algorithm: str = "lcg48", seed: int = 0) -> RandomSource:
    try:
        factory = _ALGORITHMS[algorithm]
    except KeyError:
        raise ValueError(f"Unknown random algorithm: {algorithm!r}") from None
    return factory(seed)
