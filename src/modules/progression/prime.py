"""
Prime level: an athlete's composite rank across domains.

The floored mean of the per-domain ordinals, decoded back to a
(letter, sublevel). No domains means F0. Pure and cheap; recompute on read.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, Tuple, Union

from src.modules.progression.ranks import Rank, RankLevel, from_ordinal, to_ordinal


@dataclass(frozen=True)
class PrimeLevel:
    letter: Rank
    sublevel: int
    average: float = 0.0

    @property
    def level(self) -> RankLevel:
        return RankLevel(self.letter, self.sublevel)

    def __str__(self) -> str:
        return str(self.level)


def compute_prime(levels: Iterable[Union[RankLevel, Tuple[Rank, int]]]) -> PrimeLevel:
    """
    >>> str(compute_prime([]))
    'F0'
    >>> str(compute_prime([(Rank.C, 5), (Rank.A, 2)]))
    'B3'
    """
    ordinals = [to_ordinal(letter, sublevel) for letter, sublevel in levels]
    if not ordinals:
        return PrimeLevel(Rank.F, 0, 0.0)

    average = sum(ordinals) / len(ordinals)
    letter, sublevel = from_ordinal(math.floor(average))
    return PrimeLevel(letter, sublevel, average)


__all__ = ["PrimeLevel", "compute_prime"]
