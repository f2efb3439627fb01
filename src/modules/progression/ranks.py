"""
Rank encoding for the Apex ladder.

Seven ordered letters (F lowest, S highest), each with sublevels 0-9. A
(letter, sublevel) pair encodes to a single ordinal in [0, 69]:

    ordinal = letter_index * 10 + sublevel

Both directions clamp their inputs, so encoding and decoding are total
functions with no error path. Rank parsing from untrusted text is the only
operation here that raises.

Usage
-----
>>> to_ordinal(Rank.C, 7)
37
>>> from_ordinal(37)
RankLevel(letter=<Rank.C: 'C'>, sublevel=7)
>>> format_level(Rank.C, 7)
'C7'
"""

from __future__ import annotations

import math
from enum import Enum
from typing import NamedTuple, Optional, Union

from src.modules.shared.exceptions import ValidationError

MAX_SUBLEVEL = 9
SUBLEVELS_PER_RANK = MAX_SUBLEVEL + 1


class Rank(str, Enum):
    """Rank letter, declared lowest to highest."""

    F = "F"
    E = "E"
    D = "D"
    C = "C"
    B = "B"
    A = "A"
    S = "S"

    @property
    def letter_index(self) -> int:
        return _RANK_INDEX[self]

    @property
    def label(self) -> str:
        return _RANK_LABELS[self]

    @classmethod
    def parse(cls, value: Union["Rank", str]) -> "Rank":
        """
        Parse a rank letter, case-insensitively.

        Raises:
            ValidationError: If the value is not one of the seven letters
        """
        if isinstance(value, Rank):
            return value
        if isinstance(value, str):
            candidate = value.strip().upper()
            if candidate in cls.__members__:
                return cls[candidate]
        raise ValidationError("rank", f"unknown rank letter {value!r}")


RANKS: tuple[Rank, ...] = tuple(Rank)
_RANK_INDEX = {rank: i for i, rank in enumerate(RANKS)}
_RANK_LABELS = {
    Rank.F: "Foundation",
    Rank.E: "Emerging",
    Rank.D: "Developing",
    Rank.C: "Competent",
    Rank.B: "Breakthrough",
    Rank.A: "Advanced",
    Rank.S: "Supreme",
}

MAX_ORDINAL = len(RANKS) * SUBLEVELS_PER_RANK - 1


class RankLevel(NamedTuple):
    """A (letter, sublevel) pair; unpacks like a tuple."""

    letter: Rank
    sublevel: int

    @property
    def ordinal(self) -> int:
        return to_ordinal(self.letter, self.sublevel)

    def __str__(self) -> str:
        return format_level(self.letter, self.sublevel)


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


def to_ordinal(letter: Rank, sublevel: int) -> int:
    """Encode (letter, sublevel) as an ordinal; sublevel is clamped to 0-9."""
    return Rank.parse(letter).letter_index * SUBLEVELS_PER_RANK + _clamp(
        int(sublevel), 0, MAX_SUBLEVEL
    )


def from_ordinal(n: Union[int, float]) -> RankLevel:
    """Decode an ordinal. Floats are floored; out-of-range values clamp to [0, 69]."""
    ordinal = _clamp(math.floor(n), 0, MAX_ORDINAL)
    return RankLevel(RANKS[ordinal // SUBLEVELS_PER_RANK], ordinal % SUBLEVELS_PER_RANK)


def format_level(letter: Rank, sublevel: int) -> str:
    return f"{Rank.parse(letter).value}{_clamp(int(sublevel), 0, MAX_SUBLEVEL)}"


def next_rank(letter: Rank) -> Optional[Rank]:
    """The letter above `letter`, or None at S."""
    index = Rank.parse(letter).letter_index
    if index + 1 >= len(RANKS):
        return None
    return RANKS[index + 1]


def rank_range(low: Rank, high: Rank) -> list[Rank]:
    """Letters from `low` to `high` inclusive, ascending. Empty if low > high."""
    return list(RANKS[Rank.parse(low).letter_index : Rank.parse(high).letter_index + 1])


__all__ = [
    "MAX_ORDINAL",
    "MAX_SUBLEVEL",
    "RANKS",
    "Rank",
    "RankLevel",
    "format_level",
    "from_ordinal",
    "next_rank",
    "rank_range",
    "to_ordinal",
]
