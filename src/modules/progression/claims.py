"""
Tier-claim ledger.

Each (athlete, challenge) submission remembers which tiers have already been
paid. A grading pays only the tiers between the challenge's minimum tier and
the achieved tier that are not yet claimed, which makes re-grading and
duplicate reviews idempotent:

>>> claim_new_tiers(Rank.D, Rank.F, {Rank.F, Rank.E})
[<Rank.D: 'D'>]
>>> claim_new_tiers(Rank.D, Rank.F, {Rank.F, Rank.E, Rank.D})
[]

Claimed tiers are stored as ascending, deduplicated, comma-joined letters.
"""

from __future__ import annotations

from typing import Iterable, List, Optional

from src.modules.progression.constants import ProgressionTables
from src.modules.progression.ranks import RANKS, Rank, rank_range


def claim_new_tiers(
    achieved: Optional[Rank],
    min_tier: Rank,
    claimed: Iterable[Rank],
) -> List[Rank]:
    """Tiers in [min_tier..achieved] not already claimed, ascending."""
    if achieved is None:
        return []
    already = set(claimed)
    return [tier for tier in rank_range(min_tier, achieved) if tier not in already]


def merge_claimed(claimed: Iterable[Rank], new: Iterable[Rank]) -> tuple[Rank, ...]:
    """Union of both sets, normalized to ascending rank order."""
    union = set(claimed) | set(new)
    return tuple(rank for rank in RANKS if rank in union)


def parse_claimed(text: Optional[str]) -> tuple[Rank, ...]:
    """
    Parse the stored form (``"F,E,D"``). Blank fragments are skipped.

    Raises:
        ValidationError: If a fragment is not a rank letter
    """
    if not text:
        return ()
    letters = [Rank.parse(part) for part in text.split(",") if part.strip()]
    return merge_claimed(letters, ())


def serialize_claimed(tiers: Iterable[Rank]) -> str:
    return ",".join(rank.value for rank in merge_claimed(tiers, ()))


def base_reward(tiers: Iterable[Rank], tables: ProgressionTables) -> int:
    """Sum of the per-tier XP for each tier."""
    return sum(tables.tier_xp(tier) for tier in tiers)


__all__ = [
    "base_reward",
    "claim_new_tiers",
    "merge_claimed",
    "parse_claimed",
    "serialize_claimed",
]
