"""
Breakthrough resolver.

An athlete at a letter's ceiling advances to the next letter only after
achieving a required tier on a required number of distinct challenges in
the domain. Evaluation is pure; the service gathers rules and achievements
from the store.

Rule precedence for a (domain, from -> to) transition, first match wins:

1. division override for this domain
2. division override for all domains
3. default rule for this domain
4. default rule for all domains

No matching active rule means breakthrough is unavailable (fails closed).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

from src.modules.progression.models import BreakthroughRequirement, ChallengeAchievement
from src.modules.progression.ranks import Rank, next_rank


@dataclass(frozen=True)
class BreakthroughProgress:
    """
    Breakthrough evaluation for one athlete in one domain.

    `available` is False at S rank or when no rule applies; `is_complete`
    is True when the requirement is met.
    """

    athlete_id: int
    domain_id: int
    from_rank: Rank
    to_rank: Optional[Rank]
    rule: Optional[BreakthroughRequirement]
    current_progress: int = 0
    qualifying_challenge_ids: tuple[int, ...] = ()

    @property
    def available(self) -> bool:
        return self.rule is not None

    @property
    def tier_required(self) -> Optional[Rank]:
        return self.rule.tier_required if self.rule else None

    @property
    def required_count(self) -> int:
        return self.rule.challenge_count if self.rule else 0

    @property
    def is_complete(self) -> bool:
        return self.rule is not None and self.current_progress >= self.rule.challenge_count


def select_rule(
    rules: Iterable[BreakthroughRequirement],
    *,
    domain_id: int,
    division_id: Optional[int],
    from_rank: Rank,
) -> Optional[BreakthroughRequirement]:
    """Pick the applicable rule for leaving `from_rank`, or None."""
    to_rank = next_rank(from_rank)
    if to_rank is None:
        return None

    candidates = [
        rule
        for rule in rules
        if rule.is_active
        and rule.from_rank is from_rank
        and rule.to_rank is to_rank
        and rule.domain_id in (domain_id, None)
    ]

    precedence: List[tuple[Optional[int], Optional[int]]] = []
    if division_id is not None:
        precedence += [(division_id, domain_id), (division_id, None)]
    precedence += [(None, domain_id), (None, None)]

    for wanted_division, wanted_domain in precedence:
        for rule in candidates:
            if rule.division_id == wanted_division and rule.domain_id == wanted_domain:
                return rule
    return None


def qualifying_challenges(
    achievements: Iterable[ChallengeAchievement], tier_required: Rank
) -> List[int]:
    """Distinct challenge ids whose achieved tier is at least `tier_required`."""
    return sorted(
        {
            achievement.challenge_id
            for achievement in achievements
            if achievement.achieved_rank.letter_index >= tier_required.letter_index
        }
    )


def evaluate_breakthrough(
    *,
    athlete_id: int,
    domain_id: int,
    division_id: Optional[int],
    current_letter: Rank,
    rules: Sequence[BreakthroughRequirement],
    achievements: Sequence[ChallengeAchievement],
) -> BreakthroughProgress:
    rule = select_rule(
        rules, domain_id=domain_id, division_id=division_id, from_rank=current_letter
    )
    if rule is None:
        return BreakthroughProgress(
            athlete_id=athlete_id,
            domain_id=domain_id,
            from_rank=current_letter,
            to_rank=next_rank(current_letter),
            rule=None,
        )

    qualifying = qualifying_challenges(achievements, rule.tier_required)
    return BreakthroughProgress(
        athlete_id=athlete_id,
        domain_id=domain_id,
        from_rank=current_letter,
        to_rank=rule.to_rank,
        rule=rule,
        current_progress=len(qualifying),
        qualifying_challenge_ids=tuple(qualifying),
    )


__all__ = [
    "BreakthroughProgress",
    "evaluate_breakthrough",
    "qualifying_challenges",
    "select_rule",
]
