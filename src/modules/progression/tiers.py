"""
Tier threshold resolution.

Given a raw performance value and the per-division grade targets of a
challenge, find the hardest tier the value satisfies.

Direction
---------
- TIME: lower is better. Targets are scanned from slowest to fastest and a
  tier is met when ``value <= target``.
- Every other grading type: higher is better. Targets are scanned from
  lowest to highest and a tier is met when ``value >= target``.

The scan keeps overwriting the best tier met, so the result is the hardest
satisfied tier, not the first. No thresholds means no tier.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

from src.database.models.enums import GradingType
from src.modules.progression.ranks import Rank


@dataclass(frozen=True)
class TierThreshold:
    """One grade target: meet `target_value` (and `target_weight`, if set) for `tier`."""

    tier: Rank
    target_value: float
    target_weight: Optional[float] = None
    division_id: Optional[int] = None


def _sort_key_ascending(threshold: TierThreshold) -> tuple[float, int]:
    return (threshold.target_value, threshold.tier.letter_index)


def _sort_key_descending(threshold: TierThreshold) -> tuple[float, int]:
    return (-threshold.target_value, threshold.tier.letter_index)


def resolve_tier(
    value: float,
    grading_type: GradingType,
    thresholds: Sequence[TierThreshold],
    *,
    achieved_weight: Optional[float] = None,
) -> Optional[Rank]:
    """
    Return the hardest tier met by `value`, or None.

    For WEIGHTED_REPS, a threshold carrying a `target_weight` also requires
    `achieved_weight >= target_weight` when an achieved weight is known.

    >>> grades = [TierThreshold(Rank.F, 0), TierThreshold(Rank.E, 10),
    ...           TierThreshold(Rank.D, 20), TierThreshold(Rank.C, 30)]
    >>> resolve_tier(25, GradingType.REPS, grades)
    <Rank.D: 'D'>
    """
    if not thresholds:
        return None

    lower_is_better = grading_type.is_lower_better
    ordered = sorted(
        thresholds,
        key=_sort_key_descending if lower_is_better else _sort_key_ascending,
    )

    best: Optional[Rank] = None
    for threshold in ordered:
        if lower_is_better:
            met = value <= threshold.target_value
        else:
            met = value >= threshold.target_value

        if (
            met
            and grading_type is GradingType.WEIGHTED_REPS
            and threshold.target_weight is not None
            and achieved_weight is not None
        ):
            met = achieved_weight >= threshold.target_weight

        if met:
            best = threshold.tier

    return best


def resolve_pass_fail(passed: bool, thresholds: Sequence[TierThreshold]) -> Optional[Rank]:
    """
    Pass/fail grading: a pass earns the configured flat tier (F when none
    is configured); a fail earns nothing.
    """
    if not passed:
        return None
    if not thresholds:
        return Rank.F
    return thresholds[0].tier


def thresholds_for_division(
    grades: Iterable[TierThreshold], division_id: Optional[int]
) -> List[TierThreshold]:
    return [grade for grade in grades if grade.division_id == division_id]


__all__ = [
    "TierThreshold",
    "resolve_pass_fail",
    "resolve_tier",
    "thresholds_for_division",
]
