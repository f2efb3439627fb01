"""
Multi-domain reward splitter.

A challenge pays its base reward into up to three skill domains by
percentage (primary mandatory, secondary and tertiary optional). Each share
is rounded half-up on its own:

    share = round_half_up(base * percent / 100)

Shares are independent, so their sum may differ from the base by a rounding
remainder. The remainder is not redistributed; every domain's ledger entry
reflects exactly its own percentage.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from src.modules.shared.exceptions import ValidationError


@dataclass(frozen=True)
class DomainAllocation:
    domain_id: int
    percent: int


@dataclass(frozen=True)
class RewardSplitConfig:
    """Domain/percentage configuration of one challenge."""

    primary: DomainAllocation
    secondary: Optional[DomainAllocation] = None
    tertiary: Optional[DomainAllocation] = None

    def allocations(self) -> List[DomainAllocation]:
        return [a for a in (self.primary, self.secondary, self.tertiary) if a is not None]


@dataclass(frozen=True)
class DomainShare:
    domain_id: int
    amount: int
    percent: int


def round_half_up(base: int, percent: int) -> int:
    """``base * percent / 100`` rounded half away from zero, in integer math."""
    product = base * percent
    if product >= 0:
        return (product + 50) // 100
    return -((-product + 50) // 100)


def split_reward(base: int, config: RewardSplitConfig) -> List[DomainShare]:
    """
    Split `base` across the configured domains.

    >>> cfg = RewardSplitConfig(DomainAllocation(1, 70), DomainAllocation(2, 30))
    >>> [(s.domain_id, s.amount) for s in split_reward(100, cfg)]
    [(1, 70), (2, 30)]
    """
    shares: List[DomainShare] = []
    for allocation in config.allocations():
        if allocation.percent <= 0:
            continue
        shares.append(
            DomainShare(
                domain_id=allocation.domain_id,
                amount=round_half_up(base, allocation.percent),
                percent=allocation.percent,
            )
        )
    return shares


def validate_domain_split(config: RewardSplitConfig) -> None:
    """
    Configuration-time check for a challenge's reward split. The award path
    trusts its inputs and never calls this.

    Raises:
        ValidationError: If the primary share is not positive, a percentage
            is outside 0-100, a domain repeats, or percentages do not sum
            to 100
    """
    if config.primary.percent <= 0:
        raise ValidationError("primary_xp_percent", "primary domain must receive a positive share")

    seen: set[int] = set()
    for allocation in config.allocations():
        if not 0 <= allocation.percent <= 100:
            raise ValidationError(
                "xp_percent", f"percentages must be within 0-100, got {allocation.percent}"
            )
        if allocation.domain_id in seen:
            raise ValidationError(
                "domain_id", f"domain {allocation.domain_id} appears more than once"
            )
        seen.add(allocation.domain_id)

    total = sum(a.percent for a in config.allocations())
    if total != 100:
        raise ValidationError("xp_percent", f"percentages must sum to 100, got {total}")


__all__ = [
    "DomainAllocation",
    "DomainShare",
    "RewardSplitConfig",
    "round_half_up",
    "split_reward",
    "validate_domain_split",
]
