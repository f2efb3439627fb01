"""
Unit tests for the multi-domain reward splitter.
"""

import pytest

from src.modules.progression.rewards import (
    DomainAllocation,
    RewardSplitConfig,
    round_half_up,
    split_reward,
    validate_domain_split,
)
from src.modules.shared.exceptions import ValidationError


def _amounts(shares):
    return [(share.domain_id, share.amount) for share in shares]


@pytest.mark.unit
class TestSplitReward:
    def test_seventy_thirty(self):
        config = RewardSplitConfig(DomainAllocation(1, 70), DomainAllocation(2, 30))
        assert _amounts(split_reward(175, config)) == [(1, 123), (2, 53)]

    def test_single_domain_gets_everything(self):
        config = RewardSplitConfig(DomainAllocation(1, 100))
        assert _amounts(split_reward(150, config)) == [(1, 150)]

    def test_zero_percent_domains_are_skipped(self):
        config = RewardSplitConfig(DomainAllocation(1, 100), DomainAllocation(2, 0))
        assert _amounts(split_reward(100, config)) == [(1, 100)]

    def test_three_way_split_rounds_each_share(self):
        """Shares round independently; their sum may exceed the base."""
        # Arrange
        config = RewardSplitConfig(
            DomainAllocation(1, 50), DomainAllocation(2, 25), DomainAllocation(3, 25)
        )

        # Act
        shares = split_reward(25, config)

        # Assert
        assert _amounts(shares) == [(1, 13), (2, 6), (3, 6)]
        assert [s.percent for s in shares] == [50, 25, 25]

    def test_zero_base(self):
        config = RewardSplitConfig(DomainAllocation(1, 60), DomainAllocation(2, 40))
        assert _amounts(split_reward(0, config)) == [(1, 0), (2, 0)]


@pytest.mark.unit
class TestRoundHalfUp:
    @pytest.mark.parametrize(
        "base,percent,expected",
        [(175, 70, 123), (175, 30, 53), (25, 50, 13), (1, 50, 1), (1, 49, 0), (-25, 50, -13)],
    )
    def test_rounds_half_away_from_zero(self, base, percent, expected):
        assert round_half_up(base, percent) == expected


@pytest.mark.unit
class TestValidateDomainSplit:
    def test_valid_split(self):
        validate_domain_split(
            RewardSplitConfig(DomainAllocation(1, 70), DomainAllocation(2, 30))
        )

    def test_must_sum_to_hundred(self):
        with pytest.raises(ValidationError, match="sum to 100"):
            validate_domain_split(
                RewardSplitConfig(DomainAllocation(1, 70), DomainAllocation(2, 20))
            )

    def test_primary_must_be_positive(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_domain_split(
                RewardSplitConfig(DomainAllocation(1, 0), DomainAllocation(2, 100))
            )
        assert exc_info.value.field == "primary_xp_percent"

    def test_domains_must_be_distinct(self):
        with pytest.raises(ValidationError, match="more than once"):
            validate_domain_split(
                RewardSplitConfig(DomainAllocation(1, 50), DomainAllocation(1, 50))
            )

    def test_percent_out_of_range(self):
        with pytest.raises(ValidationError):
            validate_domain_split(
                RewardSplitConfig(DomainAllocation(1, 120), DomainAllocation(2, -20))
            )
