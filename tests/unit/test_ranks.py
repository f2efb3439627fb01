"""
Unit tests for rank encoding.

Covers the ordinal encoding, clamping on both directions, formatting and
rank parsing.
"""

import pytest

from src.modules.progression.ranks import (
    MAX_ORDINAL,
    RANKS,
    Rank,
    RankLevel,
    format_level,
    from_ordinal,
    next_rank,
    rank_range,
    to_ordinal,
)
from src.modules.shared.exceptions import ValidationError


@pytest.mark.unit
class TestOrdinalEncoding:
    """Test (letter, sublevel) <-> ordinal."""

    def test_letter_index_times_ten_plus_sublevel(self):
        """C7 is 3 * 10 + 7."""
        assert to_ordinal(Rank.C, 7) == 37
        assert to_ordinal(Rank.F, 0) == 0
        assert to_ordinal(Rank.S, 9) == MAX_ORDINAL == 69

    def test_round_trip_over_whole_ladder(self):
        """Every valid pair decodes back to itself."""
        for letter in RANKS:
            for sublevel in range(10):
                assert from_ordinal(to_ordinal(letter, sublevel)) == (letter, sublevel)

    def test_ordinals_strictly_increase_up_the_ladder(self):
        """A higher letter always outranks any sublevel of a lower one."""
        ordinals = [to_ordinal(letter, sub) for letter in RANKS for sub in range(10)]
        assert ordinals == sorted(ordinals)
        assert len(set(ordinals)) == len(ordinals)
        assert to_ordinal(Rank.E, 0) > to_ordinal(Rank.F, 9)

    def test_sublevel_is_clamped(self):
        """Out-of-range sublevels clamp into 0-9."""
        assert to_ordinal(Rank.D, 15) == to_ordinal(Rank.D, 9)
        assert to_ordinal(Rank.D, -3) == to_ordinal(Rank.D, 0)

    def test_decoding_clamps_out_of_range_ordinals(self):
        """Ordinals below 0 or above 69 decode to F0 and S9."""
        assert from_ordinal(-5) == RankLevel(Rank.F, 0)
        assert from_ordinal(120) == RankLevel(Rank.S, 9)

    def test_decoding_floors_fractional_ordinals(self):
        assert from_ordinal(37.9) == RankLevel(Rank.C, 7)

    def test_rank_level_properties(self):
        level = from_ordinal(42)
        assert level.letter is Rank.B
        assert level.sublevel == 2
        assert level.ordinal == 42
        assert str(level) == "B2"


@pytest.mark.unit
class TestRankHelpers:
    """Test parsing, formatting and ladder navigation."""

    def test_format_level(self):
        assert format_level(Rank.A, 3) == "A3"

    def test_parse_is_case_insensitive(self):
        assert Rank.parse("c") is Rank.C
        assert Rank.parse(" s ") is Rank.S
        assert Rank.parse(Rank.E) is Rank.E

    @pytest.mark.parametrize("value", ["", "G", "AA", None, 3])
    def test_parse_rejects_unknown_letters(self, value):
        with pytest.raises(ValidationError):
            Rank.parse(value)

    def test_next_rank(self):
        assert next_rank(Rank.F) is Rank.E
        assert next_rank(Rank.A) is Rank.S
        assert next_rank(Rank.S) is None

    def test_rank_range_is_inclusive_and_ascending(self):
        assert rank_range(Rank.E, Rank.C) == [Rank.E, Rank.D, Rank.C]
        assert rank_range(Rank.C, Rank.E) == []

    def test_labels(self):
        assert Rank.F.label == "Foundation"
        assert Rank.S.label == "Supreme"
