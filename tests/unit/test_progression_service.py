"""
Unit tests for ProgressionService.

Tests XP awards, retries, breakthrough confirmation, default rule seeding
and the read side, against the in-memory store.
"""

import asyncio

import pytest

from src.core.config.manager import ConfigManager
from src.database.models.enums import SubmissionStatus, XPSource
from src.modules.progression.constants import (
    EVENT_BREAKTHROUGH_CONFIRMED,
    EVENT_BREAKTHROUGH_READY,
    EVENT_LEVELED_UP,
    EVENT_XP_AWARDED,
)
from src.modules.progression.models import BreakthroughRequirement, ProgressState
from src.modules.progression.ranks import Rank
from src.modules.progression.service import ProgressionService
from src.modules.shared.exceptions import (
    InvalidOperationError,
    NotFoundError,
    TransientProgressionError,
    ValidationError,
)
from tests.fakes import (
    ATHLETE_ID,
    DIVISION_ATHLETE_ID,
    DIVISION_ID,
    ENDURANCE,
    MOBILITY,
    STRENGTH,
    make_challenge,
    make_submission,
    published_events,
    published_payloads,
)


def _approve_challenges(store, athlete_id, count, rank, *, first_id=1):
    """Approved submissions on `count` distinct strength challenges at `rank`."""
    for offset in range(count):
        challenge_id = first_id + offset
        store.add_challenge(make_challenge(challenge_id))
        store.add_submission(
            make_submission(
                1000 + challenge_id,
                athlete_id=athlete_id,
                challenge_id=challenge_id,
                achieved_rank=rank,
                status=SubmissionStatus.APPROVED,
            )
        )


# ============================================================================
# award_xp
# ============================================================================


@pytest.mark.unit
class TestAwardXP:
    """Test single-domain XP awards."""

    async def test_award_levels_up(self, progression_service, store, mock_event_bus):
        """F3 with 300 XP + 150 is F4 with 450 XP."""
        # Arrange
        store.set_progress(ATHLETE_ID, STRENGTH, ProgressState(Rank.F, 3, 300))

        # Act
        result = await progression_service.award_xp(
            ATHLETE_ID, STRENGTH, 150, XPSource.TRAINING, source_id=9, note="session"
        )

        # Assert
        assert str(result.previous_level) == "F3"
        assert str(result.new_level) == "F4"
        assert result.leveled_up is True
        assert result.breakthrough_ready is False
        assert store.state_of(ATHLETE_ID, STRENGTH) == ProgressState(Rank.F, 4, 450)

        [entry] = store.ledger
        assert entry == result.ledger_entry
        assert (entry.amount, entry.source, entry.source_id, entry.note) == (
            150,
            XPSource.TRAINING,
            9,
            "session",
        )
        assert published_events(mock_event_bus) == [EVENT_XP_AWARDED, EVENT_LEVELED_UP]

    async def test_first_award_creates_progress(self, progression_service, store):
        assert store.state_of(ATHLETE_ID, ENDURANCE) is None

        result = await progression_service.award_xp(ATHLETE_ID, ENDURANCE, 50, "competition")

        assert str(result.new_level) == "F0"
        assert store.state_of(ATHLETE_ID, ENDURANCE) == ProgressState(Rank.F, 0, 50)

    async def test_overflow_banks_and_flags_breakthrough(
        self, progression_service, store, mock_event_bus
    ):
        """F8 with 850 XP + 100 banks 50 and becomes breakthrough ready."""
        store.set_progress(ATHLETE_ID, STRENGTH, ProgressState(Rank.F, 8, 850))

        result = await progression_service.award_xp(ATHLETE_ID, STRENGTH, 100, XPSource.EVENT)

        assert str(result.new_level) == "F9"
        assert result.banked_xp == 50
        assert result.breakthrough_ready is True
        assert store.state_of(ATHLETE_ID, STRENGTH) == ProgressState(
            Rank.F, 9, 900, banked_xp=50, breakthrough_ready=True
        )
        assert EVENT_BREAKTHROUGH_READY in published_events(mock_event_bus)

    async def test_zero_award_is_still_recorded(self, progression_service, store):
        store.set_progress(ATHLETE_ID, STRENGTH, ProgressState(Rank.F, 2, 250))

        result = await progression_service.award_xp(ATHLETE_ID, STRENGTH, 0, XPSource.ADMIN)

        assert result.leveled_up is False
        assert store.state_of(ATHLETE_ID, STRENGTH) == ProgressState(Rank.F, 2, 250)
        assert [e.amount for e in store.ledger] == [0]

    async def test_negative_correction_lowers_progress(self, progression_service, store):
        """+300 then -100: progress matches the ledger sum (F2, 200 XP)."""
        await progression_service.award_xp(ATHLETE_ID, STRENGTH, 300, XPSource.CHALLENGE)

        result = await progression_service.award_xp(ATHLETE_ID, STRENGTH, -100, XPSource.ADMIN)

        assert store.state_of(ATHLETE_ID, STRENGTH) == ProgressState(Rank.F, 2, 200)
        assert sum(e.amount for e in store.ledger) == 200
        assert str(result.previous_level) == "F3"
        assert str(result.new_level) == "F2"
        assert result.leveled_up is False

    @pytest.mark.parametrize(
        "athlete_id,domain_id,amount,source",
        [
            (0, STRENGTH, 10, XPSource.TRAINING),
            (ATHLETE_ID, -1, 10, XPSource.TRAINING),
            (ATHLETE_ID, STRENGTH, "10", XPSource.TRAINING),
            (ATHLETE_ID, STRENGTH, 10.5, XPSource.TRAINING),
            (ATHLETE_ID, STRENGTH, 10, "magic"),
        ],
    )
    async def test_malformed_input_rejected(
        self, progression_service, store, athlete_id, domain_id, amount, source
    ):
        with pytest.raises(ValidationError):
            await progression_service.award_xp(athlete_id, domain_id, amount, source)
        assert store.ledger == []

    async def test_unknown_athlete(self, progression_service, store):
        with pytest.raises(NotFoundError) as exc_info:
            await progression_service.award_xp(404, STRENGTH, 10, XPSource.TRAINING)

        assert exc_info.value.error_code == "ATHLETE_NOT_FOUND"
        assert store.ledger == []
        assert store.commits == 0

    async def test_unknown_domain(self, progression_service, store):
        with pytest.raises(NotFoundError) as exc_info:
            await progression_service.award_xp(ATHLETE_ID, 99, 10, XPSource.TRAINING)

        assert exc_info.value.resource_type == "Domain"
        assert store.progress == {}


@pytest.mark.unit
class TestAwardConcurrency:
    """Conflicts are retried as whole transactions."""

    async def test_conflict_is_retried(self, progression_service, store, mock_event_bus):
        # Arrange
        store.conflicts_to_inject = 2

        # Act
        result = await progression_service.award_xp(ATHLETE_ID, STRENGTH, 120, XPSource.TRAINING)

        # Assert
        assert str(result.new_level) == "F1"
        assert [e.amount for e in store.ledger] == [120]
        assert store.state_of(ATHLETE_ID, STRENGTH).current_xp == 120
        assert published_events(mock_event_bus).count(EVENT_XP_AWARDED) == 1

    async def test_exhausted_retries_surface_transient_error(
        self, progression_service, store, mock_event_bus
    ):
        store.conflicts_to_inject = 3

        with pytest.raises(TransientProgressionError) as exc_info:
            await progression_service.award_xp(ATHLETE_ID, STRENGTH, 120, XPSource.TRAINING)

        assert exc_info.value.attempts == 3
        assert exc_info.value.is_retryable is True
        assert store.ledger == []
        assert store.state_of(ATHLETE_ID, STRENGTH) is None
        mock_event_bus.publish.assert_not_awaited()

    async def test_concurrent_awards_are_serialized(self, progression_service, store):
        """Ten parallel awards of 50 XP all land."""
        await asyncio.gather(
            *[
                progression_service.award_xp(ATHLETE_ID, STRENGTH, 50, XPSource.TRAINING)
                for _ in range(10)
            ]
        )

        assert store.state_of(ATHLETE_ID, STRENGTH) == ProgressState(Rank.F, 5, 500)
        assert len(store.ledger) == 10

    async def test_publish_failure_does_not_fail_award(
        self, progression_service, store, mock_event_bus
    ):
        mock_event_bus.publish.side_effect = RuntimeError("bus down")

        result = await progression_service.award_xp(ATHLETE_ID, STRENGTH, 150, XPSource.TRAINING)

        assert str(result.new_level) == "F1"
        assert store.state_of(ATHLETE_ID, STRENGTH).current_xp == 150


# ============================================================================
# Breakthroughs
# ============================================================================


@pytest.mark.unit
class TestConfirmBreakthrough:
    """Test letter advancement."""

    @pytest.fixture
    async def seeded(self, progression_service, store):
        await progression_service.seed_default_breakthrough_rules()
        return store

    async def test_breakthrough_releases_banked_xp(
        self, progression_service, seeded, mock_event_bus
    ):
        """F9 with 250 banked and three E-tier challenges advances to E1."""
        # Arrange
        seeded.set_progress(
            ATHLETE_ID,
            STRENGTH,
            ProgressState(Rank.F, 9, 900, banked_xp=250, breakthrough_ready=True),
        )
        _approve_challenges(seeded, ATHLETE_ID, 3, Rank.E)

        # Act
        result = await progression_service.confirm_breakthrough(ATHLETE_ID, STRENGTH)

        # Assert
        assert (result.from_rank, result.to_rank) == (Rank.F, Rank.E)
        assert result.released_xp == 250
        assert str(result.new_level) == "E1"
        assert result.banked_xp == 0
        assert result.breakthrough_ready is False
        assert seeded.state_of(ATHLETE_ID, STRENGTH) == ProgressState(Rank.E, 1, 250)
        assert seeded.progress[(ATHLETE_ID, STRENGTH)].breakthrough_achieved_at is not None

        [marker] = seeded.ledger
        assert marker.amount == 0
        assert marker.source is XPSource.BONUS
        assert marker.note == "Breakthrough: F → E"

        events = published_events(mock_event_bus)
        assert events[0] == EVENT_BREAKTHROUGH_CONFIRMED
        assert EVENT_XP_AWARDED not in events
        [payload] = published_payloads(mock_event_bus, EVENT_BREAKTHROUGH_CONFIRMED)
        assert payload["released_xp"] == 250

    async def test_large_bank_refills_the_next_letter(self, progression_service, seeded):
        seeded.set_progress(
            ATHLETE_ID,
            STRENGTH,
            ProgressState(Rank.F, 9, 900, banked_xp=2000, breakthrough_ready=True),
        )
        _approve_challenges(seeded, ATHLETE_ID, 3, Rank.C)

        result = await progression_service.confirm_breakthrough(ATHLETE_ID, STRENGTH)

        assert str(result.new_level) == "E9"
        assert result.banked_xp == 200
        assert result.breakthrough_ready is True

    async def test_below_ceiling_rejected(self, progression_service, seeded):
        seeded.set_progress(ATHLETE_ID, STRENGTH, ProgressState(Rank.F, 8, 899))
        _approve_challenges(seeded, ATHLETE_ID, 3, Rank.E)

        with pytest.raises(InvalidOperationError):
            await progression_service.confirm_breakthrough(ATHLETE_ID, STRENGTH)

        assert seeded.state_of(ATHLETE_ID, STRENGTH) == ProgressState(Rank.F, 8, 899)

    async def test_exact_ceiling_without_overflow_rejected(self, progression_service, seeded):
        """F9 at exactly 900 XP with nothing banked is not breakthrough-ready."""
        state = ProgressState(Rank.F, 9, 900)
        seeded.set_progress(ATHLETE_ID, STRENGTH, state)
        _approve_challenges(seeded, ATHLETE_ID, 3, Rank.E)

        with pytest.raises(InvalidOperationError, match="not breakthrough-ready"):
            await progression_service.confirm_breakthrough(ATHLETE_ID, STRENGTH)

        assert seeded.state_of(ATHLETE_ID, STRENGTH) == state
        assert seeded.ledger == []

    async def test_requirement_not_met_rejected(self, progression_service, seeded):
        state = ProgressState(Rank.F, 9, 900, banked_xp=10, breakthrough_ready=True)
        seeded.set_progress(ATHLETE_ID, STRENGTH, state)
        _approve_challenges(seeded, ATHLETE_ID, 2, Rank.E)

        with pytest.raises(InvalidOperationError, match="2/3"):
            await progression_service.confirm_breakthrough(ATHLETE_ID, STRENGTH)

        assert seeded.state_of(ATHLETE_ID, STRENGTH) == state
        assert seeded.ledger == []

    async def test_no_rule_fails_closed(self, progression_service, store):
        store.set_progress(
            ATHLETE_ID, STRENGTH, ProgressState(Rank.F, 9, 900, breakthrough_ready=True)
        )
        _approve_challenges(store, ATHLETE_ID, 5, Rank.S)

        with pytest.raises(InvalidOperationError, match="no breakthrough rule"):
            await progression_service.confirm_breakthrough(ATHLETE_ID, STRENGTH)

    async def test_s_rank_cannot_advance(self, progression_service, seeded):
        seeded.set_progress(ATHLETE_ID, STRENGTH, ProgressState(Rank.S, 9, 57_600))

        with pytest.raises(InvalidOperationError, match="highest rank"):
            await progression_service.confirm_breakthrough(ATHLETE_ID, STRENGTH)


@pytest.mark.unit
class TestResolveBreakthrough:
    async def test_no_progress_row_evaluates_f(self, progression_service):
        await progression_service.seed_default_breakthrough_rules()

        progress = await progression_service.resolve_breakthrough(ATHLETE_ID, MOBILITY)

        assert progress.from_rank is Rank.F
        assert progress.available is True
        assert progress.required_count == 3
        assert progress.current_progress == 0

    async def test_division_override_applies_to_division_members(
        self, progression_service, store
    ):
        # Arrange
        await progression_service.seed_default_breakthrough_rules()
        store.rules.append(
            BreakthroughRequirement(Rank.F, Rank.E, Rank.D, 1, division_id=DIVISION_ID, id=99)
        )
        _approve_challenges(store, DIVISION_ATHLETE_ID, 1, Rank.D)

        # Act
        member = await progression_service.resolve_breakthrough(DIVISION_ATHLETE_ID, STRENGTH)
        other = await progression_service.resolve_breakthrough(ATHLETE_ID, STRENGTH)

        # Assert
        assert member.rule.id == 99
        assert member.is_complete is True
        assert member.qualifying_challenge_ids == (1,)
        assert other.required_count == 3

    async def test_unavailable_without_rules(self, progression_service):
        progress = await progression_service.resolve_breakthrough(ATHLETE_ID, STRENGTH)

        assert progress.available is False
        assert progress.is_complete is False

    async def test_unknown_athlete(self, progression_service):
        with pytest.raises(NotFoundError):
            await progression_service.resolve_breakthrough(404, STRENGTH)


@pytest.mark.unit
class TestSeedDefaultRules:
    async def test_seeding_is_idempotent(self, progression_service, store):
        created = await progression_service.seed_default_breakthrough_rules()
        again = await progression_service.seed_default_breakthrough_rules()

        assert [(r.from_rank, r.challenge_count) for r in created] == [
            (Rank.F, 3),
            (Rank.E, 5),
            (Rank.D, 7),
            (Rank.C, 10),
            (Rank.B, 12),
            (Rank.A, 15),
        ]
        assert all(r.id is not None and r.domain_id is None for r in created)
        assert again == []
        assert len(store.rules) == 6


# ============================================================================
# Reads
# ============================================================================


@pytest.mark.unit
class TestReads:
    async def test_get_progress_defaults_to_f0(self, progression_service):
        assert await progression_service.get_progress(ATHLETE_ID, STRENGTH) == ProgressState()

    async def test_get_progress_unknown_domain(self, progression_service):
        with pytest.raises(NotFoundError):
            await progression_service.get_progress(ATHLETE_ID, 77)

    async def test_list_progress_is_ordered_by_domain(self, progression_service, store):
        store.set_progress(ATHLETE_ID, MOBILITY, ProgressState(Rank.D, 1, 400))
        store.set_progress(ATHLETE_ID, STRENGTH, ProgressState(Rank.F, 1, 100))
        store.set_progress(DIVISION_ATHLETE_ID, ENDURANCE, ProgressState(Rank.S, 0))

        rows = await progression_service.list_progress(ATHLETE_ID)

        assert [row.domain_id for row in rows] == [STRENGTH, MOBILITY]

    async def test_prime_level(self, progression_service, store):
        """C5 and A2 average to B3."""
        store.set_progress(ATHLETE_ID, STRENGTH, ProgressState(Rank.C, 5, 4000))
        store.set_progress(ATHLETE_ID, ENDURANCE, ProgressState(Rank.A, 2, 6400))

        prime = await progression_service.get_prime_level(ATHLETE_ID)

        assert str(prime) == "B3"

    async def test_prime_level_without_progress(self, progression_service):
        assert str(await progression_service.get_prime_level(ATHLETE_ID)) == "F0"

    async def test_history_newest_first_with_filters(self, progression_service):
        for domain_id, amount in [(STRENGTH, 10), (ENDURANCE, 20), (STRENGTH, 30)]:
            await progression_service.award_xp(ATHLETE_ID, domain_id, amount, XPSource.TRAINING)

        everything = await progression_service.get_xp_history(ATHLETE_ID)
        strength = await progression_service.get_xp_history(ATHLETE_ID, STRENGTH)
        latest = await progression_service.get_xp_history(ATHLETE_ID, limit=1)

        assert [e.amount for e in everything] == [30, 20, 10]
        assert [e.amount for e in strength] == [30, 10]
        assert [e.amount for e in latest] == [30]

    @pytest.mark.parametrize("limit", [0, 501, "5"])
    async def test_history_limit_validated(self, progression_service, limit):
        with pytest.raises(ValidationError):
            await progression_service.get_xp_history(ATHLETE_ID, limit=limit)

    async def test_history_default_limit_from_config(
        self, store, tables, mock_event_bus, retry_policy
    ):
        # Arrange
        config = ConfigManager(defaults={"progression": {"history_limit": 2}}).load()
        service = ProgressionService(
            store, tables, config, mock_event_bus, retry_policy=retry_policy
        )
        for amount in (1, 2, 3):
            await service.award_xp(ATHLETE_ID, STRENGTH, amount, XPSource.TRAINING)

        # Act
        history = await service.get_xp_history(ATHLETE_ID)

        # Assert
        assert [e.amount for e in history] == [3, 2]
