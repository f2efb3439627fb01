"""
Unit tests for SubmissionRewardService.

Tests regrading, tier claiming, multi-domain payouts, idempotent
re-processing, lock ordering and the read-only preview.
"""

import asyncio

import pytest

from src.database.models.enums import GradingType, SubmissionStatus, XPSource
from src.modules.progression.constants import EVENT_SUBMISSION_REWARDED, EVENT_XP_AWARDED
from src.modules.progression.models import ProgressState
from src.modules.progression.ranks import Rank
from src.modules.progression.rewards import DomainAllocation, RewardSplitConfig
from src.modules.progression.tiers import TierThreshold
from src.modules.shared.exceptions import NotFoundError, ValidationError
from tests.conftest import FIXED_NOW
from tests.fakes import (
    ATHLETE_ID,
    DIVISION_ATHLETE_ID,
    DIVISION_ID,
    ENDURANCE,
    STRENGTH,
    make_challenge,
    make_submission,
    published_events,
    published_payloads,
    reps_thresholds,
)

SEVENTY_THIRTY = RewardSplitConfig(
    DomainAllocation(STRENGTH, 70), DomainAllocation(ENDURANCE, 30)
)


@pytest.fixture
def split_challenge(store):
    return store.add_challenge(make_challenge(100, split=SEVENTY_THIRTY, thresholds=reps_thresholds()))


@pytest.mark.unit
class TestProcessSubmission:
    """Test the end-to-end payout of one submission."""

    async def test_improvement_pays_only_new_tiers(
        self, reward_service, store, split_challenge, mock_event_bus
    ):
        """Claimed F,E then 35 reps (C): pays D + C = 175, split 123 / 53."""
        # Arrange
        store.add_submission(make_submission(500, claimed=(Rank.F, Rank.E)))

        # Act
        result = await reward_service.process_submission(500, achieved_value=35)

        # Assert
        assert result.achieved_rank is Rank.C
        assert result.new_tiers == (Rank.D, Rank.C)
        assert result.claimed_tiers == (Rank.F, Rank.E, Rank.D, Rank.C)
        assert result.base_xp == 175
        assert result.is_new_best is True
        assert result.highest_new_tier is Rank.C
        assert [(a.domain_id, a.awarded) for a in result.awards] == [
            (STRENGTH, 123),
            (ENDURANCE, 53),
        ]
        assert result.total_awarded == 176

        assert store.state_of(ATHLETE_ID, STRENGTH) == ProgressState(Rank.F, 1, 123)
        assert store.state_of(ATHLETE_ID, ENDURANCE) == ProgressState(Rank.F, 0, 53)

        saved = store.submissions[500]
        assert saved.status is SubmissionStatus.APPROVED
        assert saved.claimed == (Rank.F, Rank.E, Rank.D, Rank.C)
        assert saved.xp_awarded == 175
        assert saved.achieved_value == 35
        assert saved.reviewed_at == FIXED_NOW

        assert [(e.domain_id, e.amount) for e in store.ledger] == [(STRENGTH, 123), (ENDURANCE, 53)]
        assert all(e.source is XPSource.CHALLENGE for e in store.ledger)
        assert all(e.source_id == 500 for e in store.ledger)
        assert store.ledger[0].note == "Completed D,C tier(s)"

    async def test_reprocessing_is_idempotent(
        self, reward_service, store, split_challenge, mock_event_bus
    ):
        store.add_submission(make_submission(500))
        await reward_service.process_submission(500, achieved_value=35)
        strength_before = store.state_of(ATHLETE_ID, STRENGTH)

        again = await reward_service.process_submission(500, achieved_value=35)

        assert again.new_tiers == ()
        assert again.base_xp == 0
        assert again.awards == ()
        assert again.is_new_best is False
        assert store.state_of(ATHLETE_ID, STRENGTH) == strength_before
        assert len(store.ledger) == 2
        assert store.submissions[500].xp_awarded == 250
        assert len(published_payloads(mock_event_bus, EVENT_SUBMISSION_REWARDED)) == 2

    async def test_lower_regrade_pays_nothing(self, reward_service, store, split_challenge):
        store.add_submission(make_submission(500, claimed=(Rank.F, Rank.E, Rank.D)))

        result = await reward_service.process_submission(500, achieved_value=12)

        assert result.achieved_rank is Rank.E
        assert result.base_xp == 0
        assert store.submissions[500].claimed == (Rank.F, Rank.E, Rank.D)
        assert store.progress == {}

    async def test_stored_rank_used_without_new_value(self, reward_service, store):
        store.add_challenge(make_challenge(100))
        store.add_submission(make_submission(500, achieved_rank=Rank.D))

        result = await reward_service.process_submission(500)

        assert result.new_tiers == (Rank.F, Rank.E, Rank.D)
        assert result.base_xp == 150
        assert store.state_of(ATHLETE_ID, STRENGTH) == ProgressState(Rank.F, 1, 150)

    async def test_min_tier_floors_the_claim(self, reward_service, store):
        store.add_challenge(make_challenge(100, min_rank=Rank.C))
        store.add_submission(make_submission(500, achieved_rank=Rank.B))

        result = await reward_service.process_submission(500)

        assert result.new_tiers == (Rank.C, Rank.B)
        assert result.base_xp == 250

    async def test_events_follow_commit(self, reward_service, store, split_challenge, mock_event_bus):
        store.add_submission(make_submission(500))

        await reward_service.process_submission(500, achieved_value=35)

        events = published_events(mock_event_bus)
        assert events.count(EVENT_XP_AWARDED) == 2
        assert events[-1] == EVENT_SUBMISSION_REWARDED
        [payload] = published_payloads(mock_event_bus, EVENT_SUBMISSION_REWARDED)
        assert payload["new_tiers"] == ["F", "E", "D", "C"]
        assert payload["base_xp"] == 250
        assert [a["domain_id"] for a in payload["awards"]] == [STRENGTH, ENDURANCE]


@pytest.mark.unit
class TestGrading:
    """Tier resolution inside process_submission."""

    async def test_division_thresholds_apply(self, reward_service, store):
        # Arrange
        division_grades = tuple(
            TierThreshold(rank, float(i * 20), division_id=DIVISION_ID)
            for i, rank in enumerate(Rank)
        )
        store.add_challenge(make_challenge(100, thresholds=reps_thresholds() + division_grades))
        store.add_submission(make_submission(500, athlete_id=ATHLETE_ID))
        store.add_submission(make_submission(501, athlete_id=DIVISION_ATHLETE_ID))

        # Act
        open_result = await reward_service.process_submission(500, achieved_value=35)
        division_result = await reward_service.process_submission(501, achieved_value=35)

        # Assert
        assert open_result.achieved_rank is Rank.C
        assert division_result.achieved_rank is Rank.E

    async def test_time_challenge(self, reward_service, store):
        grades = (TierThreshold(Rank.F, 600), TierThreshold(Rank.E, 500), TierThreshold(Rank.D, 400))
        store.add_challenge(make_challenge(100, grading_type=GradingType.TIME, thresholds=grades))
        store.add_submission(make_submission(500))

        result = await reward_service.process_submission(500, achieved_value=480)

        assert result.achieved_rank is Rank.E
        assert result.base_xp == 75

    async def test_pass_fail_pass(self, reward_service, store):
        store.add_challenge(make_challenge(100, grading_type=GradingType.PASS_FAIL))
        store.add_submission(make_submission(500))

        result = await reward_service.process_submission(500, passed=True)

        assert result.achieved_rank is Rank.F
        assert result.base_xp == 25

    async def test_pass_fail_fail(self, reward_service, store):
        store.add_challenge(make_challenge(100, grading_type=GradingType.PASS_FAIL))
        store.add_submission(make_submission(500))

        result = await reward_service.process_submission(500, passed=False)

        assert result.achieved_rank is None
        assert result.base_xp == 0
        assert store.submissions[500].status is SubmissionStatus.APPROVED

    async def test_no_thresholds_means_no_tier(self, reward_service, store):
        store.add_challenge(make_challenge(100))
        store.add_submission(make_submission(500))

        result = await reward_service.process_submission(500, achieved_value=99)

        assert result.achieved_rank is None
        assert result.base_xp == 0

    async def test_graded_challenge_needs_a_value(self, reward_service, store, split_challenge):
        store.add_submission(make_submission(500))

        with pytest.raises(ValidationError):
            await reward_service.process_submission(500, passed=True)

        assert store.submissions[500].status is SubmissionStatus.PENDING


@pytest.mark.unit
class TestSubmissionConcurrency:
    async def test_domains_locked_in_ascending_order(self, reward_service, store):
        """Primary endurance, secondary strength: strength is still locked first."""
        split = RewardSplitConfig(DomainAllocation(ENDURANCE, 60), DomainAllocation(STRENGTH, 40))
        store.add_challenge(make_challenge(100, split=split))
        store.add_submission(make_submission(500, achieved_rank=Rank.E))

        await reward_service.process_submission(500)

        assert store.lock_order == [(ATHLETE_ID, STRENGTH), (ATHLETE_ID, ENDURANCE)]

    async def test_conflict_retries_the_whole_submission(
        self, reward_service, store, split_challenge
    ):
        store.conflicts_to_inject = 1
        store.add_submission(make_submission(500))

        result = await reward_service.process_submission(500, achieved_value=35)

        assert result.base_xp == 250
        assert len(store.ledger) == 2
        assert store.submissions[500].xp_awarded == 250
        assert store.submissions[500].version == 2

    async def test_concurrent_processing_pays_tiers_once(
        self, reward_service, store, split_challenge
    ):
        """Two simultaneous approvals of one submission: one pays 250, the other 0."""
        store.add_submission(make_submission(500))

        results = await asyncio.gather(
            reward_service.process_submission(500, achieved_value=35),
            reward_service.process_submission(500, achieved_value=35),
        )

        assert sorted(r.base_xp for r in results) == [0, 250]
        assert [(e.domain_id, e.amount) for e in store.ledger] == [(STRENGTH, 175), (ENDURANCE, 75)]
        assert store.state_of(ATHLETE_ID, STRENGTH) == ProgressState(Rank.F, 1, 175)
        assert store.state_of(ATHLETE_ID, ENDURANCE) == ProgressState(Rank.F, 0, 75)
        assert store.submissions[500].xp_awarded == 250


@pytest.mark.unit
class TestNotFound:
    async def test_unknown_submission(self, reward_service):
        with pytest.raises(NotFoundError) as exc_info:
            await reward_service.process_submission(999)
        assert exc_info.value.error_code == "CHALLENGESUBMISSION_NOT_FOUND"

    async def test_unknown_challenge(self, reward_service, store):
        store.add_submission(make_submission(500, challenge_id=404))

        with pytest.raises(NotFoundError) as exc_info:
            await reward_service.process_submission(500)
        assert exc_info.value.resource_type == "Challenge"

    async def test_unknown_athlete(self, reward_service, store, split_challenge):
        store.add_submission(make_submission(500, athlete_id=404))

        with pytest.raises(NotFoundError):
            await reward_service.process_submission(500, achieved_value=10)
        assert store.ledger == []


@pytest.mark.unit
class TestPreviewReward:
    async def test_preview_matches_payout(self, reward_service, store, split_challenge):
        preview = await reward_service.preview_reward(100, "C", "F,E")

        assert preview.new_tiers == (Rank.D, Rank.C)
        assert preview.base_xp == 175
        assert [(s.domain_id, s.amount) for s in preview.shares] == [(STRENGTH, 123), (ENDURANCE, 53)]
        assert store.commits == 0
        assert store.ledger == []

    async def test_preview_with_claimed_iterable(self, reward_service, split_challenge):
        preview = await reward_service.preview_reward(100, Rank.E, [Rank.F, Rank.E])
        assert preview.new_tiers == ()
        assert preview.shares == ()

    async def test_preview_without_tier(self, reward_service, split_challenge):
        preview = await reward_service.preview_reward(100, None)
        assert preview.base_xp == 0

    async def test_preview_unknown_challenge(self, reward_service):
        with pytest.raises(NotFoundError):
            await reward_service.preview_reward(404, "C")
