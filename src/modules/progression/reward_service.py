"""
Submission Reward Service
=========================

Purpose
-------
Turns a reviewed challenge submission into XP: resolve the achieved tier,
claim the tiers not yet paid, price them, split the reward across the
challenge's domains and award each share. Also offers a read-only preview
of what a grading would pay.

Flow (one transaction)
----------------------
1. Lock the submission row.
2. Re-resolve the achieved tier when a new value is given, against the
   grades of the athlete's division.
3. Claim new tiers; zero new tiers means zero reward and no progress write.
4. Lock every affected DomainProgress row in ascending domain id order and
   apply one award per share.
5. Store the merged claimed tiers, add the base reward to `xp_awarded` and
   mark the submission approved.

Events (`progression.*` per domain, then `submission.reward_processed`) are
published after commit.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterable, List, Optional, Tuple, Union

from src.core.logging.logger import LogContext, get_logger
from src.database.models.enums import GradingType, SubmissionStatus, XPSource
from src.domain.models.base import DomainEvent
from src.modules.progression.claims import (
    base_reward,
    claim_new_tiers,
    merge_claimed,
    parse_claimed,
)
from src.modules.progression.constants import EVENT_SUBMISSION_REWARDED
from src.modules.progression.models import ChallengeConfig, SubmissionState
from src.modules.progression.ranks import Rank
from src.modules.progression.rewards import DomainShare, split_reward
from src.modules.progression.tiers import (
    resolve_pass_fail,
    resolve_tier,
    thresholds_for_division,
)
from src.modules.shared.base_service import BaseService
from src.modules.shared.exceptions import NotFoundError, ValidationError

if TYPE_CHECKING:
    from src.core.config.manager import ConfigManager
    from src.core.event.bus import EventBus
    from src.modules.progression.service import AwardResult, ProgressionService
    from src.modules.progression.store import ProgressionStore


# ============================================================================
# Results
# ============================================================================


@dataclass(frozen=True)
class SubmissionRewardResult:
    submission_id: int
    athlete_id: int
    challenge_id: int
    achieved_rank: Optional[Rank]
    new_tiers: Tuple[Rank, ...]
    claimed_tiers: Tuple[Rank, ...]
    base_xp: int
    awards: Tuple[AwardResult, ...] = ()

    @property
    def is_new_best(self) -> bool:
        return bool(self.new_tiers)

    @property
    def highest_new_tier(self) -> Optional[Rank]:
        return self.new_tiers[-1] if self.new_tiers else None

    @property
    def total_awarded(self) -> int:
        return sum(award.awarded for award in self.awards)


@dataclass(frozen=True)
class RewardPreview:
    """What grading `challenge_id` at `tier` would pay, given `claimed`."""

    challenge_id: int
    tier: Optional[Rank]
    new_tiers: Tuple[Rank, ...]
    base_xp: int
    shares: Tuple[DomainShare, ...]


# ============================================================================
# SubmissionRewardService
# ============================================================================


class SubmissionRewardService(BaseService):
    """
    Pays out challenge submissions.

    Shares the store, tables and retry policy of the `ProgressionService`
    it delegates individual awards to, so a submission and its domain
    awards commit in one transaction.
    """

    def __init__(
        self,
        progression: ProgressionService,
        config_manager: ConfigManager,
        event_bus: EventBus,
    ) -> None:
        super().__init__(config_manager, event_bus, get_logger(__name__))
        self._progression = progression

    @property
    def _store(self) -> ProgressionStore:
        return self._progression.store

    async def process_submission(
        self,
        submission_id: int,
        *,
        achieved_value: Optional[float] = None,
        achieved_weight: Optional[float] = None,
        passed: Optional[bool] = None,
    ) -> SubmissionRewardResult:
        """
        Approve a submission and pay any newly earned tiers.

        Args:
            submission_id: Submission to approve
            achieved_value: New raw result; re-resolves the achieved tier
            achieved_weight: Load for weighted-reps challenges
            passed: Result of a pass/fail challenge

        Without `achieved_value` or `passed` the stored achieved tier is
        used. Calling this again with the same result pays nothing.

        Raises:
            NotFoundError: Unknown submission, or its challenge or athlete
            ValidationError: A graded challenge given `passed` only
            TransientProgressionError: Conflicts persisted past the retry budget
        """
        self.validate_positive_int(submission_id, "submission_id")

        async def operation() -> Tuple[SubmissionRewardResult, List[DomainEvent]]:
            async with self._store.transaction() as uow:
                submission = await uow.get_submission_for_update(submission_id)
                if submission is None:
                    raise NotFoundError("ChallengeSubmission", submission_id)

                challenge = await uow.get_challenge(submission.challenge_id)
                if challenge is None:
                    raise NotFoundError("Challenge", submission.challenge_id)

                athlete = await uow.get_athlete(submission.athlete_id)
                if athlete is None:
                    raise NotFoundError("Athlete", submission.athlete_id)

                if achieved_value is not None or passed is not None:
                    self._regrade(
                        submission,
                        challenge,
                        athlete.division_id,
                        achieved_value=achieved_value,
                        achieved_weight=achieved_weight,
                        passed=passed,
                    )

                new_tiers = claim_new_tiers(
                    submission.achieved_rank, challenge.min_rank, submission.claimed
                )
                base_xp = base_reward(new_tiers, self._progression.tables)
                shares = split_reward(base_xp, challenge.split) if new_tiers else []

                progress_by_domain = (
                    await uow.lock_progress(athlete.id, [share.domain_id for share in shares])
                    if shares
                    else {}
                )
                note = f"Completed {','.join(tier.value for tier in new_tiers)} tier(s)"
                awards: List[AwardResult] = []
                for share in shares:
                    awards.append(
                        await self._progression.award_within(
                            uow,
                            progress_by_domain[share.domain_id],
                            share.amount,
                            XPSource.CHALLENGE,
                            source_id=submission.id,
                            note=note,
                        )
                    )
                for progress in progress_by_domain.values():
                    if progress.is_dirty:
                        await uow.save_progress(progress)

                submission.claimed = merge_claimed(submission.claimed, new_tiers)
                submission.xp_awarded += base_xp
                submission.status = SubmissionStatus.APPROVED
                submission.reviewed_at = self._progression.clock()
                await uow.save_submission(submission)

            events = [
                event
                for domain_id in sorted(progress_by_domain)
                for event in progress_by_domain[domain_id].clear_domain_events()
            ]
            result = SubmissionRewardResult(
                submission_id=submission.id,
                athlete_id=submission.athlete_id,
                challenge_id=submission.challenge_id,
                achieved_rank=submission.achieved_rank,
                new_tiers=tuple(new_tiers),
                claimed_tiers=submission.claimed,
                base_xp=base_xp,
                awards=tuple(awards),
            )
            return result, events

        async with LogContext(submission_id=submission_id, operation="process_submission"):
            self.log_operation("process_submission", submission_id=submission_id)
            result, events = await self._progression.retry_policy.execute(
                operation,
                operation_name="submission.process_reward",
                context={"submission_id": submission_id},
            )

            self.log.info(
                f"Submission rewarded: {len(result.new_tiers)} new tier(s), {result.base_xp} XP",
                extra={
                    "submission_id": submission_id,
                    "athlete_id": result.athlete_id,
                    "challenge_id": result.challenge_id,
                    "achieved_rank": result.achieved_rank.value if result.achieved_rank else None,
                    "new_tiers": [tier.value for tier in result.new_tiers],
                    "base_xp": result.base_xp,
                },
            )

            await self._progression.publish_events(events)
            await self._progression.publish_events(
                [
                    DomainEvent(
                        event_name=EVENT_SUBMISSION_REWARDED,
                        payload={
                            "submission_id": result.submission_id,
                            "athlete_id": result.athlete_id,
                            "challenge_id": result.challenge_id,
                            "achieved_rank": (
                                result.achieved_rank.value if result.achieved_rank else None
                            ),
                            "new_tiers": [tier.value for tier in result.new_tiers],
                            "base_xp": result.base_xp,
                            "awards": [award.to_dict() for award in result.awards],
                        },
                    )
                ]
            )
        return result

    async def preview_reward(
        self,
        challenge_id: int,
        tier: Union[Rank, str, None],
        claimed: Union[str, Iterable[Rank]] = "",
    ) -> RewardPreview:
        """Read-only estimate of the XP a grading would pay."""
        self.validate_positive_int(challenge_id, "challenge_id")
        achieved = Rank.parse(tier) if tier is not None else None
        already = parse_claimed(claimed) if isinstance(claimed, str) else tuple(claimed)

        async with self._store.reader() as uow:
            challenge = await uow.get_challenge(challenge_id)
        if challenge is None:
            raise NotFoundError("Challenge", challenge_id)

        new_tiers = claim_new_tiers(achieved, challenge.min_rank, already)
        base_xp = base_reward(new_tiers, self._progression.tables)
        shares = split_reward(base_xp, challenge.split) if new_tiers else []
        return RewardPreview(
            challenge_id=challenge_id,
            tier=achieved,
            new_tiers=tuple(new_tiers),
            base_xp=base_xp,
            shares=tuple(shares),
        )

    # ========================================================================
    # Internals
    # ========================================================================

    def _regrade(
        self,
        submission: SubmissionState,
        challenge: ChallengeConfig,
        division_id: Optional[int],
        *,
        achieved_value: Optional[float],
        achieved_weight: Optional[float],
        passed: Optional[bool],
    ) -> None:
        thresholds = thresholds_for_division(challenge.thresholds, division_id)
        if challenge.grading_type is GradingType.PASS_FAIL:
            succeeded = passed if passed is not None else bool(achieved_value)
            achieved = resolve_pass_fail(succeeded, thresholds)
        else:
            if achieved_value is None:
                raise ValidationError(
                    "achieved_value",
                    f"{challenge.grading_type.value} challenges need an achieved value",
                )
            achieved = resolve_tier(
                achieved_value,
                challenge.grading_type,
                thresholds,
                achieved_weight=achieved_weight,
            )

        self.log.debug(
            "Submission regraded",
            extra={
                "submission_id": submission.id,
                "achieved_value": achieved_value,
                "achieved_rank": achieved.value if achieved else None,
                "previous_rank": (
                    submission.achieved_rank.value if submission.achieved_rank else None
                ),
            },
        )
        submission.achieved_value = achieved_value
        submission.achieved_weight = achieved_weight
        submission.achieved_rank = achieved


__all__ = ["RewardPreview", "SubmissionRewardResult", "SubmissionRewardService"]
