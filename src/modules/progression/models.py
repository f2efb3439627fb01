"""
Progression domain models.

Purpose
-------
Rich domain objects the progression services work with, separate from the
schema-only ORM rows in `src.database.models`. Stores convert rows to these
objects at the boundary (`from_db`) and write them back (`to_db_updates`).

Contents
--------
- ProgressState: immutable snapshot of one (athlete, domain) rank state
- DomainProgress: aggregate root owning a ProgressState; records awards and
  breakthroughs and queues domain events for publication after commit
- XPLedgerEntry: immutable audit record of one award
- AthleteProfile, ChallengeConfig, SubmissionState, BreakthroughRequirement,
  ChallengeAchievement: read models for the reward and breakthrough flows
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, Optional

from src.database.models.enums import GradingType, SubmissionStatus, XPSource
from src.domain.models.base import (
    AggregateRoot,
    DomainValidationError,
    validate_non_negative,
    validate_range,
)
from src.modules.progression.claims import parse_claimed, serialize_claimed
from src.modules.progression.constants import (
    EVENT_BREAKTHROUGH_CONFIRMED,
    EVENT_BREAKTHROUGH_READY,
    EVENT_LEVELED_UP,
    EVENT_XP_AWARDED,
)
from src.modules.progression.ranks import MAX_SUBLEVEL, Rank, RankLevel, next_rank
from src.modules.progression.rewards import DomainAllocation, RewardSplitConfig
from src.modules.progression.tiers import TierThreshold

if TYPE_CHECKING:
    from src.database.models.challenges.challenge import Challenge as ChallengeDB
    from src.database.models.challenges.submission import (
        ChallengeSubmission as ChallengeSubmissionDB,
    )
    from src.database.models.core.athlete import Athlete as AthleteDB
    from src.database.models.progression.breakthrough_rule import (
        BreakthroughRule as BreakthroughRuleDB,
    )
    from src.database.models.progression.domain_progress import DomainProgressRow
    from src.database.models.progression.xp_ledger import XPLedgerRow
    from src.modules.progression.engine import AwardOutcome


# ============================================================================
# VALUE OBJECTS
# ============================================================================


@dataclass(frozen=True)
class ProgressState:
    """
    Rank state of one athlete in one domain.

    Attributes
    ----------
    letter, sublevel:
        Current rank; sublevel is 0-9.
    current_xp:
        XP toward the current letter's ceiling, never above it.
    banked_xp:
        XP earned beyond the ceiling, held until a breakthrough.
    breakthrough_ready:
        True once XP has overflowed the ceiling and a next letter exists.
    """

    letter: Rank = Rank.F
    sublevel: int = 0
    current_xp: int = 0
    banked_xp: int = 0
    breakthrough_ready: bool = False

    def __post_init__(self) -> None:
        validate_range(self.sublevel, 0, MAX_SUBLEVEL, "sublevel")
        validate_non_negative(self.current_xp, "current_xp")
        validate_non_negative(self.banked_xp, "banked_xp")

    @property
    def level(self) -> RankLevel:
        return RankLevel(self.letter, self.sublevel)


@dataclass(frozen=True)
class XPLedgerEntry:
    """Immutable record of one award. `id`/`created_at` are set by the store."""

    athlete_id: int
    domain_id: int
    amount: int
    source: XPSource
    source_id: Optional[int] = None
    note: Optional[str] = None
    id: Optional[int] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_db(cls, row: XPLedgerRow) -> XPLedgerEntry:
        return cls(
            athlete_id=row.athlete_id,
            domain_id=row.domain_id,
            amount=row.amount,
            source=XPSource(row.source),
            source_id=row.source_id,
            note=row.note,
            id=row.id,
            created_at=row.created_at,
        )


@dataclass(frozen=True)
class AthleteProfile:
    id: int
    display_name: str
    division_id: Optional[int] = None

    @classmethod
    def from_db(cls, row: AthleteDB) -> AthleteProfile:
        return cls(id=row.id, display_name=row.display_name, division_id=row.division_id)


@dataclass(frozen=True)
class ChallengeConfig:
    """Grading and reward configuration of one challenge."""

    id: int
    name: str
    grading_type: GradingType
    split: RewardSplitConfig
    min_rank: Rank = Rank.F
    max_rank: Rank = Rank.S
    thresholds: tuple[TierThreshold, ...] = ()
    is_active: bool = True

    @classmethod
    def from_db(cls, row: ChallengeDB) -> ChallengeConfig:
        def _allocation(domain_id: Optional[int], percent: Optional[int]) -> Optional[DomainAllocation]:
            if domain_id is None or not percent:
                return None
            return DomainAllocation(domain_id=domain_id, percent=percent)

        split = RewardSplitConfig(
            primary=DomainAllocation(row.primary_domain_id, row.primary_xp_percent),
            secondary=_allocation(row.secondary_domain_id, row.secondary_xp_percent),
            tertiary=_allocation(row.tertiary_domain_id, row.tertiary_xp_percent),
        )
        thresholds = tuple(
            TierThreshold(
                tier=Rank.parse(grade.rank),
                target_value=grade.target_value,
                target_weight=grade.target_weight,
                division_id=grade.division_id,
            )
            for grade in row.grades
        )
        return cls(
            id=row.id,
            name=row.name,
            grading_type=GradingType(row.grading_type),
            split=split,
            min_rank=Rank.parse(row.min_rank),
            max_rank=Rank.parse(row.max_rank),
            thresholds=thresholds,
            is_active=row.is_active,
        )


@dataclass
class SubmissionState:
    """
    Mutable working copy of a submission inside one transaction.

    `claimed` is the idempotency boundary: tiers already paid for this
    (athlete, challenge) pair, ascending.
    """

    id: int
    athlete_id: int
    challenge_id: int
    status: SubmissionStatus = SubmissionStatus.PENDING
    achieved_value: Optional[float] = None
    achieved_weight: Optional[float] = None
    achieved_rank: Optional[Rank] = None
    claimed: tuple[Rank, ...] = ()
    xp_awarded: int = 0
    version: int = 1
    reviewed_at: Optional[datetime] = None

    @classmethod
    def from_db(cls, row: ChallengeSubmissionDB) -> SubmissionState:
        return cls(
            id=row.id,
            athlete_id=row.athlete_id,
            challenge_id=row.challenge_id,
            status=SubmissionStatus(row.status),
            achieved_value=row.achieved_value,
            achieved_weight=row.achieved_weight,
            achieved_rank=Rank.parse(row.achieved_rank) if row.achieved_rank else None,
            claimed=parse_claimed(row.claimed_tiers),
            xp_awarded=row.xp_awarded,
            version=row.version,
            reviewed_at=row.reviewed_at,
        )

    def to_db_updates(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "achieved_value": self.achieved_value,
            "achieved_weight": self.achieved_weight,
            "achieved_rank": self.achieved_rank.value if self.achieved_rank else None,
            "claimed_tiers": serialize_claimed(self.claimed),
            "xp_awarded": self.xp_awarded,
            "reviewed_at": self.reviewed_at,
        }


@dataclass(frozen=True)
class BreakthroughRequirement:
    """
    Rule for one letter transition. `domain_id=None` applies to every
    domain; `division_id=None` is the default (non-override) rule.
    """

    from_rank: Rank
    to_rank: Rank
    tier_required: Rank
    challenge_count: int
    domain_id: Optional[int] = None
    division_id: Optional[int] = None
    is_active: bool = True
    id: Optional[int] = None

    def __post_init__(self) -> None:
        if next_rank(self.from_rank) is not self.to_rank:
            raise DomainValidationError(
                f"to_rank must follow from_rank ({self.from_rank.value} -> {self.to_rank.value})",
                field="to_rank",
            )
        validate_non_negative(self.challenge_count, "challenge_count")

    @classmethod
    def from_db(cls, row: BreakthroughRuleDB) -> BreakthroughRequirement:
        return cls(
            from_rank=Rank.parse(row.from_rank),
            to_rank=Rank.parse(row.to_rank),
            tier_required=Rank.parse(row.tier_required),
            challenge_count=row.challenge_count,
            domain_id=row.domain_id,
            division_id=row.division_id,
            is_active=row.is_active,
            id=row.id,
        )


@dataclass(frozen=True)
class ChallengeAchievement:
    """An approved submission's best tier on one challenge."""

    challenge_id: int
    achieved_rank: Rank


# ============================================================================
# DOMAIN PROGRESS AGGREGATE ROOT
# ============================================================================


class DomainProgress(AggregateRoot):
    """
    Aggregate root for one athlete's progression in one domain.

    Business Rules
    --------------
    - State changes only through `record_award` and `advance_letter`
    - The letter advances only through a confirmed breakthrough
    - Breakthrough releases all banked XP

    Domain Events
    -------------
    - progression.xp_awarded: every recorded award (not replays)
    - progression.leveled_up: sublevel increased
    - progression.breakthrough_ready: XP first overflowed the ceiling
    - progression.breakthrough_confirmed: letter advanced
    """

    def __init__(
        self,
        progress_id: int,
        athlete_id: int,
        domain_id: int,
        state: Optional[ProgressState] = None,
        breakthrough_achieved_at: Optional[datetime] = None,
        version: int = 1,
    ) -> None:
        super().__init__(progress_id)
        self._athlete_id = athlete_id
        self._domain_id = domain_id
        self._state = state or ProgressState()
        self._breakthrough_achieved_at = breakthrough_achieved_at
        self._version = version
        self._dirty = False

    # ========================================================================
    # PROPERTIES
    # ========================================================================

    @property
    def athlete_id(self) -> int:
        return self._athlete_id

    @property
    def domain_id(self) -> int:
        return self._domain_id

    @property
    def state(self) -> ProgressState:
        return self._state

    @property
    def level(self) -> RankLevel:
        return self._state.level

    @property
    def breakthrough_achieved_at(self) -> Optional[datetime]:
        return self._breakthrough_achieved_at

    @property
    def version(self) -> int:
        return self._version

    @property
    def is_dirty(self) -> bool:
        return self._dirty

    # ========================================================================
    # BUSINESS LOGIC
    # ========================================================================

    def record_award(
        self,
        outcome: AwardOutcome,
        *,
        source: Optional[XPSource] = None,
        source_id: Optional[int] = None,
        replay: bool = False,
    ) -> None:
        """
        Adopt the state computed by the engine and queue its events.

        Parameters
        ----------
        outcome : AwardOutcome
            Result of `apply_award` against this aggregate's current state.
        replay : bool
            True when re-applying released banked XP after a breakthrough;
            no `xp_awarded` event is queued for a replay.

        Raises
        ------
        DomainValidationError
            If the outcome was computed from a different state.
        """
        if outcome.previous_state != self._state:
            raise DomainValidationError(
                "award outcome does not match current progress state",
                field="state",
            )

        if outcome.state != self._state:
            self._state = outcome.state
            self._dirty = True

        base = {"athlete_id": self._athlete_id, "domain_id": self._domain_id}

        if not replay:
            self.add_domain_event(
                EVENT_XP_AWARDED,
                {
                    **base,
                    "amount": outcome.awarded,
                    "source": source.value if source else None,
                    "source_id": source_id,
                    "previous_level": str(outcome.previous_level),
                    "new_level": str(outcome.new_level),
                    "banked_xp": outcome.state.banked_xp,
                },
            )

        if outcome.leveled_up:
            self.add_domain_event(
                EVENT_LEVELED_UP,
                {
                    **base,
                    "previous_level": str(outcome.previous_level),
                    "new_level": str(outcome.new_level),
                    "letter": outcome.new_level.letter.value,
                    "sublevel": outcome.new_level.sublevel,
                },
            )

        if outcome.became_breakthrough_ready:
            self.add_domain_event(
                EVENT_BREAKTHROUGH_READY,
                {
                    **base,
                    "letter": outcome.new_level.letter.value,
                    "banked_xp": outcome.state.banked_xp,
                },
            )

    def advance_letter(self, to_rank: Rank, at: datetime) -> int:
        """
        Advance to `to_rank` at sublevel 0 and release all banked XP.

        Returns
        -------
        int
            The released banked XP, to be replayed at the new letter.
        """
        if next_rank(self._state.letter) is not to_rank:
            raise DomainValidationError(
                f"cannot advance from {self._state.letter.value} to {to_rank.value}",
                field="letter",
            )

        from_rank = self._state.letter
        released = self._state.banked_xp
        self._state = ProgressState(letter=to_rank)
        self._breakthrough_achieved_at = at
        self._dirty = True

        self.add_domain_event(
            EVENT_BREAKTHROUGH_CONFIRMED,
            {
                "athlete_id": self._athlete_id,
                "domain_id": self._domain_id,
                "from_rank": from_rank.value,
                "to_rank": to_rank.value,
                "released_xp": released,
            },
        )
        return released

    # ========================================================================
    # CONVERSION
    # ========================================================================

    @classmethod
    def from_db(cls, row: DomainProgressRow) -> DomainProgress:
        state = ProgressState(
            letter=Rank.parse(row.letter),
            sublevel=row.sublevel,
            current_xp=row.current_xp,
            banked_xp=row.banked_xp,
            breakthrough_ready=row.breakthrough_ready,
        )
        return cls(
            progress_id=row.id,
            athlete_id=row.athlete_id,
            domain_id=row.domain_id,
            state=state,
            breakthrough_achieved_at=row.breakthrough_achieved_at,
            version=row.version,
        )

    def to_db_updates(self) -> Dict[str, Any]:
        return {
            "letter": self._state.letter.value,
            "sublevel": self._state.sublevel,
            "current_xp": self._state.current_xp,
            "banked_xp": self._state.banked_xp,
            "breakthrough_ready": self._state.breakthrough_ready,
            "breakthrough_achieved_at": self._breakthrough_achieved_at,
        }

    def mark_saved(self, new_version: int) -> None:
        """Called by stores after a successful versioned write."""
        self._version = new_version
        self._dirty = False

    def __repr__(self) -> str:
        return (
            f"DomainProgress(athlete_id={self._athlete_id}, domain_id={self._domain_id}, "
            f"level={self.level}, current_xp={self._state.current_xp}, "
            f"banked_xp={self._state.banked_xp})"
        )


__all__ = [
    "AthleteProfile",
    "BreakthroughRequirement",
    "ChallengeAchievement",
    "ChallengeConfig",
    "DomainProgress",
    "ProgressState",
    "SubmissionState",
    "XPLedgerEntry",
]
