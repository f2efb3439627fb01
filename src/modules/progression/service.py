"""
Progression Service
===================

Purpose
-------
Owns every write to an athlete's domain progression: XP awards, confirmed
breakthroughs and the seeding of default breakthrough rules. Also serves the
read side (progress, prime level, XP history, breakthrough status).

Domain
------
- XP awards per (athlete, domain), with banking above the rank ceiling
- Breakthrough evaluation and letter advancement
- Prime level across domains
- Append-only XP ledger

Guarantees
----------
- Each write runs in one store transaction: the DomainProgress row is
  locked, the ledger entry is appended and the new state is written
  together, or not at all.
- Conflicts (`ConcurrencyConflictError`, transient database errors) rerun the
  whole transaction through `TransactionRetryPolicy`; exhaustion surfaces as
  `TransientProgressionError`.
- Domain events are published only after commit, and only from the
  attempt that committed. Publishing failures are logged, never raised.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Callable, List, Optional, Sequence, Tuple, Union

from src.core.database.base import utcnow
from src.core.database.retry_policy import RetryConfig, TransactionRetryPolicy
from src.core.logging.logger import LogContext, get_logger
from src.database.models.enums import XPSource
from src.domain.models.base import DomainEvent
from src.modules.progression.breakthrough import BreakthroughProgress, evaluate_breakthrough
from src.modules.progression.constants import DEFAULT_BREAKTHROUGH_RULES, XP_HISTORY_LIMIT
from src.modules.progression.engine import apply_award, is_at_ceiling
from src.modules.progression.models import (
    AthleteProfile,
    BreakthroughRequirement,
    DomainProgress,
    ProgressState,
    XPLedgerEntry,
)
from src.modules.progression.prime import PrimeLevel, compute_prime
from src.modules.progression.ranks import Rank, RankLevel, next_rank
from src.modules.shared.base_service import BaseService
from src.modules.shared.exceptions import (
    ConcurrencyConflictError,
    InvalidOperationError,
    NotFoundError,
    TransientProgressionError,
    ValidationError,
)

if TYPE_CHECKING:
    from src.core.config.manager import ConfigManager
    from src.core.event.bus import EventBus
    from src.modules.progression.constants import ProgressionTables
    from src.modules.progression.store import ProgressionStore, ProgressionUnitOfWork


MAX_HISTORY_LIMIT = 500


def default_retry_policy() -> TransactionRetryPolicy:
    """Retry config from the environment, retrying progression conflicts too."""
    return TransactionRetryPolicy(
        RetryConfig.from_config().with_retriable(ConcurrencyConflictError),
        on_exhausted=lambda operation, attempts, exc: TransientProgressionError(
            operation, attempts
        ),
    )


# ============================================================================
# Results
# ============================================================================


@dataclass(frozen=True)
class AwardResult:
    """Outcome of one XP award, as returned to callers and presentation layers."""

    athlete_id: int
    domain_id: int
    awarded: int
    previous_level: RankLevel
    new_level: RankLevel
    leveled_up: bool
    breakthrough_ready: bool
    banked_xp: int
    ledger_entry: XPLedgerEntry

    def to_dict(self) -> dict:
        return {
            "athlete_id": self.athlete_id,
            "domain_id": self.domain_id,
            "awarded": self.awarded,
            "previous_level": str(self.previous_level),
            "new_level": str(self.new_level),
            "leveled_up": self.leveled_up,
            "breakthrough_ready": self.breakthrough_ready,
            "banked_xp": self.banked_xp,
        }


@dataclass(frozen=True)
class BreakthroughResult:
    athlete_id: int
    domain_id: int
    from_rank: Rank
    to_rank: Rank
    released_xp: int
    new_level: RankLevel
    banked_xp: int
    breakthrough_ready: bool


# ============================================================================
# ProgressionService
# ============================================================================


class ProgressionService(BaseService):
    """
    XP awards, breakthroughs and progression reads.

    Dependencies
    ------------
    - ProgressionStore: transactional store (SQLAlchemy or in-memory)
    - ProgressionTables: per-rank XP tables, loaded once at startup
    - ConfigManager: `progression.history_limit`
    - EventBus: post-commit notifications

    Public Methods
    --------------
    - award_xp() -> Award XP to one domain
    - confirm_breakthrough() -> Advance to the next letter
    - resolve_breakthrough() -> Evaluate the breakthrough requirement
    - seed_default_breakthrough_rules() -> Install default rules
    - get_progress() / list_progress() -> Current domain state
    - get_prime_level() -> Composite level
    - get_xp_history() -> Ledger entries, newest first
    """

    def __init__(
        self,
        store: ProgressionStore,
        tables: ProgressionTables,
        config_manager: ConfigManager,
        event_bus: EventBus,
        *,
        retry_policy: Optional[TransactionRetryPolicy] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        super().__init__(config_manager, event_bus, get_logger(__name__))
        self._store = store
        self._tables = tables
        self._retry = retry_policy or default_retry_policy()
        self._clock = clock or utcnow

    @property
    def store(self) -> ProgressionStore:
        return self._store

    @property
    def tables(self) -> ProgressionTables:
        return self._tables

    @property
    def retry_policy(self) -> TransactionRetryPolicy:
        return self._retry

    @property
    def clock(self) -> Callable[[], datetime]:
        return self._clock

    # ========================================================================
    # PUBLIC API - Write Operations
    # ========================================================================

    async def award_xp(
        self,
        athlete_id: int,
        domain_id: int,
        amount: int,
        source: Union[XPSource, str],
        source_id: Optional[int] = None,
        note: Optional[str] = None,
    ) -> AwardResult:
        """
        Award `amount` XP to one athlete in one domain.

        `amount` is signed. A zero amount is recorded but changes nothing; a
        negative one (an admin correction) lowers the XP, never below 0, and
        may drop the sublevel.

        Raises:
            ValidationError: Malformed ids, amount or source
            NotFoundError: Unknown athlete or domain
            TransientProgressionError: Conflicts persisted past the retry budget

        Example:
            >>> result = await progression.award_xp(7, 2, 150, XPSource.TRAINING)
            >>> str(result.new_level)
            'F4'
        """
        self.validate_positive_int(athlete_id, "athlete_id")
        self.validate_positive_int(domain_id, "domain_id")
        self.validate_int(amount, "amount")
        xp_source = self._parse_source(source)

        async def operation() -> Tuple[AwardResult, List[DomainEvent]]:
            async with self._store.transaction() as uow:
                await self._require_athlete(uow, athlete_id)
                await self._require_domain(uow, domain_id)

                progress = (await uow.lock_progress(athlete_id, [domain_id]))[domain_id]
                result = await self.award_within(
                    uow, progress, amount, xp_source, source_id=source_id, note=note
                )
                if progress.is_dirty:
                    await uow.save_progress(progress)
            return result, progress.clear_domain_events()

        async with LogContext(athlete_id=athlete_id, domain_id=domain_id, operation="award_xp"):
            self.log_operation(
                "award_xp",
                athlete_id=athlete_id,
                domain_id=domain_id,
                amount=amount,
                source=xp_source.value,
            )
            result, events = await self._retry.execute(
                operation,
                operation_name="progression.award_xp",
                context={"athlete_id": athlete_id, "domain_id": domain_id},
            )

            self.log.info(
                f"XP awarded: {amount:+d} ({result.previous_level} -> {result.new_level})",
                extra={
                    "athlete_id": athlete_id,
                    "domain_id": domain_id,
                    "amount": amount,
                    "source": xp_source.value,
                    "leveled_up": result.leveled_up,
                    "breakthrough_ready": result.breakthrough_ready,
                    "banked_xp": result.banked_xp,
                },
            )
            await self.publish_events(events)
        return result

    async def award_within(
        self,
        uow: ProgressionUnitOfWork,
        progress: DomainProgress,
        amount: int,
        source: XPSource,
        *,
        source_id: Optional[int] = None,
        note: Optional[str] = None,
    ) -> AwardResult:
        """
        Apply one award to an already-locked aggregate inside `uow`.

        Appends the ledger entry and updates the aggregate; saving the
        aggregate and publishing its events is the caller's job, so several
        awards can share one transaction.
        """
        outcome = apply_award(progress.state, amount, self._tables)
        entry = await uow.append_ledger(
            XPLedgerEntry(
                athlete_id=progress.athlete_id,
                domain_id=progress.domain_id,
                amount=amount,
                source=source,
                source_id=source_id,
                note=note,
            )
        )
        progress.record_award(outcome, source=source, source_id=source_id)

        return AwardResult(
            athlete_id=progress.athlete_id,
            domain_id=progress.domain_id,
            awarded=amount,
            previous_level=outcome.previous_level,
            new_level=outcome.new_level,
            leveled_up=outcome.leveled_up,
            breakthrough_ready=outcome.breakthrough_ready,
            banked_xp=outcome.state.banked_xp,
            ledger_entry=entry,
        )

    async def confirm_breakthrough(self, athlete_id: int, domain_id: int) -> BreakthroughResult:
        """
        Advance a breakthrough-ready athlete at the letter ceiling to the next
        letter.

        The letter advances, sublevel and current XP reset to 0, and all
        banked XP is replayed as a fresh award at the new letter. A zero
        amount BONUS entry marks the transition in the ledger.

        Raises:
            NotFoundError: Unknown athlete or domain
            InvalidOperationError: At S rank, not breakthrough-ready, no rule
                configured, or requirement not yet met
        """
        self.validate_positive_int(athlete_id, "athlete_id")
        self.validate_positive_int(domain_id, "domain_id")

        async def operation() -> Tuple[BreakthroughResult, List[DomainEvent]]:
            async with self._store.transaction() as uow:
                athlete = await self._require_athlete(uow, athlete_id)
                await self._require_domain(uow, domain_id)

                progress = (await uow.lock_progress(athlete_id, [domain_id]))[domain_id]
                state = progress.state
                if next_rank(state.letter) is None:
                    raise InvalidOperationError(
                        "confirm_breakthrough", f"{state.letter.label} is the highest rank"
                    )
                if not (state.breakthrough_ready and is_at_ceiling(state, self._tables)):
                    raise InvalidOperationError(
                        "confirm_breakthrough",
                        f"progress {progress.level} is not breakthrough-ready at the "
                        f"{state.letter.value} ceiling",
                    )

                evaluation = await self._evaluate(uow, athlete, domain_id, state.letter)
                if not evaluation.available:
                    raise InvalidOperationError(
                        "confirm_breakthrough",
                        f"no breakthrough rule configured for {state.letter.value} -> "
                        f"{evaluation.to_rank.value if evaluation.to_rank else '-'}",
                    )
                if not evaluation.is_complete:
                    raise InvalidOperationError(
                        "confirm_breakthrough",
                        f"{evaluation.current_progress}/{evaluation.required_count} challenges "
                        f"completed at tier {evaluation.tier_required.value}",
                    )

                from_rank = state.letter
                to_rank = evaluation.to_rank
                released = progress.advance_letter(to_rank, self._clock())
                await uow.append_ledger(
                    XPLedgerEntry(
                        athlete_id=athlete_id,
                        domain_id=domain_id,
                        amount=0,
                        source=XPSource.BONUS,
                        note=f"Breakthrough: {from_rank.value} → {to_rank.value}",
                    )
                )

                if released > 0:
                    outcome = apply_award(progress.state, released, self._tables)
                    progress.record_award(outcome, replay=True)

                await uow.save_progress(progress)

            result = BreakthroughResult(
                athlete_id=athlete_id,
                domain_id=domain_id,
                from_rank=from_rank,
                to_rank=to_rank,
                released_xp=released,
                new_level=progress.level,
                banked_xp=progress.state.banked_xp,
                breakthrough_ready=progress.state.breakthrough_ready,
            )
            return result, progress.clear_domain_events()

        async with LogContext(
            athlete_id=athlete_id, domain_id=domain_id, operation="confirm_breakthrough"
        ):
            self.log_operation(
                "confirm_breakthrough", athlete_id=athlete_id, domain_id=domain_id
            )
            result, events = await self._retry.execute(
                operation,
                operation_name="progression.confirm_breakthrough",
                context={"athlete_id": athlete_id, "domain_id": domain_id},
            )

            self.log.info(
                f"Breakthrough confirmed: {result.from_rank.value} -> {result.to_rank.value}",
                extra={
                    "athlete_id": athlete_id,
                    "domain_id": domain_id,
                    "released_xp": result.released_xp,
                    "new_level": str(result.new_level),
                },
            )
            await self.publish_events(events)
        return result

    async def seed_default_breakthrough_rules(self) -> List[BreakthroughRequirement]:
        """
        Install the default all-domain rules for every transition that has
        no all-domain default yet. Returns the rules created.
        """
        async def operation() -> List[BreakthroughRequirement]:
            created: List[BreakthroughRequirement] = []
            async with self._store.transaction() as uow:
                for default in DEFAULT_BREAKTHROUGH_RULES:
                    existing = await uow.find_breakthrough_rule(default.from_rank, None, None)
                    if existing is not None:
                        continue
                    created.append(
                        await uow.add_breakthrough_rule(
                            BreakthroughRequirement(
                                from_rank=default.from_rank,
                                to_rank=default.to_rank,
                                tier_required=default.tier_required,
                                challenge_count=default.challenge_count,
                            )
                        )
                    )
            return created

        created = await self._retry.execute(
            operation, operation_name="progression.seed_default_breakthrough_rules"
        )
        self.log_operation("seed_default_breakthrough_rules", rules_created=len(created))
        return created

    # ========================================================================
    # PUBLIC API - Read Operations
    # ========================================================================

    async def resolve_breakthrough(self, athlete_id: int, domain_id: int) -> BreakthroughProgress:
        """
        Evaluate the breakthrough requirement for the athlete's current letter.

        Never raises for "not applicable": an athlete at S or with no rule
        gets `available=False`.
        """
        self.validate_positive_int(athlete_id, "athlete_id")
        self.validate_positive_int(domain_id, "domain_id")

        async with self._store.reader() as uow:
            athlete = await self._require_athlete(uow, athlete_id)
            await self._require_domain(uow, domain_id)
            progress = await uow.get_progress(athlete_id, domain_id)
            letter = progress.state.letter if progress else Rank.F
            return await self._evaluate(uow, athlete, domain_id, letter)

    async def get_progress(self, athlete_id: int, domain_id: int) -> ProgressState:
        """Current state; F0 with no XP when the athlete has no row yet."""
        self.validate_positive_int(athlete_id, "athlete_id")
        self.validate_positive_int(domain_id, "domain_id")

        async with self._store.reader() as uow:
            await self._require_athlete(uow, athlete_id)
            await self._require_domain(uow, domain_id)
            progress = await uow.get_progress(athlete_id, domain_id)
        return progress.state if progress else ProgressState()

    async def list_progress(self, athlete_id: int) -> List[DomainProgress]:
        self.validate_positive_int(athlete_id, "athlete_id")

        async with self._store.reader() as uow:
            await self._require_athlete(uow, athlete_id)
            return await uow.list_progress(athlete_id)

    async def get_prime_level(self, athlete_id: int) -> PrimeLevel:
        """Composite level over every domain the athlete has progress in."""
        progress = await self.list_progress(athlete_id)
        return compute_prime(p.level for p in progress)

    async def get_xp_history(
        self,
        athlete_id: int,
        domain_id: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> List[XPLedgerEntry]:
        """
        Ledger entries, newest first.

        Args:
            limit: Defaults to `progression.history_limit` (50)
        """
        self.validate_positive_int(athlete_id, "athlete_id")
        if domain_id is not None:
            self.validate_positive_int(domain_id, "domain_id")
        if limit is None:
            limit = int(self.get_config("progression.history_limit", XP_HISTORY_LIMIT))
        self.validate_int(limit, "limit")
        self.validate_range(limit, "limit", 1, MAX_HISTORY_LIMIT)

        async with self._store.reader() as uow:
            await self._require_athlete(uow, athlete_id)
            return await uow.list_ledger(athlete_id, domain_id, limit)

    # ========================================================================
    # Internals
    # ========================================================================

    async def publish_events(self, events: Sequence[DomainEvent]) -> None:
        """Publish committed domain events. Failures are logged only."""
        for event in events:
            try:
                await self.emit_event(event.event_name, event.payload)
            except Exception as exc:
                self.log_error("publish_event", exc, event_name=event.event_name)

    async def _evaluate(
        self,
        uow: ProgressionUnitOfWork,
        athlete: AthleteProfile,
        domain_id: int,
        letter: Rank,
    ) -> BreakthroughProgress:
        rules: List[BreakthroughRequirement] = []
        achievements = []
        if next_rank(letter) is not None:
            rules = await uow.list_breakthrough_rules(letter, domain_id)
        if rules:
            achievements = await uow.list_approved_achievements(athlete.id, domain_id)

        return evaluate_breakthrough(
            athlete_id=athlete.id,
            domain_id=domain_id,
            division_id=athlete.division_id,
            current_letter=letter,
            rules=rules,
            achievements=achievements,
        )

    @staticmethod
    async def _require_athlete(uow: ProgressionUnitOfWork, athlete_id: int) -> AthleteProfile:
        athlete = await uow.get_athlete(athlete_id)
        if athlete is None:
            raise NotFoundError("Athlete", athlete_id)
        return athlete

    @staticmethod
    async def _require_domain(uow: ProgressionUnitOfWork, domain_id: int) -> None:
        if not await uow.domain_exists(domain_id):
            raise NotFoundError("Domain", domain_id)

    @staticmethod
    def _parse_source(source: Union[XPSource, str]) -> XPSource:
        if isinstance(source, XPSource):
            return source
        try:
            return XPSource(str(source).strip().lower())
        except ValueError:
            raise ValidationError(
                "source",
                f"unknown XP source {source!r}; expected one of "
                f"{', '.join(s.value for s in XPSource)}",
            ) from None


__all__ = [
    "AwardResult",
    "BreakthroughResult",
    "ProgressionService",
    "default_retry_policy",
]
