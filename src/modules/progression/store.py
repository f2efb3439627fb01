"""
Progression Store Interface

Purpose
-------
The transactional store the progression services depend on. Services never
touch sessions or process-wide handles; they open a unit of work, read and
lock what they need, and let the store commit or roll back as one unit.

Contract
--------
- `transaction()` yields a unit of work whose writes commit together when
  the block exits cleanly and roll back when it raises.
- `reader()` yields a unit of work for read-only queries. Writes made
  through it are not committed.
- `lock_progress` and `get_submission_for_update` serialize writers per
  (athlete, domain) and per submission until the transaction ends. Domain
  rows are locked in ascending domain id order; a missing row is created at
  F0 with 0 XP.
- `save_progress` and `save_submission` are versioned writes. A lost race
  raises `ConcurrencyConflictError`, which the retry policy retries.

Implementations
---------------
- `SqlAlchemyProgressionStore` (repository.py): PostgreSQL via SQLAlchemy
  async sessions and SELECT ... FOR UPDATE.
- tests/fakes.py: in-memory store with per-key asyncio locks.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import AsyncContextManager, Dict, Iterable, List, Optional

from src.modules.progression.models import (
    AthleteProfile,
    BreakthroughRequirement,
    ChallengeAchievement,
    ChallengeConfig,
    DomainProgress,
    SubmissionState,
    XPLedgerEntry,
)
from src.modules.progression.ranks import Rank


class ProgressionUnitOfWork(ABC):
    """Operations available inside one store transaction."""

    # ========================================================================
    # Reference data
    # ========================================================================

    @abstractmethod
    async def get_athlete(self, athlete_id: int) -> Optional[AthleteProfile]:
        ...

    @abstractmethod
    async def domain_exists(self, domain_id: int) -> bool:
        ...

    @abstractmethod
    async def get_challenge(self, challenge_id: int) -> Optional[ChallengeConfig]:
        ...

    # ========================================================================
    # Submissions
    # ========================================================================

    @abstractmethod
    async def get_submission_for_update(self, submission_id: int) -> Optional[SubmissionState]:
        """Load and lock a submission until the transaction ends."""

    @abstractmethod
    async def save_submission(self, submission: SubmissionState) -> None:
        """
        Versioned write; bumps `submission.version` on success.

        Raises:
            ConcurrencyConflictError: If the stored version moved on
        """

    @abstractmethod
    async def list_approved_achievements(
        self, athlete_id: int, domain_id: int
    ) -> List[ChallengeAchievement]:
        """
        Achieved tiers of the athlete's approved submissions on active
        challenges whose primary domain is `domain_id`.
        """

    # ========================================================================
    # Domain progress
    # ========================================================================

    @abstractmethod
    async def lock_progress(
        self, athlete_id: int, domain_ids: Iterable[int]
    ) -> Dict[int, DomainProgress]:
        """
        Lock (creating when missing) the athlete's progress rows.

        Raises:
            ConcurrencyConflictError: If a concurrent writer created the
                same row first
        """

    @abstractmethod
    async def get_progress(self, athlete_id: int, domain_id: int) -> Optional[DomainProgress]:
        ...

    @abstractmethod
    async def list_progress(self, athlete_id: int) -> List[DomainProgress]:
        """All progress rows of an athlete, by ascending domain id."""

    @abstractmethod
    async def save_progress(self, progress: DomainProgress) -> None:
        """
        Versioned write; calls `progress.mark_saved` on success.

        Raises:
            ConcurrencyConflictError: If the stored version moved on
        """

    # ========================================================================
    # Ledger
    # ========================================================================

    @abstractmethod
    async def append_ledger(self, entry: XPLedgerEntry) -> XPLedgerEntry:
        """Append an entry; returns it with `id` and `created_at` set."""

    @abstractmethod
    async def list_ledger(
        self, athlete_id: int, domain_id: Optional[int], limit: int
    ) -> List[XPLedgerEntry]:
        """Newest first."""

    # ========================================================================
    # Breakthrough rules
    # ========================================================================

    @abstractmethod
    async def list_breakthrough_rules(
        self, from_rank: Rank, domain_id: int
    ) -> List[BreakthroughRequirement]:
        """Rules leaving `from_rank` that apply to `domain_id` or to all domains."""

    @abstractmethod
    async def find_breakthrough_rule(
        self, from_rank: Rank, domain_id: Optional[int], division_id: Optional[int]
    ) -> Optional[BreakthroughRequirement]:
        """Exact-key lookup, `None` matching only unset columns."""

    @abstractmethod
    async def add_breakthrough_rule(self, rule: BreakthroughRequirement) -> BreakthroughRequirement:
        ...


class ProgressionStore(ABC):
    """Factory for units of work."""

    @abstractmethod
    def transaction(self) -> AsyncContextManager[ProgressionUnitOfWork]:
        ...

    @abstractmethod
    def reader(self) -> AsyncContextManager[ProgressionUnitOfWork]:
        ...


__all__ = ["ProgressionStore", "ProgressionUnitOfWork"]
