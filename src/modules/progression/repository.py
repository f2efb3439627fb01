"""
SQLAlchemy Progression Store

Purpose
-------
PostgreSQL implementation of `ProgressionStore` on SQLAlchemy 2.0 async
sessions. Each unit of work wraps one `DatabaseService` session; repositories
built on `BaseRepository` do the querying and rows are converted to domain
models at this boundary.

Concurrency
-----------
- Submissions and DomainProgress rows are read with SELECT ... FOR UPDATE.
- DomainProgress rows are locked one at a time in ascending domain id order.
  A missing row is inserted inside a SAVEPOINT; losing that insert race on
  the (athlete_id, domain_id) unique constraint raises
  `ConcurrencyConflictError` and the caller's retry policy reruns the
  whole transaction.
- Writes are versioned UPDATEs (`WHERE version = :expected`). Zero matched
  rows raises `ConcurrencyConflictError`.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, AsyncGenerator, Dict, Iterable, List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from src.core.logging.logger import get_logger
from src.database.models.challenges import Challenge, ChallengeSubmission
from src.database.models.core import Athlete, Domain
from src.database.models.enums import SubmissionStatus
from src.database.models.progression import BreakthroughRule, DomainProgressRow, XPLedgerRow
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
from src.modules.progression.store import ProgressionStore, ProgressionUnitOfWork
from src.modules.shared.base_repository import BaseRepository
from src.modules.shared.exceptions import ConcurrencyConflictError

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from src.core.database.service import DatabaseService

logger = get_logger(__name__)


# ============================================================================
# Repositories
# ============================================================================


class AthleteRepository(BaseRepository[Athlete]):
    pass


class DomainRepository(BaseRepository[Domain]):
    pass


class ChallengeRepository(BaseRepository[Challenge]):
    pass


class SubmissionRepository(BaseRepository[ChallengeSubmission]):
    async def list_approved_achievements(
        self, session: AsyncSession, athlete_id: int, domain_id: int
    ) -> List[ChallengeAchievement]:
        stmt = (
            select(ChallengeSubmission.challenge_id, ChallengeSubmission.achieved_rank)
            .join(Challenge, Challenge.id == ChallengeSubmission.challenge_id)
            .where(
                ChallengeSubmission.athlete_id == athlete_id,
                ChallengeSubmission.status == SubmissionStatus.APPROVED.value,
                ChallengeSubmission.achieved_rank.is_not(None),
                Challenge.primary_domain_id == domain_id,
                Challenge.is_active.is_(True),
            )
            .order_by(ChallengeSubmission.challenge_id)
        )
        result = await session.execute(stmt)
        return [
            ChallengeAchievement(challenge_id=challenge_id, achieved_rank=Rank.parse(rank))
            for challenge_id, rank in result.all()
        ]


class DomainProgressRepository(BaseRepository[DomainProgressRow]):
    async def save_versioned(self, session: AsyncSession, progress: DomainProgress) -> int:
        """Returns the new version, or raises on a stale version."""
        new_version = progress.version + 1
        stmt = (
            update(DomainProgressRow)
            .where(
                DomainProgressRow.id == progress.id,
                DomainProgressRow.version == progress.version,
            )
            .values(**progress.to_db_updates(), version=new_version)
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        if result.rowcount != 1:
            raise ConcurrencyConflictError(
                "DomainProgress", (progress.athlete_id, progress.domain_id)
            )
        return new_version


class XPLedgerRepository(BaseRepository[XPLedgerRow]):
    pass


class BreakthroughRuleRepository(BaseRepository[BreakthroughRule]):
    pass


# ============================================================================
# Unit of work
# ============================================================================


class SqlAlchemyProgressionUnitOfWork(ProgressionUnitOfWork):
    """One session, one transaction."""

    def __init__(self, session: AsyncSession, store: SqlAlchemyProgressionStore) -> None:
        self._session = session
        self._store = store

    async def get_athlete(self, athlete_id: int) -> Optional[AthleteProfile]:
        row = await self._store.athletes.get(self._session, athlete_id)
        if row is None or not row.is_active:
            return None
        return AthleteProfile.from_db(row)

    async def domain_exists(self, domain_id: int) -> bool:
        return await self._store.domains.exists(
            self._session, Domain.id == domain_id, Domain.is_active.is_(True)
        )

    async def get_challenge(self, challenge_id: int) -> Optional[ChallengeConfig]:
        row = await self._store.challenges.get(self._session, challenge_id)
        return ChallengeConfig.from_db(row) if row is not None else None

    async def get_submission_for_update(self, submission_id: int) -> Optional[SubmissionState]:
        row = await self._store.submissions.get_for_update(self._session, submission_id)
        return SubmissionState.from_db(row) if row is not None else None

    async def save_submission(self, submission: SubmissionState) -> None:
        new_version = submission.version + 1
        stmt = (
            update(ChallengeSubmission)
            .where(
                ChallengeSubmission.id == submission.id,
                ChallengeSubmission.version == submission.version,
            )
            .values(**submission.to_db_updates(), version=new_version)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        if result.rowcount != 1:
            raise ConcurrencyConflictError("ChallengeSubmission", submission.id)
        submission.version = new_version

    async def list_approved_achievements(
        self, athlete_id: int, domain_id: int
    ) -> List[ChallengeAchievement]:
        return await self._store.submissions.list_approved_achievements(
            self._session, athlete_id, domain_id
        )

    async def lock_progress(
        self, athlete_id: int, domain_ids: Iterable[int]
    ) -> Dict[int, DomainProgress]:
        locked: Dict[int, DomainProgress] = {}
        for domain_id in sorted(set(domain_ids)):
            row = await self._store.progress.find_one_where(
                self._session,
                DomainProgressRow.athlete_id == athlete_id,
                DomainProgressRow.domain_id == domain_id,
                for_update=True,
            )
            if row is None:
                row = await self._create_progress(athlete_id, domain_id)
            locked[domain_id] = DomainProgress.from_db(row)
        return locked

    async def _create_progress(self, athlete_id: int, domain_id: int) -> DomainProgressRow:
        row = DomainProgressRow(
            athlete_id=athlete_id,
            domain_id=domain_id,
            version=1,
            letter=Rank.F.value,
            sublevel=0,
            current_xp=0,
            banked_xp=0,
            breakthrough_ready=False,
        )
        try:
            async with self._session.begin_nested():
                self._store.progress.add(self._session, row)
                await self._session.flush()
        except IntegrityError as exc:
            logger.info(
                "DomainProgress created concurrently",
                extra={"athlete_id": athlete_id, "domain_id": domain_id},
            )
            raise ConcurrencyConflictError("DomainProgress", (athlete_id, domain_id)) from exc

        logger.debug(
            "DomainProgress created",
            extra={"athlete_id": athlete_id, "domain_id": domain_id, "progress_id": row.id},
        )
        return row

    async def get_progress(self, athlete_id: int, domain_id: int) -> Optional[DomainProgress]:
        row = await self._store.progress.find_one_where(
            self._session,
            DomainProgressRow.athlete_id == athlete_id,
            DomainProgressRow.domain_id == domain_id,
        )
        return DomainProgress.from_db(row) if row is not None else None

    async def list_progress(self, athlete_id: int) -> List[DomainProgress]:
        rows = await self._store.progress.find_many_where(
            self._session,
            DomainProgressRow.athlete_id == athlete_id,
            order_by=(DomainProgressRow.domain_id,),
        )
        return [DomainProgress.from_db(row) for row in rows]

    async def save_progress(self, progress: DomainProgress) -> None:
        new_version = await self._store.progress.save_versioned(self._session, progress)
        progress.mark_saved(new_version)

    async def append_ledger(self, entry: XPLedgerEntry) -> XPLedgerEntry:
        row = XPLedgerRow(
            athlete_id=entry.athlete_id,
            domain_id=entry.domain_id,
            amount=entry.amount,
            source=entry.source.value,
            source_id=entry.source_id,
            note=entry.note,
        )
        self._store.ledger.add(self._session, row)
        await self._store.ledger.flush(self._session)
        return XPLedgerEntry.from_db(row)

    async def list_ledger(
        self, athlete_id: int, domain_id: Optional[int], limit: int
    ) -> List[XPLedgerEntry]:
        conditions = [XPLedgerRow.athlete_id == athlete_id]
        if domain_id is not None:
            conditions.append(XPLedgerRow.domain_id == domain_id)
        rows = await self._store.ledger.find_many_where(
            self._session,
            *conditions,
            order_by=(XPLedgerRow.created_at.desc(), XPLedgerRow.id.desc()),
            limit=limit,
        )
        return [XPLedgerEntry.from_db(row) for row in rows]

    async def list_breakthrough_rules(
        self, from_rank: Rank, domain_id: int
    ) -> List[BreakthroughRequirement]:
        rows = await self._store.rules.find_many_where(
            self._session,
            BreakthroughRule.from_rank == from_rank.value,
            BreakthroughRule.is_active.is_(True),
            (BreakthroughRule.domain_id == domain_id) | BreakthroughRule.domain_id.is_(None),
            order_by=(BreakthroughRule.id,),
        )
        return [BreakthroughRequirement.from_db(row) for row in rows]

    async def find_breakthrough_rule(
        self, from_rank: Rank, domain_id: Optional[int], division_id: Optional[int]
    ) -> Optional[BreakthroughRequirement]:
        row = await self._store.rules.find_one_where(
            self._session,
            BreakthroughRule.from_rank == from_rank.value,
            BreakthroughRule.domain_id.is_(None)
            if domain_id is None
            else BreakthroughRule.domain_id == domain_id,
            BreakthroughRule.division_id.is_(None)
            if division_id is None
            else BreakthroughRule.division_id == division_id,
        )
        return BreakthroughRequirement.from_db(row) if row is not None else None

    async def add_breakthrough_rule(self, rule: BreakthroughRequirement) -> BreakthroughRequirement:
        row = BreakthroughRule(
            domain_id=rule.domain_id,
            division_id=rule.division_id,
            from_rank=rule.from_rank.value,
            to_rank=rule.to_rank.value,
            tier_required=rule.tier_required.value,
            challenge_count=rule.challenge_count,
            is_active=rule.is_active,
        )
        self._store.rules.add(self._session, row)
        await self._store.rules.flush(self._session)
        return BreakthroughRequirement.from_db(row)


# ============================================================================
# Store
# ============================================================================


class SqlAlchemyProgressionStore(ProgressionStore):
    """
    `ProgressionStore` backed by an initialized `DatabaseService`.

    >>> store = SqlAlchemyProgressionStore(db)
    >>> async with store.transaction() as uow:
    ...     progress = await uow.lock_progress(athlete_id, [domain_id])
    """

    def __init__(self, db: DatabaseService) -> None:
        self._db = db
        self.athletes = AthleteRepository(Athlete, get_logger(f"{__name__}.AthleteRepository"))
        self.domains = DomainRepository(Domain, get_logger(f"{__name__}.DomainRepository"))
        self.challenges = ChallengeRepository(
            Challenge, get_logger(f"{__name__}.ChallengeRepository")
        )
        self.submissions = SubmissionRepository(
            ChallengeSubmission, get_logger(f"{__name__}.SubmissionRepository")
        )
        self.progress = DomainProgressRepository(
            DomainProgressRow, get_logger(f"{__name__}.DomainProgressRepository")
        )
        self.ledger = XPLedgerRepository(XPLedgerRow, get_logger(f"{__name__}.XPLedgerRepository"))
        self.rules = BreakthroughRuleRepository(
            BreakthroughRule, get_logger(f"{__name__}.BreakthroughRuleRepository")
        )

    @asynccontextmanager
    async def transaction(self) -> AsyncGenerator[ProgressionUnitOfWork, None]:
        async with self._db.get_transaction() as session:
            yield SqlAlchemyProgressionUnitOfWork(session, self)

    @asynccontextmanager
    async def reader(self) -> AsyncGenerator[ProgressionUnitOfWork, None]:
        async with self._db.get_session() as session:
            yield SqlAlchemyProgressionUnitOfWork(session, self)


__all__ = ["SqlAlchemyProgressionStore", "SqlAlchemyProgressionUnitOfWork"]
