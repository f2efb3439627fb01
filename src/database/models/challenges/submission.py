"""
ChallengeSubmission: one athlete's attempt at one challenge.
Schema only.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    BigInteger,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from src.core.database.base import Base, IdMixin, TimestampMixin


class ChallengeSubmission(Base, IdMixin, TimestampMixin):
    """
    Submission row; the idempotency boundary for tier payouts.

    Schema-only:
    - achieved_value / achieved_weight / achieved_rank
    - claimed_tiers: ascending, comma-joined rank letters already paid ("F,E,D")
    - xp_awarded: cumulative base XP paid for this (athlete, challenge)
    - status (SubmissionStatus value)
    """

    __tablename__ = "challenge_submissions"
    __table_args__ = (
        UniqueConstraint("athlete_id", "challenge_id", name="uq_submission_athlete_challenge"),
        Index("ix_challenge_submissions_status", "status"),
        Index("ix_challenge_submissions_athlete_status", "athlete_id", "status"),
    )

    athlete_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("athletes.id", ondelete="CASCADE"),
        nullable=False,
    )

    challenge_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("challenges.id", ondelete="CASCADE"),
        nullable=False,
    )

    version: Mapped[int] = mapped_column(
        nullable=False,
        default=1,
        doc="Optimistic locking version",
    )

    achieved_value: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    achieved_weight: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    achieved_rank: Mapped[Optional[str]] = mapped_column(String(1), nullable=True)

    claimed_tiers: Mapped[str] = mapped_column(String(32), nullable=False, default="")
    xp_awarded: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    status: Mapped[str] = mapped_column(String(24), nullable=False, default="pending")

    reviewed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
