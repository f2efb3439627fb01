"""
ChallengeGrade: per-division target for one rank tier of a challenge.
Schema only.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from sqlalchemy import BigInteger, Float, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.core.database.base import Base, IdMixin, TimestampMixin

if TYPE_CHECKING:
    from .challenge import Challenge


class ChallengeGrade(Base, IdMixin, TimestampMixin):
    """
    Target value (and optional weight) to meet or beat for `rank`.

    A NULL division_id applies to athletes without a division.
    """

    __tablename__ = "challenge_grades"
    __table_args__ = (
        UniqueConstraint("challenge_id", "division_id", "rank", name="uq_challenge_grade_tier"),
        Index("ix_challenge_grades_challenge_division", "challenge_id", "division_id"),
    )

    challenge_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("challenges.id", ondelete="CASCADE"),
        nullable=False,
    )

    division_id: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)

    rank: Mapped[str] = mapped_column(String(1), nullable=False)

    target_value: Mapped[float] = mapped_column(Float, nullable=False)

    target_weight: Mapped[Optional[float]] = mapped_column(
        Float,
        nullable=True,
        doc="Minimum load for weighted-reps challenges",
    )

    challenge: Mapped["Challenge"] = relationship(back_populates="grades")
