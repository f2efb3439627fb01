"""
Challenge: grading configuration and reward split.
Schema only.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import BigInteger, Boolean, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.core.database.base import Base, IdMixin, TimestampMixin

if TYPE_CHECKING:
    from .challenge_grade import ChallengeGrade


class Challenge(Base, IdMixin, TimestampMixin):
    """
    Challenge definition.

    Schema-only:
    - grading_type (GradingType value)
    - min_rank / max_rank (eligible rank letters)
    - primary / secondary / tertiary domain with XP percentages
      (percentages validated to sum to 100 by the configuration layer)
    """

    __tablename__ = "challenges"
    __table_args__ = (
        Index("ix_challenges_primary_domain_id", "primary_domain_id"),
        Index("ix_challenges_active", "is_active"),
    )

    name: Mapped[str] = mapped_column(String(160), nullable=False)

    grading_type: Mapped[str] = mapped_column(String(24), nullable=False)

    min_rank: Mapped[str] = mapped_column(String(1), nullable=False, default="F")
    max_rank: Mapped[str] = mapped_column(String(1), nullable=False, default="S")

    primary_domain_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("domains.id", ondelete="RESTRICT"),
        nullable=False,
    )
    primary_xp_percent: Mapped[int] = mapped_column(Integer, nullable=False, default=100)

    secondary_domain_id: Mapped[Optional[int]] = mapped_column(
        BigInteger,
        ForeignKey("domains.id", ondelete="SET NULL"),
        nullable=True,
    )
    secondary_xp_percent: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    tertiary_domain_id: Mapped[Optional[int]] = mapped_column(
        BigInteger,
        ForeignKey("domains.id", ondelete="SET NULL"),
        nullable=True,
    )
    tertiary_xp_percent: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    grades: Mapped[List["ChallengeGrade"]] = relationship(
        back_populates="challenge",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
