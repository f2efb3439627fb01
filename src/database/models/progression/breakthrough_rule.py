"""
BreakthroughRule: requirement to unlock the next rank letter.
Schema only.
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy import BigInteger, Boolean, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from src.core.database.base import Base, IdMixin, TimestampMixin


class BreakthroughRule(Base, IdMixin, TimestampMixin):
    """
    Requirement for a from_rank -> to_rank transition.

    - domain_id NULL: applies to every domain
    - division_id NULL: default rule; otherwise a division override
    - satisfied by `challenge_count` distinct challenges at >= `tier_required`
    """

    __tablename__ = "breakthrough_rules"
    __table_args__ = (
        UniqueConstraint(
            "domain_id",
            "from_rank",
            "to_rank",
            "division_id",
            name="uq_breakthrough_rule_transition",
        ),
        Index("ix_breakthrough_rules_lookup", "from_rank", "is_active"),
    )

    domain_id: Mapped[Optional[int]] = mapped_column(
        BigInteger,
        ForeignKey("domains.id", ondelete="CASCADE"),
        nullable=True,
    )

    division_id: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)

    from_rank: Mapped[str] = mapped_column(String(1), nullable=False)
    to_rank: Mapped[str] = mapped_column(String(1), nullable=False)
    tier_required: Mapped[str] = mapped_column(String(1), nullable=False)
    challenge_count: Mapped[int] = mapped_column(Integer, nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
