"""
DomainProgressRow: per (athlete, domain) rank state.
Schema only.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from src.core.database.base import Base, IdMixin, TimestampMixin


class DomainProgressRow(Base, IdMixin, TimestampMixin):
    """
    Cached projection of the XP ledger for one athlete in one domain.

    Created lazily at F0 / 0 XP on first award; never deleted while the
    athlete exists. Rows are locked with SELECT ... FOR UPDATE for every
    read-modify-write.
    """

    __tablename__ = "domain_progress"
    __table_args__ = (
        UniqueConstraint("athlete_id", "domain_id", name="uq_domain_progress_athlete_domain"),
        Index("ix_domain_progress_athlete", "athlete_id"),
        Index("ix_domain_progress_breakthrough_ready", "breakthrough_ready"),
    )

    athlete_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("athletes.id", ondelete="CASCADE"),
        nullable=False,
    )

    domain_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("domains.id", ondelete="CASCADE"),
        nullable=False,
    )

    version: Mapped[int] = mapped_column(
        nullable=False,
        default=1,
        doc="Optimistic locking version",
    )

    letter: Mapped[str] = mapped_column(String(1), nullable=False, default="F")
    sublevel: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    current_xp: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    banked_xp: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    breakthrough_ready: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    breakthrough_achieved_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
