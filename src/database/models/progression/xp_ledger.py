"""
XPLedgerRow: append-only audit trail of every XP award.
Schema only.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import BigInteger, DateTime, ForeignKey, Index, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from src.core.database.base import Base, IdMixin, utcnow


class XPLedgerRow(Base, IdMixin):
    """
    Immutable ledger entry.

    Schema-only:
    - amount (signed)
    - source (XPSource value) and optional source_id
    - note
    - created_at (no updated_at; rows are never modified)
    """

    __tablename__ = "xp_ledger"
    __table_args__ = (
        Index("ix_xp_ledger_athlete_created", "athlete_id", "created_at"),
        Index("ix_xp_ledger_athlete_domain_created", "athlete_id", "domain_id", "created_at"),
        Index("ix_xp_ledger_source", "source", "source_id"),
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

    amount: Mapped[int] = mapped_column(Integer, nullable=False)

    source: Mapped[str] = mapped_column(String(24), nullable=False)
    source_id: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)

    note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=func.now(),
    )
