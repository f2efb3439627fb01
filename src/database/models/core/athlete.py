"""
Athlete: identity and division of a competitor.
Schema only.
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy import BigInteger, Boolean, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from src.core.database.base import Base, IdMixin, TimestampMixin


class Athlete(Base, IdMixin, TimestampMixin):
    """
    Athlete reference row.

    Schema-only:
    - display_name
    - division_id (selects challenge grades and breakthrough overrides)
    - is_active
    """

    __tablename__ = "athletes"
    __table_args__ = (Index("ix_athletes_division_id", "division_id"),)

    display_name: Mapped[str] = mapped_column(String(120), nullable=False)

    division_id: Mapped[Optional[int]] = mapped_column(
        BigInteger,
        nullable=True,
        doc="Division resolved by the athlete-profile layer (age, gender)",
    )

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
