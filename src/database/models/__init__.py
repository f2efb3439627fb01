"""
Database Models Package
========================

SQLAlchemy ORM models for the Apex progression ledger, organized by area.

All models:
- Schema-only, no business logic
- Use Mapped[] syntax with mapped_column()
- Inherit from IdMixin / TimestampMixin where applicable
- Explicit foreign key constraints with CASCADE rules
- Optimistic locking via version fields for contended rows

Organization:
-------------
- core: Reference data (Athlete, Domain)
- challenges: Challenge, ChallengeGrade, ChallengeSubmission
- progression: DomainProgressRow, XPLedgerRow, BreakthroughRule
- enums: Shared type-safe enumerations

Importing this package registers every table on `Base.metadata`.
"""

from src.core.database.base import Base

from .challenges import Challenge, ChallengeGrade, ChallengeSubmission
from .core import Athlete, Domain
from .enums import GradingType, SubmissionStatus, XPSource
from .progression import BreakthroughRule, DomainProgressRow, XPLedgerRow

__all__ = [
    "Base",
    # Core
    "Athlete",
    "Domain",
    # Challenges
    "Challenge",
    "ChallengeGrade",
    "ChallengeSubmission",
    # Progression
    "BreakthroughRule",
    "DomainProgressRow",
    "XPLedgerRow",
    # Enums
    "GradingType",
    "SubmissionStatus",
    "XPSource",
]
