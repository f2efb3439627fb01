"""
Database Model Enums
====================

Lightweight enumerations for database models.

These enums provide type-safe constants for categorical columns. Columns
store the enum *value* as a short string; services convert at the boundary
and never compare raw strings.
"""

from __future__ import annotations

import enum


class XPSource(str, enum.Enum):
    """
    Origin of an XP ledger entry.

    Every ledger row carries exactly one source.
    """

    CHALLENGE = "challenge"
    TRAINING = "training"
    COMPETITION = "competition"
    EVENT = "event"
    BONUS = "bonus"
    ADMIN = "admin"


class GradingType(str, enum.Enum):
    """
    How a challenge attempt is measured.

    TIME is the only lower-is-better type; see `is_lower_better`.
    """

    PASS_FAIL = "pass_fail"
    REPS = "reps"
    TIME = "time"
    DISTANCE = "distance"
    TIMED_REPS = "timed_reps"
    WEIGHTED_REPS = "weighted_reps"

    @property
    def is_lower_better(self) -> bool:
        return self is GradingType.TIME


class SubmissionStatus(str, enum.Enum):
    """Review state of a challenge submission."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    NEEDS_REVISION = "needs_revision"
