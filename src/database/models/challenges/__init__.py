"""
Challenge ORM models.

Exports:
- Challenge
- ChallengeGrade
- ChallengeSubmission
"""

from .challenge import Challenge
from .challenge_grade import ChallengeGrade
from .submission import ChallengeSubmission

__all__ = ["Challenge", "ChallengeGrade", "ChallengeSubmission"]
