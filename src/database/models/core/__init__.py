"""
Core reference ORM models.

Exports:
- Athlete
- Domain
"""

from .athlete import Athlete
from .domain import Domain

__all__ = ["Athlete", "Domain"]
