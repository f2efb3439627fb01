"""
Domain model foundations.

Domain models are separate from database models:
- Database models (src/database/models/): schema-only SQLAlchemy tables
- Domain models: rich objects with business logic, built on these bases.
  The progression models live beside their services in
  src/modules/progression/models.py.
"""

from .base import (
    AggregateRoot,
    DomainEvent,
    DomainValidationError,
    Entity,
    validate_non_negative,
    validate_range,
)

__all__ = [
    "AggregateRoot",
    "DomainEvent",
    "DomainValidationError",
    "Entity",
    "validate_non_negative",
    "validate_range",
]
