"""
Base classes for rich domain models.

Domain models own state transitions and the rules guarding them; the
SQLAlchemy classes in `src.database.models` only describe tables. Stores
convert between the two at their boundary.

An aggregate records `DomainEvent`s while it changes. The owning service
collects them with `clear_domain_events()` once the transaction has
committed and publishes them on the EventBus, so listeners never observe a
change that was rolled back.

>>> class DomainProgress(AggregateRoot):
...     def advance_letter(self, to_rank, at):
...         ...
...         self.add_domain_event("progression.breakthrough_confirmed", {...})
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


@dataclass
class DomainEvent:
    event_name: str
    payload: Dict[str, Any]
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class Entity:
    """Identity-based equality: same type and id means same entity."""

    def __init__(self, entity_id: int) -> None:
        self._id = entity_id

    @property
    def id(self) -> int:
        return self._id

    def __eq__(self, other: object) -> bool:
        return type(self) is type(other) and self.id == other.id  # type: ignore[attr-defined]

    def __hash__(self) -> int:
        return hash((type(self).__name__, self.id))


class AggregateRoot(Entity):
    """Consistency boundary; the only entity that records domain events."""

    def __init__(self, entity_id: int) -> None:
        super().__init__(entity_id)
        self._domain_events: List[DomainEvent] = []

    def add_domain_event(self, event_name: str, payload: Dict[str, Any]) -> None:
        self._domain_events.append(DomainEvent(event_name, payload))

    def get_pending_events(self) -> List[DomainEvent]:
        return list(self._domain_events)

    def clear_domain_events(self) -> List[DomainEvent]:
        """Queued events, oldest first. The queue is emptied."""
        events, self._domain_events = self._domain_events, []
        return events


# ============================================================================
# Validation
# ============================================================================


class DomainValidationError(Exception):
    """A domain model was asked to hold or reach an invalid state."""

    def __init__(self, message: str, field: Optional[str] = None) -> None:
        super().__init__(message)
        self.field = field


def validate_non_negative(value: int, field_name: str) -> None:
    if value < 0:
        raise DomainValidationError(f"{field_name} must be non-negative, got {value}", field_name)


def validate_range(value: int, min_val: int, max_val: int, field_name: str) -> None:
    """Inclusive range check."""
    if not min_val <= value <= max_val:
        raise DomainValidationError(
            f"{field_name} must be between {min_val} and {max_val}, got {value}", field_name
        )
