"""
Domain progression engine.

Pure state machine applying one XP award to one (athlete, domain) state.
No I/O: the service owns locking, the ledger append and persistence.

Rules
-----
Let ``per = xp_per_sublevel(letter)`` and ``ceiling = 9 * per``, the XP at
which sublevel 9 is reached.

- ``amount == 0``: state is unchanged (the ledger still records the entry).
- ``amount < 0`` (admin correction): ``new_xp = max(0, current_xp + amount)``
  and ``sublevel = new_xp // per``, so the sublevel may drop. ``banked_xp`` and
  ``breakthrough_ready`` are untouched.
- ``new_xp = current_xp + amount <= ceiling``: ``sublevel = new_xp // per``
  and ``current_xp = new_xp``.
- ``new_xp > ceiling``: sublevel clamps to 9, ``current_xp`` clamps to the
  ceiling, the excess is added to ``banked_xp`` and ``breakthrough_ready``
  is set when a next letter exists.

The letter never changes here; only a confirmed breakthrough advances it.

Examples
--------
>>> tables = ProgressionTables.default()
>>> outcome = apply_award(ProgressState(Rank.F, 3, 300), 150, tables)
>>> str(outcome.new_level), outcome.leveled_up
('F4', True)
"""

from __future__ import annotations

from dataclasses import dataclass

from src.modules.progression.constants import ProgressionTables
from src.modules.progression.models import ProgressState
from src.modules.progression.ranks import MAX_SUBLEVEL, RankLevel, next_rank


@dataclass(frozen=True)
class AwardOutcome:
    """
    Result of one award.

    Attributes
    ----------
    previous_state, state:
        State before and after the award.
    awarded:
        The raw amount, as recorded in the ledger.
    banked_delta:
        XP added to the bank by this award.
    """

    previous_state: ProgressState
    state: ProgressState
    awarded: int
    banked_delta: int = 0

    @property
    def previous_level(self) -> RankLevel:
        return self.previous_state.level

    @property
    def new_level(self) -> RankLevel:
        return self.state.level

    @property
    def leveled_up(self) -> bool:
        return self.state.sublevel > self.previous_state.sublevel

    @property
    def breakthrough_ready(self) -> bool:
        return self.state.breakthrough_ready

    @property
    def became_breakthrough_ready(self) -> bool:
        return self.state.breakthrough_ready and not self.previous_state.breakthrough_ready


def apply_award(state: ProgressState, amount: int, tables: ProgressionTables) -> AwardOutcome:
    """Apply `amount` XP to `state` and return the outcome."""
    if amount == 0:
        return AwardOutcome(previous_state=state, state=state, awarded=amount)

    per_sublevel = tables.sublevel_xp(state.letter)
    if amount < 0:
        reduced_xp = max(0, state.current_xp + amount)
        new_state = ProgressState(
            letter=state.letter,
            sublevel=min(reduced_xp // per_sublevel, MAX_SUBLEVEL),
            current_xp=reduced_xp,
            banked_xp=state.banked_xp,
            breakthrough_ready=state.breakthrough_ready,
        )
        return AwardOutcome(previous_state=state, state=new_state, awarded=amount)

    ceiling = tables.ceiling(state.letter)
    new_xp = state.current_xp + amount

    if new_xp <= ceiling:
        new_state = ProgressState(
            letter=state.letter,
            sublevel=max(state.sublevel, min(new_xp // per_sublevel, MAX_SUBLEVEL)),
            current_xp=new_xp,
            banked_xp=state.banked_xp,
            breakthrough_ready=state.breakthrough_ready,
        )
        return AwardOutcome(previous_state=state, state=new_state, awarded=amount)

    overflow = new_xp - ceiling
    new_state = ProgressState(
        letter=state.letter,
        sublevel=MAX_SUBLEVEL,
        current_xp=ceiling,
        banked_xp=state.banked_xp + overflow,
        breakthrough_ready=state.breakthrough_ready or next_rank(state.letter) is not None,
    )
    return AwardOutcome(
        previous_state=state,
        state=new_state,
        awarded=amount,
        banked_delta=overflow,
    )


def is_at_ceiling(state: ProgressState, tables: ProgressionTables) -> bool:
    return state.sublevel == MAX_SUBLEVEL and state.current_xp >= tables.ceiling(state.letter)


__all__ = ["AwardOutcome", "apply_award", "is_at_ceiling"]
