"""
Progression constant tables.

Purpose
-------
Coded defaults for the two reward tables and the default breakthrough
requirements, plus `ProgressionTables`: the validated, immutable snapshot
the engine reads. Tables are deployment-time configuration; YAML under
`config/` may override them and is read once at startup.

Tables
------
| Rank | XP per tier | XP per sublevel | Rank ceiling (9 x sublevel) |
|------|-------------|-----------------|-----------------------------|
| F    | 25          | 100             | 900                         |
| E    | 50          | 200             | 1800                        |
| D    | 75          | 400             | 3600                        |
| C    | 100         | 800             | 7200                        |
| B    | 150         | 1600            | 14400                       |
| A    | 200         | 3200            | 28800                       |
| S    | 300         | 6400            | 57600                       |

Both columns must be strictly increasing with rank.
"""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Dict, Mapping, Optional

from src.core.exceptions import ConfigurationError
from src.core.logging.logger import get_logger
from src.modules.progression.ranks import MAX_SUBLEVEL, RANKS, Rank

if TYPE_CHECKING:
    from src.core.config.manager import ConfigManager

logger = get_logger(__name__)


# ============================================================================
# Coded defaults
# ============================================================================

DEFAULT_XP_PER_TIER: Mapping[Rank, int] = MappingProxyType(
    {
        Rank.F: 25,
        Rank.E: 50,
        Rank.D: 75,
        Rank.C: 100,
        Rank.B: 150,
        Rank.A: 200,
        Rank.S: 300,
    }
)

DEFAULT_XP_PER_SUBLEVEL: Mapping[Rank, int] = MappingProxyType(
    {
        Rank.F: 100,
        Rank.E: 200,
        Rank.D: 400,
        Rank.C: 800,
        Rank.B: 1600,
        Rank.A: 3200,
        Rank.S: 6400,
    }
)

XP_HISTORY_LIMIT = 50


@dataclass(frozen=True)
class BreakthroughDefault:
    from_rank: Rank
    to_rank: Rank
    tier_required: Rank
    challenge_count: int


DEFAULT_BREAKTHROUGH_RULES: tuple[BreakthroughDefault, ...] = (
    BreakthroughDefault(Rank.F, Rank.E, Rank.E, 3),
    BreakthroughDefault(Rank.E, Rank.D, Rank.D, 5),
    BreakthroughDefault(Rank.D, Rank.C, Rank.C, 7),
    BreakthroughDefault(Rank.C, Rank.B, Rank.B, 10),
    BreakthroughDefault(Rank.B, Rank.A, Rank.A, 12),
    BreakthroughDefault(Rank.A, Rank.S, Rank.S, 15),
)

# Event names published after commit
EVENT_XP_AWARDED = "progression.xp_awarded"
EVENT_LEVELED_UP = "progression.leveled_up"
EVENT_BREAKTHROUGH_READY = "progression.breakthrough_ready"
EVENT_BREAKTHROUGH_CONFIRMED = "progression.breakthrough_confirmed"
EVENT_SUBMISSION_REWARDED = "submission.reward_processed"


# ============================================================================
# Validated snapshot
# ============================================================================


def _parse_table(name: str, raw: Mapping[Any, Any]) -> Dict[Rank, int]:
    if not isinstance(raw, Mapping):
        raise ConfigurationError(name, f"{name} must be a mapping of rank letter to XP")

    table: Dict[Rank, int] = {}
    for key, value in raw.items():
        letter = str(key.value if isinstance(key, Rank) else key).strip().upper()
        if letter not in Rank.__members__:
            raise ConfigurationError(name, f"{name} has unknown rank letter {key!r}")
        if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
            raise ConfigurationError(
                name, f"{name}.{letter} must be a positive integer, got {value!r}"
            )
        table[Rank[letter]] = value

    missing = [rank.value for rank in RANKS if rank not in table]
    if missing:
        raise ConfigurationError(name, f"{name} is missing ranks: {', '.join(missing)}")

    previous: Optional[int] = None
    for rank in RANKS:
        if previous is not None and table[rank] <= previous:
            raise ConfigurationError(
                name, f"{name} must be strictly increasing with rank (at {rank.value})"
            )
        previous = table[rank]

    return table


@dataclass(frozen=True)
class ProgressionTables:
    """
    Immutable per-rank reward tables.

    Build with `ProgressionTables.default()` or
    `ProgressionTables.from_config_manager(manager)`; both validate.
    """

    xp_per_tier: Mapping[Rank, int]
    xp_per_sublevel: Mapping[Rank, int]

    @classmethod
    def from_mappings(
        cls,
        xp_per_tier: Mapping[Any, Any],
        xp_per_sublevel: Mapping[Any, Any],
    ) -> "ProgressionTables":
        """
        Raises:
            ConfigurationError: On a missing letter, a non-positive value, or
                a table that does not strictly increase with rank
        """
        return cls(
            xp_per_tier=MappingProxyType(_parse_table("progression.xp_per_tier", xp_per_tier)),
            xp_per_sublevel=MappingProxyType(
                _parse_table("progression.xp_per_sublevel", xp_per_sublevel)
            ),
        )

    @classmethod
    def default(cls) -> "ProgressionTables":
        return cls.from_mappings(DEFAULT_XP_PER_TIER, DEFAULT_XP_PER_SUBLEVEL)

    @classmethod
    def from_config_manager(cls, config_manager: ConfigManager) -> "ProgressionTables":
        xp_per_tier = config_manager.get(
            "progression.xp_per_tier", {r.value: v for r, v in DEFAULT_XP_PER_TIER.items()}
        )
        xp_per_sublevel = config_manager.get(
            "progression.xp_per_sublevel",
            {r.value: v for r, v in DEFAULT_XP_PER_SUBLEVEL.items()},
        )
        tables = cls.from_mappings(xp_per_tier, xp_per_sublevel)
        logger.info(
            "Progression tables loaded",
            extra={
                "xp_per_tier": {r.value: v for r, v in tables.xp_per_tier.items()},
                "xp_per_sublevel": {r.value: v for r, v in tables.xp_per_sublevel.items()},
            },
        )
        return tables

    def tier_xp(self, tier: Rank) -> int:
        return self.xp_per_tier[tier]

    def sublevel_xp(self, letter: Rank) -> int:
        return self.xp_per_sublevel[letter]

    def ceiling(self, letter: Rank) -> int:
        """Total XP needed to reach sublevel 9 of `letter`."""
        return MAX_SUBLEVEL * self.xp_per_sublevel[letter]


__all__ = [
    "BreakthroughDefault",
    "DEFAULT_BREAKTHROUGH_RULES",
    "DEFAULT_XP_PER_SUBLEVEL",
    "DEFAULT_XP_PER_TIER",
    "EVENT_BREAKTHROUGH_CONFIRMED",
    "EVENT_BREAKTHROUGH_READY",
    "EVENT_LEVELED_UP",
    "EVENT_SUBMISSION_REWARDED",
    "EVENT_XP_AWARDED",
    "ProgressionTables",
    "XP_HISTORY_LIMIT",
]
