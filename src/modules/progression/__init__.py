"""
Apex Progression Module

Purpose
-------
The progression ledger and reward engine: turns graded challenge attempts
into XP, pays each tier at most once, splits rewards across skill domains,
advances athletes through the F..S rank ladder and gates each new letter
behind a breakthrough requirement.

Layout
------
Pure calculators (no I/O):
- ranks: rank letters, sublevels and ordinals
- tiers: tier threshold resolution
- claims: claimed-tier ledger and base reward
- rewards: multi-domain reward split
- engine: per-domain award state machine
- breakthrough: breakthrough rule selection and evaluation
- prime: composite level

Domain and persistence:
- constants: reward tables and defaults
- models: domain models and the DomainProgress aggregate
- store: transactional store interface
- repository: SQLAlchemy store

Services:
- service: ProgressionService (awards, breakthroughs, reads)
- reward_service: SubmissionRewardService (submission payouts)
"""

from __future__ import annotations

from .breakthrough import BreakthroughProgress, evaluate_breakthrough, select_rule
from .claims import base_reward, claim_new_tiers, merge_claimed
from .constants import DEFAULT_BREAKTHROUGH_RULES, ProgressionTables
from .engine import AwardOutcome, apply_award
from .models import DomainProgress, ProgressState, XPLedgerEntry
from .prime import PrimeLevel, compute_prime
from .ranks import Rank, RankLevel, from_ordinal, to_ordinal
from .repository import SqlAlchemyProgressionStore
from .reward_service import RewardPreview, SubmissionRewardResult, SubmissionRewardService
from .rewards import RewardSplitConfig, split_reward, validate_domain_split
from .service import AwardResult, BreakthroughResult, ProgressionService
from .store import ProgressionStore, ProgressionUnitOfWork
from .tiers import TierThreshold, resolve_tier

__all__ = [
    "AwardOutcome",
    "AwardResult",
    "BreakthroughProgress",
    "BreakthroughResult",
    "DEFAULT_BREAKTHROUGH_RULES",
    "DomainProgress",
    "PrimeLevel",
    "ProgressState",
    "ProgressionService",
    "ProgressionStore",
    "ProgressionTables",
    "ProgressionUnitOfWork",
    "Rank",
    "RankLevel",
    "RewardPreview",
    "RewardSplitConfig",
    "SqlAlchemyProgressionStore",
    "SubmissionRewardResult",
    "SubmissionRewardService",
    "TierThreshold",
    "XPLedgerEntry",
    "apply_award",
    "base_reward",
    "claim_new_tiers",
    "compute_prime",
    "evaluate_breakthrough",
    "from_ordinal",
    "merge_claimed",
    "resolve_tier",
    "select_rule",
    "split_reward",
    "to_ordinal",
    "validate_domain_split",
]
