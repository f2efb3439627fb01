"""
Progression ORM models.

Exports:
- DomainProgressRow
- XPLedgerRow
- BreakthroughRule
"""

from .breakthrough_rule import BreakthroughRule
from .domain_progress import DomainProgressRow
from .xp_ledger import XPLedgerRow

__all__ = ["BreakthroughRule", "DomainProgressRow", "XPLedgerRow"]
