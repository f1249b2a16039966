"""
Quant Ninja - +EV Position Tracker
==================================
A paper-betting ledger that:
1. Sizes +EV candidates with quarter-Kelly
2. Deduplicates repeated sightings of the same line
3. Settles pending positions through a search-grounded oracle
"""

from .StakeEngine.calculator import StakeResult, calculate_stake, compute_stake
from .LedgerEngine.models import (
    Bet,
    BetStatus,
    FinancialSnapshot,
    Ledger,
    RawObservation,
    SettlementOutcome,
)
from .LedgerEngine.ledger import (
    admit,
    apply_settlement,
    derive_metrics,
    remove,
    select_for_settlement,
)

__all__ = [
    "StakeResult",
    "calculate_stake",
    "compute_stake",
    "Bet",
    "BetStatus",
    "FinancialSnapshot",
    "Ledger",
    "RawObservation",
    "SettlementOutcome",
    "admit",
    "apply_settlement",
    "derive_metrics",
    "remove",
    "select_for_settlement",
]

__version__ = "1.0.0"
