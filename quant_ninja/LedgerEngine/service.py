import threading
import logging
from typing import TYPE_CHECKING, Iterable, Optional

from . import config
from . import ledger as transitions
from .models import Bet, BetStatus, BookExposure, FinancialSnapshot, Ledger, RawObservation, SettlementOutcome
from .store import LedgerStore

if TYPE_CHECKING:
    from quant_ninja.Services.settlement import SettlementReport, SettlementRunner

# Setup logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("LedgerService")


class LedgerService:
    """
    Session owner of the current ledger snapshot.

    Every mutation runs the pure transition on the current snapshot, persists
    the result, and only then swaps it in. A failed save keeps the prior
    snapshot. Readers always see a complete snapshot.
    """

    def __init__(self, store: Optional[LedgerStore] = None, initial_bankroll: float = config.INITIAL_BANKROLL):
        self.store = store or LedgerStore()
        self.initial_bankroll = initial_bankroll
        self._lock = threading.Lock()
        self._ledger = self.store.load()
        logger.info(f"LedgerService loaded {len(self._ledger.bets)} positions from {self.store.db_path}")

    @property
    def ledger(self) -> Ledger:
        return self._ledger

    def _commit(self, new_ledger: Ledger):
        self.store.save(new_ledger)
        self._ledger = new_ledger

    # Reads ---------------------------------------------------------------

    def metrics(self) -> FinancialSnapshot:
        return transitions.derive_metrics(self._ledger, self.initial_bankroll)

    def bets(self, status: Optional[BetStatus] = None) -> list[Bet]:
        return transitions.filter_by_status(self._ledger, status)

    def exposure(self) -> list[BookExposure]:
        return transitions.exposure_breakdown(self._ledger)

    def pending_for_settlement(self) -> list[Bet]:
        return transitions.select_for_settlement(self._ledger)

    # Mutations -----------------------------------------------------------

    def admit(self, candidates: Iterable[RawObservation], source: str = "scan") -> int:
        """Admit a batch; returns how many positions were placed."""
        with self._lock:
            available = transitions.derive_metrics(self._ledger, self.initial_bankroll).available_cash
            result = transitions.admit(candidates, self._ledger, available_cash=available, source=source)
            if result.accepted:
                self._commit(result.ledger)
        return result.accepted

    def apply_outcomes(self, outcomes: Iterable[SettlementOutcome]) -> int:
        """Apply verdicts to whatever is current now; returns positions settled."""
        with self._lock:
            before = self._ledger
            after = transitions.apply_settlement(before, outcomes)
            if after is before:
                return 0
            self._commit(after)

        previous = {b.id: b.status for b in before.bets}
        return sum(1 for b in after.bets if b.status != previous.get(b.id))

    async def settle_pending(self, runner: "SettlementRunner") -> "SettlementReport":
        """One settlement pass: oldest pending positions, verified concurrently."""
        batch = self.pending_for_settlement()
        outcomes, report = await runner.collect(batch)
        report.settled = self.apply_outcomes(outcomes)
        logger.info(
            f"Settlement pass: checked={report.checked} settled={report.settled} "
            f"inconclusive={report.inconclusive} timed_out={report.timed_out} failed={report.failed}"
        )
        return report

    def remove(self, bet_id: str) -> bool:
        with self._lock:
            new_ledger = transitions.remove(self._ledger, bet_id)
            if new_ledger is self._ledger:
                return False
            self._commit(new_ledger)
        logger.info(f"Removed position {bet_id}")
        return True

    def reset(self):
        """Drop all positions and the persisted snapshot."""
        with self._lock:
            self.store.clear()
            self._ledger = Ledger()
        logger.warning("Ledger reset: all local data cleared")


# Global Accessor
_service_instance: Optional[LedgerService] = None


def get_ledger_service() -> LedgerService:
    global _service_instance
    if _service_instance is None:
        _service_instance = LedgerService()
    return _service_instance
