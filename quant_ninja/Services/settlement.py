import asyncio
import logging
from typing import Protocol

from pydantic import BaseModel

from quant_ninja.LedgerEngine.models import Bet, SettlementOutcome
from quant_ninja.Oracle.parsing import VerificationResult
from . import config

logger = logging.getLogger("Settlement")


class VerificationOracle(Protocol):
    async def verify_outcome(self, bet: Bet) -> VerificationResult: ...


class SettlementReport(BaseModel):
    """Summary of one settlement pass."""
    checked: int = 0
    settled: int = 0
    inconclusive: int = 0
    timed_out: int = 0
    failed: int = 0


class SettlementRunner:
    """
    Fans verification requests out concurrently.
    Each lookup is bounded by a timeout; a slow or failing lookup only
    leaves its own position PENDING.
    """

    def __init__(self, oracle: VerificationOracle, timeout: float = config.SETTLEMENT_TIMEOUT_SECONDS):
        self.oracle = oracle
        self.timeout = timeout

    async def _verify_one(self, bet: Bet) -> VerificationResult:
        return await asyncio.wait_for(self.oracle.verify_outcome(bet), timeout=self.timeout)

    async def collect(self, bets: list[Bet]) -> tuple[list[SettlementOutcome], SettlementReport]:
        report = SettlementReport(checked=len(bets))
        if not bets:
            return [], report

        results = await asyncio.gather(*(self._verify_one(b) for b in bets), return_exceptions=True)

        outcomes = []
        for bet, result in zip(bets, results):
            if isinstance(result, asyncio.TimeoutError):
                logger.warning(f"Settlement timed out for {bet.id} after {self.timeout}s")
                report.timed_out += 1
                continue
            if isinstance(result, BaseException):
                logger.warning(f"Settlement failed for {bet.id}: {result}")
                report.failed += 1
                continue
            if result.verdict not in ("WON", "LOST"):
                report.inconclusive += 1
                continue
            outcomes.append(SettlementOutcome(
                bet_id=bet.id,
                verdict=result.verdict,
                note=result.note,
                sources=tuple(result.sources),
            ))

        return outcomes, report
