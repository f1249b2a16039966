"""
Ledger Transitions
==================
Pure functions over an immutable Ledger snapshot:

1. admit()             - positive edge -> dedup -> Kelly sizing -> zero-stake filter
2. apply_settlement()  - PENDING -> WON/LOST from oracle verdicts
3. remove()            - drop a position by id
4. derive_metrics()    - one pass over the full history, nothing cached

Every transition returns a new Ledger; the input is never touched.
"""
import logging
import uuid
from typing import Iterable, Optional

from quant_ninja.StakeEngine.calculator import compute_stake

from . import config
from .models import (
    AdmissionResult,
    Bet,
    BetStatus,
    BookExposure,
    FinancialSnapshot,
    Ledger,
    RawObservation,
    SettlementOutcome,
)

logger = logging.getLogger("Ledger")

SETTLING_VERDICTS = {BetStatus.WON.value: BetStatus.WON, BetStatus.LOST.value: BetStatus.LOST}


def new_bet_id(source: str = "scan") -> str:
    return f"{source}-{uuid.uuid4().hex[:12]}"


def is_duplicate(candidate: RawObservation, ledger: Ledger, window_ms: int = config.DEDUP_WINDOW_MS) -> bool:
    """Same event and market already recorded within the dedup window."""
    for existing in ledger.bets:
        if existing.event != candidate.event or existing.market != candidate.market:
            continue
        gap_ms = abs((existing.created_at - candidate.observed_at).total_seconds()) * 1000
        if gap_ms < window_ms:
            return True
    return False


def admit(
    candidates: Iterable[RawObservation],
    ledger: Ledger,
    available_cash: Optional[float] = None,
    source: str = "scan",
) -> AdmissionResult:
    """
    Turn a batch of raw observations into sized PENDING positions.

    Dedup runs against the ledger as it was before this batch, and every
    candidate is sized from the same available cash figure.
    """
    if available_cash is None:
        available_cash = derive_metrics(ledger).available_cash

    fresh = []
    for candidate in candidates:
        if candidate.ev <= 0:
            logger.debug(f"Skip {candidate.event} / {candidate.market}: non-positive EV {candidate.ev}")
            continue

        if is_duplicate(candidate, ledger):
            logger.debug(f"Skip {candidate.event} / {candidate.market}: duplicate within window")
            continue

        stake = compute_stake(candidate.ev, candidate.odds, available_cash)
        if stake <= 0:
            logger.debug(f"Skip {candidate.event} / {candidate.market}: zero stake")
            continue

        fresh.append(Bet(
            id=new_bet_id(source),
            event=candidate.event,
            market=candidate.market,
            odds=candidate.odds,
            ev=candidate.ev,
            bookie=candidate.bookie,
            stake=stake,
            status=BetStatus.PENDING,
            created_at=candidate.observed_at,
            grounding_sources=candidate.grounding_sources,
        ))

    if not fresh:
        return AdmissionResult(ledger=ledger, accepted=0)

    logger.info(f"Auto-placed {len(fresh)} positions from {source}.")
    return AdmissionResult(ledger=Ledger(bets=tuple(fresh) + ledger.bets), accepted=len(fresh))


def chronological(ledger: Ledger) -> list[Bet]:
    return sorted(ledger.bets, key=lambda b: b.created_at)


def select_for_settlement(ledger: Ledger, limit: int = config.SETTLEMENT_BATCH_SIZE) -> list[Bet]:
    """Oldest PENDING positions first, capped to bound oracle cost per pass."""
    pending = [b for b in chronological(ledger) if b.status == BetStatus.PENDING]
    return pending[:limit]


def apply_settlement(ledger: Ledger, outcomes: Iterable[SettlementOutcome]) -> Ledger:
    """
    Apply oracle verdicts. Only exact WON/LOST verdicts on PENDING positions
    take effect; anything else is left for a later pass.
    """
    by_id = {bet.id: bet for bet in ledger.bets}
    changed = False

    for outcome in outcomes:
        status = SETTLING_VERDICTS.get(outcome.verdict)
        if status is None:
            continue

        bet = by_id.get(outcome.bet_id)
        if bet is None or bet.status.is_terminal:
            continue

        by_id[bet.id] = bet.model_copy(update={
            "status": status,
            "result_details": outcome.note or config.DEFAULT_SETTLEMENT_NOTE,
            "grounding_sources": tuple(outcome.sources),
        })
        changed = True
        logger.info(f"Settled {bet.id} ({bet.event} / {bet.market}) -> {status.value}")

    if not changed:
        return ledger

    return Ledger(bets=tuple(by_id[bet.id] for bet in ledger.bets))


def remove(ledger: Ledger, bet_id: str) -> Ledger:
    remaining = tuple(b for b in ledger.bets if b.id != bet_id)
    if len(remaining) == len(ledger.bets):
        return ledger
    return Ledger(bets=remaining)


def filter_by_status(ledger: Ledger, status: Optional[BetStatus] = None) -> list[Bet]:
    if status is None:
        return list(ledger.bets)
    return [b for b in ledger.bets if b.status == status]


def net_result(bet: Bet) -> float:
    """Profit or loss of a single position; open and void positions net zero."""
    if bet.status == BetStatus.WON:
        return bet.stake * bet.odds - bet.stake
    if bet.status == BetStatus.LOST:
        return -bet.stake
    return 0.0


def derive_metrics(ledger: Ledger, initial_bankroll: float = config.INITIAL_BANKROLL) -> FinancialSnapshot:
    """
    Recompute the financial picture from the full history.

    Every stake leaves cash when placed, whatever its status; only WON
    positions return stake * odds.
    """
    cash = initial_bankroll
    in_play = 0.0
    wins = 0
    losses = 0
    settled = 0

    for bet in ledger.bets:
        cash -= bet.stake
        if bet.status == BetStatus.PENDING:
            in_play += bet.stake
            continue
        settled += 1
        if bet.status == BetStatus.WON:
            cash += bet.stake * bet.odds
            wins += 1
        elif bet.status == BetStatus.LOST:
            losses += 1

    # Over-betting can push raw cash negative; the exposed value is floored
    available_cash = max(0.0, cash)
    equity = available_cash + in_play

    return FinancialSnapshot(
        initial_bankroll=initial_bankroll,
        available_cash=available_cash,
        in_play=in_play,
        current_equity=equity,
        total_bets=len(ledger.bets),
        total_wins=wins,
        total_losses=losses,
        win_rate=wins / (settled or 1) * 100,
        roi=(equity - initial_bankroll) / initial_bankroll * 100,
        net_profit=equity - initial_bankroll,
    )


def exposure_breakdown(ledger: Ledger, books: Iterable[str] = config.TRACKED_BOOKS) -> list[BookExposure]:
    total = len(ledger.bets) or 1
    breakdown = []
    for book in books:
        trades = sum(1 for b in ledger.bets if book.lower() in b.bookie.lower())
        breakdown.append(BookExposure(book=book, trades=trades, percent=trades / total * 100))
    return breakdown
