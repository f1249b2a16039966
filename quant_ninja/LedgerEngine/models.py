from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _assume_utc(value: datetime) -> datetime:
    # Naive timestamps are treated as UTC so they compare with aware ones
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class BetStatus(str, Enum):
    PENDING = "PENDING"
    WON = "WON"
    LOST = "LOST"
    VOID = "VOID"

    @property
    def is_terminal(self) -> bool:
        return self is not BetStatus.PENDING


class GroundingSource(BaseModel):
    """Web citation returned alongside an oracle answer."""
    title: Optional[str] = None
    uri: Optional[str] = None

    model_config = ConfigDict(frozen=True)


class RawObservation(BaseModel):
    """A validated bet candidate as seen by the oracle, before sizing."""
    event: str = Field(..., min_length=1)
    market: str = Field(..., min_length=1)
    odds: float = Field(..., gt=1.0, allow_inf_nan=False, description="Decimal odds")
    ev: float = Field(..., allow_inf_nan=False, description="Edge in percent, e.g. 4.5")
    bookie: str = "Unknown"
    observed_at: datetime = Field(default_factory=utc_now)
    grounding_sources: tuple[GroundingSource, ...] = ()

    model_config = ConfigDict(frozen=True)

    @field_validator("observed_at")
    @classmethod
    def _aware(cls, value: datetime) -> datetime:
        return _assume_utc(value)


class Bet(BaseModel):
    """A sized position. Only lifecycle fields ever change."""
    id: str
    event: str
    market: str
    odds: float
    ev: float
    bookie: str
    stake: float = Field(..., ge=0.0)
    status: BetStatus = BetStatus.PENDING
    created_at: datetime
    result_details: Optional[str] = None
    grounding_sources: tuple[GroundingSource, ...] = ()

    model_config = ConfigDict(frozen=True)

    @field_validator("created_at")
    @classmethod
    def _aware(cls, value: datetime) -> datetime:
        return _assume_utc(value)


class Ledger(BaseModel):
    """Immutable snapshot of all positions, newest first."""
    bets: tuple[Bet, ...] = ()

    model_config = ConfigDict(frozen=True)

    def get(self, bet_id: str) -> Optional[Bet]:
        for bet in self.bets:
            if bet.id == bet_id:
                return bet
        return None


class SettlementOutcome(BaseModel):
    """Oracle verdict for one position. Verdict is kept raw on purpose."""
    bet_id: str
    verdict: str
    note: Optional[str] = None
    sources: tuple[GroundingSource, ...] = ()


class AdmissionResult(BaseModel):
    ledger: Ledger
    accepted: int = 0


class FinancialSnapshot(BaseModel):
    """Derived from the full ledger on every read. Never stored."""
    initial_bankroll: float
    available_cash: float
    in_play: float
    current_equity: float
    total_bets: int
    total_wins: int
    total_losses: int
    win_rate: float
    roi: float
    net_profit: float


class BookExposure(BaseModel):
    book: str
    trades: int
    percent: float
