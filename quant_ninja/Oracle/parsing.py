"""
Oracle boundary parsing.

Model output is untyped JSON or free text. Everything crossing into the
ledger goes through here first: malformed records are dropped, never
trusted, never raised.
"""
import json
import logging
import math
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import ValidationError

from quant_ninja.LedgerEngine.models import GroundingSource, RawObservation, utc_now

logger = logging.getLogger("OracleParsing")

Verdict = Literal["WON", "LOST", "PENDING", "UNPARSEABLE"]

_NUMBER = re.compile(r"[-+]?(?:\d+\.?\d*|\.\d+)")
_JSON_BLOCK = re.compile(r"[\[{][\s\S]*[\]}]")

# Unicode minus and dash variants that show up in scraped or generated text
_DASHES = str.maketrans({c: "-" for c in "\u2010\u2011\u2012\u2013\u2014\u2212\ufe63\uff0d"})


@dataclass
class ExtractionResult:
    """Candidates pulled from one image or search sweep."""
    valid: bool
    candidates: list[RawObservation] = field(default_factory=list)
    rejected: int = 0


@dataclass
class VerificationResult:
    verdict: Verdict
    note: Optional[str] = None
    sources: list[GroundingSource] = field(default_factory=list)


def _to_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        match = _NUMBER.search(value.translate(_DASHES).replace(",", ""))
        if not match:
            return None
        number = float(match.group())
    else:
        return None
    return number if math.isfinite(number) else None


def _to_decimal_odds(value: Any) -> Optional[float]:
    # Signed text like "+150" or "-110" is American odds, not decimal
    if isinstance(value, str) and value.strip().translate(_DASHES).startswith(("+", "-")):
        return None
    return _to_number(value)


def _to_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def parse_observation(record: Any, observed_at: Optional[datetime] = None,
                      sources: Optional[list[GroundingSource]] = None) -> Optional[RawObservation]:
    """Validate one `{event, market, odds, ev, bookie}` record, or None."""
    if not isinstance(record, dict):
        return None

    event = _to_text(record.get("event"))
    market = _to_text(record.get("market"))
    odds = _to_decimal_odds(record.get("odds"))
    ev = _to_number(record.get("ev", record.get("edgePercent")))

    if not event or not market or odds is None or ev is None:
        return None

    try:
        return RawObservation(
            event=event,
            market=market,
            odds=odds,
            ev=ev,
            bookie=_to_text(record.get("bookie")) or "Unknown",
            observed_at=observed_at or utc_now(),
            grounding_sources=tuple(sources or ()),
        )
    except ValidationError:
        return None


def parse_observations(payload: Any, observed_at: Optional[datetime] = None,
                       sources: Optional[list[GroundingSource]] = None) -> tuple[list[RawObservation], int]:
    """
    Parse a list of records (or a dict carrying one under "bets").

    Returns (candidates, rejected_count). All candidates of one batch share
    the same observation time.
    """
    if isinstance(payload, dict):
        payload = payload.get("bets", [])
    if not isinstance(payload, list):
        return [], 0

    stamp = observed_at or utc_now()
    candidates = []
    rejected = 0
    for record in payload:
        parsed = parse_observation(record, observed_at=stamp, sources=sources)
        if parsed is None:
            rejected += 1
            continue
        candidates.append(parsed)

    if rejected:
        logger.info(f"Dropped {rejected} malformed oracle records")
    return candidates, rejected


def load_json(text: Optional[str]) -> Any:
    """Decode model output, tolerating prose or code fences around the JSON."""
    if not text:
        return None
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass
    match = _JSON_BLOCK.search(text)
    if not match:
        return None
    try:
        return json.loads(match.group())
    except json.JSONDecodeError:
        return None


def parse_extraction(text: Optional[str], observed_at: Optional[datetime] = None) -> ExtractionResult:
    data = load_json(text)
    if not isinstance(data, dict) or data.get("isValid") is not True:
        return ExtractionResult(valid=False)

    candidates, rejected = parse_observations(data.get("bets", []), observed_at=observed_at)
    return ExtractionResult(valid=True, candidates=candidates, rejected=rejected)


def parse_verdict(text: Optional[str], sources: Optional[list[GroundingSource]] = None) -> VerificationResult:
    """
    Read `WON | details`, `LOST | details` or `PENDING`.

    Anything else is UNPARSEABLE and leaves the position open.
    """
    if not text or not text.strip():
        return VerificationResult(verdict="UNPARSEABLE")

    status_part, _, details = text.strip().partition("|")
    status_part = status_part.strip()
    details = details.strip() or None

    if status_part in ("WON", "LOST"):
        return VerificationResult(verdict=status_part, note=details, sources=list(sources or []))
    if status_part.upper().startswith("PENDING"):
        return VerificationResult(verdict="PENDING", note=details)
    return VerificationResult(verdict="UNPARSEABLE", note=text.strip()[:200])
